"""scorenum: every musical score as one integer, and every integer as a score."""

__version__ = "0.1.0"
