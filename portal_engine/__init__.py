"""Schema-driven content portal and admin engine."""

__version__ = "0.1.0"
