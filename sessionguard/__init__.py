"""SessionGuard: authentication with per-user concurrent session limits."""

__version__ = "0.1.0"
