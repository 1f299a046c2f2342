"""WhosThere - photographs whoever uses the machine after it was left idle."""

__version__ = "0.1.0"
