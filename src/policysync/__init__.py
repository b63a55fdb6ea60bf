"""policysync - Converge security-policy objects with a remote management API."""

__version__ = "0.1.0"
