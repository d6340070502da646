"""Email blast delivery core of the waitlist platform."""

__version__ = "1.0.0"
