"""RainAlert: flood monitoring alert evaluation backend."""

__version__ = "0.1.0"
