"""SBT Transport admin backend."""

__version__ = "1.0.0"
