"""dbkeeper - lifecycle and configuration manager for a containerized MySQL service."""

__version__ = "0.1.0"
