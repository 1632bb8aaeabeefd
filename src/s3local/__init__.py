"""Local S3 emulator with bucket event notifications for serverless handlers."""

__version__ = "0.1.0"
