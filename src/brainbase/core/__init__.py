"""Core configuration, logging, locking and exception types."""
