"""Streaming-safe markdown chunking for chat delivery."""

__version__ = "0.1.0"
