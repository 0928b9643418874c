"""Realtime multimodal conversation session service."""

__version__ = "0.1.0"
