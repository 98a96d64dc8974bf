"""Utility modules for I Spy Road Trip."""

from .logger import setup_logger

__all__ = ["setup_logger"]
