"""Handle pooling for the external application."""

from .handle_pool import HandlePool

__all__ = ["HandlePool"]
