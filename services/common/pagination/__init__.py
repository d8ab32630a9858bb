"""
Common pagination utilities for the Canvass services.

Pagination is page-numbered; the state needed to rebuild a query between
pages travels in signed tokens produced by TokenManager.
"""

from .token_manager import TokenManager

__all__ = [
    "TokenManager",
]
