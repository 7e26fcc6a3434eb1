"""
Shared utilities for the Engineer Cafe Navigator retrieval core.
"""

from . import constants, similarity

__all__ = ["constants", "similarity"]
