"""
Baseline kernel source cache.
"""

from .source_cache import SourceCache, SourceTree

__all__ = ['SourceCache', 'SourceTree']
