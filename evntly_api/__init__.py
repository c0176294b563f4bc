"""
Top-level package for the Evntly API.

All functionality lives in submodules under ``app``.
"""

__all__ = []
