"""
Built-in tools.
"""

from .web_search import WebSearch
from .cover_image import CoverImageGenerator

__all__ = ["WebSearch", "CoverImageGenerator"]
