"""
Services package for the club backend.
"""

from .base import BaseService

__all__ = ['BaseService']
