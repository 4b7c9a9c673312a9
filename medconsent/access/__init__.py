"""
Access resolver for medconsent
"""

from .resolver import AccessResolver, combine_visible

__all__ = ["AccessResolver", "combine_visible"]
