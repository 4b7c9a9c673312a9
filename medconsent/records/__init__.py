"""
Record store for medconsent
"""

from .models import Record
from .store import RecordStore

__all__ = ["Record", "RecordStore"]
