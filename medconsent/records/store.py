"""
Record store for medconsent
Uploads, approval flag and approved-record queries
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional
import structlog

from .models import Record

if TYPE_CHECKING:
    from ..storage.base import ExchangeRepository

logger = structlog.get_logger(__name__)


class RecordStore:
    """Stores uploaded records; only approved records leave through list queries"""

    def __init__(self, storage: ExchangeRepository):
        self.storage = storage

    def upload(self, record: Record) -> str:
        """Insert a record as unapproved and return its id"""
        if record.approved:
            record = record.model_copy(update={"approved": False})
        self.storage.add_record(record)

        logger.info("Stored record", record_id=record.id, subject_key=record.subject_key,
                   uploader=record.uploader_institution_id, category=record.category)
        return record.id

    def mark_approved(self, record_id: str) -> None:
        """Flip a record to approved; unknown ids are logged and ignored"""
        with self.storage.atomic():
            record = self.storage.get_record(record_id)
            if record is None:
                logger.warning("Cannot approve unknown record", record_id=record_id)
                return
            if record.approved:
                return
            self.storage.update_record(record.as_approved())

        logger.info("Approved record", record_id=record_id)

    def by_id(self, record_id: str) -> Optional[Record]:
        return self.storage.get_record(record_id)

    def by_uploader(self, institution_id: str) -> List[Record]:
        return self.storage.list_records(uploader_institution_id=institution_id)

    def by_subject(self, subject_key: str) -> List[Record]:
        return self.storage.list_records(subject_key=subject_key)
