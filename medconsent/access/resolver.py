"""
Access resolution for medconsent

Visible records for an (institution, subject) pair are the union of

* the direct set: approved records the institution uploaded for the subject
* the blanket set: every approved record of the subject, once the subject
  has approved an access request from the institution

de-duplicated by record id, direct records first.
"""

from __future__ import annotations

from itertools import chain
from typing import TYPE_CHECKING, Iterable, List
import structlog

from ..records.models import Record

if TYPE_CHECKING:
    from ..storage.base import ExchangeRepository

logger = structlog.get_logger(__name__)


def combine_visible(records: Iterable[Record], institution_id: str, subject_key: str,
                    has_blanket_grant: bool) -> List[Record]:
    """Combine direct and blanket sets, keeping first-seen order"""
    eligible = [r for r in records if r.approved and r.subject_key == subject_key]
    direct = [r for r in eligible if r.uploader_institution_id == institution_id]
    blanket = eligible if has_blanket_grant else []

    seen = set()
    visible: List[Record] = []
    for record in chain(direct, blanket):
        if record.id in seen:
            continue
        seen.add(record.id)
        visible.append(record)
    return visible


class AccessResolver:
    """Read-only view over the ledger and record store"""

    def __init__(self, storage: ExchangeRepository):
        self.storage = storage

    def visible_records(self, institution_id: str, subject_key: str) -> List[Record]:
        snapshot = self.storage.access_snapshot(institution_id, subject_key)
        visible = combine_visible(snapshot.records, institution_id, subject_key,
                                  snapshot.has_blanket_grant)

        logger.info("Resolved visible records", institution_id=institution_id,
                   subject_key=subject_key, blanket_grant=snapshot.has_blanket_grant,
                   count=len(visible))
        return visible

    def has_blanket_grant(self, institution_id: str, subject_key: str) -> bool:
        return self.storage.access_snapshot(institution_id, subject_key).has_blanket_grant
