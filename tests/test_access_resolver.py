"""
Tests for visible-record resolution
"""

import threading

import pytest

from medconsent.access.resolver import AccessResolver, combine_visible
from medconsent.consent.ledger import ConsentLedger
from medconsent.consent.models import ConsentStatus
from medconsent.records.models import Record
from medconsent.records.store import RecordStore
from medconsent.storage import InMemoryExchangeRepository

SUBJECT = "SUBJECT0000001"
H1 = "institution_h1"
H2 = "institution_h2"


def make_record(uploader: str, subject_key: str = SUBJECT, approved: bool = False) -> Record:
    return Record(
        subject_key=subject_key,
        uploader_institution_id=uploader,
        payload=b"content",
        filename="report.pdf",
        mime_type="application/pdf",
        approved=approved,
    )


class TestCombineVisible:
    """Test the pure union of direct and blanket sets"""

    def test_direct_only(self):
        own = make_record(H1, approved=True)
        other = make_record(H2, approved=True)

        assert combine_visible([own, other], H1, SUBJECT, has_blanket_grant=False) == [own]

    def test_blanket_adds_other_uploaders_without_duplicates(self):
        first = make_record(H2, approved=True)
        own = make_record(H1, approved=True)
        last = make_record(H2, approved=True)

        visible = combine_visible([first, own, last], H1, SUBJECT, has_blanket_grant=True)

        assert [r.id for r in visible] == [own.id, first.id, last.id]

    def test_never_returns_unapproved_or_foreign_records(self):
        pending = make_record(H1)
        foreign = make_record(H1, subject_key="SUBJECT0000002", approved=True)

        assert combine_visible([pending, foreign], H1, SUBJECT, has_blanket_grant=True) == []


class TestAccessResolver:
    """Walk through the upload, approval and blanket-access flow"""

    def setup_method(self):
        """Setup test environment"""
        self.storage = InMemoryExchangeRepository()
        self.records = RecordStore(self.storage)
        self.ledger = ConsentLedger(self.storage, self.records)
        self.resolver = AccessResolver(self.storage)

    def _upload(self, uploader: str) -> tuple:
        record_id = self.records.upload(make_record(uploader))
        request = self.ledger.file_upload_request(SUBJECT, uploader, uploader.upper(), record_id)
        return record_id, request

    def test_unapproved_upload_is_invisible(self):
        self._upload(H1)

        assert self.resolver.visible_records(H1, SUBJECT) == []

    def test_approved_upload_visible_to_uploader_only(self):
        record_id, request = self._upload(H1)
        self.ledger.resolve(request.id, ConsentStatus.APPROVED, SUBJECT)

        assert [r.id for r in self.resolver.visible_records(H1, SUBJECT)] == [record_id]
        assert self.resolver.visible_records(H2, SUBJECT) == []

    def test_blanket_grant_exposes_all_approved_records(self):
        r1, upload1 = self._upload(H1)
        self.ledger.resolve(upload1.id, ConsentStatus.APPROVED, SUBJECT)

        r2, upload2 = self._upload(H2)
        self.ledger.resolve(upload2.id, ConsentStatus.APPROVED, SUBJECT)
        self._upload(H1)  # stays pending

        access, _ = self.ledger.file_access_request(SUBJECT, H2, "H2")
        assert not self.resolver.has_blanket_grant(H2, SUBJECT)
        assert [r.id for r in self.resolver.visible_records(H2, SUBJECT)] == [r2]

        self.ledger.resolve(access.id, ConsentStatus.APPROVED, SUBJECT)

        assert self.resolver.has_blanket_grant(H2, SUBJECT)
        assert [r.id for r in self.resolver.visible_records(H2, SUBJECT)] == [r2, r1]
        assert [r.id for r in self.resolver.visible_records(H1, SUBJECT)] == [r1]

    def test_rejected_access_grants_nothing(self):
        r1, upload1 = self._upload(H1)
        self.ledger.resolve(upload1.id, ConsentStatus.APPROVED, SUBJECT)
        access, _ = self.ledger.file_access_request(SUBJECT, H2, "H2")
        self.ledger.resolve(access.id, ConsentStatus.REJECTED, SUBJECT)

        assert self.resolver.visible_records(H2, SUBJECT) == []

    def test_grant_is_scoped_to_subject(self):
        other_subject = "SUBJECT0000002"
        record_id = self.records.upload(make_record(H1, subject_key=other_subject))
        upload = self.ledger.file_upload_request(other_subject, H1, "H1", record_id)
        self.ledger.resolve(upload.id, ConsentStatus.APPROVED, other_subject)

        access, _ = self.ledger.file_access_request(SUBJECT, H2, "H2")
        self.ledger.resolve(access.id, ConsentStatus.APPROVED, SUBJECT)

        assert self.resolver.visible_records(H2, other_subject) == []


class TestApprovalAtomicity:
    """Approval and snapshot reads against every storage backend"""

    @pytest.fixture(autouse=True)
    def setup_components(self, exchange_storage):
        self.storage = exchange_storage
        self.records = RecordStore(self.storage)
        self.ledger = ConsentLedger(self.storage, self.records)
        self.resolver = AccessResolver(self.storage)

    def _upload(self) -> tuple:
        record_id = self.records.upload(make_record(H1))
        request = self.ledger.file_upload_request(SUBJECT, H1, "H1", record_id)
        return record_id, request

    def test_upload_approval_is_atomic(self):
        """Readers never see an approved upload request with an unapproved record"""
        uploads = [self._upload() for _ in range(25)]
        torn = []
        seen_counts = []
        done = threading.Event()

        def observe():
            while not done.is_set():
                for record_id, request in uploads:
                    with self.storage.atomic():
                        status = self.storage.get_request(request.id).status
                        approved = self.storage.get_record(record_id).approved
                    if (status == ConsentStatus.APPROVED) != approved:
                        torn.append(request.id)
                seen_counts.append(len(self.resolver.visible_records(H1, SUBJECT)))

        observer = threading.Thread(target=observe)
        observer.start()
        try:
            for _, request in uploads:
                self.ledger.resolve(request.id, ConsentStatus.APPROVED, SUBJECT)
        finally:
            done.set()
            observer.join(timeout=30)

        assert torn == []
        assert seen_counts == sorted(seen_counts)
        assert len(self.resolver.visible_records(H1, SUBJECT)) == len(uploads)

    def test_snapshot_pairs_records_with_grant(self):
        record_id, upload = self._upload()
        self.ledger.resolve(upload.id, ConsentStatus.APPROVED, SUBJECT)
        access, _ = self.ledger.file_access_request(SUBJECT, H2, "H2")

        before = self.storage.access_snapshot(H2, SUBJECT)
        self.ledger.resolve(access.id, ConsentStatus.APPROVED, SUBJECT)
        after = self.storage.access_snapshot(H2, SUBJECT)

        assert before.has_blanket_grant is False
        assert after.has_blanket_grant is True
        assert [r.id for r in after.records] == [record_id]
