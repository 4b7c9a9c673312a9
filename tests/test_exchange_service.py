"""
Tests for the exchange service facade
"""

import pytest

from medconsent.audit import AuditTrail
from medconsent.constants import AuditEventTypes, RecordCategories
from medconsent.consent.models import ConsentStatus
from medconsent.exceptions import (
    InvalidCredentialsError,
    NotFoundError,
    UnauthorizedError,
)
from medconsent.identity.models import Sex
from medconsent.service import ExchangeService
from medconsent.storage import InMemoryExchangeRepository


class TestExchangeService:
    """Test end-to-end use cases against in-memory storage"""

    def setup_method(self):
        """Setup test environment"""
        self.audit = AuditTrail()
        self.service = ExchangeService(InMemoryExchangeRepository(), audit=self.audit, hash_rounds=4)

    async def _setup_parties(self):
        self.h1 = await self.service.register_institution("h1@example.org", "Hospital One", "h1-pw")
        self.h2 = await self.service.register_institution("h2@example.org", "Hospital Two", "h2-pw")
        self.patient = await self.service.register_individual(
            "Ada Lovelace", Sex.FEMALE, "5550100", "p-pw", registered_by=self.h1.id
        )
        self.subject = self.patient.subject_key

    @pytest.mark.asyncio
    async def test_full_consent_flow(self):
        await self._setup_parties()

        record, upload = await self.service.upload_record(
            self.h1.id, self.subject, b"rx", "rx.pdf", "application/pdf",
            category=RecordCategories.LAB_REPORT, notes="fasting",
        )
        assert record.approved is False
        assert upload.record_id == record.id
        assert upload.institution_name == "Hospital One"
        assert await self.service.records_for_subject(self.subject) == []

        pending = await self.service.pending_requests(self.subject)
        assert [r.id for r in pending] == [upload.id]

        approved = await self.service.approve_request(self.patient.id, upload.id)
        assert approved.status == ConsentStatus.APPROVED

        mine = await self.service.records_for_subject(self.subject)
        assert [r.id for r in mine] == [record.id]
        assert mine[0].category == RecordCategories.LAB_REPORT
        assert self.service.institution_names([self.h1.id]) == {self.h1.id: "Hospital One"}

        assert await self.service.visible_records(self.h2.id, self.subject) == []
        access, created = await self.service.request_access(self.h2.id, self.subject)
        assert created is True
        await self.service.approve_request(self.patient.id, access.id)

        visible = await self.service.visible_records(self.h2.id, self.subject)
        assert [r.id for r in visible] == [record.id]
        assert [r.id for r in await self.service.records_by_uploader(self.h1.id)] == [record.id]
        assert [r.id for r in await self.service.institution_requests(self.h2.id)] == [access.id]

    @pytest.mark.asyncio
    async def test_rejection_keeps_record_hidden(self):
        await self._setup_parties()
        record, upload = await self.service.upload_record(
            self.h1.id, self.subject, b"rx", "rx.pdf", "application/pdf"
        )

        rejected = await self.service.reject_request(self.patient.id, upload.id)

        assert rejected.status == ConsentStatus.REJECTED
        assert await self.service.visible_records(self.h1.id, self.subject) == []

    @pytest.mark.asyncio
    async def test_upload_requires_known_parties(self):
        await self._setup_parties()

        with pytest.raises(NotFoundError):
            await self.service.upload_record(
                self.h1.id, "ZZZZZZZZZZ9999", b"rx", "rx.pdf", "application/pdf"
            )
        with pytest.raises(NotFoundError):
            await self.service.upload_record(
                self.patient.id, self.subject, b"rx", "rx.pdf", "application/pdf"
            )
        with pytest.raises(NotFoundError):
            await self.service.request_access(self.h1.id, "ZZZZZZZZZZ9999")

    @pytest.mark.asyncio
    async def test_only_subject_resolves(self):
        await self._setup_parties()
        other = await self.service.register_individual("Grace Hopper", Sex.FEMALE, "5550199", "g-pw")
        access, _ = await self.service.request_access(self.h1.id, self.subject)

        with pytest.raises(UnauthorizedError):
            await self.service.approve_request(other.id, access.id)
        with pytest.raises(UnauthorizedError):
            await self.service.approve_request(self.h1.id, access.id)

    @pytest.mark.asyncio
    async def test_login_audited(self):
        await self._setup_parties()

        account = await self.service.login(self.subject, "p-pw")
        assert account.id == self.patient.id

        with pytest.raises(InvalidCredentialsError):
            await self.service.login("h1@example.org", "wrong")

        assert len(self.audit.events(AuditEventTypes.LOGIN_SUCCESS)) == 1
        failures = self.audit.events(AuditEventTypes.LOGIN_FAILURE)
        assert len(failures) == 1
        assert failures[0].details["identifier"] == "h1@example.org"

    @pytest.mark.asyncio
    async def test_consent_changes_audited(self):
        await self._setup_parties()
        _, upload = await self.service.upload_record(
            self.h1.id, self.subject, b"rx", "rx.pdf", "application/pdf"
        )
        await self.service.approve_request(self.patient.id, upload.id)
        await self.service.approve_request(self.patient.id, upload.id)

        requested = self.audit.events(AuditEventTypes.CONSENT_REQUESTED, subject_key=self.subject)
        approved = self.audit.events(AuditEventTypes.CONSENT_APPROVED, subject_key=self.subject)

        assert len(requested) == 1
        assert requested[0].actor_id == self.h1.id
        assert len(approved) == 1
        assert len(self.audit.events(AuditEventTypes.RECORD_UPLOADED)) == 1
        assert self.audit.verify_integrity()

    @pytest.mark.asyncio
    async def test_registration_audited_with_registering_institution(self):
        await self._setup_parties()

        registrations = self.audit.events(AuditEventTypes.ACCOUNT_REGISTERED)

        assert len(registrations) == 3
        assert registrations[-1].actor_id == self.h1.id
        assert registrations[-1].details["subject_key"] == self.subject

    @pytest.mark.asyncio
    async def test_reissued_key_is_not_audited_as_registration(self):
        await self._setup_parties()

        again = await self.service.register_individual("ada lovelace", Sex.FEMALE, "555-0100", "p-pw")

        assert again.id == self.patient.id
        assert len(self.audit.events(AuditEventTypes.ACCOUNT_REGISTERED)) == 3
        reissued = self.audit.events(AuditEventTypes.SUBJECT_KEY_REISSUED)
        assert len(reissued) == 1
        assert reissued[0].details["subject_key"] == self.subject
