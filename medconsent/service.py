"""
Exchange service for medconsent
Use-case layer wiring the registry, record store, ledger and resolver
"""

from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from .access.resolver import AccessResolver
from .audit import (
    AuditTrail,
    create_consent_event,
    create_data_access_event,
    create_identity_event,
)
from .consent.ledger import ConsentLedger
from .consent.models import (
    AccessConsentRequest,
    ConsentRequest,
    ConsentStatus,
    LedgerAction,
    LedgerEvent,
    UploadConsentRequest,
)
from .constants import AuditEventTypes, RecordCategories
from .exceptions import InvalidCredentialsError, UnauthorizedError
from .identity.models import Account, Individual, Institution, Sex
from .identity.registry import IdentityRegistry
from .records.models import Record
from .records.store import RecordStore
from .storage import ExchangeRepository, create_repository


logger = structlog.get_logger(__name__)


class ExchangeService:
    """Constructed once per process and handed to every caller"""

    def __init__(self, storage: Optional[ExchangeRepository] = None,
                 audit: Optional[AuditTrail] = None,
                 hash_rounds: Optional[int] = None):
        self.storage = storage or create_repository()
        self.audit = audit or AuditTrail()
        self.identity = IdentityRegistry(self.storage, hash_rounds=hash_rounds)
        self.records = RecordStore(self.storage)
        self.ledger = ConsentLedger(self.storage, self.records)
        self.resolver = AccessResolver(self.storage)
        self.ledger.on_ledger_changed(self._audit_ledger_event)

    def _audit_ledger_event(self, event: LedgerEvent) -> None:
        request = event.request
        if event.action == LedgerAction.FILED:
            event_type = AuditEventTypes.CONSENT_REQUESTED
            actor_id = request.institution_id
        else:
            event_type = (AuditEventTypes.CONSENT_APPROVED
                          if request.status == ConsentStatus.APPROVED
                          else AuditEventTypes.CONSENT_REJECTED)
            actor_id = None
        self.audit.record(create_consent_event(
            event_type, request.subject_key, request.id, request.kind.value, actor_id=actor_id
        ))

    # -- identity -----------------------------------------------------------

    async def register_institution(self, email: str, name: str, secret: str) -> Institution:
        institution = self.identity.register_institution(email, name, secret)
        self.audit.record(create_identity_event(
            AuditEventTypes.ACCOUNT_REGISTERED,
            "Institution registered",
            actor_id=institution.id,
            details={"kind": institution.kind.value},
        ))
        return institution

    async def register_individual(self, name: str, sex: Sex, phone: str, secret: str,
                                  subject_key: Optional[str] = None,
                                  registered_by: Optional[str] = None) -> Individual:
        """Register an individual, either self-service or by an institution on their behalf"""
        individual, created = self.identity.enroll_individual(subject_key, name, sex, phone, secret)
        if created:
            event_type, message = AuditEventTypes.ACCOUNT_REGISTERED, "Individual registered"
        else:
            event_type, message = AuditEventTypes.SUBJECT_KEY_REISSUED, "Existing subject key returned"
        self.audit.record(create_identity_event(
            event_type,
            message,
            actor_id=registered_by or individual.id,
            details={"kind": individual.kind.value, "subject_key": individual.subject_key},
        ))
        return individual

    async def issue_subject_key(self, name: str, phone: str) -> str:
        return self.identity.issue_subject_key(name, phone)

    async def login(self, identifier: str, secret: str) -> Account:
        try:
            account = self.identity.authenticate(identifier, secret)
        except InvalidCredentialsError:
            self.audit.record(create_identity_event(
                AuditEventTypes.LOGIN_FAILURE,
                "Login failed",
                details={"identifier": identifier},
            ))
            raise

        self.audit.record(create_identity_event(
            AuditEventTypes.LOGIN_SUCCESS, "Login succeeded", actor_id=account.id
        ))
        return account

    async def lookup_individual(self, subject_key: str) -> Individual:
        """Verify a subject exists before uploading or asking for access"""
        return self.identity.get_individual(subject_key)

    # -- institution actions ------------------------------------------------

    async def upload_record(self, institution_id: str, subject_key: str, payload: bytes,
                            filename: str, mime_type: str,
                            category: str = RecordCategories.DEFAULT,
                            notes: Optional[str] = None) -> Tuple[Record, UploadConsentRequest]:
        """Store an unapproved record and file the upload request that gates it"""
        institution = self.identity.get_institution(institution_id)
        self.identity.get_individual(subject_key)

        record = Record(
            subject_key=subject_key,
            uploader_institution_id=institution.id,
            category=category,
            payload=payload,
            filename=filename,
            mime_type=mime_type,
            notes=notes,
        )
        self.records.upload(record)
        request = self.ledger.file_upload_request(
            subject_key, institution.id, institution.display_name, record.id
        )

        self.audit.record(create_data_access_event(
            institution.id, subject_key, [record.id], action="upload"
        ))
        return record, request

    async def request_access(self, institution_id: str,
                             subject_key: str) -> Tuple[AccessConsentRequest, bool]:
        """Ask for blanket access; an approved or pending request on file is returned as-is"""
        institution = self.identity.get_institution(institution_id)
        self.identity.get_individual(subject_key)

        return self.ledger.file_access_request(
            subject_key, institution.id, institution.display_name
        )

    async def visible_records(self, institution_id: str, subject_key: str) -> List[Record]:
        records = self.resolver.visible_records(institution_id, subject_key)
        self.audit.record(create_data_access_event(
            institution_id, subject_key, [r.id for r in records]
        ))
        return records

    async def records_by_uploader(self, institution_id: str) -> List[Record]:
        return self.records.by_uploader(institution_id)

    async def institution_requests(self, institution_id: str) -> List[ConsentRequest]:
        return self.ledger.requests_by_institution(institution_id)

    # -- individual actions -------------------------------------------------

    async def pending_requests(self, subject_key: str) -> List[ConsentRequest]:
        return self.ledger.pending_for(subject_key)

    async def approve_request(self, actor_id: str, request_id: str) -> ConsentRequest:
        return self._resolve(actor_id, request_id, ConsentStatus.APPROVED)

    async def reject_request(self, actor_id: str, request_id: str) -> ConsentRequest:
        return self._resolve(actor_id, request_id, ConsentStatus.REJECTED)

    async def records_for_subject(self, subject_key: str) -> List[Record]:
        return self.records.by_subject(subject_key)

    def institution_names(self, institution_ids: Iterable[str]) -> Dict[str, str]:
        """Map uploader ids to display names for record listings"""
        names: Dict[str, str] = {}
        for institution_id in set(institution_ids):
            account = self.identity.find_by_id(institution_id)
            if isinstance(account, Institution):
                names[institution_id] = account.display_name
        return names

    def _resolve(self, actor_id: str, request_id: str, outcome: ConsentStatus) -> ConsentRequest:
        actor = self.identity.find_by_id(actor_id)
        if not isinstance(actor, Individual):
            raise UnauthorizedError("Only individuals can resolve consent requests",
                                    actor=actor_id)
        return self.ledger.resolve(request_id, outcome, actor.subject_key)
