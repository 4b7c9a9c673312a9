"""
Consent ledger for medconsent
Filing and resolving upload and access consent requests
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple
import structlog

from ..exceptions import InvalidStateError, NotFoundError, UnauthorizedError
from ..records.store import RecordStore
from .models import (
    AccessConsentRequest,
    ConsentKind,
    ConsentRequest,
    ConsentStatus,
    LedgerAction,
    LedgerEvent,
    TERMINAL_STATUSES,
    UploadConsentRequest,
)

if TYPE_CHECKING:
    from ..storage.base import ExchangeRepository

logger = structlog.get_logger(__name__)

LedgerListener = Callable[[LedgerEvent], None]


class ConsentLedger:
    """Append/update log of consent requests with a pending -> terminal state machine"""

    def __init__(self, storage: ExchangeRepository, record_store: Optional[RecordStore] = None):
        self.storage = storage
        self.record_store = record_store or RecordStore(storage)
        self._listeners: List[LedgerListener] = []
        self._listeners_lock = threading.Lock()

    # -- subscriptions ------------------------------------------------------

    def on_ledger_changed(self, callback: LedgerListener) -> Callable[[], None]:
        """Subscribe to committed ledger changes; returns an unsubscribe callable"""
        with self._listeners_lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, action: LedgerAction, request: ConsentRequest) -> None:
        event = LedgerEvent(action=action, request=request)
        with self._listeners_lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error("Ledger listener failed", action=action.value,
                            request_id=request.id, error=str(e))

    # -- filing -------------------------------------------------------------

    def file_upload_request(self, subject_key: str, institution_id: str,
                            institution_name: str, record_id: str) -> UploadConsentRequest:
        """File a new pending upload request; duplicates for one record are allowed"""
        request = UploadConsentRequest(
            subject_key=subject_key,
            institution_id=institution_id,
            institution_name=institution_name,
            record_id=record_id,
        )
        self.storage.add_request(request)

        logger.info("Filed upload consent request", request_id=request.id,
                   subject_key=subject_key, institution_id=institution_id, record_id=record_id)
        self._notify(LedgerAction.FILED, request)
        return request

    def file_access_request(self, subject_key: str, institution_id: str,
                            institution_name: str) -> Tuple[AccessConsentRequest, bool]:
        """
        File an access request unless one is already pending or approved.

        Returns:
            The request on file and whether it was created by this call.
            An existing approved request is preferred over a pending one.
        """
        with self.storage.atomic():
            existing = self.storage.list_requests(
                subject_key=subject_key,
                institution_id=institution_id,
                kind=ConsentKind.ACCESS,
                statuses=(ConsentStatus.PENDING, ConsentStatus.APPROVED),
            )
            if existing:
                on_file = next(
                    (r for r in existing if r.status == ConsentStatus.APPROVED), existing[0]
                )
                logger.info("Access request already on file", request_id=on_file.id,
                           status=on_file.status.value)
                return on_file, False

            request = AccessConsentRequest(
                subject_key=subject_key,
                institution_id=institution_id,
                institution_name=institution_name,
            )
            self.storage.add_request(request)

        logger.info("Filed access consent request", request_id=request.id,
                   subject_key=subject_key, institution_id=institution_id)
        self._notify(LedgerAction.FILED, request)
        return request, True

    # -- resolution ---------------------------------------------------------

    def resolve(self, request_id: str, outcome: ConsentStatus | str,
                actor_subject_key: str) -> ConsentRequest:
        """
        Approve or reject a pending request on behalf of its subject.

        The first resolution wins: resolving a terminal request returns it
        unchanged. Approving an upload request approves its record in the
        same unit of work.
        """
        try:
            outcome = ConsentStatus(outcome)
        except ValueError:
            raise InvalidStateError(f"Unknown outcome: {outcome}", {"request_id": request_id})
        if outcome not in TERMINAL_STATUSES:
            raise InvalidStateError("A request can only be approved or rejected",
                                    {"request_id": request_id, "outcome": outcome.value})

        with self.storage.atomic():
            request = self.storage.get_request(request_id)
            if request is None:
                raise NotFoundError("Consent request", request_id)
            if request.subject_key != actor_subject_key:
                logger.warning("Consent resolution by non-owner", request_id=request_id)
                raise UnauthorizedError("Only the subject may resolve this request",
                                        actor=actor_subject_key)
            if request.is_terminal():
                logger.info("Consent request already resolved", request_id=request_id,
                           status=request.status.value, attempted=outcome.value)
                return request

            resolved = request.resolved(outcome)
            self.storage.update_request(resolved)
            if outcome == ConsentStatus.APPROVED and isinstance(resolved, UploadConsentRequest):
                self.record_store.mark_approved(resolved.record_id)

        logger.info("Resolved consent request", request_id=request_id,
                   kind=resolved.kind.value, status=outcome.value)
        self._notify(LedgerAction.RESOLVED, resolved)
        return resolved

    # -- queries ------------------------------------------------------------

    def get(self, request_id: str) -> Optional[ConsentRequest]:
        return self.storage.get_request(request_id)

    def pending_for(self, subject_key: str) -> List[ConsentRequest]:
        return self.storage.list_requests(subject_key=subject_key,
                                          statuses=(ConsentStatus.PENDING,))

    def requests_by_institution(self, institution_id: str) -> List[ConsentRequest]:
        return self.storage.list_requests(institution_id=institution_id)
