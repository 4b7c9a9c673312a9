"""
In-memory repository for medconsent
Used by tests and ephemeral deployments
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional

from ..consent.models import ConsentKind, ConsentRequest, ConsentStatus
from ..exceptions import DuplicateIdentifierError
from ..identity.models import Account, Individual, Institution
from ..identity.subject_keys import name_key
from ..records.models import Record
from .base import ExchangeRepository


class InMemoryExchangeRepository(ExchangeRepository):
    """Dict-backed storage; stored values are immutable and replaced on update"""

    def __init__(self):
        self._lock = threading.RLock()
        # dicts preserve insertion order, which the list queries rely on
        self.accounts: Dict[str, Account] = {}
        self.records: Dict[str, Record] = {}
        self.requests: Dict[str, ConsentRequest] = {}
        self.email_index: Dict[str, str] = {}
        self.subject_key_index: Dict[str, str] = {}

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            yield

    def add_account(self, account: Account) -> None:
        with self._lock:
            if isinstance(account, Institution):
                if account.login_email in self.email_index:
                    raise DuplicateIdentifierError("login_email", account.login_email)
                self.email_index[account.login_email] = account.id
            else:
                if account.subject_key in self.subject_key_index:
                    raise DuplicateIdentifierError("subject_key", account.subject_key)
                self.subject_key_index[account.subject_key] = account.id
            self.accounts[account.id] = account

    def update_account(self, account: Account) -> bool:
        with self._lock:
            if account.id not in self.accounts:
                return False
            self.accounts[account.id] = account
            return True

    def get_account(self, account_id: str) -> Optional[Account]:
        return self.accounts.get(account_id)

    def get_institution_by_email(self, email: str) -> Optional[Institution]:
        with self._lock:
            account_id = self.email_index.get(email)
            return self.accounts.get(account_id) if account_id else None

    def get_individual_by_subject_key(self, subject_key: str) -> Optional[Individual]:
        with self._lock:
            account_id = self.subject_key_index.get(subject_key)
            return self.accounts.get(account_id) if account_id else None

    def find_individual(self, name: str, phone: str) -> Optional[Individual]:
        wanted = name_key(name)
        with self._lock:
            for account in self.accounts.values():
                if (isinstance(account, Individual)
                        and name_key(account.display_name) == wanted
                        and account.phone == phone):
                    return account
        return None

    def add_record(self, record: Record) -> None:
        with self._lock:
            self.records[record.id] = record

    def update_record(self, record: Record) -> bool:
        with self._lock:
            if record.id not in self.records:
                return False
            self.records[record.id] = record
            return True

    def get_record(self, record_id: str) -> Optional[Record]:
        return self.records.get(record_id)

    def list_records(self, subject_key: Optional[str] = None,
                     uploader_institution_id: Optional[str] = None,
                     approved_only: bool = True) -> List[Record]:
        with self._lock:
            return [
                record for record in self.records.values()
                if (subject_key is None or record.subject_key == subject_key)
                and (uploader_institution_id is None
                     or record.uploader_institution_id == uploader_institution_id)
                and (record.approved or not approved_only)
            ]

    def add_request(self, request: ConsentRequest) -> None:
        with self._lock:
            self.requests[request.id] = request

    def update_request(self, request: ConsentRequest) -> bool:
        with self._lock:
            if request.id not in self.requests:
                return False
            self.requests[request.id] = request
            return True

    def get_request(self, request_id: str) -> Optional[ConsentRequest]:
        return self.requests.get(request_id)

    def list_requests(self, subject_key: Optional[str] = None,
                      institution_id: Optional[str] = None,
                      kind: Optional[ConsentKind] = None,
                      statuses: Optional[Iterable[ConsentStatus]] = None) -> List[ConsentRequest]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                request for request in self.requests.values()
                if (subject_key is None or request.subject_key == subject_key)
                and (institution_id is None or request.institution_id == institution_id)
                and (kind is None or request.kind == kind)
                and (wanted is None or request.status in wanted)
            ]
