"""
Repository interface for medconsent persistence
Accounts, records and consent requests as three logical collections
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ContextManager, Iterable, List, Optional, Tuple

from ..consent.models import ConsentKind, ConsentRequest, ConsentStatus
from ..identity.models import Account, Individual, Institution
from ..records.models import Record


@dataclass(frozen=True)
class AccessSnapshot:
    """
    Consistent view used to resolve record visibility.

    Attributes:
        records: Approved records of the subject, in insertion order
        has_blanket_grant: Whether an approved access request exists for the pair
    """
    records: Tuple[Record, ...]
    has_blanket_grant: bool


class ExchangeRepository(ABC):
    """Storage interface shared by the registry, record store and ledger"""

    @abstractmethod
    def atomic(self) -> ContextManager[None]:
        """Re-entrant unit of work: every call made inside commits together"""

    # -- accounts -----------------------------------------------------------

    @abstractmethod
    def add_account(self, account: Account) -> None:
        """Insert an account; raises DuplicateIdentifierError on a unique clash"""

    @abstractmethod
    def update_account(self, account: Account) -> bool:
        ...

    @abstractmethod
    def get_account(self, account_id: str) -> Optional[Account]:
        ...

    @abstractmethod
    def get_institution_by_email(self, email: str) -> Optional[Institution]:
        ...

    @abstractmethod
    def get_individual_by_subject_key(self, subject_key: str) -> Optional[Individual]:
        ...

    @abstractmethod
    def find_individual(self, name: str, phone: str) -> Optional[Individual]:
        """Find an individual whose name_key and normalised phone both match"""

    # -- records ------------------------------------------------------------

    @abstractmethod
    def add_record(self, record: Record) -> None:
        ...

    @abstractmethod
    def update_record(self, record: Record) -> bool:
        ...

    @abstractmethod
    def get_record(self, record_id: str) -> Optional[Record]:
        ...

    @abstractmethod
    def list_records(self, subject_key: Optional[str] = None,
                     uploader_institution_id: Optional[str] = None,
                     approved_only: bool = True) -> List[Record]:
        """Records matching every given filter, in insertion order"""

    # -- consent requests ---------------------------------------------------

    @abstractmethod
    def add_request(self, request: ConsentRequest) -> None:
        ...

    @abstractmethod
    def update_request(self, request: ConsentRequest) -> bool:
        ...

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[ConsentRequest]:
        ...

    @abstractmethod
    def list_requests(self, subject_key: Optional[str] = None,
                      institution_id: Optional[str] = None,
                      kind: Optional[ConsentKind] = None,
                      statuses: Optional[Iterable[ConsentStatus]] = None) -> List[ConsentRequest]:
        """Requests matching every given filter, in insertion order"""

    # -- resolution ---------------------------------------------------------

    def access_snapshot(self, institution_id: str, subject_key: str) -> AccessSnapshot:
        """Read the subject's approved records and the grant flag in one unit"""
        with self.atomic():
            records = self.list_records(subject_key=subject_key, approved_only=True)
            grants = self.list_requests(
                subject_key=subject_key,
                institution_id=institution_id,
                kind=ConsentKind.ACCESS,
                statuses=(ConsentStatus.APPROVED,),
            )
            return AccessSnapshot(records=tuple(records), has_blanket_grant=bool(grants))
