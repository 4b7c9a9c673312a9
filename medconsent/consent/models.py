"""
Consent request models for medconsent
Upload and access requests as a tagged union on ``kind``
"""

from datetime import datetime, UTC
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from ..utils.ids import generate_request_id


class ConsentKind(str, Enum):
    """Kinds of consent an institution can ask for"""
    UPLOAD = "upload"    # Approve one specific uploaded record
    ACCESS = "access"    # Approve blanket visibility of all approved records


class ConsentStatus(str, Enum):
    """Consent request status"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset({ConsentStatus.APPROVED, ConsentStatus.REJECTED})


class _ConsentRequestBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_request_id)
    subject_key: str = Field(..., description="Individual whose consent is asked")
    institution_id: str = Field(..., description="Requesting institution")
    institution_name: str
    requested_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    status: ConsentStatus = Field(default=ConsentStatus.PENDING)
    resolved_at: Optional[datetime] = Field(default=None)

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def resolved(self, outcome: ConsentStatus):
        """Return a copy carrying the terminal outcome"""
        return self.model_copy(update={"status": outcome, "resolved_at": datetime.now(UTC)})


class UploadConsentRequest(_ConsentRequestBase):
    kind: Literal[ConsentKind.UPLOAD] = ConsentKind.UPLOAD
    record_id: str = Field(..., description="Record gated by this request")


class AccessConsentRequest(_ConsentRequestBase):
    kind: Literal[ConsentKind.ACCESS] = ConsentKind.ACCESS


ConsentRequest = Annotated[
    Union[UploadConsentRequest, AccessConsentRequest],
    Field(discriminator="kind"),
]


class LedgerAction(str, Enum):
    FILED = "filed"
    RESOLVED = "resolved"


class LedgerEvent(BaseModel):
    """Notification delivered to ledger subscribers after a committed change"""
    model_config = ConfigDict(frozen=True)

    action: LedgerAction
    request: ConsentRequest
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
