"""
Account data models for medconsent
Institutions and individuals as a tagged union on ``kind``
"""

from datetime import datetime, UTC
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from ..utils.ids import generate_account_id


class AccountKind(str, Enum):
    """Principal kinds known to the exchange"""
    INSTITUTION = "institution"
    INDIVIDUAL = "individual"


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class _AccountBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    display_name: str = Field(..., description="Name shown to other principals")
    credential_hash: str = Field(..., repr=False, description="bcrypt hash of the login secret")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_login_at: Optional[datetime] = Field(default=None)


class Institution(_AccountBase):
    """Organization that uploads records and asks for access"""
    id: str = Field(default_factory=lambda: generate_account_id(AccountKind.INSTITUTION.value))
    kind: Literal[AccountKind.INSTITUTION] = AccountKind.INSTITUTION
    login_email: str = Field(..., description="Unique login email")


class Individual(_AccountBase):
    """Person who owns records and approves consent requests"""
    id: str = Field(default_factory=lambda: generate_account_id(AccountKind.INDIVIDUAL.value))
    kind: Literal[AccountKind.INDIVIDUAL] = AccountKind.INDIVIDUAL
    subject_key: str = Field(..., description="Unique, immutable 14-character key")
    sex: Sex
    phone: str


Account = Annotated[Union[Institution, Individual], Field(discriminator="kind")]
