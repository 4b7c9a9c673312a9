"""
Medical record model for medconsent
"""

from datetime import datetime, UTC
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from ..constants import RecordCategories
from ..utils.ids import generate_record_id


class Record(BaseModel):
    """Uploaded document owned by one subject, provenance kept by the uploader"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_record_id)
    subject_key: str = Field(..., description="Owning individual")
    uploader_institution_id: str = Field(..., description="Institution that uploaded the record")
    category: str = Field(default=RecordCategories.DEFAULT)
    payload: bytes = Field(..., repr=False, description="Opaque file content")
    filename: str
    mime_type: str
    notes: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    approved: bool = Field(default=False)

    def as_approved(self) -> "Record":
        """Return the approved copy of this record"""
        if self.approved:
            return self
        return self.model_copy(update={"approved": True})
