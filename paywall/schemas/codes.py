"""Schema definitions for discount codes."""

from datetime import datetime
from typing import Annotated, List, Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, ConfigDict, Field

from paywall.utils.utils import utcnow


class CodeDocument(Document):
    """MongoDB document model for discount codes.

    ``code`` keeps the case it was created with; lookups for redemption are
    case-insensitive, administrative lookups are exact.
    """

    code: Annotated[str, Indexed(unique=True)]
    description: str = ""
    discount: float = Field(default=0, ge=0, le=100)
    is_active: bool = True
    used_by: Optional[PydanticObjectId] = None
    used_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "codes"
        indexes = [
            [("is_active", 1)],
            [("created_at", -1)],
        ]


class CodeCreate(BaseModel):
    """Payload for creating a code. Range checks happen in the service so bulk
    requests can report every bad item at once."""

    model_config = ConfigDict(populate_by_name=True)

    code: Optional[str] = None
    description: Optional[str] = None
    discount: Optional[float] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class CodeUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: Optional[str] = None
    description: Optional[str] = None
    discount: Optional[float] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class CodeBulkCreate(BaseModel):
    codes: List[CodeCreate] = Field(default_factory=list)


class CodeRead(BaseModel):
    """Discount code as returned to callers."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    code: str
    description: str = ""
    discount: float = 0
    is_active: bool = Field(default=True, serialization_alias="isActive")
    used_by: Optional[str] = Field(default=None, serialization_alias="usedBy")
    used_at: Optional[datetime] = Field(default=None, serialization_alias="usedAt")
    created_at: Optional[datetime] = Field(default=None, serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, serialization_alias="updatedAt")

    @classmethod
    def from_document(cls, doc: CodeDocument) -> "CodeRead":
        return cls(
            id=str(doc.id),
            code=doc.code,
            description=doc.description or "",
            discount=doc.discount or 0,
            is_active=doc.is_active,
            used_by=str(doc.used_by) if doc.used_by else None,
            used_at=doc.used_at,
            created_at=doc.created_at,
            updated_at=doc.updated_at,
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class CodePage(BaseModel):
    items: List[CodeRead]
    pagination: Pagination


class CouponValidateRequest(BaseModel):
    code: Optional[str] = None


class CouponInfo(BaseModel):
    code: str
    discount: float
    description: str = ""
