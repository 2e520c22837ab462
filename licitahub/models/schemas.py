from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime, date
from enum import Enum

# ========== SEARCH MODELS ==========

class ProcurementCategory(str, Enum):
    """Procurement modalities a client can pick from"""
    OPEN_BID = "open-bid"
    COMPETITIVE_BID = "competitive-bid"
    DIRECT_AWARD = "direct-award"
    SINGLE_SOURCE = "single-source"
    AUCTION = "auction"

class SearchCriteria(BaseModel):
    """Client-supplied search filters. Every field is optional."""
    keyword: Optional[str] = Field(None, max_length=200, description="Free-text match on title, description or organization")
    category: Optional[str] = Field(None, description="Procurement category (unknown values are ignored)")
    locality: Optional[str] = Field(None, max_length=200, description="Substring matched against the organization name")
    value_min: Optional[float] = Field(None, description="Inclusive minimum estimated value")
    value_max: Optional[float] = Field(None, description="Inclusive maximum estimated value")
    date_from: Optional[date] = Field(None, description="Publication window start (inclusive)")
    date_to: Optional[date] = Field(None, description="Publication window end (inclusive)")

    @validator("keyword", "category", "locality", pre=True)
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @validator("value_min", "value_max")
    def non_positive_to_none(cls, v):
        """Zero or negative bounds mean "no bound"."""
        if v is not None and v <= 0:
            return None
        return v

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "keyword": "medicamentos",
                "category": "competitive-bid",
                "locality": "prefeitura",
                "valueMin": 10000,
                "valueMax": 500000,
                "dateFrom": "2024-05-01",
                "dateTo": "2024-05-31"
            }
        }

class ProcurementRecord(BaseModel):
    """A procurement notice normalized from the PNCP payload"""
    id: str = Field(..., description="PNCP control number, or a synthetic token when upstream omits it")
    id_is_synthetic: bool = Field(False, description="True when `id` is a random per-request token and must not be stored")
    title: str
    organization: str
    category_label: str
    estimated_value: float = 0.0
    opening_date: datetime
    status: str
    description: str
    detail_url: Optional[str] = None
    lookup_url: Optional[str] = None
    tax_id: Optional[str] = None
    year: Optional[int] = None
    sequence_number: Optional[int] = None

    purchase_number: Optional[str] = None
    category_code: Optional[int] = None
    source_system_url: Optional[str] = None
    published_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    state: Optional[str] = None
    municipality: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @property
    def natural_key(self):
        if self.tax_id and self.year is not None and self.sequence_number is not None:
            return (self.tax_id, self.year, self.sequence_number)
        return None

class SearchResponse(BaseModel):
    results: List[ProcurementRecord]
    failed_categories: List[int] = Field(
        default_factory=list,
        description="Category codes whose pagination stopped on an upstream failure"
    )

    class Config:
        alias_generator = to_camel
        populate_by_name = True

class SearchErrorResponse(BaseModel):
    error: str
    results: List[ProcurementRecord] = Field(default_factory=list)

# ========== DETAIL MODELS ==========

class DetailRequest(BaseModel):
    """Natural key of a procurement: organization CNPJ, purchase year and sequence"""
    tax_id: str = Field(..., description="Organization CNPJ")
    year: int = Field(..., ge=1900, le=2100)
    sequence_number: int = Field(..., ge=1)

    @validator("tax_id", pre=True)
    def digits_only(cls, v):
        if isinstance(v, int):
            v = str(v)
        if isinstance(v, str):
            digits = "".join(ch for ch in v if ch.isdigit())
            if not digits:
                raise ValueError("taxId must contain digits")
            return digits
        return v

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "taxId": "12345678000199",
                "year": 2024,
                "sequenceNumber": 7
            }
        }

class DetailResponse(BaseModel):
    detail: ProcurementRecord

class DetailErrorResponse(BaseModel):
    error: str
    detail: Optional[ProcurementRecord] = None

# ========== SAVED FILTER MODELS ==========

class SavedFilterCreate(SearchCriteria):
    """A named snapshot of the current search criteria"""
    name: str = Field(..., min_length=1, max_length=255)

    @validator("name")
    def name_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

class SavedFilterResponse(SearchCriteria):
    id: int
    name: str
    created_at: datetime

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

# ========== USER / ADMIN MODELS ==========

class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    subscribed: bool = False
    subscription_end: Optional[datetime] = None
    created_at: Optional[datetime] = None
    roles: List[str] = Field(default_factory=list)
    is_admin: bool = False

    class Config:
        from_attributes = True

class UserListResponse(BaseModel):
    users: List[ProfileResponse]

class PromoteRequest(BaseModel):
    user_id: Optional[str] = Field(None, alias="userId", description="User to promote (ignored for the first admin)")

    class Config:
        populate_by_name = True

class PromoteResponse(BaseModel):
    success: bool
    message: str

# ========== BILLING MODELS ==========

class SubscriptionStatusResponse(BaseModel):
    subscribed: bool
    subscription_end: Optional[datetime] = None

class BillingSessionResponse(BaseModel):
    url: str
