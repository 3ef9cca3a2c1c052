# listing_extractor/schemas.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from listing_extractor.utils import unique

ADDRESS_UNAVAILABLE = "Address unavailable"

# Numeric-looking values are kept as the source gave them ("$750,000", 3, "2.5").
NumberLike = Union[int, float, str, None]

# attribute -> JSON key
FIELD_ALIASES: Dict[str, str] = {
    "address": "address",
    "city": "city",
    "state": "state",
    "zip": "zip",
    "property_type": "propertyType",
    "bedrooms": "bedrooms",
    "bathrooms": "bathrooms",
    "square_feet": "squareFeet",
    "price": "price",
    "year_built": "yearBuilt",
    "description": "description",
    "features": "features",
    "image_urls": "imageUrls",
    "source_url": "sourceUrl",
    "listing_agent_name": "listingAgentName",
    "listing_agent_phone": "listingAgentPhone",
    "listing_agent_company": "listingAgentCompany",
    "listing_agent_license_number": "listingAgentLicenseNumber",
    "listing_agent_email": "listingAgentEmail",
}
ALIAS_FIELDS: Dict[str, str] = {v: k for k, v in FIELD_ALIASES.items()}

LIST_FIELDS = ("features", "image_urls")
SCALAR_FIELDS = tuple(k for k in FIELD_ALIASES if k not in LIST_FIELDS and k != "source_url")


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def to_attribute_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map camelCase keys (model / JSON side) onto record attribute names; unknown keys dropped."""
    out: Dict[str, Any] = {}
    for k, v in (data or {}).items():
        name = k if k in FIELD_ALIASES else ALIAS_FIELDS.get(k)
        if name:
            out[name] = v
    return out


# -----------------------------
# The record returned to callers
# -----------------------------

class PropertyListingRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    property_type: Optional[str] = Field(None, alias="propertyType")
    bedrooms: NumberLike = None
    bathrooms: NumberLike = None
    square_feet: NumberLike = Field(None, alias="squareFeet")
    price: NumberLike = None
    year_built: NumberLike = Field(None, alias="yearBuilt")
    description: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    image_urls: List[str] = Field(default_factory=list, alias="imageUrls")
    source_url: str = Field(..., alias="sourceUrl", description="verbatim input URL")
    listing_agent_name: Optional[str] = Field(None, alias="listingAgentName")
    listing_agent_phone: Optional[str] = Field(None, alias="listingAgentPhone")
    listing_agent_company: Optional[str] = Field(None, alias="listingAgentCompany")
    listing_agent_license_number: Optional[str] = Field(None, alias="listingAgentLicenseNumber")
    listing_agent_email: Optional[str] = Field(None, alias="listingAgentEmail")

    @field_validator("features", "image_urls", mode="before")
    @classmethod
    def _dedupe(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return unique(str(x) for x in v)

    @field_validator("zip", mode="before")
    @classmethod
    def _zip_as_text(cls, v):
        if v is None:
            return v
        return str(v).strip() or None

    @classmethod
    def placeholder(cls, url: str) -> "PropertyListingRecord":
        return cls(source_url=url, address=ADDRESS_UNAVAILABLE)

    def to_payload(self) -> Dict[str, Any]:
        """camelCase JSON payload; absent scalars omitted, lists always present."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def filled_fields(self) -> List[str]:
        return [k for k in SCALAR_FIELDS if not is_empty(getattr(self, k))]


# -----------------------------
# Layer trace
# -----------------------------

class AttemptStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ExtractionAttempt:
    strategy: str
    fields: Dict[str, Any] = field(default_factory=dict)
    status: AttemptStatus = AttemptStatus.EMPTY
    error: Optional[str] = None
    elapsed_sec: float = 0.0

    def filled_fields(self) -> List[str]:
        return [k for k, v in self.fields.items() if not is_empty(v)]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "status": self.status.value,
            "filled": self.filled_fields(),
            "error": self.error,
            "elapsed_sec": round(self.elapsed_sec, 3),
        }


@dataclass
class ExtractionReport:
    record: PropertyListingRecord
    attempts: List[ExtractionAttempt] = field(default_factory=list)
    state: str = "done"  # done | failed
    fetched_via: Optional[str] = None
    canonical_url: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "fetched_via": self.fetched_via,
            "canonical_url": self.canonical_url,
            "attempts": [a.as_dict() for a in self.attempts],
            "record": self.record.to_payload(),
        }


def error_payload(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message}
