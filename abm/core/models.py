from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple

class ElementType(str, Enum):
    NODE = "node"
    WAY = "way"

class MatchReason(str, Enum):
    BITCOIN_TAGGED = "bitcoin_tagged"
    SIMILAR_NAME = "similar_name"

class PublishStrategy(str, Enum):
    CREATE = "create"
    UPDATE = "update"

class PublishState(str, Enum):
    AWAITING_CHANGESET = "awaiting_changeset"
    CHANGESET_OPEN = "changeset_open"
    ELEMENT_WRITTEN = "element_written"
    CLOSED = "closed"
    FAILED = "failed"

@dataclass
class Changeset:
    id: int
    comment: str = ""
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)

@dataclass
class Node:
    lat: float
    lon: float
    tags: Dict[str, str] = field(default_factory=dict)
    id: Optional[int] = None
    version: Optional[int] = None
    changeset: Optional[int] = None

@dataclass
class Way:
    tags: Dict[str, str] = field(default_factory=dict)
    node_refs: List[int] = field(default_factory=list)
    id: Optional[int] = None
    version: Optional[int] = None
    changeset: Optional[int] = None

@dataclass(frozen=True)
class ElementRef:
    id: int
    type: ElementType = ElementType.NODE

@dataclass
class DuplicateMatch:
    osm_id: int
    osm_type: ElementType
    match_reason: MatchReason
    tags: Dict[str, str] = field(default_factory=dict)
    name: Optional[str] = None
    category: Optional[str] = None
    coordinates: Optional[Tuple[float, float]] = None
    changeset_id: Optional[int] = None
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing shape (camelCase, JSON-safe)."""
        out: Dict[str, Any] = {
            "osmId": self.osm_id,
            "osmType": self.osm_type.value,
            "matchReason": self.match_reason.value,
            "tags": dict(self.tags),
        }
        if self.name is not None:
            out["name"] = self.name
        if self.category is not None:
            out["category"] = self.category
        if self.coordinates is not None:
            out["coordinates"] = {"lat": self.coordinates[0], "lon": self.coordinates[1]}
        if self.changeset_id is not None:
            out["changesetId"] = self.changeset_id
        if self.last_updated is not None:
            out["lastUpdated"] = self.last_updated.isoformat()
        return out

@dataclass
class DuplicateCheckResult:
    is_duplicate: bool = False
    primary: Optional[DuplicateMatch] = None
    matches: List[DuplicateMatch] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"isDuplicate": self.is_duplicate}
        if self.primary is not None:
            out.update(self.primary.to_dict())
            out["matches"] = [m.to_dict() for m in self.matches]
        if self.error:
            out["error"] = self.error
        return out

@dataclass
class BitcoinDetails:
    on_chain: bool = False
    lightning: bool = False
    lightning_contactless: bool = False
    lightning_operator: Optional[str] = None
    other: List[str] = field(default_factory=list)
    in_store: bool = False
    online: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BitcoinDetails":
        data = data or {}
        other = data.get("other") or []
        if isinstance(other, str):
            other = [other]
        return cls(
            on_chain=bool(data.get("onChain", data.get("on_chain", False))),
            lightning=bool(data.get("lightning", False)),
            lightning_contactless=bool(data.get("lightningContactless", data.get("lightning_contactless", False))),
            lightning_operator=data.get("lightningOperator", data.get("lightning_operator")),
            other=[str(o) for o in other if o],
            in_store=bool(data.get("inStore", data.get("in_store", False))),
            online=bool(data.get("online", False)),
        )

# form key (camelCase) -> SubmissionFields attribute
_FIELD_KEYS = {
    "businessName": "business_name",
    "description": "description",
    "category": "category",
    "housenumber": "housenumber",
    "street": "street",
    "suburb": "suburb",
    "postcode": "postcode",
    "state": "state",
    "city": "city",
    "phone": "phone",
    "website": "website",
    "email": "email",
    "facebook": "facebook",
    "instagram": "instagram",
    "openingHours": "opening_hours",
    "wheelchair": "wheelchair",
    "notes": "notes",
}

@dataclass
class SubmissionFields:
    business_name: str = ""
    description: Optional[str] = None
    category: Optional[str] = None
    housenumber: Optional[str] = None
    street: Optional[str] = None
    suburb: Optional[str] = None
    postcode: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    opening_hours: Optional[str] = None
    wheelchair: Optional[str] = None
    notes: Optional[str] = None
    bitcoin: Optional[BitcoinDetails] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionFields":
        """Build from the validated form payload (camelCase or snake_case keys)."""
        kwargs: Dict[str, Any] = {}
        for form_key, attr in _FIELD_KEYS.items():
            value = data.get(form_key, data.get(attr))
            if value is not None:
                kwargs[attr] = str(value)
        for form_key, attr in (("latitude", "latitude"), ("longitude", "longitude")):
            value = data.get(form_key)
            if value is not None and value != "":
                kwargs[attr] = float(value)
        btc = data.get("bitcoinDetails", data.get("bitcoin"))
        if btc is not None:
            kwargs["bitcoin"] = BitcoinDetails.from_dict(btc)
        return cls(**kwargs)

@dataclass
class PublishResult:
    element_id: int
    element_type: ElementType
    element_url: str
    final_version: int
    changeset_id: int
    uploaded_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        """Upload record for the caller's append-only log."""
        return {
            "osm_id": self.element_id,
            "osm_type": self.element_type.value,
            "osm_url": self.element_url,
            "changeset_id": self.changeset_id,
            "version": self.final_version,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }
