"""
Report data model and its persisted JSON document.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, field_validator

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

STATUSES = (PENDING, APPROVED, REJECTED)
TERMINAL_STATUSES = (APPROVED, REJECTED)


class StoredReport(BaseModel):
    """Validated shape of the JSON object stored under ``report_<id>``."""

    model_config = ConfigDict(extra="ignore")

    score: str
    timestamp: int
    owner: str
    sources: List[str] = []
    status: Literal["pending", "approved", "rejected"] = PENDING

    @field_validator('score', mode='before')
    @classmethod
    def numeric_score_as_text(cls, v):
        # Legacy records stored the plain number; the codec decodes untagged text
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator('sources', mode='before')
    @classmethod
    def sources_default_when_null(cls, v):
        return [] if v is None else v

    @field_validator('status', mode='before')
    @classmethod
    def status_default_when_empty(cls, v):
        return v or PENDING


@dataclass
class Report:
    id: str
    opaque_score: str
    created_at: int  # seconds since epoch
    owner: str
    sources: List[str]
    status: str = PENDING  # pending, approved, rejected
    indexed: bool = field(default=True, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def owned_by(self, principal: str) -> bool:
        """Case-insensitive owner comparison (wallet addresses mix case)."""
        return bool(principal) and principal.lower() == self.owner.lower()

    def to_document(self) -> Dict[str, Any]:
        """Convert to the persisted JSON document."""
        return {
            "score": self.opaque_score,
            "timestamp": self.created_at,
            "owner": self.owner,
            "sources": list(self.sources),
            "status": self.status,
        }

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_document()).encode("utf-8")

    @classmethod
    def from_document(cls, report_id: str, data: Dict[str, Any]) -> 'Report':
        """Create from a stored document; raises pydantic ValidationError on bad shape."""
        stored = StoredReport.model_validate(data)
        return cls(
            id=report_id,
            opaque_score=stored.score,
            created_at=stored.timestamp,
            owner=stored.owner,
            sources=list(stored.sources),
            status=stored.status,
        )
