"""
Request/response models for the credit bureau HTTP API.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Union

from ..core.schema import Report, STATUSES


class ReportSubmitRequest(BaseModel):
    sources: List[str]
    score: Union[int, float]

    @field_validator('sources')
    @classmethod
    def sources_must_not_be_empty(cls, v):
        if not [s for s in v if s.strip()]:
            raise ValueError('at least one data source is required')
        return v


class ReportResponse(BaseModel):
    id: str
    score: str  # opaque
    timestamp: int
    owner: str
    sources: List[str]
    status: str
    indexed: bool = True

    @classmethod
    def from_report(cls, report: Report) -> 'ReportResponse':
        return cls(
            id=report.id,
            score=report.opaque_score,
            timestamp=report.created_at,
            owner=report.owner,
            sources=report.sources,
            status=report.status,
            indexed=report.indexed,
        )


class ReportListResponse(BaseModel):
    reports: List[ReportResponse]
    total: int


class TransitionResponse(BaseModel):
    success: bool
    message: str
    report: ReportResponse


class ScoreStatsResponse(BaseModel):
    count: int
    highest: Optional[float] = None
    average: Optional[float] = None
    lowest: Optional[float] = None


class StatsResponse(BaseModel):
    counts: Dict[str, int]
    approved_scores: ScoreStatsResponse


class ChallengeResponse(BaseModel):
    challenge: str
    public_key: str
    contract_address: str
    chain_id: int
    start_timestamp: int
    duration_days: int
    expires_at: int


class RevealRequest(BaseModel):
    signature: str


class RevealResponse(BaseModel):
    id: str
    score: Union[int, float]


class PreviewRequest(BaseModel):
    score: Union[int, float]


class PreviewResponse(BaseModel):
    plain: Union[int, float]
    encrypted: str


class HealthResponse(BaseModel):
    status: str
    version: str
    store_available: bool


def validate_status_filter(status: Optional[str]) -> Optional[str]:
    """Reject unknown status filters early."""
    if status and status not in STATUSES:
        raise ValueError(f'status must be one of: {list(STATUSES)}')
    return status
