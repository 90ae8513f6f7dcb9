"""
Collection statistics for the dashboard view.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

from util.logging import logger

from .codec import OpaqueCodec, default_codec
from .errors import DecodeError
from .schema import APPROVED, STATUSES, Report


@dataclass
class ScoreStats:
    count: int
    highest: Optional[float] = None
    average: Optional[float] = None
    lowest: Optional[float] = None

    def to_dict(self) -> Dict:
        return asdict(self)


def status_counts(reports: Iterable[Report]) -> Dict[str, int]:
    """Number of reports per status, plus the total."""
    counts = {status: 0 for status in STATUSES}
    total = 0
    for report in reports:
        counts[report.status] = counts.get(report.status, 0) + 1
        total += 1
    counts["total"] = total
    return counts


def approved_score_stats(reports: Iterable[Report], codec: OpaqueCodec = None) -> ScoreStats:
    """Highest, average and lowest decoded score across approved reports."""
    codec = codec or default_codec

    scores: List[float] = []
    for report in reports:
        if report.status != APPROVED:
            continue
        try:
            scores.append(codec.decode(report.opaque_score))
        except DecodeError as e:
            logger.warning(f"Skipping report {report.id} in score stats: {e}")

    if not scores:
        return ScoreStats(count=0)

    return ScoreStats(
        count=len(scores),
        highest=max(scores),
        average=sum(scores) / len(scores),
        lowest=min(scores),
    )
