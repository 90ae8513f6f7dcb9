"""
Report lifecycle - submission and the pending -> approved | rejected workflow.

Authorization and state checks happen here; persistence goes through the
ReportStore and score arithmetic through the TransformEngine. Nothing is
retried: every failure is surfaced to the caller.
"""

import math
import random
import string
import time
from decimal import Decimal
from numbers import Real
from typing import Callable, Iterable, List, Optional

from util.logging import logger

from . import config
from .codec import OpaqueCodec, default_codec
from .errors import (
    InvalidReport,
    InvalidTransition,
    NotAuthenticated,
    NotFound,
    StoreWriteError,
    Forbidden,
)
from .schema import APPROVED, PENDING, REJECTED, Report
from .store import ReportStore
from .transform import TransformEngine

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_report_id(now_ms: int = None) -> str:
    """Millisecond timestamp plus a 7-character base36 suffix."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"{now_ms}-{suffix}"


def normalize_sources(sources: Iterable[str]) -> List[str]:
    """Strip labels, drop blanks and duplicates, keep first-seen order."""
    if sources is None or isinstance(sources, str):
        raise InvalidReport("sources must be a list of labels")

    seen = []
    for source in sources:
        if not isinstance(source, str):
            raise InvalidReport(f"source labels must be strings, got {type(source).__name__}")
        label = source.strip()
        if label and label not in seen:
            seen.append(label)
    return seen


class ReportLifecycle:
    """Owns report creation and the approval state machine."""

    def __init__(self, store: ReportStore, codec: OpaqueCodec = None,
                 engine: TransformEngine = None, clock: Callable[[], float] = None):
        self.store = store
        self.codec = codec or default_codec
        self.engine = engine or TransformEngine(self.codec)
        self.clock = clock or time.time

    def submit(self, owner: Optional[str], sources: Iterable[str], plain_score) -> Report:
        """Encode ``plain_score`` and persist a new pending report owned by ``owner``."""
        if not owner or not owner.strip():
            raise NotAuthenticated("Connect a wallet before submitting a report")

        labels = normalize_sources(sources)
        if not labels:
            raise InvalidReport("At least one data source is required")

        if isinstance(plain_score, bool) or not isinstance(plain_score, (Real, Decimal)):
            raise InvalidReport("Score must be a number")
        try:
            finite = math.isfinite(float(plain_score))
        except OverflowError:
            raise InvalidReport("Score out of range")
        if not finite:
            raise InvalidReport("Score must be finite")

        self.store.ensure_available()

        now = self.clock()
        existing = set(self.store.list_ids())
        report_id = generate_report_id(int(now * 1000))
        while report_id in existing:
            report_id = generate_report_id(int(now * 1000))

        report = Report(
            id=report_id,
            opaque_score=self.codec.encode(plain_score),
            created_at=int(now),
            owner=owner.strip(),
            sources=labels,
            status=PENDING,
        )

        self.store.save_record(report)

        # No multi-key transaction: a failed index append leaves an orphan
        try:
            self.store.append_to_index(report.id)
        except StoreWriteError as e:
            report.indexed = False
            logger.warning(f"Report {report.id} stored but not indexed: {e}")

        logger.log_report_submitted(report.id, report.owner, report.sources, report.indexed)
        return report

    def get(self, report_id: str) -> Report:
        """Load a report or raise NotFound."""
        report = self.store.load_record(report_id)
        if report is None:
            raise NotFound(f"Report not found: {report_id}")
        return report

    def approve(self, report_id: str, acting_owner: Optional[str]) -> Report:
        """Run the approval transform once and mark the report approved."""
        return self._transition(report_id, acting_owner, APPROVED, config.APPROVAL_OPERATION)

    def reject(self, report_id: str, acting_owner: Optional[str]) -> Report:
        """Mark the report rejected; the opaque score is left untouched."""
        return self._transition(report_id, acting_owner, REJECTED, None)

    def _transition(self, report_id: str, acting_owner: Optional[str], target: str,
                    operation: Optional[str]) -> Report:
        if not acting_owner or not acting_owner.strip():
            raise NotAuthenticated("Connect a wallet before approving or rejecting")

        self.store.ensure_available()

        raw = self.store.read_raw(report_id)
        report = self.store.parse_record(report_id, raw)
        if report is None:
            raise NotFound(f"Report not found: {report_id}")

        if not report.owned_by(acting_owner.strip()):
            logger.log_transition_denied(report_id, acting_owner, "not the report owner")
            raise Forbidden(f"{acting_owner} does not own report {report_id}")

        if report.status != PENDING:
            logger.log_transition_denied(report_id, acting_owner, f"status is {report.status}")
            raise InvalidTransition(f"Report {report_id} is already {report.status}")

        previous = report.status
        if operation is not None:
            report.opaque_score = self.engine.apply(report.opaque_score, operation)
        report.status = target

        # Conditioned on the bytes read above so a concurrent transition loses
        self.store.save_record(report, expected=raw)

        logger.log_transition(report_id, previous, target, acting_owner, operation)
        return report

    def list_reports(self, search: str = None, status: str = None) -> List[Report]:
        """All reports newest first, optionally filtered by text and status.

        ``search`` matches case-insensitively against the id and every source label.
        """
        reports = self.store.load_all()

        if status:
            reports = [r for r in reports if r.status == status]

        if search:
            needle = search.lower()
            reports = [
                r for r in reports
                if needle in r.id.lower() or any(needle in s.lower() for s in r.sources)
            ]

        return reports
