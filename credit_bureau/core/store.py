"""
Record store adapter - the report collection on top of a flat key/blob store.

Layout:
    report_keys     JSON array of report ids, in submission order
    report_<id>     JSON object {score, timestamp, owner, sources, status}

The store has no listing primitive and no multi-key transactions, so the
index key is maintained by read-modify-write. When the underlying store
supports conditional writes the index append is a compare-and-swap loop;
otherwise two concurrent appends can race and the last writer wins, losing
the other id from the index (the record itself stays stored and can be
recovered with ``rebuild_index``).
"""

import json
from typing import List, Optional, Tuple

from pydantic import ValidationError

from util.logging import logger

from . import config
from .errors import ConcurrentUpdate, StoreUnavailable, StoreWriteError
from .kv import KVStore
from .schema import Report


def record_key(report_id: str) -> str:
    return f"{config.RECORD_KEY_PREFIX}{report_id}"


class ReportStore:
    """Maps reports and the id index onto a ``KVStore``."""

    def __init__(self, kv: KVStore, index_key: str = None):
        self.kv = kv
        self.index_key = index_key or config.INDEX_KEY

    def ensure_available(self) -> None:
        """Raise StoreUnavailable when the store probe fails."""
        try:
            available = self.kv.is_available()
        except Exception as e:
            logger.log_store_operation("probe", self.index_key, "failed", {"error": str(e)[:100]})
            raise StoreUnavailable(f"Store probe failed: {e}") from e
        if not available:
            logger.log_store_operation("probe", self.index_key, "unavailable")
            raise StoreUnavailable("Key-value store is not available")

    # Index

    def _read_index(self) -> Tuple[bytes, List[str]]:
        """Raw index bytes plus the parsed id list (empty on load errors)."""
        raw = self.kv.read(self.index_key)
        if not raw or not raw.strip():
            return raw, []

        try:
            ids = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Error parsing report keys: {e}")
            return raw, []

        if not isinstance(ids, list):
            logger.error(f"Error parsing report keys: expected a JSON array, got {type(ids).__name__}")
            return raw, []

        valid = [i for i in ids if isinstance(i, str)]
        if len(valid) != len(ids):
            logger.warning(f"Dropped {len(ids) - len(valid)} non-string entries from the report index")
        return raw, valid

    def list_ids(self) -> List[str]:
        """Ordered report ids from the index key."""
        return self._read_index()[1]

    def append_to_index(self, report_id: str) -> None:
        """Append ``report_id`` to the index key (no-op if already present)."""
        if self.kv.supports_cas:
            self._append_with_cas(report_id)
            return

        # Plain read-modify-write: concurrent appends can lose an entry
        raw, ids = self._read_index()
        if report_id in ids:
            return
        ids.append(report_id)
        self._write(self.index_key, json.dumps(ids).encode("utf-8"))
        logger.log_store_operation("index_append", self.index_key, details={"report_id": report_id, "size": len(ids)})

    def _append_with_cas(self, report_id: str) -> None:
        attempts = max(1, config.INDEX_CAS_RETRIES)
        for attempt in range(1, attempts + 1):
            raw, ids = self._read_index()
            if report_id in ids:
                return
            ids.append(report_id)
            try:
                swapped = self.kv.compare_and_swap(self.index_key, raw, json.dumps(ids).encode("utf-8"))
            except Exception as e:
                raise StoreWriteError(f"Failed to write {self.index_key}: {e}") from e
            if swapped:
                logger.log_store_operation("index_append", self.index_key, details={
                    "report_id": report_id, "size": len(ids), "attempt": attempt
                })
                return
            logger.log_store_operation("index_append", self.index_key, "conflict", {
                "report_id": report_id, "attempt": attempt
            })

        raise StoreWriteError(f"Index update for {report_id} lost {attempts} compare-and-swap rounds")

    # Records

    def read_raw(self, report_id: str) -> bytes:
        """Raw stored bytes for ``report_id`` (``b""`` when missing)."""
        return self.kv.read(record_key(report_id))

    def parse_record(self, report_id: str, raw: bytes) -> Optional[Report]:
        """Parse stored bytes; corrupt records are logged and yield None."""
        if not raw:
            return None
        try:
            data = json.loads(raw.decode("utf-8"))
            return Report.from_document(report_id, data)
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Error parsing report data for {report_id}: {str(e)[:200]}")
            return None

    def load_record(self, report_id: str) -> Optional[Report]:
        """Load one report; absent or corrupt records yield None."""
        try:
            raw = self.read_raw(report_id)
        except Exception as e:
            logger.error(f"Error loading report {report_id}: {e}")
            return None
        return self.parse_record(report_id, raw)

    def load_all(self) -> List[Report]:
        """All indexed reports, newest first. Corrupt entries are skipped."""
        self.ensure_available()

        reports = []
        seen = set()
        for report_id in self.list_ids():
            if report_id in seen:
                logger.warning(f"Duplicate id {report_id} in report index, skipping")
                continue
            seen.add(report_id)

            report = self.load_record(report_id)
            if report is not None:
                reports.append(report)

        # sort is stable, ties keep index order
        reports.sort(key=lambda r: r.created_at, reverse=True)
        return reports

    def save_record(self, report: Report, expected: bytes = None) -> None:
        """Persist ``report``.

        With ``expected`` (the bytes read before the change) the write only
        lands if the stored value is still unchanged, on stores that support
        conditional writes. A lost race raises ConcurrentUpdate.
        """
        key = record_key(report.id)
        data = report.to_bytes()

        if expected is not None and self.kv.supports_cas:
            try:
                swapped = self.kv.compare_and_swap(key, expected, data)
            except Exception as e:
                raise StoreWriteError(f"Failed to write {key}: {e}") from e
            if not swapped:
                logger.log_store_operation("save", key, "conflict")
                raise ConcurrentUpdate(f"Report {report.id} was modified concurrently")
        else:
            self._write(key, data)

        logger.log_store_operation("save", key, details={"status": report.status})

    def _write(self, key: str, data: bytes) -> None:
        try:
            self.kv.write(key, data)
        except Exception as e:
            logger.log_store_operation("write", key, "failed", {"error": str(e)[:100]})
            raise StoreWriteError(f"Failed to write {key}: {e}") from e

    # Maintenance

    def find_orphans(self) -> List[Report]:
        """Readable stored records missing from the index, oldest first.

        Requires a store that can enumerate keys.
        """
        if not self.kv.supports_scan:
            raise NotImplementedError(f"{self.kv.__class__.__name__} cannot enumerate keys")

        self.ensure_available()
        prefix = config.RECORD_KEY_PREFIX
        indexed = set(self.list_ids())

        orphans = []
        for key in self.kv.scan(prefix):
            if key == self.index_key:
                continue
            report_id = key[len(prefix):]
            if report_id in indexed:
                continue
            report = self.load_record(report_id)
            if report is None:
                logger.warning(f"Not indexing unreadable record {key}")
                continue
            orphans.append(report)

        orphans.sort(key=lambda r: r.created_at)
        return orphans

    def rebuild_index(self) -> List[str]:
        """Re-add stored records missing from the index. Returns the ids added.

        Added ids are ordered by creation time so the index keeps approximate
        submission order.
        """
        orphans = self.find_orphans()
        for report in orphans:
            self.append_to_index(report.id)

        added = [r.id for r in orphans]
        logger.log_store_operation("rebuild_index", self.index_key, details={"added": len(added)})
        return added
