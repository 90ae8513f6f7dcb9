"""
Report lifecycle tests - submission, approval state machine and authorization.
"""

import pytest
from unittest.mock import patch

from credit_bureau.core.codec import decode, encode
from credit_bureau.core.errors import (
    ConcurrentUpdate,
    Forbidden,
    InvalidReport,
    InvalidTransition,
    NotAuthenticated,
    NotFound,
    StoreUnavailable,
    StoreWriteError,
)
from credit_bureau.core.kv import InMemoryKVStore
from credit_bureau.core.lifecycle import ReportLifecycle, generate_report_id, normalize_sources
from credit_bureau.core.store import ReportStore


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start=1700000000.0):
        self.now = start

    def __call__(self):
        self.now += 1
        return self.now


@pytest.fixture
def kv():
    return InMemoryKVStore()


@pytest.fixture
def lifecycle(kv):
    """Create a fresh lifecycle over an empty in-memory store for each test."""
    return ReportLifecycle(ReportStore(kv), clock=FakeClock())


class TestSubmit:

    def test_submit_creates_pending_report(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 700)

        assert report.status == "pending"
        assert report.owner == "0xA"
        assert report.sources == ["Bank A"]
        assert report.opaque_score.startswith("FHE-")
        assert decode(report.opaque_score) == 700
        assert report.indexed is True

    def test_submit_persists_and_indexes(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        assert lifecycle.store.list_ids() == [report.id]
        assert lifecycle.get(report.id) == report

    def test_created_at_is_epoch_seconds(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        assert report.created_at == 1700000001
        assert report.id.startswith("1700000001000-")

    @pytest.mark.parametrize("owner", [None, "", "   "])
    def test_submit_requires_identity(self, lifecycle, owner):
        with pytest.raises(NotAuthenticated):
            lifecycle.submit(owner, ["Bank A"], 700)

    @pytest.mark.parametrize("sources", [[], ["", "  "]])
    def test_submit_requires_sources(self, lifecycle, sources):
        with pytest.raises(InvalidReport):
            lifecycle.submit("0xA", sources, 700)
        assert lifecycle.store.list_ids() == []

    @pytest.mark.parametrize("score", ["700", None, float("nan"), True])
    def test_submit_requires_numeric_score(self, lifecycle, score):
        with pytest.raises(InvalidReport):
            lifecycle.submit("0xA", ["Bank A"], score)

    def test_score_too_large_for_float(self, lifecycle):
        with pytest.raises(InvalidReport, match="out of range"):
            lifecycle.submit("0xA", ["Bank A"], 10 ** 400)
        assert lifecycle.store.list_ids() == []

    def test_sources_are_an_ordered_set(self, lifecycle):
        report = lifecycle.submit("0xA", [" Loan Records", "Bank A", "Loan Records", ""], 700)
        assert report.sources == ["Loan Records", "Bank A"]

    def test_submit_on_unavailable_store(self):
        lifecycle = ReportLifecycle(ReportStore(InMemoryKVStore(available=False)))
        with pytest.raises(StoreUnavailable):
            lifecycle.submit("0xA", ["Bank A"], 700)

    def test_id_collision_is_redrawn(self, lifecycle):
        with patch('credit_bureau.core.lifecycle.generate_report_id',
                   side_effect=["1-dup", "1-dup", "1-fresh"]):
            first = lifecycle.submit("0xA", ["Bank A"], 700)
            second = lifecycle.submit("0xA", ["Bank A"], 710)
        assert first.id == "1-dup"
        assert second.id == "1-fresh"

    def test_index_failure_leaves_orphan(self, lifecycle):
        """Saved record stays; report comes back flagged as not indexed."""
        with patch.object(lifecycle.store, 'append_to_index', side_effect=StoreWriteError("index write failed")):
            with patch('credit_bureau.core.lifecycle.logger') as mock_logger:
                report = lifecycle.submit("0xA", ["Bank A"], 700)
                mock_logger.warning.assert_called_once()

        assert report.indexed is False
        assert lifecycle.store.load_record(report.id) is not None
        assert lifecycle.store.list_ids() == []
        assert lifecycle.list_reports() == []

    def test_record_write_failure_propagates(self, lifecycle):
        with patch.object(lifecycle.store, 'save_record', side_effect=StoreWriteError("down")):
            with pytest.raises(StoreWriteError):
                lifecycle.submit("0xA", ["Bank A"], 700)
        assert lifecycle.store.list_ids() == []

    def test_n_submissions_index_integrity(self, lifecycle):
        ids = [lifecycle.submit("0xA", ["Bank A"], 600 + i).id for i in range(5)]

        listed = lifecycle.store.list_ids()
        assert listed == ids
        assert len(set(listed)) == 5

        loaded = lifecycle.store.load_all()
        assert len(loaded) == 5
        assert [r.created_at for r in loaded] == sorted((r.created_at for r in loaded), reverse=True)


class TestApprove:

    def test_approve_applies_increase_once(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        approved = lifecycle.approve(report.id, "0xA")

        assert approved.status == "approved"
        assert decode(approved.opaque_score) == 770
        stored = lifecycle.get(report.id)
        assert stored.status == "approved"
        assert decode(stored.opaque_score) == 770

    def test_owner_compare_is_case_insensitive(self, lifecycle):
        report = lifecycle.submit("0xAbCd", ["Bank A"], 700)
        assert lifecycle.approve(report.id, "0xABCD").status == "approved"

    def test_approve_by_non_owner_forbidden(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        with pytest.raises(Forbidden):
            lifecycle.approve(report.id, "0xB")
        assert lifecycle.get(report.id).status == "pending"

    def test_approve_missing_report(self, lifecycle):
        with pytest.raises(NotFound):
            lifecycle.approve("nope", "0xA")

    def test_approve_requires_identity(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        with pytest.raises(NotAuthenticated):
            lifecycle.approve(report.id, None)

    def test_approve_twice_is_invalid(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        lifecycle.approve(report.id, "0xA")
        with pytest.raises(InvalidTransition):
            lifecycle.approve(report.id, "0xA")
        # Transform did not run a second time
        assert decode(lifecycle.get(report.id).opaque_score) == 770

    def test_approval_operation_is_configurable(self, lifecycle):
        from credit_bureau.core import config
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        with patch.object(config, 'APPROVAL_OPERATION', 'double'):
            approved = lifecycle.approve(report.id, "0xA")
        assert decode(approved.opaque_score) == 1400

    def test_approve_overflowing_score_stays_pending(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 1.7e308)
        with pytest.raises(InvalidReport):
            lifecycle.approve(report.id, "0xA")

        stored = lifecycle.get(report.id)
        assert stored.status == "pending"
        assert decode(stored.opaque_score) == 1.7e308

    def test_concurrent_transition_loses(self, lifecycle):
        """A write landing between read and save makes the second transition fail."""
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        store = lifecycle.store
        original_parse = store.parse_record

        def parse_then_race(report_id, raw):
            parsed = original_parse(report_id, raw)
            # Another caller rejects the report right after our read
            racer = original_parse(report_id, raw)
            racer.status = "rejected"
            store.save_record(racer)
            return parsed

        with patch.object(store, 'parse_record', side_effect=parse_then_race):
            with pytest.raises(ConcurrentUpdate):
                lifecycle.approve(report.id, "0xA")

        stored = lifecycle.get(report.id)
        assert stored.status == "rejected"
        assert decode(stored.opaque_score) == 700


class TestReject:

    def test_reject_keeps_score(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        rejected = lifecycle.reject(report.id, "0xA")

        assert rejected.status == "rejected"
        assert rejected.opaque_score == report.opaque_score
        assert lifecycle.get(report.id).opaque_score == encode(700)

    def test_reject_by_non_owner_forbidden(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        with pytest.raises(Forbidden):
            lifecycle.reject(report.id, "0xB")

    def test_reject_missing_report(self, lifecycle):
        with pytest.raises(NotFound):
            lifecycle.reject("nope", "0xA")

    @pytest.mark.parametrize("first", ["approve", "reject"])
    def test_no_transition_out_of_terminal_state(self, lifecycle, first):
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        getattr(lifecycle, first)(report.id, "0xA")

        with pytest.raises(InvalidTransition):
            lifecycle.approve(report.id, "0xA")
        with pytest.raises(InvalidTransition):
            lifecycle.reject(report.id, "0xA")


class TestListReports:

    @pytest.fixture
    def populated(self, lifecycle):
        a = lifecycle.submit("0xA", ["Bank A"], 700)
        b = lifecycle.submit("0xA", ["Crypto Wallet", "Loan Records"], 650)
        c = lifecycle.submit("0xB", ["Payment History"], 720)
        lifecycle.approve(a.id, "0xA")
        lifecycle.reject(c.id, "0xB")
        return a, b, c

    def test_list_all_newest_first(self, lifecycle, populated):
        a, b, c = populated
        assert [r.id for r in lifecycle.list_reports()] == [c.id, b.id, a.id]

    def test_filter_by_status(self, lifecycle, populated):
        a, b, c = populated
        assert [r.id for r in lifecycle.list_reports(status="pending")] == [b.id]
        assert [r.id for r in lifecycle.list_reports(status="approved")] == [a.id]

    def test_search_matches_sources_case_insensitively(self, lifecycle, populated):
        a, b, c = populated
        assert [r.id for r in lifecycle.list_reports(search="loan")] == [b.id]

    def test_search_matches_id(self, lifecycle, populated):
        a, b, c = populated
        assert [r.id for r in lifecycle.list_reports(search=a.id[-7:])] == [a.id]


class TestScenario:

    def test_submit_approve_then_reject(self, lifecycle):
        report = lifecycle.submit("0xA", ["Bank A"], 700)
        assert report.status == "pending"
        assert decode(report.opaque_score) == 700

        approved = lifecycle.approve(report.id, "0xA")
        assert approved.status == "approved"
        assert decode(approved.opaque_score) == 770

        with pytest.raises(InvalidTransition):
            lifecycle.reject(report.id, "0xA")


def test_generate_report_id_format():
    report_id = generate_report_id(1700000000123)
    prefix, suffix = report_id.split("-")
    assert prefix == "1700000000123"
    assert len(suffix) == 7
    assert suffix.isalnum() and suffix.lower() == suffix


def test_normalize_sources_rejects_plain_string():
    with pytest.raises(InvalidReport):
        normalize_sources("Bank A")
