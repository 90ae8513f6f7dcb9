"""
Audit logging tests - structured messages and score redaction.
"""

import logging
import pytest
from unittest.mock import patch

from util.logging import StructuredLogger, audit_event, logger, sanitize_payload


@pytest.fixture
def structured(caplog):
    caplog.set_level(logging.INFO, logger="credit_bureau_test")
    return StructuredLogger("credit_bureau_test")


class TestStructuredLogger:

    def test_log_operation_format(self, structured, caplog):
        structured.log_operation("report.submitted", "pending", {"report_id": "r1"})
        assert "Operation: report.submitted, Status: pending, Details: {'report_id': 'r1'}" in caplog.text

    def test_store_failure_logged_as_warning(self, structured, caplog):
        structured.log_store_operation("write", "report_keys", "failed", {"error": "boom"})
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "store.write" in record.getMessage()

    def test_orphaned_submission_is_warning(self, structured, caplog):
        structured.log_report_submitted("r1", "0xA", ["Bank A"], indexed=False)
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "orphaned" in record.getMessage()

    def test_transition_includes_transform(self, structured, caplog):
        structured.log_transition("r1", "pending", "approved", "0xA", "increase10pct")
        assert "'transform': 'increase10pct'" in caplog.text

    def test_reveal_attempt_redacts_signature(self, structured, caplog):
        structured.log_reveal_attempt("rejected", {"signature": "0xsecret", "reason": "declined"})
        assert "0xsecret" not in caplog.text
        assert "[REDACTED]" in caplog.text

    def test_single_handler(self):
        again = StructuredLogger("credit_bureau_test_handlers")
        StructuredLogger("credit_bureau_test_handlers")
        assert len(again.logger.handlers) == 1


class TestSanitizePayload:

    def test_score_fields_redacted(self):
        payload = {"report_id": "r1", "score": "FHE-NzAw", "plain_score": 700}
        assert sanitize_payload(payload) == {"report_id": "r1", "score": "[REDACTED]", "plain_score": "[REDACTED]"}

    def test_nested_and_lists(self):
        payload = {"reports": [{"id": "a", "score": "x"}]}
        assert sanitize_payload(payload) == {"reports": [{"id": "a", "score": "[REDACTED]"}]}

    def test_reveal_sensitive(self):
        assert sanitize_payload({"score": "x"}, reveal_sensitive=True) == {"score": "x"}

    def test_long_strings_truncated(self):
        assert sanitize_payload("a" * 150) == "a" * 100 + "..."


def test_audit_event_routes_operation():
    with patch.object(logger, 'log_operation') as mock_log:
        audit_event("report.approved", {"report_id": "r1"}, {"score": "FHE-x", "actor": "0xA"})

    operation, status, details = mock_log.call_args[0]
    assert operation == "report"
    assert status == "audit"
    assert details == {"report_id": "r1", "payload": {"score": "[REDACTED]", "actor": "0xA"}}
