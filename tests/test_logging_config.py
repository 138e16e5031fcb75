"""Tests for PII redaction in logs."""

from __future__ import annotations

import logging

from caseflow.logging_config import PIIRedactionFilter, redact_message, sanitize_extra


def _record(msg: str, args: tuple | dict | None = None) -> logging.LogRecord:
    return logging.LogRecord("caseflow.test", logging.INFO, __file__, 1, msg, args, None)


def test_redact_message_masks_client_fields() -> None:
    out = redact_message("client name=Ana passport: P1234567 case=case_1")
    assert "Ana" not in out
    assert "P1234567" not in out
    assert "case=case_1" in out


def test_sanitize_extra_masks_secrets_and_pii() -> None:
    out = sanitize_extra({"api_key": "k", "email": "a@b.c", "case_id": "case_1"})
    assert out == {"api_key": "***", "email": "[REDACTED]", "case_id": "case_1"}
    assert sanitize_extra(None) == {}


def test_filter_keeps_numeric_args_intact() -> None:
    record = _record("dropped %d malformed %s entries", (3, "documents"))
    assert PIIRedactionFilter().filter(record)
    assert record.getMessage() == "dropped 3 malformed documents entries"


def test_filter_redacts_string_args() -> None:
    record = _record("visa issued %s", ("visa_number=VISA-20260301-AB12CD",))
    PIIRedactionFilter().filter(record)
    assert "AB12CD" not in record.getMessage()
