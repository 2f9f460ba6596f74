"""Unit tests for structured JSON logging."""

import json
import logging
import sys

from shared.logging_config import JSONFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="engine.services.payment_callback_service",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Payment callback inconsistency: %s",
        args=("TXN-1-abc123",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_base_fields(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "WARNING"
        assert data["logger"] == "engine.services.payment_callback_service"
        assert data["message"] == "Payment callback inconsistency: TXN-1-abc123"
        assert "transaction_id" not in data

    def test_context_fields_from_extra(self):
        data = json.loads(
            JSONFormatter().format(_record(transaction_id="TXN-1-abc123", trace_id="t1", customer="ignored"))
        )

        assert data["transaction_id"] == "TXN-1-abc123"
        assert data["trace_id"] == "t1"
        assert "customer" not in data

    def test_exception_included(self):
        try:
            raise RuntimeError("gateway down")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: gateway down" in data["exception"]
