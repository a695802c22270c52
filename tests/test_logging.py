"""
Tests for fulfillment_kernel.logging_config.

Covers:
- JSON envelope, extra fields, Decimal / Enum serialization
- LogContext fields on every record, bind() restore semantics
- Kernel exception code and attributes on error records
- Redaction of secret payloads
- configure_logging idempotency and level names
"""

import json
import logging
from decimal import Decimal
from io import StringIO

import pytest

from fulfillment_kernel.exceptions import DuplicateSecretError, InsufficientStockError
from fulfillment_kernel.logging_config import (
    REDACTED_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from fulfillment_kernel.models.product import FulfillmentType


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def emit():
    """Configure the kernel logger onto a buffer; returns (logger, read)."""

    def _setup(level=logging.INFO):
        stream = StringIO()
        configure_logging(stream=stream, level=level)

        def _read() -> list[dict]:
            return [json.loads(line) for line in stream.getvalue().splitlines() if line]

        return get_logger("test"), _read

    return _setup


class TestEnvelope:

    def test_envelope_fields(self, emit):
        logger, read = emit()
        logger.info("hello")

        (record,) = read()
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "fulfillment_kernel.test"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields_and_types(self, emit):
        logger, read = emit()
        logger.info(
            "skus_applied",
            extra={
                "quantity": 3,
                "min_price": Decimal("9.90"),
                "mode": FulfillmentType.AUTO,
                "sku_ids": (4, 5),
            },
        )

        (record,) = read()
        assert record["quantity"] == 3
        assert record["min_price"] == "9.90"
        assert record["mode"] == "auto"
        assert record["sku_ids"] == [4, 5]

    def test_debug_dropped_at_info(self, emit):
        logger, read = emit()
        logger.debug("noise")
        logger.warning("kept")

        assert [r["message"] for r in read()] == ["kept"]

    def test_level_name_accepted(self, emit):
        logger, read = emit(level="debug")
        logger.debug("visible")

        assert read()[0]["message"] == "visible"


class TestContextFields:

    def test_bound_fields_on_record(self, emit):
        logger, read = emit()
        with LogContext.bind(order_id=42, sku_id=7):
            logger.info("inside")
        logger.info("outside")

        inside, outside = read()
        assert (inside["order_id"], inside["sku_id"]) == ("42", "7")
        assert "order_id" not in outside

    def test_bind_restores_previous_value(self):
        LogContext.set(order_id="outer")
        with LogContext.bind(order_id="inner", product_id=None):
            assert LogContext.get_all() == {"order_id": "inner"}
        assert LogContext.get_all() == {"order_id": "outer"}

    def test_clear(self):
        LogContext.set(correlation_id="c", actor_id="a")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="batch"):
            LogContext.set(batch="B-1")
        with pytest.raises(TypeError):
            with LogContext.bind(warehouse=3):
                pass


class TestExceptions:

    def test_plain_exception(self, emit):
        logger, read = emit()
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        (record,) = read()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_error_attributes(self, emit):
        logger, read = emit()
        try:
            raise InsufficientStockError(7, 5, 2)
        except InsufficientStockError:
            logger.error("reserve_failed", exc_info=True)

        (record,) = read()
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert (record["exc_sku_id"], record["exc_requested"], record["exc_available"]) == (7, 5, 2)


class TestRedaction:

    @pytest.mark.parametrize("field", sorted(REDACTED_FIELDS))
    def test_extra_field_redacted(self, emit, field):
        logger, read = emit()
        logger.info("leak_attempt", extra={field: "LICENSE-KEY-123"})

        record = read()[0]
        assert record[field] == "[redacted]"
        assert "LICENSE-KEY-123" not in json.dumps(record)

    def test_duplicate_payloads_redacted_from_error(self, emit):
        logger, read = emit()
        payloads = ["KEY-" + suffix for suffix in ("A", "B")]
        error = DuplicateSecretError(payloads)
        try:
            raise error
        except DuplicateSecretError:
            logger.warning("ingest_rejected", exc_info=True)

        (record,) = read()
        assert record["exc_duplicates"] == "[redacted]"
        assert record["exc_duplicate_count"] == 2
        serialized = json.dumps(record)
        assert all(value not in serialized for value in payloads)


class TestConfigure:

    def test_second_configure_is_noop(self):
        reset_logging()
        configure_logging(stream=StringIO())
        configure_logging(stream=StringIO())

        installed = [
            handler
            for handler in logging.getLogger("fulfillment_kernel").handlers
            if isinstance(handler.formatter, StructuredFormatter)
        ]
        assert len(installed) == 1

    def test_child_loggers_share_handler(self, emit):
        _, read = emit(level=logging.DEBUG)
        get_logger("services.secret_pool").debug("nested")

        record = read()[0]
        assert record["logger"] == "fulfillment_kernel.services.secret_pool"

    def test_reset_allows_reconfigure(self):
        configure_logging(stream=StringIO())
        reset_logging()
        assert logging.getLogger("fulfillment_kernel").handlers == []
