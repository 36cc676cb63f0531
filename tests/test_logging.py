"""
Tests for coldstore_kernel.logging_config.

Covers:
- JSON envelope, extras and value serialization
- Ledger error flattening (code, status, structured attributes)
- LogContext set / bind / for_operation
- configure_logging idempotence and level handling
- Context carried by ledger operations and retried units of work
"""

import json
import logging
from datetime import date
from io import StringIO
from uuid import uuid4

import pytest

from coldstore_kernel.db.engine import run_in_transaction
from coldstore_kernel.domain.dtos import DeliveryLineRequest
from coldstore_kernel.exceptions import InsufficientStockError, TransientError
from coldstore_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)
from coldstore_kernel.models.receipt import VoucherType


@pytest.fixture
def json_stream():
    """Install a fresh JSON handler and return its stream."""
    reset_logging()
    stream = StringIO()
    configure_logging(stream=stream)
    yield stream
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestEnvelope:

    def test_one_json_object_per_record(self, json_stream):
        log = get_logger("services.receipt")
        log.info("receipt_created", extra={"voucher_number": 7, "total_bags": 100})
        log.warning("reversal_source_missing")

        first, second = _records(json_stream)
        assert first["message"] == "receipt_created"
        assert first["logger"] == "coldstore_kernel.services.receipt"
        assert first["level"] == "INFO"
        assert (first["voucher_number"], first["total_bags"]) == (7, 100)
        assert second["level"] == "WARNING"
        assert {"ts", "level", "logger", "message"} <= set(second)

    def test_debug_dropped_at_default_level(self, json_stream):
        get_logger("x").debug("stock_decremented")
        assert _records(json_stream) == []

    def test_values_serialized(self, json_stream):
        receipt_id = uuid4()
        get_logger("x").info(
            "delivery_created",
            extra={
                "receipt_id": receipt_id,
                "extraction_date": date(2024, 3, 1),
                "voucher_type": VoucherType.DELIVERY,
            },
        )
        (record,) = _records(json_stream)
        assert record["receipt_id"] == str(receipt_id)
        assert record["extraction_date"] == "2024-03-01"
        assert record["voucher_type"] == "DELIVERY"

    def test_extra_does_not_override_context(self, json_stream):
        with LogContext.bind(facility_id="fac-1"):
            get_logger("x").info("m", extra={"facility_id": "other"})
        (record,) = _records(json_stream)
        assert record["facility_id"] == "fac-1"


class TestExceptionFields:

    def test_ledger_error_flattened(self, json_stream):
        receipt_id = uuid4()
        try:
            raise InsufficientStockError(receipt_id, "Pukhraj", "Goli", 70, 60)
        except InsufficientStockError:
            get_logger("x").warning("insufficient_stock", exc_info=True)

        (record,) = _records(json_stream)
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_status"] == "conflict"
        assert record["exc_retryable"] is False
        assert record["exc_receipt_id"] == str(receipt_id)
        assert (record["exc_requested"], record["exc_available"]) == (70, 60)
        assert "traceback" in record

    def test_transient_error_marked_retryable(self, json_stream):
        try:
            raise TransientError("deadlock detected")
        except TransientError:
            get_logger("x").error("aborted", exc_info=True)
        (record,) = _records(json_stream)
        assert record["exc_retryable"] is True
        assert record["exc_status"] == "unavailable"

    def test_plain_exception_has_no_ledger_fields(self, json_stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("x").error("failed", exc_info=True)
        (record,) = _records(json_stream)
        assert (record["exc_type"], record["exc_message"]) == ("ValueError", "boom")
        assert "exc_code" not in record


class TestLogContext:

    def test_fields(self):
        assert CONTEXT_FIELDS == ("correlation_id", "actor_id", "facility_id", "voucher_id")

    def test_set_get_clear(self):
        LogContext.set(correlation_id="c", voucher_id="v", actor_id=None)
        assert LogContext.get_all() == {"correlation_id": "c", "voucher_id": "v"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_nests_and_restores(self):
        LogContext.set(facility_id="outer")
        with LogContext.bind(facility_id="inner", voucher_id="v1"):
            assert LogContext.get_all() == {"facility_id": "inner", "voucher_id": "v1"}
        assert LogContext.get_all() == {"facility_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(voucher_id="v1"):
                raise RuntimeError("x")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="delivery_id"):
            LogContext.set(delivery_id="x")
        with pytest.raises(TypeError):
            with LogContext.bind(receipt_id="x"):
                pass

    def test_for_operation_stringifies(self):
        actor, facility, voucher = uuid4(), uuid4(), uuid4()
        with LogContext.for_operation(actor, facility, voucher):
            assert LogContext.get_all() == {
                "actor_id": str(actor),
                "facility_id": str(facility),
                "voucher_id": str(voucher),
            }
        with LogContext.for_operation(actor, facility):
            assert "voucher_id" not in LogContext.get_all()


class TestConfigureLogging:

    def test_second_call_is_ignored(self, json_stream):
        other = StringIO()
        configure_logging(stream=other, level=logging.DEBUG)
        root = logging.getLogger("coldstore_kernel")
        assert len(root.handlers) == 1
        assert root.level == logging.INFO
        assert root.propagate is False

    def test_level_name_accepted(self):
        reset_logging()
        try:
            configure_logging(level="warning", stream=StringIO())
            assert logging.getLogger("coldstore_kernel").level == logging.WARNING
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)

    def test_reset_detaches_handler(self, json_stream):
        reset_logging()
        get_logger("x").warning("after_reset")
        assert json_stream.getvalue() == ""


class TestOperationContext:

    def test_delivery_created_carries_voucher(
        self, make_receipt, delivery_ledger, caller, facility_id, depositor_id,
        test_actor_id, captured_logs,
    ):
        receipt = make_receipt()
        delivery = delivery_ledger.create_delivery(
            caller, facility_id, depositor_id,
            [DeliveryLineRequest(receipt.id, "Pukhraj", "Goli", 10)],
        )
        records = captured_logs()
        created = next(r for r in records if r["message"] == "delivery_created")
        assert created["voucher_id"] == str(delivery.id)
        assert created["actor_id"] == str(test_actor_id)
        assert created["facility_id"] == str(facility_id)
        decremented = next(r for r in records if r["message"] == "stock_decremented")
        assert "voucher_id" not in decremented
        assert LogContext.get_all() == {}

    def test_receipt_created_carries_voucher(self, make_receipt, captured_logs):
        receipt = make_receipt()
        record = next(r for r in captured_logs() if r["message"] == "receipt_created")
        assert record["voucher_id"] == str(receipt.id)

    def test_delete_delivery_carries_voucher(
        self, make_receipt, delivery_ledger, caller, facility_id, depositor_id, captured_logs,
    ):
        receipt = make_receipt()
        delivery = delivery_ledger.create_delivery(
            caller, facility_id, depositor_id,
            [DeliveryLineRequest(receipt.id, "Pukhraj", "Goli", 10)],
        )
        delivery_ledger.delete_delivery(caller, delivery.id)
        record = next(r for r in captured_logs() if r["message"] == "delivery_deleted")
        assert record["voucher_id"] == str(delivery.id)

    def test_retries_share_correlation_id(self, db_tables, captured_logs):
        calls = []

        def work(session):
            calls.append(LogContext.get_all()["correlation_id"])
            if len(calls) < 2:
                raise TransientError("lock timeout")
            return "ok"

        assert run_in_transaction(work, backoff_seconds=0) == "ok"
        assert calls[0] == calls[1]
        retry = next(r for r in captured_logs() if r["message"] == "transaction_retry")
        assert retry["correlation_id"] == calls[0]
        assert "correlation_id" not in LogContext.get_all()

    def test_caller_correlation_id_kept(self, db_tables):
        with LogContext.bind(correlation_id="req-42"):
            seen = run_in_transaction(lambda session: LogContext.get_all()["correlation_id"])
        assert seen == "req-42"
