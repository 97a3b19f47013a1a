"""
Tests for SaleEngine.submit_sale.

Covers:
- Successful multi-line sales: stock decrements, lines, derived totals
- Request validation before any store access
- Stock validation in submission order, cumulative per item
- Unknown catalog items and parties
- All-or-nothing: rejected and aborted sales leave no trace
- Decrement race lost during application
- Persistence failures and retry
- Idempotency keys: replay and conflict
- Outcome logging
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from pos_ledger.domain.dtos import SaleLineRequest
from pos_ledger.domain.values import PaymentMethod
from pos_ledger.exceptions import (
    CatalogItemNotFoundError,
    IdempotencyConflictError,
    InsufficientStockError,
    InvalidSaleError,
    PartyNotFoundError,
    PersistenceFailureError,
)
from pos_ledger.services.inventory_accessor import InventoryAccessor
from pos_ledger.services.sale_engine import SaleEngine


def _line(item, quantity, price="2.50"):
    return {"item_id": item.id, "quantity": quantity, "unit_price": Decimal(price)}


def _recording_accessor():
    """Accessor subclass that records every stock call, plus the call log."""
    calls = []

    class RecordingAccessor(InventoryAccessor):
        def get_quantity(self, item_id):
            calls.append(("get", item_id))
            return super().get_quantity(item_id)

        def apply_delta(self, item_id, delta):
            calls.append(("apply", item_id, delta))
            return super().apply_delta(item_id, delta)

    return RecordingAccessor, calls


class TestSuccessfulSale:

    def test_multi_line_sale_commits(
        self, sale_engine, create_item, quantity_of, test_actor_id, deterministic_clock
    ):
        a = create_item(quantity=5)
        b = create_item(quantity=3)

        sale = sale_engine.submit_sale(
            [_line(a, 3, "4.50"), _line(b, 1, "12.00")],
            actor_id=test_actor_id,
            payment_method="card",
        )

        assert quantity_of(a.id) == 2
        assert quantity_of(b.id) == 2
        assert sale.payment_method is PaymentMethod.CARD
        assert sale.created_by_id == test_actor_id
        assert sale.created_at == deterministic_clock.now()
        assert sale.created_at.tzinfo is not None
        assert [(l.line_no, l.item_id, l.quantity) for l in sale.lines] == [
            (0, a.id, 3),
            (1, b.id, 1),
        ]
        assert sale.total_amount == Decimal("25.50")

    def test_defaults_to_cash_without_party(self, sale_engine, create_item, test_actor_id):
        item = create_item()
        sale = sale_engine.submit_sale([_line(item, 1)], actor_id=test_actor_id)
        assert sale.payment_method is PaymentMethod.CASH
        assert sale.party_id is None

    def test_line_request_objects(self, sale_engine, create_item, test_actor_id):
        item = create_item(quantity=2)
        sale = sale_engine.submit_sale(
            [SaleLineRequest(item_id=item.id, quantity=2, unit_price=Decimal("1.10"))],
            actor_id=test_actor_id,
        )
        assert sale.total_amount == Decimal("2.20")

    def test_actor_id_as_string(self, sale_engine, create_item, test_actor_id):
        item = create_item()
        sale = sale_engine.submit_sale([_line(item, 1)], actor_id=str(test_actor_id))
        assert sale.created_by_id == test_actor_id

    def test_sale_with_known_party(self, sale_engine, create_item, create_party, test_actor_id):
        item = create_item()
        party = create_party("Mrs. Okafor")

        sale = sale_engine.submit_sale([_line(item, 1)], actor_id=test_actor_id, party_id=party.id)

        assert sale.party_id == party.id

    def test_caller_price_kept_over_catalog_price(self, sale_engine, create_item, test_actor_id):
        item = create_item(price="9.99")
        sale = sale_engine.submit_sale([_line(item, 1, "7.00")], actor_id=test_actor_id)
        assert sale.lines[0].unit_price == Decimal("7.00")

    def test_same_item_on_two_lines(self, sale_engine, create_item, quantity_of, test_actor_id):
        item = create_item(quantity=5)
        sale_engine.submit_sale([_line(item, 2), _line(item, 3)], actor_id=test_actor_id)
        assert quantity_of(item.id) == 0

    def test_exact_decimal_total(self, sale_engine, create_item, test_actor_id):
        item = create_item(quantity=10)
        sale = sale_engine.submit_sale([_line(item, 3, "0.1")], actor_id=test_actor_id)
        assert sale.total_amount == Decimal("0.3")

    def test_to_dict(self, sale_engine, create_item, test_actor_id):
        item = create_item()
        sale = sale_engine.submit_sale([_line(item, 2, "1.25")], actor_id=test_actor_id)

        data = sale.to_dict()

        assert data["id"] == str(sale.id)
        assert data["total_amount"] == "2.50"
        assert data["lines"][0]["line_total"] == "2.50"
        assert data["payment_method"] == "cash"


class TestRequestValidation:

    def test_empty_lines_never_touch_the_store(self, session_factory, test_actor_id):
        opened = []

        def counting_factory():
            opened.append(1)
            return session_factory()

        engine = SaleEngine(counting_factory)

        with pytest.raises(InvalidSaleError) as exc_info:
            engine.submit_sale([], actor_id=test_actor_id)

        assert opened == []
        assert exc_info.value.code == "INVALID_SALE"
        assert exc_info.value.field_errors[0]["code"] == "EMPTY_SALE"

    def test_field_errors_carry_line_index(self, sale_engine, create_item, test_actor_id):
        item = create_item()
        with pytest.raises(InvalidSaleError) as exc_info:
            sale_engine.submit_sale(
                [_line(item, 1), {"item_id": item.id, "quantity": 0, "unit_price": "1"}],
                actor_id=test_actor_id,
            )
        assert exc_info.value.line_index == 1
        assert exc_info.value.field_errors[0]["line_index"] == 1

    def test_float_price_rejected(self, sale_engine, create_item, quantity_of, test_actor_id):
        item = create_item(quantity=5)
        with pytest.raises(InvalidSaleError):
            sale_engine.submit_sale(
                [{"item_id": item.id, "quantity": 1, "unit_price": 2.5}],
                actor_id=test_actor_id,
            )
        assert quantity_of(item.id) == 5

    def test_price_too_wide_for_storage_is_invalid(
        self, sale_engine, create_item, quantity_of, sale_count, test_actor_id
    ):
        item = create_item(quantity=5)
        with pytest.raises(InvalidSaleError) as exc_info:
            sale_engine.submit_sale([_line(item, 1, "1E+30")], actor_id=test_actor_id)

        assert exc_info.value.line_index == 0
        assert exc_info.value.field_errors[0]["code"] == "INVALID_UNIT_PRICE"
        assert quantity_of(item.id) == 5
        assert sale_count() == 0

    def test_unknown_payment_method(self, sale_engine, create_item, test_actor_id):
        item = create_item()
        with pytest.raises(InvalidSaleError):
            sale_engine.submit_sale([_line(item, 1)], actor_id=test_actor_id, payment_method="iou")

    @pytest.mark.parametrize("actor_id", ["nobody", None, 7])
    def test_bad_actor_id(self, sale_engine, create_item, actor_id):
        item = create_item()
        with pytest.raises(InvalidSaleError) as exc_info:
            sale_engine.submit_sale([_line(item, 1)], actor_id=actor_id)
        assert exc_info.value.field_errors[0]["field"] == "actor_id"

    def test_blank_idempotency_key(self, sale_engine, create_item, test_actor_id):
        item = create_item()
        with pytest.raises(InvalidSaleError):
            sale_engine.submit_sale([_line(item, 1)], actor_id=test_actor_id, idempotency_key="  ")


class TestStockValidation:

    def test_partial_drain_then_refusal(self, sale_engine, create_item, quantity_of, sale_count, test_actor_id):
        a = create_item(quantity=5)
        b = create_item(quantity=1)

        sale_engine.submit_sale([_line(a, 3), _line(b, 1)], actor_id=test_actor_id)
        assert quantity_of(a.id) == 2

        with pytest.raises(InsufficientStockError) as exc_info:
            sale_engine.submit_sale([_line(a, 3)], actor_id=test_actor_id)

        err = exc_info.value
        assert (err.item_id, err.requested, err.available, err.line_index) == (a.id, 3, 2, 0)
        assert quantity_of(a.id) == 2
        assert sale_count() == 1

    def test_first_failing_line_blamed_and_later_lines_unread(
        self, session_factory, create_item, test_actor_id
    ):
        ok = create_item(quantity=5)
        short = create_item(quantity=1)
        never_read = create_item(quantity=0)
        accessor_cls, calls = _recording_accessor()
        engine = SaleEngine(session_factory, accessor_factory=accessor_cls)

        with pytest.raises(InsufficientStockError) as exc_info:
            engine.submit_sale(
                [_line(ok, 1), _line(short, 2), _line(never_read, 1)],
                actor_id=test_actor_id,
            )

        assert exc_info.value.line_index == 1
        assert exc_info.value.item_id == short.id
        assert calls == [("get", ok.id), ("get", short.id)]

    def test_nothing_applied_until_all_lines_validate(
        self, session_factory, create_item, test_actor_id
    ):
        a = create_item(quantity=5)
        b = create_item(quantity=5)
        accessor_cls, calls = _recording_accessor()
        engine = SaleEngine(session_factory, accessor_factory=accessor_cls)

        engine.submit_sale([_line(a, 1), _line(b, 2)], actor_id=test_actor_id)

        assert calls == [
            ("get", a.id),
            ("get", b.id),
            ("apply", a.id, -1),
            ("apply", b.id, -2),
        ]

    def test_cumulative_demand_for_repeated_item(
        self, sale_engine, create_item, quantity_of, test_actor_id
    ):
        item = create_item(quantity=5)

        with pytest.raises(InsufficientStockError) as exc_info:
            sale_engine.submit_sale([_line(item, 3), _line(item, 3)], actor_id=test_actor_id)

        assert exc_info.value.line_index == 1
        assert exc_info.value.requested == 3
        assert exc_info.value.available == 2
        assert quantity_of(item.id) == 5

    def test_unknown_item_is_invalid_sale(
        self, sale_engine, create_item, quantity_of, sale_count, test_actor_id
    ):
        item = create_item(quantity=5)
        missing = uuid4()

        with pytest.raises(InvalidSaleError) as exc_info:
            sale_engine.submit_sale(
                [_line(item, 1), {"item_id": missing, "quantity": 1, "unit_price": "1"}],
                actor_id=test_actor_id,
            )

        assert exc_info.value.line_index == 1
        assert exc_info.value.item_id == missing
        assert isinstance(exc_info.value.__cause__, CatalogItemNotFoundError)
        assert quantity_of(item.id) == 5
        assert sale_count() == 0

    def test_unknown_party_is_invalid_sale(self, sale_engine, create_item, quantity_of, test_actor_id):
        item = create_item(quantity=5)

        with pytest.raises(InvalidSaleError) as exc_info:
            sale_engine.submit_sale([_line(item, 1)], actor_id=test_actor_id, party_id=uuid4())

        assert isinstance(exc_info.value.__cause__, PartyNotFoundError)
        assert quantity_of(item.id) == 5


class TestAtomicity:

    def test_lost_race_during_apply(
        self, session_factory, create_item, quantity_of, sale_count, sale_line_count, test_actor_id
    ):
        """Validation saw plenty of stock but the conditional decrement refuses."""
        a = create_item(quantity=5)
        b = create_item(quantity=1)

        class StaleReadAccessor(InventoryAccessor):
            def get_quantity(self, item_id):
                return 1_000

        engine = SaleEngine(session_factory, accessor_factory=StaleReadAccessor)

        with pytest.raises(InsufficientStockError) as exc_info:
            engine.submit_sale([_line(a, 2), _line(b, 3)], actor_id=test_actor_id)

        assert exc_info.value.line_index == 1
        assert exc_info.value.available == 1
        # line 0's decrement was rolled back with the rest
        assert quantity_of(a.id) == 5
        assert quantity_of(b.id) == 1
        assert sale_count() == 0
        assert sale_line_count() == 0

    def test_persistence_failure_rolls_back_and_retry_commits_once(
        self, session_factory, create_item, quantity_of, sale_count, test_actor_id
    ):
        a = create_item(quantity=5)
        b = create_item(quantity=5)
        failures = {"left": 1}

        class FlakyAccessor(InventoryAccessor):
            def apply_delta(self, item_id, delta):
                if item_id == b.id and failures["left"]:
                    failures["left"] -= 1
                    raise OperationalError("UPDATE catalog_items", {}, Exception("disk I/O error"))
                return super().apply_delta(item_id, delta)

        engine = SaleEngine(session_factory, accessor_factory=FlakyAccessor)
        lines = [_line(a, 2), _line(b, 1)]

        with pytest.raises(PersistenceFailureError) as exc_info:
            engine.submit_sale(lines, actor_id=test_actor_id)

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert quantity_of(a.id) == 5
        assert sale_count() == 0

        engine.submit_sale(lines, actor_id=test_actor_id)

        assert quantity_of(a.id) == 3
        assert quantity_of(b.id) == 4
        assert sale_count() == 1

    def test_unexpected_exception_is_persistence_failure(
        self, session_factory, create_item, quantity_of, test_actor_id
    ):
        item = create_item(quantity=5)

        class BrokenAccessor(InventoryAccessor):
            def apply_delta(self, item_id, delta):
                raise RuntimeError("injected fault")

        engine = SaleEngine(session_factory, accessor_factory=BrokenAccessor)

        with pytest.raises(PersistenceFailureError) as exc_info:
            engine.submit_sale([_line(item, 1)], actor_id=test_actor_id)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.code == "PERSISTENCE_FAILURE"
        assert quantity_of(item.id) == 5


class TestIdempotency:

    def test_same_key_replays_without_second_decrement(
        self, sale_engine, create_item, quantity_of, sale_count, test_actor_id, captured_logs
    ):
        item = create_item(quantity=5)
        lines = [_line(item, 2)]

        first = sale_engine.submit_sale(lines, actor_id=test_actor_id, idempotency_key="till-1-0001")
        second = sale_engine.submit_sale(lines, actor_id=test_actor_id, idempotency_key="till-1-0001")

        assert second.id == first.id
        assert second.total_amount == first.total_amount
        assert second.idempotency_key == "till-1-0001"
        assert quantity_of(item.id) == 3
        assert sale_count() == 1
        assert any(
            r["message"] == "sale_replayed" and r["outcome"] == "replayed"
            for r in captured_logs()
        )

    def test_equal_price_spelling_replays(self, sale_engine, create_item, sale_count, test_actor_id):
        item = create_item(quantity=5)
        sale_engine.submit_sale([_line(item, 1, "2.50")], actor_id=test_actor_id, idempotency_key="k")
        sale_engine.submit_sale([_line(item, 1, "2.5")], actor_id=test_actor_id, idempotency_key="k")
        assert sale_count() == 1

    def test_same_key_different_payload_conflicts(
        self, sale_engine, create_item, quantity_of, test_actor_id
    ):
        item = create_item(quantity=5)
        sale_engine.submit_sale([_line(item, 1)], actor_id=test_actor_id, idempotency_key="k-1")

        with pytest.raises(IdempotencyConflictError) as exc_info:
            sale_engine.submit_sale([_line(item, 2)], actor_id=test_actor_id, idempotency_key="k-1")

        assert exc_info.value.idempotency_key == "k-1"
        assert exc_info.value.expected_hash != exc_info.value.received_hash
        assert quantity_of(item.id) == 4

    def test_sales_without_key_are_independent(self, sale_engine, create_item, sale_count, test_actor_id):
        item = create_item(quantity=5)
        sale_engine.submit_sale([_line(item, 1)], actor_id=test_actor_id)
        sale_engine.submit_sale([_line(item, 1)], actor_id=test_actor_id)
        assert sale_count() == 2

    def test_store_failure_during_replay_lookup_is_persistence_failure(
        self, session_factory, create_item, quantity_of, sale_count, test_actor_id, captured_logs
    ):
        """The key collides, then the store fails while re-reading the winner."""
        item = create_item(quantity=5)
        opened = []

        def failing_second_session():
            opened.append(1)
            if len(opened) > 1:
                raise OperationalError("SELECT sale_transactions", {}, Exception("database is locked"))
            return session_factory()

        class CollidingAccessor(InventoryAccessor):
            def apply_delta(self, item_id, delta):
                raise IntegrityError(
                    "INSERT INTO sale_transactions", {}, Exception("duplicate idempotency_key")
                )

        engine = SaleEngine(failing_second_session, accessor_factory=CollidingAccessor)

        with pytest.raises(PersistenceFailureError) as exc_info:
            engine.submit_sale([_line(item, 1)], actor_id=test_actor_id, idempotency_key="k-1")

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert len(opened) == 2
        assert quantity_of(item.id) == 5
        assert sale_count() == 0
        aborted = next(r for r in captured_logs() if r["message"] == "sale_aborted")
        assert aborted["idempotency_key"] == "k-1"

    def test_collision_without_key_is_persistence_failure(
        self, session_factory, create_item, quantity_of, test_actor_id
    ):
        item = create_item(quantity=5)

        class CollidingAccessor(InventoryAccessor):
            def apply_delta(self, item_id, delta):
                raise IntegrityError("UPDATE catalog_items", {}, Exception("constraint failed"))

        engine = SaleEngine(session_factory, accessor_factory=CollidingAccessor)

        with pytest.raises(PersistenceFailureError) as exc_info:
            engine.submit_sale([_line(item, 1)], actor_id=test_actor_id)

        assert isinstance(exc_info.value.__cause__, IntegrityError)
        assert quantity_of(item.id) == 5


class TestOutcomeLogging:

    def test_committed(self, sale_engine, create_item, test_actor_id, captured_logs):
        item = create_item()
        sale = sale_engine.submit_sale(
            [_line(item, 1)], actor_id=test_actor_id, idempotency_key="till-4-0001"
        )

        logs = captured_logs()
        started = next(r for r in logs if r["message"] == "sale_submission_started")
        committed = next(r for r in logs if r["message"] == "sale_committed")
        assert started["actor_id"] == str(test_actor_id)
        assert started["line_count"] == 1
        assert committed["outcome"] == "committed"
        assert committed["sale_id"] == str(sale.id)
        assert committed["actor_id"] == str(test_actor_id)
        assert committed["idempotency_key"] == "till-4-0001"
        assert any(
            r["message"] == "stock_delta_applied" and r.get("sale_id") == str(sale.id)
            for r in logs
        )

    def test_replayed_carries_submission_context(
        self, sale_engine, create_item, test_actor_id, captured_logs
    ):
        item = create_item()
        for _ in range(2):
            sale_engine.submit_sale([_line(item, 1)], actor_id=test_actor_id, idempotency_key="k-7")

        replayed = next(r for r in captured_logs() if r["message"] == "sale_replayed")
        assert replayed["actor_id"] == str(test_actor_id)
        assert replayed["idempotency_key"] == "k-7"

    def test_rejected(self, sale_engine, create_item, test_actor_id, captured_logs):
        item = create_item(quantity=0)
        with pytest.raises(InsufficientStockError):
            sale_engine.submit_sale([_line(item, 1)], actor_id=test_actor_id)

        rejected = next(r for r in captured_logs() if r["message"] == "sale_rejected")
        assert rejected["outcome"] == "rejected"
        assert rejected["error_code"] == "INSUFFICIENT_STOCK"
        assert rejected["line_index"] == 0

    def test_aborted(self, session_factory, create_item, test_actor_id, captured_logs):
        item = create_item()

        class BrokenAccessor(InventoryAccessor):
            def apply_delta(self, item_id, delta):
                raise RuntimeError("injected fault")

        with pytest.raises(PersistenceFailureError):
            SaleEngine(session_factory, accessor_factory=BrokenAccessor).submit_sale(
                [_line(item, 1)], actor_id=test_actor_id
            )

        logs = captured_logs()
        aborted = next(r for r in logs if r["message"] == "sale_aborted")
        assert aborted["outcome"] == "aborted"
        assert aborted["level"] == "ERROR"
        assert any(r["message"] == "transaction_rolled_back" for r in logs)


class TestClock:

    def test_created_at_from_injected_clock(self, session_factory, create_item, test_actor_id):
        from pos_ledger.domain.clock import DeterministicClock

        when = datetime(2025, 3, 14, 9, 30, tzinfo=UTC)
        engine = SaleEngine(session_factory, clock=DeterministicClock(when))
        item = create_item()

        sale = engine.submit_sale([_line(item, 1)], actor_id=test_actor_id)

        assert sale.created_at == when
