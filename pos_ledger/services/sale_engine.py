"""
SaleEngine -- Validates and commits multi-line sales against shared stock.

Responsibility:
    Turns a sale request into either one committed SaleTransaction (header,
    ordered lines and every matching stock decrement) or no durable change at
    all.  This is the only component that opens a transaction scope for a
    sale.

Architecture position:
    Services -- orchestrator.  Depends on the pure request validator, the
    InventoryAccessor and the sale selector's DTO conversion.  Receives its
    session factory and clock by injection; there is no module-level engine.

Invariants enforced:
    - All-or-nothing: header, lines and decrements share one transaction
      scope.  Any exception inside it rolls everything back.
    - No oversell: stock is checked line by line in submission order, with
      quantities already claimed by earlier lines of the same sale counted
      against the item, and then decremented with the accessor's conditional
      UPDATE.
    - Deterministic blame: the first failing line is reported and later lines
      are never read.
    - Totals are derived from lines, never stored.
    - Idempotency: a key already committed with the same payload returns the
      committed sale without touching stock.

Failure modes:
    - InvalidSaleError: malformed request (raised before any store access),
      unknown catalog item or unknown party.
    - InsufficientStockError: a line asks for more than remains, either at
      validation time or because a concurrent sale won the decrement race.
    - IdempotencyConflictError: the key was used for a different payload.
    - PersistenceFailureError: anything else went wrong inside the scope.
      Nothing was written; resubmitting the identical request is safe.

Outcomes (logged as SaleOutcome):
    COMMITTED  -- sale and decrements durable
    REPLAYED   -- idempotency key matched an earlier commit
    REJECTED   -- invalid request, insufficient stock or key conflict
    ABORTED    -- store failure, scope rolled back
"""

from collections.abc import Callable
from typing import Any, NoReturn
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from pos_ledger.db.engine import transaction_scope
from pos_ledger.domain.clock import Clock, SystemClock
from pos_ledger.domain.dtos import SaleRecord, SaleRequest
from pos_ledger.domain.sale_validator import build_sale_request
from pos_ledger.domain.values import SaleOutcome
from pos_ledger.exceptions import (
    CatalogItemNotFoundError,
    IdempotencyConflictError,
    InsufficientStockError,
    InvalidSaleError,
    PartyNotFoundError,
    PersistenceFailureError,
    SaleError,
)
from pos_ledger.logging_config import LogContext, get_logger
from pos_ledger.models.party import Party
from pos_ledger.models.sale import SaleLine, SaleTransaction
from pos_ledger.selectors.sale_selector import SaleSelector, to_sale_record
from pos_ledger.services.inventory_accessor import InventoryAccessor
from pos_ledger.utils.hashing import hash_payload

logger = get_logger("services.sale_engine")


class SaleEngine:
    """
    Entry point for recording sales.

    Contract:
        ``submit_sale`` either returns the committed SaleRecord or raises a
        SaleError subclass.  A raised error means nothing was written.

    Non-goals:
        - No automatic retries.  PersistenceFailureError is returned to the
          caller, who decides whether to resubmit.
        - No cross-submission locking; per-item serialization comes from the
          accessor's conditional UPDATE.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        accessor_factory: Callable[[Session], InventoryAccessor] = InventoryAccessor,
    ):
        """
        Args:
            session_factory: Opens one session per submission.
            clock: Source of the commit timestamp.  Defaults to SystemClock.
            accessor_factory: Builds the stock accessor for a session.
                Overridable so tests can observe or fault stock access.
        """
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._accessor_factory = accessor_factory

    def submit_sale(
        self,
        lines: Any,
        *,
        actor_id: UUID | str,
        party_id: UUID | str | None = None,
        payment_method: Any = None,
        idempotency_key: str | None = None,
    ) -> SaleRecord:
        """
        Validate and commit one sale.

        Args:
            lines: Non-empty sequence of SaleLineRequest or mappings with
                item_id, quantity and unit_price.
            actor_id: Already-authorized user recording the sale.
            party_id: Optional customer.
            payment_method: "cash" (default), "card" or "online".
            idempotency_key: Optional client retry token.

        Returns:
            The committed (or previously committed, on replay) SaleRecord.

        Raises:
            InvalidSaleError, InsufficientStockError, IdempotencyConflictError,
            PersistenceFailureError.
        """
        actor = self._parse_actor(actor_id)
        request = self._build_request(lines, party_id, payment_method)

        payload_hash = None
        if idempotency_key is not None:
            if not isinstance(idempotency_key, str) or not idempotency_key.strip():
                self._reject_invalid(
                    "idempotency_key must be a non-empty string",
                    [{"field": "idempotency_key", "message": "must be a non-empty string"}],
                )
            payload_hash = hash_payload(request.to_payload())

        with LogContext.bind(actor_id=str(actor), idempotency_key=idempotency_key):
            logger.info(
                "sale_submission_started",
                extra={
                    "line_count": len(request.lines),
                    "payment_method": request.payment_method.value,
                    "party_id": str(request.party_id) if request.party_id else None,
                },
            )
            try:
                record, outcome = self._submit(request, actor, idempotency_key, payload_hash)
            except SaleError as exc:
                self._log_failure(exc)
                raise
            except IntegrityError as exc:
                record, outcome = self._recover_from_collision(exc, idempotency_key, payload_hash)
            except Exception as exc:
                self._abort(f"{type(exc).__name__}: {exc}", exc)

            self._log_success(record, outcome)
            return record

    # ------------------------------------------------------------------
    # Input shape
    # ------------------------------------------------------------------

    def _parse_actor(self, actor_id: Any) -> UUID:
        if isinstance(actor_id, UUID):
            return actor_id
        if isinstance(actor_id, str):
            try:
                return UUID(actor_id)
            except ValueError as exc:
                self._reject_invalid(
                    f"actor_id is not a valid UUID: {actor_id!r}",
                    [{"field": "actor_id", "message": "must be a UUID"}],
                    cause=exc,
                )
        self._reject_invalid(
            f"actor_id must be a UUID, got {type(actor_id).__name__}",
            [{"field": "actor_id", "message": "must be a UUID"}],
        )

    def _build_request(self, lines: Any, party_id: Any, payment_method: Any) -> SaleRequest:
        request, result = build_sale_request(lines, party_id, payment_method)
        if not result.is_valid:
            first = result.errors[0]
            line_index = (first.details or {}).get("line_index")
            self._reject_invalid(
                first.message,
                [e.to_dict() for e in result.errors],
                line_index=line_index,
            )
        return request

    def _reject_invalid(
        self,
        reason: str,
        field_errors: list[dict[str, Any]],
        line_index: int | None = None,
        cause: Exception | None = None,
    ) -> NoReturn:
        exc = InvalidSaleError(reason, field_errors=field_errors, line_index=line_index)
        self._log_failure(exc)
        raise exc from cause

    # ------------------------------------------------------------------
    # Transaction scope
    # ------------------------------------------------------------------

    def _submit(
        self,
        request: SaleRequest,
        actor_id: UUID,
        idempotency_key: str | None,
        payload_hash: str | None,
    ) -> tuple[SaleRecord, SaleOutcome]:
        with transaction_scope(self._session_factory) as session:
            if idempotency_key is not None:
                existing = SaleSelector(session).find_by_idempotency_key(idempotency_key)
                if existing is not None:
                    self._check_payload(existing, idempotency_key, payload_hash)
                    return to_sale_record(existing), SaleOutcome.REPLAYED

            self._check_party(session, request)

            accessor = self._accessor_factory(session)
            self._validate_stock(accessor, request)

            sale = SaleTransaction(
                id=uuid4(),
                party_id=request.party_id,
                payment_method=request.payment_method,
                created_at=self._clock.now(),
                created_by_id=actor_id,
                idempotency_key=idempotency_key,
                payload_hash=payload_hash,
                lines=[
                    SaleLine(
                        line_no=index,
                        item_id=line.item_id,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                    )
                    for index, line in enumerate(request.lines)
                ],
            )
            session.add(sale)
            session.flush()

            with LogContext.bind(sale_id=str(sale.id)):
                self._apply_stock(accessor, request)

            session.flush()
            record = to_sale_record(sale)
        return record, SaleOutcome.COMMITTED

    def _check_party(self, session: Session, request: SaleRequest) -> None:
        if request.party_id is None:
            return
        if session.get(Party, request.party_id) is None:
            cause = PartyNotFoundError(str(request.party_id))
            raise InvalidSaleError(
                f"unknown party {request.party_id}",
                field_errors=[{"field": "party_id", "message": str(cause)}],
            ) from cause

    def _validate_stock(self, accessor: InventoryAccessor, request: SaleRequest) -> None:
        """Check every line in order; the first line that cannot be met raises."""
        claimed: dict[UUID, int] = {}
        for index, line in enumerate(request.lines):
            try:
                on_hand = accessor.get_quantity(line.item_id)
            except CatalogItemNotFoundError as exc:
                raise InvalidSaleError(
                    f"unknown catalog item {line.item_id}",
                    field_errors=[{
                        "field": f"lines[{index}].item_id",
                        "message": str(exc),
                        "line_index": index,
                    }],
                    line_index=index,
                    item_id=line.item_id,
                ) from exc

            available = on_hand - claimed.get(line.item_id, 0)
            if line.quantity > available:
                raise InsufficientStockError(
                    item_id=line.item_id,
                    requested=line.quantity,
                    available=available,
                    line_index=index,
                )
            claimed[line.item_id] = claimed.get(line.item_id, 0) + line.quantity

            logger.debug(
                "sale_line_validated",
                extra={
                    "line_index": index,
                    "item_id": str(line.item_id),
                    "quantity": line.quantity,
                    "available": available,
                },
            )

    def _apply_stock(self, accessor: InventoryAccessor, request: SaleRequest) -> None:
        for index, line in enumerate(request.lines):
            try:
                accessor.apply_delta(line.item_id, -line.quantity)
            except InsufficientStockError as exc:
                # Lost the race to a concurrent sale since validation
                raise InsufficientStockError(
                    item_id=line.item_id,
                    requested=line.quantity,
                    available=exc.available,
                    line_index=index,
                ) from exc
            except CatalogItemNotFoundError as exc:
                raise InvalidSaleError(
                    f"unknown catalog item {line.item_id}",
                    line_index=index,
                    item_id=line.item_id,
                ) from exc

    # ------------------------------------------------------------------
    # Idempotency
    # ------------------------------------------------------------------

    def _check_payload(
        self,
        existing: SaleTransaction,
        idempotency_key: str,
        payload_hash: str | None,
    ) -> None:
        if existing.payload_hash != payload_hash:
            raise IdempotencyConflictError(
                idempotency_key=idempotency_key,
                expected_hash=existing.payload_hash or "",
                received_hash=payload_hash or "",
            )

    def _recover_from_collision(
        self,
        exc: IntegrityError,
        idempotency_key: str | None,
        payload_hash: str | None,
    ) -> tuple[SaleRecord, SaleOutcome]:
        """A concurrent submission may have committed the same key first."""
        if idempotency_key is not None:
            try:
                replay = self._find_replay(idempotency_key, payload_hash)
            except SaleError as replay_exc:
                self._log_failure(replay_exc)
                raise
            except Exception as replay_exc:
                self._abort(
                    f"replay lookup failed: {type(replay_exc).__name__}: {replay_exc}",
                    replay_exc,
                )
            if replay is not None:
                return replay, SaleOutcome.REPLAYED
        self._abort(f"integrity error: {exc.orig}", exc)

    def _find_replay(self, idempotency_key: str, payload_hash: str | None) -> SaleRecord | None:
        """Re-read after a unique-key collision; None if the key is still free."""
        with transaction_scope(self._session_factory) as session:
            existing = SaleSelector(session).find_by_idempotency_key(idempotency_key)
            if existing is None:
                return None
            self._check_payload(existing, idempotency_key, payload_hash)
            return to_sale_record(existing)

    # ------------------------------------------------------------------
    # Outcome logging
    # ------------------------------------------------------------------

    def _log_success(self, record: SaleRecord, outcome: SaleOutcome) -> None:
        logger.info(
            "sale_committed" if outcome is SaleOutcome.COMMITTED else "sale_replayed",
            extra={
                "outcome": outcome.value,
                "sale_id": str(record.id),
                "line_count": len(record.lines),
                "total_amount": str(record.total_amount),
            },
        )

    def _abort(self, reason: str, cause: BaseException) -> NoReturn:
        failure = PersistenceFailureError(reason)
        self._log_failure(failure)
        raise failure from cause

    def _log_failure(self, exc: SaleError) -> None:
        if isinstance(exc, PersistenceFailureError):
            logger.error(
                "sale_aborted",
                extra={"outcome": SaleOutcome.ABORTED.value, "error_code": exc.code},
                exc_info=exc,
            )
            return
        logger.info(
            "sale_rejected",
            extra={
                "outcome": SaleOutcome.REJECTED.value,
                "error_code": exc.code,
                "reason": str(exc),
                "line_index": getattr(exc, "line_index", None),
            },
        )
