"""Repository for payment persistence and store-level aggregation.

All SQL lives here; services talk to the store only through this class.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import ColumnElement, func, select, update
from sqlalchemy.engine import Row
from sqlalchemy.orm import Session, selectinload

from condo_finance.models import Condominium, Payment, PaymentKind, PaymentStatus, Unit
from condo_finance.services.money import ZERO, to_decimal

logger = logging.getLogger(__name__)

# Amount actually owed/collected: final_value, or base_value before it is computed
AMOUNT_DUE = func.coalesce(Payment.final_value, Payment.base_value)


@dataclass
class PaymentFilter:
    """Declarative payment filter; None fields are ignored."""

    condominium_id: int | None = None
    unit_id: int | None = None
    status: PaymentStatus | Sequence[PaymentStatus] | None = None
    kind: PaymentKind | None = None
    category: str | None = None
    due_from: date | None = None
    due_to: date | None = None
    due_before: date | None = None
    paid_from: date | None = None
    paid_to: date | None = None
    paid_before: date | None = None
    search: str | None = None
    exclude_canceled: bool = False

    def clauses(self) -> list[ColumnElement[bool]]:
        """Translate into SQLAlchemy WHERE clauses."""
        where: list[ColumnElement[bool]] = []
        if self.condominium_id is not None:
            where.append(Payment.condominium_id == self.condominium_id)
        if self.unit_id is not None:
            where.append(Payment.unit_id == self.unit_id)
        if self.status is not None:
            if isinstance(self.status, PaymentStatus):
                where.append(Payment.status == self.status)
            else:
                where.append(Payment.status.in_(list(self.status)))
        if self.kind is not None:
            where.append(Payment.kind == self.kind)
        if self.category is not None:
            where.append(Payment.category == self.category)
        if self.due_from is not None:
            where.append(Payment.due_date >= self.due_from)
        if self.due_to is not None:
            where.append(Payment.due_date <= self.due_to)
        if self.due_before is not None:
            where.append(Payment.due_date < self.due_before)
        if self.paid_from is not None:
            where.append(Payment.paid_date >= self.paid_from)
        if self.paid_to is not None:
            where.append(Payment.paid_date <= self.paid_to)
        if self.paid_before is not None:
            where.append(Payment.paid_date < self.paid_before)
        if self.search:
            where.append(Payment.description.icontains(self.search, autoescape=True))
        if self.exclude_canceled:
            where.append(Payment.status != PaymentStatus.CANCELED)
        return where


class PaymentRepository:
    """Repository for payment, unit and condominium lookups."""

    def __init__(self, db: Session):
        """Initialize repository with database session."""
        self.db = db

    # Lookups

    def get_by_id(self, payment_id: int, refresh: bool = False) -> Payment | None:
        """Get payment by ID.

        Args:
            payment_id: Payment ID
            refresh: Bypass the identity map and re-read the row from the store
        """
        stmt = select(Payment).where(Payment.id == payment_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_condominium(self, condominium_id: int) -> Condominium | None:
        return self.db.get(Condominium, condominium_id)

    def get_unit(self, unit_id: int) -> Unit | None:
        return self.db.get(Unit, unit_id)

    def list_units(self, condominium_id: int) -> list[Unit]:
        """Units of a condominium ordered by block and number."""
        stmt = (
            select(Unit)
            .where(Unit.condominium_id == condominium_id)
            .order_by(Unit.block, Unit.number)
        )
        return list(self.db.execute(stmt).scalars().all())

    def count_units(self, condominium_id: int) -> int:
        stmt = select(func.count(Unit.id)).where(Unit.condominium_id == condominium_id)
        return self.db.execute(stmt).scalar() or 0

    def find_many(
        self,
        filters: PaymentFilter,
        offset: int = 0,
        limit: int | None = None,
        order_by: Sequence[Any] = (Payment.due_date.desc(), Payment.id.desc()),
        with_unit: bool = False,
    ) -> list[Payment]:
        """Find payments matching filters with pagination and ordering."""
        stmt = select(Payment).where(*filters.clauses()).order_by(*order_by)
        if with_unit:
            stmt = stmt.options(selectinload(Payment.unit))
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def count(self, filters: PaymentFilter) -> int:
        stmt = select(func.count(Payment.id)).where(*filters.clauses())
        return self.db.execute(stmt).scalar() or 0

    # Aggregation

    def sum_amount(self, filters: PaymentFilter, column: Any = AMOUNT_DUE) -> Decimal:
        """SUM of an amount column (final_value with base_value fallback by default)."""
        stmt = select(func.sum(column)).where(*filters.clauses())
        return to_decimal(self.db.execute(stmt).scalar())

    def sum_by(
        self,
        group_columns: Sequence[Any],
        filters: PaymentFilter,
        column: Any = AMOUNT_DUE,
    ) -> list[Row]:
        """GROUP BY group_columns returning (*groups, total, count) rows."""
        stmt = (
            select(
                *group_columns,
                func.sum(column).label("total"),
                func.count(Payment.id).label("count"),
            )
            .where(*filters.clauses())
            .group_by(*group_columns)
        )
        return list(self.db.execute(stmt).all())

    def totals_by(self, group_columns: Sequence[Any], filters: PaymentFilter) -> dict[tuple, Decimal]:
        """sum_by collapsed into a {group tuple: total} dict."""
        width = len(group_columns)
        return {
            tuple(row[:width]): to_decimal(row[width]) if row[width] is not None else ZERO
            for row in self.sum_by(group_columns, filters)
        }

    # Mutations

    def add(self, payment: Payment) -> Payment:
        """Stage a new payment and flush to obtain its ID."""
        self.db.add(payment)
        self.db.flush()
        return payment

    def update_where_status(
        self,
        payment_id: int,
        expected_status: PaymentStatus,
        values: dict[str, Any],
    ) -> int:
        """Conditional update: only applies while the row still has expected_status.

        Returns:
            Number of rows updated (0 means the row changed or vanished)
        """
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        logger.debug(
            "Conditional update payment_id=%s expected_status=%s rows=%s",
            payment_id,
            expected_status.value,
            result.rowcount,
        )
        return result.rowcount

    def delete(self, payment: Payment) -> None:
        """Hard delete a payment row."""
        self.db.delete(payment)
        self.db.flush()


__all__ = ["AMOUNT_DUE", "PaymentFilter", "PaymentRepository"]
