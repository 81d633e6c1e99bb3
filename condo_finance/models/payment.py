"""Payment ORM model: a single revenue or expense charge of a condominium."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condo_finance.models import Base, BaseModel


class PaymentKind(str, Enum):
    """Direction of money flow for the condominium."""

    REVENUE = "revenue"
    EXPENSE = "expense"


class PaymentStatus(str, Enum):
    """Lifecycle status of a payment.

    pending is initial; paid and canceled are terminal; overdue is reached
    from pending once the due date has passed.
    """

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.CANCELED})


class Payment(Base, BaseModel):
    """Model representing a charge owed to or by a condominium.

    final_value is base_value plus accrued interest and penalty; it is only
    recomputed by status transitions and never after cancellation.
    """

    __tablename__ = "payments"

    # Foreign keys
    condominium_id: Mapped[int | None] = mapped_column(
        ForeignKey("condominiums.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Condominium the charge belongs to",
    )
    unit_id: Mapped[int | None] = mapped_column(
        ForeignKey("units.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Unit billed, if any",
    )

    # Charge details
    description: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="What the charge is for",
    )
    kind: Mapped[PaymentKind] = mapped_column(
        SQLEnum(PaymentKind),
        nullable=False,
        index=True,
        comment="revenue or expense",
    )
    category: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="Free-form category (e.g. 'maintenance', 'reserve_fund')",
    )
    base_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Original charge amount",
    )
    final_value: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="base_value + interest_amount + penalty_amount",
    )
    interest_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Accrued late interest",
    )
    penalty_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Flat late penalty",
    )
    charges_as_of: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="Day the current interest and penalty were computed for",
    )
    due_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
        comment="Due date",
    )
    paid_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="Settlement date",
    )
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
        comment="pending, paid, overdue or canceled",
    )
    payment_method: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="pix, boleto, transfer, ...",
    )
    receipt_reference: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Receipt file reference or number",
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Audit (opaque ids from the identity collaborator)
    created_by: Mapped[int | None] = mapped_column(nullable=True)
    updated_by: Mapped[int | None] = mapped_column(nullable=True)

    # Relationships
    condominium: Mapped["Condominium | None"] = relationship(  # noqa: F821
        "Condominium",
        back_populates="payments",
        foreign_keys=[condominium_id],
    )
    unit: Mapped["Unit | None"] = relationship(  # noqa: F821
        "Unit",
        back_populates="payments",
        foreign_keys=[unit_id],
    )

    __table_args__ = (
        Index("idx_payment_condominium_status", "condominium_id", "status"),
        Index("idx_payment_condominium_due", "condominium_id", "due_date"),
        Index("idx_payment_condominium_paid", "condominium_id", "paid_date"),
    )

    @property
    def amount_due(self) -> Decimal:
        """final_value, falling back to base_value when not computed yet."""
        return self.final_value if self.final_value is not None else self.base_value

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, kind={self.kind}, status={self.status}, "
            f"base_value={self.base_value}, final_value={self.final_value}, "
            f"due_date={self.due_date})>"
        )


__all__ = ["Payment", "PaymentKind", "PaymentStatus", "TERMINAL_STATUSES"]
