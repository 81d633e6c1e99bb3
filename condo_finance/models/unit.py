"""Unit ORM model for billable sub-entities of a condominium."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condo_finance.models import Base, BaseModel


class UnitType(str, Enum):
    """Unit classification."""

    APARTMENT = "apartment"
    HOUSE = "house"
    OFFICE = "office"
    STORE = "store"
    OTHER = "other"


class Unit(Base, BaseModel):
    """Model representing an apartment, store or other billable unit.

    Area drives the proportional split of condominium expenses.
    """

    __tablename__ = "units"

    condominium_id: Mapped[int] = mapped_column(
        ForeignKey("condominiums.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Owning condominium",
    )
    block: Mapped[str | None] = mapped_column(
        String(10),
        nullable=True,
        comment="Block/tower identifier",
    )
    number: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="Unit number within the block",
    )
    unit_type: Mapped[UnitType] = mapped_column(
        SQLEnum(UnitType),
        nullable=False,
        default=UnitType.APARTMENT,
        comment="apartment, house, office, store or other",
    )
    area: Mapped[Decimal | None] = mapped_column(
        Numeric(8, 2),
        nullable=True,
        comment="Private area in square meters",
    )

    # Relationships
    condominium: Mapped["Condominium"] = relationship(  # noqa: F821
        "Condominium",
        back_populates="units",
        foreign_keys=[condominium_id],
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="unit",
        passive_deletes="all",
    )

    __table_args__ = (Index("idx_unit_condominium_number", "condominium_id", "block", "number"),)

    @property
    def label(self) -> str:
        """Display label such as 'A-101', or just the number without a block."""
        return f"{self.block}-{self.number}" if self.block else self.number

    def __repr__(self) -> str:
        return f"<Unit(id={self.id}, condominium_id={self.condominium_id}, label={self.label!r})>"


__all__ = ["Unit", "UnitType"]
