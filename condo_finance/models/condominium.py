"""Condominium ORM model: the billing scope of units and payments."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condo_finance.models import Base, BaseModel


class Condominium(Base, BaseModel):
    """Model representing a condominium."""

    __tablename__ = "condominiums"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Condominium name",
    )
    tax_id: Mapped[str | None] = mapped_column(
        String(18),
        nullable=True,
        unique=True,
        comment="CNPJ (XX.XXX.XXX/XXXX-XX)",
    )
    address: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Street address",
    )

    # Relationships
    units: Mapped[list["Unit"]] = relationship(  # noqa: F821
        "Unit",
        back_populates="condominium",
        passive_deletes="all",
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="condominium",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return f"<Condominium(id={self.id}, name={self.name!r})>"


__all__ = ["Condominium"]
