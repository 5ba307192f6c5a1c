"""
GroupLedger - Intercompany Transaction Model

Derived from journal lines sharing an intercompany match id; never uploaded.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class IntercompanyTransaction(BaseModel):
    """Intercompany transaction between two group entities."""

    __tablename__ = "intercompany_transactions"

    period: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    from_entity: Mapped[str] = mapped_column(String(255), nullable=False, comment="Selling entity")
    to_entity: Mapped[str] = mapped_column(String(255), nullable=False, comment="Buying entity")
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    match_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    is_eliminated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    elimination_level: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Lowest common ancestor under which the elimination is recognized",
    )
    extra: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
