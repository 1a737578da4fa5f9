"""Lot: a burial plot inside a cemetery section."""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Lot(Base):
    __tablename__ = "lots"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    lot_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    section: Mapped[str] = mapped_column(String(100), nullable=False)
    # Standard | Premium
    lot_type: Mapped[str] = mapped_column(String(20), default="Standard")
    # Available | Reserved | Occupied | Maintenance
    status: Mapped[str] = mapped_column(String(20), default="Available", index=True)
    price: Mapped[float] = mapped_column(Float, default=0)
    dimensions: Mapped[str | None] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)

    owner_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("clients.id"))
    occupant_name: Mapped[str | None] = mapped_column(String(255))
    date_occupied: Mapped[date | None] = mapped_column(Date)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
