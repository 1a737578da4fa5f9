"""Burial: an interment record tied to a lot."""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Burial(Base):
    __tablename__ = "burials"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    lot_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("lots.id"), nullable=False, index=True
    )
    deceased_name: Mapped[str] = mapped_column(String(255), nullable=False)
    age: Mapped[int | None] = mapped_column(Integer)
    burial_date: Mapped[date] = mapped_column(Date, nullable=False)
    burial_time: Mapped[str | None] = mapped_column(String(10))  # HH:MM
    family_name: Mapped[str | None] = mapped_column(String(255))
    cause_of_death: Mapped[str | None] = mapped_column(String(255))
    funeral_home: Mapped[str | None] = mapped_column(String(255))
    attendees: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
