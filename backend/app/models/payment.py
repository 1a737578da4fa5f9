"""Payment: money received from a client against a lot."""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    client_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("clients.id"), nullable=False, index=True
    )
    lot_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("lots.id"))

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    # Full Payment | Down Payment | Installment | Partial Payment
    payment_type: Mapped[str] = mapped_column(String(30), default="Installment")
    # Completed | Pending | Failed | Overdue
    status: Mapped[str] = mapped_column(String(20), default="Pending", index=True)
    method: Mapped[str | None] = mapped_column(String(50))
    reference: Mapped[str | None] = mapped_column(String(100))
    payment_date: Mapped[date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
