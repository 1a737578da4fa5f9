"""SiteContent: one editable section of the public website."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class SiteContent(Base):
    __tablename__ = "site_content"

    # hero | about | contact | pricing
    section: Mapped[str] = mapped_column(String(50), primary_key=True)
    content: Mapped[dict] = mapped_column(JSON, default=dict)
    updated_by: Mapped[str | None] = mapped_column(String(36))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
