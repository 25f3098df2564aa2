"""
Notification model.
"""

from datetime import datetime

from sqlalchemy import TIMESTAMP, Boolean, CheckConstraint, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from dashboard_jobs.infra.database import Base


class Notification(Base):
    """A dashboard notification created by the notification job."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="info", comment="success|error|info|warning"
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "type IN ('success', 'error', 'info', 'warning')",
            name="notifications_type_check",
        ),
    )
