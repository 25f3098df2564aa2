"""
Application registry model (read-only to the job subsystem).
"""

from datetime import datetime

from sqlalchemy import TIMESTAMP, Boolean, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from dashboard_jobs.infra.database import Base


class Application(Base):
    """An application tracked by the dashboard."""

    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(
        String(100), nullable=False, unique=True, comment="Short application code"
    )
    name: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="Project name on the CI test dashboard"
    )
    watching: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Included in automatic E2E report generation",
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
