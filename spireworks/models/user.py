from datetime import datetime

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spireworks.models.base import Base


class User(Base):
    __tablename__ = "users"

    external_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)  # e.g. "demo-user"
    display_name: Mapped[str | None] = mapped_column(String(255))
    settings_json: Mapped[dict | None] = mapped_column(JSON, default=dict)  # stored Preferences
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    study_sessions: Mapped[list["StudySession"]] = relationship(back_populates="user", cascade="all, delete-orphan")  # noqa: F821
    practice_results: Mapped[list["PracticeResult"]] = relationship(back_populates="user", cascade="all, delete-orphan")  # noqa: F821
    achievements: Mapped[list["Achievement"]] = relationship(back_populates="user", cascade="all, delete-orphan")  # noqa: F821
