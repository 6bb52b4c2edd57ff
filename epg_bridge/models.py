"""
SQLAlchemy ORM Models for EPG Bridge

This module defines the database models for upstream providers and the
streams selected from each provider's catalog.
"""
from datetime import datetime, timezone
from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class Provider(Base):
    """Upstream IPTV provider credentials and the short code clients log in with"""
    __tablename__ = "providers"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    short_code: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    url: Mapped[str] = mapped_column(String, nullable=False)
    username: Mapped[str] = mapped_column(String, nullable=False)
    password: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, short_code={self.short_code})>"


class Selection(Base):
    """Stream selected for a provider's playlist"""
    __tablename__ = "selections"

    provider_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("providers.id", ondelete="CASCADE"),
        primary_key=True
    )
    stream_id: Mapped[int] = mapped_column(Integer, primary_key=True)

    def __repr__(self) -> str:
        return f"<Selection(provider_id={self.provider_id}, stream_id={self.stream_id})>"
