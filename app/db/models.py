from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSON_DOCUMENT = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


# -------------------------
# Tables
# -------------------------


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(300), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    rooms: Mapped[list[Room]] = relationship(back_populates="parent_property", cascade="all, delete-orphan")
    images: Mapped[list[Image]] = relationship(back_populates="parent_property", cascade="all, delete-orphan")


class Room(Base):
    """
    A bookable unit inside a property. Imported rooms keep the listing URL they
    were scraped from and the optional calendar feed used for availability.
    """

    __tablename__ = "rooms"
    __table_args__ = (Index("ix_rooms_property_order", "property_id", "order"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[float | None] = mapped_column(Float)
    capacity: Mapped[int | None] = mapped_column(Integer)

    airbnb_url: Mapped[str | None] = mapped_column(Text)
    ical_url: Mapped[str | None] = mapped_column(Text)
    amenities: Mapped[list[str]] = mapped_column(JSON_DOCUMENT, nullable=False, default=list)

    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    parent_property: Mapped[Property] = relationship(back_populates="rooms")
    images: Mapped[list[Image]] = relationship(
        back_populates="room", cascade="all, delete-orphan", order_by="Image.order"
    )


class Image(Base):
    """An image attached either to a property or to one of its rooms."""

    __tablename__ = "images"
    __table_args__ = (
        Index("ix_images_property_id", "property_id"),
        Index("ix_images_room_id", "room_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    # remote URL the image was imported from; set when url points at a stored copy
    source_url: Mapped[str | None] = mapped_column(Text)

    property_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"))
    room_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"))

    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    parent_property: Mapped[Property | None] = relationship(back_populates="images")
    room: Mapped[Room | None] = relationship(back_populates="images")


class ImportProgress(Base):
    """
    Progress of one listing import run, polled by the dashboard.
    Only the newest open (completed = false) row per property is read or written.
    """

    __tablename__ = "import_progress"
    __table_args__ = (Index("ix_import_progress_property_open", "property_id", "completed", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # not a foreign key: progress rows may outlive or precede the property row
    property_id: Mapped[str] = mapped_column(String(64), nullable=False)

    stage: Mapped[str] = mapped_column(String(40), nullable=False, default="idle")
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    logs: Mapped[list[dict[str, Any]]] = mapped_column(JSON_DOCUMENT, nullable=False, default=list)
    error: Mapped[str | None] = mapped_column(Text)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
