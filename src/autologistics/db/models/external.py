"""Tables owned by neighbouring services.

Vehicle, client, address and collection-fee records are maintained by the
CRUD side of the platform. They are mapped here so the lifecycle core can read
them (and write the vehicle status cache and timeline), but they are flagged
``external`` and never created or altered by this project's migrations.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from decimal import Decimal  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Date, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from autologistics.db.models.base import Base, TimestampTZ, UUIDColumn, UUIDPrimaryKey

EXTERNAL = {"external": True}


class Vehicle(Base):
    """Vehicle record. ``status`` is a display label cached from the lifecycle."""

    __tablename__ = "vehicles"
    __table_args__ = {"info": EXTERNAL}

    vehicle_id: Mapped[UUIDPrimaryKey]
    client_id: Mapped[UUIDColumn]
    plate: Mapped[str | None] = mapped_column(String(20), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str | None] = mapped_column(String(100), nullable=True)


class VehicleHistory(Base):
    """Human-readable timeline entry shown on the vehicle page."""

    __tablename__ = "vehicle_history"
    __table_args__ = {"info": EXTERNAL}

    vehicle_history_id: Mapped[UUIDPrimaryKey]
    vehicle_id: Mapped[UUIDColumn]
    status: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[TimestampTZ]


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = {"info": EXTERNAL}

    client_id: Mapped[UUIDPrimaryKey]
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Address(Base):
    """Client address. The formatted label is for display only."""

    __tablename__ = "addresses"
    __table_args__ = {"info": EXTERNAL}

    address_id: Mapped[UUIDPrimaryKey]
    client_id: Mapped[UUIDColumn]
    street: Mapped[str | None] = mapped_column(String(255), nullable=True)
    number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)

    @property
    def label(self) -> str:
        parts = [p for p in (self.street, self.number) if p]
        head = ", ".join(parts)
        if self.city:
            return f"{head} - {self.city}" if head else self.city
        return head


class CollectionFee(Base):
    """Priced collection fee for a client address.

    Several historical rows may exist for the same address; only some of
    them carry a positive amount.
    """

    __tablename__ = "collection_fees"
    __table_args__ = {"info": EXTERNAL}

    collection_fee_id: Mapped[UUIDPrimaryKey]
    client_id: Mapped[UUIDColumn]
    address_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    fee_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    collection_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]


__all__ = [
    "Address",
    "Client",
    "CollectionFee",
    "Vehicle",
    "VehicleHistory",
]
