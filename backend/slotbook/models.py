from __future__ import annotations

from datetime import date, datetime, time
from enum import StrEnum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Date, DateTime, Integer, String, Text, Time


# SQLite only autoincrements an INTEGER primary key.
PrimaryKey = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


class ReservationStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that hold a slot.
ACTIVE_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Venue(Base):
    __tablename__ = "venues"
    __table_args__ = (
        CheckConstraint("opening_time < closing_time", name="chk_venues_hours"),
        CheckConstraint("slot_duration_minutes > 0", name="chk_venues_slot_duration"),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    opening_time: Mapped[time] = mapped_column(Time, nullable=False)
    closing_time: Mapped[time] = mapped_column(Time, nullable=False)
    slot_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    tables: Mapped[list["RestaurantTable"]] = relationship(back_populates="venue")


class RestaurantTable(Base):
    __tablename__ = "restaurant_tables"
    __table_args__ = (
        CheckConstraint("capacity >= 1", name="chk_tables_capacity"),
        UniqueConstraint("venue_id", "table_number", name="uq_tables_venue_number"),
        Index("idx_tables_venue", "venue_id"),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    venue_id: Mapped[int] = mapped_column(ForeignKey("venues.id"), nullable=False)
    table_number: Mapped[str] = mapped_column(String(50), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    venue: Mapped["Venue"] = relationship(back_populates="tables")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("guest_count >= 1", name="chk_res_guest_count"),
        CheckConstraint("start_time < end_time", name="chk_res_time"),
        UniqueConstraint("active_slot_key", name="uq_res_active_slot"),
        Index("idx_res_slot", "table_id", "reservation_date", "start_time"),
        Index("idx_res_venue_date", "venue_id", "reservation_date"),
        Index("idx_res_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    venue_id: Mapped[int] = mapped_column(ForeignKey("venues.id"), nullable=False)
    table_id: Mapped[int] = mapped_column(ForeignKey("restaurant_tables.id"), nullable=False)
    reservation_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    member_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(
            ReservationStatus,
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
        ),
        nullable=False,
        default=ReservationStatus.CONFIRMED,
    )
    # "{table_id}:{date}:{HH:MM}" while pending/confirmed, NULL otherwise.
    active_slot_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class SlotPresence(Base):
    __tablename__ = "slot_presence"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "venue_id",
            "table_id",
            "slot_date",
            "slot_time",
            name="uq_presence_viewer_slot",
        ),
        Index("idx_presence_slot", "table_id", "slot_date", "slot_time"),
        Index("idx_presence_expires", "expires_at"),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    venue_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    table_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    slot_time: Mapped[time] = mapped_column(Time, nullable=False)
    viewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (UniqueConstraint("member_number", name="uq_members_number"),)

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    member_number: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
