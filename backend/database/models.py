"""
Relational Database Models - SQLAlchemy ORM
Same five tables as the workbook, with canonical column names
"""
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .connection import Base


# ==================== REQUEST MODEL ====================

class PartRequestRecord(Base):
    """Part requests - one row per request number"""
    __tablename__ = "part_requests"

    request_no: Mapped[str] = mapped_column(String(20), primary_key=True)
    request_date: Mapped[str] = mapped_column(String(30), nullable=False, default="", index=True)
    requester_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    requester_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    employee_code: Mapped[str] = mapped_column(String(50), default="")
    team: Mapped[str] = mapped_column(String(255), default="")
    region: Mapped[str] = mapped_column(String(255), default="")
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    model_name: Mapped[str] = mapped_column(String(255), default="")
    serial_no: Mapped[str] = mapped_column(String(255), default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    asset_no: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    delivery_place: Mapped[str] = mapped_column(String(255), default="")
    phone: Mapped[str] = mapped_column(String(50), default="")
    company: Mapped[str] = mapped_column(String(255), default="")
    remarks: Mapped[str] = mapped_column(Text, default="")
    photo_url: Mapped[str] = mapped_column(String(500), default="")
    status: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    handler: Mapped[str] = mapped_column(String(255), default="")
    handler_remarks: Mapped[str] = mapped_column(Text, default="")
    order_date: Mapped[str] = mapped_column(String(30), default="")
    expected_delivery_date: Mapped[str] = mapped_column(String(30), default="")
    receipt_date: Mapped[str] = mapped_column(String(30), default="")
    last_modified: Mapped[str] = mapped_column(String(30), default="")
    last_modified_by: Mapped[str] = mapped_column(String(255), default="")

    __table_args__ = (
        Index("idx_part_requests_requester_asset", "requester_id", "asset_no"),
    )


# ==================== USER MODEL ====================

class UserRecord(Base):
    """User accounts - deactivated, never deleted"""
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    password_hash: Mapped[str] = mapped_column(String(255), default="")
    name: Mapped[str] = mapped_column(String(255), default="")
    employee_code: Mapped[str] = mapped_column(String(50), default="")
    team: Mapped[str] = mapped_column(String(255), default="")
    region: Mapped[str] = mapped_column(String(255), default="")
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


# ==================== DELIVERY PLACE MODEL ====================

class DeliveryPlaceRecord(Base):
    """Delivery places - identified by (name, team)"""
    __tablename__ = "delivery_places"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    team: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    address: Mapped[str] = mapped_column(Text, default="")
    contact: Mapped[str] = mapped_column(String(100), default="")
    manager: Mapped[str] = mapped_column(String(255), default="")
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    remarks: Mapped[str] = mapped_column(Text, default="")

    __table_args__ = (
        UniqueConstraint("name", "team", name="uq_delivery_places_name_team"),
    )


# ==================== CODE MODEL ====================

class CodeRecord(Base):
    """Region and team codes, told apart by kind"""
    __tablename__ = "codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), default="")
    region: Mapped[str] = mapped_column(String(50), default="")
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    sort_order: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


# ==================== LOG MODEL ====================

class ActivityLogRecord(Base):
    """Audit trail - append only"""
    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    level: Mapped[str] = mapped_column(String(10), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    request_no: Mapped[str] = mapped_column(String(20), default="", index=True)
    actor: Mapped[str] = mapped_column(String(255), default="")
    detail: Mapped[str] = mapped_column(Text, default="")
