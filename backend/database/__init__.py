"""
Database package: settings and the optional relational store
"""
from .config import STORAGE_DATABASE, STORAGE_WORKBOOK, Settings, settings
from .connection import (
    Base,
    close_db,
    get_engine,
    get_session_maker,
    init_db,
)
from .models import (
    ActivityLogRecord,
    CodeRecord,
    DeliveryPlaceRecord,
    PartRequestRecord,
    UserRecord,
)

__all__ = [
    # Config
    "Settings",
    "settings",
    "STORAGE_DATABASE",
    "STORAGE_WORKBOOK",
    # Connection
    "Base",
    "get_engine",
    "get_session_maker",
    "init_db",
    "close_db",
    # Models
    "PartRequestRecord",
    "UserRecord",
    "DeliveryPlaceRecord",
    "CodeRecord",
    "ActivityLogRecord",
]
