import enum
from dataclasses import dataclass
from typing import Optional


class RequestStatus(str, enum.Enum):
    REQUESTED = "접수중"
    ORDERING = "접수완료"
    COMPLETED_CONFIRMED = "발주완료(납기확인)"
    COMPLETED_PENDING = "발주완료(납기미정)"
    FINISHED = "처리완료"
    CANCELLED = "접수취소"

    @classmethod
    def parse(cls, value) -> "RequestStatus":
        """Accept either the stored label or the member name."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        for status in cls:
            if text == status.value or text.upper() == status.name:
                return status
        raise ValueError(f"unknown request status: {value!r}")

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.FINISHED, RequestStatus.CANCELLED)

    @property
    def is_completed(self) -> bool:
        return self in (RequestStatus.COMPLETED_CONFIRMED, RequestStatus.COMPLETED_PENDING)


class UserRole(str, enum.Enum):
    REQUESTER = "신청자"
    ADMIN = "관리자"

    @classmethod
    def parse(cls, value) -> "UserRole":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        if text == cls.ADMIN.value or text.lower() == "admin":
            return cls.ADMIN
        return cls.REQUESTER


@dataclass(frozen=True)
class UserSummary:
    """Identity carried by a signed session token."""

    id: str
    name: str
    role: UserRole
    team: str = ""
    employee_code: str = ""
    region: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class UserAccount:
    user_id: str
    password_hash: str
    name: str
    employee_code: str = ""
    team: str = ""
    region: str = ""
    role: UserRole = UserRole.REQUESTER
    active: bool = True

    def summary(self) -> UserSummary:
        return UserSummary(
            id=self.user_id,
            name=self.name,
            role=self.role,
            team=self.team,
            employee_code=self.employee_code,
            region=self.region,
        )


@dataclass(frozen=True)
class PartRequest:
    request_no: str
    request_date: str
    requester_id: str
    requester_name: str
    item_name: str
    quantity: int
    asset_no: str
    status: RequestStatus
    employee_code: str = ""
    team: str = ""
    region: str = ""
    model_name: str = ""
    serial_no: str = ""
    delivery_place: str = ""
    phone: str = ""
    company: str = ""
    remarks: str = ""
    photo_url: str = ""
    handler: str = ""
    handler_remarks: str = ""
    order_date: str = ""
    expected_delivery_date: str = ""
    receipt_date: str = ""
    last_modified: str = ""
    last_modified_by: str = ""

    @property
    def can_cancel(self) -> bool:
        return self.status == RequestStatus.REQUESTED

    @property
    def can_confirm_receipt(self) -> bool:
        return self.status.is_completed

    def is_owned_by(self, user_id: str) -> bool:
        return self.requester_id.strip() == str(user_id or "").strip()


@dataclass(frozen=True)
class DeliveryPlace:
    name: str
    team: str
    address: str = ""
    contact: str = ""
    manager: str = ""
    active: bool = True
    remarks: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return self.name.strip(), self.team.strip()


@dataclass(frozen=True)
class RegionCode:
    code: str
    name: str


@dataclass(frozen=True)
class TeamCode:
    code: str
    name: str
    region: str = ""


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: str
    action: str
    actor: str
    request_no: str = ""
    detail: str = ""


@dataclass(frozen=True)
class RequestFilters:
    requester_id: Optional[str] = None
    status: Optional[RequestStatus] = None
    asset_no: Optional[str] = None

    def matches(self, request: PartRequest) -> bool:
        if self.requester_id and request.requester_id.strip() != self.requester_id.strip():
            return False
        if self.status and request.status != self.status:
            return False
        if self.asset_no and request.asset_no.strip() != self.asset_no.strip():
            return False
        return True


# Editable columns per table; anything else is fixed at creation.
REQUEST_MUTABLE_FIELDS = frozenset(
    {
        "status",
        "handler",
        "handler_remarks",
        "order_date",
        "expected_delivery_date",
        "receipt_date",
        "last_modified",
        "last_modified_by",
    }
)

USER_MUTABLE_FIELDS = frozenset(
    {"password_hash", "name", "employee_code", "team", "region", "role", "active"}
)

DELIVERY_PLACE_MUTABLE_FIELDS = frozenset(
    {"name", "team", "address", "contact", "manager", "active", "remarks"}
)
