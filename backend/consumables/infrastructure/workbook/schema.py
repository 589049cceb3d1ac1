"""
Workbook sheet layouts and the translation between localized column headers
and canonical field names. This is the only place that knows the on-disk
labels; everything above it works with the dataclasses in ``domain.models``.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from openpyxl.utils.datetime import from_excel

from consumables.domain.dates import format_timestamp
from consumables.domain.errors import StorageError
from consumables.domain.models import (
    DeliveryPlace,
    LogEntry,
    PartRequest,
    RegionCode,
    RequestStatus,
    TeamCode,
    UserAccount,
    UserRole,
)


@dataclass(frozen=True)
class SheetSchema:
    name: str
    columns: Sequence[tuple[str, str]]  # (header, field) in canonical order
    aliases: Mapping[str, str] = field(default_factory=dict)
    date_fields: frozenset = frozenset()

    @property
    def headers(self) -> list[str]:
        return [header for header, _ in self.columns]

    def header_for(self, field_name: str) -> str:
        for header, name in self.columns:
            if name == field_name:
                return header
        raise KeyError(field_name)

    def field_for(self, header) -> str:
        """Exact header, then the typo alias table, then pass-through."""
        text = str(header).strip() if header is not None else ""
        text = self.aliases.get(text, text)
        for known, name in self.columns:
            if known == text:
                return name
        return text


REQUESTS = SheetSchema(
    name="신청내역",
    columns=(
        ("신청번호", "request_no"),
        ("신청일시", "request_date"),
        ("신청자이메일", "requester_id"),
        ("신청자이름", "requester_name"),
        ("기사코드", "employee_code"),
        ("소속팀", "team"),
        ("지역", "region"),
        ("품명", "item_name"),
        ("모델명", "model_name"),
        ("시리얼번호", "serial_no"),
        ("수량", "quantity"),
        ("관리번호", "asset_no"),
        ("수령지", "delivery_place"),
        ("전화번호", "phone"),
        ("업체명", "company"),
        ("비고", "remarks"),
        ("사진URL", "photo_url"),
        ("상태", "status"),
        ("접수담당자", "handler"),
        ("담당자비고", "handler_remarks"),
        ("발주일시", "order_date"),
        ("예상납기일", "expected_delivery_date"),
        ("수령확인일시", "receipt_date"),
        ("최종수정일시", "last_modified"),
        ("최종수정자", "last_modified_by"),
    ),
    aliases={
        "신청자이머": "신청자이메일",
        "신청자 아이디": "신청자이메일",
        "접수담당지": "접수담당자",
        "수령확인": "수령확인일시",
        "최종수정일": "최종수정일시",
    },
    date_fields=frozenset(
        {"request_date", "order_date", "expected_delivery_date", "receipt_date", "last_modified"}
    ),
)

USERS = SheetSchema(
    name="사용자관리",
    columns=(
        ("사용자ID", "user_id"),
        ("비밀번호해시", "password_hash"),
        ("이름", "name"),
        ("기사코드", "employee_code"),
        ("소속팀", "team"),
        ("지역", "region"),
        ("역할", "role"),
        ("활성화", "active"),
    ),
)

CODES = SheetSchema(
    name="코드관리",
    columns=(
        ("구분", "kind"),
        ("코드", "code"),
        ("이름", "name"),
        ("지역", "region"),
        ("사용여부", "active"),
        ("정렬순서", "sort_order"),
    ),
)

DELIVERY_PLACES = SheetSchema(
    name="배송지관리",
    columns=(
        ("배송지명", "name"),
        ("소속팀", "team"),
        ("주소", "address"),
        ("연락처", "contact"),
        ("담당자", "manager"),
        ("활성화", "active"),
        ("비고", "remarks"),
    ),
)

LOGS = SheetSchema(
    name="로그",
    columns=(
        ("일시", "timestamp"),
        ("레벨", "level"),
        ("액션", "action"),
        ("신청번호", "request_no"),
        ("사용자", "actor"),
        ("상세내용", "detail"),
    ),
)

ALL_SHEETS = (REQUESTS, USERS, CODES, DELIVERY_PLACES, LOGS)

CODE_KIND_REGION = "지역"
CODE_KIND_TEAM = "팀"


# ==================== CELL CONVERSION ====================


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Y" if value else "N"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return format_timestamp(value)
    return str(value)


def date_cell_text(value: Any) -> str:
    """Render a date column, converting spreadsheet serial numbers."""
    if value is None or value == "":
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        try:
            converted = from_excel(value)
        except (ValueError, OverflowError):
            return cell_text(value)
        if isinstance(converted, datetime):
            return format_timestamp(converted)
    return cell_text(value)


def flag_cell(value: bool) -> str:
    return "Y" if value else "N"


def is_flag_on(value: Any) -> bool:
    return cell_text(value).strip().upper() == "Y"


def _quantity(value: Any) -> int:
    text = cell_text(value).strip()
    try:
        return int(float(text))
    except ValueError:
        return 0


# ==================== ROW <-> RECORD ====================


def request_from_row(row: Mapping[str, Any]) -> PartRequest:
    text = {name: cell_text(row.get(name)) for _, name in REQUESTS.columns}
    try:
        status = RequestStatus.parse(text["status"])
    except ValueError as e:
        raise StorageError(
            f"신청번호 {text['request_no']}의 상태값을 읽을 수 없습니다: {text['status']!r}"
        ) from e
    text.update(status=status, quantity=_quantity(row.get("quantity")))
    return PartRequest(**text)


def request_to_row(request: PartRequest) -> dict[str, Any]:
    row = {name: getattr(request, name) for _, name in REQUESTS.columns}
    row["status"] = request.status.value
    return row


def user_from_row(row: Mapping[str, Any]) -> UserAccount:
    return UserAccount(
        user_id=cell_text(row.get("user_id")).strip(),
        password_hash=cell_text(row.get("password_hash")).strip(),
        name=cell_text(row.get("name")).strip(),
        employee_code=cell_text(row.get("employee_code")).strip(),
        team=cell_text(row.get("team")).strip(),
        region=cell_text(row.get("region")).strip(),
        role=UserRole.parse(cell_text(row.get("role"))),
        active=is_flag_on(row.get("active")),
    )


def user_to_row(user: UserAccount) -> dict[str, Any]:
    return {
        "user_id": user.user_id,
        "password_hash": user.password_hash,
        "name": user.name,
        "employee_code": user.employee_code,
        "team": user.team,
        "region": user.region,
        "role": user.role.value,
        "active": flag_cell(user.active),
    }


def delivery_place_from_row(row: Mapping[str, Any]) -> DeliveryPlace:
    return DeliveryPlace(
        name=cell_text(row.get("name")).strip(),
        team=cell_text(row.get("team")).strip(),
        address=cell_text(row.get("address")),
        contact=cell_text(row.get("contact")),
        manager=cell_text(row.get("manager")),
        active=is_flag_on(row.get("active")),
        remarks=cell_text(row.get("remarks")),
    )


def delivery_place_to_row(place: DeliveryPlace) -> dict[str, Any]:
    return {
        "name": place.name,
        "team": place.team,
        "address": place.address,
        "contact": place.contact,
        "manager": place.manager,
        "active": flag_cell(place.active),
        "remarks": place.remarks,
    }


def log_entry_to_row(entry: LogEntry) -> dict[str, Any]:
    return {
        "timestamp": entry.timestamp,
        "level": entry.level,
        "action": entry.action,
        "request_no": entry.request_no,
        "actor": entry.actor,
        "detail": entry.detail,
    }


def region_to_row(region: RegionCode, sort_order: Optional[int] = None) -> dict[str, Any]:
    return {
        "kind": CODE_KIND_REGION,
        "code": region.code,
        "name": region.name,
        "region": "",
        "active": "Y",
        "sort_order": sort_order if sort_order is not None else "",
    }


def team_to_row(team: TeamCode, sort_order: Optional[int] = None) -> dict[str, Any]:
    return {
        "kind": CODE_KIND_TEAM,
        "code": team.code,
        "name": team.name,
        "region": team.region,
        "active": "Y",
        "sort_order": sort_order if sort_order is not None else "",
    }


def encode_changes(schema: SheetSchema, changes: Mapping[str, Any]) -> dict[str, Any]:
    """Turn canonical field values into cell values for ``schema``."""
    encoded = {}
    for name, value in changes.items():
        if isinstance(value, (RequestStatus, UserRole)):
            value = value.value
        elif isinstance(value, bool):
            value = flag_cell(value)
        encoded[name] = value
    return encoded
