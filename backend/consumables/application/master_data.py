import csv
import io
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from consumables.application.ports import ConsumablesRepository, PasswordHasher
from consumables.application.use_cases import Clock
from consumables.domain.errors import InvalidRequest, PermissionDenied
from consumables.domain.models import (
    DeliveryPlace,
    RegionCode,
    TeamCode,
    UserAccount,
    UserRole,
    UserSummary,
)

logger = logging.getLogger(__name__)

DEFAULT_REGIONS = (RegionCode(code="SEL", name="서울"), RegionCode(code="BSN", name="부산"))
DEFAULT_HANDLERS = ("유하형", "김응규", "박유민", "손현우")


def _require_admin(user: UserSummary) -> None:
    if user is None or not user.is_admin:
        raise PermissionDenied("관리자만 접근할 수 있습니다.")


def _flag(value, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().upper() != "N"


@dataclass(frozen=True)
class CreateUserCommand:
    user_id: str
    name: str
    employee_code: str = ""
    team: str = ""
    region: str = ""
    role: UserRole = UserRole.REQUESTER
    active: bool = True
    password: Optional[str] = None


@dataclass(frozen=True)
class UpdateUserCommand:
    name: Optional[str] = None
    employee_code: Optional[str] = None
    team: Optional[str] = None
    region: Optional[str] = None
    role: Optional[UserRole] = None
    active: Optional[bool] = None
    password: Optional[str] = None


@dataclass(frozen=True)
class DeliveryPlaceCommand:
    name: Optional[str] = None
    team: Optional[str] = None
    address: Optional[str] = None
    contact: Optional[str] = None
    manager: Optional[str] = None
    active: Optional[bool] = None
    remarks: Optional[str] = None


class ListUsersUseCase:
    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(self, current_user: UserSummary) -> Sequence[UserAccount]:
        _require_admin(current_user)
        return await self._repository.list_users()


class CreateUserUseCase:
    def __init__(
        self,
        repository: ConsumablesRepository,
        hasher: PasswordHasher,
        default_password: str = "1234",
    ) -> None:
        self._repository = repository
        self._hasher = hasher
        self._default_password = default_password

    async def execute(self, command: CreateUserCommand, current_user: UserSummary) -> UserAccount:
        _require_admin(current_user)
        user_id = (command.user_id or "").strip()
        if not user_id:
            raise InvalidRequest("사용자 ID는 필수 입력 항목입니다.")
        if await self._repository.get_user(user_id) is not None:
            raise InvalidRequest("이미 존재하는 사용자 ID입니다.")

        password = (command.password or "").strip() or self._default_password
        account = UserAccount(
            user_id=user_id,
            password_hash=self._hasher.hash(password),
            name=(command.name or "").strip(),
            employee_code=(command.employee_code or "").strip(),
            team=(command.team or "").strip(),
            region=(command.region or "").strip(),
            role=UserRole.parse(command.role),
            active=_flag(command.active),
        )
        await self._repository.add_users([account])
        logger.info(f"User {user_id} created by {current_user.id}")
        return account


class UpdateUserUseCase:
    def __init__(self, repository: ConsumablesRepository, hasher: PasswordHasher) -> None:
        self._repository = repository
        self._hasher = hasher

    async def execute(
        self, user_id: str, command: UpdateUserCommand, current_user: UserSummary
    ) -> bool:
        _require_admin(current_user)
        changes = {}
        for name in ("name", "employee_code", "team", "region"):
            value = getattr(command, name)
            if value is not None:
                changes[name] = str(value).strip()
        if command.role is not None:
            changes["role"] = UserRole.parse(command.role)
        if command.active is not None:
            changes["active"] = _flag(command.active)
        if command.password:
            changes["password_hash"] = self._hasher.hash(command.password)
        return await self._repository.update_user(str(user_id).strip(), changes)


class ListDeliveryPlacesUseCase:
    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(
        self, team: Optional[str] = None, include_inactive: bool = False
    ) -> Sequence[DeliveryPlace]:
        return await self._repository.list_delivery_places(
            team=team or None, include_inactive=include_inactive
        )


class CreateDeliveryPlaceUseCase:
    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(
        self, command: DeliveryPlaceCommand, current_user: UserSummary
    ) -> DeliveryPlace:
        _require_admin(current_user)
        place = DeliveryPlace(
            name=(command.name or "").strip(),
            team=(command.team or "").strip(),
            address=(command.address or "").strip(),
            contact=(command.contact or "").strip(),
            manager=(command.manager or "").strip(),
            active=_flag(command.active),
            remarks=(command.remarks or "").strip(),
        )
        if not place.name:
            raise InvalidRequest("배송지명은 필수 입력 항목입니다.")
        await self._repository.add_delivery_places([place])
        return place


class UpdateDeliveryPlaceUseCase:
    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(
        self,
        original_name: str,
        original_team: str,
        command: DeliveryPlaceCommand,
        current_user: UserSummary,
    ) -> bool:
        _require_admin(current_user)
        if not original_name or not original_team:
            raise InvalidRequest("originalName, originalTeam 필요")
        changes = {}
        for name in ("name", "team", "address", "contact", "manager", "remarks"):
            value = getattr(command, name)
            if value is not None:
                changes[name] = str(value).strip()
        if command.active is not None:
            changes["active"] = _flag(command.active)
        return await self._repository.update_delivery_place(
            original_name.strip(), original_team.strip(), changes
        )


class ListRegionsUseCase:
    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(self) -> Sequence[RegionCode]:
        regions = await self._repository.list_regions()
        return list(regions) or list(DEFAULT_REGIONS)


class ListTeamsUseCase:
    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(self) -> Sequence[TeamCode]:
        return await self._repository.list_teams()


class ListHandlersUseCase:
    """Names of active administrators who can be assigned to a request."""

    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(self) -> Sequence[str]:
        users = await self._repository.list_users()
        names = [u.name or u.user_id for u in users if u.active and u.role == UserRole.ADMIN]
        return names or list(DEFAULT_HANDLERS)


# ==================== CSV IMPORT ====================


@dataclass(frozen=True)
class ImportSummary:
    users: int
    delivery_places: int
    skipped_users: int
    skipped_places: int


@dataclass(frozen=True)
class ImportResult:
    success: bool
    message: str
    imported: ImportSummary


def _split_rows(text: str) -> list[list[str]]:
    lines = [line.strip() for line in (text or "").splitlines()]
    lines = [line for line in lines if line]
    if len(lines) < 2:
        raise InvalidRequest("CSV에 헤더와 데이터가 필요합니다.")
    delimiter = "\t" if lines[0].count("\t") > lines[0].count(",") else ","
    reader = csv.reader(io.StringIO("\n".join(lines)), delimiter=delimiter)
    return [[cell.strip() for cell in row] for row in reader]


def _column(header: Sequence[str], match: Callable[[str], bool]) -> int:
    return next((i for i, h in enumerate(header) if match(h)), -1)


def _cell(cells: Sequence[str], index: int, fallback: Optional[int] = None, default: str = "") -> str:
    if 0 <= index < len(cells):
        return cells[index]
    if fallback is not None and 0 <= fallback < len(cells):
        return cells[fallback]
    return default


def is_delivery_format(header: Sequence[str]) -> bool:
    return any("배송지" in h and "명" in h for h in header) or (
        "소속팀" in header and ("주소" in header or "연락처" in header)
    )


def is_roster_format(header: Sequence[str]) -> bool:
    return any("기사명" in h or "사번" in h for h in header) and any(
        "배송지" in h or "수령지" in h for h in header
    )


class ImportMasterCsvUseCase:
    """Bulk insert delivery places or a driver roster from CSV text.

    Rows whose natural key (user id, or delivery place name and team) already
    exists are skipped, so importing the same file twice is harmless.
    """

    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(
        self, csv_text: str, default_password_hash: str, current_user: UserSummary
    ) -> ImportResult:
        _require_admin(current_user)
        rows = _split_rows(csv_text)
        header, body = rows[0], rows[1:]
        delivery_format = is_delivery_format(header)
        roster_format = is_roster_format(header)
        if not delivery_format and not roster_format:
            raise InvalidRequest("지원하지 않는 CSV 형식입니다.")

        user_ids = {u.user_id.strip() for u in await self._repository.list_users()}
        place_keys = {
            p.key for p in await self._repository.list_delivery_places(include_inactive=True)
        }
        new_users: list[UserAccount] = []
        new_places: list[DeliveryPlace] = []
        skipped_users = 0
        skipped_places = 0

        for cells in body:
            if not any(cells):
                continue
            if delivery_format:
                place = DeliveryPlace(
                    name=_cell(cells, _column(header, lambda h: "배송지" in h), 0),
                    team=_cell(cells, _column(header, lambda h: "소속" in h), 1),
                    address=_cell(cells, _column(header, lambda h: h == "주소"), 2),
                    contact=_cell(cells, _column(header, lambda h: h == "연락처"), 3),
                    manager=_cell(cells, _column(header, lambda h: h == "담당자"), 4),
                    active=_flag(_cell(cells, _column(header, lambda h: h == "활성화"), 5, "Y")),
                    remarks=_cell(cells, _column(header, lambda h: h == "비고"), 6),
                )
                if not place.name and not place.team:
                    continue
                if place.key in place_keys:
                    skipped_places += 1
                    continue
                place_keys.add(place.key)
                new_places.append(place)
                continue

            number = _cell(cells, 0)
            driver_name = _cell(cells, _column(header, lambda h: "기사명" in h), 1)
            employee_code = _cell(cells, _column(header, lambda h: "사번" in h), 2)
            user_id = (
                _cell(cells, _column(header, lambda h: "사용자" in h))
                or employee_code
                or number
            )
            team = _cell(cells, _column(header, lambda h: "파트" in h or "소속" in h), 4)
            place_name = _cell(
                cells, _column(header, lambda h: "배송지" in h or "수령지" in h), 6
            )
            if user_id and user_id not in user_ids:
                user_ids.add(user_id)
                new_users.append(
                    UserAccount(
                        user_id=user_id,
                        password_hash=default_password_hash or "",
                        name=driver_name or user_id,
                        employee_code=employee_code,
                        team=team,
                    )
                )
            elif user_id:
                skipped_users += 1
            if place_name and team:
                place = DeliveryPlace(name=place_name, team=team)
                if place.key in place_keys:
                    skipped_places += 1
                else:
                    place_keys.add(place.key)
                    new_places.append(place)

        if new_users:
            await self._repository.add_users(new_users)
        if new_places:
            await self._repository.add_delivery_places(new_places)
        logger.info(
            f"CSV import: {len(new_users)} users, {len(new_places)} delivery places "
            f"({skipped_users} users, {skipped_places} places skipped)"
        )
        return ImportResult(
            success=True,
            message=(
                f"기준정보가 등록되었습니다. (사용자: {len(new_users)}명, "
                f"배송지: {len(new_places)}개)"
            ),
            imported=ImportSummary(
                users=len(new_users),
                delivery_places=len(new_places),
                skipped_users=skipped_users,
                skipped_places=skipped_places,
            ),
        )


# ==================== MASTER FILE EXPORT ====================


@dataclass(frozen=True)
class MasterExport:
    content: bytes
    file_name: str


class ExportMasterFileUseCase:
    def __init__(self, repository: ConsumablesRepository, clock: Clock) -> None:
        self._repository = repository
        self._clock = clock

    async def execute(self, current_user: UserSummary) -> MasterExport:
        _require_admin(current_user)
        content = await self._repository.export_workbook()
        file_name = f"소모품발주_마스터_{self._clock().date().isoformat()}.xlsx"
        return MasterExport(content=content, file_name=file_name)
