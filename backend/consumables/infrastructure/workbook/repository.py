import asyncio
import logging
from typing import Any, Mapping, Optional, Sequence

from consumables.application.ports import ConsumablesRepository
from consumables.domain.errors import StorageError
from consumables.domain.models import (
    DELIVERY_PLACE_MUTABLE_FIELDS,
    REQUEST_MUTABLE_FIELDS,
    USER_MUTABLE_FIELDS,
    DeliveryPlace,
    LogEntry,
    PartRequest,
    RegionCode,
    RequestFilters,
    TeamCode,
    UserAccount,
)
from consumables.infrastructure.workbook import schema
from consumables.infrastructure.workbook.schema import cell_text, encode_changes
from consumables.infrastructure.workbook.store import WorkbookStore

logger = logging.getLogger(__name__)


def _check_fields(changes: Mapping[str, Any], allowed: frozenset, table: str) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"fields not editable on {table}: {sorted(unknown)}")


def _matches(field_name: str, value: str):
    target = str(value).strip()
    return lambda record: cell_text(record.get(field_name)).strip() == target


def parse_code_rows(rows: Sequence[tuple]) -> tuple[list[RegionCode], list[TeamCode]]:
    """Read regions and teams from the code sheet.

    Sheets with a ``구분`` header carry the kind on every row. Older sheets
    hold region rows, a blank separator row, then team rows; without the
    separator no teams can be told apart and none are returned.
    """
    if not rows:
        return [], []
    header = [cell_text(h).strip() for h in rows[0]]
    if schema.CODES.header_for("kind") in header:
        return _parse_explicit_codes(header, rows[1:])

    def col(row, idx):
        return cell_text(row[idx]).strip() if idx < len(row) else ""

    regions = []
    for row in rows[1:]:
        if row and not all(v in (None, "") for v in row) and col(row, 2) == "Y":
            regions.append(RegionCode(code=col(row, 0), name=col(row, 1)))

    teams = []
    past_blank = False
    for row in rows:
        if not row or all(v in (None, "") for v in row):
            past_blank = True
            continue
        if past_blank and col(row, 3) == "Y":
            teams.append(TeamCode(code=col(row, 0), name=col(row, 1), region=col(row, 2)))
    if not past_blank:
        logger.warning("Code sheet has no blank separator row; team codes cannot be located")
    return regions, teams


def _parse_explicit_codes(header: list[str], rows: Sequence[tuple]):
    fields = [schema.CODES.field_for(h) for h in header]
    entries = []
    for position, values in enumerate(rows):
        record = {name: cell_text(v).strip() for name, v in zip(fields, values)}
        if not record.get("code") or record.get("active", "Y").upper() == "N":
            continue
        order = record.get("sort_order", "")
        entries.append((int(order) if order.isdigit() else position, position, record))
    entries.sort(key=lambda entry: entry[:2])

    regions, teams = [], []
    for _, _, record in entries:
        if record.get("kind") == schema.CODE_KIND_TEAM:
            teams.append(
                TeamCode(code=record["code"], name=record.get("name", ""), region=record.get("region", ""))
            )
        elif record.get("kind") == schema.CODE_KIND_REGION:
            regions.append(RegionCode(code=record["code"], name=record.get("name", "")))
    return regions, teams


class WorkbookRepository(ConsumablesRepository):
    """Repository over the shared Excel workbook.

    Blocking openpyxl work runs in a worker thread; nothing is cached, so
    every call sees the file as it is on disk.
    """

    def __init__(self, store: WorkbookStore) -> None:
        self._store = store

    # ==================== REQUESTS ====================

    def _read_requests(self) -> list[PartRequest]:
        requests = []
        for row in self._store.read_rows(schema.REQUESTS):
            try:
                requests.append(schema.request_from_row(row))
            except StorageError as e:
                logger.warning(f"Skipping request row: {e}")
        return requests

    def _list_requests(self, filters: RequestFilters) -> list[PartRequest]:
        requests = [r for r in self._read_requests() if filters.matches(r)]
        requests.sort(key=lambda r: r.request_date, reverse=True)
        return requests

    async def list_requests(self, filters: RequestFilters) -> Sequence[PartRequest]:
        return await asyncio.to_thread(self._list_requests, filters)

    async def get_request(self, request_no: str) -> Optional[PartRequest]:
        target = str(request_no).strip()
        requests = await asyncio.to_thread(self._read_requests)
        return next((r for r in requests if r.request_no.strip() == target), None)

    async def add_request(self, request: PartRequest) -> None:
        await asyncio.to_thread(
            self._store.append_rows, schema.REQUESTS, [schema.request_to_row(request)]
        )

    async def update_request(self, request_no: str, changes: Mapping[str, Any]) -> bool:
        _check_fields(changes, REQUEST_MUTABLE_FIELDS, "requests")
        return await asyncio.to_thread(
            self._store.update_rows,
            schema.REQUESTS,
            _matches("request_no", request_no),
            encode_changes(schema.REQUESTS, changes),
        )

    # ==================== USERS ====================

    def _read_users(self) -> list[UserAccount]:
        users = [schema.user_from_row(row) for row in self._store.read_rows(schema.USERS)]
        return [u for u in users if u.user_id]

    async def list_users(self) -> Sequence[UserAccount]:
        return await asyncio.to_thread(self._read_users)

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        target = str(user_id or "").strip()
        users = await asyncio.to_thread(self._read_users)
        return next((u for u in users if u.user_id == target), None)

    async def add_users(self, users: Sequence[UserAccount]) -> None:
        await asyncio.to_thread(
            self._store.append_rows, schema.USERS, [schema.user_to_row(u) for u in users]
        )

    async def update_user(self, user_id: str, changes: Mapping[str, Any]) -> bool:
        _check_fields(changes, USER_MUTABLE_FIELDS, "users")
        if not changes:
            return await self.get_user(user_id) is not None
        return await asyncio.to_thread(
            self._store.update_rows,
            schema.USERS,
            _matches("user_id", user_id),
            encode_changes(schema.USERS, changes),
        )

    # ==================== DELIVERY PLACES ====================

    def _read_places(self) -> list[DeliveryPlace]:
        return [
            schema.delivery_place_from_row(row)
            for row in self._store.read_rows(schema.DELIVERY_PLACES)
        ]

    async def list_delivery_places(
        self, team: Optional[str] = None, include_inactive: bool = False
    ) -> Sequence[DeliveryPlace]:
        places = await asyncio.to_thread(self._read_places)
        if not include_inactive:
            places = [p for p in places if p.active]
        if team:
            places = [p for p in places if p.team == team.strip()]
        return places

    async def add_delivery_places(self, places: Sequence[DeliveryPlace]) -> None:
        await asyncio.to_thread(
            self._store.append_rows,
            schema.DELIVERY_PLACES,
            [schema.delivery_place_to_row(p) for p in places],
        )

    async def update_delivery_place(
        self, name: str, team: str, changes: Mapping[str, Any]
    ) -> bool:
        _check_fields(changes, DELIVERY_PLACE_MUTABLE_FIELDS, "delivery places")
        match_name = _matches("name", name)
        match_team = _matches("team", team)
        return await asyncio.to_thread(
            self._store.update_rows,
            schema.DELIVERY_PLACES,
            lambda record: match_name(record) and match_team(record),
            encode_changes(schema.DELIVERY_PLACES, changes),
        )

    # ==================== CODES ====================

    async def list_regions(self) -> Sequence[RegionCode]:
        rows = await asyncio.to_thread(self._store.read_raw, schema.CODES)
        return parse_code_rows(rows)[0]

    async def list_teams(self) -> Sequence[TeamCode]:
        rows = await asyncio.to_thread(self._store.read_raw, schema.CODES)
        return parse_code_rows(rows)[1]

    # ==================== LOGS & EXPORT ====================

    async def append_log(self, entry: LogEntry) -> None:
        if not self._store.exists():
            logger.debug(f"Skipping log '{entry.action}': workbook not created yet")
            return
        await asyncio.to_thread(
            self._store.append_rows, schema.LOGS, [schema.log_entry_to_row(entry)]
        )

    async def export_workbook(self) -> bytes:
        return await asyncio.to_thread(self._store.read_bytes)
