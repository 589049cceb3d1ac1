import logging
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import desc, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

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
    RequestStatus,
    TeamCode,
    UserAccount,
    UserRole,
)
from consumables.infrastructure.workbook import schema
from consumables.infrastructure.workbook.store import build_workbook, workbook_bytes
from database import (
    ActivityLogRecord,
    CodeRecord,
    DeliveryPlaceRecord,
    PartRequestRecord,
    UserRecord,
)

logger = logging.getLogger(__name__)

_REQUEST_FIELDS = [name for _, name in schema.REQUESTS.columns]


def _encode(changes: Mapping[str, Any], allowed: frozenset) -> dict[str, Any]:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"fields not editable: {sorted(unknown)}")
    return {
        name: value.value if isinstance(value, (RequestStatus, UserRole)) else value
        for name, value in changes.items()
    }


def _to_request(row: PartRequestRecord) -> PartRequest:
    values = {name: getattr(row, name) for name in _REQUEST_FIELDS}
    values["status"] = RequestStatus.parse(row.status)
    return PartRequest(**values)


def _to_user(row: UserRecord) -> UserAccount:
    return UserAccount(
        user_id=row.user_id,
        password_hash=row.password_hash or "",
        name=row.name or "",
        employee_code=row.employee_code or "",
        team=row.team or "",
        region=row.region or "",
        role=UserRole.parse(row.role),
        active=bool(row.active),
    )


def _to_place(row: DeliveryPlaceRecord) -> DeliveryPlace:
    return DeliveryPlace(
        name=row.name,
        team=row.team,
        address=row.address or "",
        contact=row.contact or "",
        manager=row.manager or "",
        active=bool(row.active),
        remarks=row.remarks or "",
    )


class SqlAlchemyConsumablesRepository(ConsumablesRepository):
    """Relational implementation of the same table-level contract."""

    def __init__(self, session_maker: async_sessionmaker) -> None:
        self._session_maker = session_maker

    async def _scalars(self, query) -> list:
        try:
            async with self._session_maker() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Database read failed: {e}")
            raise StorageError("데이터베이스를 읽을 수 없습니다.") from e

    async def _add_all(self, rows: list) -> None:
        try:
            async with self._session_maker() as session:
                session.add_all(rows)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database insert failed: {e}")
            raise StorageError("데이터베이스에 저장할 수 없습니다.") from e

    async def _update(self, statement) -> bool:
        try:
            async with self._session_maker() as session:
                result = await session.execute(statement)
                await session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Database update failed: {e}")
            raise StorageError("데이터베이스에 저장할 수 없습니다.") from e

    # ==================== REQUESTS ====================

    async def list_requests(self, filters: RequestFilters) -> Sequence[PartRequest]:
        query = select(PartRequestRecord)
        if filters.requester_id:
            query = query.where(PartRequestRecord.requester_id == filters.requester_id.strip())
        if filters.status:
            query = query.where(PartRequestRecord.status == filters.status.value)
        if filters.asset_no:
            query = query.where(PartRequestRecord.asset_no == filters.asset_no.strip())
        query = query.order_by(desc(PartRequestRecord.request_date))
        return [_to_request(row) for row in await self._scalars(query)]

    async def get_request(self, request_no: str) -> Optional[PartRequest]:
        rows = await self._scalars(
            select(PartRequestRecord).where(PartRequestRecord.request_no == str(request_no).strip())
        )
        return _to_request(rows[0]) if rows else None

    async def add_request(self, request: PartRequest) -> None:
        values = {name: getattr(request, name) for name in _REQUEST_FIELDS}
        values["status"] = request.status.value
        await self._add_all([PartRequestRecord(**values)])

    async def update_request(self, request_no: str, changes: Mapping[str, Any]) -> bool:
        values = _encode(changes, REQUEST_MUTABLE_FIELDS)
        if not values:
            return await self.get_request(request_no) is not None
        return await self._update(
            update(PartRequestRecord)
            .where(PartRequestRecord.request_no == str(request_no).strip())
            .values(**values)
        )

    # ==================== USERS ====================

    async def list_users(self) -> Sequence[UserAccount]:
        rows = await self._scalars(select(UserRecord).order_by(UserRecord.user_id))
        return [_to_user(row) for row in rows]

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        rows = await self._scalars(
            select(UserRecord).where(UserRecord.user_id == str(user_id or "").strip())
        )
        return _to_user(rows[0]) if rows else None

    async def add_users(self, users: Sequence[UserAccount]) -> None:
        await self._add_all(
            [
                UserRecord(
                    user_id=u.user_id,
                    password_hash=u.password_hash,
                    name=u.name,
                    employee_code=u.employee_code,
                    team=u.team,
                    region=u.region,
                    role=u.role.value,
                    active=u.active,
                )
                for u in users
            ]
        )

    async def update_user(self, user_id: str, changes: Mapping[str, Any]) -> bool:
        values = _encode(changes, USER_MUTABLE_FIELDS)
        if not values:
            return await self.get_user(user_id) is not None
        return await self._update(
            update(UserRecord)
            .where(UserRecord.user_id == str(user_id).strip())
            .values(**values)
        )

    # ==================== DELIVERY PLACES ====================

    async def list_delivery_places(
        self, team: Optional[str] = None, include_inactive: bool = False
    ) -> Sequence[DeliveryPlace]:
        query = select(DeliveryPlaceRecord)
        if not include_inactive:
            query = query.where(DeliveryPlaceRecord.active.is_(True))
        if team:
            query = query.where(DeliveryPlaceRecord.team == team.strip())
        query = query.order_by(DeliveryPlaceRecord.id)
        return [_to_place(row) for row in await self._scalars(query)]

    async def add_delivery_places(self, places: Sequence[DeliveryPlace]) -> None:
        await self._add_all(
            [
                DeliveryPlaceRecord(
                    name=p.name,
                    team=p.team,
                    address=p.address,
                    contact=p.contact,
                    manager=p.manager,
                    active=p.active,
                    remarks=p.remarks,
                )
                for p in places
            ]
        )

    async def update_delivery_place(
        self, name: str, team: str, changes: Mapping[str, Any]
    ) -> bool:
        values = _encode(changes, DELIVERY_PLACE_MUTABLE_FIELDS)
        statement = update(DeliveryPlaceRecord).where(
            DeliveryPlaceRecord.name == name.strip(),
            DeliveryPlaceRecord.team == team.strip(),
        )
        if not values:
            rows = await self._scalars(
                select(DeliveryPlaceRecord).where(
                    DeliveryPlaceRecord.name == name.strip(),
                    DeliveryPlaceRecord.team == team.strip(),
                )
            )
            return bool(rows)
        return await self._update(statement.values(**values))

    # ==================== CODES ====================

    async def _codes(self, kind: str) -> list[CodeRecord]:
        return await self._scalars(
            select(CodeRecord)
            .where(CodeRecord.kind == kind, CodeRecord.active.is_(True))
            .order_by(CodeRecord.sort_order.is_(None), CodeRecord.sort_order, CodeRecord.id)
        )

    async def list_regions(self) -> Sequence[RegionCode]:
        rows = await self._codes(schema.CODE_KIND_REGION)
        return [RegionCode(code=row.code, name=row.name or "") for row in rows]

    async def list_teams(self) -> Sequence[TeamCode]:
        rows = await self._codes(schema.CODE_KIND_TEAM)
        return [TeamCode(code=row.code, name=row.name or "", region=row.region or "") for row in rows]

    # ==================== LOGS & EXPORT ====================

    async def append_log(self, entry: LogEntry) -> None:
        await self._add_all(
            [
                ActivityLogRecord(
                    timestamp=entry.timestamp,
                    level=entry.level,
                    action=entry.action,
                    request_no=entry.request_no,
                    actor=entry.actor,
                    detail=entry.detail,
                )
            ]
        )

    async def export_workbook(self) -> bytes:
        """Render every table into the workbook layout the sheet store uses."""
        requests = await self.list_requests(RequestFilters())
        users = await self.list_users()
        places = await self.list_delivery_places(include_inactive=True)
        regions = await self.list_regions()
        teams = await self.list_teams()
        logs = await self._scalars(select(ActivityLogRecord).order_by(ActivityLogRecord.id))

        contents = {
            schema.REQUESTS.name: [schema.request_to_row(r) for r in requests],
            schema.USERS.name: [schema.user_to_row(u) for u in users],
            schema.DELIVERY_PLACES.name: [schema.delivery_place_to_row(p) for p in places],
            schema.CODES.name: [schema.region_to_row(r, i) for i, r in enumerate(regions, 1)]
            + [schema.team_to_row(t, i) for i, t in enumerate(teams, 1)],
            schema.LOGS.name: [
                schema.log_entry_to_row(
                    LogEntry(
                        timestamp=row.timestamp,
                        level=row.level,
                        action=row.action,
                        actor=row.actor or "",
                        request_no=row.request_no or "",
                        detail=row.detail or "",
                    )
                )
                for row in logs
            ],
        }
        return workbook_bytes(build_workbook(contents))
