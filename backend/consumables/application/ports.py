from typing import Any, Mapping, Optional, Protocol, Sequence

from consumables.domain.models import (
    DeliveryPlace,
    LogEntry,
    PartRequest,
    RegionCode,
    RequestFilters,
    TeamCode,
    UserAccount,
    UserSummary,
)


class ConsumablesRepository(Protocol):
    async def list_requests(self, filters: RequestFilters) -> Sequence[PartRequest]:
        ...

    async def get_request(self, request_no: str) -> Optional[PartRequest]:
        ...

    async def add_request(self, request: PartRequest) -> None:
        ...

    async def update_request(self, request_no: str, changes: Mapping[str, Any]) -> bool:
        ...

    async def list_users(self) -> Sequence[UserAccount]:
        ...

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        ...

    async def add_users(self, users: Sequence[UserAccount]) -> None:
        ...

    async def update_user(self, user_id: str, changes: Mapping[str, Any]) -> bool:
        ...

    async def list_delivery_places(
        self, team: Optional[str] = None, include_inactive: bool = False
    ) -> Sequence[DeliveryPlace]:
        ...

    async def add_delivery_places(self, places: Sequence[DeliveryPlace]) -> None:
        ...

    async def update_delivery_place(
        self, name: str, team: str, changes: Mapping[str, Any]
    ) -> bool:
        ...

    async def list_regions(self) -> Sequence[RegionCode]:
        ...

    async def list_teams(self) -> Sequence[TeamCode]:
        ...

    async def append_log(self, entry: LogEntry) -> None:
        ...

    async def export_workbook(self) -> bytes:
        ...


class AttachmentStore(Protocol):
    async def save(self, request_no: str, data: bytes, mime_type: str) -> str:
        ...


class PasswordHasher(Protocol):
    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        ...

    def needs_update(self, password_hash: str) -> bool:
        ...


class TokenService(Protocol):
    def issue(self, user: UserSummary) -> str:
        ...

    def verify(self, token: str) -> Optional[UserSummary]:
        ...
