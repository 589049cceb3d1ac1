import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional, Sequence, Union

from consumables.application.ports import AttachmentStore, ConsumablesRepository
from consumables.domain.dates import format_timestamp, request_no_prefix
from consumables.domain.errors import InvalidRequest, PermissionDenied
from consumables.domain.models import (
    LogEntry,
    PartRequest,
    RequestFilters,
    RequestStatus,
    UserSummary,
)
from consumables.domain.numbering import next_request_no
from consumables.domain.status import actor_may_apply, check_transition

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")

# Longest text a spreadsheet cell holds.
MAX_TEXT_LENGTH = 32767


@dataclass(frozen=True)
class CreatePartRequestCommand:
    item_name: str
    quantity: Union[int, str]
    asset_no: str
    photo_base64: Optional[str]
    model_name: str = ""
    serial_no: str = ""
    delivery_place: str = ""
    phone: str = ""
    company: str = ""
    remarks: str = ""
    region: Optional[str] = None


@dataclass(frozen=True)
class CreatePartRequestResult:
    success: bool
    message: str
    request_no: Optional[str] = None
    duplicate_request_no: Optional[str] = None

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate_request_no is not None


@dataclass(frozen=True)
class UpdateStatusCommand:
    request_no: str
    status: Union[RequestStatus, str]
    remarks: Optional[str] = None
    handler: Optional[str] = None
    expected_delivery_date: Optional[str] = None


def _parse_quantity(value) -> int:
    try:
        quantity = int(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidRequest("수량은 1 이상이어야 합니다.")
    if quantity < 1:
        raise InvalidRequest("수량은 1 이상이어야 합니다.")
    return quantity


def _decode_photo(payload: str) -> bytes:
    try:
        return base64.b64decode(_DATA_URL_PREFIX.sub("", payload.strip()), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidRequest("사진 데이터를 읽을 수 없습니다.")


def _check_text_length(*values: Optional[str]) -> None:
    for value in values:
        if value is not None and len(str(value)) > MAX_TEXT_LENGTH:
            raise InvalidRequest(f"입력 내용은 {MAX_TEXT_LENGTH}자를 넘을 수 없습니다.")


class CreatePartRequestUseCase:
    """Validate, de-duplicate, number and persist a new part request.

    The duplicate check, number generation and append run under ``lock`` so
    two submissions in the same process cannot both pass against stale data.
    """

    def __init__(
        self,
        repository: ConsumablesRepository,
        attachments: AttachmentStore,
        clock: Clock,
        lock: Optional[asyncio.Lock] = None,
    ) -> None:
        self._repository = repository
        self._attachments = attachments
        self._clock = clock
        self._lock = lock or asyncio.Lock()

    async def execute(
        self,
        command: CreatePartRequestCommand,
        current_user: UserSummary,
    ) -> CreatePartRequestResult:
        if current_user is None:
            raise PermissionDenied("사용자 정보를 찾을 수 없습니다.")
        if not (command.item_name or "").strip():
            raise InvalidRequest("품명은 필수 입력 항목입니다.")
        quantity = _parse_quantity(command.quantity)
        if not (command.asset_no or "").strip():
            raise InvalidRequest("관리번호는 필수 입력 항목입니다.")
        if not command.photo_base64:
            raise InvalidRequest("사진 첨부는 필수입니다.")
        _check_text_length(
            command.item_name,
            command.model_name,
            command.serial_no,
            command.asset_no,
            command.delivery_place,
            command.phone,
            command.company,
            command.remarks,
        )
        photo = _decode_photo(command.photo_base64)
        asset_no = command.asset_no.strip()

        async with self._lock:
            existing = await self._repository.list_requests(
                RequestFilters(requester_id=current_user.id, asset_no=asset_no)
            )
            duplicate = next(
                (r for r in existing if r.status == RequestStatus.REQUESTED), None
            )
            if duplicate is not None:
                logger.info(
                    f"Duplicate submission for asset {asset_no} by {current_user.id}: "
                    f"{duplicate.request_no}"
                )
                return CreatePartRequestResult(
                    success=False,
                    message=f"중복 접수가 감지되었습니다. 신청번호: {duplicate.request_no}",
                    duplicate_request_no=duplicate.request_no,
                )

            now = self._clock()
            all_requests = await self._repository.list_requests(RequestFilters())
            request_no = next_request_no(
                request_no_prefix(now), (r.request_no for r in all_requests)
            )

            relative_path = await self._attachments.save(request_no, photo, "image/jpeg")
            timestamp = format_timestamp(now)
            region = command.region if command.region is not None else current_user.region

            request = PartRequest(
                request_no=request_no,
                request_date=timestamp,
                requester_id=current_user.id,
                requester_name=current_user.name,
                employee_code=current_user.employee_code or "",
                team=current_user.team or "",
                region=region or "",
                item_name=command.item_name.strip(),
                model_name=(command.model_name or "").strip(),
                serial_no=(command.serial_no or "").strip(),
                quantity=quantity,
                asset_no=asset_no,
                delivery_place=(command.delivery_place or "").strip(),
                phone=(command.phone or "").strip(),
                company=(command.company or "").strip(),
                remarks=(command.remarks or "").strip(),
                photo_url=f"/api/attachments/{relative_path}",
                status=RequestStatus.REQUESTED,
                last_modified=timestamp,
                last_modified_by=current_user.id,
            )
            await self._repository.add_request(request)

        await self._repository.append_log(
            LogEntry(
                timestamp=timestamp,
                level="INFO",
                action="신청 생성",
                actor=current_user.id,
                request_no=request_no,
            )
        )
        logger.info(f"Request {request_no} created by {current_user.id}")
        return CreatePartRequestResult(
            success=True, message="신청이 완료되었습니다.", request_no=request_no
        )


class UpdateRequestStatusUseCase:
    def __init__(
        self,
        repository: ConsumablesRepository,
        clock: Clock,
        lock: Optional[asyncio.Lock] = None,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._lock = lock or asyncio.Lock()

    async def execute(
        self,
        command: UpdateStatusCommand,
        current_user: UserSummary,
    ) -> Optional[PartRequest]:
        """Apply a status change; ``None`` means the request does not exist."""
        try:
            new_status = RequestStatus.parse(command.status)
        except ValueError:
            raise InvalidRequest("알 수 없는 상태값입니다.")
        _check_text_length(command.remarks, command.handler, command.expected_delivery_date)

        async with self._lock:
            request = await self._repository.get_request(command.request_no)
            if request is None:
                return None

            old_status = request.status
            if not actor_may_apply(current_user, request.requester_id, old_status, new_status):
                raise PermissionDenied("권한이 없습니다.")
            check_transition(old_status, new_status)

            timestamp = format_timestamp(self._clock())
            changes = {
                "status": new_status,
                "last_modified": timestamp,
                "last_modified_by": current_user.id,
            }
            if command.remarks is not None:
                changes["handler_remarks"] = str(command.remarks)
            if command.handler is not None:
                changes["handler"] = str(command.handler)
            if command.expected_delivery_date is not None:
                changes["expected_delivery_date"] = str(command.expected_delivery_date).strip()
            if new_status != old_status:
                if new_status == RequestStatus.ORDERING:
                    changes["order_date"] = timestamp
                if new_status == RequestStatus.FINISHED:
                    changes["receipt_date"] = timestamp

            if not await self._repository.update_request(request.request_no, changes):
                return None

        await self._repository.append_log(
            LogEntry(
                timestamp=timestamp,
                level="INFO",
                action=f"상태 변경: {old_status.value} → {new_status.value}",
                actor=current_user.id,
                request_no=request.request_no,
            )
        )
        return replace(request, **changes)


class ListMyRequestsUseCase:
    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(self, user_id: str) -> Sequence[PartRequest]:
        uid = str(user_id or "").strip()
        if not uid:
            return []
        return await self._repository.list_requests(RequestFilters(requester_id=uid))


class GetPartRequestUseCase:
    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(
        self, request_no: str, current_user: UserSummary
    ) -> Optional[PartRequest]:
        request = await self._repository.get_request(request_no)
        if request is None:
            return None
        if not current_user.is_admin and not request.is_owned_by(current_user.id):
            raise PermissionDenied("권한이 없습니다.")
        return request


class ListPartRequestsUseCase:
    def __init__(self, repository: ConsumablesRepository) -> None:
        self._repository = repository

    async def execute(
        self,
        current_user: UserSummary,
        status: Optional[Union[RequestStatus, str]] = None,
    ) -> Sequence[PartRequest]:
        if not current_user.is_admin:
            raise PermissionDenied("관리자만 접근할 수 있습니다.")
        filters = RequestFilters()
        if status:
            try:
                filters = RequestFilters(status=RequestStatus.parse(status))
            except ValueError:
                raise InvalidRequest("알 수 없는 상태값입니다.")
        return await self._repository.list_requests(filters)
