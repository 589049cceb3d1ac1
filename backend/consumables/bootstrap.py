"""
Wires repositories, security helpers and use cases from settings.
An HTTP layer or script builds one ``Services`` per process and shares it.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from consumables.application.auth import ChangePasswordUseCase, LoginUseCase
from consumables.application.dashboard import GetDashboardUseCase
from consumables.application.master_data import (
    CreateDeliveryPlaceUseCase,
    CreateUserUseCase,
    ExportMasterFileUseCase,
    ImportMasterCsvUseCase,
    ListDeliveryPlacesUseCase,
    ListHandlersUseCase,
    ListRegionsUseCase,
    ListTeamsUseCase,
    ListUsersUseCase,
    UpdateDeliveryPlaceUseCase,
    UpdateUserUseCase,
)
from consumables.application.ports import ConsumablesRepository, PasswordHasher, TokenService
from consumables.application.use_cases import (
    Clock,
    CreatePartRequestUseCase,
    GetPartRequestUseCase,
    ListMyRequestsUseCase,
    ListPartRequestsUseCase,
    UpdateRequestStatusUseCase,
)
from consumables.domain.models import UserSummary
from consumables.infrastructure.attachments import LocalAttachmentStore
from consumables.infrastructure.security import BcryptPasswordHasher, JwtTokenService
from consumables.infrastructure.sqlalchemy_repository import SqlAlchemyConsumablesRepository
from consumables.infrastructure.workbook.repository import WorkbookRepository
from consumables.infrastructure.workbook.store import WorkbookStore
from database import (
    STORAGE_DATABASE,
    STORAGE_WORKBOOK,
    Settings,
    close_db,
    get_engine,
    get_session_maker,
    init_db,
)
from database import settings as default_settings

logger = logging.getLogger(__name__)


@dataclass
class Services:
    repository: ConsumablesRepository
    hasher: PasswordHasher
    tokens: TokenService
    default_password: str
    # Requests
    create_request: CreatePartRequestUseCase
    update_status: UpdateRequestStatusUseCase
    my_requests: ListMyRequestsUseCase
    get_request: GetPartRequestUseCase
    list_requests: ListPartRequestsUseCase
    dashboard: GetDashboardUseCase
    # Auth
    login: LoginUseCase
    change_password: ChangePasswordUseCase
    # Master data
    list_users: ListUsersUseCase
    create_user: CreateUserUseCase
    update_user: UpdateUserUseCase
    list_delivery_places: ListDeliveryPlacesUseCase
    create_delivery_place: CreateDeliveryPlaceUseCase
    update_delivery_place: UpdateDeliveryPlaceUseCase
    list_regions: ListRegionsUseCase
    list_teams: ListTeamsUseCase
    list_handlers: ListHandlersUseCase
    import_csv: ImportMasterCsvUseCase
    export_master: ExportMasterFileUseCase

    def verify_token(self, token: str) -> Optional[UserSummary]:
        return self.tokens.verify(token)

    def default_password_hash(self) -> str:
        return self.hasher.hash(self.default_password)


def build_repository(settings: Settings) -> ConsumablesRepository:
    backend = settings.storage_backend.strip().lower()
    if backend == STORAGE_WORKBOOK:
        logger.info(f"Using workbook storage: {settings.excel_path}")
        return WorkbookRepository(WorkbookStore(settings.excel_path))
    if backend == STORAGE_DATABASE:
        logger.info("Using relational storage")
        return SqlAlchemyConsumablesRepository(get_session_maker(settings.async_database_url))
    raise ValueError(f"unknown storage backend: {settings.storage_backend!r}")


def build_services(
    settings: Optional[Settings] = None,
    repository: Optional[ConsumablesRepository] = None,
    clock: Clock = datetime.now,
) -> Services:
    if settings is None:
        settings = default_settings
    repository = repository or build_repository(settings)
    hasher = BcryptPasswordHasher()
    tokens = JwtTokenService(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expire_minutes=settings.jwt_expire_minutes,
    )
    attachments = LocalAttachmentStore(settings.attachments_path)
    # One lock for every request mutation in this process.
    request_lock = asyncio.Lock()

    return Services(
        repository=repository,
        hasher=hasher,
        tokens=tokens,
        default_password=settings.default_password,
        create_request=CreatePartRequestUseCase(repository, attachments, clock, request_lock),
        update_status=UpdateRequestStatusUseCase(repository, clock, request_lock),
        my_requests=ListMyRequestsUseCase(repository),
        get_request=GetPartRequestUseCase(repository),
        list_requests=ListPartRequestsUseCase(repository),
        dashboard=GetDashboardUseCase(repository, clock),
        login=LoginUseCase(repository, hasher, tokens, clock),
        change_password=ChangePasswordUseCase(repository, hasher, clock),
        list_users=ListUsersUseCase(repository),
        create_user=CreateUserUseCase(repository, hasher, settings.default_password),
        update_user=UpdateUserUseCase(repository, hasher),
        list_delivery_places=ListDeliveryPlacesUseCase(repository),
        create_delivery_place=CreateDeliveryPlaceUseCase(repository),
        update_delivery_place=UpdateDeliveryPlaceUseCase(repository),
        list_regions=ListRegionsUseCase(repository),
        list_teams=ListTeamsUseCase(repository),
        list_handlers=ListHandlersUseCase(repository),
        import_csv=ImportMasterCsvUseCase(repository),
        export_master=ExportMasterFileUseCase(repository, clock),
    )


# ==================== LIFECYCLE ====================

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


async def startup(settings: Optional[Settings] = None) -> Services:
    """Prepare the selected store, then wire the services on top of it."""
    if settings is None:
        settings = default_settings
    logger.info("Starting consumables ordering services...")
    if settings.storage_backend.strip().lower() == STORAGE_DATABASE:
        await init_db(get_engine(settings.async_database_url))
    else:
        await asyncio.to_thread(WorkbookStore(settings.excel_path).ensure_exists)
    services = build_services(settings)
    logger.info("Consumables ordering services ready")
    return services


async def shutdown() -> None:
    await close_db()
    logger.info("Consumables ordering services stopped")
