import pytest

from consumables.application.master_data import (
    DEFAULT_HANDLERS,
    DEFAULT_REGIONS,
    CreateDeliveryPlaceUseCase,
    CreateUserCommand,
    CreateUserUseCase,
    DeliveryPlaceCommand,
    ExportMasterFileUseCase,
    ImportMasterCsvUseCase,
    ListDeliveryPlacesUseCase,
    ListHandlersUseCase,
    ListRegionsUseCase,
    ListUsersUseCase,
    UpdateDeliveryPlaceUseCase,
    UpdateUserCommand,
    UpdateUserUseCase,
)
from consumables.domain.errors import InvalidRequest, PermissionDenied
from consumables.domain.models import DeliveryPlace, RegionCode, UserAccount, UserRole

from fakes import ADMIN, ALICE, FakeConsumablesRepository, fixed_clock, run


class PlainHasher:
    def hash(self, password):
        return f"hashed:{password}"

    def verify(self, password, password_hash):
        return password_hash == f"hashed:{password}"

    def needs_update(self, password_hash):
        return False


DELIVERY_CSV = """배송지명,소속팀,주소,연락처,담당자,활성화,비고
본사 창고,1파트,서울시 중구,02-123-4567,김담당,Y,
부산 센터,2파트,부산시 해운대구,051-000-0000,이담당,N,임시
"""

ROSTER_CSV = """번호\t기사명\t사번\t사용자ID\t파트\t지역\t배송지
1\t홍길동\tE001\thong@example.com\t1파트\t서울\t본사 창고
2\t김철수\tE002\t\t2파트\t부산\t부산 센터
"""


# ==================== USERS ====================


def test_create_user_uses_default_password_and_rejects_duplicates():
    repo = FakeConsumablesRepository()
    use_case = CreateUserUseCase(repo, PlainHasher(), default_password="1234")

    account = run(use_case.execute(CreateUserCommand(user_id=" kim ", name="김"), ADMIN))

    assert account.user_id == "kim"
    assert repo.users["kim"].password_hash == "hashed:1234"
    with pytest.raises(InvalidRequest):
        run(use_case.execute(CreateUserCommand(user_id="kim", name="김"), ADMIN))


def test_user_management_is_admin_only():
    repo = FakeConsumablesRepository()

    with pytest.raises(PermissionDenied):
        run(ListUsersUseCase(repo).execute(ALICE))
    with pytest.raises(PermissionDenied):
        run(CreateUserUseCase(repo, PlainHasher()).execute(
            CreateUserCommand(user_id="x", name="x"), ALICE
        ))


def test_update_user_changes_role_and_deactivates():
    repo = FakeConsumablesRepository()
    repo.users["kim"] = UserAccount(user_id="kim", password_hash="h", name="김")
    use_case = UpdateUserUseCase(repo, PlainHasher())

    assert run(use_case.execute(
        "kim", UpdateUserCommand(role=UserRole.ADMIN, active=False, password="pw"), ADMIN
    )) is True
    assert run(use_case.execute("nobody", UpdateUserCommand(name="x"), ADMIN)) is False

    updated = repo.users["kim"]
    assert updated.role == UserRole.ADMIN
    assert updated.active is False
    assert updated.password_hash == "hashed:pw"


def test_handlers_are_active_admin_names_with_fallback():
    repo = FakeConsumablesRepository()
    assert run(ListHandlersUseCase(repo).execute()) == list(DEFAULT_HANDLERS)

    repo.users = {
        "a": UserAccount(user_id="a", password_hash="", name="담당A", role=UserRole.ADMIN),
        "b": UserAccount(
            user_id="b", password_hash="", name="담당B", role=UserRole.ADMIN, active=False
        ),
        "c": UserAccount(user_id="c", password_hash="", name="신청C"),
    }
    assert run(ListHandlersUseCase(repo).execute()) == ["담당A"]


def test_regions_fall_back_to_defaults():
    repo = FakeConsumablesRepository()
    assert run(ListRegionsUseCase(repo).execute()) == list(DEFAULT_REGIONS)

    repo.regions = [RegionCode(code="DJN", name="대전")]
    assert run(ListRegionsUseCase(repo).execute()) == [RegionCode(code="DJN", name="대전")]


# ==================== DELIVERY PLACES ====================


def test_delivery_place_create_list_and_update():
    repo = FakeConsumablesRepository()
    run(CreateDeliveryPlaceUseCase(repo).execute(
        DeliveryPlaceCommand(name="본사", team="1파트", address="서울"), ADMIN
    ))
    run(CreateDeliveryPlaceUseCase(repo).execute(
        DeliveryPlaceCommand(name="지점", team="2파트", active=False), ADMIN
    ))

    assert [p.name for p in run(ListDeliveryPlacesUseCase(repo).execute())] == ["본사"]
    assert len(run(ListDeliveryPlacesUseCase(repo).execute(include_inactive=True))) == 2

    updated = run(UpdateDeliveryPlaceUseCase(repo).execute(
        "지점", "2파트", DeliveryPlaceCommand(active=True, contact="010"), ADMIN
    ))
    assert updated is True
    assert [p.name for p in run(ListDeliveryPlacesUseCase(repo).execute(team="2파트"))] == ["지점"]


def test_delivery_place_update_requires_original_key():
    repo = FakeConsumablesRepository()

    with pytest.raises(InvalidRequest):
        run(UpdateDeliveryPlaceUseCase(repo).execute("", "1파트", DeliveryPlaceCommand(), ADMIN))


# ==================== CSV IMPORT ====================


def test_import_delivery_place_csv_is_idempotent():
    repo = FakeConsumablesRepository()
    use_case = ImportMasterCsvUseCase(repo)

    first = run(use_case.execute(DELIVERY_CSV, "hash", ADMIN))
    second = run(use_case.execute(DELIVERY_CSV, "hash", ADMIN))

    assert first.imported.delivery_places == 2
    assert first.message == "기준정보가 등록되었습니다. (사용자: 0명, 배송지: 2개)"
    assert second.imported.delivery_places == 0
    assert second.imported.skipped_places == 2
    assert len(repo.places) == 2
    busan = next(p for p in repo.places if p.name == "부산 센터")
    assert busan.active is False
    assert busan.remarks == "임시"


def test_import_roster_creates_users_and_places():
    repo = FakeConsumablesRepository()
    repo.places = [DeliveryPlace(name="본사 창고", team="1파트")]

    result = run(ImportMasterCsvUseCase(repo).execute(ROSTER_CSV, "default-hash", ADMIN))

    assert result.imported.users == 2
    assert result.imported.delivery_places == 1
    assert result.imported.skipped_places == 1
    assert repo.users["hong@example.com"].name == "홍길동"
    assert repo.users["hong@example.com"].password_hash == "default-hash"
    # No user id column value: the employee code stands in.
    assert repo.users["E002"].team == "2파트"


def test_import_rejects_unknown_format_and_short_input():
    repo = FakeConsumablesRepository()
    use_case = ImportMasterCsvUseCase(repo)

    with pytest.raises(InvalidRequest):
        run(use_case.execute("이름,나이\n홍길동,30\n", "hash", ADMIN))
    with pytest.raises(InvalidRequest):
        run(use_case.execute("배송지명,소속팀\n", "hash", ADMIN))
    with pytest.raises(PermissionDenied):
        run(use_case.execute(DELIVERY_CSV, "hash", ALICE))


# ==================== EXPORT ====================


def test_export_names_file_by_date():
    repo = FakeConsumablesRepository()

    export = run(ExportMasterFileUseCase(repo, fixed_clock()).execute(ADMIN))

    assert export.content == b"xlsx-bytes"
    assert export.file_name == "소모품발주_마스터_2026-10-19.xlsx"
