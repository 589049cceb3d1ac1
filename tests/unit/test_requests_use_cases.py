import asyncio
import re
from dataclasses import replace
from datetime import datetime

import pytest

from consumables.application.use_cases import (
    CreatePartRequestCommand,
    CreatePartRequestUseCase,
    GetPartRequestUseCase,
    ListMyRequestsUseCase,
    ListPartRequestsUseCase,
    UpdateRequestStatusUseCase,
    UpdateStatusCommand,
)
from consumables.domain.errors import InvalidRequest, InvalidTransition, PermissionDenied
from consumables.domain.models import PartRequest, RequestStatus

from fakes import (
    ADMIN,
    ALICE,
    BOB,
    PHOTO,
    FakeAttachmentStore,
    FakeConsumablesRepository,
    fixed_clock,
    run,
)


def make_request(request_no="2610190001", status=RequestStatus.REQUESTED, **overrides):
    values = dict(
        request_no=request_no,
        request_date="2026-10-19 09:00:00",
        requester_id=ALICE.id,
        requester_name=ALICE.name,
        item_name="토너",
        quantity=1,
        asset_no="AS-1",
        status=status,
    )
    values.update(overrides)
    return PartRequest(**values)


def create_use_case(repo, clock=None):
    return CreatePartRequestUseCase(
        repository=repo,
        attachments=FakeAttachmentStore(),
        clock=clock or fixed_clock(),
    )


def command(asset_no="AS-1", quantity=1, photo=PHOTO, item_name="토너"):
    return CreatePartRequestCommand(
        item_name=item_name,
        quantity=quantity,
        asset_no=asset_no,
        photo_base64=photo,
        delivery_place="본사",
    )


# ==================== CREATE ====================


def test_create_request_assigns_date_prefixed_number():
    repo = FakeConsumablesRepository()

    result = run(create_use_case(repo).execute(command(), ALICE))

    assert result.success is True
    assert re.match(r"^\d{10}$", result.request_no)
    assert result.request_no == "2610190001"
    stored = repo.requests[0]
    assert stored.status == RequestStatus.REQUESTED
    assert stored.requester_id == ALICE.id
    assert stored.team == "1파트"
    assert stored.region == "서울"
    assert stored.photo_url == "/api/attachments/2610190001/2610190001_1.jpg"
    assert stored.request_date == "2026-10-19 09:30:00"
    assert repo.logs[0].action == "신청 생성"
    assert repo.logs[0].request_no == "2610190001"


def test_create_request_numbers_follow_highest_existing_suffix():
    repo = FakeConsumablesRepository()
    repo.requests = [
        make_request("2610190007", asset_no="X", status=RequestStatus.FINISHED),
        make_request("2610190002", asset_no="Y", status=RequestStatus.FINISHED),
        make_request("2610180099", asset_no="Z", status=RequestStatus.FINISHED),
    ]

    result = run(create_use_case(repo).execute(command(), ALICE))

    assert result.request_no == "2610190008"


def test_create_request_numbers_restart_each_day():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request("2610180005", status=RequestStatus.FINISHED)]

    result = run(create_use_case(repo).execute(command(), ALICE))

    assert result.request_no == "2610190001"


def test_create_request_detects_duplicate_open_request():
    repo = FakeConsumablesRepository()
    use_case = create_use_case(repo)

    first = run(use_case.execute(command(asset_no="AS-9"), ALICE))
    second = run(use_case.execute(command(asset_no=" AS-9 "), ALICE))

    assert first.success is True
    assert second.success is False
    assert second.is_duplicate is True
    assert second.duplicate_request_no == first.request_no
    assert len(repo.requests) == 1


def test_create_request_allows_same_asset_for_other_requester():
    repo = FakeConsumablesRepository()
    use_case = create_use_case(repo)

    run(use_case.execute(command(asset_no="AS-9"), ALICE))
    result = run(use_case.execute(command(asset_no="AS-9"), BOB))

    assert result.success is True
    assert result.request_no == "2610190002"


def test_create_request_allows_resubmission_after_cancel():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request(asset_no="AS-9", status=RequestStatus.CANCELLED)]

    result = run(create_use_case(repo).execute(command(asset_no="AS-9"), ALICE))

    assert result.success is True
    assert result.request_no == "2610190002"


@pytest.mark.parametrize("quantity", [0, -1, "abc", ""])
def test_create_request_rejects_invalid_quantity(quantity):
    repo = FakeConsumablesRepository()

    with pytest.raises(InvalidRequest) as exc:
        run(create_use_case(repo).execute(command(quantity=quantity), ALICE))

    assert exc.value.message == "수량은 1 이상이어야 합니다."
    assert repo.requests == []


def test_create_request_accepts_minimum_quantity():
    repo = FakeConsumablesRepository()

    result = run(create_use_case(repo).execute(command(quantity="1"), ALICE))

    assert result.success is True
    assert repo.requests[0].quantity == 1


def test_create_request_requires_photo():
    repo = FakeConsumablesRepository()

    with pytest.raises(InvalidRequest):
        run(create_use_case(repo).execute(command(photo=None), ALICE))
    with pytest.raises(InvalidRequest):
        run(create_use_case(repo).execute(command(photo="not base64!"), ALICE))


def test_create_request_requires_item_and_asset():
    repo = FakeConsumablesRepository()

    with pytest.raises(InvalidRequest):
        run(create_use_case(repo).execute(command(item_name="  "), ALICE))
    with pytest.raises(InvalidRequest):
        run(create_use_case(repo).execute(command(asset_no=""), ALICE))


def test_create_request_rejects_overlong_text_before_saving_photo():
    repo = FakeConsumablesRepository()
    attachments = FakeAttachmentStore()
    use_case = CreatePartRequestUseCase(repo, attachments, fixed_clock())
    long_remarks = CreatePartRequestCommand(
        item_name="토너", quantity=1, asset_no="AS-1", photo_base64=PHOTO, remarks="가" * 32768
    )

    with pytest.raises(InvalidRequest):
        run(use_case.execute(long_remarks, ALICE))

    assert attachments.saved == {}
    assert repo.requests == []


def test_concurrent_submissions_get_distinct_numbers():
    repo = FakeConsumablesRepository()
    use_case = create_use_case(repo)

    async def submit_all():
        return await asyncio.gather(
            *(use_case.execute(command(asset_no=f"AS-{i}"), ALICE) for i in range(5))
        )

    results = run(submit_all())

    numbers = sorted(r.request_no for r in results)
    assert numbers == [f"261019000{i}" for i in range(1, 6)]


def test_concurrent_duplicate_submissions_store_one_request():
    repo = FakeConsumablesRepository()
    use_case = create_use_case(repo)

    async def submit_twice():
        return await asyncio.gather(
            use_case.execute(command(asset_no="AS-1"), ALICE),
            use_case.execute(command(asset_no="AS-1"), ALICE),
        )

    results = run(submit_twice())

    assert sorted(r.success for r in results) == [False, True]
    assert len(repo.requests) == 1


# ==================== STATUS ====================


def status_use_case(repo, moment=datetime(2026, 10, 20, 14, 0, 0)):
    return UpdateRequestStatusUseCase(repository=repo, clock=fixed_clock(moment))


def test_admin_moves_request_through_order_lifecycle():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request()]
    use_case = status_use_case(repo)

    ordering = run(
        use_case.execute(
            UpdateStatusCommand("2610190001", RequestStatus.ORDERING, handler="유하형"),
            ADMIN,
        )
    )
    completed = run(
        use_case.execute(
            UpdateStatusCommand(
                "2610190001",
                "발주완료(납기확인)",
                remarks="금주 입고",
                expected_delivery_date="2026-10-25",
            ),
            ADMIN,
        )
    )

    assert ordering.status == RequestStatus.ORDERING
    assert ordering.order_date == "2026-10-20 14:00:00"
    assert ordering.handler == "유하형"
    assert completed.status == RequestStatus.COMPLETED_CONFIRMED
    assert completed.expected_delivery_date == "2026-10-25"
    assert completed.handler_remarks == "금주 입고"
    assert repo.requests[0].last_modified_by == ADMIN.id
    assert [log.action for log in repo.logs] == [
        "상태 변경: 접수중 → 접수완료",
        "상태 변경: 접수완료 → 발주완료(납기확인)",
    ]


def test_order_date_is_stamped_only_on_first_entry():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request()]

    run(status_use_case(repo, datetime(2026, 10, 20, 8, 0, 0)).execute(
        UpdateStatusCommand("2610190001", RequestStatus.ORDERING), ADMIN
    ))
    repeated = run(status_use_case(repo, datetime(2026, 10, 21, 8, 0, 0)).execute(
        UpdateStatusCommand("2610190001", RequestStatus.ORDERING, remarks="재확인"), ADMIN
    ))

    assert repeated.order_date == "2026-10-20 08:00:00"
    assert repeated.last_modified == "2026-10-21 08:00:00"
    assert len(repo.logs) == 2


def test_requester_confirms_receipt_of_completed_request():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request(status=RequestStatus.COMPLETED_PENDING)]

    updated = run(status_use_case(repo).execute(
        UpdateStatusCommand("2610190001", RequestStatus.FINISHED), ALICE
    ))

    assert updated.status == RequestStatus.FINISHED
    assert updated.receipt_date == "2026-10-20 14:00:00"
    assert updated.last_modified_by == ALICE.id


def test_receipt_date_is_stamped_only_on_first_confirmation():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request(status=RequestStatus.COMPLETED_CONFIRMED)]

    run(status_use_case(repo, datetime(2026, 10, 20, 8, 0, 0)).execute(
        UpdateStatusCommand("2610190001", RequestStatus.FINISHED), ALICE
    ))
    repeated = run(status_use_case(repo, datetime(2026, 10, 22, 17, 0, 0)).execute(
        UpdateStatusCommand("2610190001", RequestStatus.FINISHED), ALICE
    ))

    assert repeated.status == RequestStatus.FINISHED
    assert repeated.receipt_date == "2026-10-20 08:00:00"
    assert repeated.last_modified == "2026-10-22 17:00:00"
    assert repo.requests[0].receipt_date == "2026-10-20 08:00:00"
    assert [log.action for log in repo.logs] == [
        "상태 변경: 발주완료(납기확인) → 처리완료",
        "상태 변경: 처리완료 → 처리완료",
    ]


def test_status_update_rejects_overlong_remarks():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request()]

    with pytest.raises(InvalidRequest):
        run(status_use_case(repo).execute(
            UpdateStatusCommand("2610190001", RequestStatus.ORDERING, remarks="x" * 32768), ADMIN
        ))

    assert repo.requests[0].status == RequestStatus.REQUESTED
    assert repo.logs == []


def test_requester_cancels_own_open_request():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request()]

    updated = run(status_use_case(repo).execute(
        UpdateStatusCommand("2610190001", RequestStatus.CANCELLED), ALICE
    ))

    assert updated.status == RequestStatus.CANCELLED
    assert updated.order_date == ""


def test_requester_cannot_cancel_after_acceptance():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request(status=RequestStatus.ORDERING)]

    with pytest.raises(PermissionDenied):
        run(status_use_case(repo).execute(
            UpdateStatusCommand("2610190001", RequestStatus.CANCELLED), ALICE
        ))

    assert repo.requests[0].status == RequestStatus.ORDERING
    assert repo.logs == []


def test_requester_cannot_touch_other_users_request():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request()]

    with pytest.raises(PermissionDenied):
        run(status_use_case(repo).execute(
            UpdateStatusCommand("2610190001", RequestStatus.CANCELLED), BOB
        ))


def test_requester_cannot_advance_order_status():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request()]

    with pytest.raises(PermissionDenied):
        run(status_use_case(repo).execute(
            UpdateStatusCommand("2610190001", RequestStatus.ORDERING), ALICE
        ))


@pytest.mark.parametrize(
    "current, requested",
    [
        (RequestStatus.FINISHED, RequestStatus.REQUESTED),
        (RequestStatus.CANCELLED, RequestStatus.ORDERING),
        (RequestStatus.REQUESTED, RequestStatus.FINISHED),
        (RequestStatus.COMPLETED_CONFIRMED, RequestStatus.ORDERING),
    ],
)
def test_admin_cannot_apply_illegal_transition(current, requested):
    repo = FakeConsumablesRepository()
    repo.requests = [make_request(status=current)]

    with pytest.raises(InvalidTransition):
        run(status_use_case(repo).execute(UpdateStatusCommand("2610190001", requested), ADMIN))

    assert repo.request_updates == []


def test_update_status_unknown_request_returns_none():
    repo = FakeConsumablesRepository()

    assert run(status_use_case(repo).execute(
        UpdateStatusCommand("2610199999", RequestStatus.ORDERING), ADMIN
    )) is None


def test_update_status_rejects_unknown_label():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request()]

    with pytest.raises(InvalidRequest):
        run(status_use_case(repo).execute(UpdateStatusCommand("2610190001", "배송중"), ADMIN))


def test_repeated_status_updates_each_write_one_log():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request(status=RequestStatus.ORDERING)]
    use_case = status_use_case(repo)

    for _ in range(3):
        run(use_case.execute(UpdateStatusCommand("2610190001", RequestStatus.ORDERING), ADMIN))

    assert len(repo.logs) == 3
    assert len(repo.request_updates) == 3


# ==================== QUERIES ====================


def test_my_requests_returns_only_own_rows_newest_first():
    repo = FakeConsumablesRepository()
    repo.requests = [
        make_request("2610180001", request_date="2026-10-18 10:00:00"),
        make_request("2610190001", request_date="2026-10-19 10:00:00"),
        make_request("2610190002", requester_id=BOB.id),
    ]

    rows = run(ListMyRequestsUseCase(repo).execute(ALICE.id))

    assert [r.request_no for r in rows] == ["2610190001", "2610180001"]
    assert run(ListMyRequestsUseCase(repo).execute("")) == []


def test_get_request_checks_ownership():
    repo = FakeConsumablesRepository()
    repo.requests = [make_request()]
    use_case = GetPartRequestUseCase(repo)

    assert run(use_case.execute("2610190001", ALICE)).request_no == "2610190001"
    assert run(use_case.execute("2610190001", ADMIN)).request_no == "2610190001"
    assert run(use_case.execute("2610190099", ADMIN)) is None
    with pytest.raises(PermissionDenied):
        run(use_case.execute("2610190001", BOB))


def test_list_requests_is_admin_only_and_filters_by_status():
    repo = FakeConsumablesRepository()
    repo.requests = [
        make_request("2610190001"),
        make_request("2610190002", status=RequestStatus.ORDERING),
    ]
    use_case = ListPartRequestsUseCase(repo)

    with pytest.raises(PermissionDenied):
        run(use_case.execute(ALICE))
    assert len(run(use_case.execute(ADMIN))) == 2
    ordering = run(use_case.execute(ADMIN, status="접수완료"))
    assert [r.request_no for r in ordering] == ["2610190002"]


def test_request_flags_follow_status():
    assert make_request().can_cancel is True
    assert make_request().can_confirm_receipt is False
    completed = replace(make_request(), status=RequestStatus.COMPLETED_CONFIRMED)
    assert completed.can_cancel is False
    assert completed.can_confirm_receipt is True


# ==================== SCENARIOS ====================


def test_scenario_body_part_request_through_receipt():
    repo = FakeConsumablesRepository()
    create = create_use_case(repo)
    update = status_use_case(repo)

    created = run(create.execute(
        CreatePartRequestCommand(
            item_name="본체", quantity=2, asset_no="A-100", photo_base64=PHOTO
        ),
        ALICE,
    ))
    request_no = created.request_no
    run(update.execute(UpdateStatusCommand(request_no, RequestStatus.ORDERING), ADMIN))
    run(update.execute(UpdateStatusCommand(request_no, RequestStatus.COMPLETED_PENDING), ADMIN))
    finished = run(update.execute(UpdateStatusCommand(request_no, RequestStatus.FINISHED), ALICE))

    assert finished.item_name == "본체"
    assert finished.quantity == 2
    assert finished.status == RequestStatus.FINISHED
    assert finished.order_date == "2026-10-20 14:00:00"
    assert finished.receipt_date == "2026-10-20 14:00:00"
    assert [log.action for log in repo.logs] == [
        "신청 생성",
        "상태 변경: 접수중 → 접수완료",
        "상태 변경: 접수완료 → 발주완료(납기미정)",
        "상태 변경: 발주완료(납기미정) → 처리완료",
    ]
