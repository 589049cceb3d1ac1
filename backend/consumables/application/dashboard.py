from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Optional, Sequence

from consumables.application.ports import ConsumablesRepository
from consumables.application.use_cases import Clock
from consumables.domain.dates import parse_date_only, to_date_only
from consumables.domain.models import PartRequest, RequestFilters, RequestStatus, UserSummary

URGENT_AFTER_DAYS = 1
DELAYED_AFTER_DAYS = 3
RECENT_LIMIT = 10


@dataclass(frozen=True)
class PeriodStats:
    new: int
    requested: int
    in_progress: int
    delayed: int
    completed: int
    total: int


@dataclass(frozen=True)
class DashboardStats:
    total: int
    requested: int
    ordering: int
    completed: int
    finished: int
    cancelled: int
    period: PeriodStats


@dataclass(frozen=True)
class DelayedRequest:
    request: PartRequest
    delay_days: int


@dataclass(frozen=True)
class DashboardData:
    start_date: str
    end_date: str
    stats: DashboardStats
    recent: Sequence[PartRequest] = field(default_factory=list)
    urgent: Sequence[PartRequest] = field(default_factory=list)
    delayed: Sequence[DelayedRequest] = field(default_factory=list)
    notifications: Sequence[PartRequest] = field(default_factory=list)
    requests: Sequence[PartRequest] = field(default_factory=list)


def _count(requests: Sequence[PartRequest], *statuses: RequestStatus) -> int:
    return sum(1 for r in requests if r.status in statuses)


class GetDashboardUseCase:
    def __init__(self, repository: ConsumablesRepository, clock: Clock) -> None:
        self._repository = repository
        self._clock = clock

    async def execute(
        self,
        current_user: UserSummary,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> DashboardData:
        now = self._clock()
        today = now.date()
        if current_user.is_admin:
            scoped = list(await self._repository.list_requests(RequestFilters()))
        else:
            scoped = list(
                await self._repository.list_requests(
                    RequestFilters(requester_id=current_user.id)
                )
            )
            # Guard against a store that ignores the requester filter.
            scoped = [r for r in scoped if r.is_owned_by(current_user.id)]
        scoped.sort(key=lambda r: str(r.request_date), reverse=True)

        start = start_date or today.replace(day=1).isoformat()
        end = end_date or today.isoformat()
        in_period = [
            r for r in scoped if start <= to_date_only(r.request_date) <= end
        ]

        requested = _count(in_period, RequestStatus.REQUESTED)
        stats = DashboardStats(
            total=len(scoped),
            requested=_count(scoped, RequestStatus.REQUESTED),
            ordering=_count(scoped, RequestStatus.ORDERING),
            completed=_count(
                scoped, RequestStatus.COMPLETED_CONFIRMED, RequestStatus.COMPLETED_PENDING
            ),
            finished=_count(scoped, RequestStatus.FINISHED),
            cancelled=_count(scoped, RequestStatus.CANCELLED),
            period=PeriodStats(
                new=requested,
                requested=requested,
                in_progress=_count(
                    in_period,
                    RequestStatus.ORDERING,
                    RequestStatus.COMPLETED_CONFIRMED,
                    RequestStatus.COMPLETED_PENDING,
                ),
                delayed=_count(in_period, RequestStatus.COMPLETED_PENDING),
                completed=_count(in_period, RequestStatus.FINISHED),
                total=len(in_period),
            ),
        )

        urgent_cutoff = (today - timedelta(days=URGENT_AFTER_DAYS)).isoformat()
        urgent = [
            r
            for r in scoped
            if r.status == RequestStatus.REQUESTED
            and r.request_date
            and to_date_only(r.request_date) < urgent_cutoff
        ]

        delayed_cutoff = (today - timedelta(days=DELAYED_AFTER_DAYS)).isoformat()
        delayed = []
        for r in scoped:
            if r.status != RequestStatus.ORDERING or not r.order_date:
                continue
            order_day = to_date_only(r.order_date)
            if not order_day or order_day >= delayed_cutoff:
                continue
            parsed = parse_date_only(r.order_date)
            delay_days = 0
            if parsed is not None:
                elapsed = now - datetime.combine(parsed, time.min)
                delay_days = int(elapsed.total_seconds() // 86400)
            delayed.append(DelayedRequest(request=r, delay_days=delay_days))

        notifications = []
        if not current_user.is_admin:
            notifications = [r for r in scoped if r.status.is_completed]

        return DashboardData(
            start_date=start,
            end_date=end,
            stats=stats,
            recent=scoped[:RECENT_LIMIT],
            urgent=urgent,
            delayed=delayed,
            notifications=notifications,
            requests=scoped,
        )
