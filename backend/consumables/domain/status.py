from consumables.domain.errors import InvalidTransition
from consumables.domain.models import RequestStatus, UserSummary


TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.REQUESTED: frozenset(
        {RequestStatus.ORDERING, RequestStatus.CANCELLED}
    ),
    RequestStatus.ORDERING: frozenset(
        {
            RequestStatus.COMPLETED_CONFIRMED,
            RequestStatus.COMPLETED_PENDING,
            RequestStatus.CANCELLED,
        }
    ),
    RequestStatus.COMPLETED_PENDING: frozenset(
        {
            RequestStatus.COMPLETED_CONFIRMED,
            RequestStatus.FINISHED,
            RequestStatus.CANCELLED,
        }
    ),
    RequestStatus.COMPLETED_CONFIRMED: frozenset(
        {RequestStatus.FINISHED, RequestStatus.CANCELLED}
    ),
    RequestStatus.FINISHED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}


def can_transition(current: RequestStatus, requested: RequestStatus) -> bool:
    """A repeat of the current status is always accepted."""
    return requested == current or requested in TRANSITIONS[current]


def check_transition(current: RequestStatus, requested: RequestStatus) -> None:
    if not can_transition(current, requested):
        raise InvalidTransition(current, requested)


def requester_may_apply(current: RequestStatus, requested: RequestStatus) -> bool:
    """Transitions a requester may trigger on a request they own."""
    if requested == RequestStatus.CANCELLED:
        return current in (RequestStatus.REQUESTED, RequestStatus.CANCELLED)
    if requested == RequestStatus.FINISHED:
        return current.is_completed or current == RequestStatus.FINISHED
    return False


def actor_may_apply(
    actor: UserSummary,
    owner_id: str,
    current: RequestStatus,
    requested: RequestStatus,
) -> bool:
    if actor.is_admin:
        return True
    if actor.id.strip() != owner_id.strip():
        return False
    return requester_may_apply(current, requested)
