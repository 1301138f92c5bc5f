"""Approval state machine.

DRAFT -> PENDING_MANAGER -> PENDING_HR -> [PENDING_SPECIAL] -> PENDING_ACCOUNTING -> APPROVED,
with a rejection branch from every pending state. The optional special stage
is decided by next_status alone, never by callers.
"""

from __future__ import annotations

from decimal import Decimal

from benefits.exceptions import AlreadyTerminal, WrongStage
from benefits.models.enums import ApproverRole, BenefitType, Decision, RequestStatus

_ROLE_GATES: dict[RequestStatus, ApproverRole] = {
    RequestStatus.PENDING_MANAGER: ApproverRole.MANAGER,
    RequestStatus.PENDING_HR: ApproverRole.HR,
    RequestStatus.PENDING_SPECIAL: ApproverRole.SPECIAL_APPROVER,
    RequestStatus.PENDING_ACCOUNTING: ApproverRole.ACCOUNTING,
}

_REJECTED: dict[RequestStatus, RequestStatus] = {
    RequestStatus.PENDING_MANAGER: RequestStatus.REJECTED_MANAGER,
    RequestStatus.PENDING_HR: RequestStatus.REJECTED_HR,
    RequestStatus.PENDING_SPECIAL: RequestStatus.REJECTED_SPECIAL,
    RequestStatus.PENDING_ACCOUNTING: RequestStatus.REJECTED_ACCOUNTING,
}

TERMINAL_STATUSES = frozenset(
    {
        RequestStatus.APPROVED,
        RequestStatus.REJECTED_MANAGER,
        RequestStatus.REJECTED_HR,
        RequestStatus.REJECTED_SPECIAL,
        RequestStatus.REJECTED_ACCOUNTING,
        RequestStatus.CANCELLED,
    }
)

EDITABLE_STATUSES = frozenset({RequestStatus.DRAFT, RequestStatus.PENDING_MANAGER})


def is_terminal(status: RequestStatus | str) -> bool:
    return RequestStatus(status) in TERMINAL_STATUSES


def is_editable(status: RequestStatus | str) -> bool:
    """Only draft and manager-pending requests may be changed by their owner."""
    return RequestStatus(status) in EDITABLE_STATUSES


def is_rejected(status: RequestStatus | str) -> bool:
    return RequestStatus(status) in _REJECTED.values()


def role_for(status: RequestStatus | str) -> ApproverRole | None:
    """Role allowed to decide a request in this status, if any."""
    return _ROLE_GATES.get(RequestStatus(status))


def requires_special_approval(benefit_type: BenefitType | str, net_amount: Decimal, threshold: Decimal) -> bool:
    return BenefitType(benefit_type) == BenefitType.INTERNAL_TRAINING and net_amount > threshold


def next_status(
    status: RequestStatus | str,
    benefit_type: BenefitType | str,
    net_amount: Decimal,
    threshold: Decimal,
) -> RequestStatus:
    """The status an approval moves a request to."""
    status = RequestStatus(status)
    if status == RequestStatus.DRAFT:
        return RequestStatus.PENDING_MANAGER
    if status == RequestStatus.PENDING_MANAGER:
        return RequestStatus.PENDING_HR
    if status == RequestStatus.PENDING_HR:
        if requires_special_approval(benefit_type, net_amount, threshold):
            return RequestStatus.PENDING_SPECIAL
        return RequestStatus.PENDING_ACCOUNTING
    if status == RequestStatus.PENDING_SPECIAL:
        return RequestStatus.PENDING_ACCOUNTING
    if status == RequestStatus.PENDING_ACCOUNTING:
        return RequestStatus.APPROVED
    raise AlreadyTerminal(f"Request is already {status.value}")


def submit(status: RequestStatus | str) -> RequestStatus:
    """Hand a draft to the first approval stage."""
    status = RequestStatus(status)
    if status != RequestStatus.DRAFT:
        raise WrongStage(f"Only draft requests can be submitted, request is {status.value}")
    return RequestStatus.PENDING_MANAGER


def transition(
    status: RequestStatus | str,
    acting_role: ApproverRole | str,
    decision: Decision | str,
    benefit_type: BenefitType | str,
    net_amount: Decimal,
    threshold: Decimal,
) -> RequestStatus:
    """Apply an approver's decision and return the new status.

    Raises AlreadyTerminal for finished requests and WrongStage when the
    acting role does not own the current stage.
    """
    status = RequestStatus(status)
    if status in TERMINAL_STATUSES:
        raise AlreadyTerminal(f"Request is already {status.value}")

    gate = _ROLE_GATES.get(status)
    if gate is None:
        raise WrongStage(f"Request in {status.value} is not awaiting approval")
    if acting_role != gate:
        raise WrongStage(f"Request in {status.value} must be decided by {gate.value}, not {acting_role}")

    if Decision(decision) == Decision.REJECT:
        return _REJECTED[status]
    return next_status(status, benefit_type, net_amount, threshold)
