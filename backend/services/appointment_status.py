from fastapi import HTTPException, status

from backend.models.appointment import AppointmentStatus

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def can_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> bool:
    current = AppointmentStatus(current)
    target = AppointmentStatus(target)
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS[current]


def validate_status_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> AppointmentStatus:
    target = AppointmentStatus(target)
    if not can_transition(current, target):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Cannot change appointment status from {AppointmentStatus(current).value} to {target.value}.',
        )
    return target


def ensure_treatable(current: AppointmentStatus | str) -> None:
    # A completed appointment without a treatment record can still be documented.
    if AppointmentStatus(current) == AppointmentStatus.CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Cannot record a treatment for a cancelled appointment.',
        )
