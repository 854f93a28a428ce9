from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from techplan.core.models import DeliveryProjection, OrderItem, WorkSchedule
from techplan.core.shared_time import compute_effective_hours
from techplan.core.timefmt import clock_after, format_clock, parse_hhmm, span_hours

# A support technician cuts the work content by 20% in the advanced calculator.
SUPPORT_REDUCTION_FACTOR = 0.8

ZERO_WORK_FALLBACK = timedelta(hours=24)
INVALID_SCHEDULE_FALLBACK = timedelta(days=7)


def continuous_hours_per_day(schedule: WorkSchedule) -> float:
    """Length of the working window in hours, breaks included.

    Unparseable start or end times count as an empty window (0 hours).
    """
    try:
        return span_hours(schedule.start_time, schedule.end_time)
    except ValueError:
        return 0.0


def net_hours_per_day(schedule: WorkSchedule) -> float:
    """Length of the working window in hours minus the break, never negative."""
    minutes = continuous_hours_per_day(schedule) * 60
    return max(0.0, (minutes - (schedule.break_duration_minutes or 0)) / 60)


def next_working_day(schedule: WorkSchedule, day: datetime) -> datetime:
    """First day strictly after ``day`` on which the schedule works."""
    current = day + timedelta(days=1)
    while not schedule.works_on(current):
        current += timedelta(days=1)
    return current


def project_delivery(
    items: Iterable[OrderItem],
    primary_schedule: WorkSchedule,
    support_schedule: WorkSchedule | None = None,
    creation_date: datetime | None = None,
    current_workload: float = 0.0,
) -> DeliveryProjection:
    """Project when an order will be delivered by its primary technician.

    Work starts on the first working day after ``creation_date`` and only
    after the technician's queued ``current_workload``. Days are consumed at
    the primary schedule's continuous daily hours; a support technician
    reduces the work content by a flat 20% instead of adding capacity.

    Args:
        items: Order line items (shared-time discount applies).
        primary_schedule: Calendar of the assigned technician.
        support_schedule: Calendar of a second technician, if any.
        creation_date: Order creation timestamp (defaults to now).
        current_workload: Hours already queued for the primary technician.

    Returns:
        DeliveryProjection with the last working day touched and the
        clock time at which the work finishes on that day.
    """
    if creation_date is None:
        creation_date = datetime.now()

    effective_hours = compute_effective_hours(items)
    if effective_hours <= 0:
        return DeliveryProjection(
            delivery_date=creation_date + ZERO_WORK_FALLBACK,
            delivery_time=primary_schedule.end_time,
            effective_hours=0.0,
        )

    hours_per_day = continuous_hours_per_day(primary_schedule)
    if hours_per_day <= 0 or not primary_schedule.work_days:
        return DeliveryProjection(
            delivery_date=creation_date + INVALID_SCHEDULE_FALLBACK,
            delivery_time=primary_schedule.end_time,
            effective_hours=effective_hours,
        )

    working_hours = effective_hours
    if support_schedule is not None:
        working_hours = effective_hours * SUPPORT_REDUCTION_FACTOR

    adjusted_hours = working_hours + (current_workload or 0.0)

    # Never consume hours on the creation day itself.
    current = next_working_day(primary_schedule, creation_date)
    remaining = adjusted_hours
    last_day_hours = 0.0
    working_days = 0
    dead_days = 0
    while remaining > 0:
        if primary_schedule.works_on(current):
            consumed = min(remaining, hours_per_day)
            remaining -= consumed
            last_day_hours = consumed
            working_days += 1
            if remaining <= 0:
                break
        else:
            dead_days += 1
        current += timedelta(days=1)

    if adjusted_hours <= hours_per_day:
        delivery_time = clock_after(primary_schedule.start_time, adjusted_hours)
    elif last_day_hours > 0:
        delivery_time = clock_after(primary_schedule.start_time, last_day_hours)
    else:
        delivery_time = format_clock(parse_hhmm(primary_schedule.end_time))

    return DeliveryProjection(
        delivery_date=current,
        delivery_time=delivery_time,
        effective_hours=effective_hours,
        breakdown="",
        working_days=working_days,
        dead_days=dead_days,
    )


def project_delivery_legacy(
    total_hours: float,
    primary_schedule: WorkSchedule,
    support_schedule: WorkSchedule | None = None,
    start_date: datetime | None = None,
) -> DeliveryProjection:
    """Older delivery estimate kept for callers that still depend on it.

    Differs from :func:`project_delivery`: breaks are subtracted from each
    day, a support technician adds their daily hours to the throughput, and
    counting starts on ``start_date`` itself when it is a working day.
    """
    if start_date is None:
        start_date = datetime.now()

    primary_per_day = net_hours_per_day(primary_schedule)
    support_per_day = net_hours_per_day(support_schedule) if support_schedule is not None else 0.0
    per_day = primary_per_day + support_per_day
    try:
        end_clock = format_clock(parse_hhmm(primary_schedule.end_time))
    except ValueError:
        end_clock = primary_schedule.end_time

    if per_day <= 0 or not primary_schedule.work_days:
        return DeliveryProjection(
            delivery_date=start_date + INVALID_SCHEDULE_FALLBACK,
            delivery_time=end_clock,
            effective_hours=total_hours,
            breakdown="Could not calculate due to invalid schedules",
        )

    current = start_date
    while not primary_schedule.works_on(current):
        current += timedelta(days=1)

    remaining = total_hours
    days_added = 0
    dead_days = 0
    while remaining > 0:
        if primary_schedule.works_on(current):
            remaining -= min(remaining, per_day)
            days_added += 1
            if remaining <= 0:
                break
        else:
            dead_days += 1
        current += timedelta(days=1)

    if support_schedule is not None:
        breakdown = (
            f"{total_hours:g}h total / {per_day:g}h per day "
            f"({primary_per_day:g}h primary technician + {support_per_day:g}h support technician) "
            f"= {days_added} working days"
        )
    else:
        breakdown = f"{total_hours:g}h total / {primary_per_day:g}h per day = {days_added} working days"

    return DeliveryProjection(
        delivery_date=current,
        delivery_time=end_clock,
        effective_hours=total_hours,
        breakdown=breakdown,
        working_days=days_added,
        dead_days=dead_days,
    )
