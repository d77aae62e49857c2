"""
Wait-Time Estimator

Pull-based ETA for a queue entry. Inputs change with the clock, so the
estimate is recomputed on every request and never stored.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
import uuid

from clinicflow.core.clock import as_utc
from clinicflow.domain.queue.models import ACTIVE_QUEUE_STATUSES, QueueStatus


@dataclass(frozen=True)
class QueuePosition:
    patients_ahead: int
    patients_behind: int
    estimated_wait_minutes: Optional[int]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fallback_duration(default_minutes: int, completed_minutes: Iterable[int], min_samples: int) -> float:
    """Expected consultation length when an entry has no appointment.

    Uses the day's average once there are enough completed consultations,
    floored at half the doctor's default.
    """
    samples = [minutes for minutes in completed_minutes if minutes]
    if len(samples) >= min_samples:
        return max(sum(samples) / len(samples), default_minutes / 2)
    return float(default_minutes)


def expected_duration(entry, appointment_minutes: Dict[uuid.UUID, int], fallback: float) -> float:
    if entry.appointment_id is not None and appointment_minutes.get(entry.appointment_id):
        return float(appointment_minutes[entry.appointment_id])
    return fallback


_STAGE = {QueueStatus.WITH_DOCTOR: 0, QueueStatus.WAITING: 1, QueueStatus.QUEUED: 2}


def line_rank(entry) -> Tuple[int, int]:
    """Place in line; on a shared number the entry further along goes first.

    Move-to-top can push a QUEUED entry onto a number still held by a
    WAITING or WITH_DOCTOR one.
    """
    return entry.queue_number, _STAGE.get(entry.status, len(_STAGE))


def entries_ahead(target, entries: Iterable) -> List:
    return [
        entry for entry in entries
        if entry.id != target.id
        and entry.status in ACTIVE_QUEUE_STATUSES
        and line_rank(entry) < line_rank(target)
    ]


def estimate_wait_minutes(
    target,
    entries: Iterable,
    now: datetime,
    appointment_minutes: Dict[uuid.UUID, int],
    fallback: float,
) -> Optional[int]:
    """Minutes until ``target`` is likely to be seen.

    None for entries that are with the doctor or finished. An entry ahead
    that is WITH_DOCTOR contributes only its remaining time.
    """
    if target.status not in (QueueStatus.QUEUED, QueueStatus.WAITING):
        return None

    total = 0.0
    for entry in entries_ahead(target, entries):
        duration = expected_duration(entry, appointment_minutes, fallback)
        if entry.status == QueueStatus.WITH_DOCTOR:
            started = as_utc(entry.with_doctor_at)
            elapsed = (now - started).total_seconds() / 60 if started else 0.0
            total += max(0.0, duration - elapsed)
        else:
            total += duration
    return round_half_up(total)


def queue_position(
    target,
    entries: Iterable,
    now: datetime,
    appointment_minutes: Dict[uuid.UUID, int],
    fallback: float,
) -> QueuePosition:
    entries = list(entries)
    ahead = entries_ahead(target, entries)
    behind = [
        entry for entry in entries
        if entry.id != target.id
        and entry.status in ACTIVE_QUEUE_STATUSES
        and line_rank(entry) > line_rank(target)
    ]
    return QueuePosition(
        patients_ahead=len(ahead),
        patients_behind=len(behind),
        estimated_wait_minutes=estimate_wait_minutes(target, entries, now, appointment_minutes, fallback),
    )
