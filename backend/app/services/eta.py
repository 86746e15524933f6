"""
ETA estimation.

Turns a distance and a short history of speed readings into an arrival
estimate with a confidence label. Readings outside the plausible speed range
are treated as GPS noise and dropped; the rest are combined with a linear
recency weighting (oldest reading weight 1, newest weight N).

All functions here are pure and never touch the database.
"""

import enum
import math
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from backend.app.core.config import settings

ARRIVING_DURATION_MINUTES = 1
MOVING_SPEED_KMH = 5.0


class EtaConfidence(str, enum.Enum):
    """Qualitative reliability label attached to an ETA."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EtaStatus(str, enum.Enum):
    ARRIVING = "arriving"
    EN_ROUTE = "en_route"


@dataclass
class EtaEstimate:
    """Result of a single ETA computation."""
    eta: Optional[datetime]
    duration_minutes: float
    distance_km: Optional[float]
    speed_kmh: Optional[float]
    confidence: str
    is_realtime: bool
    status: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        """JSON-safe representation (eta as ISO-8601 string)."""
        data = asdict(self)
        data["eta"] = self.eta.isoformat() if self.eta else None
        return data


def filter_speed_samples(samples: Iterable[Optional[float]], max_speed_kmh: Optional[float] = None) -> List[float]:
    """Keep readings inside the open interval (0, max_speed_kmh)."""
    upper = settings.eta_max_plausible_speed_kmh if max_speed_kmh is None else max_speed_kmh
    return [float(s) for s in samples if s is not None and 0 < s < upper]


def weighted_average_speed(samples: Sequence[float]) -> Optional[float]:
    """
    Linearly recency-weighted mean of speed readings (oldest first).

    [10, 20, 30] -> (10*1 + 20*2 + 30*3) / (1 + 2 + 3) = 23.33...
    """
    if not samples:
        return None

    weighted_sum = 0.0
    total_weight = 0
    for index, speed in enumerate(samples, start=1):
        weighted_sum += speed * index
        total_weight += index

    return weighted_sum / total_weight


def average_speed(
    readings: Iterable[Tuple[datetime, Optional[float]]],
    window_minutes: int = 10,
    now: Optional[datetime] = None,
) -> float:
    """
    Plain mean of positive speeds recorded within the last ``window_minutes``.

    Args:
        readings: (recorded_at, speed_kmh) pairs; naive UTC timestamps

    Returns:
        Mean speed in km/h, or 0 when nothing recent is available
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(minutes=window_minutes)

    recent = [speed for recorded_at, speed in readings if recorded_at > cutoff and speed and speed > 0]
    if not recent:
        return 0.0

    return sum(recent) / len(recent)


def estimate(
    distance_km: Optional[float],
    speed_samples: Sequence[Optional[float]],
    now: Optional[datetime] = None,
) -> EtaEstimate:
    """
    Estimate arrival at a point ``distance_km`` away.

    Args:
        distance_km: Remaining distance; None or <= 0 means "unknown"
        speed_samples: Recent speed readings in km/h, oldest first
        now: Reference time (naive UTC); defaults to utcnow

    Returns:
        EtaEstimate. Duration includes a fixed buffer for dwell and braking.
    """
    now = now or datetime.utcnow()

    if distance_km is None or distance_km <= 0:
        return EtaEstimate(
            eta=None,
            duration_minutes=0,
            distance_km=distance_km,
            speed_kmh=None,
            confidence=EtaConfidence.LOW.value,
            is_realtime=False,
        )

    # Near-zero distances give jittery estimates; report a fixed arrival instead
    if distance_km * 1000 < settings.arrival_floor_meters:
        return EtaEstimate(
            eta=now + timedelta(minutes=ARRIVING_DURATION_MINUTES),
            duration_minutes=ARRIVING_DURATION_MINUTES,
            distance_km=round(distance_km, 3),
            speed_kmh=None,
            confidence=EtaConfidence.HIGH.value,
            is_realtime=True,
            status=EtaStatus.ARRIVING.value,
        )

    valid_speeds = filter_speed_samples(speed_samples)

    if valid_speeds:
        speed_kmh = weighted_average_speed(valid_speeds)
        is_realtime = True
        if speed_kmh > MOVING_SPEED_KMH:
            confidence = EtaConfidence.HIGH.value
        else:
            confidence = EtaConfidence.MEDIUM.value
    else:
        speed_kmh = settings.eta_fallback_speed_kmh
        is_realtime = False
        confidence = EtaConfidence.LOW.value

    total_minutes = (distance_km / speed_kmh) * 60 + settings.eta_buffer_minutes

    return EtaEstimate(
        eta=now + timedelta(minutes=total_minutes),
        duration_minutes=round(total_minutes, 1),
        distance_km=round(distance_km, 2),
        speed_kmh=round(speed_kmh, 2),
        confidence=confidence,
        is_realtime=is_realtime,
        status=EtaStatus.EN_ROUTE.value,
    )


def eta_confidence(details: Mapping[str, Any]) -> str:
    """
    Confidence for a stored estimate.

    Not realtime -> low. An explicit label wins; otherwise fall back on the
    remaining distance (under 1 km high, under 5 km medium, else low).
    """
    if not details.get("is_realtime"):
        return EtaConfidence.LOW.value
    if details.get("confidence"):
        return details["confidence"]

    distance_km = details.get("distance_km")
    if distance_km is None:
        return EtaConfidence.LOW.value
    if distance_km < 1:
        return EtaConfidence.HIGH.value
    if distance_km < 5:
        return EtaConfidence.MEDIUM.value
    return EtaConfidence.LOW.value


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_duration(minutes: Optional[float]) -> str:
    """
    Human-readable duration.

    < 1 -> "Arriving now", 1 -> "1 minute", < 60 -> "N minutes",
    then "1 hour", "1 hour M min", "H hours", "H hours M min".
    Minutes are rounded half-up before formatting.
    """
    if minutes is None:
        return "N/A"

    total = _round_half_up(minutes)

    if total < 1:
        return "Arriving now"
    if total == 1:
        return "1 minute"
    if total < 60:
        return f"{total} minutes"

    hours, mins = divmod(total, 60)
    if hours == 1 and mins == 0:
        return "1 hour"
    if hours == 1:
        return f"1 hour {mins} min"
    if mins == 0:
        return f"{hours} hours"
    return f"{hours} hours {mins} min"


def format_eta(eta: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Format the time left until ``eta`` (naive UTC) with format_duration."""
    if eta is None:
        return "N/A"

    now = now or datetime.utcnow()
    return format_duration((eta - now).total_seconds() / 60)
