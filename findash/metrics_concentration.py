"""Revenue concentration via the Herfindahl-Hirschman Index.

HHI is the sum of squared percentage shares (0..10000). Its reciprocal scaled
by 10000 is the effective number of equally sized revenue streams.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from findash.filters import THRESHOLDS, TOP_STREAMS, Thresholds

LOW = "LOW"
MODERATE = "MODERATE"
HIGH = "HIGH"


@dataclass(frozen=True)
class RevenueStream:
    name: str
    amount: float
    percent: float


@dataclass(frozen=True)
class ConcentrationMetrics:
    hhi: float = 0.0
    effective_services: float = 0.0
    level: str = LOW
    top_streams: List[RevenueStream] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def concentration_level(hhi: float, thresholds: Optional[Thresholds] = None) -> str:
    thresholds = thresholds or THRESHOLDS
    if hhi < thresholds.hhi_moderate:
        return LOW
    if hhi <= thresholds.hhi_high:
        return MODERATE
    return HIGH


def calculate_concentration(
    streams: Iterable[Tuple[str, float]],
    total: float,
    *,
    thresholds: Optional[Thresholds] = None,
    top: int = TOP_STREAMS,
) -> ConcentrationMetrics:
    streams = [(str(name), float(amount)) for name, amount in streams]
    if not total or not streams:
        return ConcentrationMetrics()

    hhi = sum((amount / total * 100) ** 2 for _, amount in streams)
    effective = 10000 / hhi if hhi > 0 else 0.0

    ranked = sorted(streams, key=lambda s: s[1], reverse=True)[:top]
    top_streams = [
        RevenueStream(name=name.replace("_", " "), amount=amount, percent=amount / total * 100)
        for name, amount in ranked
    ]
    return ConcentrationMetrics(
        hhi=hhi,
        effective_services=effective,
        level=concentration_level(hhi, thresholds),
        top_streams=top_streams,
    )
