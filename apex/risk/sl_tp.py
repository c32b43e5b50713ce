"""Stop-loss and take-profit calculation — pure math, no I/O.

Stops are placed from the entry price by ATR multiple, percentage, or at
the nearest confluence zone behind the entry.  Targets use a risk-reward
multiple of the stop distance, ATR multiple, percentage, or an edge of
the nearest opposing confluence zone (falling back to 2:1 R:R when no
such zone exists).
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from apex.models.strategy_config import ExitRule
from apex.strategy.models import ConfluenceZone


FALLBACK_RR_RATIO = 2.0
ZONE_STOP_FALLBACK_ATR_MULT = 1.5


@dataclass(frozen=True)
class RiskLevels:
    """Computed stop-loss and take-profit for a trade."""

    sl: Optional[float]
    tp: Optional[float]
    tp_source: str  # "rule", "zone", "rr_fallback" or "none"
    target_zone: Optional[ConfluenceZone] = None

    def to_dict(self) -> dict:
        return {
            "stopLoss": self.sl,
            "takeProfit": self.tp,
            "tpSource": self.tp_source,
            "targetZone": self.target_zone.to_dict() if self.target_zone else None,
        }


def _check_side(side: str) -> None:
    if side not in ("long", "short"):
        raise ValueError(f"side must be 'long' or 'short', got '{side}'")


def _zone_edge(zone: ConfluenceZone, target: str, near: float, far: float) -> float:
    if target == "nearest_edge":
        return near
    if target == "farthest_edge":
        return far
    return zone.midpoint


def calculate_stop_loss(
    entry_price: float,
    side: str,
    rule: ExitRule,
    atr: Optional[float],
    zones: Sequence[ConfluenceZone] = (),
) -> Optional[float]:
    """Calculate the stop-loss price, or ``None`` when it cannot be placed.

    - ``atr_multiple``: ``value × ATR`` from entry (needs ATR).
    - ``percentage``: ``value %`` of entry.
    - ``confluence_zone``: edge of the nearest zone behind the entry
      (support below a long, resistance above a short).  Without such a
      zone the stop falls back to 1.5 × ATR.

    Raises:
        ValueError: If *side* is not ``"long"`` or ``"short"``.
    """
    _check_side(side)
    sign = -1.0 if side == "long" else 1.0

    if rule.type == "atr_multiple":
        if not atr:
            return None
        return entry_price + sign * atr * float(rule.value)

    if rule.type == "percentage":
        return entry_price + sign * entry_price * (float(rule.value) / 100.0)

    if rule.type == "confluence_zone":
        if side == "long":
            behind = sorted(
                (z for z in zones if z.zone_type == "support" and z.low < entry_price),
                key=lambda z: -z.low,
            )
            if behind:
                zone = behind[0]
                stop = _zone_edge(zone, str(rule.value), near=zone.high, far=zone.low)
                return stop if stop < entry_price else zone.low
        else:
            behind = sorted(
                (z for z in zones if z.zone_type == "resistance" and z.high > entry_price),
                key=lambda z: z.high,
            )
            if behind:
                zone = behind[0]
                stop = _zone_edge(zone, str(rule.value), near=zone.low, far=zone.high)
                return stop if stop > entry_price else zone.high
        if not atr:
            return None
        return entry_price + sign * ZONE_STOP_FALLBACK_ATR_MULT * atr

    raise ValueError(f"stop-loss type '{rule.type}' is not supported")


def find_target_zone(
    entry_price: float,
    side: str,
    zones: Sequence[ConfluenceZone],
) -> Optional[ConfluenceZone]:
    """Nearest opposing zone strictly beyond entry in the profit direction."""
    _check_side(side)
    if side == "long":
        above = sorted(
            (z for z in zones if z.zone_type == "resistance" and z.low > entry_price),
            key=lambda z: z.low,
        )
        return above[0] if above else None
    below = sorted(
        (z for z in zones if z.zone_type == "support" and z.high < entry_price),
        key=lambda z: -z.high,
    )
    return below[0] if below else None


def calculate_risk_levels(
    entry_price: float,
    side: str,
    stop_rule: ExitRule,
    target_rule: ExitRule,
    atr: Optional[float],
    zones: Sequence[ConfluenceZone] = (),
) -> RiskLevels:
    """Calculate stop-loss and take-profit for a new position.

    The target is only computed when a stop could be placed, since R:R
    targets and the zone fallback are measured from the stop distance.

    Raises:
        ValueError: If *side* is not ``"long"`` or ``"short"``.
    """
    sl = calculate_stop_loss(entry_price, side, stop_rule, atr, zones)
    if sl is None:
        return RiskLevels(sl=None, tp=None, tp_source="none")

    sign = 1.0 if side == "long" else -1.0
    risk = abs(entry_price - sl)

    if target_rule.type == "confluence_zone":
        zone = find_target_zone(entry_price, side, zones)
        if zone is None:
            return RiskLevels(
                sl=sl,
                tp=entry_price + sign * risk * FALLBACK_RR_RATIO,
                tp_source="rr_fallback",
            )
        if side == "long":
            tp = _zone_edge(zone, str(target_rule.value), near=zone.low, far=zone.high)
        else:
            tp = _zone_edge(zone, str(target_rule.value), near=zone.high, far=zone.low)
        return RiskLevels(sl=sl, tp=tp, tp_source="zone", target_zone=zone)

    value = float(target_rule.value)
    if target_rule.type == "risk_reward_ratio":
        distance = risk * value
    elif target_rule.type == "atr_multiple":
        if not atr:
            return RiskLevels(sl=sl, tp=None, tp_source="none")
        distance = atr * value
    else:  # percentage
        distance = entry_price * (value / 100.0)

    return RiskLevels(sl=sl, tp=entry_price + sign * distance, tp_source="rule")
