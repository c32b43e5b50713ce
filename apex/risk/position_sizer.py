"""Position sizing — pure math, no I/O.

Converts account equity and the configured sizing mode into a position
size in units of the traded asset.
"""

from typing import Optional

from apex.models.strategy_config import PositionSizing


def calculate_units(
    equity: float,
    risk_pct: float,
    sl_distance: float,
) -> float:
    """Risk-based position size.

    Formula::

        risk_amount = equity × (risk_pct / 100)
        units       = risk_amount / sl_distance

    Raises:
        ValueError: If any input is non-positive.
    """
    if equity <= 0:
        raise ValueError(f"equity must be positive, got {equity}")
    if risk_pct <= 0:
        raise ValueError(f"risk_pct must be positive, got {risk_pct}")
    if sl_distance <= 0:
        raise ValueError(f"sl_distance must be positive, got {sl_distance}")

    return equity * (risk_pct / 100.0) / sl_distance


def calculate_position_size(
    equity: float,
    sizing: PositionSizing,
    entry_price: float,
    sl_distance: Optional[float] = None,
) -> float:
    """Position size in asset units for the configured sizing mode.

    - ``percentage_of_equity``: ``equity × value % / entry``
    - ``fixed_amount``: ``value / entry`` (value in quote currency)
    - ``risk_percentage``: see :func:`calculate_units`; needs a stop.

    Returns 0.0 when the account has no equity left to size against.

    Raises:
        ValueError: If *entry_price* is non-positive, or a risk-based size
            is requested without a positive stop distance.
    """
    if entry_price <= 0:
        raise ValueError(f"entry_price must be positive, got {entry_price}")
    if equity <= 0:
        return 0.0

    if sizing.mode == "risk_percentage":
        if not sl_distance or sl_distance <= 0:
            raise ValueError("risk_percentage sizing needs a positive stop distance")
        return calculate_units(equity, sizing.value, sl_distance)

    if sizing.mode == "fixed_amount":
        quote = sizing.value
    else:
        quote = equity * (sizing.value / 100.0)
    if quote <= 0:
        return 0.0
    return quote / entry_price
