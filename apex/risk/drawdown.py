"""Drawdown tracking — pure math, no I/O.

Follows an equity curve point by point and keeps the deepest
peak-to-trough decline, in quote currency and as a percentage of the
peak it fell from.
"""


class DrawdownTracker:
    """Running peak / trough statistics over an equity curve.

    Args:
        initial_equity: Equity before the first update; the first peak.
    """

    def __init__(self, initial_equity: float) -> None:
        if initial_equity <= 0:
            raise ValueError(
                f"initial_equity must be positive, got {initial_equity}"
            )
        self._peak = float(initial_equity)
        self._equity = float(initial_equity)
        self._worst = 0.0
        self._worst_pct = 0.0

    def update(self, equity: float) -> float:
        """Record the next equity point and return the current drawdown %."""
        self._equity = equity
        self._peak = max(self._peak, equity)
        self._worst = max(self._worst, self._peak - equity)
        pct = self.drawdown_pct
        self._worst_pct = max(self._worst_pct, pct)
        return pct

    @property
    def peak_equity(self) -> float:
        return self._peak

    @property
    def current_equity(self) -> float:
        return self._equity

    @property
    def drawdown_pct(self) -> float:
        """Distance below the running peak, in percent."""
        if self._peak <= 0:
            return 0.0
        return (self._peak - self._equity) / self._peak * 100.0

    @property
    def max_drawdown(self) -> float:
        """Deepest decline seen, in quote currency."""
        return self._worst

    @property
    def max_drawdown_pct(self) -> float:
        """Deepest decline seen, as a percentage of the peak at the time."""
        return self._worst_pct
