"""Bar-based outcome determination for emitted buy/sell points.

Each point is walked through the realized bars after its signal date,
up to the prediction horizon.

Rules:
- BUY: high >= take_profit[0] -> TP, low <= stop_loss -> SL
- SELL: low <= take_profit[0] -> TP, high >= stop_loss -> SL
- Both hit on the same bar -> SL (pessimistic assumption)
- Neither hit within the horizon -> OPEN, marked to the last close
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from signal_engine.models.bar import Bar
from signal_engine.models.signal import BuySellPoint, PointType, Side

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    TP = "tp"
    SL = "sl"
    OPEN = "open"


@dataclass(frozen=True)
class SignalOutcome:
    """Realized result of one buy/sell point."""

    point_id: str
    point_type: PointType
    entry_price: float
    stop_loss: float
    target: float
    outcome: Outcome
    exit_price: float
    bars_held: int
    # Result in units of initial risk (entry to stop distance)
    r_multiple: float


def _check_bar(point: BuySellPoint, bar: Bar) -> Outcome | None:
    """TP/SL check for one bar. Pessimistic when both are touched."""
    target = point.take_profit[0]
    if point.side == Side.BUY:
        tp_hit = bar.high >= target
        sl_hit = bar.low <= point.stop_loss
    else:
        tp_hit = bar.low <= target
        sl_hit = bar.high >= point.stop_loss

    if sl_hit:
        return Outcome.SL
    if tp_hit:
        return Outcome.TP
    return None


def _r_multiple(point: BuySellPoint, exit_price: float) -> float:
    risk = point.risk_amount
    if risk <= 0:
        return 0.0
    if point.side == Side.BUY:
        return (exit_price - point.price_level) / risk
    return (point.price_level - exit_price) / risk


def evaluate_point(point: BuySellPoint, realized: Sequence[Bar]) -> SignalOutcome:
    """
    Walk a point through the bars that followed it.

    Args:
        point: Buy/sell point emitted on the last history bar
        realized: Bars after the signal date, oldest first

    Returns:
        SignalOutcome (OPEN when neither level was reached)
    """
    target = point.take_profit[0]
    outcome = Outcome.OPEN
    exit_price = point.price_level
    bars_held = 0

    for bar in realized:
        bars_held += 1
        hit = _check_bar(point, bar)
        if hit == Outcome.SL:
            outcome, exit_price = Outcome.SL, point.stop_loss
            break
        if hit == Outcome.TP:
            outcome, exit_price = Outcome.TP, target
            break
        exit_price = bar.close

    logger.debug(
        f"{point.point_type.value} @ {point.price_level:.2f} on {point.signal_date}: "
        f"{outcome.value} after {bars_held} bars"
    )
    return SignalOutcome(
        point_id=point.id,
        point_type=point.point_type,
        entry_price=point.price_level,
        stop_loss=point.stop_loss,
        target=target,
        outcome=outcome,
        exit_price=exit_price,
        bars_held=bars_held,
        r_multiple=_r_multiple(point, exit_price),
    )
