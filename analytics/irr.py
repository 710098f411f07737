"""
analytics/irr.py
----------------

XIRR for irregular, dated cash flows, plus fund-, company- and LP-level
wrappers.

Convention: negative amounts are money going in (capital calls, equity
invested), positive amounts are money coming back (distributions, NAV).

Solver: Newton-Raphson from a 10% guess; if it diverges or stalls, fall back
to a bracketed root search on [-99%, 1000%] via scipy's Brent method.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
from scipy.optimize import brentq

MAX_ITERATIONS = 100
TOLERANCE = 1e-10
DAYS_PER_YEAR = 365.25
BRACKET = (-0.99, 10.0)

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class CashFlow:
    date: DateLike
    amount: float


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    return datetime(value.year, value.month, value.day)


def calculate_xirr(cash_flows: Sequence[CashFlow]) -> Optional[float]:
    """
    Annualised IRR of dated cash flows, or None when undefined.

    Requires at least two flows containing both a negative and a positive
    amount. Returns None when no rate in the search bracket zeroes the NPV.
    """
    if len(cash_flows) < 2:
        return None
    if not any(cf.amount < 0 for cf in cash_flows) or not any(cf.amount > 0 for cf in cash_flows):
        return None

    ordered = sorted(cash_flows, key=lambda cf: _as_datetime(cf.date))
    t0 = _as_datetime(ordered[0].date)
    years = np.array(
        [(_as_datetime(cf.date) - t0).total_seconds() / (DAYS_PER_YEAR * 86400) for cf in ordered],
        dtype=float,
    )
    amounts = np.array([cf.amount for cf in ordered], dtype=float)

    def npv(rate: float) -> float:
        return float(np.sum(amounts / np.power(1.0 + rate, years)))

    def dnpv(rate: float) -> float:
        return float(np.sum(-years * amounts / np.power(1.0 + rate, years + 1.0)))

    # Newton-Raphson
    rate = 0.1
    for _ in range(MAX_ITERATIONS):
        f = npv(rate)
        if abs(f) < TOLERANCE:
            return rate
        df = dnpv(rate)
        if abs(df) < 1e-14:
            break
        new_rate = rate - f / df
        if not math.isfinite(new_rate) or new_rate < -0.999 or new_rate > 10:
            break
        rate = new_rate

    # Bracketed fallback
    lo, hi = BRACKET
    f_lo, f_hi = npv(lo), npv(hi)
    if f_lo * f_hi > 0:
        return None
    try:
        return float(brentq(npv, lo, hi, xtol=TOLERANCE, maxiter=MAX_ITERATIONS * 2))
    except (ValueError, RuntimeError):
        return None


def calculate_fund_irr(
    capital_calls: Iterable[CashFlow],
    distributions: Iterable[CashFlow],
    current_nav: Optional[float] = None,
    valuation_date: Optional[DateLike] = None,
) -> Optional[float]:
    """
    Fund IRR from the investor perspective.

    Calls are treated as outflows and distributions as inflows regardless of
    the sign they were passed with; a positive NAV is added as a terminal
    inflow on ``valuation_date`` (today by default).
    """
    flows: List[CashFlow] = [CashFlow(c.date, -abs(c.amount)) for c in capital_calls]
    flows.extend(CashFlow(d.date, abs(d.amount)) for d in distributions)
    if current_nav and current_nav > 0:
        flows.append(CashFlow(valuation_date or datetime.now(), current_nav))
    return calculate_xirr(flows)


def calculate_company_irr(
    investment_date: DateLike,
    equity_invested: float,
    current_value: float,
    valuation_date: Optional[DateLike] = None,
) -> Optional[float]:
    """IRR of a single entry/mark pair. None if either amount is non-positive."""
    if equity_invested is None or current_value is None:
        return None
    if equity_invested <= 0 or current_value <= 0:
        return None
    return calculate_xirr(
        [
            CashFlow(investment_date, -equity_invested),
            CashFlow(valuation_date or datetime.now(), current_value),
        ]
    )


def calculate_lp_irr(
    contributions: Iterable[CashFlow],
    distributions: Iterable[CashFlow],
    current_value: Optional[float] = None,
    valuation_date: Optional[DateLike] = None,
) -> Optional[float]:
    """LP-level IRR; same mechanics as the fund IRR over one investor's flows."""
    return calculate_fund_irr(contributions, distributions, current_value, valuation_date)
