"""
analytics/waterfall.py
----------------------

European (whole-fund) distribution waterfall.

Tiers, in order:
    1. Return of Capital   100% LP, up to total contributed capital
    2. Preferred Return    100% LP, compounded hurdle on contributed capital
    3. GP Catch-Up         catch_up_rate to GP until GP holds carry% of profits
    4. Carried Interest    remaining split carry% GP / (1 - carry%) LP

A tier with nothing allocated to it is omitted from the result.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class WaterfallInput:
    total_distributable: float
    total_contributed: float
    hurdle_rate: Optional[float]
    carried_interest: float
    catch_up_rate: Optional[float]
    holding_period_years: float
    management_fee: Optional[float] = None


@dataclass(frozen=True)
class WaterfallTier:
    name: str
    lp_amount: float
    gp_amount: float
    total_amount: float


@dataclass(frozen=True)
class WaterfallResult:
    tiers: List[WaterfallTier] = field(default_factory=list)
    lp_total: float = 0.0
    gp_total: float = 0.0
    total_distributed: float = 0.0
    effective_carry_pct: Optional[float] = None
    lp_multiple: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _build_result(tiers: List[WaterfallTier], lp_total: float, gp_total: float, contributed: float) -> WaterfallResult:
    distributed = sum(t.total_amount for t in tiers)
    profit = distributed - contributed
    return WaterfallResult(
        tiers=tiers,
        lp_total=lp_total,
        gp_total=gp_total,
        total_distributed=distributed,
        effective_carry_pct=gp_total / profit if profit > 0 and gp_total > 0 else None,
        lp_multiple=lp_total / contributed if contributed > 0 else 0.0,
    )


def calculate_waterfall(params: WaterfallInput) -> WaterfallResult:
    distributable = params.total_distributable
    contributed = params.total_contributed
    carry = params.carried_interest or 0.0

    if distributable <= 0 or contributed <= 0:
        return WaterfallResult()

    tiers: List[WaterfallTier] = []
    remaining = distributable
    lp_total = 0.0
    gp_total = 0.0

    # Tier 1: return of capital
    tier1 = min(remaining, contributed)
    tiers.append(WaterfallTier("Return of Capital", tier1, 0.0, tier1))
    lp_total += tier1
    remaining -= tier1
    if remaining <= 0:
        return _build_result(tiers, lp_total, gp_total, contributed)

    # Tier 2: compounded preferred return
    hurdle = params.hurdle_rate if params.hurdle_rate and params.hurdle_rate > 0 else 0.0
    preferred = 0.0
    if hurdle > 0 and params.holding_period_years > 0:
        preferred = contributed * ((1 + hurdle) ** params.holding_period_years - 1)
    tier2 = min(remaining, preferred)
    if tier2 > 0:
        tiers.append(WaterfallTier("Preferred Return", tier2, 0.0, tier2))
        lp_total += tier2
        remaining -= tier2
    if remaining <= 0:
        return _build_result(tiers, lp_total, gp_total, contributed)

    # Tier 3: GP catch-up until GP holds carry / (1 - carry) of the preferred return
    catch_up = params.catch_up_rate if params.catch_up_rate is not None else 0.0
    if catch_up > 0 and carry > 0:
        gp_target = (carry / (1 - carry)) * tier2
        catch_up_total = min(remaining, gp_target / catch_up)
        if catch_up_total > 0:
            gp_catch_up = catch_up_total * catch_up
            lp_catch_up = catch_up_total - gp_catch_up
            tiers.append(WaterfallTier("GP Catch-Up", lp_catch_up, gp_catch_up, catch_up_total))
            lp_total += lp_catch_up
            gp_total += gp_catch_up
            remaining -= catch_up_total
    if remaining <= 0:
        return _build_result(tiers, lp_total, gp_total, contributed)

    # Tier 4: carried interest split
    gp_carry = remaining * carry
    lp_share = remaining - gp_carry
    tiers.append(WaterfallTier("Carried Interest", lp_share, gp_carry, remaining))
    lp_total += lp_share
    gp_total += gp_carry

    return _build_result(tiers, lp_total, gp_total, contributed)


def calculate_investor_waterfall(params: WaterfallInput, ownership_pct: float) -> WaterfallResult:
    """
    One LP's view of the fund waterfall.

    LP amounts are scaled by ``ownership_pct``; GP amounts are the fund totals.
    """
    full = calculate_waterfall(params)
    tiers = [
        WaterfallTier(
            name=t.name,
            lp_amount=t.lp_amount * ownership_pct,
            gp_amount=t.gp_amount,
            total_amount=t.lp_amount * ownership_pct + t.gp_amount,
        )
        for t in full.tiers
    ]
    lp_total = full.lp_total * ownership_pct
    lp_basis = params.total_contributed * ownership_pct
    return WaterfallResult(
        tiers=tiers,
        lp_total=lp_total,
        gp_total=full.gp_total,
        total_distributed=lp_total + full.gp_total,
        effective_carry_pct=full.effective_carry_pct,
        lp_multiple=lp_total / lp_basis if lp_basis > 0 else 0.0,
    )
