#!/usr/bin/env python3
"""
Monthly Investment Planner
Schedules a fixed monthly amount against the goal-seek additions until the
portfolio is balanced, and recommends a one-month split by target and gap
"""

from dataclasses import dataclass, field
from typing import Dict, List

from portfolio_rebalancer import parse_amount

MAX_PLAN_MONTHS = 120
PLAN_EPSILON = 0.01


@dataclass
class MonthAllocation:
    id: str
    name: str
    amount: float
    subdivisions: List['MonthAllocation'] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'amount': self.amount,
            'subdivisions': [s.to_dict() for s in self.subdivisions],
        }


@dataclass
class PlanMonth:
    month: int
    allocations: List[MonthAllocation]
    total: float
    cumulative_invested: float
    remaining_total: float

    def to_dict(self) -> Dict:
        return {
            'month': self.month,
            'allocations': [a.to_dict() for a in self.allocations],
            'total': self.total,
            'cumulativeInvested': self.cumulative_invested,
            'remainingTotal': self.remaining_total,
        }


@dataclass
class Timeline:
    months: List[PlanMonth]
    total_required: float
    is_balanced: bool = False

    @property
    def total_months(self) -> int:
        return len(self.months)

    def to_dict(self) -> Dict:
        return {
            'months': [m.to_dict() for m in self.months],
            'totalMonths': self.total_months,
            'totalRequired': self.total_required,
            'isBalanced': self.is_balanced,
        }


@dataclass
class _Need:
    """Mutable remaining requirement for one division or subdivision"""
    id: str
    name: str
    remaining: float
    children: List['_Need'] = field(default_factory=list)


def _needs_from_analytics(analytics: Dict) -> List[_Need]:
    needs = []
    for div in analytics.get('divisions') or []:
        children = [
            _Need(sub.get('id'), sub.get('name') or 'Unknown', parse_amount(sub.get('requiredAddition')))
            for sub in div.get('subdivisions') or []
        ]
        needs.append(_Need(
            div.get('id'),
            div.get('name') or 'Unknown',
            parse_amount(div.get('requiredAddition')),
            [c for c in children if c.remaining > 0],
        ))
    return [n for n in needs if n.remaining > 0]


def _split_division(need: _Need, amount: float) -> List[MonthAllocation]:
    """Split one division's monthly share across its subdivisions by remaining need"""
    allocations = []
    total_remaining = sum(c.remaining for c in need.children)
    if total_remaining <= 0:
        return allocations
    left = amount
    for child in need.children:
        share = child.remaining / total_remaining
        sub_amount = min(amount * share, child.remaining, left)
        if sub_amount > 0:
            allocations.append(MonthAllocation(child.id, child.name, sub_amount))
            child.remaining -= sub_amount
            left -= sub_amount
    return allocations


def build_goal_seek_timeline(analytics: Dict, monthly_amount) -> Timeline:
    """
    Invest ``monthly_amount`` every month until every division's required
    addition is met.

    Each month the amount is shared across divisions by their remaining need
    (never more than a division still needs, never more than the month's
    amount in total), and each division's share is further split across its
    subdivisions. The loop ends when nothing remains, after MAX_PLAN_MONTHS,
    or when a month makes no progress.
    """
    amount = parse_amount(monthly_amount)
    total_required = parse_amount(analytics.get('requiredTotalAddition'))

    if amount <= 0:
        return Timeline([], 0.0)
    if total_required <= 0:
        return Timeline([], 0.0, is_balanced=True)

    remaining = _needs_from_analytics(analytics)
    months = []
    total_invested = 0.0

    while remaining and len(months) < MAX_PLAN_MONTHS:
        allocations = []
        month_total = 0.0
        total_remaining = sum(n.remaining for n in remaining)

        for need in remaining:
            div_amount = min(amount * (need.remaining / total_remaining), need.remaining)
            if month_total + div_amount > amount:
                div_amount = amount - month_total
            if div_amount <= 0:
                continue

            sub_allocations = _split_division(need, div_amount) if need.children else []
            allocations.append(MonthAllocation(need.id, need.name, div_amount, sub_allocations))
            need.remaining -= div_amount
            month_total += div_amount

        total_invested += month_total
        months.append(PlanMonth(
            month=len(months) + 1,
            allocations=allocations,
            total=month_total,
            cumulative_invested=total_invested,
            remaining_total=max(0.0, total_required - total_invested),
        ))

        remaining = [n for n in remaining if n.remaining > PLAN_EPSILON]
        for need in remaining:
            need.children = [c for c in need.children if c.remaining > PLAN_EPSILON]

        if month_total < PLAN_EPSILON:
            break

    return Timeline(months, total_required)


@dataclass
class SplitRow:
    id: str
    name: str
    target_percent: float
    current: float
    gap: float
    recommended: float
    note: str

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'targetPercent': self.target_percent,
            'current': self.current,
            'gap': self.gap,
            'recommended': self.recommended,
            'note': self.note,
        }


@dataclass
class MonthlySplit:
    allocations: List[SplitRow]
    total_recommended: float

    def to_dict(self) -> Dict:
        return {
            'allocations': [a.to_dict() for a in self.allocations],
            'totalRecommended': self.total_recommended,
        }


def recommend_monthly_split(analytics: Dict, monthly_amount, mode: str = 'weighted',
                            gap_bias=60) -> MonthlySplit:
    """Recommend how to split a single month's amount across divisions.

    In ``weighted`` mode ``gap_bias`` percent of the amount goes to
    underweight divisions by the size of their gap and the rest by target
    share. Any other mode, or a portfolio with nothing underweight, splits
    purely by target share.
    """
    amount = parse_amount(monthly_amount)
    bias_pct = min(100.0, parse_amount(gap_bias))
    gap_frac = bias_pct / 100
    total_current = parse_amount((analytics.get('totals') or {}).get('current'))

    rows = []
    for div in analytics.get('divisions') or []:
        target = parse_amount(div.get('targetPercent'))
        current = parse_amount(div.get('current'))
        rows.append({
            'id': div.get('id'),
            'name': div.get('name'),
            'target': target,
            'current': current,
            'gap': total_current * (target / 100) - current,
        })

    sum_positive = sum(r['gap'] for r in rows if r['gap'] > 0)
    target_sum = sum(r['target'] for r in rows) or 100

    allocations = []
    if mode == 'weighted' and sum_positive > 0:
        base_pool = amount * (1 - gap_frac)
        gap_pool = amount * gap_frac
        for r in rows:
            base_alloc = base_pool * (r['target'] / target_sum)
            gap_alloc = gap_pool * (r['gap'] / sum_positive) if r['gap'] > 0 and gap_pool > 0 else 0.0
            if gap_alloc > 0:
                note = f"Base + gap boost ({bias_pct:g}% to gaps)"
            elif base_pool > 0:
                note = 'Base by target %'
            else:
                note = 'Over / on target'
            allocations.append(SplitRow(r['id'], r['name'], r['target'], r['current'], r['gap'],
                                        base_alloc + gap_alloc, note))
    else:
        note = 'Balanced already' if mode == 'weighted' else 'By target %'
        for r in rows:
            allocations.append(SplitRow(r['id'], r['name'], r['target'], r['current'], r['gap'],
                                        amount * (r['target'] / target_sum), note))

    return MonthlySplit(allocations, sum(a.recommended for a in allocations))
