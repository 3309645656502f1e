#!/usr/bin/env python3
"""
Portfolio Rebalancing Engine
Rolls up division/subdivision valuations and goal-seeks the minimum capital
needed for every division to reach its target percentage
"""

import math
import re
import sys
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, NewType, Optional, Sequence

EntityId = NewType('EntityId', str)


def parse_amount(value) -> float:
    """Coerce any numeric-ish input to a non-negative finite float (default 0)"""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        # Remove currency symbols, thousands separators and a trailing percent
        cleaned = re.sub(r'[£$€₹,\s"\']', '', str(value)).rstrip('%')
        if not cleaned:
            return 0.0
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


@dataclass
class Holding:
    """Represents a single investment position"""
    id: EntityId
    name: str
    invested: float = 0.0
    current: float = 0.0
    target_percent: Optional[float] = None

    @property
    def profit(self) -> float:
        return self.current - self.invested

    @classmethod
    def from_dict(cls, data: Dict) -> 'Holding':
        target = data.get('targetPercent')
        return cls(
            id=EntityId(str(data.get('id') or '')),
            name=str(data.get('name', '')),
            invested=parse_amount(data.get('invested')),
            current=parse_amount(data.get('current')),
            target_percent=parse_amount(target) if target is not None else None,
        )

    def to_dict(self) -> Dict:
        data = {'id': self.id, 'name': self.name, 'invested': self.invested, 'current': self.current}
        if self.target_percent is not None:
            data['targetPercent'] = self.target_percent
        return data


@dataclass
class Subdivision:
    """Second-level bucket; target is a share of the parent division"""
    id: EntityId
    name: str
    target_percent: float = 0.0
    holdings: List[Holding] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Subdivision':
        return cls(
            id=EntityId(str(data.get('id') or '')),
            name=str(data.get('name', '')),
            target_percent=parse_amount(data.get('targetPercent')),
            holdings=[Holding.from_dict(h) for h in data.get('holdings') or [] if isinstance(h, dict)],
        )

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'targetPercent': self.target_percent,
            'holdings': [h.to_dict() for h in self.holdings],
        }


@dataclass
class Division:
    """Top-level asset class; target is a share of the whole portfolio"""
    id: EntityId
    name: str
    target_percent: float = 0.0
    holdings: List[Holding] = field(default_factory=list)
    subdivisions: List[Subdivision] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Division':
        return cls(
            id=EntityId(str(data.get('id') or '')),
            name=str(data.get('name', '')),
            target_percent=parse_amount(data.get('targetPercent')),
            holdings=[Holding.from_dict(h) for h in data.get('holdings') or [] if isinstance(h, dict)],
            subdivisions=[Subdivision.from_dict(s) for s in data.get('subdivisions') or [] if isinstance(s, dict)],
        )

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'targetPercent': self.target_percent,
            'holdings': [h.to_dict() for h in self.holdings],
            'subdivisions': [s.to_dict() for s in self.subdivisions],
        }


@dataclass
class Portfolio:
    """Root document: ordered divisions plus any unrelated top-level keys"""
    divisions: List[Division] = field(default_factory=list)
    updated_at: Optional[str] = None
    extra: Dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Portfolio':
        divisions = data.get('divisions')
        if not isinstance(divisions, list):
            divisions = []
        extra = {k: v for k, v in data.items() if k not in ('divisions', 'updatedAt')}
        return cls(
            divisions=[Division.from_dict(d) for d in divisions if isinstance(d, dict)],
            updated_at=data.get('updatedAt'),
            extra=extra,
        )

    def to_dict(self) -> Dict:
        data = dict(self.extra)
        data['divisions'] = [d.to_dict() for d in self.divisions]
        data['updatedAt'] = self.updated_at
        return data


@dataclass
class Totals:
    invested: float = 0.0
    current: float = 0.0

    @property
    def profit(self) -> float:
        return self.current - self.invested

    def to_dict(self) -> Dict:
        return {'invested': self.invested, 'current': self.current, 'profit': self.profit}


@dataclass
class GoalSeekResult:
    """Minimum total addition plus the per-entity split, keyed by entity id"""
    required_addition: float
    additions: Dict[EntityId, float]

    def addition_for(self, entity_id: EntityId) -> Optional[float]:
        """Return the addition for an entity, or None if the id is unknown"""
        return self.additions.get(entity_id)

    def to_dict(self, additions_key: str = 'additionsBySubdivision') -> Dict:
        return {'requiredAddition': self.required_addition, additions_key: dict(self.additions)}


@dataclass
class AllocationRow:
    """Solver input: one sibling entity's current value and target"""
    id: EntityId
    current: float
    target_percent: float


def _sum_holdings(holdings: Iterable[Holding]) -> Totals:
    totals = Totals()
    for h in holdings:
        totals.invested += parse_amount(h.invested)
        totals.current += parse_amount(h.current)
    return totals


def compute_subdivision_totals(subdivision: Subdivision) -> Totals:
    """Sum invested/current over a subdivision's holdings"""
    return _sum_holdings(subdivision.holdings)


def compute_division_totals(division: Division) -> Totals:
    """Sum a division's direct holdings plus all of its subdivisions"""
    totals = _sum_holdings(division.holdings)
    for sub in division.subdivisions:
        sub_totals = compute_subdivision_totals(sub)
        totals.invested += sub_totals.invested
        totals.current += sub_totals.current
    return totals


def compute_portfolio_totals(portfolio: Portfolio) -> Totals:
    totals = Totals()
    for division in portfolio.divisions:
        div_totals = compute_division_totals(division)
        totals.invested += div_totals.invested
        totals.current += div_totals.current
    return totals


def current_percent(value: float, parent_total: float) -> float:
    """Share of the parent total as a percentage (0 when the parent is empty)"""
    parent_total = parse_amount(parent_total)
    if parent_total <= 0:
        return 0.0
    return parse_amount(value) / parent_total * 100


def delta_percent(target: float, current: float) -> float:
    return parse_amount(target) - current


def compute_required_additions(rows: Sequence[AllocationRow]) -> GoalSeekResult:
    """
    Goal-seek the smallest new total at which every row can sit at its target.

    Each row with a positive target implies a lower bound on the new total:
    current_i / target_i. The largest bound wins; rows already above their
    share of that total get nothing (they are diluted, never sold down).
    """
    total = sum(parse_amount(r.current) for r in rows)
    if total <= 0:
        return GoalSeekResult(0.0, {r.id: 0.0 for r in rows})

    new_total = total
    for r in rows:
        target = parse_amount(r.target_percent) / 100
        if target > 0:
            new_total = max(new_total, parse_amount(r.current) / target)

    additions = {}
    for r in rows:
        target_value = parse_amount(r.target_percent) / 100 * new_total
        additions[r.id] = max(0.0, target_value - parse_amount(r.current))

    return GoalSeekResult(new_total - total, additions)


def compute_subdivision_goal_seek(division: Division) -> GoalSeekResult:
    """Goal-seek one division's subdivisions against their share of the division"""
    rows = [
        AllocationRow(s.id, compute_subdivision_totals(s).current, s.target_percent)
        for s in division.subdivisions
    ]
    # Direct division holdings are outside the subdivision base
    if not any(parse_amount(r.target_percent) > 0 for r in rows):
        return GoalSeekResult(0.0, {r.id: 0.0 for r in rows})
    return compute_required_additions(rows)


def compute_all_subdivision_goal_seeks(portfolio: Portfolio) -> Dict[EntityId, GoalSeekResult]:
    return {d.id: compute_subdivision_goal_seek(d) for d in portfolio.divisions}


def compute_budget_allocation(rows: Sequence[AllocationRow], budget) -> Dict[EntityId, float]:
    """
    Split a fixed budget across rows in proportion to their unmet target.

    Desired adds are measured against (total + budget) and then rescaled so
    the allocations add up to exactly the budget.
    """
    budget = parse_amount(budget)
    zeros = {r.id: 0.0 for r in rows}
    if budget <= 0:
        return zeros

    total = sum(parse_amount(r.current) for r in rows)
    desired = {
        r.id: max(0.0, parse_amount(r.target_percent) / 100 * (total + budget) - parse_amount(r.current))
        for r in rows
    }
    desired_total = sum(desired.values())
    if desired_total <= 0:
        return zeros

    # Ratio first keeps the result bounded when desired_total is tiny
    return {entity_id: budget * (x / desired_total) for entity_id, x in desired.items()}


def _division_rows(portfolio: Portfolio) -> List[AllocationRow]:
    return [
        AllocationRow(d.id, compute_division_totals(d).current, d.target_percent)
        for d in portfolio.divisions
    ]


def compute_analytics(portfolio: Portfolio, budget=None) -> Dict:
    """Build the analytics payload served at /api/portfolio/analytics"""
    totals = compute_portfolio_totals(portfolio)
    rows = _division_rows(portfolio)
    goal_seek = compute_required_additions(rows)

    divisions = []
    for division in portfolio.divisions:
        div_totals = compute_division_totals(division)
        div_percent = current_percent(div_totals.current, totals.current)
        sub_seek = compute_subdivision_goal_seek(division)

        subdivisions = []
        for sub in division.subdivisions:
            sub_totals = compute_subdivision_totals(sub)
            sub_percent = current_percent(sub_totals.current, div_totals.current)
            subdivisions.append({
                'id': sub.id,
                'name': sub.name,
                'targetPercent': sub.target_percent,
                **sub_totals.to_dict(),
                'currentPercent': sub_percent,
                'deltaPercent': delta_percent(sub.target_percent, sub_percent),
                'requiredAddition': sub_seek.addition_for(sub.id) or 0.0,
            })

        divisions.append({
            'id': division.id,
            'name': division.name,
            'targetPercent': division.target_percent,
            **div_totals.to_dict(),
            'currentPercent': div_percent,
            'deltaPercent': delta_percent(division.target_percent, div_percent),
            'requiredAddition': goal_seek.addition_for(division.id) or 0.0,
            'subdivisions': subdivisions,
        })

    if budget is None:
        budget_additions = {}
    else:
        budget = parse_amount(budget)
        budget_additions = compute_budget_allocation(rows, budget)

    return {
        'totals': totals.to_dict(),
        'divisions': divisions,
        'requiredTotalAddition': goal_seek.required_addition,
        'budget': budget,
        'budgetAdditions': budget_additions,
    }


def print_report(analytics: Dict, subdivision_seeks: Dict[EntityId, GoalSeekResult]):
    """Print formatted goal-seek report"""

    totals = analytics['totals']

    print("=" * 80)
    print("PORTFOLIO GOAL-SEEK ANALYSIS")
    print("=" * 80)
    print()

    print(f"Total Invested: {totals['invested']:>14,.2f}")
    print(f"Total Current:  {totals['current']:>14,.2f}")
    print(f"Total Profit:   {totals['profit']:>14,.2f}")
    print()

    print("-" * 80)
    print("DIVISIONS")
    print("-" * 80)
    print()

    if not analytics['divisions']:
        print("No divisions defined yet.")

    for div in analytics['divisions']:
        print(f"{div['name']}")
        print(f"       Current: {div['current']:>14,.2f} ({div['currentPercent']:>6.2f}%)")
        print(f"       Target:  {div['targetPercent']:>21.2f}%")
        print(f"       Delta:   {div['deltaPercent']:>+21.2f}%")
        print(f"       Add:     {div['requiredAddition']:>14,.2f}")

        seek = subdivision_seeks.get(div['id'])
        for sub in div['subdivisions']:
            add = seek.addition_for(sub['id']) if seek else None
            print(f"         - {sub['name']:28s} {sub['currentPercent']:>6.2f}% -> "
                  f"{sub['targetPercent']:>6.2f}%  add {add or 0:>12,.2f}")
        print()

    print("-" * 80)
    if analytics['requiredTotalAddition'] <= 0:
        print("Portfolio is balanced! No additional capital required.")
    else:
        print(f"Minimum addition to balance all divisions: {analytics['requiredTotalAddition']:,.2f}")
    print("=" * 80)


def main():
    """Main execution function"""
    from logging_config import setup_logging
    from portfolio_data import DATA_FILE, JsonPortfolioStore

    setup_logging()

    data_file = sys.argv[1] if len(sys.argv) > 1 else DATA_FILE

    print(f"Loading portfolio data from {data_file}...")
    portfolio = JsonPortfolioStore(data_file).load()

    print(f"Loaded {len(portfolio.divisions)} divisions")
    print()

    analytics = compute_analytics(portfolio)
    print_report(analytics, compute_all_subdivision_goal_seeks(portfolio))


if __name__ == "__main__":
    main()
