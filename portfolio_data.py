#!/usr/bin/env python3
"""
Portfolio Data Manager
Handles loading, saving, and editing the division tree stored as one JSON document
"""

import json
import logging
import os
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from portfolio_rebalancer import (
    Division, EntityId, Holding, Portfolio, Subdivision, parse_amount,
)

logger = logging.getLogger(__name__)

DATA_FILE = os.getenv('PORTFOLIO_DATA_FILE', os.path.join('data', 'portfolio.json'))


class EntityNotFoundError(LookupError):
    """Raised when a division, subdivision or holding id is not in the tree"""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class ValidationError(ValueError):
    """Raised when a create/update request is missing required fields"""


class PortfolioDataError(RuntimeError):
    """Raised when the persisted document cannot be parsed"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JsonPortfolioStore:
    """File-backed store; every save rewrites the whole document"""

    def __init__(self, path=DATA_FILE):
        self.path = Path(path)

    def _ensure_data_file(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            logger.info("Seeding empty portfolio at %s", self.path)
            self._write({'divisions': [], 'updatedAt': _utc_now()})

    def _write(self, data: Dict):
        # Write to a sibling temp file, then swap it in
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def load(self) -> Portfolio:
        """Load the portfolio document, creating an empty one if missing"""
        self._ensure_data_file()
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise PortfolioDataError(f"Failed to parse portfolio data: {e}") from e
        if not isinstance(data, dict):
            raise PortfolioDataError("Failed to parse portfolio data: document is not an object")
        portfolio = Portfolio.from_dict(data)
        if assign_missing_ids(portfolio):
            logger.warning("Assigned ids to entities missing one in %s", self.path)
            self._write(portfolio.to_dict())
        return portfolio

    def save(self, portfolio: Portfolio) -> Portfolio:
        """Stamp and persist the portfolio, returning the saved copy"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        portfolio.updated_at = _utc_now()
        self._write(portfolio.to_dict())
        logger.info("Portfolio saved to %s at %s", self.path, portfolio.updated_at)
        return portfolio


def _new_id() -> EntityId:
    return EntityId(str(uuid.uuid4()))


def assign_missing_ids(portfolio: Portfolio) -> bool:
    """Give a fresh id to every entity whose id is empty or already taken.

    Returns True if anything changed.
    """
    seen = set()
    changed = False
    entities = []
    for division in portfolio.divisions:
        entities.append(division)
        entities.extend(division.holdings)
        for sub in division.subdivisions:
            entities.append(sub)
            entities.extend(sub.holdings)
    for entity in entities:
        if not entity.id or entity.id in seen:
            entity.id = _new_id()
            changed = True
        seen.add(entity.id)
    return changed


def _require_name(name) -> str:
    if name is None or not str(name).strip():
        raise ValidationError('name required')
    return str(name)


def create_division(name, target_percent=0) -> Division:
    return Division(id=_new_id(), name=_require_name(name), target_percent=parse_amount(target_percent))


def create_subdivision(name, target_percent=0) -> Subdivision:
    return Subdivision(id=_new_id(), name=_require_name(name), target_percent=parse_amount(target_percent))


def create_holding(name, invested=0, current=0, target_percent=None) -> Holding:
    return Holding(
        id=_new_id(),
        name=_require_name(name),
        invested=parse_amount(invested),
        current=parse_amount(current),
        target_percent=parse_amount(target_percent) if target_percent is not None else None,
    )


def find_division(portfolio: Portfolio, division_id) -> Division:
    for division in portfolio.divisions:
        if division.id == division_id:
            return division
    raise EntityNotFoundError('division', division_id)


def find_subdivision(portfolio: Portfolio, subdivision_id) -> Tuple[Division, Subdivision]:
    """Return (parent division, subdivision) for a subdivision id"""
    for division in portfolio.divisions:
        for sub in division.subdivisions:
            if sub.id == subdivision_id:
                return division, sub
    raise EntityNotFoundError('subdivision', subdivision_id)


def find_holding(portfolio: Portfolio, holding_id) -> Tuple[List[Holding], Holding]:
    """Return (owning holdings list, holding) wherever the holding lives"""
    for division in portfolio.divisions:
        for h in division.holdings:
            if h.id == holding_id:
                return division.holdings, h
        for sub in division.subdivisions:
            for h in sub.holdings:
                if h.id == holding_id:
                    return sub.holdings, h
    raise EntityNotFoundError('holding', holding_id)


def replace_divisions(portfolio: Portfolio, divisions) -> Portfolio:
    """Swap in a whole new division list (used by POST /api/portfolio)"""
    if not isinstance(divisions, list):
        divisions = []
    portfolio.divisions = [Division.from_dict(d) for d in divisions if isinstance(d, dict)]
    assign_missing_ids(portfolio)
    return portfolio


def _remove_exact(items: List, item):
    # Match by identity; dataclass equality could hit an identical sibling
    for i, candidate in enumerate(items):
        if candidate is item:
            del items[i]
            return


def add_division(portfolio: Portfolio, name, target_percent=0) -> Division:
    division = create_division(name, target_percent)
    portfolio.divisions.append(division)
    return division


def update_division(portfolio: Portfolio, division_id, updates: Dict) -> Division:
    division = find_division(portfolio, division_id)
    if updates.get('name') is not None:
        division.name = _require_name(updates['name'])
    if 'targetPercent' in updates:
        division.target_percent = parse_amount(updates['targetPercent'])
    return division


def delete_division(portfolio: Portfolio, division_id) -> Division:
    division = find_division(portfolio, division_id)
    _remove_exact(portfolio.divisions, division)
    return division


def add_subdivision(portfolio: Portfolio, division_id, name, target_percent=0) -> Subdivision:
    division = find_division(portfolio, division_id)
    sub = create_subdivision(name, target_percent)
    division.subdivisions.append(sub)
    return sub


def update_subdivision(portfolio: Portfolio, subdivision_id, updates: Dict) -> Subdivision:
    _, sub = find_subdivision(portfolio, subdivision_id)
    if updates.get('name') is not None:
        sub.name = _require_name(updates['name'])
    if 'targetPercent' in updates:
        sub.target_percent = parse_amount(updates['targetPercent'])
    return sub


def delete_subdivision(portfolio: Portfolio, subdivision_id) -> Subdivision:
    division, sub = find_subdivision(portfolio, subdivision_id)
    _remove_exact(division.subdivisions, sub)
    return sub


def add_holding(portfolio: Portfolio, division_id, holding_data: Dict,
                subdivision_id: Optional[str] = None) -> Holding:
    """Add a holding to a division, or to one of its subdivisions"""
    division = find_division(portfolio, division_id)
    holding = create_holding(
        holding_data.get('name'),
        holding_data.get('invested', 0),
        holding_data.get('current', 0),
        holding_data.get('targetPercent'),
    )
    if subdivision_id:
        for sub in division.subdivisions:
            if sub.id == subdivision_id:
                sub.holdings.append(holding)
                return holding
        raise EntityNotFoundError('subdivision', subdivision_id)
    division.holdings.append(holding)
    return holding


def update_holding(portfolio: Portfolio, holding_id, updates: Dict) -> Holding:
    """Update a specific holding"""
    _, holding = find_holding(portfolio, holding_id)
    if updates.get('name') is not None:
        holding.name = _require_name(updates['name'])
    if 'invested' in updates:
        holding.invested = parse_amount(updates['invested'])
    if 'current' in updates:
        holding.current = parse_amount(updates['current'])
    if 'targetPercent' in updates:
        holding.target_percent = parse_amount(updates['targetPercent'])
    return holding


def delete_holding(portfolio: Portfolio, holding_id) -> Holding:
    owner, holding = find_holding(portfolio, holding_id)
    _remove_exact(owner, holding)
    return holding
