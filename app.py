#!/usr/bin/env python3
"""
Portfolio Division Tracker Web Application
Flask backend persisting the division tree and serving goal-seek analytics
"""

import logging
import os

from flask import Flask, current_app, jsonify, request
from flask_cors import CORS

from logging_config import setup_logging
from monthly_planner import build_goal_seek_timeline, recommend_monthly_split
from portfolio_data import (
    DATA_FILE, EntityNotFoundError, JsonPortfolioStore, ValidationError,
    add_division, add_holding, add_subdivision, delete_division, delete_holding,
    delete_subdivision, replace_divisions, update_division, update_holding,
    update_subdivision,
)
from portfolio_rebalancer import compute_all_subdivision_goal_seeks, compute_analytics
from price_service import get_quotes

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FILE = os.getenv('LOG_FILE')
PORT = int(os.getenv('PORT', '3001'))
CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*').split(',')

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['PORTFOLIO_STORE'] = JsonPortfolioStore(DATA_FILE)
CORS(app, origins=CORS_ORIGINS)


def get_store() -> JsonPortfolioStore:
    return current_app.config['PORTFOLIO_STORE']


def _request_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _error(e, status):
    if status >= 500:
        logger.error("Error processing %s %s: %s", request.method, request.path, e, exc_info=True)
    return jsonify({'error': str(e)}), status


@app.route('/api/health')
def health():
    """Health check"""
    return jsonify({'ok': True, 'dataFile': os.path.basename(str(get_store().path))})


@app.route('/api/portfolio', methods=['GET'])
def get_portfolio():
    """Return the persisted portfolio document"""
    try:
        return jsonify(get_store().load().to_dict())
    except Exception as e:
        return _error(e, 500)


@app.route('/api/portfolio', methods=['POST'])
def save_portfolio():
    """Replace the whole division list"""
    try:
        store = get_store()
        portfolio = replace_divisions(store.load(), _request_body().get('divisions'))
        return jsonify(store.save(portfolio).to_dict())
    except Exception as e:
        return _error(e, 500)


@app.route('/api/divisions', methods=['POST'])
def add_division_endpoint():
    """Add a new division"""
    try:
        data = _request_body()
        store = get_store()
        portfolio = store.load()
        division = add_division(portfolio, data.get('name'), data.get('targetPercent', 0))
        store.save(portfolio)
        return jsonify(division.to_dict())
    except ValidationError as e:
        return _error(e, 400)
    except Exception as e:
        return _error(e, 500)


@app.route('/api/divisions/<division_id>', methods=['PATCH'])
def update_division_endpoint(division_id):
    """Update a division's name or target"""
    try:
        store = get_store()
        portfolio = store.load()
        division = update_division(portfolio, division_id, _request_body())
        store.save(portfolio)
        return jsonify(division.to_dict())
    except EntityNotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)
    except Exception as e:
        return _error(e, 500)


@app.route('/api/divisions/<division_id>', methods=['DELETE'])
def delete_division_endpoint(division_id):
    """Delete a division with everything under it"""
    try:
        store = get_store()
        portfolio = store.load()
        removed = delete_division(portfolio, division_id)
        store.save(portfolio)
        return jsonify(removed.to_dict())
    except EntityNotFoundError as e:
        return _error(e, 404)
    except Exception as e:
        return _error(e, 500)


@app.route('/api/divisions/<division_id>/subdivisions', methods=['POST'])
def add_subdivision_endpoint(division_id):
    """Add a subdivision to a division"""
    try:
        data = _request_body()
        store = get_store()
        portfolio = store.load()
        sub = add_subdivision(portfolio, division_id, data.get('name'), data.get('targetPercent', 0))
        store.save(portfolio)
        return jsonify(sub.to_dict())
    except EntityNotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)
    except Exception as e:
        return _error(e, 500)


@app.route('/api/divisions/<division_id>/holdings', methods=['POST'])
def add_holding_endpoint(division_id):
    """Add a holding to a division or one of its subdivisions"""
    try:
        data = _request_body()
        store = get_store()
        portfolio = store.load()
        holding = add_holding(portfolio, division_id, data, data.get('subdivisionId'))
        store.save(portfolio)
        return jsonify(holding.to_dict())
    except EntityNotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)
    except Exception as e:
        return _error(e, 500)


@app.route('/api/subdivisions/<subdivision_id>', methods=['PATCH'])
def update_subdivision_endpoint(subdivision_id):
    """Update a subdivision's name or target"""
    try:
        store = get_store()
        portfolio = store.load()
        sub = update_subdivision(portfolio, subdivision_id, _request_body())
        store.save(portfolio)
        return jsonify(sub.to_dict())
    except EntityNotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)
    except Exception as e:
        return _error(e, 500)


@app.route('/api/subdivisions/<subdivision_id>', methods=['DELETE'])
def delete_subdivision_endpoint(subdivision_id):
    """Delete a subdivision"""
    try:
        store = get_store()
        portfolio = store.load()
        removed = delete_subdivision(portfolio, subdivision_id)
        store.save(portfolio)
        return jsonify(removed.to_dict())
    except EntityNotFoundError as e:
        return _error(e, 404)
    except Exception as e:
        return _error(e, 500)


@app.route('/api/holdings/<holding_id>', methods=['PATCH'])
def update_holding_endpoint(holding_id):
    """Update a holding"""
    try:
        store = get_store()
        portfolio = store.load()
        holding = update_holding(portfolio, holding_id, _request_body())
        store.save(portfolio)
        return jsonify(holding.to_dict())
    except EntityNotFoundError as e:
        return _error(e, 404)
    except ValidationError as e:
        return _error(e, 400)
    except Exception as e:
        return _error(e, 500)


@app.route('/api/holdings/<holding_id>', methods=['DELETE'])
def delete_holding_endpoint(holding_id):
    """Delete a holding"""
    try:
        store = get_store()
        portfolio = store.load()
        removed = delete_holding(portfolio, holding_id)
        store.save(portfolio)
        return jsonify(removed.to_dict())
    except EntityNotFoundError as e:
        return _error(e, 404)
    except Exception as e:
        return _error(e, 500)


@app.route('/api/portfolio/analytics')
def get_analytics():
    """API endpoint to get totals, percentages and goal-seek additions"""
    try:
        portfolio = get_store().load()
        return jsonify(compute_analytics(portfolio, request.args.get('budget')))
    except Exception as e:
        return _error(e, 500)


@app.route('/api/subdivision-goal-seek')
def get_subdivision_goal_seek():
    """Subdivision goal seek for each division"""
    try:
        portfolio = get_store().load()
        results = compute_all_subdivision_goal_seeks(portfolio)
        return jsonify({division_id: seek.to_dict() for division_id, seek in results.items()})
    except Exception as e:
        return _error(e, 500)


@app.route('/api/portfolio/plan')
def get_monthly_plan():
    """Month-by-month schedule plus a one-month split for a monthly amount"""
    try:
        monthly = request.args.get('monthly', 0)
        mode = request.args.get('mode', 'weighted')
        gap_bias = request.args.get('gapBias', 60)

        analytics = compute_analytics(get_store().load())
        timeline = build_goal_seek_timeline(analytics, monthly)
        split = recommend_monthly_split(analytics, monthly, mode=mode, gap_bias=gap_bias)
        return jsonify({'timeline': timeline.to_dict(), 'split': split.to_dict()})
    except Exception as e:
        return _error(e, 500)


@app.route('/api/quotes')
def get_quotes_endpoint():
    """Live quotes for a comma-separated list of symbols"""
    try:
        symbols = request.args.get('symbols', '').split(',')
        return jsonify(get_quotes(symbols))
    except Exception as e:
        return _error(e, 500)


if __name__ == '__main__':
    logger.info("API listening on http://localhost:%s (data file %s)", PORT, DATA_FILE)
    app.run(debug=True, port=PORT)
