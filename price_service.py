#!/usr/bin/env python3
"""
Price Service - Fetches live quotes for holdings
- Yahoo Finance for exchange-listed symbols (e.g. INFY.NS, VWRL.L)
- FT Markets for funds identified as ISIN:CURRENCY (e.g. IE000WSZ17Z4:GBP)
"""

import logging
import re
import time
from typing import Dict, Iterable, List, Optional

import requests
import yfinance as yf

logger = logging.getLogger(__name__)

# FT Markets base URL for fund price pages
FT_BASE_URL = 'https://markets.ft.com/data/funds/tearsheet/summary?s='

FT_IDENTIFIER = re.compile(r'^[A-Z]{2}[A-Z0-9]{9}\d:[A-Z]{3}$')

YAHOO_BATCH_SIZE = 4
YAHOO_BATCH_PAUSE = 2


def normalize_symbols(symbols: Iterable[str]) -> List[str]:
    """Upper-case, strip and de-duplicate symbols, keeping their order"""
    seen = []
    for s in symbols:
        sym = (s or '').strip().upper()
        if sym and sym not in seen:
            seen.append(sym)
    return seen


def is_ft_identifier(symbol: str) -> bool:
    return bool(FT_IDENTIFIER.match(symbol))


def fetch_ft_price(ft_identifier: str) -> Optional[float]:
    """
    Fetch fund price from FT Markets (server-side rendered page).
    Returns the price or None if failed.
    """
    url = FT_BASE_URL + ft_identifier
    headers = {
        'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36'
    }

    try:
        resp = requests.get(url, headers=headers, timeout=15)
    except requests.RequestException as e:
        logger.warning("Error fetching FT price for %s: %s", ft_identifier, e)
        return None
    if resp.status_code != 200:
        logger.warning("FT Markets returned %s for %s", resp.status_code, ft_identifier)
        return None

    # FT puts the price in: <span class="mod-ui-data-list__value">183.21</span>
    match = re.search(r'class="mod-ui-data-list__value">([0-9,]+\.[0-9]+)', resp.text)
    if match:
        return float(match.group(1).replace(',', ''))
    return None


def _close_for(data, sym: str, batch_len: int) -> Optional[float]:
    try:
        if batch_len == 1:
            close = data['Close'].dropna().iloc[-1]
        else:
            close = data['Close'][sym].dropna().iloc[-1]
    except (KeyError, IndexError):
        return None
    # Newer yfinance returns a one-column frame even for a single symbol
    if hasattr(close, 'iloc'):
        close = close.iloc[0]
    return float(close)


def fetch_yahoo_prices(symbols: List[str]) -> Dict[str, float]:
    """Fetch last close for Yahoo symbols in small batches"""
    results = {}
    # Fetch in small batches to avoid Yahoo rate limits on cloud IPs
    for i in range(0, len(symbols), YAHOO_BATCH_SIZE):
        batch = symbols[i:i + YAHOO_BATCH_SIZE]
        if i > 0:
            time.sleep(YAHOO_BATCH_PAUSE)

        try:
            data = yf.download(batch, period='5d', progress=False)
        except Exception as e:
            logger.warning("Error fetching Yahoo prices for batch %s: %s", batch, e)
            continue

        if data is None or data.empty:
            continue
        for sym in batch:
            price = _close_for(data, sym, len(batch))
            if price is not None:
                results[sym] = price
    return results


def fetch_live_prices(symbols: Iterable[str]) -> Dict[str, float]:
    """
    Fetch live prices for a list of symbols.
    Returns dict of {symbol: price}
    """
    symbols = normalize_symbols(symbols)
    yahoo = [s for s in symbols if not is_ft_identifier(s)]
    results = fetch_yahoo_prices(yahoo) if yahoo else {}

    for sym in symbols:
        if is_ft_identifier(sym):
            price = fetch_ft_price(sym)
            if price is not None:
                results[sym] = price

    return results


def get_price_source(symbol: str) -> str:
    return 'FT Markets' if is_ft_identifier(symbol) else 'Yahoo Finance'


def get_quotes(symbols: Iterable[str]) -> Dict:
    """Quote payload for /api/quotes: prices found plus the symbols that were not"""
    symbols = normalize_symbols(symbols)
    prices = fetch_live_prices(symbols)
    return {
        'quotes': {sym: {'price': price, 'source': get_price_source(sym)} for sym, price in prices.items()},
        'missing': [sym for sym in symbols if sym not in prices],
    }
