"""
Utility functions for preparing observation sequences.
"""

import numpy as np
import pandas as pd
import logging

logger = logging.getLogger(__name__)


def log_returns_from_prices(prices, scale: float = 100.0) -> pd.Series:
    """
    Scaled log returns of a price series.

    Parameters
    ----------
    prices : pd.Series or array-like
        Price levels, oldest first
    scale : float
        Multiplier of the log returns (default: 100, i.e. percent)

    Returns
    -------
    pd.Series
        scale * log(p_t / p_{t-1}); one element shorter than ``prices``

    Examples
    --------
    >>> y = log_returns_from_prices(close_prices)
    >>> print(f"Computed {len(y)} log returns")
    """
    prices = pd.Series(prices, dtype=float) if not isinstance(prices, pd.Series) else prices.astype(float)
    if (prices <= 0).any():
        raise ValueError("Prices must be positive to compute log returns")

    log_returns = (scale * np.log(prices / prices.shift(1))).dropna()
    log_returns.name = "log_returns"

    logger.info(f"Computed {len(log_returns)} log returns")
    return log_returns


def load_returns_csv(path: str, column: str = "Close", scale: float = 100.0,
                     index_col=0) -> pd.Series:
    """
    Read a price column from a CSV file and convert it to scaled log returns.

    Parameters
    ----------
    path : str
        CSV file, one row per date
    column : str
        Name of the price column (default: "Close")
    scale : float
        Multiplier of the log returns (default: 100)
    index_col : int or str
        Column used as (date) index (default: first column)
    """
    logger.info(f"Reading {column} prices from {path}")
    frame = pd.read_csv(path, index_col=index_col, parse_dates=True)
    if column not in frame.columns:
        raise ValueError(f"Column '{column}' not found in {path} (columns: {list(frame.columns)})")
    return log_returns_from_prices(frame[column].sort_index(), scale=scale)
