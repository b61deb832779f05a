"""
Transaction rules that are checked before the wallet is asked to construct anything.
"""

from __future__ import annotations
import math


def valid_pool_fee_rate(rate: float) -> bool:
    """
    A pool fee rate is valid if it is at least 0.01% and at most 100%. Precision beyond two
    decimal places is truncated.
    """
    if math.isnan(rate) or math.isinf(rate):
        return False
    scaled = math.floor(rate * 100.0)
    return 1 <= scaled <= 10000
