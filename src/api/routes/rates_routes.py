"""
Exchange-rate table route - public, no API key required.
"""
import time
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from rates.rate_reconciler import RateReconciler

router = APIRouter()

_reconciler: RateReconciler = None


def get_rate_reconciler() -> RateReconciler:
    """Process-wide reconciler so the merged table cache is shared."""
    global _reconciler
    if _reconciler is None:
        _reconciler = RateReconciler()
    return _reconciler


class RatesResponse(BaseModel):
    """1 unit of each currency expressed in the home currency."""
    rates: Dict[str, float]
    timestamp: int


@router.get(
    "/rates",
    response_model=RatesResponse,
    summary="Merged currency table (home currency = 1.0)",
)
async def get_rates(reconciler: RateReconciler = Depends(get_rate_reconciler)):
    table = await reconciler.fetch_table()
    return RatesResponse(rates=table, timestamp=int(time.time() * 1000))
