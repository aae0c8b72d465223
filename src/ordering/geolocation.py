"""
Best-effort location fix.

A provider is any zero-argument callable (sync or async) returning a
GeoLocation, a (lat, lng) pair, or None. Failures and timeouts resolve to
None; location is cosmetic metadata on the receipt.
"""
import asyncio
import inspect
from typing import Callable, Optional

import config
from menu_pipeline.models import GeoLocation
from utils.logger import get_logger

LocationProvider = Callable[[], object]


def _coerce(value) -> Optional[GeoLocation]:
    if value is None or isinstance(value, GeoLocation):
        return value
    lat, lng = value
    return GeoLocation(lat=float(lat), lng=float(lng))


async def acquire_location(provider: Optional[LocationProvider],
                           timeout: float = None) -> Optional[GeoLocation]:
    if provider is None:
        return None
    timeout = config.GEOLOCATION_TIMEOUT_SECONDS if timeout is None else timeout

    async def _call():
        if inspect.iscoroutinefunction(provider):
            return await provider()
        return await asyncio.to_thread(provider)

    try:
        return _coerce(await asyncio.wait_for(_call(), timeout=timeout))
    except asyncio.TimeoutError:
        get_logger().info(f"No location fix within {timeout}s", component="Location")
    except Exception as e:
        get_logger().info(f"Location unavailable: {e}", component="Location")
    return None
