"""
Kudumbam — Location Cache
States, districts and post offices fetched through the API client and kept
for a fixed TTL. PinCodeLookup debounces typing in a PIN code field.
"""

from typing import Callable, Optional

from kudumbam.client.api_client import ApiClient
from kudumbam.client.debounce import Debouncer
from kudumbam.config import get_settings
from kudumbam.utils.logger import logger
from kudumbam.utils.ttl_cache import TTLCache
from kudumbam.utils.validators import is_complete_pin_code


class LocationCache:
    def __init__(
        self,
        api: ApiClient,
        ttl_seconds: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.api = api
        ttl = ttl_seconds if ttl_seconds is not None else get_settings().location_cache_ttl_seconds
        self._cache = TTLCache(ttl, clock=clock)

    async def _cached(self, key: tuple, fetch) -> list:
        value = self._cache.get(key)
        if value is not None:
            return value
        data = await fetch()
        if not data.get("success"):
            return []
        value = data.get("data") or []
        self._cache.set(key, value)
        return value

    async def states(self) -> list[str]:
        return await self._cached(("states",), lambda: self.api.districts())

    async def districts(self, state: str) -> list[str]:
        rows = await self._cached(("districts", state), lambda: self.api.districts(state))
        return [row["name"] if isinstance(row, dict) else row for row in rows]

    async def post_offices(self, pin_code: str) -> list[dict]:
        if not is_complete_pin_code(pin_code):
            return []
        return await self._cached(("post_offices", pin_code), lambda: self.api.post_offices(pin_code))

    def invalidate(self, key: Optional[tuple] = None) -> None:
        self._cache.invalidate(key)


class PinCodeLookup:
    """
    Feeds a PIN code field. Only a complete 6-digit PIN is looked up, once
    typing has paused for the debounce delay; results go to `on_results`.
    """

    def __init__(
        self,
        locations: LocationCache,
        on_results: Callable[[str, list[dict]], None],
        delay_seconds: Optional[float] = None,
    ):
        self.locations = locations
        self.on_results = on_results
        delay = delay_seconds if delay_seconds is not None else get_settings().pin_lookup_debounce_ms / 1000
        self._debouncer = Debouncer(delay, self._lookup)

    def input_changed(self, value: str) -> None:
        pin_code = (value or "").strip()
        if not is_complete_pin_code(pin_code):
            self._debouncer.cancel()
            return
        self._debouncer.trigger(pin_code)

    async def settle(self) -> None:
        await self._debouncer.wait()

    async def _lookup(self, pin_code: str) -> None:
        offices = await self.locations.post_offices(pin_code)
        logger.debug(f"📮 PIN {pin_code}: {len(offices)} post office(s)")
        self.on_results(pin_code, offices)
