"""
Kudumbam — Feature Switch Cache
Fetches the public feature switches once per TTL window. When the fetch fails
it answers with a degraded default set instead of hiding features.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from kudumbam.client.api_client import ApiClient
from kudumbam.config import get_settings
from kudumbam.utils.logger import logger
from kudumbam.utils.ttl_cache import TTLCache


DEGRADED_FEATURES = frozenset({"subscriptions", "user_invitations", "user_profiles"})
CRITICAL_FEATURES = frozenset({"user_profiles", "password_reset"})
_CACHE_KEY = "feature_switches"


@dataclass(frozen=True)
class FeatureSnapshot:
    enabled: frozenset
    all_features: dict = field(default_factory=dict)
    degraded: bool = False


class FeatureSwitchCache:
    def __init__(
        self,
        api: ApiClient,
        ttl_seconds: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.api = api
        ttl = ttl_seconds if ttl_seconds is not None else get_settings().feature_cache_ttl_seconds
        self._cache = TTLCache(ttl, clock=clock)

    async def get(self) -> FeatureSnapshot:
        snapshot = self._cache.get(_CACHE_KEY)
        if snapshot is not None:
            return snapshot
        try:
            data = await self.api.feature_switches()
            if not data.get("success"):
                raise ValueError(data.get("error") or "Failed to fetch feature switches")
        except Exception as e:
            # Degraded answers are not cached; the next call retries.
            logger.warning(f"🎚️ Feature switches unavailable, using defaults: {e}")
            return FeatureSnapshot(enabled=DEGRADED_FEATURES, degraded=True)

        snapshot = FeatureSnapshot(
            enabled=frozenset(data.get("enabled_features") or ()),
            all_features=dict(data.get("all_features") or {}),
        )
        self._cache.set(_CACHE_KEY, snapshot)
        return snapshot

    async def is_enabled(self, feature: str) -> bool:
        snapshot = await self.get()
        if snapshot.degraded and feature in CRITICAL_FEATURES:
            return True
        return feature in snapshot.enabled

    async def enabled_features(self) -> list[str]:
        snapshot = await self.get()
        features = set(snapshot.enabled)
        if snapshot.degraded:
            features |= CRITICAL_FEATURES
        return sorted(features)

    def invalidate(self) -> None:
        self._cache.invalidate()
