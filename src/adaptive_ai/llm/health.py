"""Per-provider health and usage tracking."""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from ..models.provider_models import ProviderHealth

logger = logging.getLogger(__name__)


class ProviderHealthTracker:
    """
    Tracks availability and usage of upstream providers.

    PATTERN: Failed providers cool down for a fixed window, then are retried
    """

    def __init__(
        self,
        providers: Iterable[str],
        cooldown_seconds: float = 30.0,
        configured: Optional[Dict[str, bool]] = None,
    ):
        """
        Initialize health tracker.

        Args:
            providers: Provider names to track
            cooldown_seconds: Seconds a failed provider is skipped
            configured: Whether each provider has credentials
        """
        configured = configured or {}
        self.cooldown_seconds = cooldown_seconds
        self.logger = logging.getLogger(__name__)
        self.health: Dict[str, ProviderHealth] = {
            name: ProviderHealth(
                provider=name,
                configured=configured.get(name, True),
                available=configured.get(name, True),
            )
            for name in providers
        }
        self.fallbacks = 0

    def is_available(self, provider: str, now: Optional[datetime] = None) -> bool:
        """
        Check whether a provider may be attempted.

        Cool-downs that have elapsed are cleared here.
        """
        health = self.health.get(provider)
        if health is None or not health.configured:
            return False

        if health.cooldown_until is not None:
            now = now or datetime.now()
            if now < health.cooldown_until:
                return False
            health.cooldown_until = None
            health.available = True
            self.logger.info(f"Provider {provider} cool-down elapsed")

        return health.available

    def record_success(self, provider: str) -> None:
        """Record a successful call."""
        health = self.health[provider]
        health.usage_count += 1
        health.last_used = datetime.now()
        health.available = True
        health.cooldown_until = None

    def record_failure(self, provider: str, error: Exception) -> None:
        """Mark a provider degraded for the cool-down window."""
        health = self.health[provider]
        health.failure_count += 1
        health.last_error = str(error)
        health.available = False
        health.cooldown_until = datetime.now() + timedelta(seconds=self.cooldown_seconds)
        self.logger.warning(
            f"Provider {provider} degraded for {self.cooldown_seconds}s: {error}"
        )

    def record_fallback(self) -> None:
        """Count one request served by a non-primary provider."""
        self.fallbacks += 1

    def any_available(self) -> bool:
        """True if at least one provider may be attempted."""
        return any(self.is_available(name) for name in self.health)

    def usage(self) -> Dict[str, int]:
        """Successful calls per provider."""
        return {name: h.usage_count for name, h in self.health.items()}

    def snapshot(self) -> Dict[str, ProviderHealth]:
        """Copy of current health per provider."""
        return {name: h.model_copy() for name, h in self.health.items()}
