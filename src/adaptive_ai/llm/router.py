"""Model router mapping complexity tiers to a provider fallback chain."""

import logging
from typing import List, Optional

from .health import ProviderHealthTracker
from ..config.ai_config import AIServiceConfig
from ..models.llm_models import ModelConfig

logger = logging.getLogger(__name__)


class ModelRouter:
    """
    Builds the ordered provider/model chain for a request.

    PATTERN: Preferred provider first, then configured order
    CRITICAL: Providers without credentials or in cool-down are skipped
    GOTCHA: This is a fallback order, not load balancing
    """

    def __init__(
        self,
        config: AIServiceConfig,
        health: ProviderHealthTracker,
    ):
        """
        Initialize model router.

        Args:
            config: Service configuration (provider order, models per tier)
            health: Provider health tracker
        """
        self.config = config
        self.health = health
        self.logger = logging.getLogger(__name__)

    def build_chain(
        self,
        tier: str,
        preferred_provider: Optional[str] = None,
    ) -> List[ModelConfig]:
        """
        Build the fallback chain for a complexity tier.

        Args:
            tier: Complexity tier
            preferred_provider: Provider to attempt first

        Returns:
            Ordered model configs; empty if nothing is available
        """
        chain = []
        for provider in self.preference_order(preferred_provider):
            if not self.health.is_available(provider):
                self.logger.debug(f"Skipping unavailable provider: {provider}")
                continue
            chain.append(self.config.get_model_config(provider, tier))

        if chain:
            self.logger.debug(
                f"Chain for {tier}: "
                f"{' -> '.join(f'{m.provider}/{m.model_name}' for m in chain)}"
            )
        return chain

    def preference_order(self, preferred_provider: Optional[str] = None) -> List[str]:
        """Configured provider order with the preferred provider moved first."""
        order = self.config.get_provider_order()
        if preferred_provider and preferred_provider in order:
            order = [preferred_provider] + [p for p in order if p != preferred_provider]
        return order

    def primary_provider(self, preferred_provider: Optional[str] = None) -> Optional[str]:
        """
        First configured provider in preference order, ignoring cool-downs.

        A request served by any other provider counts as a fallback.
        """
        for provider in self.preference_order(preferred_provider):
            health = self.health.health.get(provider)
            if health is not None and health.configured:
                return provider
        return None
