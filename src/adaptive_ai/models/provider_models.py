"""Provider health and usage models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .llm_models import ProviderName


class ProviderHealth(BaseModel):
    """Runtime health of one upstream provider."""

    provider: ProviderName
    available: bool = Field(default=True)
    configured: bool = Field(default=True, description="API key present")
    usage_count: int = Field(default=0)
    failure_count: int = Field(default=0)
    last_error: Optional[str] = Field(default=None)
    last_used: Optional[datetime] = Field(default=None)
    cooldown_until: Optional[datetime] = Field(default=None)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True
