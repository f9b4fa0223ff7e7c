"""Provider clients the orchestrator routes chat requests to."""

import logging
from typing import Dict

from .base import ChatOptions, ProviderClient
from .openai_compatible import OpenAICompatibleProvider

logger = logging.getLogger(__name__)

__all__ = ["ChatOptions", "OpenAICompatibleProvider", "ProviderClient", "build_providers"]


def build_providers(config) -> Dict[str, ProviderClient]:
    """Create one client per provider in an OrchestratorConfig.

    Providers without an API key in the environment are still created; they
    report unavailable and fail their calls so routing falls through to the
    fallback.
    """
    providers: Dict[str, ProviderClient] = {}
    for name, provider_config in config.providers.items():
        api_key = provider_config.api_key()
        if api_key is None:
            logger.warning(
                "Provider %s has no API key (set %s)", name, provider_config.api_key_env
            )
        providers[name] = OpenAICompatibleProvider(
            name=name,
            model=provider_config.model,
            api_key=api_key,
            base_url=provider_config.base_url,
            supports_vision=provider_config.supports_vision,
        )
        logger.info("Created LLM provider: %s model=%s", name, provider_config.model)
    return providers
