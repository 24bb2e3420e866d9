"""xAI Grok agent using openai SDK (OpenAI-compatible API)."""

from openai import AsyncOpenAI

from config.config_loader import ModelConfig, PromptsConfig
from roundtable.providers.base import ProviderError
from roundtable.providers.openai_provider import OpenAIAgent


class XAIAgent(OpenAIAgent):
    """xAI Grok agent via OpenAI-compatible API."""

    _label = "xAI"

    def __init__(self, config: ModelConfig, prompts: PromptsConfig | None = None) -> None:
        if not config.base_url:
            raise ProviderError(config.name, "base_url is required for xAI provider")
        super().__init__(config, prompts)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url)
