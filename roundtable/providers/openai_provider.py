"""OpenAI agent using openai SDK with native async and function calling."""

import asyncio
import json
import logging
import os
import time
from typing import Any

import openai
from openai import AsyncOpenAI

from config.config_loader import ModelConfig, PromptsConfig
from roundtable.models import DebateContext
from roundtable.providers.base import (
    Agent,
    AgentReply,
    CapabilityRequest,
    CapabilityResult,
    FailureKind,
    ProviderError,
)
from roundtable.toolkit import ToolSpec

logger = logging.getLogger(__name__)


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


class OpenAIAgent(Agent):
    """OpenAI agent via openai SDK (chat completions)."""

    _label = "OpenAI"

    def __init__(self, config: ModelConfig, prompts: PromptsConfig | None = None) -> None:
        super().__init__(config, prompts)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}", FailureKind.AUTH_FAILED)
        self._client = self._make_client(api_key)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key)

    def classify_error(self, exc: BaseException) -> ProviderError:
        name = self._config.name
        if isinstance(exc, openai.RateLimitError):
            return ProviderError(name, f"Rate limited: {exc}", FailureKind.RATE_LIMITED)
        if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return ProviderError(name, f"Authentication failed: {exc}", FailureKind.AUTH_FAILED)
        if isinstance(exc, openai.APITimeoutError):
            return ProviderError(name, f"Request timed out: {exc}", FailureKind.TIMEOUT)
        if isinstance(exc, openai.APIConnectionError):
            return ProviderError(name, f"Connection error: {exc}", FailureKind.NETWORK_ERROR)
        if isinstance(exc, openai.BadRequestError):
            return ProviderError(name, f"Invalid request: {exc}", FailureKind.INVALID_REQUEST)
        return super().classify_error(exc)

    async def _create(self, messages: list[dict], tools: list[dict]) -> Any:
        start = time.monotonic()
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": messages,
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
        }
        if tools:
            kwargs["tools"] = tools
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s", FailureKind.TIMEOUT
            ) from exc
        except Exception as exc:
            raise self.classify_error(exc) from exc

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens
        logger.info("%s call: %.2fs, %s tokens", self._label, time.monotonic() - start, token_count)
        return response

    def _reply(self, response: Any, messages: list[dict], tools: list[dict]) -> AgentReply:
        choice = response.choices[0] if response.choices else None
        if not choice:
            raise ProviderError(self._config.name, "Empty response content")
        message = choice.message
        requests = [
            CapabilityRequest(
                call_id=call.id,
                name=call.function.name,
                arguments=_parse_arguments(call.function.arguments),
            )
            for call in (message.tool_calls or [])
        ]
        if not message.content and not requests:
            raise ProviderError(self._config.name, "Empty response content")
        return AgentReply(
            text=message.content or "",
            capability_requests=requests,
            transcript={
                "messages": messages + [message.model_dump(exclude_none=True)],
                "tools": tools,
            },
        )

    async def invoke(self, context: DebateContext, tools: list[ToolSpec]) -> AgentReply:
        messages = [
            {"role": "system", "content": self.build_system_prompt(context)},
            {"role": "user", "content": self.build_user_message(context)},
        ]
        tool_defs = [
            {
                "type": "function",
                "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
            }
            for t in tools
        ]
        response = await self._create(messages, tool_defs)
        return self._reply(response, messages, tool_defs)

    async def follow_up(self, reply: AgentReply, results: list[CapabilityResult]) -> AgentReply:
        state = reply.transcript
        messages = state["messages"] + [
            {
                "role": "tool",
                "tool_call_id": r.request.call_id,
                "content": json.dumps(r.output, default=str),
            }
            for r in results
        ]
        response = await self._create(messages, state["tools"])
        return self._reply(response, messages, state["tools"])

    async def invoke_raw(self, prompt: str, system_prompt: str | None = None) -> str:
        messages: list[dict] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        response = await self._create(messages, [])
        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")
        return choice.message.content
