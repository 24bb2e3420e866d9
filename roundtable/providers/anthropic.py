"""Anthropic Claude agent using anthropic SDK with native async and tool use."""

import asyncio
import json
import logging
import os
import time
from typing import Any

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig, PromptsConfig
from roundtable.models import Citation, DebateContext
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

_WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}


def _search_citations(content: list[Any]) -> list[Citation]:
    """Citations from server-side web_search result blocks; error results carry none."""
    citations: list[Citation] = []
    for block in content:
        if block.type != "web_search_tool_result" or not isinstance(block.content, list):
            continue
        citations.extend(
            Citation(title=r.title or r.url, url=r.url) for r in block.content if getattr(r, "url", None)
        )
    return citations


class AnthropicAgent(Agent):
    """Anthropic Claude agent via anthropic SDK."""

    def __init__(self, config: ModelConfig, prompts: PromptsConfig | None = None) -> None:
        super().__init__(config, prompts)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}", FailureKind.AUTH_FAILED)
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def classify_error(self, exc: BaseException) -> ProviderError:
        name = self._config.name
        if isinstance(exc, anthropic_sdk.RateLimitError):
            return ProviderError(name, f"Rate limited: {exc}", FailureKind.RATE_LIMITED)
        if isinstance(exc, (anthropic_sdk.AuthenticationError, anthropic_sdk.PermissionDeniedError)):
            return ProviderError(name, f"Authentication failed: {exc}", FailureKind.AUTH_FAILED)
        if isinstance(exc, anthropic_sdk.APITimeoutError):
            return ProviderError(name, f"Request timed out: {exc}", FailureKind.TIMEOUT)
        if isinstance(exc, anthropic_sdk.APIConnectionError):
            return ProviderError(name, f"Connection error: {exc}", FailureKind.NETWORK_ERROR)
        if isinstance(exc, anthropic_sdk.BadRequestError):
            return ProviderError(name, f"Invalid request: {exc}", FailureKind.INVALID_REQUEST)
        return super().classify_error(exc)

    async def _create(self, **kwargs: Any) -> Any:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._config.model,
                    max_tokens=self._config.max_tokens,
                    temperature=self._config.temperature,
                    **kwargs,
                ),
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
            token_count = response.usage.input_tokens + response.usage.output_tokens
        logger.info("Anthropic call: %.2fs, %s tokens", time.monotonic() - start, token_count)
        return response

    def _reply(self, response: Any, system: str, messages: list[dict], tools: list[dict]) -> AgentReply:
        if not response.content:
            raise ProviderError(self._config.name, "Empty response content")
        text = "\n".join(b.text for b in response.content if b.type == "text")
        requests = [
            CapabilityRequest(call_id=b.id, name=b.name, arguments=dict(b.input or {}))
            for b in response.content
            if b.type == "tool_use"
        ]
        if not text and not requests:
            raise ProviderError(self._config.name, "No text blocks in response")
        return AgentReply(
            text=text,
            capability_requests=requests,
            citations=_search_citations(response.content),
            transcript={
                "system": system,
                "messages": messages + [{"role": "assistant", "content": response.content}],
                "tools": tools,
            },
        )

    async def invoke(self, context: DebateContext, tools: list[ToolSpec]) -> AgentReply:
        system = self.build_system_prompt(context)
        messages = [{"role": "user", "content": self.build_user_message(context)}]
        tool_defs = [
            {"name": t.name, "description": t.description, "input_schema": t.parameters} for t in tools
        ]
        if self._config.native_search:
            tool_defs.append(dict(_WEB_SEARCH_TOOL))
        kwargs: dict[str, Any] = {"system": system, "messages": messages}
        if tool_defs:
            kwargs["tools"] = tool_defs
        response = await self._create(**kwargs)
        return self._reply(response, system, messages, tool_defs)

    async def follow_up(self, reply: AgentReply, results: list[CapabilityResult]) -> AgentReply:
        state = reply.transcript
        messages = state["messages"] + [
            {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": r.request.call_id,
                        "content": json.dumps(r.output, default=str),
                    }
                    for r in results
                ],
            }
        ]
        kwargs: dict[str, Any] = {"system": state["system"], "messages": messages}
        if state["tools"]:
            kwargs["tools"] = state["tools"]
        response = await self._create(**kwargs)
        return self._reply(response, state["system"], messages, state["tools"])

    async def invoke_raw(self, prompt: str, system_prompt: str | None = None) -> str:
        kwargs: dict[str, Any] = {"messages": [{"role": "user", "content": prompt}]}
        if system_prompt:
            kwargs["system"] = system_prompt
        response = await self._create(**kwargs)
        text = "\n".join(b.text for b in response.content if b.type == "text")
        if not text:
            raise ProviderError(self._config.name, "No text blocks in response")
        return text
