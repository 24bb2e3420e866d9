"""Gemini agent using google-genai SDK with native async and function calling."""

import asyncio
import logging
import os
import time
from typing import Any

from google import genai
from google.genai import types as genai_types

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


def _candidate_content(response: Any) -> Any:
    if not response.candidates:
        return None
    return response.candidates[0].content


def _text_of(content: Any) -> str:
    if content is None or not content.parts:
        return ""
    return "\n".join(p.text for p in content.parts if getattr(p, "text", None))


def _grounding_citations(response: Any) -> list[Citation]:
    if not response.candidates:
        return []
    metadata = getattr(response.candidates[0], "grounding_metadata", None)
    if metadata is None:
        return []
    citations: list[Citation] = []
    for chunk in metadata.grounding_chunks or []:
        web = chunk.web
        if web is not None and web.uri:
            citations.append(Citation(title=web.title or "Untitled", url=web.uri))
    return citations


def _with_search_results(message: str, search_text: str, citations: list[Citation]) -> str:
    if not search_text and not citations:
        return message
    parts = [message]
    if citations:
        listing = "\n".join(f"[{i}] {c.title}: {c.url}" for i, c in enumerate(citations, 1))
        parts.append(f"Web search results:\n{listing}")
    if search_text:
        parts.append(f"Earlier analysis with web search:\n{search_text}")
    return "\n\n".join(parts)


class GeminiAgent(Agent):
    """Google Gemini agent via google-genai SDK."""

    def __init__(self, config: ModelConfig, prompts: PromptsConfig | None = None) -> None:
        super().__init__(config, prompts)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}", FailureKind.AUTH_FAILED)
        self._client = genai.Client(api_key=api_key)

    def _generation_config(
        self, system: str | None, tools: list[genai_types.Tool]
    ) -> genai_types.GenerateContentConfig:
        return genai_types.GenerateContentConfig(
            system_instruction=system,
            max_output_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
            tools=tools or None,
        )

    async def _generate(self, contents: list[Any], system: str | None, tools: list[genai_types.Tool]) -> Any:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=contents,
                    config=self._generation_config(system, tools),
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
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count
        logger.info("Gemini call: %.2fs, %s tokens", time.monotonic() - start, token_count)
        return response

    def _reply(
        self,
        response: Any,
        contents: list[Any],
        system: str,
        tools: list[genai_types.Tool],
        citations: list[Citation] | None = None,
    ) -> AgentReply:
        content = _candidate_content(response)
        text = _text_of(content)
        requests = [
            CapabilityRequest(call_id=call.id or call.name, name=call.name, arguments=dict(call.args or {}))
            for call in (response.function_calls or [])
        ]
        if not text and not requests:
            raise ProviderError(self._config.name, "Empty response text")
        return AgentReply(
            text=text,
            capability_requests=requests,
            citations=(citations or []) + _grounding_citations(response),
            transcript={"contents": contents + [content], "system": system, "tools": tools},
        )

    async def _search(self, message: str, system: str) -> tuple[str, list[Citation]]:
        """Grounded call with Google Search only; it cannot share a request with function calling."""
        response = await self._generate(
            [message], system, [genai_types.Tool(google_search=genai_types.GoogleSearch())]
        )
        citations = _grounding_citations(response)
        logger.debug("Gemini search grounding: %d citations", len(citations))
        return _text_of(_candidate_content(response)), citations

    async def invoke(self, context: DebateContext, tools: list[ToolSpec]) -> AgentReply:
        system = self.build_system_prompt(context)
        message = self.build_user_message(context)
        search_citations: list[Citation] = []
        if self._config.native_search:
            search_text, search_citations = await self._search(message, system)
            message = _with_search_results(message, search_text, search_citations)
        contents = [genai_types.Content(role="user", parts=[genai_types.Part.from_text(text=message)])]
        tool_defs: list[genai_types.Tool] = []
        if tools:
            tool_defs.append(
                genai_types.Tool(
                    function_declarations=[
                        genai_types.FunctionDeclaration(
                            name=t.name,
                            description=t.description,
                            parameters_json_schema=t.parameters,
                        )
                        for t in tools
                    ]
                )
            )
        response = await self._generate(contents, system, tool_defs)
        return self._reply(response, contents, system, tool_defs, search_citations)

    async def follow_up(self, reply: AgentReply, results: list[CapabilityResult]) -> AgentReply:
        state = reply.transcript
        parts = [
            genai_types.Part.from_function_response(
                name=r.request.name,
                response=r.output if isinstance(r.output, dict) else {"result": r.output},
            )
            for r in results
        ]
        contents = state["contents"] + [genai_types.Content(role="user", parts=parts)]
        response = await self._generate(contents, state["system"], state["tools"])
        return self._reply(response, contents, state["system"], state["tools"])

    async def invoke_raw(self, prompt: str, system_prompt: str | None = None) -> str:
        response = await self._generate([prompt], system_prompt, [])
        text = _text_of(_candidate_content(response))
        if not text:
            raise ProviderError(self._config.name, "Empty response text")
        return text
