"""Capabilities agents can call mid-turn: context lookup, response check, web search, fact check."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from roundtable.models import DebateContext

logger = logging.getLogger(__name__)

_MAX_SEARCH_RESULTS = 10
_FACT_CHECK_RESULTS = 3


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


class WebSearchProvider(Protocol):
    async def search(self, query: str, max_results: int = 5) -> list[dict[str, Any]]:
        """Return dicts with title, url and snippet keys."""
        ...


class CapabilityExecutor(Protocol):
    def tool_specs(self) -> list[ToolSpec]: ...

    async def execute(self, name: str, tool_input: Any, context: DebateContext) -> Any: ...


ToolHandler = Callable[[dict[str, Any], DebateContext], Awaitable[Any]]


def _failure(message: str) -> dict[str, Any]:
    return {"success": False, "error": message}


def _words(text: str) -> set[str]:
    return {w for w in text.lower().split() if len(w) > 3}


class Toolkit:
    """Default capability executor.

    Stateless per call: the debate context is passed into ``execute`` rather
    than stored, so concurrent agents in a parallel round can share one
    instance. Handler exceptions propagate; the tool loop records them.
    """

    def __init__(self, search_provider: WebSearchProvider | None = None) -> None:
        self._search_provider = search_provider
        self._tools: dict[str, tuple[ToolSpec, ToolHandler]] = {}
        self._register_defaults()

    def register(self, spec: ToolSpec, handler: ToolHandler) -> None:
        self._tools[spec.name] = (spec, handler)

    def tool_specs(self) -> list[ToolSpec]:
        return [spec for spec, _ in self._tools.values()]

    async def execute(self, name: str, tool_input: Any, context: DebateContext) -> Any:
        entry = self._tools.get(name)
        if entry is None:
            return _failure(f'Tool "{name}" not found')
        _, handler = entry
        logger.debug("Executing tool %s for round %d", name, context.current_round)
        return await handler(tool_input if isinstance(tool_input, dict) else {}, context)

    def _register_defaults(self) -> None:
        self.register(
            ToolSpec(
                "get_context",
                "Get the current debate context including topic, round number, "
                "and previous responses from other participants.",
            ),
            self._get_context,
        )
        self.register(
            ToolSpec(
                "submit_response",
                "Submit your structured response with position, reasoning, and confidence level.",
                {
                    "type": "object",
                    "properties": {
                        "position": {"type": "string", "description": "Your clear position statement"},
                        "reasoning": {"type": "string", "description": "Your detailed reasoning"},
                        "confidence": {"type": "number", "description": "Confidence from 0.0 to 1.0"},
                    },
                    "required": ["position", "reasoning"],
                },
            ),
            self._submit_response,
        )
        self.register(
            ToolSpec(
                "search_web",
                "Search the web for relevant information. Returns titles, URLs, and snippets.",
                {
                    "type": "object",
                    "properties": {
                        "query": {"type": "string", "description": "The search query"},
                        "max_results": {"type": "integer", "description": "Maximum results (default 5, max 10)"},
                    },
                    "required": ["query"],
                },
            ),
            self._search_web,
        )
        self.register(
            ToolSpec(
                "fact_check",
                "Fact check a claim made by another participant. Returns supporting evidence.",
                {
                    "type": "object",
                    "properties": {
                        "claim": {"type": "string", "description": "The claim to fact check"},
                        "source_agent": {"type": "string", "description": "Who made the claim"},
                    },
                    "required": ["claim"],
                },
            ),
            self._fact_check,
        )

    async def _get_context(self, _input: dict[str, Any], context: DebateContext) -> dict[str, Any]:
        return {
            "success": True,
            "data": {
                "topic": context.topic,
                "mode": context.mode,
                "currentRound": context.current_round,
                "totalRounds": context.total_rounds,
                "focusQuestion": context.focus_question,
                "previousResponses": [
                    {"agentName": r.agent_name, "position": r.position, "confidence": r.confidence}
                    for r in context.previous_responses
                ],
            },
        }

    async def _submit_response(self, tool_input: dict[str, Any], _context: DebateContext) -> dict[str, Any]:
        position = tool_input.get("position")
        reasoning = tool_input.get("reasoning")
        if not isinstance(position, str) or not position:
            return _failure("Position is required and must be a string")
        if not isinstance(reasoning, str) or not reasoning:
            return _failure("Reasoning is required and must be a string")
        confidence = tool_input.get("confidence", 0.5)
        if not isinstance(confidence, (int, float)):
            return _failure("Confidence must be a number between 0 and 1")
        return {
            "success": True,
            "data": {
                "position": position,
                "reasoning": reasoning,
                "confidence": min(1.0, max(0.0, float(confidence))),
            },
        }

    async def _search_web(self, tool_input: dict[str, Any], _context: DebateContext) -> dict[str, Any]:
        if self._search_provider is None:
            return _failure("Web search is not available")
        query = tool_input.get("query")
        if not isinstance(query, str) or not query:
            return _failure("Query is required")
        max_results = min(_MAX_SEARCH_RESULTS, int(tool_input.get("max_results") or 5))
        results = await self._search_provider.search(query, max_results=max_results)
        return {"success": True, "data": {"results": results}}

    async def _fact_check(self, tool_input: dict[str, Any], context: DebateContext) -> dict[str, Any]:
        claim = tool_input.get("claim")
        if not isinstance(claim, str) or not claim:
            return _failure("Claim is required")

        web_evidence: list[dict[str, Any]] = []
        if self._search_provider is not None:
            try:
                web_evidence = await self._search_provider.search(
                    f"fact check: {claim}", max_results=_FACT_CHECK_RESULTS
                )
            except Exception as exc:
                logger.warning("Fact-check search failed: %s", exc)

        claim_words = _words(claim)
        debate_evidence = [
            {"agentName": r.agent_name, "evidence": r.reasoning, "confidence": r.confidence}
            for r in context.previous_responses
            if claim_words & _words(f"{r.position} {r.reasoning}")
        ]
        return {
            "success": True,
            "data": {
                "claim": claim,
                "sourceAgent": tool_input.get("source_agent", "unknown"),
                "webEvidence": web_evidence,
                "debateEvidence": debate_evidence,
            },
        }
