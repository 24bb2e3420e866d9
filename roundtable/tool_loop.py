"""Bounded capability-call negotiation for a single agent turn."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from roundtable.models import Citation, DebateContext, RetryConfig, ToolInvocationRecord
from roundtable.providers.base import Agent, AgentReply, CapabilityResult
from roundtable.retry import with_retry
from roundtable.toolkit import CapabilityExecutor

logger = logging.getLogger(__name__)

MAX_TOOL_ITERATIONS = 10


@dataclass
class ToolLoopResult:
    text: str
    tool_calls: list[ToolInvocationRecord] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)
    iterations: int = 0
    hit_limit: bool = False


def extract_citations(tool_name: str, output: Any) -> list[Citation]:
    """Pull title/url/snippet entries out of a capability result.

    Understands ``search_web`` results and ``fact_check`` web evidence; any
    other payload yields nothing.
    """
    if not isinstance(output, dict) or not output.get("success"):
        return []
    data = output.get("data") or {}
    if tool_name == "search_web":
        items = data.get("results") or []
    elif tool_name == "fact_check":
        items = data.get("webEvidence") or []
    else:
        return []

    citations: list[Citation] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("url"):
            continue
        citations.append(
            Citation(
                title=str(item.get("title") or item["url"]),
                url=str(item["url"]),
                snippet=item.get("snippet"),
            )
        )
    return citations


def dedupe_citations(citations: Iterable[Citation]) -> list[Citation]:
    """Keep the first citation seen for each URL."""
    seen: dict[str, Citation] = {}
    for citation in citations:
        seen.setdefault(citation.url, citation)
    return list(seen.values())


async def _run_capabilities(
    reply: AgentReply,
    toolkit: CapabilityExecutor,
    context: DebateContext,
    agent_name: str,
) -> tuple[list[CapabilityResult], list[ToolInvocationRecord], list[Citation]]:
    results: list[CapabilityResult] = []
    records: list[ToolInvocationRecord] = []
    citations: list[Citation] = []
    for request in reply.capability_requests:
        try:
            output = await toolkit.execute(request.name, request.arguments, context)
        except Exception as exc:
            logger.warning("Tool %s failed for agent %s: %s", request.name, agent_name, exc)
            output = {"success": False, "error": str(exc) or type(exc).__name__}
        results.append(CapabilityResult(request=request, output=output))
        records.append(ToolInvocationRecord(tool_name=request.name, input=request.arguments, output=output))
        citations.extend(extract_citations(request.name, output))
    return results, records, citations


async def run_tool_loop(
    agent: Agent,
    context: DebateContext,
    toolkit: CapabilityExecutor,
    *,
    retry_config: RetryConfig | None = None,
    max_iterations: int = MAX_TOOL_ITERATIONS,
) -> ToolLoopResult:
    """Drive one agent turn until it stops asking for capabilities.

    Each provider call goes through ``with_retry``. Capability failures are
    recorded as error payloads and never end the turn. Reaching
    ``max_iterations`` is not an error: the latest text is returned.
    """
    tools = toolkit.tool_specs()
    reply = await with_retry(lambda: agent.invoke(context, tools), retry_config)

    tool_calls: list[ToolInvocationRecord] = []
    citations: list[Citation] = list(reply.citations)
    iterations = 0

    while reply.needs_capabilities and iterations < max_iterations:
        iterations += 1
        results, records, found = await _run_capabilities(reply, toolkit, context, agent.name())
        tool_calls.extend(records)
        citations.extend(found)

        previous = reply
        reply = await with_retry(lambda: agent.follow_up(previous, results), retry_config)
        citations.extend(reply.citations)

    hit_limit = reply.needs_capabilities and iterations >= max_iterations
    if hit_limit:
        logger.warning(
            "Tool call iteration limit reached for agent %s (%d iterations)",
            agent.name(),
            iterations,
        )

    return ToolLoopResult(
        text=reply.text,
        tool_calls=tool_calls,
        citations=dedupe_citations(citations),
        iterations=iterations,
        hit_limit=hit_limit,
    )
