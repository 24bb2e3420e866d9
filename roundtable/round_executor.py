"""Run one debate round: invoke agents under a strategy, validate, measure consensus."""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import replace

from roundtable.consensus import ConsensusAnalyzer
from roundtable.errors import InfrastructureError
from roundtable.models import DebateContext, RetryConfig, RoundResult, StructuredResponse
from roundtable.modes import ExecutionStrategy, ModeStrategy
from roundtable.providers.base import Agent
from roundtable.tool_loop import run_tool_loop
from roundtable.toolkit import CapabilityExecutor
from roundtable.validators import default_chain

logger = logging.getLogger(__name__)

# Quality gate: warn when fewer than this many agents respond in round 1
_MIN_QUALITY_RESPONSES = 3


class _RoundRunner:
    """Per-round state shared by the three strategies."""

    def __init__(
        self,
        agents: Sequence[Agent],
        context: DebateContext,
        mode: ModeStrategy | None,
        toolkit: CapabilityExecutor,
        retry_config: RetryConfig | None,
    ) -> None:
        self.agents = list(agents)
        self.context = context
        self.mode = mode
        self.toolkit = toolkit
        self.retry_config = retry_config

    def _context_for(self, index: int, base: DebateContext) -> DebateContext:
        prompt = self.mode.build_prompt(base, index, len(self.agents)) if self.mode else None
        return base.for_agent(index, prompt)

    async def turn(self, index: int, base: DebateContext) -> StructuredResponse:
        """One agent turn: tool loop, parse, validate."""
        agent = self.agents[index]
        context = self._context_for(index, base)
        start = time.monotonic()
        loop = await run_tool_loop(agent, context, self.toolkit, retry_config=self.retry_config)
        response = agent.parse_response(loop.text, context)
        response = replace(response, citations=tuple(loop.citations), tool_calls=tuple(loop.tool_calls))
        expected = self.mode.expected_stance(index, len(self.agents)) if self.mode else None
        validated = default_chain(expected)(response)
        logger.info(
            "Agent %s responded in round %d: %.2fs, %d tool calls",
            agent.name(),
            context.current_round,
            time.monotonic() - start,
            len(loop.tool_calls),
        )
        return validated

    def _log_failure(self, index: int, exc: BaseException) -> None:
        logger.warning(
            "Agent %s failed in round %d: %s",
            self.agents[index].name(),
            self.context.current_round,
            exc,
        )

    async def safe_turn(self, index: int, base: DebateContext) -> StructuredResponse | None:
        try:
            return await self.turn(index, base)
        except InfrastructureError:
            raise
        except Exception as exc:
            self._log_failure(index, exc)
            return None

    async def parallel(self, indices: list[int], base: DebateContext) -> list[StructuredResponse]:
        results = await asyncio.gather(*(self.turn(i, base) for i in indices), return_exceptions=True)
        fatal = next((r for r in results if isinstance(r, InfrastructureError)), None)
        if fatal is not None:
            raise fatal
        responses: list[StructuredResponse] = []
        for index, result in zip(indices, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                self._log_failure(index, result)
            else:
                responses.append(result)
        return responses

    async def sequential(self, indices: list[int], base: DebateContext) -> list[StructuredResponse]:
        responses: list[StructuredResponse] = []
        for index in indices:
            response = await self.safe_turn(index, base.with_previous(responses))
            if response is not None:
                responses.append(response)
        return responses

    async def last_only(self) -> list[StructuredResponse]:
        if len(self.agents) <= 1:
            return await self.sequential(list(range(len(self.agents))), self.context)
        last = len(self.agents) - 1
        responses = await self.parallel(list(range(last)), self.context)
        final = await self.safe_turn(last, self.context.with_previous(responses))
        if final is not None:
            responses.append(final)
        return responses


async def execute_round(
    agents: Sequence[Agent],
    context: DebateContext,
    strategy: ExecutionStrategy,
    *,
    toolkit: CapabilityExecutor,
    consensus_analyzer: ConsensusAnalyzer,
    mode: ModeStrategy | None = None,
    retry_config: RetryConfig | None = None,
) -> RoundResult:
    """Produce one RoundResult.

    Individual agent failures are logged and excluded, so the round may hold
    fewer responses than agents (or none). InfrastructureError and consensus
    analysis failures propagate.
    """
    if toolkit is None or consensus_analyzer is None:
        raise InfrastructureError("execute_round needs a toolkit and a consensus analyzer")

    runner = _RoundRunner(agents, context, mode, toolkit, retry_config)
    indices = list(range(len(runner.agents)))

    logger.info(
        "Starting round %d with %d agents (%s)",
        context.current_round,
        len(indices),
        strategy.value,
    )

    if strategy is ExecutionStrategy.PARALLEL:
        responses = await runner.parallel(indices, context)
    elif strategy is ExecutionStrategy.SEQUENTIAL:
        responses = await runner.sequential(indices, context)
    else:
        responses = await runner.last_only()

    if (
        context.current_round == 1
        and len(indices) >= _MIN_QUALITY_RESPONSES
        and len(responses) < _MIN_QUALITY_RESPONSES
    ):
        logger.warning(
            "Only %d/%d agents responded in round 1. Debate quality is degraded.",
            len(responses),
            len(indices),
        )

    include_groupthink = mode.needs_groupthink_detection if mode else True
    consensus = await consensus_analyzer.analyze(
        responses, context.topic, include_groupthink_detection=include_groupthink
    )

    logger.info(
        "Round %d complete: %d/%d agents succeeded, agreement %.2f",
        context.current_round,
        len(responses),
        len(indices),
        consensus.agreement_level,
    )
    return RoundResult(round_number=context.current_round, responses=tuple(responses), consensus=consensus)
