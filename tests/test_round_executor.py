"""Tests for roundtable/round_executor.py."""

import asyncio
import logging

import pytest

from roundtable.errors import InfrastructureError
from roundtable.models import RetryConfig, Stance
from roundtable.modes import ExecutionStrategy, default_modes
from roundtable.providers.base import FailureKind, ProviderError
from roundtable.round_executor import execute_round
from tests.conftest import MockAgent, ScriptedAnalyzer, text_reply, tool_reply

_NO_RETRY = RetryConfig(max_retries=0)


async def _run(agents, context, strategy, toolkit, analyzer=None, mode=None):
    return await execute_round(
        agents,
        context,
        strategy,
        toolkit=toolkit,
        consensus_analyzer=analyzer or ScriptedAnalyzer([0.6]),
        mode=mode,
        retry_config=_NO_RETRY,
    )


def _seen_previous(agent: MockAgent) -> list[str]:
    context, _tools = agent.invoke.await_args.args
    return [r.agent_id for r in context.previous_responses]


@pytest.mark.parametrize("strategy", list(ExecutionStrategy))
async def test_all_agents_respond_in_input_order(three_agents, sample_context, toolkit, strategy):
    result = await _run(three_agents, sample_context, strategy, toolkit)
    assert [r.agent_id for r in result.responses] == ["agent_a", "agent_b", "agent_c"]
    assert result.round_number == 1
    assert result.consensus.agreement_level == 0.6


async def test_parallel_agents_do_not_see_each_other(three_agents, sample_context, toolkit):
    await _run(three_agents, sample_context, ExecutionStrategy.PARALLEL, toolkit)
    assert all(_seen_previous(a) == [] for a in three_agents)


async def test_parallel_agents_run_concurrently(sample_context, toolkit):
    started: list[str] = []
    release = asyncio.Event()

    def make_agent(name):
        agent = MockAgent(name)

        async def invoke(context, tools):
            started.append(name)
            if len(started) == 2:
                release.set()
            await release.wait()
            return text_reply(f"{name} answer")

        agent.invoke.side_effect = invoke
        return agent

    agents = [make_agent("x"), make_agent("y")]
    result = await asyncio.wait_for(_run(agents, sample_context, ExecutionStrategy.PARALLEL, toolkit), 2)
    assert len(result.responses) == 2


async def test_sequential_agents_see_earlier_turns(three_agents, sample_context, toolkit):
    await _run(three_agents, sample_context, ExecutionStrategy.SEQUENTIAL, toolkit)
    assert _seen_previous(three_agents[0]) == []
    assert _seen_previous(three_agents[1]) == ["agent_a"]
    assert _seen_previous(three_agents[2]) == ["agent_a", "agent_b"]


async def test_last_only_final_agent_sees_everyone(three_agents, sample_context, toolkit):
    await _run(three_agents, sample_context, ExecutionStrategy.LAST_ONLY, toolkit)
    assert _seen_previous(three_agents[0]) == []
    assert _seen_previous(three_agents[1]) == []
    assert _seen_previous(three_agents[2]) == ["agent_a", "agent_b"]


async def test_last_only_with_single_agent(sample_context, toolkit):
    result = await _run([MockAgent("solo")], sample_context, ExecutionStrategy.LAST_ONLY, toolkit)
    assert [r.agent_id for r in result.responses] == ["solo"]


async def test_sequential_skips_failed_agent(sample_context, toolkit, caplog):
    agents = [
        MockAgent("agent_a"),
        MockAgent("agent_b", [ProviderError("agent_b", "bad key", FailureKind.AUTH_FAILED)]),
        MockAgent("agent_c"),
    ]
    with caplog.at_level(logging.WARNING):
        result = await _run(agents, sample_context, ExecutionStrategy.SEQUENTIAL, toolkit)
    assert [r.agent_id for r in result.responses] == ["agent_a", "agent_c"]
    assert _seen_previous(agents[2]) == ["agent_a"]
    assert "Agent agent_b failed in round 1" in caplog.text


async def test_parallel_partial_failure_keeps_order(sample_context, toolkit):
    agents = [
        MockAgent("agent_a"),
        MockAgent("agent_b", [RuntimeError("socket closed")]),
        MockAgent("agent_c"),
    ]
    result = await _run(agents, sample_context, ExecutionStrategy.PARALLEL, toolkit)
    assert [r.agent_id for r in result.responses] == ["agent_a", "agent_c"]


async def test_all_agents_failing_still_yields_round(sample_context, toolkit):
    agents = [MockAgent(n, [RuntimeError("down")]) for n in ("a", "b")]
    analyzer = ScriptedAnalyzer([0.0])
    result = await _run(agents, sample_context, ExecutionStrategy.PARALLEL, toolkit, analyzer)
    assert result.responses == ()
    assert analyzer.calls[0][0] == ()


async def test_round_one_quality_warning(sample_context, toolkit, caplog):
    agents = [MockAgent("a"), MockAgent("b", [RuntimeError("x")]), MockAgent("c", [RuntimeError("y")])]
    with caplog.at_level(logging.WARNING):
        await _run(agents, sample_context, ExecutionStrategy.PARALLEL, toolkit)
    assert "Only 1/3 agents responded in round 1" in caplog.text


async def test_infrastructure_error_aborts_round(sample_context, toolkit):
    agents = [MockAgent("a"), MockAgent("b", [InfrastructureError("toolkit gone")])]
    analyzer = ScriptedAnalyzer()
    with pytest.raises(InfrastructureError):
        await _run(agents, sample_context, ExecutionStrategy.PARALLEL, toolkit, analyzer)
    assert analyzer.calls == []


async def test_missing_collaborators_raise(three_agents, sample_context, toolkit):
    with pytest.raises(InfrastructureError):
        await execute_round(
            three_agents, sample_context, ExecutionStrategy.PARALLEL, toolkit=None, consensus_analyzer=ScriptedAnalyzer()
        )
    with pytest.raises(InfrastructureError):
        await execute_round(
            three_agents, sample_context, ExecutionStrategy.PARALLEL, toolkit=toolkit, consensus_analyzer=None
        )


async def test_consensus_failure_propagates(three_agents, sample_context, toolkit):
    class BrokenAnalyzer:
        async def analyze(self, responses, topic, *, include_groupthink_detection=True):
            raise ProviderError("judge", "down", FailureKind.NETWORK_ERROR)

    with pytest.raises(ProviderError):
        await _run(three_agents, sample_context, ExecutionStrategy.PARALLEL, toolkit, BrokenAnalyzer())


async def test_tool_calls_and_citations_attached(sample_context, toolkit):
    agent = MockAgent("a", [tool_reply(("search_web", {"query": "yaml"})), text_reply()])
    result = await _run([agent], sample_context, ExecutionStrategy.PARALLEL, toolkit)
    response = result.responses[0]
    assert [c.tool_name for c in response.tool_calls] == ["search_web"]
    assert response.citations[0].url == "https://yaml.org/spec"


async def test_responses_are_validated(sample_context, toolkit):
    agent = MockAgent("a", [text_reply(position="", confidence=4.0)])
    result = await _run([agent], sample_context, ExecutionStrategy.PARALLEL, toolkit)
    assert result.responses[0].position == "No position provided"
    assert result.responses[0].confidence == 1.0


async def test_devils_advocate_flags_wrong_stance(sample_context, toolkit):
    mode = default_modes()["devils-advocate"]
    agents = [
        MockAgent("pro", [text_reply(stance="YES")]),
        MockAgent("con", [text_reply(stance="YES")]),
        MockAgent("judge", [text_reply(stance="NEUTRAL")]),
    ]
    analyzer = ScriptedAnalyzer()
    result = await _run(agents, sample_context, mode.strategy, toolkit, analyzer, mode)
    by_id = {r.agent_id: r for r in result.responses}
    assert by_id["pro"].role_violation is None
    assert by_id["con"].role_violation.expected is Stance.NO
    assert by_id["judge"].role_violation is None
    assert analyzer.calls[0][1] is False


async def test_mode_prompt_reaches_agent(three_agents, sample_context, toolkit):
    mode = default_modes()["socratic"]
    await _run(three_agents, sample_context, mode.strategy, toolkit, mode=mode)
    context, _ = three_agents[1].invoke.await_args.args
    assert context.agent_index == 1
    assert context.mode_prompt.startswith("Mode: socratic")
