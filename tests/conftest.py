"""Shared pytest fixtures and test doubles."""

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PromptsConfig
from roundtable.models import (
    ConsensusMeasurement,
    DebateContext,
    ExitCriteria,
    Stance,
    StructuredResponse,
)
from roundtable.providers.base import Agent, AgentReply, CapabilityRequest, CapabilityResult
from roundtable.toolkit import ToolSpec, Toolkit


def text_reply(
    position: str = "Use YAML.",
    reasoning: str = "Humans edit it.",
    confidence: float = 0.8,
    stance: str | None = None,
) -> AgentReply:
    """A final (no tool calls) reply carrying a JSON answer."""
    payload: dict[str, Any] = {"position": position, "reasoning": reasoning, "confidence": confidence}
    if stance is not None:
        payload["stance"] = stance
    return AgentReply(text=json.dumps(payload))


def tool_reply(*calls: tuple[str, dict[str, Any]]) -> AgentReply:
    """A reply that asks for capabilities and has no usable text yet."""
    return AgentReply(
        text="",
        capability_requests=[
            CapabilityRequest(call_id=f"call_{i}", name=name, arguments=args)
            for i, (name, args) in enumerate(calls)
        ],
    )


def make_model_config(name: str = "mock") -> ModelConfig:
    return ModelConfig(
        name=name,
        sdk="mock",
        model="mock-model",
        api_key_env="MOCK_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
    )


class MockAgent(Agent):
    """Test double Agent driven by a reply script.

    ``invoke`` and ``follow_up`` consume the same script in order; the last
    entry repeats forever. Exception entries are raised.
    """

    def __init__(
        self,
        agent_name: str = "mock",
        replies: Sequence[AgentReply | BaseException] | None = None,
        raw: str = "OK",
    ) -> None:
        super().__init__(make_model_config(agent_name))
        self._script: list[AgentReply | BaseException] = list(replies or [text_reply()])
        # Shadow the class methods with AsyncMocks so tests can inspect calls.
        self.invoke = AsyncMock(side_effect=self._next_reply)  # type: ignore[method-assign]
        self.follow_up = AsyncMock(side_effect=self._next_reply)  # type: ignore[method-assign]
        self.invoke_raw = AsyncMock(return_value=raw)  # type: ignore[method-assign]

    def _next_reply(self, *_args: Any, **_kwargs: Any) -> AgentReply:
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, BaseException):
            raise item
        return item

    # Abstract stubs; every instance replaces them with the AsyncMocks above.
    async def invoke(self, context: DebateContext, tools: list[ToolSpec]) -> AgentReply:
        raise NotImplementedError

    async def follow_up(self, reply: AgentReply, results: list[CapabilityResult]) -> AgentReply:
        raise NotImplementedError

    async def invoke_raw(self, prompt: str, system_prompt: str | None = None) -> str:
        raise NotImplementedError


class ScriptedAnalyzer:
    """Consensus analyzer returning preset agreement levels, one per call."""

    def __init__(self, levels: Sequence[float] = (0.5,)) -> None:
        self._levels = list(levels)
        self.calls: list[tuple[tuple[StructuredResponse, ...], bool]] = []

    async def analyze(
        self,
        responses: Sequence[StructuredResponse],
        topic: str,
        *,
        include_groupthink_detection: bool = True,
    ) -> ConsensusMeasurement:
        self.calls.append((tuple(responses), include_groupthink_detection))
        level = self._levels.pop(0) if len(self._levels) > 1 else self._levels[0]
        return ConsensusMeasurement(agreement_level=level, summary=f"agreement {level}")


class FakeSearch:
    def __init__(self, results: list[dict[str, Any]] | None = None, error: Exception | None = None) -> None:
        self.results = results if results is not None else [
            {"title": "YAML spec", "url": "https://yaml.org/spec", "snippet": "YAML 1.2"},
        ]
        self.error = error
        self.queries: list[tuple[str, int]] = []

    async def search(self, query: str, max_results: int = 5) -> list[dict[str, Any]]:
        self.queries.append((query, max_results))
        if self.error is not None:
            raise self.error
        return self.results[:max_results]


def make_response(
    agent_id: str = "mock",
    position: str = "Use YAML.",
    reasoning: str = "Humans edit it.",
    confidence: float = 0.8,
    stance: Stance | None = None,
) -> StructuredResponse:
    return StructuredResponse(
        agent_id=agent_id,
        agent_name=agent_id,
        position=position,
        reasoning=reasoning,
        confidence=confidence,
        stance=stance,
    )


@pytest.fixture
def sample_context() -> DebateContext:
    return DebateContext(
        session_id="s1",
        topic="Should we use YAML or JSON for config?",
        mode="collaborative",
        current_round=1,
        total_rounds=3,
    )


@pytest.fixture
def toolkit() -> Toolkit:
    return Toolkit(FakeSearch())


@pytest.fixture
def three_agents() -> list[MockAgent]:
    return [
        MockAgent("agent_a", [text_reply("A says YAML")]),
        MockAgent("agent_b", [text_reply("B says JSON")]),
        MockAgent("agent_c", [text_reply("C says TOML")]),
    ]


@pytest.fixture
def sample_app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            rounds=2,
            max_rounds=4,
            output_dir=tmp_path / "output",
            consensus_agent="claude",
            default_panel=["claude", "openai", "gemini"],
        ),
        models={"claude": make_model_config("claude")},
        prompts=PromptsConfig(),
        exit_criteria=ExitCriteria(max_rounds=4),
        available_providers={"claude"},
    )
