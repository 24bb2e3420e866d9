"""Debate modes: execution strategy, prompt additions and stance assignment per mode."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from roundtable.models import DebateContext, Stance

logger = logging.getLogger(__name__)


class ExecutionStrategy(str, Enum):
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"
    LAST_ONLY = "last-only"


# Values accepted in mode_data["parallelization"]
_PARALLELIZATION_OVERRIDES = {
    "full": ExecutionStrategy.PARALLEL,
    "last-only": ExecutionStrategy.LAST_ONLY,
}


@dataclass(frozen=True)
class ModeStrategy:
    name: str
    strategy: ExecutionStrategy
    instructions: str = ""
    needs_groupthink_detection: bool = True
    stance_for: Callable[[int, int], Stance | None] | None = None
    role_for: Callable[[int, int], str] | None = None

    def expected_stance(self, index: int, agent_count: int) -> Stance | None:
        if self.stance_for is None:
            return None
        return self.stance_for(index, agent_count)

    def resolve_strategy(self, context: DebateContext) -> ExecutionStrategy:
        override = (context.mode_data or {}).get("parallelization")
        if override in _PARALLELIZATION_OVERRIDES:
            logger.debug("Mode %s: parallelization override %s", self.name, override)
            return _PARALLELIZATION_OVERRIDES[override]
        return self.strategy

    def build_prompt(self, context: DebateContext, index: int, agent_count: int) -> str:
        parts = [f"Mode: {self.name}"]
        if self.instructions:
            parts.append(self.instructions)
        if self.role_for is not None:
            parts.append(self.role_for(index, agent_count))
        stance = self.expected_stance(index, agent_count)
        if stance is not None:
            parts.append(f"Your assigned stance is {stance.value}. Set \"stance\" to {stance.value}.")
        perspectives = (context.mode_data or {}).get("perspectives")
        if perspectives and index < len(perspectives):
            parts.append(f"Your assigned perspective: {perspectives[index]}")
        if context.current_round > 1:
            parts.append(f"Round {context.current_round}: build on or respond to the earlier arguments.")
        return "\n".join(parts)


def _devils_advocate_stance(index: int, _agent_count: int) -> Stance:
    if index == 0:
        return Stance.YES
    if index == 1:
        return Stance.NO
    return Stance.NEUTRAL


_RED_TEAM = (
    "You are RED TEAM, the attacker. Identify at least 5 risks, vulnerabilities or "
    "failure modes. Challenge every assumption and highlight hidden costs. "
    "Do not propose solutions or mitigations; that is Blue Team's job."
)
_BLUE_TEAM = (
    "You are BLUE TEAM, the defender. Propose at least 3 concrete solutions or "
    "mitigations and answer every Red Team attack specifically. "
    "Do not concede an attack without a defense."
)


def _team_role(index: int, _agent_count: int) -> str:
    """Even indices play Red Team, odd indices Blue Team."""
    return _RED_TEAM if index % 2 == 0 else _BLUE_TEAM


# Used when a session names a mode nobody registered
ROUND_ROBIN = ModeStrategy(name="round-robin", strategy=ExecutionStrategy.SEQUENTIAL)


def default_modes() -> dict[str, ModeStrategy]:
    return {
        "collaborative": ModeStrategy(
            "collaborative",
            ExecutionStrategy.PARALLEL,
            "Work together to find common ground. Acknowledge good points from others "
            "and build on them.",
        ),
        "adversarial": ModeStrategy(
            "adversarial",
            ExecutionStrategy.SEQUENTIAL,
            "Challenge the previous arguments directly. Identify weaknesses and "
            "counter-evidence.",
            needs_groupthink_detection=False,
        ),
        "socratic": ModeStrategy(
            "socratic",
            ExecutionStrategy.SEQUENTIAL,
            "Probe assumptions with questions. Answer the questions raised before you, "
            "then pose one of your own.",
        ),
        "expert-panel": ModeStrategy(
            "expert-panel",
            ExecutionStrategy.PARALLEL,
            "Give an independent expert assessment from your assigned perspective.",
        ),
        "devils-advocate": ModeStrategy(
            "devils-advocate",
            ExecutionStrategy.LAST_ONLY,
            "First participant argues YES, second argues NO as devil's advocate, "
            "the rest evaluate both sides.",
            needs_groupthink_detection=False,
            stance_for=_devils_advocate_stance,
        ),
        "delphi": ModeStrategy(
            "delphi",
            ExecutionStrategy.PARALLEL,
            "Give an independent estimate. Revise it in later rounds in light of the "
            "anonymous group responses.",
        ),
        "red-team-blue-team": ModeStrategy(
            "red-team-blue-team",
            ExecutionStrategy.PARALLEL,
            "Agents are split into an attacking Red Team and a defending Blue Team. "
            "In later rounds, respond to the other team's arguments.",
            needs_groupthink_detection=False,
            role_for=_team_role,
        ),
    }


def resolve_mode(name: str, modes: dict[str, ModeStrategy]) -> ModeStrategy:
    """Look up ``name``; unknown modes fall back to simple round-robin."""
    mode = modes.get(name)
    if mode is None:
        logger.warning("No mode strategy found for %r, using simple round-robin", name)
        return ROUND_ROBIN
    return mode
