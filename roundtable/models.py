"""Dataclasses for the roundtable debate pipeline. No I/O, no provider deps."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Stance(str, Enum):
    YES = "YES"
    NO = "NO"
    NEUTRAL = "NEUTRAL"

    @classmethod
    def parse(cls, value: Any) -> "Stance | None":
        """Lenient parse of a model-produced stance ("yes", "Affirmative", ...)."""
        if value is None:
            return None
        if isinstance(value, Stance):
            return value
        text = str(value).strip().upper()
        aliases = {
            "YES": cls.YES, "AFFIRMATIVE": cls.YES, "PRO": cls.YES, "FOR": cls.YES,
            "NO": cls.NO, "NEGATIVE": cls.NO, "CON": cls.NO, "AGAINST": cls.NO,
            "NEUTRAL": cls.NEUTRAL, "UNDECIDED": cls.NEUTRAL,
        }
        return aliases.get(text)


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class Citation:
    title: str
    url: str
    snippet: str | None = None


@dataclass(frozen=True)
class ToolInvocationRecord:
    tool_name: str
    input: Any
    output: Any
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class RoleViolation:
    expected: Stance
    actual: Stance | None


@dataclass(frozen=True)
class StructuredResponse:
    agent_id: str
    agent_name: str
    position: str
    reasoning: str
    confidence: float
    stance: Stance | None = None
    citations: tuple[Citation, ...] = ()
    tool_calls: tuple[ToolInvocationRecord, ...] = ()
    timestamp: datetime = field(default_factory=_now)
    role_violation: RoleViolation | None = None


@dataclass(frozen=True)
class ConsensusMeasurement:
    agreement_level: float        # 0-1
    summary: str
    common_points: tuple[str, ...] = ()
    disagreement_points: tuple[str, ...] = ()
    groupthink_warning: bool | None = None


@dataclass(frozen=True)
class RoundResult:
    round_number: int
    responses: tuple[StructuredResponse, ...]
    consensus: ConsensusMeasurement


@dataclass(frozen=True)
class DebateContext:
    """Per-agent-call input. Derive new contexts instead of mutating."""

    session_id: str
    topic: str
    mode: str
    current_round: int
    total_rounds: int
    previous_responses: tuple[StructuredResponse, ...] = ()
    focus_question: str | None = None
    mode_data: dict[str, Any] | None = None
    mode_prompt: str | None = None
    agent_index: int | None = None

    def with_previous(self, extra: list[StructuredResponse] | tuple[StructuredResponse, ...]) -> "DebateContext":
        """Return a copy whose previous_responses also include ``extra``."""
        return replace(self, previous_responses=self.previous_responses + tuple(extra))

    def for_agent(self, index: int, mode_prompt: str | None = None) -> "DebateContext":
        return replace(self, agent_index=index, mode_prompt=mode_prompt)


@dataclass(frozen=True)
class ExitCriteria:
    max_rounds: int
    consensus_threshold: float = 0.9
    convergence_rounds: int = 2
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        if not 0.0 <= self.consensus_threshold <= 1.0:
            raise ValueError("consensus_threshold must be between 0 and 1")
        if self.convergence_rounds < 1:
            raise ValueError("convergence_rounds must be at least 1")


@dataclass(frozen=True)
class ExitDecision:
    should_exit: bool
    reason: str | None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3          # retries after the first attempt
    base_delay: float = 1.0       # seconds
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    retryable_errors: frozenset[str] | None = None
    jitter: bool = False


@dataclass
class Session:
    """Debate state. Mutated only by DebateOrchestrator between rounds."""

    id: str
    topic: str
    mode: str
    total_rounds: int
    current_round: int = 0
    status: SessionStatus = SessionStatus.ACTIVE
    rounds: list[RoundResult] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    error: str | None = None

    @property
    def responses(self) -> tuple[StructuredResponse, ...]:
        return tuple(r for rnd in self.rounds for r in rnd.responses)
