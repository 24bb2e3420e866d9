"""Abstract base for all agent adapters, plus the failure classification they share."""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from config.config_loader import ModelConfig, PromptsConfig
from roundtable.models import Citation, DebateContext, Stance, StructuredResponse
from roundtable.toolkit import ToolSpec

logger = logging.getLogger(__name__)

_DEFAULT_CONFIDENCE = 0.5


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    INVALID_REQUEST = "invalid_request"
    OTHER = "other"


_RETRYABLE_KINDS = {FailureKind.RATE_LIMITED, FailureKind.NETWORK_ERROR, FailureKind.TIMEOUT}


class ProviderError(Exception):
    """Raised when a provider call fails. Carries its own retry classification."""

    def __init__(
        self,
        provider_name: str,
        message: str,
        kind: FailureKind = FailureKind.OTHER,
        retryable: bool | None = None,
    ) -> None:
        self.provider_name = provider_name
        self.kind = kind
        self.retryable = kind in _RETRYABLE_KINDS if retryable is None else retryable
        super().__init__(f"[{provider_name}] {message}")


_RATE_LIMIT_RE = re.compile(r"rate.?limit|too.?many.?requests|quota.?exceeded|throttl|overloaded", re.I)
_AUTH_RE = re.compile(r"auth|api.?key|unauthori[sz]ed|forbidden|permission|access.?denied|credential", re.I)
_TIMEOUT_RE = re.compile(r"timeout|timed.?out|deadline", re.I)
_NETWORK_RE = re.compile(r"network|connection|ECONNREFUSED|ECONNRESET|socket|dns", re.I)


def classify_exception(provider_name: str, exc: BaseException) -> ProviderError:
    """Map an arbitrary SDK exception to a ProviderError.

    Checks, in order: already classified, timeouts, HTTP status code,
    exception class name, message patterns.
    """
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, TimeoutError):
        return ProviderError(provider_name, "Request timed out", FailureKind.TIMEOUT)

    message = str(exc) or type(exc).__name__
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None) or getattr(exc, "code", None)
    cls_name = type(exc).__name__

    if status == 429 or cls_name == "RateLimitError" or _RATE_LIMIT_RE.search(message):
        kind = FailureKind.RATE_LIMITED
    elif status in (401, 403) or cls_name in ("AuthenticationError", "PermissionDeniedError"):
        kind = FailureKind.AUTH_FAILED
    elif cls_name in ("APITimeoutError", "ReadTimeout", "ConnectTimeout") or status in (408, 504):
        kind = FailureKind.TIMEOUT
    elif cls_name in ("APIConnectionError", "ConnectError") or isinstance(exc, ConnectionError):
        kind = FailureKind.NETWORK_ERROR
    elif status in (400, 404, 422) or cls_name in ("BadRequestError", "NotFoundError", "UnprocessableEntityError"):
        kind = FailureKind.INVALID_REQUEST
    elif isinstance(status, int) and status >= 500:
        kind = FailureKind.NETWORK_ERROR
    elif _TIMEOUT_RE.search(message):
        kind = FailureKind.TIMEOUT
    elif _AUTH_RE.search(message):
        kind = FailureKind.AUTH_FAILED
    elif _NETWORK_RE.search(message):
        kind = FailureKind.NETWORK_ERROR
    else:
        kind = FailureKind.OTHER
    return ProviderError(provider_name, f"API call failed: {message}", kind)


@dataclass
class CapabilityRequest:
    call_id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class CapabilityResult:
    request: CapabilityRequest
    output: Any


@dataclass
class AgentReply:
    """One provider reply inside a turn.

    ``transcript`` is provider-owned conversation state; only the adapter
    that produced it reads it back in ``follow_up``.
    """

    text: str
    capability_requests: list[CapabilityRequest] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)
    transcript: Any = None

    @property
    def needs_capabilities(self) -> bool:
        return bool(self.capability_requests)


def _extract_json_object(text: str) -> dict[str, Any] | None:
    match = re.search(r"\{[\s\S]*\}", text)
    if not match:
        return None
    candidate = match.group(0)
    for attempt in (candidate, re.sub(r",\s*([}\]])", r"\1", candidate)):
        try:
            parsed = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


class Agent(ABC):
    """Abstract base for all agent adapters."""

    def __init__(self, config: ModelConfig, prompts: PromptsConfig | None = None) -> None:
        self._config = config
        self._prompts = prompts or PromptsConfig()

    @property
    def agent_id(self) -> str:
        return self._config.name

    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        return self._config.name

    def model_string(self) -> str:
        """Return the actual model identifier string."""
        return self._config.model

    @abstractmethod
    async def invoke(self, context: DebateContext, tools: list[ToolSpec]) -> AgentReply:
        """Send the opening request of a turn.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...

    @abstractmethod
    async def follow_up(self, reply: AgentReply, results: list[CapabilityResult]) -> AgentReply:
        """Return capability results for ``reply`` and get the next reply."""
        ...

    @abstractmethod
    async def invoke_raw(self, prompt: str, system_prompt: str | None = None) -> str:
        """Single prompt in, text out. No tools."""
        ...

    def classify_error(self, exc: BaseException) -> ProviderError:
        return classify_exception(self.name(), exc)

    def build_system_prompt(self, context: DebateContext) -> str:
        parts = [self._config.system_prompt or self._prompts.system.format(name=self.name())]
        if context.mode_prompt:
            parts.append(context.mode_prompt)
        parts.append(
            f"Current debate topic: {context.topic}\n"
            f"Debate mode: {context.mode}\n"
            f"Round {context.current_round} of {context.total_rounds}"
        )
        if context.focus_question:
            parts.append(f"Focus question: {context.focus_question}")
        parts.append(self._prompts.tool_instructions)
        return "\n\n".join(p for p in parts if p)

    def build_user_message(self, context: DebateContext) -> str:
        blocks: list[str] = []
        for resp in context.previous_responses:
            sources = ", ".join(c.title for c in resp.citations)
            block = (
                f"--- {resp.agent_name} ---\n"
                f"Position: {resp.position}\n"
                f"Reasoning: {resp.reasoning}\n"
                f"Confidence: {resp.confidence * 100:.0f}%"
            )
            if sources:
                block += f"\nSources: {sources}"
            blocks.append(block)
        previous = "\n\n".join(blocks) if blocks else "(no previous responses)"
        return self._prompts.user.format(topic=context.topic, previous_responses=previous)

    def parse_response(self, text: str, context: DebateContext) -> StructuredResponse:
        """Turn raw model text into a StructuredResponse (unvalidated)."""
        parsed = _extract_json_object(text)
        if parsed is not None:
            try:
                confidence = float(parsed.get("confidence", _DEFAULT_CONFIDENCE))
            except (TypeError, ValueError):
                confidence = _DEFAULT_CONFIDENCE
            return StructuredResponse(
                agent_id=self.agent_id,
                agent_name=self.name(),
                position=str(parsed.get("position") or ""),
                reasoning=str(parsed.get("reasoning") or ""),
                confidence=confidence,
                stance=Stance.parse(parsed.get("stance")),
            )

        logger.debug("Agent %s returned non-JSON text in round %d", self.name(), context.current_round)
        stripped = text.strip()
        return StructuredResponse(
            agent_id=self.agent_id,
            agent_name=self.name(),
            position=stripped[:200],
            reasoning=stripped,
            confidence=_DEFAULT_CONFIDENCE,
        )
