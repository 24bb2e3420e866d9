"""Consensus analysis: ask an agent to judge how far a round's positions agree."""

import json
import logging
import math
import re
from collections.abc import Sequence
from typing import Any, Protocol

from config.config_loader import PromptsConfig
from roundtable.models import ConsensusMeasurement, RetryConfig, StructuredResponse
from roundtable.providers.base import Agent
from roundtable.retry import with_retry

logger = logging.getLogger(__name__)

_FALLBACK_AGREEMENT = 0.5
_LEVEL_RE = re.compile(r'"?agreement_?level"?\s*[:=]\s*([01](?:\.\d+)?)', re.I)


class ConsensusAnalyzer(Protocol):
    async def analyze(
        self,
        responses: Sequence[StructuredResponse],
        topic: str,
        *,
        include_groupthink_detection: bool = True,
    ) -> ConsensusMeasurement: ...


def _format_positions(responses: Sequence[StructuredResponse]) -> str:
    return "\n\n".join(
        f"[{r.agent_name}] (confidence {r.confidence:.2f})\n"
        f"Position: {r.position}\nReasoning: {r.reasoning}"
        for r in responses
    )


def _str_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value if isinstance(v, (str, int, float)))


def _clamp(value: float) -> float:
    if math.isnan(value):
        return _FALLBACK_AGREEMENT
    return max(0.0, min(1.0, value))


def parse_measurement(raw: str, include_groupthink_detection: bool = True) -> ConsensusMeasurement:
    """Parse the analyzer's JSON verdict.

    Falls back to a regex-extracted agreement level (or 0.5) when the JSON
    is unusable, keeping the raw text as the summary.
    """
    cleaned = re.sub(r"```(?:json)?", "", raw).strip()
    match = re.search(r"\{[\s\S]*\}", cleaned)
    parsed: dict[str, Any] | None = None
    if match:
        try:
            candidate = json.loads(re.sub(r",\s*([}\]])", r"\1", match.group(0)))
            if isinstance(candidate, dict):
                parsed = candidate
        except json.JSONDecodeError:
            parsed = None

    if parsed is None:
        level_match = _LEVEL_RE.search(cleaned)
        logger.warning("Consensus response was not valid JSON, using fallback values")
        return ConsensusMeasurement(
            agreement_level=_clamp(float(level_match.group(1))) if level_match else _FALLBACK_AGREEMENT,
            summary=cleaned or "Analysis failed",
        )

    try:
        level = float(parsed.get("agreementLevel", _FALLBACK_AGREEMENT))
    except (TypeError, ValueError):
        level = _FALLBACK_AGREEMENT

    groupthink = None
    if include_groupthink_detection and "groupthinkWarning" in parsed:
        groupthink = bool(parsed["groupthinkWarning"])

    return ConsensusMeasurement(
        agreement_level=_clamp(level),
        summary=str(parsed.get("summary", "")),
        common_points=_str_list(parsed.get("commonPoints") or parsed.get("commonGround")),
        disagreement_points=_str_list(parsed.get("disagreementPoints")),
        groupthink_warning=groupthink,
    )


class AIConsensusAnalyzer:
    """Consensus analyzer backed by one agent's ``invoke_raw``.

    Provider errors propagate (after retry); unparsable output degrades to
    fallback values.
    """

    def __init__(
        self,
        agent: Agent,
        prompts: PromptsConfig | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._agent = agent
        self._prompts = prompts or PromptsConfig()
        self._retry_config = retry_config

    async def analyze(
        self,
        responses: Sequence[StructuredResponse],
        topic: str,
        *,
        include_groupthink_detection: bool = True,
    ) -> ConsensusMeasurement:
        if not responses:
            return ConsensusMeasurement(agreement_level=0.0, summary="No responses to analyze")
        if len(responses) == 1:
            only = responses[0]
            return ConsensusMeasurement(
                agreement_level=1.0,
                summary=f"Single response from {only.agent_name}",
                common_points=(only.position,),
            )

        prompt = self._prompts.consensus.format(topic=topic, positions=_format_positions(responses))
        if not include_groupthink_detection:
            prompt += "\nSet groupthinkWarning to false; groupthink detection is off for this mode."
        logger.info("Analyzing consensus of %d responses via %s", len(responses), self._agent.name())
        raw = await with_retry(lambda: self._agent.invoke_raw(prompt), self._retry_config)
        return parse_measurement(raw, include_groupthink_detection)
