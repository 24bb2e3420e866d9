"""Response validators: pure StructuredResponse -> StructuredResponse transforms.

Validators may rewrite content fields but never identity fields, and never
drop a response. Compose them with ValidatorChain.
"""

import logging
from dataclasses import replace
from typing import Protocol

from roundtable.models import RoleViolation, Stance, StructuredResponse

logger = logging.getLogger(__name__)

NO_POSITION = "No position provided"
NO_REASONING = "No reasoning provided"


class ResponseValidator(Protocol):
    name: str

    def __call__(self, response: StructuredResponse) -> StructuredResponse: ...


class RequiredFieldsValidator:
    name = "required-fields"

    def __call__(self, response: StructuredResponse) -> StructuredResponse:
        position_missing = not response.position or not response.position.strip()
        reasoning_missing = not response.reasoning or not response.reasoning.strip()
        if not (position_missing or reasoning_missing):
            return response
        return replace(
            response,
            position=NO_POSITION if position_missing else response.position,
            reasoning=NO_REASONING if reasoning_missing else response.reasoning,
        )


class ConfidenceRangeValidator:
    name = "confidence-range"

    def __call__(self, response: StructuredResponse) -> StructuredResponse:
        clamped = max(0.0, min(1.0, response.confidence))
        if clamped == response.confidence:
            return response
        return replace(response, confidence=clamped)


class StanceValidator:
    """Flags, but does not fix, a stance that differs from the assigned one.

    The response keeps its stance; ``role_violation`` records the mismatch.
    """

    name = "stance"

    def __init__(self, expected: Stance) -> None:
        self.expected = expected

    def __call__(self, response: StructuredResponse) -> StructuredResponse:
        if response.stance == self.expected:
            return response
        logger.warning(
            "Role violation: agent %s expected stance %s, got %s",
            response.agent_id,
            self.expected.value,
            response.stance.value if response.stance else None,
        )
        return replace(response, role_violation=RoleViolation(expected=self.expected, actual=response.stance))


class ValidatorChain:
    name = "chain"

    def __init__(self, validators: list[ResponseValidator] | None = None) -> None:
        self.validators = list(validators or [])

    def __call__(self, response: StructuredResponse) -> StructuredResponse:
        for validator in self.validators:
            response = validator(response)
        return response


def default_chain(expected_stance: Stance | None = None) -> ValidatorChain:
    validators: list[ResponseValidator] = [RequiredFieldsValidator(), ConfidenceRangeValidator()]
    if expected_stance is not None:
        validators.append(StanceValidator(expected_stance))
    return ValidatorChain(validators)
