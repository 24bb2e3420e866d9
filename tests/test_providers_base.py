"""Tests for roundtable/providers/base.py: failure classification, prompts and parsing."""

from dataclasses import replace

import pytest

from roundtable.models import Citation, Stance
from roundtable.providers.base import FailureKind, ProviderError, classify_exception
from tests.conftest import MockAgent, make_response


class _StatusError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(Exception):
    pass


@pytest.mark.parametrize(
    "exc, kind, retryable",
    [
        (_StatusError("slow down", 429), FailureKind.RATE_LIMITED, True),
        (RateLimitError("quota"), FailureKind.RATE_LIMITED, True),
        (_StatusError("nope", 401), FailureKind.AUTH_FAILED, False),
        (TimeoutError(), FailureKind.TIMEOUT, True),
        (ConnectionResetError("reset by peer"), FailureKind.NETWORK_ERROR, True),
        (_StatusError("bad field", 400), FailureKind.INVALID_REQUEST, False),
        (_StatusError("upstream", 503), FailureKind.NETWORK_ERROR, True),
        (RuntimeError("Request timed out while reading"), FailureKind.TIMEOUT, True),
        (RuntimeError("Invalid API key supplied"), FailureKind.AUTH_FAILED, False),
        (ValueError("something odd"), FailureKind.OTHER, False),
    ],
)
def test_classify_exception(exc, kind, retryable):
    error = classify_exception("mock", exc)
    assert error.kind is kind
    assert error.retryable is retryable
    assert error.provider_name == "mock"


def test_classify_keeps_existing_provider_error():
    original = ProviderError("mock", "already classified", FailureKind.TIMEOUT)
    assert classify_exception("other", original) is original


def test_provider_error_message_has_provider_prefix():
    assert str(ProviderError("gemini", "boom")) == "[gemini] boom"


def test_parse_json_response(sample_context):
    agent = MockAgent("claude")
    text = 'Here you go:\n```json\n{"position": "YAML", "reasoning": "Comments", "confidence": 0.9, "stance": "yes",}\n```'
    response = agent.parse_response(text, sample_context)
    assert response.agent_id == "claude"
    assert response.position == "YAML"
    assert response.reasoning == "Comments"
    assert response.confidence == 0.9
    assert response.stance is Stance.YES


def test_parse_plain_text_falls_back(sample_context):
    agent = MockAgent("claude")
    text = "I think YAML is better. " * 20
    response = agent.parse_response(text, sample_context)
    assert response.position == text.strip()[:200]
    assert response.reasoning == text.strip()
    assert response.confidence == 0.5
    assert response.stance is None


def test_parse_bad_confidence_defaults(sample_context):
    response = MockAgent().parse_response('{"position": "p", "reasoning": "r", "confidence": "very"}', sample_context)
    assert response.confidence == 0.5


def test_system_prompt_includes_mode_and_focus(sample_context):
    ctx = replace(sample_context, focus_question="Think about tooling", mode_prompt="Mode: socratic")
    prompt = MockAgent("claude").build_system_prompt(ctx)
    assert "You are claude" in prompt
    assert "Mode: socratic" in prompt
    assert "Focus question: Think about tooling" in prompt
    assert "Round 1 of 3" in prompt


def test_user_message_lists_previous_responses(sample_context):
    earlier = replace(make_response("gemini", confidence=0.75), citations=(Citation("Docs", "https://d"),))
    message = MockAgent().build_user_message(sample_context.with_previous([earlier]))
    assert "--- gemini ---" in message
    assert "Confidence: 75%" in message
    assert "Sources: Docs" in message


def test_user_message_without_history(sample_context):
    assert "(no previous responses)" in MockAgent().build_user_message(sample_context)
