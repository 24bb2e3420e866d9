"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from roundtable.models import ExitCriteria, RetryConfig

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

_DEFAULT_SYSTEM = (
    "You are {name}, an AI participating in a structured roundtable discussion.\n"
    "Provide thoughtful, well-reasoned perspectives and clearly articulate your own position."
)
_DEFAULT_USER = (
    "Topic: {topic}\n\n"
    "Previous responses:\n{previous_responses}\n\n"
    "Reply with JSON only:\n"
    '{{"position": "...", "reasoning": "...", "confidence": 0.0, "stance": "YES|NO|NEUTRAL"}}'
)
_DEFAULT_TOOL_INSTRUCTIONS = (
    "You may call the available tools (web search, fact check) before answering. "
    "Cite your sources."
)
_DEFAULT_CONSENSUS = (
    "Analyze these debate positions on the topic \"{topic}\" semantically.\n\n"
    "{positions}\n\n"
    "Return JSON only: "
    '{{"agreementLevel": 0.0, "commonPoints": [], "disagreementPoints": [], '
    '"summary": "", "groupthinkWarning": false}}'
)


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    temperature: float = 0.7
    base_url: str | None = None
    system_prompt: str | None = None
    native_search: bool = False


@dataclass
class PromptsConfig:
    system: str = _DEFAULT_SYSTEM
    user: str = _DEFAULT_USER
    tool_instructions: str = _DEFAULT_TOOL_INSTRUCTIONS
    consensus: str = _DEFAULT_CONSENSUS


@dataclass
class DefaultsConfig:
    rounds: int
    output_dir: Path
    max_rounds: int = 5
    mode: str = "collaborative"
    consensus_agent: str | None = None
    default_panel: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    exit_criteria: ExitCriteria
    retry: RetryConfig = field(default_factory=RetryConfig)
    available_providers: set[str] = field(default_factory=set)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_number(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def load_exit_criteria(raw: dict, max_rounds: int) -> ExitCriteria:
    """Build ExitCriteria from the settings block, then apply ROUNDTABLE_EXIT_* overrides.

    An out-of-range threshold override is ignored rather than rejected.
    """
    enabled = _env_bool("ROUNDTABLE_EXIT_ENABLED", bool(raw.get("enabled", True)))
    threshold = float(raw.get("consensus_threshold", 0.9))
    override = _env_number("ROUNDTABLE_EXIT_CONSENSUS_THRESHOLD", threshold)
    if 0.0 <= override <= 1.0:
        threshold = override
    else:
        logger.warning("ROUNDTABLE_EXIT_CONSENSUS_THRESHOLD out of range, keeping %.2f", threshold)
    window = int(_env_number("ROUNDTABLE_EXIT_CONVERGENCE_ROUNDS", int(raw.get("convergence_rounds", 2))))
    return ExitCriteria(
        max_rounds=max_rounds,
        consensus_threshold=threshold,
        convergence_rounds=window,
        enabled=enabled,
    )


def load_retry_config(raw: dict) -> RetryConfig:
    retryable = raw.get("retryable_errors")
    return RetryConfig(
        max_retries=int(raw.get("max_retries", 3)),
        base_delay=float(raw.get("base_delay_sec", 1.0)),
        backoff_factor=float(raw.get("backoff_factor", 2.0)),
        max_delay=float(raw.get("max_delay_sec", 30.0)),
        retryable_errors=frozenset(retryable) if retryable else None,
        jitter=bool(raw.get("jitter", False)),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs providers without API keys but does not raise; callers check
    available_providers count.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        rounds=int(defaults_raw["rounds"]),
        max_rounds=int(defaults_raw.get("max_rounds", 5)),
        mode=str(defaults_raw.get("mode", "collaborative")),
        output_dir=Path(defaults_raw["output_dir"]),
        consensus_agent=defaults_raw.get("consensus_agent"),
        default_panel=list(defaults_raw.get("default_panel", [])),
    )

    prompts_raw = raw.get("prompts", {})
    prompts = PromptsConfig(
        system=prompts_raw.get("system", _DEFAULT_SYSTEM),
        user=prompts_raw.get("user", _DEFAULT_USER),
        tool_instructions=prompts_raw.get("tool_instructions", _DEFAULT_TOOL_INSTRUCTIONS),
        consensus=prompts_raw.get("consensus", _DEFAULT_CONSENSUS),
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            temperature=float(model_raw.get("temperature", 0.7)),
            base_url=model_raw.get("base_url"),
            system_prompt=model_raw.get("system_prompt"),
            native_search=bool(model_raw.get("native_search", False)),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        exit_criteria=load_exit_criteria(raw.get("exit_criteria", {}), defaults.max_rounds),
        retry=load_retry_config(raw.get("retry", {})),
        available_providers=available_providers,
    )
