"""Agent health checks: ping each API before starting a debate."""

import asyncio
import logging

from roundtable.providers.base import Agent

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, agent: Agent) -> tuple[str, bool, str]:
    """Ping a single agent. Returns (name, ok, error_message)."""
    try:
        await asyncio.wait_for(agent.invoke_raw(_PING_PROMPT), timeout=_TIMEOUT_SEC)
        return name, True, ""
    except TimeoutError:
        return name, False, f"No reply within {_TIMEOUT_SEC:.0f}s"
    except Exception as exc:
        logger.debug("Health check for %s failed: %s", name, exc)
        return name, False, str(exc)


async def run_health_checks(agents: dict[str, Agent]) -> dict[str, tuple[bool, str]]:
    """Ping all agents in parallel.

    Returns:
        Dict mapping agent name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, a) for n, a in agents.items()))
    return {name: (ok, err) for name, ok, err in results}
