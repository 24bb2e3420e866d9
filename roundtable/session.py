"""Session persistence: the orchestrator records rounds and status transitions here."""

import json
import logging
import re
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from roundtable.models import (
    Citation,
    ConsensusMeasurement,
    RoleViolation,
    RoundResult,
    Session,
    SessionStatus,
    Stance,
    StructuredResponse,
    ToolInvocationRecord,
)

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def save_round(self, session: Session, result: RoundResult) -> None: ...

    def mark_status(self, session: Session, status: SessionStatus, error: str | None = None) -> None: ...

    def load(self, session_id: str) -> Session | None: ...


class InMemorySessionStore:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def save_round(self, session: Session, result: RoundResult) -> None:
        self._sessions[session.id] = session

    def mark_status(self, session: Session, status: SessionStatus, error: str | None = None) -> None:
        session.status = status
        session.error = error
        self._sessions[session.id] = session

    def load(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    return repr(value)


def _response_from_dict(raw: dict[str, Any]) -> StructuredResponse:
    violation = raw.get("role_violation")
    return StructuredResponse(
        agent_id=raw["agent_id"],
        agent_name=raw["agent_name"],
        position=raw["position"],
        reasoning=raw["reasoning"],
        confidence=float(raw["confidence"]),
        stance=Stance.parse(raw.get("stance")),
        citations=tuple(Citation(**c) for c in raw.get("citations", [])),
        tool_calls=tuple(
            ToolInvocationRecord(
                tool_name=t["tool_name"],
                input=t["input"],
                output=t["output"],
                timestamp=datetime.fromisoformat(t["timestamp"]),
            )
            for t in raw.get("tool_calls", [])
        ),
        timestamp=datetime.fromisoformat(raw["timestamp"]),
        role_violation=(
            RoleViolation(expected=Stance(violation["expected"]), actual=Stance.parse(violation["actual"]))
            if violation
            else None
        ),
    )


def session_from_dict(raw: dict[str, Any]) -> Session:
    rounds = [
        RoundResult(
            round_number=int(r["round_number"]),
            responses=tuple(_response_from_dict(resp) for resp in r["responses"]),
            consensus=ConsensusMeasurement(
                agreement_level=float(r["consensus"]["agreement_level"]),
                summary=r["consensus"]["summary"],
                common_points=tuple(r["consensus"].get("common_points", [])),
                disagreement_points=tuple(r["consensus"].get("disagreement_points", [])),
                groupthink_warning=r["consensus"].get("groupthink_warning"),
            ),
        )
        for r in raw.get("rounds", [])
    ]
    return Session(
        id=raw["id"],
        topic=raw["topic"],
        mode=raw["mode"],
        total_rounds=int(raw["total_rounds"]),
        current_round=int(raw["current_round"]),
        status=SessionStatus(raw["status"]),
        rounds=rounds,
        created_at=datetime.fromisoformat(raw["created_at"]),
        error=raw.get("error"),
    )


class JsonSessionStore:
    """One pretty-printed JSON file per session in ``output_dir``."""

    def __init__(self, output_dir: Path) -> None:
        self._output_dir = output_dir

    def path_for(self, session_id: str) -> Path:
        safe = re.sub(r"[^\w-]", "_", session_id)
        return self._output_dir / f"session_{safe}.json"

    def _write(self, session: Session) -> Path:
        self._output_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(session.id)
        path.write_text(json.dumps(asdict(session), default=_json_default, indent=2), encoding="utf-8")
        return path

    def save_round(self, session: Session, result: RoundResult) -> None:
        path = self._write(session)
        logger.info("Round %d of session %s saved to: %s", result.round_number, session.id, path)

    def mark_status(self, session: Session, status: SessionStatus, error: str | None = None) -> None:
        session.status = status
        session.error = error
        self._write(session)
        logger.info("Session %s marked %s", session.id, status.value)

    def load(self, session_id: str) -> Session | None:
        path = self.path_for(session_id)
        if not path.exists():
            return None
        return session_from_dict(json.loads(path.read_text(encoding="utf-8")))
