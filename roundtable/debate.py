"""Debate orchestration: run rounds, record them, stop early on converged consensus."""

import logging
import uuid
from collections.abc import Callable, Sequence

from roundtable.consensus import ConsensusAnalyzer
from roundtable.errors import ConfigurationError
from roundtable.exit_criteria import ConvergenceEvaluator
from roundtable.models import (
    DebateContext,
    ExitCriteria,
    RetryConfig,
    RoundResult,
    Session,
    SessionStatus,
)
from roundtable.modes import ModeStrategy, default_modes, resolve_mode
from roundtable.providers.base import Agent
from roundtable.round_executor import execute_round
from roundtable.session import SessionStore
from roundtable.toolkit import CapabilityExecutor

logger = logging.getLogger(__name__)


def new_session(topic: str, mode: str, total_rounds: int, session_id: str | None = None) -> Session:
    return Session(
        id=session_id or uuid.uuid4().hex[:12],
        topic=topic,
        mode=mode,
        total_rounds=total_rounds,
    )


class DebateOrchestrator:
    """Outer debate loop.

    Collaborators are injected at construction; a missing toolkit or
    consensus analyzer raises ConfigurationError.
    """

    def __init__(
        self,
        toolkit: CapabilityExecutor | None,
        consensus_analyzer: ConsensusAnalyzer | None,
        *,
        modes: dict[str, ModeStrategy] | None = None,
        session_store: SessionStore | None = None,
        retry_config: RetryConfig | None = None,
        exit_criteria: ExitCriteria | None = None,
    ) -> None:
        if toolkit is None:
            raise ConfigurationError("A capability toolkit must be provided to DebateOrchestrator")
        if consensus_analyzer is None:
            raise ConfigurationError("A consensus analyzer must be provided to DebateOrchestrator")
        self.toolkit = toolkit
        self.consensus_analyzer = consensus_analyzer
        self.modes = modes if modes is not None else default_modes()
        self.session_store = session_store
        self.retry_config = retry_config
        self.exit_criteria = exit_criteria

    def _active_criteria(self) -> ExitCriteria | None:
        if self.exit_criteria is None or not self.exit_criteria.enabled:
            return None
        return self.exit_criteria

    async def execute_round(self, agents: Sequence[Agent], context: DebateContext) -> RoundResult:
        mode = resolve_mode(context.mode, self.modes)
        return await execute_round(
            agents,
            context,
            mode.resolve_strategy(context),
            toolkit=self.toolkit,
            consensus_analyzer=self.consensus_analyzer,
            mode=mode,
            retry_config=self.retry_config,
        )

    async def execute_rounds(
        self,
        agents: Sequence[Agent],
        session: Session,
        num_rounds: int,
        focus_question: str | None = None,
        mode_data: dict | None = None,
        on_round_complete: Callable[[RoundResult], None] | None = None,
    ) -> list[RoundResult]:
        """Run up to ``num_rounds`` rounds starting after ``session.current_round``.

        Returns the rounds produced by this call, in order. A fatal round error
        marks the session ERROR (when a store is configured) and is re-raised;
        rounds already recorded stay on the session.
        """
        results: list[RoundResult] = []
        criteria = self._active_criteria()
        evaluator = (
            ConvergenceEvaluator(criteria, [r.consensus.agreement_level for r in session.rounds])
            if criteria
            else None
        )
        exited_early = False

        for i in range(num_rounds):
            round_number = session.current_round + 1
            context = DebateContext(
                session_id=session.id,
                topic=session.topic,
                mode=session.mode,
                current_round=round_number,
                total_rounds=session.total_rounds,
                previous_responses=session.responses,
                focus_question=focus_question,
                mode_data=mode_data,
            )

            try:
                result = await self.execute_round(agents, context)
            except Exception as exc:
                logger.error("Round %d of session %s failed: %s", round_number, session.id, exc)
                if self.session_store is not None:
                    self.session_store.mark_status(session, SessionStatus.ERROR, str(exc))
                raise

            results.append(result)
            session.rounds.append(result)
            session.current_round = round_number
            if self.session_store is not None:
                self.session_store.save_round(session, result)
            if on_round_complete:
                on_round_complete(result)

            if evaluator is not None and i < num_rounds - 1:
                decision = evaluator.record(result.consensus)
                if decision.should_exit:
                    logger.info(
                        "Early exit after round %d of session %s: %s (scores %s)",
                        round_number,
                        session.id,
                        decision.reason,
                        decision.details["scores"],
                    )
                    exited_early = True
                    break

        if exited_early or session.current_round >= session.total_rounds:
            session.status = SessionStatus.COMPLETED
            if self.session_store is not None:
                self.session_store.mark_status(session, SessionStatus.COMPLETED)

        return results
