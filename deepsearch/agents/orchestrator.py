from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncGenerator

from loguru import logger

from deepsearch.agents.decision_agent import ANSWER_ONLY, DecisionAgent
from deepsearch.agents.evaluator_agent import AnswerEvaluator
from deepsearch.agents.executors import (
    AnswerExecutor,
    DeepDiveExecutor,
    ExecutorOutcome,
    ReflectExecutor,
    SearchExecutor,
)
from deepsearch.config import settings
from deepsearch.errors import CollaboratorUnavailable, EvaluationFailed, MalformedAction
from deepsearch.llm_client import get_model
from deepsearch.models.actions import (
    Action,
    ActionKind,
    AnswerAction,
    ContextEntry,
    DeepDiveAction,
    ReflectAction,
    SearchAction,
)
from deepsearch.models.events import SSEEvent
from deepsearch.models.session import ResearchSession, normalize_question
from deepsearch.services import context_store, streaming
from deepsearch.services import logger as log_service
from deepsearch.services.budget import TokenBudget
from deepsearch.services.query_dedup import QueryDeduplicator
from deepsearch.services.query_rewriter import QueryRewriter


@dataclass(slots=True)
class Executors:
    search: SearchExecutor
    deep_dive: DeepDiveExecutor
    reflect: ReflectExecutor
    answer: AnswerExecutor


class ResearchOrchestrator:
    """Runs the research loop for one question until it is answered.

    Flow per step:
      1. Check the budget; once exhausted, force one final answer and stop
      2. Pop the next open question (the original one when the queue is empty)
      3. Ask the decision agent for one action (search / deep dive / reflect / answer)
      4. Execute it and record the result in the session context
      5. For answers to the original question, evaluate and either finish or
         keep the failed attempt as bad context and start over

    Every step yields a progress event; the run ends with exactly one
    answer or error event.
    """

    def __init__(self, model: str | None = None):
        self.model = model or get_model()
        self.decision_agent = DecisionAgent(model=self.model)
        self.evaluator = AnswerEvaluator()
        self.deduplicator = QueryDeduplicator(model=self.model)
        self.rewriter = QueryRewriter(model=self.model)
        self.step_delay_seconds = max(float(settings.step_delay_seconds), 0.0)
        self.search_cooldown_seconds = max(float(settings.search_cooldown_seconds), 0.0)
        self.max_malformed_retries = max(int(settings.max_malformed_retries), 0)
        self.max_consecutive_outages = max(int(settings.max_consecutive_outages), 0)
        self.persist_context = bool(settings.persist_context)
        self.context_dir = settings.context_dir

    def _build_executors(self) -> Executors:
        return Executors(
            search=SearchExecutor(
                self.rewriter,
                self.deduplicator,
                cooldown_seconds=self.search_cooldown_seconds,
            ),
            deep_dive=DeepDiveExecutor(),
            reflect=ReflectExecutor(self.deduplicator),
            answer=AnswerExecutor(),
        )

    async def _store(self, session: ResearchSession) -> None:
        if self.persist_context:
            await context_store.store_snapshot(session, self.context_dir)

    async def _decide(
        self,
        session: ResearchSession,
        question: str,
        allowed: frozenset[ActionKind],
    ) -> Action:
        attempts = self.max_malformed_retries + 1
        attempt = 1
        while True:
            try:
                return await self.decision_agent.decide(
                    question,
                    session.context,
                    session.bad_context,
                    allowed,
                    session.all_questions,
                    budget=session.budget,
                )
            except MalformedAction as e:
                logger.warning(
                    f"Malformed action for '{question[:80]}' (attempt {attempt}/{attempts}): {e}"
                )
                if attempt >= attempts:
                    raise
                attempt += 1

    async def _evaluate(self, session: ResearchSession, action: AnswerAction) -> bool:
        try:
            return await self.evaluator.is_definitive(
                session.question, action.text, budget=session.budget
            )
        except EvaluationFailed as e:
            logger.warning(f"Answer evaluation failed, rejecting the attempt: {e}")
            return False

    async def _execute(
        self,
        session: ResearchSession,
        question: str,
        action: Action,
        executors: Executors,
    ) -> AnswerAction | None:
        """Run one action. Returns the accepted final answer, if any."""
        outcome: ExecutorOutcome
        match action:
            case SearchAction():
                outcome = await executors.search.execute(action, session)
            case DeepDiveAction():
                outcome = await executors.deep_dive.execute(action, session)
            case ReflectAction():
                outcome = await executors.reflect.execute(action, session)
            case AnswerAction():
                outcome = await executors.answer.execute(action, session, question)
            case _:
                raise TypeError(f"Unhandled action type: {type(action).__name__}")

        session.record(
            ContextEntry(step=session.step, question=question, action=action, result=outcome.result)
        )
        if not outcome.new_information:
            session.disabled_actions.add(action.kind)

        if not isinstance(action, AnswerAction):
            log_service.log_research_step(
                session.step,
                question,
                action.kind.value,
                "completed" if outcome.new_information else "no_new_information",
            )
            return None

        if not outcome.needs_evaluation:
            log_service.log_research_step(session.step, question, "answer", "intermediate")
            return None

        definitive = await self._evaluate(session, action)
        if definitive and action.references:
            log_service.log_research_step(session.step, question, "answer", "accepted")
            return action

        if definitive:
            log_service.log_research_step(session.step, question, "answer", "unreferenced")
        else:
            log_service.log_research_step(session.step, question, "answer", "rejected")
            session.reject_attempt()
        session.ensure_original_queued()
        return None

    async def _forced_answer(self, session: ResearchSession) -> SSEEvent:
        logger.warning(
            f"Token budget exhausted ({session.budget.consumed}/{session.budget.ceiling}), "
            "forcing a final answer"
        )
        try:
            action = await self.decision_agent.decide(
                session.question,
                session.context,
                session.bad_context,
                ANSWER_ONLY,
                session.all_questions,
                budget=session.budget,
                forced=True,
            )
        except (MalformedAction, CollaboratorUnavailable) as e:
            logger.error(f"Forced answer failed: {e}")
            return streaming.error(f"Forced answer failed: {e}")

        session.record(ContextEntry(step=session.step, question=session.question, action=action))
        log_service.log_research_step(session.step, session.question, "answer", "forced")
        return streaming.answer(action)

    async def _run(self, session: ResearchSession) -> AsyncGenerator[SSEEvent, None]:
        executors = self._build_executors()
        # Questions abandoned on malformed actions since the last successful decision.
        stalled: set[str] = set()
        outages = 0

        while True:
            if session.budget.exhausted():
                yield await self._forced_answer(session)
                await self._store(session)
                return

            if session.step > 0 and self.step_delay_seconds > 0:
                await asyncio.sleep(self.step_delay_seconds)

            current, allow_reflect = session.next_question()
            allowed = session.allowed_actions(allow_reflect)
            session.disabled_actions.clear()
            session.step += 1
            logger.info(
                f"Step {session.step}: '{current[:100]}' "
                f"(allowed: {sorted(kind.value for kind in allowed)}, pending: {len(session.gaps)}, "
                f"tokens left: {session.budget.remaining()})"
            )

            try:
                action = await self._decide(session, current, allowed)
            except (MalformedAction, CollaboratorUnavailable) as e:
                log_service.log_research_step(
                    session.step, current, "none", "abandoned", {"error": str(e)}
                )
                message: str | None = None
                if isinstance(e, CollaboratorUnavailable):
                    outages += 1
                    if self.max_consecutive_outages and outages >= self.max_consecutive_outages:
                        message = f"Decision oracle unavailable for {outages} consecutive steps ({e})"
                else:
                    key = normalize_question(current)
                    if key in stalled:
                        message = (
                            "Research stalled: no valid action could be obtained "
                            f"for any pending question ({e})"
                        )
                    stalled.add(key)

                if message is not None:
                    logger.error(message)
                    yield streaming.error(message)
                    await self._store(session)
                    return
                session.enqueue(current)
                session.ensure_original_queued()
                yield streaming.progress(session.step, session.budget)
                await self._store(session)
                continue

            stalled.clear()
            outages = 0
            final_answer = await self._execute(session, current, action, executors)
            if final_answer is None:
                session.ensure_original_queued()
            yield streaming.progress(session.step, session.budget)
            await self._store(session)

            if final_answer is not None:
                logger.info(f"Research answered after {session.step} steps")
                yield streaming.answer(final_answer)
                return

    async def research(
        self,
        question: str,
        token_budget: int | None = None,
    ) -> AsyncGenerator[SSEEvent, None]:
        ceiling = settings.token_budget if token_budget is None else token_budget
        session = ResearchSession(question=question, budget=TokenBudget(ceiling=ceiling))
        logger.info(f"Starting research for question: {question[:100]} (budget: {ceiling} tokens)")
        try:
            async for event in self._run(session):
                yield event
        except Exception as e:
            logger.exception(f"Research failed with error: {e}")
            yield streaming.error(f"Research failed: {e}")
