"""Meta description generation with validation and history-fed retries."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from metagen.agents.meta_writer import MetaWriterAgent, MetaWriterInput, RejectedAttempt
from metagen.config import settings
from metagen.integrations.outcome_store import (
    GENERATION_FAILED,
    GenerationFailedAttributes,
    OutcomeStore,
)
from metagen.services.prompt_state import PromptState
from metagen.services.types import (
    Attempt,
    Candidate,
    GenerationBatch,
    GenerationFailure,
    GenerationSuccess,
)
from metagen.services.validators import (
    ValidationContext,
    Validator,
    default_validators,
    run_validator_chain,
)

logger = logging.getLogger(__name__)

TerminalOutcome = GenerationSuccess | GenerationFailure


class MetaGenerationService:
    """Generate one accepted snippet, or one failure record, per candidate.

    Each attempt replays every earlier rejection of the same candidate to the
    writer. Candidates are processed one after another so the attempt history
    and audit trail of a page stay in order.
    """

    def __init__(
        self,
        prompt_state: PromptState,
        store: OutcomeStore,
        *,
        validators: Sequence[Validator] | None = None,
        max_retries: int | None = None,
    ) -> None:
        self.prompt_state = prompt_state
        self.store = store
        self.validators = list(validators) if validators is not None else default_validators()
        configured = settings.generation_max_retries if max_retries is None else max_retries
        self.max_retries = max(1, configured)

    async def generate(
        self,
        candidates: Sequence[Candidate],
        *,
        scope_id: str,
        on_outcome: Callable[[TerminalOutcome], None] | None = None,
    ) -> GenerationBatch:
        """Process candidates sequentially.

        ``on_outcome`` is called as soon as each candidate reaches a terminal
        outcome, for callers that persist incrementally.
        """
        writer = MetaWriterAgent(system_prompt=self.prompt_state.get_system_prompt())
        batch = GenerationBatch()

        for candidate in candidates:
            outcome = await self._generate_one(writer, candidate, scope_id)
            if isinstance(outcome, GenerationSuccess):
                batch.results.append(outcome)
            else:
                batch.failures.append(outcome)
            if on_outcome is not None:
                on_outcome(outcome)

        logger.info(
            "Generation batch finished",
            extra={
                "candidates": len(candidates),
                "generated": len(batch.results),
                "failed": len(batch.failures),
                "max_retries": self.max_retries,
            },
        )
        return batch

    async def _generate_one(
        self,
        writer: MetaWriterAgent,
        candidate: Candidate,
        scope_id: str,
    ) -> TerminalOutcome:
        history: list[Attempt] = []

        try:
            for attempt in range(1, self.max_retries + 1):
                generated = await writer.run(self._writer_input(candidate, history))
                verdict = await run_validator_chain(
                    self.validators,
                    generated,
                    candidate,
                    ValidationContext(store=self.store, scope_id=scope_id, attempt=attempt),
                )

                if verdict.passed:
                    self.store.record(
                        scope_id,
                        "Generated",
                        {
                            "page": candidate.url,
                            "title": generated.title,
                            "description": generated.description,
                            "length": len(generated.description),
                            "currentCTR": candidate.ctr,
                            "attempts": attempt,
                            **verdict.meta,
                        },
                    )
                    return GenerationSuccess(
                        url=candidate.url,
                        title=generated.title,
                        description=generated.description,
                        generated_at=datetime.now(timezone.utc),
                        baseline_ctr=candidate.ctr,
                        baseline_impressions=candidate.impressions,
                        attempts=attempt,
                        meta=verdict.meta,
                    )

                history.append(
                    Attempt(
                        attempt=attempt,
                        reason=verdict.reason or "Rejected by validator",
                        title=generated.title,
                        description=generated.description,
                    )
                )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.warning(
                "Generation aborted by transport error",
                extra={"page": candidate.url, "error": message, "attempts_made": len(history)},
            )
            self.store.record(
                scope_id,
                "Generation Error",
                {"page": candidate.url, "error": message},
            )
            return GenerationFailure(
                url=candidate.url,
                attempts=0,
                last_reason=message,
                history=[Attempt(attempt=0, reason=message)],
                failed_at=datetime.now(timezone.utc),
            )

        last_reason = history[-1].reason
        logger.info(
            "Generation exhausted retries",
            extra={"page": candidate.url, "attempts": len(history), "last_reason": last_reason},
        )
        failed: GenerationFailedAttributes = {
            "page": candidate.url,
            "attempts": len(history),
            "lastReason": last_reason,
            "history": [item.to_dict() for item in history],
        }
        self.store.record(scope_id, GENERATION_FAILED, failed)
        return GenerationFailure(
            url=candidate.url,
            attempts=len(history),
            last_reason=last_reason,
            history=history,
            failed_at=datetime.now(timezone.utc),
        )

    def _writer_input(self, candidate: Candidate, history: list[Attempt]) -> MetaWriterInput:
        return MetaWriterInput(
            url=candidate.url,
            ctr=candidate.ctr,
            impressions=candidate.impressions,
            current_title=candidate.current_title,
            current_description=candidate.current_description,
            content=candidate.content,
            previous_failures=list(candidate.previous_failures),
            rejected_attempts=[
                RejectedAttempt(
                    attempt=item.attempt,
                    title=item.title or "",
                    description=item.description or "",
                    reason=item.reason,
                )
                for item in history
            ],
        )
