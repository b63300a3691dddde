"""Batched checklist analysis over a single conversation.

The backend refuses new input on a conversation while its previous run is
still active, so batches run strictly one after another on one conversation
and every run is driven to ``completed`` before the next batch posts.

Each batch attempt is a small state machine::

    POST_MESSAGE -> START_RUN -> AWAIT_RUN -+-> HANDLE_CALLBACK -> AWAIT_COMPLETION -+
                                            |                                      |
                                            +-> INSPECT_MESSAGES <-----------------+
                                                       |
                                                    VALIDATE -> DONE

Attempts are retried with the evaluation batch backoff; a batch that never
succeeds contributes one placeholder result per item, so the caller always
receives exactly one result per requested item. An attempt that gives up on
a run leaves it open; the next attempt waits for that run to end before it
posts.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from app.core.backoff import EVALUATION_BATCH_POLICY, BackoffEngine, RetryPolicy
from app.core.config import AnalysisSettings
from app.core.exceptions import (
    APITimeoutError,
    ContractViolationError,
    RunFailedError,
    TransientRemoteError,
    ValidationError,
)
from app.core.openai_client import ConversationClient
from app.models.compliance import AnalysisOutcome, ChecklistResult
from app.prompts.checklist_prompts import CHECKLIST_TOOLS, build_checklist_prompt
from app.services.analysis.result_extractor import ResultExtractor
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

RUN_COMPLETED = "completed"
RUN_REQUIRES_ACTION = "requires_action"
RUN_FAILED_STATES = ("failed", "cancelled", "expired")
RUN_TERMINAL_STATES = (RUN_COMPLETED,) + RUN_FAILED_STATES
PLAIN_TEXT_LOG_CHARS = 500


class BatchPhase(str, Enum):
    POST_MESSAGE = "post_message"
    START_RUN = "start_run"
    AWAIT_RUN = "await_run"
    HANDLE_CALLBACK = "handle_callback"
    AWAIT_COMPLETION = "await_completion"
    INSPECT_MESSAGES = "inspect_messages"
    VALIDATE = "validate"
    DONE = "done"


def partition(items: Sequence[str], batch_size: int) -> List[List[str]]:
    """Split items into consecutive batches; a short list is one batch."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


class AnalysisOrchestrator:
    """Evaluates checklist item texts against one document's remote index."""

    def __init__(
        self,
        conversation_client: ConversationClient,
        config: AnalysisSettings,
        extractor: Optional[ResultExtractor] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = conversation_client
        self.config = config
        self.extractor = extractor or ResultExtractor()
        self._sleep = sleep or asyncio.sleep
        self._clock = clock
        # conversation id -> run started there that has not reached a terminal state
        self._open_runs: Dict[str, str] = {}
        self.batch_policy = RetryPolicy(
            name="evaluation batch",
            max_attempts=config.batch_max_attempts,
            schedule=EVALUATION_BATCH_POLICY.schedule,
            classifier=EVALUATION_BATCH_POLICY.classifier,
        )

    async def analyze(self, index_id: str, items: Sequence[str]) -> AnalysisOutcome:
        """Analyze ``items`` and return exactly one result per item.

        Args:
            index_id: Remote index bound to the conversation
            items: Checklist item texts, in order

        Returns:
            AnalysisOutcome with the results and the shared conversation id
        """
        if not items:
            raise ValidationError("No checklist items to analyze")

        batches = partition(items, self.config.batch_size)
        total = len(batches)

        conversation_id = await self.client.create_conversation([index_id])
        LOGGER.info(
            f"Starting checklist analysis: {len(items)} items in {total} batch(es) "
            f"on conversation {conversation_id}",
            extra={"conversation_id": conversation_id, "batch_size": self.config.batch_size},
        )

        outcome = AnalysisOutcome(results=[], conversation_id=conversation_id, batch_count=total)
        engine = BackoffEngine(self.batch_policy, sleep=self._sleep)

        try:
            for batch_number, batch in enumerate(batches, start=1):
                LOGGER.info(f"Processing batch {batch_number}/{total} ({len(batch)} items)")
                try:
                    results = await engine.execute(
                        lambda attempt, batch=batch, number=batch_number: self._run_batch(
                            conversation_id, batch, number, total, attempt
                        ),
                        operation_name=f"Batch {batch_number}",
                    )
                except Exception as e:
                    LOGGER.error(
                        f"Batch {batch_number} failed after all retries: {e}",
                        extra={"conversation_id": conversation_id, "error_type": type(e).__name__},
                    )
                    outcome.failed_batches.append(batch_number)
                    results = [ChecklistResult.placeholder(item, str(e)) for item in batch]

                outcome.results.extend(results)

                if batch_number < total:
                    LOGGER.info(f"Waiting {self.config.inter_batch_delay}s before next batch...")
                    await self._sleep(self.config.inter_batch_delay)
        finally:
            self._open_runs.pop(conversation_id, None)

        LOGGER.info(
            f"Checklist analysis finished: {len(outcome.results)} results, "
            f"{len(outcome.failed_batches)} failed batch(es)"
        )
        return outcome

    async def _run_batch(
        self,
        conversation_id: str,
        items: List[str],
        batch_number: int,
        total_batches: int,
        attempt: int = 1,
    ) -> List[ChecklistResult]:
        """One attempt at one batch; raises on any failure."""
        LOGGER.info(f"Batch {batch_number}: attempt {attempt} on conversation {conversation_id}")

        phase = BatchPhase.POST_MESSAGE
        run_id: Optional[str] = None
        run: Dict[str, Any] = {}
        results: List[ChecklistResult] = []
        completion_timeout = self.config.run_completion_timeout

        while phase is not BatchPhase.DONE:
            if phase is BatchPhase.POST_MESSAGE:
                await self._settle_open_run(conversation_id)
                prompt = build_checklist_prompt(items, batch_number, total_batches)
                await self.client.post_message(conversation_id, prompt)
                phase = BatchPhase.START_RUN

            elif phase is BatchPhase.START_RUN:
                run_id = await self.client.start_run(conversation_id, CHECKLIST_TOOLS)
                self._open_runs[conversation_id] = run_id
                phase = BatchPhase.AWAIT_RUN

            elif phase is BatchPhase.AWAIT_RUN:
                run = await self._wait_for_run(
                    conversation_id,
                    run_id,
                    accept=(RUN_COMPLETED, RUN_REQUIRES_ACTION),
                    timeout=self.config.run_timeout,
                )
                if run.get("status") == RUN_REQUIRES_ACTION:
                    phase = BatchPhase.HANDLE_CALLBACK
                else:
                    phase = BatchPhase.INSPECT_MESSAGES

            elif phase is BatchPhase.HANDLE_CALLBACK:
                results = self.extractor.extract(run)
                if results:
                    LOGGER.info(f"Found {len(results)} results in callback, acknowledging...")
                else:
                    LOGGER.warning(
                        f"No results in callback ({self.extractor.last_failure}), "
                        "acknowledging and checking messages..."
                    )
                    completion_timeout = self.config.run_timeout
                await self.client.acknowledge(
                    conversation_id, run_id, ResultExtractor.pending_call_ids(run)
                )
                phase = BatchPhase.AWAIT_COMPLETION

            elif phase is BatchPhase.AWAIT_COMPLETION:
                # An acknowledged run must reach completed before the next message
                run = await self._wait_for_run(
                    conversation_id, run_id, accept=(RUN_COMPLETED,), timeout=completion_timeout
                )
                phase = BatchPhase.VALIDATE if results else BatchPhase.INSPECT_MESSAGES

            elif phase is BatchPhase.INSPECT_MESSAGES:
                messages = await self.client.list_messages(
                    conversation_id, limit=self.config.message_scan_limit
                )
                results = self.extractor.extract_from_messages(messages)
                if not results:
                    self._log_plain_text(batch_number, messages)
                phase = BatchPhase.VALIDATE

            elif phase is BatchPhase.VALIDATE:
                if not results:
                    raise ContractViolationError(
                        f"No results returned from analysis backend. "
                        f"Expected {len(items)} results, got 0."
                    )
                if len(results) != len(items):
                    LOGGER.warning(
                        f"Batch {batch_number}: results count ({len(results)}) "
                        f"doesn't match items count ({len(items)})"
                    )
                phase = BatchPhase.DONE

        LOGGER.info(f"Batch {batch_number}: completed on attempt {attempt}")
        return results

    async def _wait_for_run(
        self,
        conversation_id: str,
        run_id: str,
        accept: Sequence[str],
        timeout: float,
    ) -> Dict[str, Any]:
        """Poll a run until its status is in ``accept``.

        A transient error while polling is logged and polling continues.

        Raises:
            RunFailedError: The run reached failed, cancelled or expired
            APITimeoutError: No accepted status within ``timeout`` seconds
        """
        start = self._clock()
        while True:
            try:
                run = await self.client.get_run(conversation_id, run_id)
            except TransientRemoteError as e:
                LOGGER.warning(f"Polling run {run_id} failed, will poll again: {e.message}")
            else:
                status = run.get("status")
                if status in RUN_TERMINAL_STATES and self._open_runs.get(conversation_id) == run_id:
                    del self._open_runs[conversation_id]

                if status in accept:
                    return run

                if status in RUN_FAILED_STATES:
                    error_info = run.get("last_error") or {}
                    if isinstance(error_info, dict):
                        code = error_info.get("code") or "unknown"
                        detail = f"{code}: {error_info.get('message') or 'Unknown error'}"
                    else:
                        code = None
                        detail = str(error_info)
                    LOGGER.error(f"Run {run_id} ended with status {status}: {detail}")
                    raise RunFailedError(f"Run failed: {detail}", run_status=status, code=code)

            elapsed = self._clock() - start
            if elapsed > timeout:
                raise APITimeoutError(f"Run timed out after {round(timeout)} seconds")

            await self._sleep(self.config.run_poll_interval)

    async def _settle_open_run(self, conversation_id: str) -> None:
        """Wait until a run left by an earlier attempt has ended.

        A run still waiting on its callback is acknowledged once so it can
        finish. Raises APITimeoutError if it is still active after the run
        timeout; nothing is posted in that case.
        """
        run_id = self._open_runs.get(conversation_id)
        if run_id is None:
            return

        LOGGER.info(f"Waiting for run {run_id} to end before posting to {conversation_id}")
        run = await self._wait_for_run(
            conversation_id,
            run_id,
            accept=RUN_TERMINAL_STATES + (RUN_REQUIRES_ACTION,),
            timeout=self.config.run_timeout,
        )
        if run.get("status") == RUN_REQUIRES_ACTION:
            await self.client.acknowledge(
                conversation_id, run_id, ResultExtractor.pending_call_ids(run)
            )
            await self._wait_for_run(
                conversation_id, run_id, accept=RUN_TERMINAL_STATES, timeout=self.config.run_timeout
            )

    def _log_plain_text(self, batch_number: int, messages: List[Dict[str, Any]]) -> None:
        text = ResultExtractor.plain_text(messages)
        LOGGER.error(
            f"Batch {batch_number}: run completed without a results callback "
            f"({self.extractor.last_failure})"
        )
        if text:
            LOGGER.error(f"Plain text response (first {PLAIN_TEXT_LOG_CHARS} chars): {text[:PLAIN_TEXT_LOG_CHARS]}")
