"""Unit tests for the batched checklist analysis."""

import json
import uuid
from unittest.mock import AsyncMock

import pytest

from app.core.config import AnalysisSettings, EvaluationSettings
from app.core.exceptions import PermanentRemoteError, TransientRemoteError, ValidationError
from app.database.models import ChecklistItem, DocumentType, Scheme
from app.models.compliance import ComplianceStatus
from app.services.analysis.orchestrator import AnalysisOrchestrator, partition
from app.services.evaluation_service import EvaluationService


ITEMS = [
    "Alpha cost estimate",
    "Bravo land availability",
    "Charlie environmental clearance",
    "Delta implementation schedule",
    "Echo beneficiary identification",
    "Foxtrot operation and maintenance plan",
    "Golf financial viability",
]


def results_arguments(items, status="Yes"):
    return json.dumps(
        {"results": [{"item": item, "status": status, "remarks": f"{item} found"} for item in items]}
    )


def callback_run(run_id, items, call_id="call_1", arguments=None):
    return {
        "id": run_id,
        "status": "requires_action",
        "required_action": {
            "submit_tool_outputs": {
                "tool_calls": [
                    {
                        "id": call_id,
                        "function": {
                            "name": "return_checklist_results",
                            "arguments": arguments if arguments is not None else results_arguments(items),
                        },
                    }
                ]
            }
        },
    }


class FakeConversationClient:
    """Scripted backend: every run asks for the results callback, then completes.

    ``fail_starts`` maps a batch number to how many of its run starts fail.
    """

    def __init__(self, fail_starts=None, mode="callback"):
        self.fail_starts = dict(fail_starts or {})
        self.mode = mode
        self.conversations = []
        self.prompts = []
        self.acknowledged = []
        self.runs = {}

    async def create_conversation(self, index_ids):
        self.conversations.append(list(index_ids))
        return "thread_1"

    async def post_message(self, conversation_id, content):
        assert conversation_id == "thread_1"
        self.prompts.append(content)
        return f"msg_{len(self.prompts)}"

    def _current_batch(self):
        prompt = self.prompts[-1]
        for number in range(1, 10):
            if f"batch {number} of" in prompt:
                return number
        return 1

    def _current_items(self):
        return [item for item in ITEMS if item in self.prompts[-1]]

    async def start_run(self, conversation_id, tools):
        batch = self._current_batch()
        if self.fail_starts.get(batch, 0) > 0:
            self.fail_starts[batch] -= 1
            raise TransientRemoteError("OpenAI API Error: 503 - server_error: overloaded", status_code=503)
        run_id = f"run_{len(self.runs) + 1}"
        self.runs[run_id] = {"items": self._current_items(), "acknowledged": False}
        return run_id

    async def get_run(self, conversation_id, run_id):
        run = self.runs[run_id]
        if self.mode == "running":
            return {"id": run_id, "status": "in_progress"}
        if self.mode == "failed":
            return {"id": run_id, "status": "failed", "last_error": {"code": "server_error", "message": "boom"}}
        if self.mode == "text_only" or run["acknowledged"]:
            return {"id": run_id, "status": "completed"}
        return callback_run(run_id, run["items"])

    async def acknowledge(self, conversation_id, run_id, call_ids):
        self.acknowledged.append((run_id, call_ids))
        self.runs[run_id]["acknowledged"] = True
        return {"id": run_id, "status": "queued"}

    async def list_messages(self, conversation_id, limit=10):
        return [{"id": "msg_x", "role": "assistant", "content": [{"type": "text", "text": {"value": "Looks fine."}}]}]


class ScriptedConversationClient:
    """Backend that refuses new messages while a run on the conversation is active.

    ``scripts`` holds, for each started run, the statuses ``get_run`` reports
    in turn; an exception entry is raised instead and the last entry repeats.
    """

    TERMINAL = ("completed", "failed", "cancelled", "expired")

    def __init__(self, scripts, messages=None, callback_arguments=None):
        self.scripts = [list(script) for script in scripts]
        self.messages = messages or []
        self.callback_arguments = callback_arguments
        self.prompts = []
        self.runs = {}
        self.rejected = []
        self.acknowledged = []
        self.polls = []

    async def create_conversation(self, index_ids):
        return "thread_1"

    async def post_message(self, conversation_id, content):
        active = [run_id for run_id, run in self.runs.items() if run["status"] not in self.TERMINAL]
        if active:
            self.rejected.append(active)
            raise PermanentRemoteError(
                f"OpenAI API Error: 400 - Can't add messages to {conversation_id} "
                f"while a run {active[0]} is active.",
                status_code=400,
            )
        self.prompts.append(content)
        return f"msg_{len(self.prompts)}"

    async def start_run(self, conversation_id, tools):
        run_id = f"run_{len(self.runs) + 1}"
        self.runs[run_id] = {
            "status": "queued",
            "script": self.scripts[len(self.runs)],
            "items": [item for item in ITEMS if item in self.prompts[-1]],
        }
        return run_id

    async def get_run(self, conversation_id, run_id):
        run = self.runs[run_id]
        self.polls.append(run_id)
        step = run["script"].pop(0) if len(run["script"]) > 1 else run["script"][0]
        if isinstance(step, Exception):
            raise step
        run["status"] = step
        if step == "requires_action":
            return callback_run(run_id, run["items"], arguments=self.callback_arguments)
        return {"id": run_id, "status": step}

    async def acknowledge(self, conversation_id, run_id, call_ids):
        self.acknowledged.append(run_id)
        return {"id": run_id, "status": "queued"}

    async def list_messages(self, conversation_id, limit=10):
        return self.messages


def make_config(**overrides):
    values = dict(
        batch_size=3,
        batch_max_attempts=3,
        run_timeout=420,
        run_completion_timeout=120,
        run_poll_interval=2,
        inter_batch_delay=5,
        message_scan_limit=10,
    )
    values.update(overrides)
    return AnalysisSettings(**values)


class TestPartition:

    def test_splits_into_consecutive_batches(self):
        assert [len(b) for b in partition(ITEMS, 3)] == [3, 3, 1]

    def test_short_list_is_single_batch(self):
        assert partition(ITEMS[:2], 3) == [ITEMS[:2]]

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            partition(ITEMS, 0)


class TestAnalysisOrchestrator:

    @pytest.mark.asyncio
    async def test_seven_items_three_batches_with_retry(self, fake_clock):
        client = FakeConversationClient(fail_starts={2: 2})
        orchestrator = AnalysisOrchestrator(
            client, make_config(), sleep=fake_clock.sleep, clock=fake_clock
        )

        outcome = await orchestrator.analyze("vs_1", ITEMS)

        assert [r.item for r in outcome.results] == ITEMS
        assert all(r.status is ComplianceStatus.YES for r in outcome.results)
        assert outcome.conversation_id == "thread_1"
        assert outcome.batch_count == 3
        assert outcome.failed_batches == []
        # One conversation for every batch and attempt
        assert client.conversations == [["vs_1"]]
        # Inter-batch pauses around the two batch retries (10s, 20s)
        assert fake_clock.sleeps == [5, 10, 20, 5]
        assert all(call_ids == ["call_1"] for _, call_ids in client.acknowledged)

    @pytest.mark.asyncio
    async def test_batch_prompts_carry_batch_position(self, fake_clock):
        client = FakeConversationClient()
        orchestrator = AnalysisOrchestrator(
            client, make_config(), sleep=fake_clock.sleep, clock=fake_clock
        )

        await orchestrator.analyze("vs_1", ITEMS)

        assert "batch 1 of 3" in client.prompts[0]
        assert "batch 3 of 3" in client.prompts[2]
        assert "return_checklist_results" in client.prompts[0]

    @pytest.mark.asyncio
    async def test_exhausted_batch_gets_placeholders(self, fake_clock):
        client = FakeConversationClient(fail_starts={1: 5})
        orchestrator = AnalysisOrchestrator(
            client, make_config(), sleep=fake_clock.sleep, clock=fake_clock
        )

        outcome = await orchestrator.analyze("vs_1", ITEMS[:4])

        assert len(outcome.results) == 4
        assert outcome.failed_batches == [1]
        placeholders = outcome.results[:3]
        assert all(r.status is ComplianceStatus.NO for r in placeholders)
        assert all("after multiple retry attempts" in r.remarks for r in placeholders)
        assert "503" in placeholders[0].remarks
        assert outcome.results[3].status is ComplianceStatus.YES

    @pytest.mark.asyncio
    async def test_completed_run_without_callback_is_retried_then_placeholder(self, fake_clock):
        client = FakeConversationClient(mode="text_only")
        orchestrator = AnalysisOrchestrator(
            client, make_config(), sleep=fake_clock.sleep, clock=fake_clock
        )

        outcome = await orchestrator.analyze("vs_1", ITEMS[:2])

        assert outcome.failed_batches == [1]
        assert "No results returned from analysis backend" in outcome.results[0].remarks
        assert len(client.prompts) == 3

    @pytest.mark.asyncio
    async def test_run_timeout(self, fake_clock):
        client = FakeConversationClient(mode="running")
        orchestrator = AnalysisOrchestrator(
            client,
            make_config(run_timeout=10, batch_max_attempts=1),
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )

        outcome = await orchestrator.analyze("vs_1", ITEMS[:1])

        assert outcome.failed_batches == [1]
        assert "Run timed out after 10 seconds" in outcome.results[0].remarks
        assert set(fake_clock.sleeps) == {2}

    @pytest.mark.asyncio
    async def test_failed_run_reports_backend_error(self, fake_clock):
        client = FakeConversationClient(mode="failed")
        orchestrator = AnalysisOrchestrator(
            client,
            make_config(batch_max_attempts=1),
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )

        outcome = await orchestrator.analyze("vs_1", ITEMS[:1])

        assert "Run failed: server_error: boom" in outcome.results[0].remarks

    @pytest.mark.asyncio
    async def test_empty_items_rejected(self, fake_clock):
        orchestrator = AnalysisOrchestrator(
            FakeConversationClient(), make_config(), sleep=fake_clock.sleep, clock=fake_clock
        )

        with pytest.raises(ValidationError):
            await orchestrator.analyze("vs_1", [])


class TestRunLifecycle:

    @pytest.mark.asyncio
    async def test_poll_error_keeps_waiting_on_the_same_run(self, fake_clock):
        client = ScriptedConversationClient(
            [[TransientRemoteError("connection error while polling run"), "requires_action", "completed"]]
        )
        orchestrator = AnalysisOrchestrator(
            client, make_config(), sleep=fake_clock.sleep, clock=fake_clock
        )

        outcome = await orchestrator.analyze("vs_1", ITEMS[:3])

        assert client.rejected == []
        assert len(client.prompts) == 1
        assert outcome.failed_batches == []
        assert [r.item for r in outcome.results] == ITEMS[:3]
        assert client.acknowledged == ["run_1"]

    @pytest.mark.asyncio
    async def test_retry_waits_for_previous_run_before_posting(self, fake_clock):
        client = ScriptedConversationClient(
            [
                ["in_progress"] * 8 + ["completed"],
                ["requires_action", "completed"],
            ]
        )
        orchestrator = AnalysisOrchestrator(
            client, make_config(run_timeout=10), sleep=fake_clock.sleep, clock=fake_clock
        )

        outcome = await orchestrator.analyze("vs_1", ITEMS[:3])

        assert client.rejected == []
        assert len(client.prompts) == 2
        assert outcome.failed_batches == []
        assert [r.item for r in outcome.results] == ITEMS[:3]
        assert client.runs["run_1"]["status"] == "completed"
        # run_1 was polled to completion before run_2 existed
        assert client.polls.index("run_2") == 9

    @pytest.mark.asyncio
    async def test_unparseable_callback_falls_back_to_function_message(self, fake_clock):
        message = {
            "id": "msg_9",
            "role": "assistant",
            "content": [
                {
                    "type": "function",
                    "name": "return_checklist_results",
                    "arguments": results_arguments(ITEMS[:2], status="Partial"),
                }
            ],
        }
        client = ScriptedConversationClient(
            [["requires_action"] + ["in_progress"] * 6 + ["completed"]],
            messages=[message],
            callback_arguments="{not json",
        )
        orchestrator = AnalysisOrchestrator(
            client, make_config(run_poll_interval=30), sleep=fake_clock.sleep, clock=fake_clock
        )

        outcome = await orchestrator.analyze("vs_1", ITEMS[:2])

        assert outcome.failed_batches == []
        assert [r.item for r in outcome.results] == ITEMS[:2]
        assert all(r.status is ComplianceStatus.PARTIAL for r in outcome.results)
        assert client.acknowledged == ["run_1"]
        assert len(client.prompts) == 1
        # Waited 180s after acknowledging: past 120s, within the 420s run timeout
        assert fake_clock.sleeps == [30] * 6

    @pytest.mark.asyncio
    async def test_requires_action_after_acknowledgement_is_not_accepted(self, fake_clock):
        client = ScriptedConversationClient(
            [["requires_action", "requires_action", "in_progress", "completed"]]
        )
        orchestrator = AnalysisOrchestrator(
            client, make_config(), sleep=fake_clock.sleep, clock=fake_clock
        )

        outcome = await orchestrator.analyze("vs_1", ITEMS[:3])

        assert [r.item for r in outcome.results] == ITEMS[:3]
        assert client.acknowledged == ["run_1"]
        assert client.polls == ["run_1"] * 4
        assert fake_clock.sleeps == [2, 2]


class TestEvaluationOverBatches:

    @pytest.mark.asyncio
    async def test_seven_items_store_seven_results(
        self, evaluation_repository, document_repository, make_document, owner_id, fake_clock
    ):
        document = make_document(user_id=owner_id)
        document_repository.documents[document.id] = document
        items = [ChecklistItem(id=uuid.uuid4(), item_text=text, is_active=True) for text in ITEMS]
        checklists = AsyncMock()
        checklists.get_scheme.return_value = Scheme(id=uuid.uuid4(), name="PM-DevINE")
        checklists.get_document_type.return_value = DocumentType(id=uuid.uuid4(), name="DPR")
        checklists.get_items_in_order.return_value = items
        orchestrator = AnalysisOrchestrator(
            FakeConversationClient(fail_starts={2: 2}),
            make_config(),
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )
        service = EvaluationService(
            evaluation_repository,
            document_repository,
            checklists,
            orchestrator,
            EvaluationSettings(max_attempts=3),
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )

        evaluation = await service.create_evaluation(
            owner_id,
            scheme_id=uuid.uuid4(),
            document_type_id=uuid.uuid4(),
            checklist_item_ids=[item.id for item in items],
            document_id=document.id,
        )

        assert [r.checklist_item_id for r in evaluation.results] == [item.id for item in items]
        assert evaluation.summary_stats["total"] == 7
        assert fake_clock.sleeps == [5, 10, 20, 5]
        assert evaluation.processing_time >= sum(fake_clock.sleeps)
