"""Agent control loop tests."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.agent_models import ActionStatus, AgentStatus, ThoughtType
from core.control_loop import AgentController
from core.errors import ReasoningEngineError
from core.state_broadcaster import STATE_CHANGED, StateBroadcaster
from governance.usage_governor import UsageGovernor
from llm.base_llm import BaseLLM
from memory.consolidation.batch_learning import BatchLearningScheduler
from memory.consolidation.consolidator import MemoryConsolidationEngine
from memory.long_term import LongTermMemory
from memory.retrieval import MemoryContextLoader
from memory.stores.blob_store import FileBlobStore
from memory.stores.cache import ShortTermMemory
from memory.types import MemoryType
from messaging.command_processor import CommandProcessor
from messaging.memory_queue import InMemoryMessageQueue
from messaging.models import CommandType, HumanInput

PLAN = json.dumps(
    {
        "reasoning": "Start by reviewing what worked",
        "actions": [
            {"action": "Summarize past successes", "goal": "Find repeatable patterns"},
            {"action": "List open questions", "goal": "Plan next experiments"},
        ],
    }
)


class ScriptedLLM(BaseLLM):
    def __init__(self, plan: str = PLAN, fail_think: bool = False) -> None:
        self.plan = plan
        self.fail_think = fail_think
        self.prompts: list[str] = []
        self._lock = threading.Lock()

    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        prompt = messages[-1]["content"]
        with self._lock:
            self.prompts.append(prompt)
        if "Action to Execute:" in prompt:
            return "Reviewed the notes and found two patterns."
        if self.fail_think:
            raise ReasoningEngineError("engine overloaded")
        return self.plan


@dataclass
class Harness:
    controller: AgentController
    llm: ScriptedLLM
    governor: UsageGovernor
    broadcaster: StateBroadcaster
    queue: InMemoryMessageQueue
    long_term: LongTermMemory
    scheduler: BatchLearningScheduler
    stop: threading.Event


def build_harness(tmp_path: Path, llm: ScriptedLLM | None = None, **governor_kwargs: int) -> Harness:
    llm = llm or ScriptedLLM()
    short_term = ShortTermMemory(FileBlobStore(tmp_path / "short-term"))
    long_term = LongTermMemory(FileBlobStore(tmp_path / "long-term"))
    short_term.initialize()
    long_term.initialize()
    broadcaster = StateBroadcaster(short_term=short_term, long_term=long_term)
    governor = UsageGovernor(**governor_kwargs)
    queue = InMemoryMessageQueue()
    engine = MemoryConsolidationEngine(short_term, long_term, llm=llm, broadcaster=broadcaster)
    scheduler = BatchLearningScheduler(engine)
    controller = AgentController(
        llm=llm,
        broadcaster=broadcaster,
        governor=governor,
        commands=CommandProcessor(queue=queue),
        engine=engine,
        scheduler=scheduler,
        short_term=short_term,
        long_term=long_term,
        context_loader=MemoryContextLoader(long_term),
        loop_config={"initial_prompt": "Improve your note-taking."},
    )
    stop = threading.Event()
    stop.set()  # every wait returns immediately
    return Harness(controller, llm, governor, broadcaster, queue, long_term, scheduler, stop)


def test_iteration_thinks_acts_and_records_usage(tmp_path: Path) -> None:
    h = build_harness(tmp_path)

    assert h.controller.run_once(h.stop) == "completed"
    h.broadcaster.drain(timeout=10)

    state = h.controller.get_state()
    assert state.status == AgentStatus.IDLE
    assert [t.type for t in state.recent_thoughts] == [ThoughtType.OBSERVATION, ThoughtType.REASONING]
    assert state.recent_thoughts[0].content == "Improve your note-taking."
    assert len(state.recent_actions) == 2
    assert all(a.status == ActionStatus.COMPLETED for a in state.recent_actions)
    assert all(a.output and a.output.startswith("Completed:") for a in state.recent_actions)
    assert state.current_goal == "Find repeatable patterns"

    think_prompt = h.llm.prompts[0]
    assert "Your current directive is: Improve your note-taking." in think_prompt
    assert "YOUR ACCUMULATED KNOWLEDGE (0 memories loaded)" in think_prompt

    stats = h.governor.get_today_stats()
    assert stats.loop_count == 1
    assert stats.estimated_tokens > 0
    assert h.controller.iteration_count == 1
    assert h.controller.short_term.get("last-think-time") is not None
    h.broadcaster.shutdown()


def test_plan_without_goals_keeps_operator_goal(tmp_path: Path) -> None:
    plan = json.dumps(
        {
            "reasoning": "Keep going",
            "actions": [{"action": "Tidy notes"}, {"action": "Archive drafts"}],
        }
    )
    h = build_harness(tmp_path, llm=ScriptedLLM(plan=plan))
    h.controller.set_goal("Ship the weekly report")

    h.controller.run_once(h.stop)

    state = h.controller.get_state()
    assert len(state.recent_actions) == 2
    assert state.current_goal == "Ship the weekly report"
    h.broadcaster.shutdown()


def test_plan_goal_is_set_once_from_first_named_goal(tmp_path: Path) -> None:
    plan = json.dumps(
        {
            "reasoning": "Split the work",
            "actions": [
                {"action": "Draft outline"},
                {"action": "Collect figures", "goal": "Publish findings"},
                {"action": "Review tone", "goal": "Polish wording"},
            ],
        }
    )
    h = build_harness(tmp_path, llm=ScriptedLLM(plan=plan))
    goals: list[str] = []
    h.broadcaster.event_bus.subscribe(
        STATE_CHANGED, lambda payload: goals.append(payload["state"].current_goal)
    )

    h.controller.run_once(h.stop)

    assert h.controller.get_state().current_goal == "Publish findings"
    assert set(goals) <= {"", "Publish findings"}
    h.broadcaster.shutdown()


def test_denied_iteration_throttles_without_thinking(tmp_path: Path) -> None:
    h = build_harness(tmp_path, max_loops_per_day=1)
    h.governor.record_loop()

    assert h.controller.run_once(h.stop) == "throttled"
    assert h.controller.get_state().status == AgentStatus.THROTTLED
    assert h.controller.backoff.consecutive_denials == 1
    assert h.llm.prompts == []
    assert h.controller.iteration_count == 0

    h.controller.run_once(h.stop)
    assert h.controller.backoff.consecutive_denials == 2
    h.broadcaster.shutdown()


def test_paused_agent_only_drains_commands(tmp_path: Path) -> None:
    h = build_harness(tmp_path)
    h.controller.pause()

    assert h.controller.run_once(h.stop) == "paused"
    assert h.llm.prompts == []
    assert h.controller.get_state().status == AgentStatus.PAUSED

    h.queue.send(HumanInput(type=CommandType.RESUME_AGENT).model_dump_json())
    assert h.controller.run_once(h.stop) == "completed"
    assert h.llm.prompts
    h.broadcaster.shutdown()


def test_pause_then_resume_in_one_batch_keeps_running(tmp_path: Path) -> None:
    h = build_harness(tmp_path)
    h.queue.send(HumanInput(type=CommandType.PAUSE_AGENT).model_dump_json())
    h.queue.send(HumanInput(type=CommandType.RESUME_AGENT).model_dump_json())

    assert h.controller.run_once(h.stop) == "completed"
    assert h.controller.paused is False
    h.broadcaster.shutdown()


def test_prompt_update_applies_before_thinking(tmp_path: Path) -> None:
    h = build_harness(tmp_path)
    h.queue.send(
        HumanInput(type=CommandType.UPDATE_PROMPT, content="Study the logs.").model_dump_json()
    )

    h.controller.run_once(h.stop)
    assert "Your current directive is: Study the logs." in h.llm.prompts[0]
    assert h.controller.get_state().current_prompt == "Study the logs."
    h.broadcaster.shutdown()


def test_batch_learning_at_iteration_threshold_resets_counter(tmp_path: Path) -> None:
    h = build_harness(tmp_path)
    statuses: list[AgentStatus] = []
    h.broadcaster.event_bus.subscribe(
        STATE_CHANGED, lambda payload: statuses.append(payload["state"].status)
    )
    h.controller.iteration_count = 100
    before = h.scheduler.last_run

    h.controller.run_once(h.stop)

    assert h.scheduler.last_run >= before
    assert statuses[:2] == [AgentStatus.PAUSED, AgentStatus.IDLE]
    assert h.controller.iteration_count == 1
    h.broadcaster.shutdown()


def test_manual_batch_learning_restores_prior_status(tmp_path: Path) -> None:
    h = build_harness(tmp_path)
    h.broadcaster.update_status(AgentStatus.THROTTLED)
    h.controller.iteration_count = 42

    result = h.controller.pause_and_run_batch_learning()

    assert result["skipped"] is False
    assert h.controller.get_state().status == AgentStatus.THROTTLED
    assert h.controller.iteration_count == 0
    h.broadcaster.shutdown()


def test_reasoning_failure_is_remembered_and_loop_continues(tmp_path: Path) -> None:
    h = build_harness(tmp_path, llm=ScriptedLLM(fail_think=True))

    assert h.controller.run_once(h.stop) == "completed"

    errors = [
        entry
        for entry in h.long_term.by_type(MemoryType.ERROR)
        if "reasoning-engine" in entry.tags
    ]
    assert len(errors) == 1
    assert errors[0].importance == 0.7
    assert "engine overloaded" in errors[0].content
    assert h.controller.get_state().status == AgentStatus.IDLE
    assert h.governor.get_today_stats().loop_count == 1
    h.broadcaster.shutdown()


def test_unparsable_plan_becomes_reflection(tmp_path: Path) -> None:
    h = build_harness(tmp_path, llm=ScriptedLLM(plan="I am not sure what to do yet."))

    h.controller.run_once(h.stop)

    state = h.controller.get_state()
    assert state.recent_thoughts[-1].type == ThoughtType.REFLECTION
    assert state.recent_thoughts[-1].content == "I am not sure what to do yet."
    assert state.recent_actions == []
    h.broadcaster.shutdown()


def test_loop_survives_iteration_errors(tmp_path: Path) -> None:
    h = build_harness(tmp_path)
    stop = threading.Event()
    calls: list[int] = []

    def exploding_run_once(_: threading.Event | None = None) -> str:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        stop.set()
        return "completed"

    h.controller.error_delay = 0
    h.controller.run_once = exploding_run_once  # type: ignore[method-assign]
    h.controller.run(stop)

    assert len(calls) == 2
    assert h.controller.get_state().status == AgentStatus.ERROR
    h.broadcaster.shutdown()
