"""Agent control loop: drain commands → govern → think → act → sleep → repeat.

The loop runs until its stop event is set. Every wait goes through the stop
event so cancellation interrupts sleeps promptly. A failed iteration flips the
status to Error and the loop recovers after a fixed delay.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from typing import Any

from core.agent_models import (
    ActionStatus,
    AgentAction,
    AgentState,
    AgentStatus,
    AgentThought,
    ThoughtType,
)
from core.state_broadcaster import StateBroadcaster
from governance.usage_governor import ThrottleBackoff, UsageGovernor
from llm.base_llm import BaseLLM, Conversation
from llm.prompt_engine.memory_injection import build_memory_context
from llm.response_parsing import PlannedAction, parse_action_plan
from memory.consolidation.batch_learning import BatchLearningScheduler
from memory.consolidation.consolidator import MemoryConsolidationEngine
from memory.long_term import LongTermMemory
from memory.retrieval import MemoryContextLoader
from memory.stores.cache import ShortTermMemory
from memory.types import MemoryEntry, MemoryType
from messaging.command_processor import CommandProcessor

logger = logging.getLogger("autoloop.control_loop")

DEFAULT_PROMPT = "You are an autonomous AI agent. Think about how to improve yourself."
DEFAULT_GOAL = "General exploration"
FALLBACK_TOKEN_ESTIMATE = 2000

# ── LLM prompts ──────────────────────────────────────────────────────

_THINK_PROMPT = """\
You are an autonomous agent. Your current directive is: {directive}
Current goal: {goal}

IMPORTANT: Your memory from previous iterations is preserved below. Build upon
this knowledge - don't start from scratch.

## YOUR ACCUMULATED KNOWLEDGE ({count} memories loaded):
{memory_context}

Think about what you should do next based on your accumulated knowledge.
Use the tools available to you when they would be helpful.

When making decisions, consider:
1. What you've learned from previous iterations
2. What worked well in the past (successes)
3. What insights you've gained (learnings and reflections)
4. How to build incrementally on existing knowledge

Respond with a JSON object containing:
- reasoning: your thought process
- actions: the action(s) you will take, as an array of objects with
    - action: the action to perform
    - goal: what you're trying to achieve
    - extra (optional): any additional information

Example:
{{
  "reasoning": "Based on my previous learning about X, I should now explore Y.",
  "actions": [{{
    "action": "Search for Y implementations",
    "goal": "Build on my understanding of X by learning about Y",
    "extra": "Extends what I learned about X"
  }}]
}}
"""

_ACTION_PROMPT = """\
You are an autonomous AI agent executing an action based on your previous reasoning.

Current Goal: {goal}

Reasoning: {reasoning}

Action to Execute: {action}

{extra}

Execute this action, using the available tools when appropriate.

Provide:
1. Steps you took to complete the action (mention any tools used)
2. Any observations or insights gained
3. Challenges encountered (if any)
4. Next steps or recommendations
"""


def estimate_tokens(*texts: str) -> int:
    """Rough token estimate: four characters per token."""
    chars = sum(len(text) for text in texts)
    return chars // 4


class AgentController:
    """Top-level state machine sequencing the governor, queue, memory and engine."""

    def __init__(
        self,
        llm: BaseLLM,
        broadcaster: StateBroadcaster,
        governor: UsageGovernor,
        commands: CommandProcessor,
        engine: MemoryConsolidationEngine,
        scheduler: BatchLearningScheduler,
        short_term: ShortTermMemory,
        long_term: LongTermMemory,
        context_loader: MemoryContextLoader,
        loop_config: dict[str, Any] | None = None,
    ) -> None:
        cfg = loop_config or {}
        self.llm = llm
        self.broadcaster = broadcaster
        self.governor = governor
        self.commands = commands
        self.engine = engine
        self.scheduler = scheduler
        self.short_term = short_term
        self.long_term = long_term
        self.context_loader = context_loader
        self.loop_interval = float(cfg.get("interval_seconds", 5))
        self.paused_poll = float(cfg.get("paused_poll_seconds", 5))
        self.error_delay = float(cfg.get("error_delay_seconds", 10))
        self.max_parallel_actions = max(1, int(cfg.get("max_parallel_actions", 4)))
        self.heartbeat_ttl = timedelta(hours=float(cfg.get("heartbeat_ttl_hours", 1)))
        self.backoff = ThrottleBackoff(max_minutes=float(cfg.get("max_backoff_minutes", 60)))
        self.conversation = Conversation(max_messages=int(cfg.get("conversation_messages", 20)))
        self.current_prompt = str(cfg.get("initial_prompt") or DEFAULT_PROMPT)
        self.iteration_count = 0
        self._paused = threading.Event()
        self._stop_event = threading.Event()
        self.broadcaster.update_prompt(self.current_prompt)

    # ── Operator commands (all idempotent) ───────────────────────────

    def update_prompt(self, prompt: str) -> None:
        self.current_prompt = prompt
        self.broadcaster.update_prompt(prompt)
        logger.info("Prompt updated: %s", prompt[:200])

    def pause(self) -> None:
        self._paused.set()
        self.broadcaster.update_status(AgentStatus.PAUSED)
        logger.info("Agent paused")

    def resume(self) -> None:
        self._paused.clear()
        self.broadcaster.update_status(AgentStatus.IDLE)
        logger.info("Agent resumed")

    @property
    def paused(self) -> bool:
        return self._paused.is_set()

    def set_goal(self, goal: str) -> None:
        self.broadcaster.update_goal(goal)
        logger.info("Goal set: %s", goal or "(cleared)")

    def get_state(self) -> AgentState:
        return self.broadcaster.get_current_state()

    def pause_and_run_batch_learning(self) -> dict[str, Any]:
        """Run batch learning with status Paused, then restore the prior status."""
        prior = self.broadcaster.status
        logger.info("Pausing agent loop for batch learning")
        self.broadcaster.update_status(AgentStatus.PAUSED)
        try:
            result = self.scheduler.run()
            self.iteration_count = 0
        finally:
            self.broadcaster.update_status(prior)
        logger.info("Batch learning complete, resuming agent loop")
        return result

    def consolidate_memory(self) -> dict[str, Any]:
        return self.engine.consolidate_short_term()

    # ── Main loop ────────────────────────────────────────────────────

    def stop(self) -> None:
        self._stop_event.set()

    def run(self, stop_event: threading.Event | None = None) -> None:
        """Loop until stopped. A single failure never ends the loop."""
        stop = stop_event or self._stop_event
        self._stop_event = stop
        logger.info("Autonomous agent started")
        self.context_loader.load()
        logger.info("Today's usage: %s", self.governor.get_today_stats())

        while not stop.is_set():
            try:
                self.run_once(stop)
            except Exception:
                logger.exception("Error in agent loop")
                self.broadcaster.update_status(AgentStatus.ERROR)
                stop.wait(self.error_delay)

        logger.info("Agent stopped. Final usage: %s", self.governor.get_today_stats())

    def run_once(self, stop: threading.Event | None = None) -> str:
        """Execute one iteration and return how it ended."""
        stop = stop or self._stop_event
        self.commands.process_pending(self)

        if self.paused:
            stop.wait(self.paused_poll)
            return "paused"

        if self.scheduler.should_run(self.iteration_count):
            self.pause_and_run_batch_learning()

        allowed, reason = self.governor.can_execute_loop()
        if not allowed:
            logger.warning("Agent throttled: %s", reason)
            self.broadcaster.update_status(AgentStatus.THROTTLED)
            delay = self.backoff.next_delay()
            logger.info(
                "Waiting %.0f minutes before retry (attempt %d)",
                delay.total_seconds() / 60,
                self.backoff.consecutive_denials,
            )
            stop.wait(delay.total_seconds())
            return "throttled"

        self.backoff.reset()
        tokens = self.think_and_act()

        if self.context_loader.due(self.iteration_count):
            self.context_loader.load()

        self.governor.record_loop(tokens or FALLBACK_TOKEN_ESTIMATE)
        self.iteration_count += 1
        stop.wait(self.loop_interval)
        return "completed"

    # ── THINK ────────────────────────────────────────────────────────

    def _heartbeat(self) -> None:
        try:
            self.short_term.set("last-think-time", datetime.now(UTC).isoformat(), self.heartbeat_ttl)
        except Exception as exc:
            logger.warning("Failed to record heartbeat: %s", exc)

    def build_prompt(self) -> str:
        memories = self.context_loader.memories
        goal = self.broadcaster.get_current_state().current_goal or DEFAULT_GOAL
        return _THINK_PROMPT.format(
            directive=self.current_prompt,
            goal=goal,
            count=len(memories),
            memory_context=build_memory_context(memories),
        )

    def think_and_act(self) -> int:
        """One think step plus its planned actions; returns estimated tokens."""
        self.broadcaster.update_status(AgentStatus.THINKING)
        self._heartbeat()
        self.broadcaster.add_thought(
            AgentThought(type=ThoughtType.OBSERVATION, content=self.current_prompt)
        )
        logger.info("Agent observed: %s", self.current_prompt[:200])

        prompt = self.build_prompt()
        try:
            result = self.llm.ask(prompt, self.conversation)
        except Exception as exc:
            logger.error("Error during thinking process: %s", exc)
            self._remember_failure(exc)
            self.broadcaster.update_status(AgentStatus.IDLE)
            return estimate_tokens(prompt)

        if result.tool_invocations:
            logger.info(
                "Reasoning used %d tool(s): %s",
                len(result.tool_invocations),
                ", ".join(item.name for item in result.tool_invocations),
            )
        self.broadcaster.add_thought(
            AgentThought(
                type=ThoughtType.REASONING,
                content=result.text,
                tool_invocations=result.tool_invocations,
            )
        )
        tokens = estimate_tokens(prompt, result.text)
        tokens += self._act(result.text)
        return tokens

    def _remember_failure(self, exc: Exception) -> None:
        entry = MemoryEntry(
            type=MemoryType.ERROR,
            content=f"Error during thinking: {exc}",
            summary="Reasoning engine error",
            importance=0.7,
            tags=["error", "reasoning-engine"],
        )
        try:
            self.long_term.store(entry)
        except Exception as store_exc:
            logger.warning("Could not record reasoning failure in memory: %s", store_exc)

    # ── ACT ──────────────────────────────────────────────────────────

    def _act(self, response: str) -> int:
        self.broadcaster.update_status(AgentStatus.ACTING)
        plan = parse_action_plan(response)
        if plan is None:
            preview = response if len(response) <= 200 else response[:200] + "..."
            logger.warning("Failed to parse action response as a plan: %s", preview)
            self.broadcaster.add_thought(AgentThought(type=ThoughtType.REFLECTION, content=response))
            self.broadcaster.update_status(AgentStatus.IDLE)
            return 0

        planned = [item for item in plan.actions if item.action.strip()]
        named_goal = next((item.goal for item in planned if item.goal), None)
        if named_goal:
            self.broadcaster.update_goal(named_goal)
        tokens = 0
        if planned:
            workers = min(self.max_parallel_actions, len(planned))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="agent-action") as pool:
                for used in pool.map(lambda item: self._execute(plan.reasoning, item), planned):
                    tokens += used
        self.broadcaster.update_status(AgentStatus.IDLE)
        return tokens

    def _execute(self, reasoning: str, planned: PlannedAction) -> int:
        goal = planned.goal or DEFAULT_GOAL
        action = AgentAction(
            name="ExecutePlan",
            description=planned.action,
            input=f"{reasoning} : {goal}\n{planned.extra or ''}",
            status=ActionStatus.RUNNING,
        )
        self.broadcaster.add_action(action)
        prompt = _ACTION_PROMPT.format(
            goal=goal, reasoning=reasoning, action=planned.action, extra=planned.extra or ""
        )
        try:
            result = self.llm.ask(prompt, self.conversation)
        except Exception as exc:
            failed = action.model_copy(
                update={"status": ActionStatus.FAILED, "output": f"Error: {exc}"}
            )
            self.broadcaster.update_action(failed)
            logger.error("Error executing action %s: %s", planned.action, exc)
            return estimate_tokens(prompt)

        completed = action.model_copy(
            update={
                "status": ActionStatus.COMPLETED,
                "output": f"Completed: {result.text}",
                "tool_invocations": result.tool_invocations,
            }
        )
        self.broadcaster.update_action(completed)
        logger.info("Action completed: %s", planned.action)
        return estimate_tokens(prompt, result.text)
