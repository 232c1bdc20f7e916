"""Drains operator commands and dispatches them to the agent controller."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from datetime import timedelta
from typing import Any

from pydantic import ValidationError

from core.errors import CommandRejected
from governance.audit_logger import AuditLogger
from messaging.base_queue import MessageQueue
from messaging.models import (
    FOREIGN_COMMANDS,
    CommandResponse,
    CommandType,
    HumanInput,
    QueueMessage,
)

logger = logging.getLogger("autoloop.commands")


class CommandProcessor:
    """Applies steering commands from the durable queue and local submissions.

    Delivery is at-least-once: a message is deleted only after its handler
    finished or failed terminally, and ids of applied commands are remembered
    so a redelivered copy is acknowledged without being re-applied.
    """

    def __init__(
        self,
        queue: MessageQueue | None = None,
        audit_logger: AuditLogger | None = None,
        batch_size: int = 10,
        visibility_timeout: timedelta = timedelta(seconds=60),
        max_dequeue_count: int = 5,
        processed_cache_size: int = 1000,
    ) -> None:
        self.queue = queue
        self.audit_logger = audit_logger
        self.batch_size = batch_size
        self.visibility_timeout = visibility_timeout
        self.max_dequeue_count = max_dequeue_count
        self.processed_cache_size = processed_cache_size
        self._local: deque[HumanInput] = deque()
        self._local_lock = threading.Lock()
        self._processed: OrderedDict[str, None] = OrderedDict()

    # ── Submission ───────────────────────────────────────────────────

    def submit(self, command: HumanInput) -> str:
        """Queue a command in-process; applied on the next drain."""
        with self._local_lock:
            self._local.append(command)
        logger.info("Received command %s: %s", command.type.value, command.content[:100])
        return command.id

    def send(self, command: HumanInput) -> str:
        """Publish a command to the durable queue."""
        if self.queue is None:
            return self.submit(command)
        self.queue.send(command.model_dump_json())
        logger.info("Enqueued command %s (%s)", command.id, command.type.value)
        return command.id

    # ── Draining ─────────────────────────────────────────────────────

    def process_pending(self, controller: Any) -> list[CommandResponse]:
        """Apply queued commands, then local submissions, in arrival order."""
        responses: list[CommandResponse] = []
        if self.queue is not None:
            responses.extend(self._process_queue(controller))
        while True:
            with self._local_lock:
                if not self._local:
                    break
                command = self._local.popleft()
            responses.append(self._apply(command, controller, from_queue=False))
        return responses

    def _process_queue(self, controller: Any) -> list[CommandResponse]:
        if self.queue is None:
            return []
        try:
            messages = self.queue.receive(self.batch_size, self.visibility_timeout)
        except Exception:
            logger.exception("Error receiving messages from the command queue")
            return []

        responses: list[CommandResponse] = []
        for message in messages:
            try:
                response = self._process_message(message, controller)
            except Exception:
                # Left in the queue; it becomes visible again after the lease.
                logger.exception("Error processing queued message %s", message.message_id)
                continue
            if response is not None:
                responses.append(response)
        return responses

    def _process_message(self, message: QueueMessage, controller: Any) -> CommandResponse | None:
        if message.dequeue_count > self.max_dequeue_count:
            logger.error(
                "Message %s exceeded max delivery count (%d); discarding: %s",
                message.message_id,
                self.max_dequeue_count,
                message.content[:200],
            )
            self._delete(message)
            return None

        try:
            command = HumanInput.model_validate_json(message.content)
        except ValidationError as exc:
            logger.error("Discarding undecodable message %s: %s", message.message_id, exc)
            self._delete(message)
            return None

        logger.info(
            "Processing queued command %s (delivery %d)", command.type.value, message.dequeue_count
        )
        if command.type in FOREIGN_COMMANDS:
            logger.warning(
                "%s command does not belong to the agent loop; removing it", command.type.value
            )
            self._delete(message)
            return None

        response = self._apply(command, controller, from_queue=True)
        if response.success or response.data.get("terminal"):
            self._delete(message)
        return response

    def _delete(self, message: QueueMessage) -> None:
        if self.queue is None:
            return
        try:
            self.queue.delete(message.message_id, message.pop_receipt)
        except Exception:
            logger.exception("Failed to delete message %s", message.message_id)

    # ── Dispatch ─────────────────────────────────────────────────────

    def _apply(self, command: HumanInput, controller: Any, from_queue: bool) -> CommandResponse:
        if command.id in self._processed:
            logger.info("Command %s already applied; skipping duplicate", command.id)
            return CommandResponse(
                id=command.id, success=True, message="Duplicate command ignored"
            )
        try:
            response = self.dispatch(command, controller)
        except CommandRejected as exc:
            logger.warning("Command %s rejected: %s", command.id, exc)
            response = CommandResponse(
                id=command.id, success=False, message=str(exc), data={"terminal": True}
            )
            self._remember(command.id)
            self._audit(command, response, "rejected")
            return response
        except Exception as exc:
            logger.exception("Error processing command %s", command.id)
            response = CommandResponse(id=command.id, success=False, message=f"Error: {exc}")
            if not from_queue:
                self._remember(command.id)
            self._audit(command, response, "failed")
            return response

        command.processed = True
        self._remember(command.id)
        self._audit(command, response, "applied")
        return response

    def _remember(self, command_id: str) -> None:
        self._processed[command_id] = None
        self._processed.move_to_end(command_id)
        while len(self._processed) > self.processed_cache_size:
            self._processed.popitem(last=False)

    def _audit(self, command: HumanInput, response: CommandResponse, outcome: str) -> None:
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.log(
                command_id=command.id,
                command_type=command.type.value,
                content=command.content,
                outcome=outcome,
                success=response.success,
                reason=response.message,
            )
        except OSError:
            logger.exception("Failed to write audit record for %s", command.id)

    def dispatch(self, command: HumanInput, controller: Any) -> CommandResponse:
        """Route one command to the controller. Handlers are idempotent."""
        logger.info("Dispatching command %s", command.type.value)
        kind = command.type

        if kind == CommandType.UPDATE_PROMPT:
            if not command.content.strip():
                raise CommandRejected("UpdatePrompt requires non-empty content")
            controller.update_prompt(command.content)
            return CommandResponse(id=command.id, success=True, message="Prompt updated successfully")

        if kind == CommandType.PAUSE_AGENT:
            controller.pause()
            return CommandResponse(id=command.id, success=True, message="Agent paused")

        if kind == CommandType.RESUME_AGENT:
            controller.resume()
            return CommandResponse(id=command.id, success=True, message="Agent resumed")

        if kind == CommandType.TRIGGER_BATCH_LEARNING:
            result = controller.pause_and_run_batch_learning()
            return CommandResponse(
                id=command.id, success=True, message="Batch learning triggered", data=result or {}
            )

        if kind == CommandType.TRIGGER_MEMORY_CONSOLIDATION:
            result = controller.consolidate_memory()
            return CommandResponse(
                id=command.id,
                success=True,
                message="Memory consolidation triggered",
                data=result or {},
            )

        if kind == CommandType.ADD_GOAL:
            if not command.content.strip():
                raise CommandRejected("AddGoal requires a goal description")
            controller.set_goal(command.content)
            return CommandResponse(id=command.id, success=True, message="Goal updated")

        if kind == CommandType.REMOVE_GOAL:
            controller.set_goal("")
            return CommandResponse(id=command.id, success=True, message="Goal cleared")

        if kind == CommandType.QUERY_STATE:
            state = controller.get_state()
            return CommandResponse(
                id=command.id,
                success=True,
                message="Current state retrieved",
                data={"state": state.model_dump(mode="json")},
            )

        if kind in FOREIGN_COMMANDS:
            return CommandResponse(
                id=command.id,
                success=False,
                message=f"{kind.value} is handled by another service",
            )

        raise CommandRejected(f"Unknown command type: {kind}")
