"""Top-level application orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from core.agent_host import AgentHost
from core.control_loop import AgentController
from core.errors import ConfigurationError
from core.event_bus import EventBus
from core.policy_runtime import ensure_runtime_dirs, load_effective_config
from core.resilience import storage_policy
from core.state_broadcaster import StateBroadcaster
from governance.audit_logger import AuditLogger
from governance.usage_governor import UsageGovernor
from llm.base_llm import BaseLLM
from llm.llm_factory import build_llm
from memory.consolidation.batch_learning import BatchLearningScheduler
from memory.consolidation.consolidator import MemoryConsolidationEngine
from memory.consolidation.forgetting import ForgettingPolicy
from memory.long_term import LongTermMemory
from memory.retrieval import MemoryContextLoader
from memory.stores.blob_store import FileBlobStore
from memory.stores.cache import ShortTermMemory
from memory.stores.object_store import ObjectStore
from memory.stores.resilient_store import ResilientObjectStore
from memory.stores.sql_store import SQLObjectStore, SQLStore
from messaging.command_processor import CommandProcessor
from messaging.sql_queue import SQLMessageQueue

SHORT_TERM_CONTAINER = "short-term"
LONG_TERM_CONTAINER = "long-term"


@dataclass
class RuntimeBundle:
    """Holds initialized runtime components."""

    config: dict[str, Any]
    paths: dict[str, Path]
    llm: BaseLLM
    short_term: ShortTermMemory
    long_term: LongTermMemory
    governor: UsageGovernor
    broadcaster: StateBroadcaster
    commands: CommandProcessor
    engine: MemoryConsolidationEngine
    scheduler: BatchLearningScheduler
    controller: AgentController
    host: AgentHost


class Orchestrator:
    """Creates and wires runtime components for CLI use."""

    def __init__(self, root: Path | None = None) -> None:
        default_root = Path(__file__).resolve().parents[1]
        self.root = (root or default_root).resolve()
        self._sql_store: SQLStore | None = None

    def load_config(self) -> tuple[dict[str, Any], dict[str, Path]]:
        config = load_effective_config(self.root)
        return config, ensure_runtime_dirs(self.root, config)

    def _sql(self, paths: dict[str, Path]) -> SQLStore:
        if self._sql_store is None:
            self._sql_store = SQLStore(paths["db_path"])
            self._sql_store.create_all()
        return self._sql_store

    def build_queue(
        self, config: dict[str, Any] | None = None, paths: dict[str, Path] | None = None
    ) -> SQLMessageQueue:
        """Durable command queue shared by the agent process and the CLI."""
        if config is None or paths is None:
            config, paths = self.load_config()
        queue_name = config.get("commands", {}).get("queue_name", "human-input")
        return SQLMessageQueue(self._sql(paths), queue_name=queue_name, policy=storage_policy(config))

    def build_object_store(
        self, config: dict[str, Any], paths: dict[str, Path], container: str
    ) -> ObjectStore:
        backend = config.get("memory", {}).get("backend", "file")
        inner: ObjectStore
        if backend == "file":
            inner = FileBlobStore(paths["memory_dir"] / container)
        elif backend == "sql":
            inner = SQLObjectStore(self._sql(paths), container=container)
        else:
            raise ConfigurationError(f"Unknown memory backend: {backend!r}")
        return ResilientObjectStore(inner, storage_policy(config))

    def build_memory(
        self, config: dict[str, Any] | None = None, paths: dict[str, Path] | None = None
    ) -> tuple[ShortTermMemory, LongTermMemory]:
        if config is None or paths is None:
            config, paths = self.load_config()
        memory_cfg = config.get("memory", {})
        short_term = ShortTermMemory(self.build_object_store(config, paths, SHORT_TERM_CONTAINER))
        long_term = LongTermMemory(
            self.build_object_store(config, paths, LONG_TERM_CONTAINER),
            lookup_window_days=int(memory_cfg.get("lookup_window_days", 30)),
            search_window_days=int(memory_cfg.get("search_window_days", 90)),
        )
        short_term.initialize()
        long_term.initialize()
        return short_term, long_term

    def build(self, llm: BaseLLM | None = None) -> RuntimeBundle:
        config, paths = self.load_config()
        short_term, long_term = self.build_memory(config, paths)
        llm = llm or build_llm(config=config)

        usage_cfg = config.get("usage", {})
        governor = UsageGovernor(
            max_loops_per_day=int(usage_cfg.get("max_loops_per_day", 4000)),
            max_tokens_per_day=int(usage_cfg.get("max_tokens_per_day", 8_000_000)),
            retention_days=int(usage_cfg.get("retention_days", 7)),
        )

        state_cfg = config.get("state", {})
        broadcaster = StateBroadcaster(
            short_term=short_term,
            long_term=long_term,
            event_bus=EventBus(),
            max_thoughts=int(state_cfg.get("max_thoughts", 100)),
            max_actions=int(state_cfg.get("max_actions", 50)),
            snapshot_thoughts=int(state_cfg.get("snapshot_thoughts", 20)),
            snapshot_actions=int(state_cfg.get("snapshot_actions", 10)),
            item_ttl=timedelta(hours=float(state_cfg.get("item_ttl_hours", 24))),
            state_ttl=timedelta(hours=float(state_cfg.get("state_ttl_hours", 1))),
        )

        commands_cfg = config.get("commands", {})
        commands = CommandProcessor(
            queue=self.build_queue(config, paths),
            audit_logger=AuditLogger(paths["audit_log_path"]),
            batch_size=int(commands_cfg.get("batch_size", 10)),
            visibility_timeout=timedelta(
                seconds=float(commands_cfg.get("visibility_timeout_seconds", 60))
            ),
            max_dequeue_count=int(commands_cfg.get("max_dequeue_count", 5)),
            processed_cache_size=int(commands_cfg.get("processed_cache_size", 1000)),
        )

        consolidation_cfg = config.get("consolidation", {})
        engine = MemoryConsolidationEngine(
            short_term=short_term,
            long_term=long_term,
            llm=llm,
            broadcaster=broadcaster,
            promotion_threshold=float(consolidation_cfg.get("promotion_threshold", 0.5)),
            min_group_size=int(consolidation_cfg.get("min_group_size", 3)),
            forgetting=self._forgetting(config),
            eviction_window_days=int(config.get("memory", {}).get("search_window_days", 90)),
            marker_ttl=broadcaster.item_ttl,
        )
        scheduler = BatchLearningScheduler(
            engine,
            iteration_threshold=int(consolidation_cfg.get("batch_iterations", 100)),
            interval=timedelta(hours=float(consolidation_cfg.get("batch_interval_hours", 4))),
            cleanup_interval=timedelta(
                hours=float(consolidation_cfg.get("cleanup_interval_hours", 24))
            ),
        )

        memory_cfg = config.get("memory", {})
        context_loader = MemoryContextLoader(
            long_term,
            top_n=int(memory_cfg.get("context_top_n", 20)),
            refresh_iterations=int(memory_cfg.get("refresh_iterations", 10)),
            refresh_interval=timedelta(minutes=float(memory_cfg.get("refresh_minutes", 60))),
        )

        controller = AgentController(
            llm=llm,
            broadcaster=broadcaster,
            governor=governor,
            commands=commands,
            engine=engine,
            scheduler=scheduler,
            short_term=short_term,
            long_term=long_term,
            context_loader=context_loader,
            loop_config=config.get("agent", {}),
        )
        host = AgentHost.from_config(controller, engine, broadcaster, config)

        return RuntimeBundle(
            config=config,
            paths=paths,
            llm=llm,
            short_term=short_term,
            long_term=long_term,
            governor=governor,
            broadcaster=broadcaster,
            commands=commands,
            engine=engine,
            scheduler=scheduler,
            controller=controller,
            host=host,
        )

    @staticmethod
    def _forgetting(config: dict[str, Any]) -> ForgettingPolicy:
        cfg = config.get("forgetting", {})
        return ForgettingPolicy(
            stale_after=timedelta(days=float(cfg.get("stale_after_days", 30))),
            min_access_count=int(cfg.get("min_access_count", 3)),
            min_importance=float(cfg.get("min_importance", 0.3)),
            error_resolved_after=timedelta(days=float(cfg.get("error_resolved_after_days", 7))),
        )
