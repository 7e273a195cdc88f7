"""
Engine Orchestration Module

This module provides the unified interface for coordinating the
polygenea layers while maintaining strict boundary separation.

DATA FLOW:
==========
text -> canonical parse -> node construction (references resolved
through the store) -> store index -> rule engine reads claims from the
store, applies rules, and feeds derived nodes back into the store

DESIGN PRINCIPLES:
==================
1. Layers communicate ONLY through contracts
2. Engine orchestrates flow without creating coupling
3. All store mutations are traceable through the audit log
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from uuid import UUID
import logging
import os

from .canonical.parser import ParserConfig, SetPolicy
from .contracts.base import AuditLogEntry, ConfigurationError, ValidationIssue
from .inference import Derivation, InferenceConfig, RuleEngine
from .nodes import InferenceRule, Node
from .storage import GraphStore, GraphStoreConfig

logger = logging.getLogger(__name__)

ENV_STORE_PATH = "POLYGENEA_STORE_PATH"
ENV_SET_POLICY = "POLYGENEA_SET_POLICY"
ENV_LOG_LEVEL = "POLYGENEA_LOG_LEVEL"
ENV_MAX_COMBINATIONS = "POLYGENEA_MAX_COMBINATIONS"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def level_number(level: str) -> int:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ConfigurationError(f"unknown log level {level!r}", ("setting", ENV_LOG_LEVEL))
    return numeric


def configure_logging(level: str = "WARNING") -> None:
    """Install a root handler; library modules only ever emit."""
    logging.basicConfig(level=level_number(level), format=LOG_FORMAT)


@dataclass
class PolygeneaConfig:
    """Unified configuration for every layer."""
    parser: ParserConfig = None
    storage: GraphStoreConfig = None
    inference: InferenceConfig = None
    log_level: Optional[str] = None  # level for the "polygenea" loggers; None leaves it alone

    def __post_init__(self):
        self.parser = self.parser or ParserConfig()
        self.storage = self.storage or GraphStoreConfig(set_policy=self.parser.set_policy)
        self.inference = self.inference or InferenceConfig()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> PolygeneaConfig:
        """Build a config from POLYGENEA_* environment variables."""
        environ = os.environ if environ is None else environ

        policy = SetPolicy.NEVER
        if environ.get(ENV_SET_POLICY):
            try:
                policy = SetPolicy.from_name(environ[ENV_SET_POLICY])
            except ValueError as exc:
                raise ConfigurationError(str(exc), ("setting", ENV_SET_POLICY))

        max_combinations = InferenceConfig.max_combinations
        if environ.get(ENV_MAX_COMBINATIONS):
            raw = environ[ENV_MAX_COMBINATIONS]
            if not raw.isdigit() or int(raw) < 1:
                raise ConfigurationError(
                    f"expected a positive integer, got {raw!r}", ("setting", ENV_MAX_COMBINATIONS),
                )
            max_combinations = int(raw)

        log_level = environ.get(ENV_LOG_LEVEL) or None
        if log_level is not None:
            level_number(log_level)

        store_path = environ.get(ENV_STORE_PATH) or None
        storage = GraphStoreConfig(
            backend_type="file" if store_path else "memory",
            storage_path=store_path,
            set_policy=policy,
        )
        return cls(
            parser=ParserConfig(set_policy=policy),
            storage=storage,
            inference=InferenceConfig(max_combinations=max_combinations),
            log_level=log_level,
        )


class PolygeneaEngine:
    """
    Unified facade over store and rule engine.

    With the file backend, an existing store file is loaded on
    construction and persist() writes it back.
    """

    def __init__(self, config: Optional[PolygeneaConfig] = None):
        self._config = config or PolygeneaConfig()
        if self._config.log_level:
            logging.getLogger(__package__).setLevel(level_number(self._config.log_level))
        self._store = GraphStore(self._config.storage)
        self._rules = RuleEngine(self._config.inference)
        restored = self._store.restore()
        if restored:
            logger.info("engine started with %d stored nodes", restored)

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def config(self) -> PolygeneaConfig:
        return self._config

    # =========================================================================
    # INGESTION INTERFACE
    # =========================================================================

    def ingest_text(self, text: str) -> Tuple[Node, ...]:
        return self._store.ingest_text(text)

    def ingest_file(self, path: str) -> Tuple[Node, ...]:
        return self._store.ingest_file(path)

    def add(self, *nodes: Node) -> Tuple[Node, ...]:
        """Add nodes, registering any dependencies that are not stored yet."""
        return tuple(self._store.lookup(node) for node in nodes)

    # =========================================================================
    # INFERENCE INTERFACE
    # =========================================================================

    def apply_rule(self, rule: InferenceRule, candidates: Iterable[Node]) -> Optional[Derivation]:
        """
        Apply a rule to explicit candidates; results are added to the store.

        Candidates not stored yet are added along with the results. Nothing
        is written when the rule does not match.
        """
        derivation = self._rules.apply(rule, tuple(candidates))
        if derivation is not None:
            self.add(rule, *derivation.nodes)
        return derivation

    def derive(self, *rules: InferenceRule) -> List[Derivation]:
        """Run each rule over the whole store, adding what it derives."""
        derived: List[Derivation] = []
        for rule in rules:
            derived.extend(self._rules.derive_into(self._store, rule))
        return derived

    def stored_rules(self) -> List[InferenceRule]:
        return [node for node in self._store.all_nodes() if isinstance(node, InferenceRule)]

    # =========================================================================
    # INTEGRITY & PERSISTENCE
    # =========================================================================

    def validate_all(self) -> Dict[UUID, List[ValidationIssue]]:
        """Issues per node, for every stored node that has any."""
        problems: Dict[UUID, List[ValidationIssue]] = {}
        for node in self._store.topological_order():
            issues: List[ValidationIssue] = []
            if not node.validate(issues):
                problems[node.identity] = issues
        return problems

    def persist(self) -> None:
        self._store.persist()

    def get_audit_log(self) -> List[AuditLogEntry]:
        return self._store.get_audit_log()
