"""
Graph Storage Layer

RESPONSIBILITY: Indexed, append-only collection of nodes with a reverse-edge
                index, dependency-ordered and compressed serialization
ALLOWED INPUTS: Nodes, canonical node maps or lists of them, serialized text
OUTPUTS: Stored nodes, incoming-edge sets, topological order, compressed text

WHAT THIS LAYER MUST NOT DO:
============================
- Delete or replace stored nodes (first writer wins, re-adding is a no-op)
- Apply inference rules
- Persist anything but the compressed serialized text

INVARIANTS:
===========
- Every out-edge of every stored node is itself stored
- The reverse-edge index (a networkx DiGraph with an edge from each
  referenced node to its referrer) always agrees with the node table
- add() is two-phase: all checks run before anything is written, so a
  failed add leaves the store untouched

CONCURRENCY:
============
Single logical writer. Readers are safe only without a concurrent writer;
synchronization is the caller's responsibility.
"""

from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple
from uuid import UUID
import hashlib
import logging
import os

import networkx as nx

from ..canonical.parser import SetPolicy, parse
from ..canonical.serializer import serialize
from ..canonical.values import CanonicalSet, identity_order
from ..contracts.base import (
    AuditEventType,
    AuditLogEntry,
    DanglingReference,
    DuplicateIdentity,
    IdentityError,
    SchemaViolation,
    UnknownReference,
    utc_now,
)
from ..identity import coerce_identity
from ..nodes import (
    DEFAULT_REGISTRY,
    IDENTITY_KEY,
    Match,
    Node,
    NodeLookup,
    NodeRegistry,
    Reference,
    node_from_canonical,
)

logger = logging.getLogger(__name__)


# =============================================================================
# PERSISTENCE BACKENDS (Dependency Inversion)
# =============================================================================

class PersistenceBackend:
    """
    Where the serialized store text lives between runs.

    Implementations only move text; they never interpret it.
    """

    def read(self) -> Optional[str]:
        """Return the last written text, or None if nothing was written."""
        raise NotImplementedError

    def write(self, text: str) -> None:
        """Replace the stored text."""
        raise NotImplementedError


class InMemoryPersistence(PersistenceBackend):
    """Keeps the text in memory. Suitable for testing."""

    def __init__(self):
        self._text: Optional[str] = None

    def read(self) -> Optional[str]:
        return self._text

    def write(self, text: str) -> None:
        self._text = text


class FilePersistence(PersistenceBackend):
    """UTF-8 file; writes go to a sibling temp file and are renamed into place."""

    def __init__(self, path: str):
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def read(self) -> Optional[str]:
        if not os.path.exists(self._path):
            return None
        with open(self._path, "r", encoding="utf-8") as f:
            return f.read()

    def write(self, text: str) -> None:
        directory = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(directory, exist_ok=True)
        temp_path = self._path + ".tmp"
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(temp_path, self._path)


# =============================================================================
# BATCH LOOKUP
# =============================================================================

class BatchLookup(NodeLookup):
    """
    Lookup used while a list of node maps is being constructed.

    Integer tokens are positions into the batch and must be smaller than
    the position currently being built. Identity tokens resolve against
    the batch first, then the store.
    """

    def __init__(self, store: GraphStore, built: List[Node]):
        self._store = store
        self._built = built
        self._by_identity: Dict[UUID, Node] = {}

    def record(self, node: Node) -> None:
        self._built.append(node)
        self._by_identity[node.identity] = node

    def lookup(self, reference: Reference) -> Node:
        if isinstance(reference, bool):
            raise UnknownReference(reference)
        if isinstance(reference, float) and reference.is_integer():
            reference = int(reference)
        if isinstance(reference, int):
            if 0 <= reference < len(self._built):
                return self._built[reference]
            raise UnknownReference(reference)
        if isinstance(reference, Node):
            return self._by_identity.get(reference.identity, reference)
        if isinstance(reference, (str, UUID)):
            try:
                identity = coerce_identity(reference)
            except IdentityError:
                raise UnknownReference(reference)
            if identity in self._by_identity:
                return self._by_identity[identity]
        return self._store.get_or_fail(reference)


# =============================================================================
# GRAPH STORE
# =============================================================================

@dataclass
class GraphStoreConfig:
    """Configuration for the graph store."""
    backend_type: str = "memory"  # "memory" or "file"
    storage_path: Optional[str] = None
    set_policy: SetPolicy = SetPolicy.NEVER
    registry: Optional[NodeRegistry] = None


class GraphStore(NodeLookup):
    """
    Content-addressed DAG of nodes.

    BOUNDARY ENFORCEMENT:
    - ONLY grows; nothing is ever removed or replaced
    - NEVER indexes a node before all its out-edges are stored
    - Maintains an audit trail of every mutation
    """

    def __init__(self, config: Optional[GraphStoreConfig] = None):
        self._config = config or GraphStoreConfig()
        self._registry = self._config.registry or DEFAULT_REGISTRY
        self._all: Dict[UUID, Node] = {}
        self._graph = nx.DiGraph()
        self._audit_log: List[AuditLogEntry] = []
        self._audit_sequence = 0
        self._backend = self._create_backend()

    def _create_backend(self) -> PersistenceBackend:
        """Create persistence backend based on configuration."""
        if self._config.backend_type == "file" and self._config.storage_path:
            return FilePersistence(self._config.storage_path)
        return InMemoryPersistence()

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    def __len__(self) -> int:
        return len(self._all)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Node):
            return item.identity in self._all
        if isinstance(item, (str, UUID)):
            try:
                return coerce_identity(item) in self._all
            except IdentityError:
                return False
        return False

    def __iter__(self) -> Iterator[Node]:
        return self.all_nodes()

    def get(self, identity: UUID) -> Optional[Node]:
        return self._all.get(identity)

    def get_or_fail(self, reference: Reference) -> Node:
        """Resolve an identity (UUID or string) or a node already stored."""
        if isinstance(reference, Node):
            reference = reference.identity
        if not isinstance(reference, (str, UUID)) or isinstance(reference, bool):
            raise UnknownReference(reference)
        try:
            identity = coerce_identity(reference)
        except IdentityError:
            raise UnknownReference(reference)
        node = self._all.get(identity)
        if node is None:
            raise UnknownReference(reference)
        return node

    def all_nodes(self) -> Iterator[Node]:
        """Every stored node; order unspecified."""
        return iter(list(self._all.values()))

    def out_edges(self, node: Node) -> Tuple[Node, ...]:
        return node.out_edges()

    def lookup(self, reference: Reference) -> Node:
        """
        Resolve an identity or a node.

        A node not yet stored is registered together with everything it
        depends on. Integer positions only mean something inside a batch,
        so they are always UnknownReference here.
        """
        if isinstance(reference, Node):
            stored = self._all.get(reference.identity)
            if stored is not None:
                return stored
            self.add(*self._unstored_closure([reference]), reference)
            return self._all[reference.identity]
        return self.get_or_fail(reference)

    # =========================================================================
    # MUTATION
    # =========================================================================

    def add(self, *nodes: Node) -> Tuple[Node, ...]:
        """
        Register nodes under their identities; return the newly added ones.

        Phase one collects the new nodes (first writer wins) and checks
        that every out-edge is either stored or part of this call.
        Phase two writes the node table and the reverse-edge index.
        """
        pending: Dict[UUID, Node] = {}
        for node in nodes:
            if not isinstance(node, Node):
                raise SchemaViolation(f"only nodes can be stored, not {type(node).__name__}")
            if node.identity in self._all or node.identity in pending:
                continue
            pending[node.identity] = node

        for node in pending.values():
            for target in node.out_edges():
                if target.identity not in self._all and target.identity not in pending:
                    logger.warning(
                        "rejecting %s %s: missing out-edge %s",
                        node.variant, node.identity, target.identity,
                    )
                    raise DanglingReference(str(target.identity), str(node.identity))

        for identity, node in pending.items():
            self._all[identity] = node
            self._graph.add_node(identity)
        for identity, node in pending.items():
            for target in node.out_edges():
                self._graph.add_edge(target.identity, identity)
            logger.debug("stored %s %s (height %d)", node.variant, identity, node.height)
            self._log_audit(
                action="node_added",
                entity_id=str(identity),
                metadata=(("variant", node.variant),),
            )
        return tuple(pending.values())

    def ingest(self, value: object) -> Tuple[Node, ...]:
        """
        Add a canonical node map or a list of them.

        Inside a list, references may be positions of earlier entries.
        Entries whose "!uuid" is already stored are reused, not rebuilt.
        Nothing is added unless every entry constructs and every
        reference resolves. Returns one node per entry.
        """
        if isinstance(value, Mapping):
            entries: Sequence[object] = (value,)
        elif isinstance(value, (list, tuple, CanonicalSet)):
            entries = tuple(value)
        else:
            raise SchemaViolation(
                f"expected a node map or a list of node maps, not {type(value).__name__}"
            )

        built: List[Node] = []
        batch = BatchLookup(self, built)
        fresh: List[Node] = []
        for position, entry in enumerate(entries):
            if not isinstance(entry, Mapping):
                raise SchemaViolation(
                    f"entry {position} must be a node map, not {type(entry).__name__}"
                )
            known = self._known_entry(entry)
            if known is not None:
                batch.record(known)
                continue
            node = node_from_canonical(entry, batch, self._registry)
            batch.record(node)
            fresh.append(node)

        added = self.add(*self._unstored_closure(fresh), *fresh)
        logger.info("ingested %d entries (%d new nodes)", len(entries), len(added))
        self._log_audit(
            action="batch_ingested",
            metadata=(("entries", str(len(entries))), ("added", str(len(added)))),
        )
        return tuple(self._all[node.identity] for node in built)

    def _unstored_closure(self, roots: Sequence[Node]) -> List[Node]:
        """Dependencies of `roots` not yet stored, each once."""
        seen = {root.identity for root in roots}
        found: List[Node] = []
        frontier = list(roots)
        while frontier:
            for target in frontier.pop().out_edges():
                if target.identity in seen or target.identity in self._all:
                    continue
                seen.add(target.identity)
                found.append(target)
                frontier.append(target)
        return found

    def _known_entry(self, entry: Mapping) -> Optional[Node]:
        raw = entry.get(IDENTITY_KEY)
        if not isinstance(raw, str):
            return None
        try:
            return self._all.get(coerce_identity(raw))
        except IdentityError:
            return None

    def ingest_text(self, text: str) -> Tuple[Node, ...]:
        return self.ingest(parse(text, self._config.set_policy))

    def ingest_file(self, path: str) -> Tuple[Node, ...]:
        with open(path, "r", encoding="utf-8") as f:
            return self.ingest_text(f.read())

    # =========================================================================
    # GRAPH QUERIES
    # =========================================================================

    def incoming_edges(self, node: Node) -> FrozenSet[Node]:
        """
        Nodes that reference `node`, seen through Match aliases.

        Every Thing that a stored Match declares identical to `node`
        (directly or through a chain of Matches) contributes its own
        referrers too.
        """
        if node.identity not in self._all:
            return frozenset()
        aliases = self._alias_class(node)
        result = set()
        for alias in aliases:
            for referrer in self._graph.successors(alias.identity):
                result.add(self._all[referrer])
        result.discard(node)
        return frozenset(result)

    def _alias_class(self, node: Node) -> List[Node]:
        seen: Dict[UUID, Node] = {node.identity: node}
        frontier = [node]
        while frontier:
            current = frontier.pop()
            matches = []
            if isinstance(current, Match):
                matches.append(current)
            for referrer in self._graph.successors(current.identity):
                candidate = self._all[referrer]
                if isinstance(candidate, Match) and current in candidate.same:
                    matches.append(candidate)
            for match in matches:
                for member in (match, *match.same):
                    if member.identity not in seen:
                        seen[member.identity] = member
                        frontier.append(member)
        return list(seen.values())

    def topological_order(self) -> Tuple[Node, ...]:
        """
        Every stored node once, each after all of its out-edge targets.

        Ties break on (height, identity) so the order is deterministic.
        """
        order = nx.lexicographical_topological_sort(
            self._graph, key=lambda identity: self._sort_key(self._all[identity]),
        )
        return tuple(self._all[identity] for identity in order)

    @staticmethod
    def _sort_key(node: Node) -> Tuple[int, int, int]:
        return (node.height,) + identity_order(node.identity)

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def compressed_serialize(self, *nodes: Node) -> str:
        return compressed_serialize(*nodes)

    def dump(self) -> str:
        """Compressed serialization of the whole store."""
        return compressed_serialize(*self._all.values())

    def persist(self) -> None:
        """Write the whole store to the configured backend."""
        self._backend.write(self.dump())
        logger.info("persisted %d nodes", len(self._all))
        self._log_audit(action="store_saved", metadata=(("nodes", str(len(self._all))),))

    def restore(self) -> int:
        """Ingest whatever the backend holds; return the number of nodes added."""
        text = self._backend.read()
        if text is None:
            return 0
        before = len(self._all)
        self.ingest_text(text)
        added = len(self._all) - before
        logger.info("restored %d nodes", added)
        self._log_audit(action="store_loaded", metadata=(("nodes", str(added)),))
        return added

    def save(self, path: str) -> None:
        """Write the compressed serialization to `path`."""
        FilePersistence(path).write(self.dump())
        self._log_audit(action="store_saved", entity_id=path)

    @classmethod
    def load(cls, path: str, config: Optional[GraphStoreConfig] = None) -> GraphStore:
        """Build a new store from a file written by save()."""
        store = cls(config)
        store.ingest_file(path)
        store._log_audit(action="store_loaded", entity_id=path)
        return store

    # =========================================================================
    # AUDIT
    # =========================================================================

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Get audit log entries (copy)."""
        return list(self._audit_log)

    def _log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._audit_sequence += 1
        timestamp = utc_now()
        entry_id = hashlib.sha256(
            f"storage_{action}|{self._audit_sequence}|{timestamp.timestamp()}".encode()
        ).hexdigest()[:16]

        event_type = AuditEventType.STORE
        if action in ("store_saved", "store_loaded"):
            event_type = AuditEventType.PERSISTENCE
        self._audit_log.append(AuditLogEntry(
            entry_id=f"audit_{entry_id}",
            event_type=event_type,
            timestamp=timestamp,
            layer="storage",
            action=action,
            entity_id=entity_id,
            metadata=metadata,
        ))


# =============================================================================
# COMPRESSED SERIALIZATION
# =============================================================================

def compressed_serialize(*nodes: Node) -> str:
    """
    Serialize nodes as one list, dependencies first.

    Nodes are ordered by (height, identity). Content-derived nodes omit
    "!uuid" since it can be recomputed. A reference to a node emitted
    earlier in the same list is written as its position.
    """
    ordered = sorted(nodes, key=GraphStore._sort_key)
    positions: Dict[UUID, int] = {}

    def reference(target: Node) -> object:
        position = positions.get(target.identity)
        if position is None:
            return str(target.identity)
        return position

    entries = []
    for node in ordered:
        if node.identity in positions:
            raise DuplicateIdentity(f"node {node.identity} given more than once")
        entries.append(serialize(node.to_canonical(node.has_identity), reference))
        positions[node.identity] = len(positions)
    return "[" + "\n,".join(entries) + "\n]"
