"""Repository for the cross-reference graph between articles."""

import json
from pathlib import Path
from typing import Any

import structlog

from kbsite.ingestion.models import Article, CrossReference

logger = structlog.get_logger(__name__)

GRAPH_FORMAT_VERSION = 1


class CrossReferenceGraph:
    """Directed graph of Related Articles references keyed by KB-ID.

    Edges exist only between loaded articles. References to KB-IDs that are
    not loaded are kept as unresolved; they may belong to a later batch, so
    resolve() re-checks them once the full set of known IDs is available.

    Attributes:
        unresolved: References whose target is not (yet) known, sorted
        self_references: References from an article to itself, sorted
    """

    def __init__(self) -> None:
        self._nodes: set[str] = set()
        self._edges: dict[str, list[str]] = {}
        self._pending: dict[str, list[CrossReference]] = {}
        self.unresolved: list[CrossReference] = []
        self.self_references: list[CrossReference] = []

    def build(self, articles: list[Article]) -> None:
        """Build the graph from a set of articles, replacing previous state.

        Args:
            articles: Parsed articles (KB-IDs assumed unique)
        """
        self._nodes = {article.article_id for article in articles}
        self._edges = {article_id: [] for article_id in self._nodes}
        self._pending = {}
        self.self_references = []

        for article in articles:
            self._pending[article.article_id] = []
            for reference in article.related:
                if reference.target_id == article.article_id:
                    self.self_references.append(reference)
                    continue
                self._pending[article.article_id].append(reference)

        self.self_references.sort(key=lambda r: (r.source_id, r.target_id))
        self.resolve(self._nodes)

        logger.info(
            "cross_reference_graph_built",
            articles=len(self._nodes),
            edges=self.edge_count(),
            unresolved=len(self.unresolved),
        )

    def resolve(self, known_ids: set[str]) -> list[CrossReference]:
        """Resolve references against the full set of known KB-IDs.

        Targets in known_ids that are also loaded nodes become edges; any other
        target stays unresolved. Calling resolve() with the full corpus ID set
        is the second validation pass that separates "not yet loaded" from
        "never exists".

        Args:
            known_ids: Every KB-ID known to exist

        Returns:
            References still unresolved, sorted by (source, target)
        """
        unresolved: list[CrossReference] = []
        for source_id in sorted(self._pending):
            targets: list[str] = []
            for reference in self._pending[source_id]:
                if reference.target_id in known_ids and reference.target_id in self._nodes:
                    if reference.target_id not in targets:
                        targets.append(reference.target_id)
                elif reference.target_id not in known_ids:
                    unresolved.append(reference)
            self._edges[source_id] = targets

        self.unresolved = sorted(unresolved, key=lambda r: (r.source_id, r.target_id))
        return list(self.unresolved)

    def related(self, article_id: str) -> list[str]:
        """Resolved outgoing references, in Related Articles order."""
        return list(self._edges.get(article_id, []))

    def referrers(self, article_id: str) -> list[str]:
        """Articles with an edge to article_id, sorted."""
        return sorted(source for source, targets in self._edges.items() if article_id in targets)

    def has_edge(self, source_id: str, target_id: str) -> bool:
        return target_id in self._edges.get(source_id, [])

    def has_node(self, article_id: str) -> bool:
        return article_id in self._nodes

    def edge_count(self) -> int:
        return sum(len(targets) for targets in self._edges.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert graph to a JSON-serializable dictionary."""
        return {
            "version": GRAPH_FORMAT_VERSION,
            "edges": {source: list(self._edges[source]) for source in sorted(self._edges)},
            "pending": {
                source: [{"target_id": r.target_id, "label": r.label} for r in references]
                for source, references in sorted(self._pending.items())
            },
            "self_references": [
                {"source_id": r.source_id, "target_id": r.target_id, "label": r.label}
                for r in self.self_references
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrossReferenceGraph":
        """Rebuild a graph from to_dict() output.

        Raises:
            ValueError: If the data has an unsupported format
        """
        if data.get("version") != GRAPH_FORMAT_VERSION:
            raise ValueError(f"Unsupported graph format version: {data.get('version')}")

        graph = cls()
        graph._edges = {source: list(targets) for source, targets in data["edges"].items()}
        graph._nodes = set(graph._edges)
        graph._pending = {
            source: [
                CrossReference(source_id=source, target_id=r["target_id"], label=r["label"])
                for r in references
            ]
            for source, references in data.get("pending", {}).items()
        }
        graph.self_references = [
            CrossReference(source_id=r["source_id"], target_id=r["target_id"], label=r["label"])
            for r in data.get("self_references", [])
        ]
        graph.resolve(graph._nodes)
        return graph


class GraphRepository:
    """Persists the cross-reference graph as JSON."""

    def __init__(self, graph_path: Path) -> None:
        self.graph_path = graph_path

    def save(self, graph: CrossReferenceGraph) -> None:
        """Write the graph to disk (sorted keys, stable across runs).

        Raises:
            OSError: If file write fails
        """
        self.graph_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(graph.to_dict(), indent=2, sort_keys=True, ensure_ascii=False)
        self.graph_path.write_text(payload + "\n", encoding="utf-8")
        logger.info("graph_saved", filepath=str(self.graph_path), edges=graph.edge_count())

    def load(self) -> CrossReferenceGraph:
        """Load the graph from disk.

        Raises:
            FileNotFoundError: If graph file doesn't exist
            ValueError: If the file is not a valid graph
        """
        if not self.graph_path.exists():
            raise FileNotFoundError(f"Graph file not found: {self.graph_path}")

        try:
            data = json.loads(self.graph_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid graph file {self.graph_path}: {e}") from e
        return CrossReferenceGraph.from_dict(data)
