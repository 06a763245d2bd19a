"""Thread-safe accumulation of per-node results."""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping, Sequence

from .node import Node
from .result import Result


class ResultSet(Mapping):
    """Read-only mapping of node to result, keyed by node identity."""

    def __init__(self, pairs: Sequence[tuple[Node, Result]]):
        self._pairs = list(pairs)
        self._index = {id(node): i for i, (node, _) in enumerate(self._pairs)}

    def __getitem__(self, node: Node) -> Result:
        try:
            i = self._index[id(node)]
        except KeyError:
            raise KeyError(node) from None
        if self._pairs[i][0] is not node:
            raise KeyError(node)
        return self._pairs[i][1]

    def __iter__(self) -> Iterator[Node]:
        return (node for node, _ in self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __repr__(self) -> str:
        return f"ResultSet({dict(self._pairs)!r})"

    @property
    def failures(self) -> dict[Node, Result]:
        return {node: r for node, r in self._pairs if r.error}

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_list(self) -> list[dict]:
        """JSON-ready list of node URI, status and result."""
        return [
            {
                "node": node.uri,
                "status": "success" if result.success else "failure",
                "result": result.to_dict(),
            }
            for node, result in self._pairs
        ]


class ResultStore:
    """One slot per node position, each written once by the unit owning it."""

    def __init__(self, nodes: Sequence[Node]):
        self._nodes = list(nodes)
        self._results: list[Result | None] = [None] * len(self._nodes)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._nodes)

    def put(self, index: int, result: Result) -> None:
        with self._lock:
            if self._results[index] is not None:
                raise RuntimeError(f"Result for {self._nodes[index]!r} already recorded")
            self._results[index] = result

    def snapshot(self) -> ResultSet:
        """Freeze the store. Must only be called once all writers are done."""
        with self._lock:
            missing = [self._nodes[i] for i, r in enumerate(self._results) if r is None]
            if missing:
                raise RuntimeError(f"No result recorded for {missing!r}")
            return ResultSet(list(zip(self._nodes, self._results)))
