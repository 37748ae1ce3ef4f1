from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Protocol

from cachecrawler.sim.grid import Cell, CellBounds, cell_hash

DEFAULT_WINDOW_CAPACITY = 2


class CacheRenderer(Protocol):
    """Drawing surface for cache markers; the window only creates and releases handles."""

    def create_marker(self, cell: Cell, bounds: CellBounds, color: tuple[int, int, int]) -> Any:
        ...

    def release_marker(self, marker: Any) -> None:
        ...


@dataclass(frozen=True, eq=False)
class GridMarker:
    cell: Cell
    bounds: CellBounds
    color: tuple[int, int, int]

    @property
    def cell_hash(self) -> str:
        return cell_hash(self.cell)


class InMemoryRenderer:
    """Headless renderer that tracks which markers are currently materialized."""

    def __init__(self) -> None:
        self.materialized: list[GridMarker] = []
        self.released_count = 0

    def create_marker(self, cell: Cell, bounds: CellBounds, color: tuple[int, int, int]) -> GridMarker:
        marker = GridMarker(cell=cell, bounds=bounds, color=color)
        self.materialized.append(marker)
        return marker

    def release_marker(self, marker: GridMarker) -> None:
        self.materialized.remove(marker)
        self.released_count += 1

    def materialized_cells(self) -> set[Cell]:
        return {marker.cell for marker in self.materialized}

    def marker_at(self, cell: Cell) -> GridMarker | None:
        for marker in reversed(self.materialized):
            if marker.cell == cell:
                return marker
        return None


@dataclass
class VisibilityBatch:
    batch_id: int
    markers: list[Any] = field(default_factory=list)
    committed: bool = False
    released: bool = False


class VisibilityWindow:
    """FIFO of committed batches; committing past capacity releases the oldest batch."""

    def __init__(self, renderer: CacheRenderer, *, capacity: int = DEFAULT_WINDOW_CAPACITY) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ValueError("capacity must be an integer >= 1")
        self.renderer = renderer
        self.capacity = capacity
        self._batches: deque[VisibilityBatch] = deque()
        self._next_batch_id = 1

    def __len__(self) -> int:
        return len(self._batches)

    def live_batches(self) -> tuple[VisibilityBatch, ...]:
        return tuple(self._batches)

    def begin_batch(self) -> VisibilityBatch:
        batch = VisibilityBatch(batch_id=self._next_batch_id)
        self._next_batch_id += 1
        return batch

    def record_in_batch(self, batch: VisibilityBatch, marker: Any) -> None:
        if batch.committed:
            raise ValueError(f"batch {batch.batch_id} is already committed")
        batch.markers.append(marker)

    def commit_batch(self, batch: VisibilityBatch) -> None:
        if batch.committed:
            raise ValueError(f"batch {batch.batch_id} is already committed")
        batch.committed = True
        self._batches.append(batch)
        while len(self._batches) > self.capacity:
            self._release(self._batches.popleft())

    def reset_all(self) -> None:
        while self._batches:
            self._release(self._batches.popleft())

    def _release(self, batch: VisibilityBatch) -> None:
        for marker in batch.markers:
            self.renderer.release_marker(marker)
        batch.markers.clear()
        batch.released = True
