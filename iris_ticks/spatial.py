"""Spatial grid: cell store, spatial index, and grid initialisation.

Core classes:
  - SpatialIndex: bidirectional map Position ↔ cell id, no wraparound
  - TickGrid: the flat CELL_DTYPE array plus its index

Core functions:
  - banded_habitat: the mirrored pasture | ecotone | wood landscape
  - build_grid: create, index and seed every cell before tick 0

Cells are created once, in column-major order (x outer, y inner), so the
cell id is also the deterministic traversal order of every engine.
Cells are never added, removed or moved afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

import numpy as np

from iris_ticks.config import SimulationConfig
from iris_ticks.population import seed_cohorts
from iris_ticks.types import (
    ConfigurationError,
    Habitat,
    Position,
    allocate_cells,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# SPATIAL INDEX
# ═══════════════════════════════════════════════════════════════════════

class SpatialIndex:
    """Bidirectional map between grid positions and cell ids.

    lookup() of a position that was never inserted returns None; there is
    no wraparound and no implicit clamping at the grid boundary.
    """

    def __init__(self):
        self._by_position: Dict[Position, int] = {}
        self._by_id: Dict[int, Position] = {}

    def insert(self, position: Position, cell_id: int) -> None:
        """Register a cell.

        Raises:
            ConfigurationError: If the position or the id is already registered.
        """
        if position in self._by_position:
            raise ConfigurationError(
                f"Position ({position.x}, {position.y}) already registered "
                f"to cell {self._by_position[position]}"
            )
        if cell_id in self._by_id:
            raise ConfigurationError(f"Cell id {cell_id} already registered")
        self._by_position[position] = cell_id
        self._by_id[cell_id] = position

    def lookup(self, position: Position) -> Optional[int]:
        """Cell id at position, or None if off-grid."""
        return self._by_position.get(position)

    def position_of(self, cell_id: int) -> Position:
        return self._by_id[cell_id]

    def __len__(self) -> int:
        return len(self._by_position)

    def __contains__(self, position: Position) -> bool:
        return position in self._by_position


# ═══════════════════════════════════════════════════════════════════════
# GRID
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class TickGrid:
    """All grid cells and their spatial index.

    `cells` is the cohort store: a CELL_DTYPE array whose row i is the
    cell with id i.
    """
    width: int
    height: int
    cells: np.ndarray
    index: SpatialIndex

    @property
    def n_cells(self) -> int:
        return len(self.cells)

    def position(self, cell_id: int) -> Position:
        return Position(int(self.cells['x'][cell_id]), int(self.cells['y'][cell_id]))

    def clamp(self, position: Position) -> Position:
        """Nearest in-bounds position (per-axis clamp)."""
        return Position(
            min(max(position.x, 0), self.width - 1),
            min(max(position.y, 0), self.height - 1),
        )

    def cell_ids(self) -> Iterator[int]:
        """Cell ids in creation order."""
        return iter(range(self.n_cells))

    def read_only(self) -> np.ndarray:
        """Read-only view of the cell array for observers."""
        view = self.cells.view()
        view.flags.writeable = False
        return view


def banded_habitat(x: int, width: int) -> Habitat:
    """Habitat of column x in the mirrored banded landscape.

    Left half:  pasture (x < W/6), ecotone (x < W/3), wood.
    Right half: wood, ecotone (x ≥ 2W/3), pasture (x ≥ 5W/6).
    """
    if x < width // 2:
        if x < width // 6:
            return Habitat.PASTURE
        if x < width // 3:
            return Habitat.ECOTONE
        return Habitat.WOOD
    if x >= width // 6 * 5:
        return Habitat.PASTURE
    if x >= width // 3 * 2:
        return Habitat.ECOTONE
    return Habitat.WOOD


def build_grid(config: SimulationConfig) -> TickGrid:
    """Create every cell, register it and seed its cohorts.

    Args:
        config: Validated simulation configuration.

    Returns:
        TickGrid with width × height cells in column-major id order.
    """
    g = config.grid
    cells = allocate_cells(g.width * g.height)
    index = SpatialIndex()

    uniform = None
    if g.habitat_layout == 'uniform':
        uniform = Habitat.from_name(g.habitat)

    cell_id = 0
    for x in range(g.width):
        habitat = uniform if uniform is not None else banded_habitat(x, g.width)
        for y in range(g.height):
            cells['x'][cell_id] = x
            cells['y'][cell_id] = y
            cells['habitat'][cell_id] = habitat
            index.insert(Position(x, y), cell_id)
            cell_id += 1

    init = config.initial
    seed_cohorts(cells, init.questing, init.inactive, init.fed,
                 init.infected_questing)

    logger.info("Built %dx%d grid (%s layout, %d cells)",
                g.width, g.height, g.habitat_layout, len(cells))
    return TickGrid(width=g.width, height=g.height, cells=cells, index=index)
