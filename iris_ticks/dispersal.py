"""Host-mediated dispersal of questing ticks between grid cells.

For every cell (ascending id) and every stage (larva → nymph → adult):

  1. Draw dx, dy independently from DISPERSAL_OFFSETS / DISPERSAL_PROBS,
     a symmetric distance kernel over ±1 … ±9 cells (0 excluded).
  2. Resolve (x + dx, y + dy) through the SpatialIndex.  Off-grid draws
     are retried, up to max_retries attempts; after that the fallback
     policy applies ('skip' the transfer or 'clamp' into the grid).
  3. emigrants = round_stochastic(questing[stage] × rate[stage])
  4. Remove emigrants from the source questing bucket and add them to
     the destination FED bucket of the same stage: a dispersing tick is
     one that fed on a host and dropped off elsewhere.

Each stage draws its own destination, so a cell can send larvae to one
cell and nymphs to another.  Arrivals land in FED, never in QUESTING, so
emigrant counts do not depend on how many cells were visited before.
Mass is conserved exactly across the grid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from iris_ticks.config import DispersalSection
from iris_ticks.population import move_ticks
from iris_ticks.rng import stochastic_round
from iris_ticks.spatial import TickGrid
from iris_ticks.types import N_STAGES, CohortState, LifeStage, Position

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════
# DISTANCE KERNEL
# ═══════════════════════════════════════════════════════════════════════

_POSITIVE_KERNEL = {
    1: 0.25,
    2: 0.25,
    3: 0.20,
    4: 0.15,
    5: 0.05,
    6: 0.04,
    7: 0.03,
    8: 0.02,
    9: 0.01,
}

DISPERSAL_OFFSETS = np.array(
    list(_POSITIVE_KERNEL) + [-d for d in _POSITIVE_KERNEL], dtype=np.int64
)
# Each side carries the full kernel weight; normalised to sum to 1.
DISPERSAL_PROBS = np.array(
    list(_POSITIVE_KERNEL.values()) * 2, dtype=np.float64
)
DISPERSAL_PROBS /= DISPERSAL_PROBS.sum()

_DISPERSAL_CDF = np.cumsum(DISPERSAL_PROBS)
_DISPERSAL_CDF[-1] = 1.0


def sample_offset(rng: np.random.Generator) -> Tuple[int, int]:
    """Draw one (dx, dy) pair from the distance kernel (two uniform draws)."""
    which = np.searchsorted(_DISPERSAL_CDF, rng.random(2), side='right')
    dx, dy = DISPERSAL_OFFSETS[which]
    return int(dx), int(dy)


def find_destination(
    grid: TickGrid,
    position: Position,
    rng: np.random.Generator,
    max_retries: int,
    fallback: str,
) -> Tuple[Optional[int], bool]:
    """Resolve a random on-grid destination for one dispersal event.

    Returns:
        (cell_id, used_fallback).  cell_id is None when the fallback
        policy is 'skip' and every attempt landed off-grid.
    """
    target = position
    for _ in range(max_retries):
        dx, dy = sample_offset(rng)
        target = position.moved_by(dx, dy)
        cell_id = grid.index.lookup(target)
        if cell_id is not None:
            return cell_id, False

    if fallback == 'clamp':
        return grid.index.lookup(grid.clamp(target)), True
    return None, True


# ═══════════════════════════════════════════════════════════════════════
# DAILY STEP
# ═══════════════════════════════════════════════════════════════════════

def _zeros() -> np.ndarray:
    return np.zeros(N_STAGES, dtype=np.int64)


@dataclass
class DispersalStats:
    """Grid-wide dispersal counts for one tick, indexed by LifeStage."""
    moved: np.ndarray = field(default_factory=_zeros)
    transfers: int = 0          # source → destination events with ≥ 1 emigrant
    fallbacks: int = 0          # draws that exhausted max_retries


def dispersal_step(
    grid: TickGrid,
    params: DispersalSection,
    rng: np.random.Generator,
) -> DispersalStats:
    """Disperse a share of every cell's questing ticks (in-place)."""
    stats = DispersalStats()
    cells = grid.cells
    rates = params.rate

    for src in grid.cell_ids():
        position = grid.position(src)
        for stage in LifeStage:
            dst, used_fallback = find_destination(
                grid, position, rng, params.max_retries, params.fallback,
            )
            if used_fallback:
                stats.fallbacks += 1
                logger.warning(
                    "No on-grid destination for %s from (%d, %d) after %d "
                    "draws; fallback '%s'",
                    stage.name.lower(), position.x, position.y,
                    params.max_retries, params.fallback,
                )
            if dst is None:
                continue

            questing = int(cells['counts'][src, stage, CohortState.QUESTING])
            emigrants = stochastic_round(questing * rates[stage], rng)
            if emigrants == 0:
                continue
            move_ticks(
                cells, src, dst,
                stage, CohortState.QUESTING,
                stage, CohortState.FED,
                emigrants, rng,
            )
            stats.moved[stage] += emigrants
            stats.transfers += 1

    logger.debug("dispersal moved %s in %d transfers",
                 stats.moved.tolist(), stats.transfers)
    return stats
