"""Cohort store: operations on the per-cell cohort matrix.

Each cell of a CELL_DTYPE array carries
  counts[stage, state]    — individuals per (LifeStage, CohortState)
  infected[stage, state]  — infected individuals among them

Engines never write these fields directly; they go through
add_ticks / remove_ticks / move_ticks (single cell) or
add_to_all / remove_from_all (every cell at once) so that the infected
sub-count follows the individuals that actually move.

Infected share of a removal: when n individuals leave a bucket holding
t in total of which i are infected, the number of infected among them is
Hypergeometric(i, t − i, n).  The draw is skipped whenever the outcome is
deterministic (n = 0, i = 0, i = t or n = t), which keeps the RNG stream
untouched for uninfected populations.
"""

from __future__ import annotations

from typing import Optional, Union

import numpy as np

from iris_ticks.types import (
    CohortInvariantError,
    CohortState,
    LifeStage,
)


# ═══════════════════════════════════════════════════════════════════════
# INFECTED SHARE
# ═══════════════════════════════════════════════════════════════════════

def draw_infected(
    total: Union[int, np.ndarray],
    infected: Union[int, np.ndarray],
    removed: Union[int, np.ndarray],
    rng: np.random.Generator,
) -> Union[int, np.ndarray]:
    """Number of infected individuals among `removed` drawn from a bucket.

    Args:
        total: Bucket size(s) before removal.
        infected: Infected count(s) in the bucket (≤ total).
        removed: Individuals leaving the bucket (≤ total).
        rng: Shared simulation RNG.

    Returns:
        int for scalar input, int64 array otherwise.
    """
    t, i, n = np.broadcast_arrays(
        np.asarray(total, dtype=np.int64),
        np.asarray(infected, dtype=np.int64),
        np.asarray(removed, dtype=np.int64),
    )
    out = np.zeros(t.shape, dtype=np.int64)

    everyone = (n >= t) | (i >= t)
    out[everyone] = np.minimum(i, n)[everyone]

    mask = (n > 0) & (i > 0) & ~everyone
    if np.any(mask):
        out[mask] = rng.hypergeometric(i[mask], t[mask] - i[mask], n[mask])

    if out.ndim == 0:
        return int(out)
    return out


# ═══════════════════════════════════════════════════════════════════════
# SINGLE-CELL OPERATIONS
# ═══════════════════════════════════════════════════════════════════════

def add_ticks(
    cells: np.ndarray,
    idx: int,
    stage: LifeStage,
    state: CohortState,
    n: int,
    infected: int = 0,
) -> None:
    """Add n individuals (of which `infected` are infected) to one bucket."""
    if n < 0 or infected < 0 or infected > n:
        raise ValueError(
            f"add_ticks requires 0 <= infected <= n, got n={n}, infected={infected}"
        )
    cells['counts'][idx, stage, state] += n
    cells['infected'][idx, stage, state] += infected


def remove_ticks(
    cells: np.ndarray,
    idx: int,
    stage: LifeStage,
    state: CohortState,
    n: int,
    rng: np.random.Generator,
) -> int:
    """Remove n individuals from one bucket.

    Returns:
        Number of infected individuals among those removed.

    Raises:
        ValueError: If n is negative or exceeds the bucket size.
    """
    total = int(cells['counts'][idx, stage, state])
    if n < 0 or n > total:
        raise ValueError(
            f"Cannot remove {n} from {stage.name.lower()}/{state.name.lower()} "
            f"bucket of cell {idx} holding {total}"
        )
    if n == 0:
        return 0
    n_inf = draw_infected(total, int(cells['infected'][idx, stage, state]), n, rng)
    cells['counts'][idx, stage, state] -= n
    cells['infected'][idx, stage, state] -= n_inf
    return n_inf


def move_ticks(
    cells: np.ndarray,
    src: int,
    dst: int,
    from_stage: LifeStage,
    from_state: CohortState,
    to_stage: LifeStage,
    to_state: CohortState,
    n: int,
    rng: np.random.Generator,
    carry_infection: bool = True,
) -> int:
    """Move n individuals between buckets, possibly across cells.

    Returns:
        Number of infected individuals moved (0 when carry_infection=False,
        in which case infected leavers arrive uninfected).
    """
    n_inf = remove_ticks(cells, src, from_stage, from_state, n, rng)
    if not carry_infection:
        n_inf = 0
    add_ticks(cells, dst, to_stage, to_state, n, n_inf)
    return n_inf


# ═══════════════════════════════════════════════════════════════════════
# WHOLE-GRID OPERATIONS
# ═══════════════════════════════════════════════════════════════════════

def remove_from_all(
    cells: np.ndarray,
    stage: LifeStage,
    state: CohortState,
    removed: np.ndarray,
    rng: np.random.Generator,
    idx: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Remove removed[i] individuals from the bucket of cell idx[i].

    Args:
        idx: Cell ids (no duplicates); None means every cell in order.

    Returns:
        int64 array, aligned with removed, of infected individuals removed.
    """
    if idx is None:
        idx = slice(None)
    removed = np.asarray(removed, dtype=np.int64)
    counts = cells['counts'][idx, stage, state]
    if np.any(removed < 0) or np.any(removed > counts):
        raise ValueError(
            f"Removal from {stage.name.lower()}/{state.name.lower()} "
            f"out of range of the bucket sizes"
        )
    n_inf = draw_infected(counts, cells['infected'][idx, stage, state], removed, rng)
    cells['counts'][idx, stage, state] -= removed
    cells['infected'][idx, stage, state] -= n_inf
    return n_inf


def add_to_all(
    cells: np.ndarray,
    stage: LifeStage,
    state: CohortState,
    added: np.ndarray,
    infected: Optional[np.ndarray] = None,
    idx: Optional[np.ndarray] = None,
) -> None:
    """Add added[i] individuals (infected[i] of them infected) to cell idx[i].

    Args:
        infected: Infected share of each addition; None means none infected.
        idx: Cell ids (no duplicates); None means every cell in order.
    """
    if idx is None:
        idx = slice(None)
    added = np.asarray(added, dtype=np.int64)
    if infected is None:
        infected = np.zeros_like(added)
    infected = np.asarray(infected, dtype=np.int64)
    if np.any(added < 0) or np.any(infected < 0) or np.any(infected > added):
        raise ValueError(
            f"Addition to {stage.name.lower()}/{state.name.lower()} "
            f"requires 0 <= infected <= added"
        )
    cells['counts'][idx, stage, state] += added
    cells['infected'][idx, stage, state] += infected


def stage_totals(cells: np.ndarray, state: Optional[CohortState] = None) -> np.ndarray:
    """Per-cell totals by stage.

    Args:
        cells: CELL_DTYPE array.
        state: Restrict to one behavioural state (None = all states).

    Returns:
        (n_cells, N_STAGES) int64 array.
    """
    if state is None:
        return cells['counts'].sum(axis=2)
    return cells['counts'][:, :, state].copy()


def grid_stage_totals(cells: np.ndarray) -> np.ndarray:
    """Grid-wide totals by stage across all states, shape (N_STAGES,)."""
    return cells['counts'].sum(axis=(0, 2))


# ═══════════════════════════════════════════════════════════════════════
# INITIAL STATE & INVARIANTS
# ═══════════════════════════════════════════════════════════════════════

def seed_cohorts(
    cells: np.ndarray,
    questing,
    inactive,
    fed,
    infected_questing,
) -> None:
    """Fill every cell with the same initial per-bucket counts.

    Each argument is a length-3 sequence indexed by LifeStage.
    """
    for stage in LifeStage:
        cells['counts'][:, stage, CohortState.QUESTING] = questing[stage]
        cells['counts'][:, stage, CohortState.INACTIVE] = inactive[stage]
        cells['counts'][:, stage, CohortState.FED] = fed[stage]
        cells['infected'][:, stage, CohortState.QUESTING] = infected_questing[stage]
    check_invariants(cells)


def check_invariants(cells: np.ndarray) -> None:
    """Verify non-negativity and infected ≤ total for every bucket.

    Raises:
        CohortInvariantError: Naming the first offending cell and bucket.
    """
    counts = cells['counts']
    infected = cells['infected']
    bad = (counts < 0) | (infected < 0) | (infected > counts)
    if not np.any(bad):
        return
    idx, stage, state = (int(v) for v in np.argwhere(bad)[0])
    raise CohortInvariantError(
        f"Cell {idx} ({int(cells['x'][idx])}, {int(cells['y'][idx])}): "
        f"{LifeStage(stage).name.lower()}/{CohortState(state).name.lower()} "
        f"count={int(counts[idx, stage, state])}, "
        f"infected={int(infected[idx, stage, state])}"
    )
