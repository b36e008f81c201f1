"""Tick life cycle: development, freezing and desiccation.

Applied once per tick to every cell, in this order:

  1. Development (tick ≥ begin_of_development).  For each transition
       fed LARVA → inactive NYMPH
       fed NYMPH → inactive ADULT
       fed ADULT → inactive LARVA
     while tick < end of that transition:
       moving = round_stochastic(fed / (end − tick))
     so a fed cohort matures uniformly over the remaining window, with a
     per-tick share that rises as the deadline approaches.  Infected
     individuals stay infected through the molt; larvae hatched from fed
     adults start uninfected (no transovarial transmission).

  2. Freezing, when min temperature < freezing_min_temp (strict):
       deaths[stage] = round_stochastic(questing[stage] × freezing_rate[stage])

  3. Desiccation, when humidity < desiccation_min_humidity AND
     mean temperature > desiccation_min_mean_temp:
       deaths[stage] = round_stochastic(questing[stage] × desiccation_rate[habitat])

All three steps only move or remove individuals.  Mortality applies to
the questing (active) bucket of each stage.

Each step is vectorised over cells; the RNG is consumed in the fixed
order step → stage → cell id, so a seeded run is reproducible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from iris_ticks.config import LifeCycleSection
from iris_ticks.environment import habitat_table
from iris_ticks.population import add_to_all, remove_from_all
from iris_ticks.rng import stochastic_round
from iris_ticks.types import N_STAGES, CohortState, LifeStage

logger = logging.getLogger(__name__)

# (from_stage, to_stage, end-tick parameter, infection carried over)
DEVELOPMENT_TRANSITIONS = (
    (LifeStage.LARVA, LifeStage.NYMPH, 'end_of_development_larvae_to_nymphs', True),
    (LifeStage.NYMPH, LifeStage.ADULT, 'end_of_development_nymphs_to_adults', True),
    (LifeStage.ADULT, LifeStage.LARVA, 'end_of_development_adults_to_larvae', False),
)


def _zeros() -> np.ndarray:
    return np.zeros(N_STAGES, dtype=np.int64)


@dataclass
class LifeCycleStats:
    """Grid-wide counts for one tick, indexed by LifeStage.

    developed[s] counts individuals that left the fed bucket of stage s.
    """
    developed: np.ndarray = field(default_factory=_zeros)
    frozen: np.ndarray = field(default_factory=_zeros)
    desiccated: np.ndarray = field(default_factory=_zeros)


# ═══════════════════════════════════════════════════════════════════════
# DEVELOPMENT
# ═══════════════════════════════════════════════════════════════════════

def development_share(fed, remaining: int, rng: np.random.Generator):
    """Individuals leaving a fed bucket with `remaining` ticks left."""
    if remaining < 1:
        raise ValueError(f"remaining ticks must be >= 1, got {remaining}")
    return stochastic_round(np.asarray(fed, dtype=np.float64) / remaining, rng)


def development(
    cells: np.ndarray,
    tick: int,
    params: LifeCycleSection,
    rng: np.random.Generator,
) -> np.ndarray:
    """Move fed individuals to the next stage's inactive bucket (in-place).

    Returns:
        (N_STAGES,) individuals developed, indexed by source stage.
    """
    developed = _zeros()
    if tick < params.begin_of_development:
        return developed

    for from_stage, to_stage, end_param, carry in DEVELOPMENT_TRANSITIONS:
        end = getattr(params, end_param)
        if tick >= end:
            continue
        fed = cells['counts'][:, from_stage, CohortState.FED]
        moving = development_share(fed, end - tick, rng)
        n_inf = remove_from_all(cells, from_stage, CohortState.FED, moving, rng)
        add_to_all(cells, to_stage, CohortState.INACTIVE, moving,
                   infected=n_inf if carry else None)
        developed[from_stage] = moving.sum()
    return developed


# ═══════════════════════════════════════════════════════════════════════
# MORTALITY
# ═══════════════════════════════════════════════════════════════════════

def _kill_questing(cells, idx, rates, rng) -> np.ndarray:
    """Remove round(questing × rate) from each stage of cells idx.

    rates: (N_STAGES, len(idx)) mortality rate per stage and cell.
    """
    deaths = _zeros()
    for stage in LifeStage:
        rate = rates[stage]
        questing = cells['counts'][idx, stage, CohortState.QUESTING]
        dying = stochastic_round(questing * rate, rng)
        remove_from_all(cells, stage, CohortState.QUESTING, dying, rng, idx=idx)
        deaths[stage] = dying.sum()
    return deaths


def freezing(
    cells: np.ndarray,
    params: LifeCycleSection,
    rng: np.random.Generator,
) -> np.ndarray:
    """Cold mortality in cells whose minimum temperature is below threshold.

    Returns:
        (N_STAGES,) deaths by stage.
    """
    idx = np.flatnonzero(cells['min_temp'] < params.freezing_min_temp)
    if len(idx) == 0:
        return _zeros()
    rates = np.asarray(params.freezing_rate, dtype=np.float64)[:, None]
    return _kill_questing(cells, idx, np.broadcast_to(rates, (N_STAGES, len(idx))), rng)


def desiccation(
    cells: np.ndarray,
    params: LifeCycleSection,
    rng: np.random.Generator,
) -> np.ndarray:
    """Drought mortality in dry, warm cells at a habitat-dependent rate.

    Returns:
        (N_STAGES,) deaths by stage.
    """
    dry = cells['humidity'] < params.desiccation_min_humidity
    warm = cells['mean_temp'] > params.desiccation_min_mean_temp
    idx = np.flatnonzero(dry & warm)
    if len(idx) == 0:
        return _zeros()
    rates = habitat_table(params.desiccation_rate, 0.0)
    per_cell = rates[cells['habitat'][idx].astype(np.intp)]
    return _kill_questing(cells, idx, np.broadcast_to(per_cell, (N_STAGES, len(idx))), rng)


# ═══════════════════════════════════════════════════════════════════════
# DAILY STEP
# ═══════════════════════════════════════════════════════════════════════

def lifecycle_step(
    cells: np.ndarray,
    tick: int,
    params: LifeCycleSection,
    rng: np.random.Generator,
) -> LifeCycleStats:
    """Development → freezing → desiccation for every cell (in-place)."""
    stats = LifeCycleStats(
        developed=development(cells, tick, params, rng),
        frozen=freezing(cells, params, rng),
        desiccated=desiccation(cells, params, rng),
    )
    logger.debug(
        "tick %d: developed=%s frozen=%s desiccated=%s",
        tick, stats.developed.tolist(), stats.frozen.tolist(),
        stats.desiccated.tolist(),
    )
    return stats
