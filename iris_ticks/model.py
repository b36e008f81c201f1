"""Tick model: clock, per-tick stage ordering, and the simulation loop.

Each tick runs to completion in this fixed order before the clock
advances:

  weather → life cycle (every cell) → dispersal (every cell)
          → diapause hook → invariant check → observers

Life cycle finishes for every cell before any dispersal starts, so
dispersal sees a tick-consistent state.  Observers get a read-only view
of the cell array after the tick is complete.

The diapause stage is a pluggable callable; the default does nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from iris_ticks.config import SimulationConfig, default_config, validate_config
from iris_ticks.dispersal import DispersalStats, dispersal_step
from iris_ticks.environment import WeatherSeries, update_environment
from iris_ticks.lifecycle import LifeCycleStats, lifecycle_step
from iris_ticks.population import check_invariants, grid_stage_totals
from iris_ticks.rng import create_rng
from iris_ticks.spatial import TickGrid, build_grid
from iris_ticks.types import ConfigurationError

logger = logging.getLogger(__name__)

# (grid, tick, rng) -> None; may move ticks between questing and inactive
DiapauseHook = Callable[[TickGrid, int, np.random.Generator], None]

# (tick, read-only cell array) -> None
Observer = Callable[[int, np.ndarray], None]


def no_diapause(grid: TickGrid, tick: int, rng: np.random.Generator) -> None:
    """Default diapause stage: no transitions."""


class Clock:
    """Monotonic tick counter; one tick is one simulated day."""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError(f"Clock must start at tick >= 0, got {start}")
        self._current = start

    @property
    def current(self) -> int:
        return self._current

    def advance(self) -> int:
        self._current += 1
        return self._current


@dataclass
class TickResult:
    """Summary of one completed tick."""
    tick: int
    lifecycle: LifeCycleStats
    dispersal: DispersalStats
    stage_totals: np.ndarray        # (N_STAGES,) grid totals after the tick


@dataclass
class TickModel:
    """The assembled simulation: grid, weather, parameters and RNG."""
    config: SimulationConfig
    grid: TickGrid
    weather: WeatherSeries
    rng: np.random.Generator
    clock: Clock = field(default_factory=Clock)
    diapause: DiapauseHook = no_diapause
    observers: List[Observer] = field(default_factory=list)

    @classmethod
    def from_config(
        cls,
        weather: WeatherSeries,
        config: Optional[SimulationConfig] = None,
        diapause: DiapauseHook = no_diapause,
        observers: Optional[List[Observer]] = None,
    ) -> 'TickModel':
        """Build grid and RNG from config and check the weather covers the run.

        Raises:
            ConfigurationError: If config is invalid or the series is
                shorter than time_steps.
        """
        if config is None:
            config = default_config()
        validate_config(config)
        n_ticks = config.simulation.time_steps
        if len(weather) < n_ticks:
            raise ConfigurationError(
                f"Weather series has {len(weather)} days, "
                f"simulation needs {n_ticks}"
            )
        return cls(
            config=config,
            grid=build_grid(config),
            weather=weather,
            rng=create_rng(config.simulation.seed),
            diapause=diapause,
            observers=list(observers or []),
        )

    def step(self) -> TickResult:
        """Run one full tick, then advance the clock."""
        tick = self.clock.current
        cells = self.grid.cells

        update_environment(cells, self.weather, tick, self.config.climate)
        lc_stats = lifecycle_step(cells, tick, self.config.lifecycle, self.rng)
        disp_stats = dispersal_step(self.grid, self.config.dispersal, self.rng)
        self.diapause(self.grid, tick, self.rng)

        if self.config.simulation.check_invariants:
            check_invariants(cells)

        view = self.grid.read_only()
        for observer in self.observers:
            observer(tick, view)

        result = TickResult(
            tick=tick,
            lifecycle=lc_stats,
            dispersal=disp_stats,
            stage_totals=grid_stage_totals(cells),
        )
        logger.debug("tick %d done: stage totals %s",
                     tick, result.stage_totals.tolist())
        self.clock.advance()
        return result

    def run(self, n_ticks: Optional[int] = None) -> List[TickResult]:
        """Run n_ticks ticks (default: up to simulation.time_steps)."""
        if n_ticks is None:
            n_ticks = self.config.simulation.time_steps - self.clock.current
        logger.info("Running %d ticks from tick %d on %d cells",
                    n_ticks, self.clock.current, self.grid.n_cells)
        results = [self.step() for _ in range(n_ticks)]
        if results:
            logger.info("Finished at tick %d: stage totals %s",
                        self.clock.current, results[-1].stage_totals.tolist())
        return results
