"""CSV time-series observers.

Both writers are model observers: called as writer(tick, cells) with a
read-only cell array after every tick.  They never modify model state.

  - CsvTimeSeriesWriter: one row per cell per tick
  - HabitatSummaryWriter: one row per tick, questing nymphs per habitat

Usage:
    with CsvTimeSeriesWriter("out/cells.csv") as cells_out:
        model = TickModel.from_config(weather, config, observers=[cells_out])
        model.run()
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Union

import numpy as np

from iris_ticks.types import CohortState, Habitat, LifeStage

_STAGE_NAMES = {
    LifeStage.LARVA: 'larvae',
    LifeStage.NYMPH: 'nymphs',
    LifeStage.ADULT: 'adults',
}


def cohort_columns():
    """(column name, stage, state, infected?) for every cohort column."""
    columns = []
    for state in CohortState:
        for stage in LifeStage:
            base = f"{state.name.lower()}_{_STAGE_NAMES[stage]}"
            columns.append((base, stage, state, False))
            columns.append((f"{base}_infected", stage, state, True))
    return columns


class _CsvObserver:
    """Shared file handling for the CSV writers."""

    header: tuple = ()

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.path, 'w', newline='')
        self._writer = csv.writer(self._file)
        self._writer.writerow(self.header)

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class CsvTimeSeriesWriter(_CsvObserver):
    """One row per cell per tick with every cohort count and the weather."""

    def __init__(self, path: Union[str, Path]):
        self._columns = cohort_columns()
        self.header = (
            ('tick', 'x', 'y', 'habitat')
            + tuple(name for name, _, _, _ in self._columns)
            + ('t_mean', 't_min', 't_max', 'humidity')
        )
        super().__init__(path)

    def __call__(self, tick: int, cells: np.ndarray) -> None:
        counts = cells['counts']
        infected = cells['infected']
        for i in range(len(cells)):
            row = [tick, int(cells['x'][i]), int(cells['y'][i]),
                   Habitat(int(cells['habitat'][i])).name.lower()]
            for _, stage, state, is_infected in self._columns:
                source = infected if is_infected else counts
                row.append(int(source[i, stage, state]))
            row += [
                f"{cells['mean_temp'][i]:.2f}",
                f"{cells['min_temp'][i]:.2f}",
                f"{cells['max_temp'][i]:.2f}",
                f"{cells['humidity'][i]:.2f}",
            ]
            self._writer.writerow(row)


class HabitatSummaryWriter(_CsvObserver):
    """One row per tick: questing nymphs grid-wide and per habitat.

    Weather columns are those of the last cell in id order.
    """

    def __init__(self, path: Union[str, Path]):
        self.header = (
            ('tick', 'questing_nymphs', 'questing_nymphs_infected')
            + tuple(
                col
                for h in Habitat
                for col in (f"questing_nymphs_{h.name.lower()}",
                            f"questing_nymphs_{h.name.lower()}_infected")
            )
            + ('mean_temperature', 'max_temperature', 'humidity')
        )
        super().__init__(path)

    def __call__(self, tick: int, cells: np.ndarray) -> None:
        nymphs = cells['counts'][:, LifeStage.NYMPH, CohortState.QUESTING]
        nymphs_inf = cells['infected'][:, LifeStage.NYMPH, CohortState.QUESTING]
        habitat = cells['habitat']

        row = [tick, int(nymphs.sum()), int(nymphs_inf.sum())]
        for h in Habitat:
            mask = habitat == h
            row += [int(nymphs[mask].sum()), int(nymphs_inf[mask].sum())]
        row += [
            f"{cells['mean_temp'][-1]:.2f}",
            f"{cells['max_temp'][-1]:.2f}",
            f"{cells['humidity'][-1]:.2f}",
        ]
        self._writer.writerow(row)
