"""Tests for iris_ticks.recording — CSV observers."""

import csv

import numpy as np

from iris_ticks.config import default_config
from iris_ticks.environment import WeatherSeries
from iris_ticks.model import TickModel
from iris_ticks.recording import (
    CsvTimeSeriesWriter,
    HabitatSummaryWriter,
    cohort_columns,
)
from iris_ticks.types import CohortState, Habitat, LifeStage, allocate_cells


def _read(path):
    with open(path, newline='') as f:
        return list(csv.DictReader(f))


def _cells():
    cells = allocate_cells(3)
    cells['x'] = [0, 0, 1]
    cells['y'] = [0, 1, 0]
    cells['habitat'] = [int(Habitat.WOOD), int(Habitat.ECOTONE), int(Habitat.WOOD)]
    cells['counts'][:, LifeStage.NYMPH, CohortState.QUESTING] = [10, 20, 30]
    cells['infected'][:, LifeStage.NYMPH, CohortState.QUESTING] = [1, 2, 3]
    cells['counts'][0, LifeStage.ADULT, CohortState.LATE_ENGORGED] = 4
    cells['mean_temp'] = [10.0, 11.0, 12.5]
    cells['max_temp'] = 20.0
    cells['humidity'] = [80.0, 81.0, 82.25]
    return cells


class TestCohortColumns:
    def test_every_bucket_twice(self):
        columns = cohort_columns()
        assert len(columns) == 30
        names = [name for name, _, _, _ in columns]
        assert len(set(names)) == 30
        assert names[:2] == ['questing_larvae', 'questing_larvae_infected']
        assert 'late_engorged_adults' in names


class TestCsvTimeSeriesWriter:
    def test_rows_per_cell(self, tmp_path):
        path = tmp_path / "out" / "cells.csv"
        with CsvTimeSeriesWriter(path) as writer:
            writer(0, _cells())
            writer(1, _cells())
        rows = _read(path)
        assert len(rows) == 6
        first = rows[0]
        assert first['tick'] == '0'
        assert first['habitat'] == 'wood'
        assert first['questing_nymphs'] == '10'
        assert first['questing_nymphs_infected'] == '1'
        assert first['late_engorged_adults'] == '4'
        assert first['t_mean'] == '10.00'
        assert rows[1]['habitat'] == 'ecotone'
        assert rows[5]['tick'] == '1'
        assert rows[5]['x'] == '1'

    def test_header(self, tmp_path):
        path = tmp_path / "cells.csv"
        CsvTimeSeriesWriter(path).close()
        with open(path) as f:
            header = f.readline().strip().split(',')
        assert header[:4] == ['tick', 'x', 'y', 'habitat']
        assert header[-4:] == ['t_mean', 't_min', 't_max', 'humidity']
        assert len(header) == 4 + 30 + 4


class TestHabitatSummaryWriter:
    def test_one_row_per_tick(self, tmp_path):
        path = tmp_path / "habitats.csv"
        with HabitatSummaryWriter(path) as writer:
            writer(7, _cells())
        rows = _read(path)
        assert len(rows) == 1
        row = rows[0]
        assert row['tick'] == '7'
        assert row['questing_nymphs'] == '60'
        assert row['questing_nymphs_infected'] == '6'
        assert row['questing_nymphs_wood'] == '40'
        assert row['questing_nymphs_wood_infected'] == '4'
        assert row['questing_nymphs_ecotone'] == '20'
        assert row['questing_nymphs_pasture'] == '0'
        # weather of the last cell
        assert row['mean_temperature'] == '12.50'
        assert row['humidity'] == '82.25'

    def test_close_is_idempotent(self, tmp_path):
        writer = HabitatSummaryWriter(tmp_path / "h.csv")
        writer.close()
        writer.close()


class TestWritersAsObservers:
    def test_model_run(self, tmp_path):
        config = default_config()
        config.simulation.time_steps = 3
        config.grid.width = 4
        config.grid.height = 2
        weather = WeatherSeries.from_records(
            [[12.0, 5.0, 18.0, 85.0]] * 3
        )
        cells_path = tmp_path / "cells.csv"
        habitats_path = tmp_path / "habitats.csv"
        with CsvTimeSeriesWriter(cells_path) as cells_out, \
                HabitatSummaryWriter(habitats_path) as habitats_out:
            model = TickModel.from_config(weather, config,
                                          observers=[cells_out, habitats_out])
            model.run()

        cell_rows = _read(cells_path)
        assert len(cell_rows) == 3 * 8
        assert [r['tick'] for r in cell_rows[::8]] == ['0', '1', '2']
        summary = _read(habitats_path)
        assert len(summary) == 3
        final_nymphs = model.grid.cells['counts'][:, LifeStage.NYMPH, CohortState.QUESTING]
        assert int(summary[-1]['questing_nymphs']) == int(np.sum(final_nymphs))
