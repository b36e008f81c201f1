"""Tests for iris_ticks.environment — weather series and microclimate."""

import numpy as np
import pytest

from iris_ticks.config import ClimateSection
from iris_ticks.environment import (
    SPRING_AUTUMN,
    SUMMER,
    WeatherSeries,
    habitat_table,
    load_weather_csv,
    season_at,
    temperature_offset,
    update_environment,
)
from iris_ticks.types import (
    ConfigurationError,
    Habitat,
    WeatherExhaustedError,
    allocate_cells,
)


def _series(n=3, mean=15.0, tmin=5.0, tmax=25.0, humidity=80.0):
    return WeatherSeries.from_records(
        [{'mean_temp': mean, 'min_temp': tmin, 'max_temp': tmax,
          'humidity': humidity}] * n
    )


def _cells(*habitats):
    cells = allocate_cells(len(habitats))
    cells['habitat'] = [int(h) for h in habitats]
    return cells


# ═══════════════════════════════════════════════════════════════════════
# WEATHER SERIES
# ═══════════════════════════════════════════════════════════════════════

class TestWeatherSeries:
    def test_from_dicts(self):
        ws = _series(5)
        assert len(ws) == 5
        assert ws.precipitation_type is None
        assert ws.record(2) == {
            'mean_temp': 15.0, 'min_temp': 5.0, 'max_temp': 25.0, 'humidity': 80.0,
        }

    def test_from_rows_with_optional_columns(self):
        ws = WeatherSeries.from_records([
            [10.0, 2.0, 15.0, 85.0, 6, 1.5, 0.0, 4.2],
            [11.0, 3.0, 16.0, 84.0, 0, 0.0, 0.0, 8.0],
        ])
        assert ws.precipitation_type.dtype == np.int16
        np.testing.assert_array_equal(ws.sunshine_hours, [4.2, 8.0])

    def test_optional_dropped_unless_everywhere(self):
        ws = WeatherSeries.from_records([
            [10.0, 2.0, 15.0, 85.0, 6],
            [11.0, 3.0, 16.0, 84.0],
        ])
        assert ws.precipitation_type is None

    def test_missing_required_field(self):
        with pytest.raises(ConfigurationError, match="record 1"):
            WeatherSeries.from_records([
                {'mean_temp': 1, 'min_temp': 0, 'max_temp': 2, 'humidity': 80},
                {'mean_temp': 1, 'min_temp': 0, 'max_temp': 2},
            ])

    def test_empty(self):
        with pytest.raises(ConfigurationError, match="empty"):
            WeatherSeries.from_records([])

    def test_mismatched_lengths(self):
        with pytest.raises(ConfigurationError, match="humidity"):
            WeatherSeries(mean_temp=[1, 2], min_temp=[1, 2], max_temp=[1, 2],
                          humidity=[80])

    def test_non_finite_value_rejected(self):
        with pytest.raises(ConfigurationError, match="'humidity' has non-finite value at record 1"):
            WeatherSeries.from_records([
                [10.0, 2.0, 15.0, 85.0],
                [10.0, 2.0, 15.0, float('nan')],
            ])

    def test_infinite_optional_value_rejected(self):
        with pytest.raises(ConfigurationError, match="sunshine_hours"):
            WeatherSeries.from_records([[10.0, 2.0, 15.0, 85.0, 0, 0.0, 0.0, float('inf')]])

    def test_series_is_read_only(self):
        ws = _series()
        with pytest.raises(ValueError):
            ws.mean_temp[0] = 99.0

    def test_caller_arrays_untouched(self):
        mean = np.array([1.0, 2.0])
        WeatherSeries(mean_temp=mean, min_temp=mean, max_temp=mean, humidity=mean)
        assert mean.flags.writeable
        mean[0] = 5.0

    def test_exhausted(self):
        ws = _series(3)
        ws.check_tick(2)
        with pytest.raises(WeatherExhaustedError, match="tick 3"):
            ws.check_tick(3)
        with pytest.raises(IndexError):
            ws.record(3)


class TestLoadWeatherCsv:
    def test_load(self, tmp_path):
        path = tmp_path / "weather.csv"
        path.write_text(
            "t_mean,t_min,t_max,humidity,precip_type,precip_height,snow,sunshine\n"
            "1.5,-2.0,4.0,90,6,0.3,0.0,1.2\n"
            "\n"
            "2.5,-1.0,5.0,88,0,0.0,0.0,3.4\n"
        )
        ws = load_weather_csv(path)
        assert len(ws) == 2
        np.testing.assert_array_equal(ws.min_temp, [-2.0, -1.0])
        np.testing.assert_array_equal(ws.precipitation_type, [6, 0])

    def test_required_columns_only(self, tmp_path):
        path = tmp_path / "weather.csv"
        path.write_text("mean,min,max,rh\n10,5,15,70\n")
        ws = load_weather_csv(path)
        assert len(ws) == 1
        assert ws.sunshine_hours is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_weather_csv(tmp_path / "nope.csv")

    def test_short_row(self, tmp_path):
        path = tmp_path / "weather.csv"
        path.write_text("mean,min,max,rh\n10,5,15,70\n10,5\n")
        with pytest.raises(ConfigurationError, match=":3:"):
            load_weather_csv(path)

    def test_non_numeric(self, tmp_path):
        path = tmp_path / "weather.csv"
        path.write_text("mean,min,max,rh\n10,5,warm,70\n")
        with pytest.raises(ConfigurationError, match="non-numeric"):
            load_weather_csv(path)

    @pytest.mark.parametrize("value", ["nan", "inf", "-inf"])
    def test_non_finite_values(self, tmp_path, value):
        path = tmp_path / "weather.csv"
        path.write_text(f"mean,min,max,rh\n10,5,15,70\n{value},{value},{value},{value}\n")
        with pytest.raises(ConfigurationError, match="non-finite"):
            load_weather_csv(path)

    def test_header_only(self, tmp_path):
        path = tmp_path / "weather.csv"
        path.write_text("mean,min,max,rh\n")
        with pytest.raises(ConfigurationError, match="no weather records"):
            load_weather_csv(path)


# ═══════════════════════════════════════════════════════════════════════
# MICROCLIMATE
# ═══════════════════════════════════════════════════════════════════════

class TestSeasons:
    @pytest.mark.parametrize("tick, expected", [
        (0, None),
        (59, None),
        (60, SPRING_AUTUMN),
        (151, SPRING_AUTUMN),
        (152, SUMMER),
        (243, SUMMER),
        (244, SPRING_AUTUMN),
        (334, SPRING_AUTUMN),
        (335, None),
        (364, None),
    ])
    def test_default_windows(self, tick, expected):
        assert season_at(tick, ClimateSection()) == expected

    def test_temperature_offset(self):
        climate = ClimateSection()
        assert temperature_offset(200, Habitat.WOOD, climate) == -2.5
        assert temperature_offset(100, Habitat.WOOD, climate) == -1.0
        assert temperature_offset(100, Habitat.PASTURE, climate) == 0.0
        assert temperature_offset(10, Habitat.WOOD, climate) == 0.0

    def test_habitat_table(self):
        table = habitat_table({'Wood': 2.0, 'pasture': 1.0}, -1.0)
        assert table[Habitat.WOOD] == 2.0
        assert table[Habitat.PASTURE] == 1.0
        assert table[Habitat.FOREST] == -1.0


class TestUpdateEnvironment:
    def test_summer_offsets(self):
        ws = _series(200, mean=20.0, tmin=10.0, tmax=30.0)
        cells = _cells(Habitat.PASTURE, Habitat.ECOTONE, Habitat.WOOD)
        update_environment(cells, ws, 160, ClimateSection())
        np.testing.assert_allclose(cells['mean_temp'], [20.0, 18.5, 17.5])
        np.testing.assert_allclose(cells['max_temp'], [30.0, 28.5, 27.5])
        # minimum temperature is never adjusted
        np.testing.assert_array_equal(cells['min_temp'], 10.0)

    def test_no_offset_outside_windows(self):
        ws = _series(5, mean=3.0)
        cells = _cells(Habitat.WOOD, Habitat.FOREST)
        update_environment(cells, ws, 4, ClimateSection())
        np.testing.assert_array_equal(cells['mean_temp'], 3.0)

    def test_humidity_clamped(self):
        ws = _series(3, humidity=95.0)
        cells = _cells(Habitat.PASTURE, Habitat.WOOD)
        update_environment(cells, ws, 0, ClimateSection())
        assert cells['humidity'][0] == 95.0
        assert cells['humidity'][1] == 100.0

    def test_humidity_multiplied(self):
        ws = _series(3, humidity=50.0)
        cells = _cells(Habitat.WOOD)
        update_environment(cells, ws, 0, ClimateSection())
        assert cells['humidity'][0] == pytest.approx(55.0)

    def test_optional_columns_copied(self):
        ws = WeatherSeries.from_records([[5.0, 1.0, 9.0, 80.0, 7, 2.5, 10.0, 0.5]])
        cells = _cells(Habitat.WOOD, Habitat.PASTURE)
        update_environment(cells, ws, 0, ClimateSection())
        np.testing.assert_array_equal(cells['precipitation_type'], 7)
        np.testing.assert_array_equal(cells['snow_height'], 10.0)
        np.testing.assert_array_equal(cells['sunshine_hours'], 0.5)

    def test_beyond_series_is_fatal(self):
        ws = _series(3)
        with pytest.raises(WeatherExhaustedError):
            update_environment(_cells(Habitat.WOOD), ws, 3, ClimateSection())

    def test_series_not_modified(self):
        ws = _series(200, mean=20.0)
        cells = _cells(Habitat.WOOD)
        update_environment(cells, ws, 160, ClimateSection())
        assert ws.mean_temp[160] == 20.0
