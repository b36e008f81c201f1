"""Environmental forcing module.

Replays a daily weather-station series (tick t reads record t) and maps
it onto each cell's microclimate:

  T_mean(cell) = T_mean(t) + offset[season(t), habitat]
  T_max(cell)  = T_max(t)  + offset[season(t), habitat]
  T_min(cell)  = T_min(t)
  RH(cell)     = clip(RH(t) × multiplier[habitat], 0, 100)

season(t) is 'spring_autumn', 'summer' or None (no offset), from the
half-open tick windows of ClimateSection.  Precipitation and sunshine,
when present in the series, are copied unchanged.

The series is loaded once before tick 0 and never modified.  Asking for
a tick beyond its end is fatal: the model must not outlive its weather.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence, Union

import numpy as np

from iris_ticks.config import ClimateSection
from iris_ticks.types import ConfigurationError, Habitat, WeatherExhaustedError

logger = logging.getLogger(__name__)

# CSV column order of the weather-station export
WEATHER_COLUMNS = (
    'mean_temp',
    'min_temp',
    'max_temp',
    'humidity',
    'precipitation_type',
    'precipitation_height',
    'snow_height',
    'sunshine_hours',
)
_REQUIRED_COLUMNS = 4

SPRING_AUTUMN = 'spring_autumn'
SUMMER = 'summer'


# ═══════════════════════════════════════════════════════════════════════
# WEATHER SERIES
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class WeatherSeries:
    """Ordered daily weather records, one per tick.

    Temperature and humidity are required; precipitation and sunshine
    arrays are None when the source does not provide them.
    """
    mean_temp: np.ndarray
    min_temp: np.ndarray
    max_temp: np.ndarray
    humidity: np.ndarray
    precipitation_type: Optional[np.ndarray] = None
    precipitation_height: Optional[np.ndarray] = None
    snow_height: Optional[np.ndarray] = None
    sunshine_hours: Optional[np.ndarray] = None

    def __post_init__(self):
        n = len(self.mean_temp)
        if n == 0:
            raise ConfigurationError("Weather series is empty")
        for name in WEATHER_COLUMNS:
            if getattr(self, name) is None:
                continue
            arr = np.array(getattr(self, name), dtype=np.float64)
            if arr.ndim != 1 or len(arr) != n:
                raise ConfigurationError(
                    f"Weather column '{name}' has {len(arr)} records, expected {n}"
                )
            bad = np.flatnonzero(~np.isfinite(arr))
            if len(bad):
                raise ConfigurationError(
                    f"Weather column '{name}' has non-finite value at record {bad[0]}"
                )
            if name == 'precipitation_type':
                arr = arr.astype(np.int16)
            object.__setattr__(self, name, arr)
            arr.flags.writeable = False

    def __len__(self) -> int:
        return len(self.mean_temp)

    def check_tick(self, tick: int) -> None:
        """Raise WeatherExhaustedError if there is no record for tick."""
        if tick < 0 or tick >= len(self):
            raise WeatherExhaustedError(
                f"No weather record for tick {tick}: series has {len(self)} days"
            )

    def record(self, tick: int) -> Dict[str, float]:
        """The record for one tick as a dict (missing columns omitted)."""
        self.check_tick(tick)
        out = {}
        for name in WEATHER_COLUMNS:
            arr = getattr(self, name)
            if arr is not None:
                out[name] = arr[tick].item()
        return out

    @classmethod
    def from_records(cls, records: Iterable[Union[Dict[str, float], Sequence[float]]]
                     ) -> 'WeatherSeries':
        """Build a series from dicts keyed by WEATHER_COLUMNS or from rows
        in WEATHER_COLUMNS order.

        Optional columns are kept only if every record provides them.
        """
        rows = []
        for i, rec in enumerate(records):
            if isinstance(rec, dict):
                row = [rec.get(name) for name in WEATHER_COLUMNS]
            else:
                row = list(rec) + [None] * (len(WEATHER_COLUMNS) - len(rec))
            if any(v is None for v in row[:_REQUIRED_COLUMNS]):
                raise ConfigurationError(
                    f"Weather record {i} lacks one of "
                    f"{WEATHER_COLUMNS[:_REQUIRED_COLUMNS]}"
                )
            rows.append(row)
        if not rows:
            raise ConfigurationError("Weather series is empty")

        columns = {}
        for j, name in enumerate(WEATHER_COLUMNS):
            values = [row[j] for row in rows]
            if j >= _REQUIRED_COLUMNS and any(v is None for v in values):
                continue
            columns[name] = values
        return cls(**columns)


def load_weather_csv(path: Union[str, Path]) -> WeatherSeries:
    """Load a weather-station CSV.

    The first line is a header and is skipped; columns are read by
    position in WEATHER_COLUMNS order.  The first four are required,
    the remaining four are used only if every row has them.

    Raises:
        FileNotFoundError: If path doesn't exist.
        ConfigurationError: On short rows, non-numeric values or no data.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Weather file not found: {path}")

    rows = []
    with open(path, newline='') as f:
        reader = csv.reader(f)
        next(reader, None)
        for line_no, line in enumerate(reader, start=2):
            if not line or all(not cell.strip() for cell in line):
                continue
            if len(line) < _REQUIRED_COLUMNS:
                raise ConfigurationError(
                    f"{path}:{line_no}: expected at least {_REQUIRED_COLUMNS} "
                    f"columns, got {len(line)}"
                )
            try:
                row = [float(cell) for cell in line[:len(WEATHER_COLUMNS)]]
            except ValueError:
                raise ConfigurationError(
                    f"{path}:{line_no}: non-numeric weather value in {line}"
                ) from None
            rows.append(row)

    if not rows:
        raise ConfigurationError(f"{path}: no weather records")
    series = WeatherSeries.from_records(rows)
    logger.info("Loaded %d days of weather from %s", len(series), path)
    return series


# ═══════════════════════════════════════════════════════════════════════
# MICROCLIMATE ADJUSTMENT
# ═══════════════════════════════════════════════════════════════════════

def _in_windows(tick: int, windows) -> bool:
    return any(start <= tick < end for start, end in windows)


def season_at(tick: int, climate: ClimateSection) -> Optional[str]:
    """Seasonal window containing tick, or None outside both."""
    if _in_windows(tick, climate.spring_autumn):
        return SPRING_AUTUMN
    if _in_windows(tick, climate.summer):
        return SUMMER
    return None


def habitat_table(table: Dict[str, float], default: float) -> np.ndarray:
    """Per-habitat parameter dict → array indexed by Habitat value."""
    lowered = {k.lower(): v for k, v in table.items()}
    return np.array(
        [lowered.get(h.name.lower(), default) for h in Habitat],
        dtype=np.float64,
    )


def temperature_offset(tick: int, habitat: Habitat, climate: ClimateSection) -> float:
    """Microclimate temperature offset (°C) for one habitat at tick."""
    season = season_at(tick, climate)
    if season is None:
        return 0.0
    table = (climate.spring_autumn_offset if season == SPRING_AUTUMN
             else climate.summer_offset)
    return float(habitat_table(table, 0.0)[habitat])


def update_environment(
    cells: np.ndarray,
    weather: WeatherSeries,
    tick: int,
    climate: ClimateSection,
) -> None:
    """Write every cell's environmental state for tick (in-place).

    Raises:
        WeatherExhaustedError: If the series has no record for tick.
    """
    weather.check_tick(tick)
    habitat = cells['habitat'].astype(np.intp)

    season = season_at(tick, climate)
    if season == SPRING_AUTUMN:
        offset = habitat_table(climate.spring_autumn_offset, 0.0)[habitat]
    elif season == SUMMER:
        offset = habitat_table(climate.summer_offset, 0.0)[habitat]
    else:
        offset = 0.0

    cells['mean_temp'] = weather.mean_temp[tick] + offset
    cells['max_temp'] = weather.max_temp[tick] + offset
    cells['min_temp'] = weather.min_temp[tick]

    multiplier = habitat_table(climate.humidity_multiplier, 1.0)[habitat]
    cells['humidity'] = np.clip(weather.humidity[tick] * multiplier, 0.0, 100.0)

    if weather.precipitation_type is not None:
        cells['precipitation_type'] = weather.precipitation_type[tick]
    if weather.precipitation_height is not None:
        cells['precipitation_height'] = weather.precipitation_height[tick]
    if weather.snow_height is not None:
        cells['snow_height'] = weather.snow_height[tick]
    if weather.sunshine_hours is not None:
        cells['sunshine_hours'] = weather.sunshine_hours[tick]
