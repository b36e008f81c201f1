"""Core data types for IRIS-Ticks.

This module is the SINGLE SOURCE OF TRUTH for:
  - CELL_DTYPE: NumPy structured array dtype for grid cells
  - LifeStage, CohortState, Habitat enumerations
  - Position (immutable grid coordinate)
  - Error taxonomy shared by all engines

All modules import these types from here. No other module defines cell fields.
"""

from dataclasses import dataclass
from enum import IntEnum

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class LifeStage(IntEnum):
    """Life stages of the tick, in development order.

    Development cycles through the stages via the fed bucket:
      fed LARVA  →  inactive NYMPH
      fed NYMPH  →  inactive ADULT
      fed ADULT  →  inactive LARVA   (egg batch hatching)
    """
    LARVA = 0
    NYMPH = 1
    ADULT = 2


class CohortState(IntEnum):
    """Behavioural / physiological state of a cohort."""
    QUESTING      = 0   # host-seeking; the active, dispersal-eligible bucket
    INACTIVE      = 1   # dormant, pre-activation or diapausing
    FED           = 2   # freshly fed, pre-molt; dispersal arrivals land here
    ENGORGED      = 3
    LATE_ENGORGED = 4


class Habitat(IntEnum):
    """Habitat category of a grid cell.

    Two vocabularies are in use depending on the landscape configuration:
    pasture/ecotone/wood and forest/meadow/ecotone.
    """
    PASTURE = 0
    ECOTONE = 1
    WOOD    = 2
    FOREST  = 3
    MEADOW  = 4

    @classmethod
    def from_name(cls, name: str) -> 'Habitat':
        """Parse a case-insensitive habitat name (e.g. 'wood')."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(
                f"Unknown habitat '{name}'. "
                f"Valid: {[h.name.lower() for h in cls]}"
            ) from None


N_STAGES = len(LifeStage)
N_STATES = len(CohortState)


# ═══════════════════════════════════════════════════════════════════════
# POSITION
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Position:
    """Immutable integer grid coordinate; the SpatialIndex key."""
    x: int
    y: int

    def moved_by(self, dx: int, dy: int) -> 'Position':
        return Position(self.x + dx, self.y + dy)


# ═══════════════════════════════════════════════════════════════════════
# CELL_DTYPE — Canonical structured array for grid cells
# ═══════════════════════════════════════════════════════════════════════

CELL_DTYPE = np.dtype([
    # --- Identity (set once by the grid initializer) ---
    ('x',                    np.int32),
    ('y',                    np.int32),
    ('habitat',              np.int8),      # Habitat enum

    # --- Cohort matrix (LIFECYCLE / DISPERSAL / DIAPAUSE write) ---
    ('counts',               np.int64, (N_STAGES, N_STATES)),
    ('infected',             np.int64, (N_STAGES, N_STATES)),
                                            # infected[s, k] <= counts[s, k]

    # --- Environment (WEATHER writes) ---
    ('mean_temp',            np.float64),   # °C
    ('min_temp',             np.float64),   # °C
    ('max_temp',             np.float64),   # °C
    ('humidity',             np.float64),   # relative humidity %, [0, 100]
    ('precipitation_type',   np.int16),     # station code, 0 when unknown
    ('precipitation_height', np.float64),   # mm
    ('snow_height',          np.float64),   # cm
    ('sunshine_hours',       np.float64),   # h
])


def allocate_cells(n: int) -> np.ndarray:
    """Allocate a zeroed cell array.

    Args:
        n: Number of grid cells.

    Returns:
        Zeroed structured array of shape (n,) with CELL_DTYPE.
    """
    return np.zeros(n, dtype=CELL_DTYPE)


# ═══════════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════════

class ConfigurationError(ValueError):
    """Fatal start-up error: bad parameters, weather data or grid setup."""


class WeatherExhaustedError(IndexError):
    """The current tick lies beyond the loaded weather series."""


class CohortInvariantError(AssertionError):
    """A cohort count went negative or infected exceeded total."""
