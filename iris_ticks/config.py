"""Configuration system for IRIS-Ticks.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Per-stage parameters are 3-element lists indexed by LifeStage
(larva, nymph, adult).  Per-habitat parameters are dicts keyed by
lower-case habitat name ('wood', 'ecotone', ...).  Tick windows are
half-open [start, end) intervals of tick indices.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import yaml

from iris_ticks.types import ConfigurationError, Habitat


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Top-level simulation timing and control."""
    time_steps: int = 365           # ticks (days) to simulate
    seed: int = 42
    weather_file: str = "data/weather/weather.csv"
    check_invariants: bool = True   # verify cohort invariants after every tick


@dataclass
class GridSection:
    """Grid dimensions and habitat layout.

    habitat_layout:
      'banded'  — mirrored stripes along x: pasture | ecotone | wood | ecotone | pasture
      'uniform' — every cell gets `habitat`
    """
    width: int = 60
    height: int = 60
    habitat_layout: str = "banded"
    habitat: str = "wood"


@dataclass
class InitialSection:
    """Initial per-bucket counts, identical in every cell."""
    questing: List[int] = field(default_factory=lambda: [150, 150, 150])
    inactive: List[int] = field(default_factory=lambda: [0, 0, 0])
    fed: List[int] = field(default_factory=lambda: [0, 0, 0])
    infected_questing: List[int] = field(default_factory=lambda: [0, 0, 0])


@dataclass
class LifeCycleSection:
    """Development windows and mortality thresholds.

    Development moves fed individuals to the next stage's inactive
    bucket from begin_of_development until the per-transition end tick.
    """
    begin_of_development: int = 60
    end_of_development_larvae_to_nymphs: int = 273
    end_of_development_nymphs_to_adults: int = 273
    end_of_development_adults_to_larvae: int = 243

    # Freezing: min temperature strictly below threshold
    freezing_min_temp: float = -10.0                 # °C, snow-free ground
    freezing_rate: List[float] = field(default_factory=lambda: [0.05, 0.05, 0.03])

    # Desiccation: humidity below AND mean temperature above
    desiccation_min_humidity: float = 70.0           # % RH
    desiccation_min_mean_temp: float = 20.0          # °C
    desiccation_rate: Dict[str, float] = field(default_factory=lambda: {
        'pasture': 0.10,
        'meadow': 0.10,
        'ecotone': 0.05,
        'wood': 0.01,
        'forest': 0.01,
    })


@dataclass
class DispersalSection:
    """Host-mediated dispersal between grid cells.

    fallback applies once max_retries draws all landed off-grid:
      'skip'  — no transfer for that stage this tick
      'clamp' — use the last drawn destination clamped into the grid
    """
    rate: List[float] = field(default_factory=lambda: [0.01, 0.01, 0.01])
    max_retries: int = 1000
    fallback: str = "skip"


@dataclass
class ClimateSection:
    """Habitat microclimate adjustment of the weather station series.

    Each season is a list of half-open [start, end) tick windows.  Inside
    a window the per-habitat offset (°C) is added to mean and max
    temperature.  Humidity is multiplied per habitat, then clamped to
    [0, 100].
    """
    spring_autumn: List[List[int]] = field(
        default_factory=lambda: [[60, 152], [244, 335]]
    )
    summer: List[List[int]] = field(default_factory=lambda: [[152, 244]])
    spring_autumn_offset: Dict[str, float] = field(default_factory=lambda: {
        'pasture': 0.0,
        'meadow': 0.0,
        'ecotone': -0.5,
        'wood': -1.0,
        'forest': -1.0,
    })
    summer_offset: Dict[str, float] = field(default_factory=lambda: {
        'pasture': 0.0,
        'meadow': 0.0,
        'ecotone': -1.5,
        'wood': -2.5,
        'forest': -2.5,
    })
    humidity_multiplier: Dict[str, float] = field(default_factory=lambda: {
        'pasture': 1.0,
        'meadow': 1.0,
        'ecotone': 1.05,
        'wood': 1.1,
        'forest': 1.1,
    })


@dataclass
class OutputSection:
    """Output control."""
    directory: str = "results/"
    cell_timeseries: bool = True     # one row per cell per tick
    habitat_summary: bool = True     # one row per tick


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    grid: GridSection = field(default_factory=GridSection)
    initial: InitialSection = field(default_factory=InitialSection)
    lifecycle: LifeCycleSection = field(default_factory=LifeCycleSection)
    dispersal: DispersalSection = field(default_factory=DispersalSection)
    climate: ClimateSection = field(default_factory=ClimateSection)
    output: OutputSection = field(default_factory=OutputSection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


_SECTION_MAP = {
    'simulation': SimulationSection,
    'grid': GridSection,
    'initial': InitialSection,
    'lifecycle': LifeCycleSection,
    'dispersal': DispersalSection,
    'climate': ClimateSection,
    'output': OutputSection,
}


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return SimulationConfig(**sections)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def layout_habitats(grid: GridSection) -> Set[Habitat]:
    """Habitats that the configured grid layout will place."""
    if grid.habitat_layout == 'banded':
        return {Habitat.PASTURE, Habitat.ECOTONE, Habitat.WOOD}
    return {Habitat.from_name(grid.habitat)}


def _check_stage_list(name: str, values: List, rate: bool = False) -> None:
    if len(values) != 3:
        raise ConfigurationError(
            f"{name} must have 3 elements (larva, nymph, adult), got {len(values)}"
        )
    for v in values:
        if rate and not (0.0 <= v <= 1.0):
            raise ConfigurationError(f"{name} values must be in [0, 1], got {values}")
        if not rate and v < 0:
            raise ConfigurationError(f"{name} values must be >= 0, got {values}")


def _check_habitat_table(name: str, table: Dict[str, float],
                         required: Set[Habitat], rate: bool = False) -> None:
    for key, value in table.items():
        try:
            Habitat.from_name(key)
        except ValueError as exc:
            raise ConfigurationError(f"{name}: {exc}") from None
        if rate and not (0.0 <= value <= 1.0):
            raise ConfigurationError(
                f"{name}['{key}'] must be in [0, 1], got {value}"
            )
    missing = sorted(h.name.lower() for h in required
                     if h.name.lower() not in {k.lower() for k in table})
    if missing:
        raise ConfigurationError(f"{name} has no entry for habitat(s) {missing}")


def _check_windows(name: str, windows: List[List[int]]) -> None:
    for w in windows:
        if len(w) != 2:
            raise ConfigurationError(f"{name} windows must be [start, end], got {w}")
        start, end = w
        if start < 0 or start >= end:
            raise ConfigurationError(
                f"{name} window {w} must satisfy 0 <= start < end"
            )


def _windows_overlap(a: List[List[int]], b: List[List[int]]) -> bool:
    return any(s1 < e2 and s2 < e1 for s1, e1 in a for s2, e2 in b)


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints.

    Raises:
        ConfigurationError: On the first violated constraint.
    """
    sim = config.simulation
    if sim.time_steps < 1:
        raise ConfigurationError(
            f"simulation.time_steps must be >= 1, got {sim.time_steps}"
        )
    if sim.seed < 0:
        raise ConfigurationError("simulation.seed must be non-negative")

    # Grid
    g = config.grid
    if g.width < 1 or g.height < 1:
        raise ConfigurationError(
            f"grid dimensions must be positive, got {g.width}x{g.height}"
        )
    valid_layouts = {'banded', 'uniform'}
    if g.habitat_layout not in valid_layouts:
        raise ConfigurationError(
            f"grid.habitat_layout must be one of {valid_layouts}, "
            f"got '{g.habitat_layout}'"
        )
    try:
        habitats = layout_habitats(g)
    except ValueError as exc:
        raise ConfigurationError(f"grid.habitat: {exc}") from None

    # Initial counts
    init = config.initial
    _check_stage_list('initial.questing', init.questing)
    _check_stage_list('initial.inactive', init.inactive)
    _check_stage_list('initial.fed', init.fed)
    _check_stage_list('initial.infected_questing', init.infected_questing)
    for stage, (inf, tot) in enumerate(zip(init.infected_questing, init.questing)):
        if inf > tot:
            raise ConfigurationError(
                f"initial.infected_questing[{stage}] ({inf}) exceeds "
                f"initial.questing[{stage}] ({tot})"
            )

    # Life cycle
    lc = config.lifecycle
    for name in ('end_of_development_larvae_to_nymphs',
                 'end_of_development_nymphs_to_adults',
                 'end_of_development_adults_to_larvae'):
        end = getattr(lc, name)
        if end < lc.begin_of_development:
            raise ConfigurationError(
                f"lifecycle.{name} ({end}) must be >= "
                f"lifecycle.begin_of_development ({lc.begin_of_development})"
            )
    _check_stage_list('lifecycle.freezing_rate', lc.freezing_rate, rate=True)
    _check_habitat_table('lifecycle.desiccation_rate', lc.desiccation_rate,
                         habitats, rate=True)

    # Dispersal
    d = config.dispersal
    _check_stage_list('dispersal.rate', d.rate, rate=True)
    if d.max_retries < 1:
        raise ConfigurationError(
            f"dispersal.max_retries must be >= 1, got {d.max_retries}"
        )
    valid_fallbacks = {'skip', 'clamp'}
    if d.fallback not in valid_fallbacks:
        raise ConfigurationError(
            f"dispersal.fallback must be one of {valid_fallbacks}, "
            f"got '{d.fallback}'"
        )

    # Climate
    c = config.climate
    _check_windows('climate.spring_autumn', c.spring_autumn)
    _check_windows('climate.summer', c.summer)
    if _windows_overlap(c.spring_autumn, c.summer):
        raise ConfigurationError(
            "climate.spring_autumn and climate.summer windows overlap"
        )
    _check_habitat_table('climate.spring_autumn_offset', c.spring_autumn_offset, set())
    _check_habitat_table('climate.summer_offset', c.summer_offset, set())
    _check_habitat_table('climate.humidity_multiplier', c.humidity_multiplier, set())
    if any(m < 0 for m in c.humidity_multiplier.values()):
        raise ConfigurationError("climate.humidity_multiplier values must be >= 0")


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ConfigurationError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
