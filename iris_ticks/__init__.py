"""IRIS-Ticks: spatially explicit stochastic model of a tick vector population.

A grid of habitat cells, each holding a cohort matrix of
  - life stages (larva, nymph, adult)
  - behavioural states (questing, inactive, fed, engorged, late-engorged)
  - infection status (infected sub-count per cohort)

driven day by day by a weather time series:
  weather → development / freezing / desiccation → dispersal → diapause
"""

__version__ = "0.1.0"
