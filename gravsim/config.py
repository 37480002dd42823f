"""
Runtime settings for a simulation. Defaults come from ``constants`` and can be
overridden with ``GRAVSIM_*`` environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional

from .constants import (
    MAX_DELTA_T,
    MAX_WARP,
    MIN_WARP,
    SIM_SECONDS_PER_REAL_SECOND,
    WARP_SCALE,
)

INTEGRATORS = ("joint", "per_body")


def debug_enabled() -> bool:
    return os.getenv("GRAVSIM_DEBUG", "false").lower() == "true"


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    if raw.lower() == "none":
        return None
    return float(raw)


@dataclass(frozen=True)
class SimulationSettings:
    sim_seconds_per_real_second: float = SIM_SECONDS_PER_REAL_SECOND
    min_warp: float = MIN_WARP
    max_warp: float = MAX_WARP
    warp_scale: float = WARP_SCALE
    # "joint" advances every body in lock-step; "per_body" integrates each
    # body against a frozen snapshot of the others.
    integrator: str = "joint"
    # Thrust enters the RK4 stages; ignored by the per-body integrator.
    fold_thrust: bool = True
    # None disables sub-stepping.
    max_substep: Optional[float] = MAX_DELTA_T

    def __post_init__(self) -> None:
        if self.integrator not in INTEGRATORS:
            raise ValueError(
                f"Unknown integrator {self.integrator!r}; expected one of {INTEGRATORS}"
            )
        if self.min_warp <= 0 or self.max_warp < self.min_warp:
            raise ValueError("warp range must satisfy 0 < min_warp <= max_warp")
        if self.max_substep is not None and self.max_substep <= 0:
            raise ValueError("max_substep must be positive or None")

    @classmethod
    def from_env(cls) -> SimulationSettings:
        defaults = cls()
        return cls(
            sim_seconds_per_real_second=_env_float(
                "GRAVSIM_SIM_SECONDS_PER_REAL_SECOND",
                defaults.sim_seconds_per_real_second,
            ),
            min_warp=_env_float("GRAVSIM_MIN_WARP", defaults.min_warp),
            max_warp=_env_float("GRAVSIM_MAX_WARP", defaults.max_warp),
            warp_scale=_env_float("GRAVSIM_WARP_SCALE", defaults.warp_scale),
            integrator=os.getenv("GRAVSIM_INTEGRATOR", defaults.integrator),
            fold_thrust=os.getenv("GRAVSIM_FOLD_THRUST", "true").lower() == "true",
            max_substep=_env_float("GRAVSIM_MAX_SUBSTEP", defaults.max_substep),
        )

    def with_overrides(self, **changes) -> SimulationSettings:
        return replace(self, **changes)

    def clamp_warp(self, warp_factor: float) -> float:
        return max(self.min_warp, min(self.max_warp, float(warp_factor)))
