"""
Host-side warp factor: how many simulated seconds pass per real second on
top of the system's base rate. Keyboard handlers call ``speed_up`` and
``slow_down``; the value always stays inside the configured range.
"""

from __future__ import annotations

from typing import Optional

from .config import SimulationSettings


class WarpControl:
    def __init__(
        self, value: float = 1.0, settings: Optional[SimulationSettings] = None
    ) -> None:
        self.settings = settings or SimulationSettings()
        self.value = self.settings.clamp_warp(value)

    @property
    def at_max(self) -> bool:
        return self.value >= self.settings.max_warp

    @property
    def at_min(self) -> bool:
        return self.value <= self.settings.min_warp

    def set(self, value: float) -> float:
        self.value = self.settings.clamp_warp(value)
        return self.value

    def speed_up(self) -> bool:
        """Multiply by the warp scale. Returns False once the maximum is hit."""
        if self.at_max:
            return False
        self.set(self.value * self.settings.warp_scale)
        return True

    def slow_down(self) -> bool:
        """Divide by the warp scale. Returns False once the minimum is hit."""
        if self.at_min:
            return False
        self.set(self.value / self.settings.warp_scale)
        return True

    def __float__(self) -> float:
        return self.value
