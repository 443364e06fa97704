"""Service Layer: Simulation orchestration."""

from __future__ import annotations

from .simulation_service import SimulationService

__all__ = ["SimulationService"]
