"""API routers for the SPC Computation Service."""

from app.routers import control_charts, health

__all__ = ["health", "control_charts"]
