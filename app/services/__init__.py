"""Calculation services for statistical computations.

Services:
- spc_calculator.py - X-bar/R control limits, Cp/Cpk, histogram
- inspection.py - Inspection record filtering and parsing
"""

from app.services.spc_calculator import (
    InsufficientData,
    InvalidConfiguration,
    InvalidMeasurement,
    SPCCalculator,
    SPCError,
)

__all__ = [
    "SPCCalculator",
    "SPCError",
    "InvalidConfiguration",
    "InsufficientData",
    "InvalidMeasurement",
]
