"""Pydantic models for request/response schemas.

Models:
- control_charts.py - SPC input, inspection records and result bundle
"""

from app.models.control_charts import InspectionSPCInput, SPCInput, SPCResult

__all__ = ["SPCInput", "InspectionSPCInput", "SPCResult"]
