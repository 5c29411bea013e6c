"""Control Charts (SPC) computation router.

Provides SPC analysis endpoints:
- POST /api/control-charts/compute - Analysis from a flat list of measurements
- POST /api/control-charts/compute-inspection - Analysis from PIR inspection records
- GET /api/control-charts/constants - Control chart constants by subgroup size
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.config import settings
from app.models.control_charts import InspectionSPCInput, SPCInput, SPCResult
from app.services.inspection import build_spc_input
from app.services.spc_calculator import (
    CONTROL_CHART_CONSTANTS,
    SPCCalculator,
    SPCError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Singleton calculator instance (stateless)
_calculator = SPCCalculator()


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "error",
            "error": {
                "code": code,
                "message": message,
            },
        },
    )


def _check_request_size(count: int) -> None:
    """Reject requests above the configured measurement limit."""
    if count > settings.max_measurements:
        raise ValueError(
            f"Se admiten como máximo {settings.max_measurements} mediciones por análisis, "
            f"se recibieron {count}"
        )


def _run_analysis(build_input, label: str) -> JSONResponse:
    """Run the calculator and wrap the outcome in the response envelope."""
    try:
        result: SPCResult = _calculator.calculate(build_input())

        return JSONResponse(
            status_code=200,
            content={
                "status": "success",
                "data": result.model_dump(),
            },
        )

    except SPCError as e:
        logger.warning(f"{label} rejected ({e.code}): {e}")
        return _error_response(400, e.code, e.message)

    except ValueError as e:
        logger.warning(f"{label} validation error: {e}")
        return _error_response(
            400, "VALIDATION_ERROR", f"Datos de entrada inválidos: {str(e)}"
        )

    except Exception as e:
        # Unexpected error - log in English, respond in Spanish
        logger.error(f"{label} calculation error: {e}", exc_info=True)
        return _error_response(
            500,
            "CALCULATION_ERROR",
            "Error al calcular el análisis SPC. Por favor, verifica los datos e intenta de nuevo.",
        )


@router.post(
    "/compute",
    response_model=None,
    summary="Calcular análisis SPC (X-barra/R, Cp/Cpk, histograma)",
    description="""
    Calcula los gráficos de control X-barra y R, los índices de capacidad
    del proceso y el histograma a partir de una lista de mediciones.

    **Requisitos:**
    - Tamaño de subgrupo entre 1 y 5
    - USL mayor que LSL
    - Al menos un subgrupo completo de mediciones

    Las mediciones finales que no completan un subgrupo se descartan.
    """,
    responses={
        200: {
            "description": "Análisis SPC completado exitosamente",
            "content": {
                "application/json": {
                    "example": {
                        "status": "success",
                        "data": {
                            "sample_size": 2,
                            "n_measurements": 8,
                            "n_subgroups": 4,
                            "discarded_measurements": 0,
                            "metrics": {"x_bar": 11.0, "cp": 1.1785, "cpk": 0.9428},
                            "control_charts": {
                                "limits": {
                                    "x_bar_ucl": 13.046,
                                    "x_bar_lcl": 8.954,
                                    "x_bar_mean": 11.0,
                                    "range_ucl": 6.534,
                                    "range_lcl": 0.0,
                                    "range_mean": 2.0,
                                },
                            },
                            "distribution": {"histogram": {"number_of_bins": 3}},
                        },
                    }
                }
            },
        },
        400: {
            "description": "Configuración inválida o datos insuficientes",
            "content": {
                "application/json": {
                    "example": {
                        "status": "error",
                        "error": {
                            "code": "INVALID_CONFIGURATION",
                            "message": "El tamaño del subgrupo debe estar entre 1 y 5, se recibió 6",
                        },
                    }
                }
            },
        },
        500: {
            "description": "Error interno del servidor",
        },
    },
)
async def compute_control_charts(data: SPCInput) -> JSONResponse:
    """Compute SPC analysis from a flat list of measurements.

    Args:
        data: Measurements, specification limits and subgroup size

    Returns:
        JSON response with SPC results or error
    """
    def build_input() -> SPCInput:
        _check_request_size(len(data.measurements))
        return data

    return _run_analysis(build_input, "SPC")


@router.post(
    "/compute-inspection",
    response_model=None,
    summary="Calcular análisis SPC desde registros de inspección",
    description="""
    Filtra los registros de inspección por los turnos seleccionados,
    interpreta `ActualSpecification` como medición y toma LSL/USL de
    `FromSpecification`/`ToSpecification` del primer registro.
    """,
    responses={
        400: {
            "description": "Registros inválidos, configuración inválida o datos insuficientes",
            "content": {
                "application/json": {
                    "example": {
                        "status": "error",
                        "error": {
                            "code": "INVALID_MEASUREMENT",
                            "message": "El registro 3 tiene un valor no numérico en ActualSpecification: 'N/A'",
                        },
                    }
                }
            },
        },
    },
)
async def compute_from_inspection(data: InspectionSPCInput) -> JSONResponse:
    """Compute SPC analysis from PIR inspection records.

    Args:
        data: Inspection records, selected shifts and subgroup size

    Returns:
        JSON response with SPC results or error
    """
    def build_input() -> SPCInput:
        _check_request_size(len(data.records))
        return build_spc_input(data)

    return _run_analysis(build_input, "Inspection SPC")


@router.get(
    "/constants",
    response_model=None,
    summary="Constantes de gráficos de control",
    description="Devuelve las constantes A2, D3, D4 y d2 para los tamaños de subgrupo admitidos (1 a 5).",
)
async def get_constants() -> JSONResponse:
    """Return the control chart constants table."""
    return JSONResponse(
        status_code=200,
        content={
            "status": "success",
            "data": [constants.model_dump() for constants in CONTROL_CHART_CONSTANTS.values()],
        },
    )
