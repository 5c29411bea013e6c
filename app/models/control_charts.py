"""Pydantic models for SPC (Statistical Process Control) computation.

Models for control chart input data, inspection records, and the result
bundle (control limits, capability metrics, chart series, histogram).
"""

import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SPCInput(BaseModel):
    """Input data for an SPC analysis run.

    Attributes:
        measurements: Flat sequence of measured values, in inspection order
        lsl: Lower specification limit
        usl: Upper specification limit
        sample_size: Subgroup size (1 to 5)
    """

    measurements: list[float] = Field(
        ...,
        min_length=1,
        description="Lista de mediciones en orden de inspección (mínimo 1)",
        json_schema_extra={"example": [10.0, 12.0, 11.0, 13.0, 9.0, 11.0, 10.0, 12.0]},
    )
    lsl: float = Field(
        ...,
        description="Límite inferior de especificación (LSL)",
        json_schema_extra={"example": 5.0},
    )
    usl: float = Field(
        ...,
        description="Límite superior de especificación (USL)",
        json_schema_extra={"example": 15.0},
    )
    sample_size: int = Field(
        default=1,
        description="Tamaño del subgrupo (1 a 5)",
        json_schema_extra={"example": 2},
    )

    @model_validator(mode="after")
    def validate_measurements(self) -> "SPCInput":
        """Reject NaN and infinite measurement values."""
        for i, value in enumerate(self.measurements):
            if not math.isfinite(value):
                raise ValueError(
                    f"Valor inválido en la medición {i + 1}: se requiere un valor numérico finito"
                )
        return self


class InspectionRecord(BaseModel):
    """Single PIR inspection record as delivered by the production service.

    Specification fields arrive as text and are parsed before analysis.
    """

    model_config = ConfigDict(populate_by_name=True)

    trn_date: Optional[str] = Field(default=None, alias="TrnDate")
    shift_code: int = Field(..., alias="ShiftCode")
    shift_name: Optional[str] = Field(default=None, alias="ShiftName")
    gauge_code: Optional[str] = Field(default=None, alias="GuageCode")
    gauge_name: Optional[str] = Field(default=None, alias="GuageName")
    from_specification: str = Field(
        ...,
        alias="FromSpecification",
        description="Límite inferior de especificación (texto)",
        json_schema_extra={"example": "5.0"},
    )
    to_specification: str = Field(
        ...,
        alias="ToSpecification",
        description="Límite superior de especificación (texto)",
        json_schema_extra={"example": "15.0"},
    )
    actual_specification: str = Field(
        ...,
        alias="ActualSpecification",
        description="Valor medido (texto)",
        json_schema_extra={"example": "10.2"},
    )


class InspectionSPCInput(BaseModel):
    """Input for an SPC analysis computed from raw inspection records.

    Attributes:
        records: Inspection records for one material/operation/gauge
        selected_shifts: Shift identifiers to include in the analysis
        sample_size: Subgroup size (1 to 5)
    """

    records: list[InspectionRecord] = Field(
        ...,
        min_length=1,
        description="Registros de inspección (mínimo 1)",
    )
    selected_shifts: list[int] = Field(
        ...,
        min_length=1,
        description="Turnos seleccionados (mínimo 1)",
        json_schema_extra={"example": [1, 2]},
    )
    sample_size: int = Field(
        default=1,
        description="Tamaño del subgrupo (1 a 5)",
        json_schema_extra={"example": 2},
    )


# -----------------------------------------------------------------------------
# Result Models
# -----------------------------------------------------------------------------


class Subgroup(BaseModel):
    """Statistics of one complete subgroup."""

    model_config = ConfigDict(frozen=True)

    mean: float = Field(..., description="Media del subgrupo")
    range: float = Field(..., ge=0, description="Rango del subgrupo (máx - mín)")


class ControlConstants(BaseModel):
    """Control chart constants for one subgroup size."""

    model_config = ConfigDict(frozen=True)

    sample_size: int = Field(..., ge=1, le=5, description="Tamaño del subgrupo")
    a2: float = Field(..., description="Constante A2 (gráfico X-barra)")
    d3: float = Field(..., ge=0, description="Constante D3 (LCL del gráfico R)")
    d4: float = Field(..., ge=0, description="Constante D4 (UCL del gráfico R)")
    d2: float = Field(..., gt=0, description="Constante d2 (tabulada, no usada en los cálculos)")


class ControlLimits(BaseModel):
    """Center lines and control limits for the X-bar and Range charts.

    All values are rounded to 4 decimal places at computation time.
    """

    model_config = ConfigDict(frozen=True)

    x_bar_ucl: float = Field(..., description="Límite de control superior X-barra")
    x_bar_lcl: float = Field(..., description="Límite de control inferior X-barra")
    x_bar_mean: float = Field(..., description="Línea central X-barra (X-doble-barra)")
    range_ucl: float = Field(..., description="Límite de control superior del rango")
    range_lcl: float = Field(..., description="Límite de control inferior del rango")
    range_mean: float = Field(..., description="Línea central del rango (R-barra)")


class CapabilityAssessment(BaseModel):
    """Verdicts of each index against the 1.33 acceptance threshold.

    A verdict is None when its index is undefined.
    """

    model_config = ConfigDict(frozen=True)

    capable: Optional[bool] = Field(default=None, description="Cp >= 1.33: proceso capaz")
    centered: Optional[bool] = Field(default=None, description="Cpk >= 1.33: proceso centrado")
    performing: Optional[bool] = Field(default=None, description="Pp >= 1.33: buen desempeño a largo plazo")
    stable: Optional[bool] = Field(default=None, description="Ppk >= 1.33: proceso estable a largo plazo")


class CapabilityMetrics(BaseModel):
    """Process capability and performance indices.

    Indices are None when the estimated standard deviation is zero.
    Pp/Ppu/Ppl/Ppk currently mirror Cp/Cpu/Cpl/Cpk.
    """

    model_config = ConfigDict(frozen=True)

    x_bar: float = Field(..., description="Media general del proceso")
    std_dev_overall: float = Field(..., ge=0, description="Desviación estándar general")
    std_dev_within: float = Field(..., ge=0, description="Desviación estándar dentro de subgrupos")
    moving_range: float = Field(..., ge=0, description="Rango promedio")
    cp: Optional[float] = Field(default=None, description="Índice de capacidad Cp")
    cpu: Optional[float] = Field(default=None, description="Capacidad superior Cpu")
    cpl: Optional[float] = Field(default=None, description="Capacidad inferior Cpl")
    cpk: Optional[float] = Field(default=None, description="Índice de capacidad Cpk")
    pp: Optional[float] = Field(default=None, description="Índice de desempeño Pp")
    ppu: Optional[float] = Field(default=None, description="Desempeño superior Ppu")
    ppl: Optional[float] = Field(default=None, description="Desempeño inferior Ppl")
    ppk: Optional[float] = Field(default=None, description="Índice de desempeño Ppk")
    lsl: float = Field(..., description="Límite inferior de especificación")
    usl: float = Field(..., description="Límite superior de especificación")
    assessment: CapabilityAssessment = Field(
        default_factory=CapabilityAssessment,
        description="Evaluación de los índices frente al umbral 1.33",
    )


class ChartPoint(BaseModel):
    """Single {x, y} point of a chart series."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(..., description="Posición en el eje X")
    y: float = Field(..., description="Valor en el eje Y")


class HistogramBin(ChartPoint):
    """Histogram bin: x is the bin midpoint, y the number of measurements."""

    y: int = Field(..., ge=0, description="Cantidad de mediciones en el intervalo")


class Histogram(BaseModel):
    """Equal-width histogram of the raw measurements."""

    model_config = ConfigDict(frozen=True)

    bins: tuple[HistogramBin, ...] = Field(..., description="Intervalos del histograma")
    number_of_bins: int = Field(..., ge=1, description="Número de intervalos")
    bin_width: float = Field(..., ge=0, description="Ancho de cada intervalo")


class ControlChartSeries(BaseModel):
    """X-bar and Range chart series with their control limits."""

    model_config = ConfigDict(frozen=True)

    x_bar_data: tuple[ChartPoint, ...] = Field(..., description="Medias por subgrupo (x = índice 1..n)")
    range_data: tuple[ChartPoint, ...] = Field(..., description="Rangos por subgrupo (x = índice 1..n)")
    limits: ControlLimits = Field(..., description="Límites de control")
    x_bar_out_of_control: tuple[int, ...] = Field(
        default=(),
        description="Índices (1..n) de subgrupos fuera de los límites X-barra",
    )
    range_out_of_control: tuple[int, ...] = Field(
        default=(),
        description="Índices (1..n) de subgrupos fuera de los límites del rango",
    )


class DistributionStats(BaseModel):
    """Summary values overlaid on the histogram."""

    model_config = ConfigDict(frozen=True)

    mean: float = Field(..., description="Media general")
    std_dev: float = Field(..., ge=0, description="Desviación estándar estimada")
    target: float = Field(..., description="Valor objetivo ((USL + LSL) / 2)")


class Distribution(BaseModel):
    """Histogram plus distribution statistics."""

    model_config = ConfigDict(frozen=True)

    histogram: Histogram
    stats: DistributionStats


class SPCResult(BaseModel):
    """Complete result bundle of an SPC analysis run."""

    model_config = ConfigDict(frozen=True)

    sample_size: int = Field(..., ge=1, le=5, description="Tamaño del subgrupo")
    n_measurements: int = Field(..., ge=0, description="Mediciones analizadas")
    n_subgroups: int = Field(..., ge=1, description="Subgrupos completos")
    discarded_measurements: int = Field(
        ...,
        ge=0,
        description="Mediciones finales descartadas por no completar un subgrupo",
    )
    metrics: CapabilityMetrics
    control_charts: ControlChartSeries
    distribution: Distribution
