"""SPC (Statistical Process Control) Calculator Service.

Implements X-bar/Range control limits, process capability indices and
histogram binning using numpy. This is the single source of truth for all
SPC statistics returned by the service; chart and report consumers must not
re-derive them.

Pipeline:
    measurements -> subgroup() -> compute_control_limits()
                               -> compute_capability()
    measurements -> compute_histogram()
"""

import logging
import math
from types import MappingProxyType
from typing import Optional, Sequence

import numpy as np

from app.models.control_charts import (
    CapabilityAssessment,
    CapabilityMetrics,
    ChartPoint,
    ControlChartSeries,
    ControlConstants,
    ControlLimits,
    Distribution,
    DistributionStats,
    Histogram,
    HistogramBin,
    SPCInput,
    SPCResult,
    Subgroup,
)

logger = logging.getLogger(__name__)

# All reported statistics are rounded to this many decimal places
DECIMALS = 4

# Control chart constants keyed by subgroup size (1-5)
# A2, D3, D4 as used by the reporting front-end; d2 is informational only
CONTROL_CHART_CONSTANTS = MappingProxyType({
    1: ControlConstants(sample_size=1, a2=1.880, d3=0.0, d4=3.267, d2=1.128),
    2: ControlConstants(sample_size=2, a2=1.023, d3=0.0, d4=3.267, d2=1.693),
    3: ControlConstants(sample_size=3, a2=0.729, d3=0.0, d4=2.575, d2=2.059),
    4: ControlConstants(sample_size=4, a2=0.577, d3=0.0, d4=2.282, d2=2.326),
    5: ControlConstants(sample_size=5, a2=0.483, d3=0.0, d4=2.115, d2=2.534),
})

# Divisor for the sigma estimate when subgroups hold a single measurement
SINGLE_MEASUREMENT_D2 = 1.128

# Capability indices at or above this value are graded as acceptable
CAPABILITY_THRESHOLD = 1.33

_OVERFLOW_MESSAGE = (
    "La dispersión de las mediciones excede el rango numérico representable "
    "al calcular {what}"
)


# =========================================================================
# Errors
# =========================================================================


class SPCError(ValueError):
    """Base error for SPC computations.

    Carries a stable error code and a user-facing (Spanish) message.
    """

    code = "SPC_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidConfiguration(SPCError):
    """Subgroup size or specification limits are not usable."""

    code = "INVALID_CONFIGURATION"


class InsufficientData(SPCError):
    """Not enough measurements to compute the requested statistics."""

    code = "INSUFFICIENT_DATA"


class InvalidMeasurement(SPCError):
    """A measurement is unparseable or its spread exceeds float range."""

    code = "INVALID_MEASUREMENT"


# =========================================================================
# Pipeline stages
# =========================================================================


def get_control_constants(size: int) -> ControlConstants:
    """Look up the control chart constants for a subgroup size.

    Raises:
        InvalidConfiguration: If no constants are tabulated for ``size``
    """
    constants = CONTROL_CHART_CONSTANTS.get(size)
    if constants is None:
        raise InvalidConfiguration(
            f"El tamaño del subgrupo debe estar entre 1 y 5, se recibió {size}"
        )
    return constants


def subgroup(measurements: Sequence[float], size: int) -> list[Subgroup]:
    """Partition measurements into consecutive subgroups of exactly ``size``.

    A trailing partial subgroup is dropped, never padded.

    Args:
        measurements: Measurement values in inspection order
        size: Number of measurements per subgroup

    Returns:
        List of subgroups (mean and range), empty if fewer than ``size`` values

    Raises:
        InvalidConfiguration: If ``size`` is less than 1
        InvalidMeasurement: If a subgroup range overflows
    """
    if size < 1:
        raise InvalidConfiguration(
            f"El tamaño del subgrupo debe ser al menos 1, se recibió {size}"
        )

    values = np.asarray(measurements, dtype=float)
    n_subgroups = len(values) // size
    if n_subgroups == 0:
        return []

    windows = values[: n_subgroups * size].reshape(n_subgroups, size)
    lows = windows.min(axis=1)
    highs = windows.max(axis=1)
    with np.errstate(over="ignore", invalid="ignore"):
        ranges = highs - lows
        means = windows.sum(axis=1) / size
    if not np.isfinite(ranges).all():
        raise InvalidMeasurement(_OVERFLOW_MESSAGE.format(what="los rangos de los subgrupos"))
    overflowed = ~np.isfinite(means)
    if overflowed.any():
        means[overflowed] = (windows[overflowed] / size).sum(axis=1)
    # Float summation error must not push a mean outside its own window
    means = np.clip(means, lows, highs)

    return [
        Subgroup(mean=float(mean), range=float(rng))
        for mean, rng in zip(means, ranges)
    ]


def _require_finite(what: str, *values: float) -> None:
    if not all(math.isfinite(v) for v in values):
        raise InvalidMeasurement(_OVERFLOW_MESSAGE.format(what=what))


def _exact_mean(values: list[float]) -> float:
    n = len(values)
    try:
        return math.fsum(values) / n
    except OverflowError:
        # Scale before summing; the mean of finite values is always finite
        return math.fsum(v / n for v in values)


def subgroup_means(subgroups: Sequence[Subgroup]) -> tuple[float, float]:
    """Return the unrounded grand mean (X-double-bar) and mean range (R-bar).

    Uses exact summation so the result does not depend on subgroup order.

    Raises:
        InsufficientData: If there are no subgroups
    """
    if not subgroups:
        raise InsufficientData(
            "No hay subgrupos completos para calcular los límites de control"
        )

    x_bar_mean = _exact_mean([sg.mean for sg in subgroups])
    range_mean = _exact_mean([sg.range for sg in subgroups])
    return x_bar_mean, range_mean


def compute_control_limits(subgroups: Sequence[Subgroup], size: int) -> ControlLimits:
    """Compute X-bar and Range chart center lines and control limits.

    X-bar chart: X-double-bar ± A2 × R-bar
    Range chart: D3 × R-bar (LCL) and D4 × R-bar (UCL)

    Args:
        subgroups: Complete subgroups from subgroup()
        size: Subgroup size the subgroups were built with

    Returns:
        ControlLimits rounded to 4 decimal places

    Raises:
        InvalidConfiguration: If ``size`` is not in 1..5
        InsufficientData: If ``subgroups`` is empty
        InvalidMeasurement: If a limit overflows
    """
    constants = get_control_constants(size)
    x_bar_mean, range_mean = subgroup_means(subgroups)

    x_bar_ucl = x_bar_mean + constants.a2 * range_mean
    x_bar_lcl = x_bar_mean - constants.a2 * range_mean
    range_ucl = constants.d4 * range_mean
    range_lcl = constants.d3 * range_mean
    _require_finite("los límites de control", x_bar_ucl, x_bar_lcl, range_ucl, range_lcl)

    return ControlLimits(
        x_bar_ucl=round(x_bar_ucl, DECIMALS),
        x_bar_lcl=round(x_bar_lcl, DECIMALS),
        x_bar_mean=round(x_bar_mean, DECIMALS),
        range_ucl=round(range_ucl, DECIMALS),
        range_lcl=round(range_lcl, DECIMALS),
        range_mean=round(range_mean, DECIMALS),
    )


def validate_spec_limits(lsl: float, usl: float) -> None:
    """Require finite specification limits with USL > LSL.

    Raises:
        InvalidConfiguration: If the limits are unusable
    """
    if not (math.isfinite(lsl) and math.isfinite(usl)):
        raise InvalidConfiguration(
            "Los límites de especificación deben ser valores finitos: "
            f"USL={usl}, LSL={lsl}"
        )
    if usl <= lsl:
        raise InvalidConfiguration(
            "El límite superior de especificación (USL) debe ser mayor que "
            f"el límite inferior (LSL): USL={usl}, LSL={lsl}"
        )
    if not math.isfinite(usl - lsl):
        raise InvalidConfiguration(
            "La tolerancia (USL - LSL) excede el rango numérico representable: "
            f"USL={usl}, LSL={lsl}"
        )


def estimate_std_dev(range_mean: float, size: int) -> float:
    """Estimate process sigma as R-bar / d2.

    d2 is 1.128 for single-measurement subgroups and sqrt(size) otherwise.
    The sqrt(size) divisor approximates the tabulated d2 values; it is kept
    so results match the reports already produced by the front-end.
    """
    d2 = SINGLE_MEASUREMENT_D2 if size == 1 else math.sqrt(size)
    return range_mean / d2


def compute_capability(
    subgroups: Sequence[Subgroup],
    range_mean: float,
    x_bar_mean: float,
    lsl: float,
    usl: float,
    size: int,
) -> CapabilityMetrics:
    """Compute Cp/Cpk and the Pp/Ppk mirror indices.

    Cp  = (USL - LSL) / 6σ
    Cpu = (USL - X̄) / 3σ
    Cpl = (X̄ - LSL) / 3σ
    Cpk = min(Cpu, Cpl)

    Pp, Ppu, Ppl and Ppk are reported with the same values as Cp, Cpu, Cpl
    and Cpk: no separate long-term sigma is estimated.

    Args:
        subgroups: Complete subgroups the means were derived from
        range_mean: Unrounded mean subgroup range (R-bar)
        x_bar_mean: Unrounded grand mean (X-double-bar)
        lsl: Lower specification limit
        usl: Upper specification limit
        size: Subgroup size

    Returns:
        CapabilityMetrics rounded to 4 decimal places; indices are None
        when the estimated sigma is zero

    Raises:
        InvalidConfiguration: If the limits are not finite with ``usl > lsl``,
            or ``size`` is not in 1..5
        InsufficientData: If ``subgroups`` is empty
        InvalidMeasurement: If an index overflows
    """
    validate_spec_limits(lsl, usl)
    get_control_constants(size)
    if not subgroups:
        raise InsufficientData(
            "No hay subgrupos completos para calcular la capacidad del proceso"
        )

    std_dev = estimate_std_dev(range_mean, size)

    cp: Optional[float] = None
    cpu: Optional[float] = None
    cpl: Optional[float] = None
    cpk: Optional[float] = None
    if std_dev > 0:
        spread = (usl - lsl) / (6 * std_dev)
        upper = (usl - x_bar_mean) / (3 * std_dev)
        lower = (x_bar_mean - lsl) / (3 * std_dev)
        _require_finite("los índices de capacidad", spread, upper, lower)
        cp = round(spread, DECIMALS)
        cpu = round(upper, DECIMALS)
        cpl = round(lower, DECIMALS)
        cpk = round(min(upper, lower), DECIMALS)
    else:
        logger.warning(
            f"Zero within-subgroup variation (R-bar={range_mean}, n={size}); "
            "capability indices are undefined"
        )

    return CapabilityMetrics(
        x_bar=round(x_bar_mean, DECIMALS),
        std_dev_overall=round(std_dev, DECIMALS),
        std_dev_within=round(std_dev, DECIMALS),
        moving_range=round(range_mean, DECIMALS),
        cp=cp,
        cpu=cpu,
        cpl=cpl,
        cpk=cpk,
        pp=cp,
        ppu=cpu,
        ppl=cpl,
        ppk=cpk,
        lsl=round(lsl, DECIMALS),
        usl=round(usl, DECIMALS),
        assessment=assess_capability(cp, cpk),
    )


def _meets_threshold(index: Optional[float]) -> Optional[bool]:
    if index is None:
        return None
    return index >= CAPABILITY_THRESHOLD


def assess_capability(cp: Optional[float], cpk: Optional[float]) -> CapabilityAssessment:
    """Grade the indices against the 1.33 acceptance threshold.

    Pp and Ppk mirror Cp and Cpk, so the long-term verdicts follow the
    short-term ones. A verdict is None when its index is undefined.
    """
    return CapabilityAssessment(
        capable=_meets_threshold(cp),
        centered=_meets_threshold(cpk),
        performing=_meets_threshold(cp),
        stable=_meets_threshold(cpk),
    )


def compute_target(lsl: float, usl: float) -> float:
    """Midpoint of the specification limits."""
    return round(lsl / 2 + usl / 2, DECIMALS)


def compute_histogram(measurements: Sequence[float]) -> Histogram:
    """Bucket measurements into ceil(sqrt(n)) equal-width bins.

    Bins are half-open [start, start + width) except the last, which also
    holds the maximum value. When every measurement is identical all of them
    land in the first bin.

    Raises:
        InsufficientData: If ``measurements`` is empty
        InvalidMeasurement: If the spread of the values overflows
    """
    values = np.asarray(measurements, dtype=float)
    if values.size == 0:
        raise InsufficientData("Se requiere al menos una medición para el histograma")

    number_of_bins = max(1, math.ceil(math.sqrt(values.size)))
    low = float(values.min())
    high = float(values.max())
    _require_finite("el histograma", high - low)
    bin_width = (high - low) / number_of_bins

    if bin_width > 0:
        indices = np.floor((values - low) / bin_width).astype(int)
        indices = np.minimum(indices, number_of_bins - 1)
    else:
        logger.warning(
            f"All {values.size} measurements equal {low}; histogram collapses to one bin"
        )
        indices = np.zeros(values.size, dtype=int)

    counts = np.bincount(indices, minlength=number_of_bins)

    return Histogram(
        bins=[
            HistogramBin(x=low + i * bin_width + bin_width / 2, y=int(count))
            for i, count in enumerate(counts)
        ],
        number_of_bins=number_of_bins,
        bin_width=bin_width,
    )


# =========================================================================
# Orchestrator
# =========================================================================


class SPCCalculator:
    """Runs the complete SPC analysis for one set of measurements.

    Stateless: every call works on its own copy of the input and returns a
    new, immutable result bundle.
    """

    def calculate(self, data: SPCInput) -> SPCResult:
        """Perform the complete SPC analysis.

        Args:
            data: SPCInput with measurements, specification limits and subgroup size

        Returns:
            SPCResult with control limits, capability metrics, chart series and histogram

        Raises:
            InvalidConfiguration: Subgroup size outside 1..5 or unusable spec limits
            InsufficientData: No measurements or no complete subgroup
            InvalidMeasurement: Measurement spread overflows float range
        """
        sample_size = data.sample_size
        lsl, usl = data.lsl, data.usl

        # Configuration is checked before any computation
        get_control_constants(sample_size)
        validate_spec_limits(lsl, usl)

        measurements = list(data.measurements)
        if not measurements:
            raise InsufficientData("No hay mediciones para analizar")

        subgroups = subgroup(measurements, sample_size)
        if not subgroups:
            raise InsufficientData(
                f"Se requieren al menos {sample_size} mediciones para formar un "
                f"subgrupo completo, se recibieron {len(measurements)}"
            )

        discarded = len(measurements) - len(subgroups) * sample_size
        if discarded:
            logger.info(
                f"Dropping {discarded} trailing measurement(s) that do not fill "
                f"a subgroup of size {sample_size}"
            )

        limits = compute_control_limits(subgroups, sample_size)
        x_bar_mean, range_mean = subgroup_means(subgroups)
        metrics = compute_capability(
            subgroups, range_mean, x_bar_mean, lsl, usl, sample_size
        )
        histogram = compute_histogram(measurements)

        logger.info(
            f"SPC analysis: {len(measurements)} measurements, "
            f"{len(subgroups)} subgroups of {sample_size}, Cpk={metrics.cpk}"
        )

        return SPCResult(
            sample_size=sample_size,
            n_measurements=len(measurements),
            n_subgroups=len(subgroups),
            discarded_measurements=discarded,
            metrics=metrics,
            control_charts=self._build_chart_series(subgroups, limits),
            distribution=Distribution(
                histogram=histogram,
                stats=DistributionStats(
                    mean=metrics.x_bar,
                    std_dev=metrics.std_dev_within,
                    target=compute_target(lsl, usl),
                ),
            ),
        )

    def _build_chart_series(
        self,
        subgroups: Sequence[Subgroup],
        limits: ControlLimits,
    ) -> ControlChartSeries:
        """Build X-bar and Range series (x = 1-based subgroup index)."""
        x_bar_data = [ChartPoint(x=i + 1, y=sg.mean) for i, sg in enumerate(subgroups)]
        range_data = [ChartPoint(x=i + 1, y=sg.range) for i, sg in enumerate(subgroups)]

        x_bar_ooc = [
            i + 1
            for i, sg in enumerate(subgroups)
            if sg.mean > limits.x_bar_ucl or sg.mean < limits.x_bar_lcl
        ]
        range_ooc = [
            i + 1
            for i, sg in enumerate(subgroups)
            if sg.range > limits.range_ucl or sg.range < limits.range_lcl
        ]

        return ControlChartSeries(
            x_bar_data=x_bar_data,
            range_data=range_data,
            limits=limits,
            x_bar_out_of_control=x_bar_ooc,
            range_out_of_control=range_ooc,
        )
