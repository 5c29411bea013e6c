"""Inspection record handling for SPC analysis.

Turns PIR inspection records from the production service into an SPCInput:
filters by selected shifts, parses the textual measurement and specification
fields, and reads the specification limits.
"""

import logging
import math
from typing import Iterable, Sequence

from app.models.control_charts import InspectionRecord, InspectionSPCInput, SPCInput
from app.services.spc_calculator import InsufficientData, InvalidMeasurement

logger = logging.getLogger(__name__)


def filter_by_shifts(
    records: Iterable[InspectionRecord], shift_ids: Iterable[int]
) -> list[InspectionRecord]:
    """Keep only the records whose shift was selected."""
    selected = set(shift_ids)
    return [record for record in records if record.shift_code in selected]


def _parse_number(text: str, field_label: str, record_number: int) -> float:
    try:
        value = float(text.strip())
    except ValueError:
        raise InvalidMeasurement(
            f"El registro {record_number} tiene un valor no numérico en "
            f"{field_label}: '{text}'"
        ) from None
    if not math.isfinite(value):
        raise InvalidMeasurement(
            f"El registro {record_number} tiene un valor no finito en "
            f"{field_label}: '{text}'"
        )
    return value


def parse_measurements(records: Sequence[InspectionRecord]) -> list[float]:
    """Parse ActualSpecification of every record, in order.

    Raises:
        InvalidMeasurement: If a value is not a finite number
    """
    return [
        _parse_number(record.actual_specification, "ActualSpecification", i + 1)
        for i, record in enumerate(records)
    ]


def extract_spec_limits(records: Sequence[InspectionRecord]) -> tuple[float, float]:
    """Read (LSL, USL) from the first record's specification fields.

    Raises:
        InsufficientData: If there are no records
        InvalidMeasurement: If a limit is not a finite number
    """
    if not records:
        raise InsufficientData("No hay registros de inspección para leer las especificaciones")

    first = records[0]
    lsl = _parse_number(first.from_specification, "FromSpecification", 1)
    usl = _parse_number(first.to_specification, "ToSpecification", 1)

    mismatched = sum(
        1
        for record in records[1:]
        if (record.from_specification, record.to_specification)
        != (first.from_specification, first.to_specification)
    )
    if mismatched:
        logger.warning(
            f"{mismatched} record(s) carry different specification limits; "
            f"using LSL={lsl}, USL={usl} from the first record"
        )

    return lsl, usl


def build_spc_input(data: InspectionSPCInput) -> SPCInput:
    """Build the calculator input from inspection records.

    Raises:
        InsufficientData: If no record belongs to the selected shifts
        InvalidMeasurement: If a measurement or limit cannot be parsed
    """
    records = filter_by_shifts(data.records, data.selected_shifts)
    if not records:
        raise InsufficientData(
            "Ningún registro de inspección pertenece a los turnos seleccionados"
        )

    logger.info(
        f"Using {len(records)} of {len(data.records)} inspection records "
        f"for shifts {sorted(set(data.selected_shifts))}"
    )

    lsl, usl = extract_spec_limits(records)
    return SPCInput(
        measurements=parse_measurements(records),
        lsl=lsl,
        usl=usl,
        sample_size=data.sample_size,
    )
