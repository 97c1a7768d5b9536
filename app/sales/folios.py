import re
from typing import Any, Iterable, Mapping

from core.records import field


FOLIO_PATTERN = re.compile(r"^EXP-(\d+)$")


def next_file_folio(expedientes: Iterable[Mapping[str, Any]]) -> str:
    """
    Folio consecutivo de expediente: EXP-0001.
    Se toma el mayor folio existente + 1; contar registros repite folios
    cuando hubo bajas.
    """
    numbers = []
    for expediente in expedientes or ():
        match = FOLIO_PATTERN.match(str(field(expediente, "folio") or "").strip())
        if match:
            numbers.append(int(match.group(1)))
    return f"EXP-{max(numbers, default=0) + 1:04d}"
