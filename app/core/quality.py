from dataclasses import dataclass
from typing import Any, Optional


INVALID_AMOUNT = "MONTO_INVALIDO"
NEGATIVE_AMOUNT = "MONTO_NEGATIVO"
INVALID_PRICE = "PRECIO_INVALIDO"
UNATTRIBUTED_PAYMENT = "PAGO_SIN_EXPEDIENTE_VALIDO"


@dataclass(frozen=True)
class DataQualityWarning:
    """Problema de calidad de datos que degrada un resultado sin detenerlo."""

    code: str
    record_id: Optional[str] = None
    detail: Any = None

    def __str__(self):
        ref = f" [{self.record_id}]" if self.record_id else ""
        return f"{self.code}{ref}: {self.detail!r}"
