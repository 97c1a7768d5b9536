"""
Cálculo de adeudo de expedientes.

    adeudo = max(0, precio del lote - suma de pagos del expediente)

Funciones puras: no consultan el backend ni guardan estado entre llamadas.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from core import quality
from core.normalization import parse_amount
from core.quality import DataQualityWarning
from core.records import field, record_id
from core.relations import (
    MalformedRelationError,
    index_by_id,
    resolve,
    resolve_entity,
)


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class Balance:
    price: Decimal
    paid: Decimal
    owed: Decimal
    warnings: Tuple[DataQualityWarning, ...] = ()

    @property
    def is_settled(self) -> bool:
        return self.owed == 0

    @property
    def percent_paid(self) -> int:
        if self.price <= 0:
            return 0
        return min(int(self.paid * 100 / self.price), 100)


def _lot_price(lot, warnings) -> Decimal:
    if lot is None:
        return ZERO
    raw = field(lot, "price")
    if raw is None:
        return ZERO
    price = parse_amount(raw)
    if price is None or price < 0:
        warnings.append(
            DataQualityWarning(quality.INVALID_PRICE, record_id(lot), raw)
        )
        return ZERO
    return price


def _payment_amount(payment, warnings) -> Decimal:
    raw = field(payment, "amount")
    amount = parse_amount(raw)
    if amount is None:
        warnings.append(
            DataQualityWarning(quality.INVALID_AMOUNT, record_id(payment), raw)
        )
        return ZERO
    if amount < 0:
        warnings.append(
            DataQualityWarning(quality.NEGATIVE_AMOUNT, record_id(payment), raw)
        )
        return ZERO
    return amount


def payments_for_file(
    payments: Iterable[Mapping[str, Any]],
    file_id: str,
    warnings: Optional[List[DataQualityWarning]] = None,
) -> List[Mapping[str, Any]]:
    """Pagos cuyo ``fileRef`` resuelve al id interno del expediente.

    Un pago con relación malformada no se puede atribuir: se omite y, si se
    recibe ``warnings``, se reporta ahí.
    """
    matched = []
    for payment in payments or ():
        try:
            relation = resolve(field(payment, "file_ref"))
        except MalformedRelationError as exc:
            if warnings is not None:
                warnings.append(
                    DataQualityWarning(
                        quality.UNATTRIBUTED_PAYMENT, record_id(payment), exc.shape
                    )
                )
            continue
        if relation.id == file_id:
            matched.append(payment)
    return matched


def compute_balance(
    file: Mapping[str, Any],
    lot: Optional[Mapping[str, Any]],
    payments: Iterable[Mapping[str, Any]],
    *,
    prefiltered: bool = False,
) -> Balance:
    """Adeudo de un expediente.

    ``prefiltered=False`` (por defecto): ``payments`` es la colección completa
    y se filtra aquí por el id interno del expediente (nunca por folio).

    ``prefiltered=True``: el llamador ya filtró; se suman todos los pagos
    recibidos tal cual.

    Un lote ausente cuenta como precio 0. Montos negativos o no numéricos
    aportan 0 y quedan en ``warnings``.
    """
    warnings: List[DataQualityWarning] = []

    if prefiltered:
        scoped = list(payments or ())
    else:
        file_id = resolve(file).id
        if file_id is None:
            raise MalformedRelationError(file, "expediente sin identificador")
        scoped = payments_for_file(payments, file_id, warnings)

    price = _lot_price(lot, warnings)
    paid = sum((_payment_amount(p, warnings) for p in scoped), ZERO)
    owed = max(price - paid, ZERO)
    return Balance(price=price, paid=paid, owed=owed, warnings=tuple(warnings))


def lot_for_file(
    file: Mapping[str, Any], lots_index: Optional[Mapping[str, Mapping[str, Any]]] = None
) -> Optional[Mapping[str, Any]]:
    """Lote del expediente, anidado o buscado en el índice por id."""
    return resolve_entity(field(file, "lot_ref"), lots_index)


def balance_for_file(
    file: Mapping[str, Any],
    lots_index: Optional[Mapping[str, Mapping[str, Any]]],
    payments: Iterable[Mapping[str, Any]],
    exclude_payment_id: Optional[str] = None,
) -> Balance:
    if exclude_payment_id is not None:
        payments = [p for p in payments or () if record_id(p) != exclude_payment_id]
    return compute_balance(file, lot_for_file(file, lots_index), payments)


def balances_by_file(
    files: Iterable[Mapping[str, Any]],
    lots: Iterable[Mapping[str, Any]],
    payments: Iterable[Mapping[str, Any]],
    exclude_payment_id: Optional[str] = None,
) -> Dict[str, Balance]:
    """Adeudo de cada expediente con id, indexado por id.

    Un expediente con relación de lote malformada queda fuera del resultado
    (se registra en el log) para no bloquear a los demás.
    """
    lots_index = index_by_id(lots)
    payments = list(payments or ())
    balances = {}
    for file in files or ():
        file_id = record_id(file)
        if file_id is None:
            continue
        try:
            balances[file_id] = balance_for_file(
                file, lots_index, payments, exclude_payment_id=exclude_payment_id
            )
        except MalformedRelationError as exc:
            logger.warning("Expediente %s omitido del cálculo de adeudo: %s", file_id, exc)
    return balances
