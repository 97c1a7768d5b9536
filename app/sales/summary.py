"""
Listado de expedientes y totales del tablero.

Es el punto donde se componen resolución de relaciones y cálculo de adeudo
para cada fila. Un registro malformado genera una fila con error y queda en
el log; nunca deja en blanco el resto de la tabla.
"""
import logging
from decimal import Decimal

from core.normalization import parse_amount
from core.records import Snapshot, field, record_id
from core.relations import MalformedRelationError, index_by_id, resolve, resolve_entity
from finance.ledger import ZERO, balance_for_file

logger = logging.getLogger(__name__)

NO_CLIENT_LABEL = "Sin cliente"
UNAVAILABLE_LABEL = "No disponible"


def client_label(expediente, clients_index=None) -> str:
    """Nombre del cliente del expediente.

    "Sin cliente" cuando la relación no existe; "No disponible" cuando la
    relación es inválida o apunta a un cliente que no vino en el snapshot.
    """
    raw = field(expediente, "client_ref")
    try:
        relation = resolve(raw)
    except MalformedRelationError as exc:
        logger.warning("Expediente %s con cliente inválido: %s", record_id(expediente), exc)
        return UNAVAILABLE_LABEL
    if relation.is_absent:
        return NO_CLIENT_LABEL
    client = resolve_entity(raw, clients_index)
    if client is None:
        return UNAVAILABLE_LABEL
    return field(client, "name") or UNAVAILABLE_LABEL


def expediente_row(expediente, lots_index, clients_index, payments) -> dict:
    balance = balance_for_file(expediente, lots_index, payments)
    for warning in balance.warnings:
        logger.warning("Expediente %s: %s", record_id(expediente), warning)
    return {
        "id": record_id(expediente),
        "folio": field(expediente, "folio", ""),
        "cliente": client_label(expediente, clients_index),
        "precio": balance.price,
        "pagado": balance.paid,
        "adeudo": balance.owed,
        "porcentaje_pagado": balance.percent_paid,
        "liquidado": balance.is_settled,
        "warnings": list(balance.warnings),
        "error": None,
    }


def _error_row(expediente, exc) -> dict:
    return {
        "id": record_id(expediente),
        "folio": field(expediente, "folio", ""),
        "cliente": UNAVAILABLE_LABEL,
        "precio": None,
        "pagado": None,
        "adeudo": None,
        "porcentaje_pagado": None,
        "liquidado": None,
        "warnings": [],
        "error": str(exc),
    }


def expediente_rows(snapshot: Snapshot) -> list:
    lots_index = index_by_id(snapshot.lots)
    clients_index = index_by_id(snapshot.clients)
    rows = []
    for expediente in snapshot.files:
        try:
            rows.append(expediente_row(expediente, lots_index, clients_index, snapshot.payments))
        except MalformedRelationError as exc:
            logger.warning("Expediente %s no se pudo calcular: %s", record_id(expediente), exc)
            rows.append(_error_row(expediente, exc))
    return rows


def dashboard_totals(snapshot: Snapshot) -> dict:
    """Totales generales: cobrado, valor de inventario y adeudo."""
    total_paid = ZERO
    for payment in snapshot.payments:
        amount = parse_amount(field(payment, "amount"))
        if amount is not None and amount > 0:
            total_paid += amount

    inventory_value = ZERO
    for lot in snapshot.lots:
        price = parse_amount(field(lot, "price"))
        if price is not None and price > 0:
            inventory_value += price

    rows = expediente_rows(snapshot)
    owed_rows = [r for r in rows if r["adeudo"] is not None]
    total_owed = sum((r["adeudo"] for r in owed_rows), ZERO)

    percent = Decimal("0")
    if inventory_value > 0:
        percent = (total_paid * 100 / inventory_value).quantize(Decimal("0.01"))

    return {
        "expedientes": len(rows),
        "clientes": len(snapshot.clients),
        "total_pagado": total_paid,
        "valor_inventario": inventory_value,
        "adeudo_total": total_owed,
        "porcentaje_cobrado": percent,
        "expedientes_con_adeudo": sum(1 for r in owed_rows if not r["liquidado"]),
        "expedientes_con_error": len(rows) - len(owed_rows),
    }
