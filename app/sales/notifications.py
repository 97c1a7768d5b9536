"""
Tablero de notificaciones: CLG por vencer, pagos pendientes y documentos
recientes en una sola lista ordenada.
"""
import logging
from datetime import timedelta
from typing import Any, Iterable, List, Mapping

from django.utils import timezone

from core.alerts import Alert, AlertKind, AlertPriority, sort_alerts
from core.normalization import normalize_label, parse_amount, to_date
from core.records import Snapshot, field, record_id
from documents.certificates import expiry_alerts

logger = logging.getLogger(__name__)

PENDING_PAYMENT_STATE = "pendiente"
PAYMENT_URGENT_DAYS = 7
PAYMENT_SOON_DAYS = 15
RECENT_DOCUMENT_DAYS = 7


def _reference_date(today):
    if today is None:
        return timezone.localdate()
    value = to_date(today)
    if value is None:
        raise ValueError(f"Fecha de referencia inválida: {today!r}")
    return value


def _money(amount) -> str:
    if amount is None:
        return "monto no disponible"
    return f"${amount:,.2f}"


def _payment_alert(payment, reference) -> Alert:
    payment_id = record_id(payment)
    description = f"Pago pendiente de {_money(parse_amount(field(payment, 'amount')))}"
    concept = field(payment, "concept")
    if concept:
        description += f" - {concept}"

    priority = AlertPriority.MEDIUM
    raw_due = field(payment, "due_date")
    due = to_date(raw_due)
    days = None
    if due is not None:
        days = (due - reference).days
        if days < 0:
            priority = AlertPriority.HIGH
            description += f" (Vencido hace {abs(days)} días)"
        elif days <= PAYMENT_URGENT_DAYS:
            priority = AlertPriority.HIGH
            description += f" (Vence en {days} días)"
        elif days <= PAYMENT_SOON_DAYS:
            description += f" (Vence en {days} días)"
    elif raw_due not in (None, ""):
        logger.warning("Pago %s con fecha de vencimiento inválida: %r", payment_id, raw_due)

    return Alert(
        id=f"pago-{payment_id}",
        kind=AlertKind.PAYMENT,
        record_id=payment_id,
        title="Pago Pendiente",
        description=description,
        priority=priority,
        timestamp=due or reference,
        days_remaining=days,
    )


def payment_alerts(payments: Iterable[Mapping[str, Any]], today=None) -> List[Alert]:
    """Pagos en estado pendiente; vencidos o próximos a vencer suben de prioridad."""
    reference = _reference_date(today)
    alerts = [
        _payment_alert(payment, reference)
        for payment in payments or ()
        if normalize_label(field(payment, "payment_state")) == PENDING_PAYMENT_STATE
    ]
    return sort_alerts(alerts)


def recent_document_alerts(
    documents: Iterable[Mapping[str, Any]], today=None, days: int = RECENT_DOCUMENT_DAYS
) -> List[Alert]:
    reference = _reference_date(today)
    since = reference - timedelta(days=days)
    alerts = []
    for document in documents or ():
        created = to_date(field(document, "created"))
        if created is None or created < since:
            continue
        document_id = record_id(document)
        name = field(document, "name") or document_id
        doc_type = field(document, "document_type")
        description = f"Se agregó {name} ({doc_type})" if doc_type else f"Se agregó {name}"
        alerts.append(
            Alert(
                id=f"doc-{document_id}",
                kind=AlertKind.DOCUMENT,
                record_id=document_id,
                title="Nuevo Documento",
                description=description,
                priority=AlertPriority.LOW,
                timestamp=created,
            )
        )
    return sort_alerts(alerts)


def notifications(snapshot: Snapshot, today=None) -> List[Alert]:
    reference = _reference_date(today)
    return sort_alerts(
        expiry_alerts(snapshot.certificates, reference)
        + payment_alerts(snapshot.payments, reference)
        + recent_document_alerts(snapshot.documents, reference)
    )
