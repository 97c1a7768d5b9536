import logging
from collections import Counter
from typing import Any, Iterable, List, Mapping, Optional

from django.conf import settings

from core.alerts import Alert, AlertKind, AlertPriority, sort_alerts
from core.normalization import normalize_label, to_date
from core.records import field, record_id

from .lifecycle import (
    EXPIRY_WARNING_DAYS,
    UPCOMING_WINDOW_DAYS,
    Lifecycle,
    LifecycleState,
    classify,
    is_upcoming,
)

logger = logging.getLogger(__name__)

CANCELLED_LABEL = "Cancelado"
URGENT_WINDOW_DAYS = 7


def get_warning_days() -> int:
    return getattr(settings, "CLG_EXPIRY_WARNING_DAYS", EXPIRY_WARNING_DAYS)


def get_upcoming_window_days() -> int:
    return getattr(settings, "CLG_UPCOMING_WINDOW_DAYS", UPCOMING_WINDOW_DAYS)


def get_urgent_window_days() -> int:
    return getattr(settings, "CLG_URGENT_WINDOW_DAYS", URGENT_WINDOW_DAYS)


def lifecycle_of(certificate: Mapping[str, Any], today=None) -> Lifecycle:
    return classify(field(certificate, "expiry_date"), today, warning_days=get_warning_days())


def is_cancelled(certificate: Mapping[str, Any]) -> bool:
    return field(certificate, "cancelled") is True


def display_status(certificate: Mapping[str, Any], today=None) -> str:
    """Etiqueta a mostrar: la cancelación manual tiene prioridad."""
    if is_cancelled(certificate):
        return CANCELLED_LABEL
    return lifecycle_of(certificate, today).label


def _cache_is_stale(cached: Any, lifecycle: Lifecycle) -> bool:
    if cached is None:
        return False
    expected = {normalize_label(lifecycle.state.value), normalize_label(lifecycle.label)}
    return normalize_label(cached) not in expected


def certificate_summary(certificate: Mapping[str, Any], today=None) -> dict:
    lifecycle = lifecycle_of(certificate, today)
    cached = field(certificate, "cached_state")
    summary = {
        "id": record_id(certificate),
        "folio": field(certificate, "certificate_folio", ""),
        "version": field(certificate, "version"),
        "estado": lifecycle.state.value,
        "estado_label": display_status(certificate, today),
        "dias_restantes": lifecycle.days_remaining,
        "prioridad": lifecycle.priority,
        "cancelado": is_cancelled(certificate),
        "estado_guardado_desactualizado": _cache_is_stale(cached, lifecycle),
    }
    if summary["estado_guardado_desactualizado"]:
        logger.info(
            "CLG %s con estado guardado %r desactualizado (actual: %s)",
            summary["id"], cached, lifecycle.state.value,
        )
    return summary


def sort_by_priority(certificates: Iterable[Mapping[str, Any]], today=None) -> List[Mapping[str, Any]]:
    def key(cert):
        lifecycle = lifecycle_of(cert, today)
        days = lifecycle.days_remaining
        return (lifecycle.priority, days if days is not None else 0)

    return sorted(certificates or (), key=key)


def filter_by_state(
    certificates: Iterable[Mapping[str, Any]], state: Optional[str], today=None
) -> List[Mapping[str, Any]]:
    """``state`` vacío o "todos" devuelve todo."""
    if not state or state == "todos":
        return list(certificates or ())
    wanted = LifecycleState(state)
    return [c for c in certificates or () if lifecycle_of(c, today).state == wanted]


def certificate_stats(certificates: Iterable[Mapping[str, Any]], today=None) -> dict:
    counts = Counter(lifecycle_of(c, today).state for c in certificates or ())
    return {
        "total": sum(counts.values()),
        "vigentes": counts[LifecycleState.CURRENT],
        "por_vencer": counts[LifecycleState.EXPIRING],
        "vencidos": counts[LifecycleState.EXPIRED],
        "con_error": counts[LifecycleState.ERROR],
    }


# ---------------------------------------------------------------------------
# Notificaciones de vencimiento
# ---------------------------------------------------------------------------

def _alert_for(certificate, lifecycle, upcoming_days, urgent_days) -> Optional[Alert]:
    cert_id = record_id(certificate)
    folio = field(certificate, "certificate_folio") or cert_id or "sin folio"
    days = lifecycle.days_remaining
    expiry = to_date(field(certificate, "expiry_date"))

    if lifecycle.state == LifecycleState.ERROR:
        return Alert(
            id=f"clg-error-{cert_id}",
            kind=AlertKind.CLG,
            record_id=cert_id,
            title="CLG con fecha inválida",
            description=f"El certificado {folio} no tiene una fecha de vencimiento válida",
            priority=AlertPriority.MEDIUM,
        )
    if lifecycle.state == LifecycleState.EXPIRED:
        return Alert(
            id=f"clg-expired-{cert_id}",
            kind=AlertKind.CLG,
            record_id=cert_id,
            title="CLG Vencido",
            description=f"El certificado {folio} venció hace {abs(days)} días",
            priority=AlertPriority.HIGH,
            timestamp=expiry,
            days_remaining=days,
        )
    if is_upcoming(lifecycle, upcoming_days):
        return Alert(
            id=f"clg-expiring-{cert_id}",
            kind=AlertKind.CLG,
            record_id=cert_id,
            title="CLG Por Vencer",
            description=f"El certificado {folio} vence en {days} días",
            priority=AlertPriority.HIGH if days <= urgent_days else AlertPriority.MEDIUM,
            timestamp=expiry,
            days_remaining=days,
        )
    return None


def expiry_alerts(certificates: Iterable[Mapping[str, Any]], today=None) -> List[Alert]:
    """Alertas de CLG vencidos o que vencen dentro de la ventana próxima."""
    upcoming_days = get_upcoming_window_days()
    urgent_days = get_urgent_window_days()
    alerts = []
    for certificate in certificates or ():
        if is_cancelled(certificate):
            continue
        alert = _alert_for(certificate, lifecycle_of(certificate, today), upcoming_days, urgent_days)
        if alert is not None:
            alerts.append(alert)
    return sort_alerts(alerts)
