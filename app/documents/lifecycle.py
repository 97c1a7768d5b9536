"""
Estado temporal de un CLG a partir de su fecha de vencimiento.

    días restantes < 0              -> Vencido
    0 <= días restantes <= umbral   -> Por Vencer   (umbral = 10 días)
    días restantes > umbral         -> Vigente
    fecha inválida                  -> Error

El ``estado`` guardado en el backend es solo caché: siempre se recalcula.
"""
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from django.db import models
from django.utils import timezone

from core.normalization import to_date


EXPIRY_WARNING_DAYS = 10
UPCOMING_WINDOW_DAYS = 30


class LifecycleState(models.TextChoices):
    CURRENT = "current", "Vigente"
    EXPIRING = "expiring", "Por Vencer"
    EXPIRED = "expired", "Vencido"
    ERROR = "error", "Error"


# Menor número = se muestra primero.
DISPLAY_PRIORITY = {
    LifecycleState.ERROR: 0,
    LifecycleState.EXPIRED: 1,
    LifecycleState.EXPIRING: 2,
    LifecycleState.CURRENT: 3,
}


@dataclass(frozen=True)
class Lifecycle:
    state: LifecycleState
    days_remaining: Optional[int]

    @property
    def label(self) -> str:
        return self.state.label

    @property
    def priority(self) -> int:
        return DISPLAY_PRIORITY[self.state]


def _today(today: Any) -> date:
    if today is None:
        return timezone.localdate()
    value = to_date(today)
    if value is None:
        raise ValueError(f"Fecha de referencia inválida: {today!r}")
    return value


def classify(
    expiry_date: Any,
    today: Any = None,
    warning_days: int = EXPIRY_WARNING_DAYS,
) -> Lifecycle:
    if warning_days < 0:
        raise ValueError("warning_days no puede ser negativo.")
    reference = _today(today)
    expiry = to_date(expiry_date)
    if expiry is None:
        return Lifecycle(state=LifecycleState.ERROR, days_remaining=None)

    # Ambas fechas ya son días calendario: la resta es exacta.
    days_remaining = (expiry - reference).days
    if days_remaining < 0:
        state = LifecycleState.EXPIRED
    elif days_remaining <= warning_days:
        state = LifecycleState.EXPIRING
    else:
        state = LifecycleState.CURRENT
    return Lifecycle(state=state, days_remaining=days_remaining)


def is_upcoming(lifecycle: Lifecycle, window_days: int = UPCOMING_WINDOW_DAYS) -> bool:
    """Filtro "vence en los próximos N días" del tablero; no es un estado."""
    if lifecycle.days_remaining is None:
        return False
    return 0 <= lifecycle.days_remaining <= window_days
