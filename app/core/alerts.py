"""
Alertas del tablero de notificaciones.

Orden: prioridad (alta, media, baja) y, dentro de la misma prioridad, la
fecha de referencia más reciente primero. Las alertas sin fecha van al final
de su grupo.
"""
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from django.db import models


class AlertPriority:
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    ORDER = {HIGH: 0, MEDIUM: 1, LOW: 2}


class AlertKind(models.TextChoices):
    CLG = "clg", "CLG"
    PAYMENT = "pago", "Pago"
    DOCUMENT = "documento", "Documento"


@dataclass(frozen=True)
class Alert:
    id: str
    kind: AlertKind
    record_id: Optional[str]
    title: str
    description: str
    priority: str
    timestamp: Optional[date] = None
    days_remaining: Optional[int] = None

    def sort_key(self):
        newest_first = -self.timestamp.toordinal() if self.timestamp else 0
        return (AlertPriority.ORDER[self.priority], self.timestamp is None, newest_first)


def sort_alerts(alerts: Iterable[Alert]) -> List[Alert]:
    return sorted(alerts, key=Alert.sort_key)
