import math
import re
import unicodedata
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime


def _strip_accents(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value or "")
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def normalize_label(value: Any) -> str:
    """Lowercase, accent-free, single-spaced version of a label."""
    raw = _strip_accents(str(value or "").strip()).lower()
    return re.sub(r"\s+", " ", raw)


def normalize_money_input(value: str) -> str:
    """
    Quita símbolo de moneda, separadores de miles y espacios.
    "$1,250,000.50" -> "1250000.50" (formato es-MX).
    """
    return re.sub(r"[$,\s]", "", (value or "").strip())


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Convierte un monto del backend a Decimal.
    Retorna None si no es numérico (incluye NaN, infinito y booleanos).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, str):
        value = normalize_money_input(value)
        if not value:
            return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not amount.is_finite():
        return None
    return amount


def parse_version(value: Any) -> Optional[int]:
    """Versión entera positiva, o None si falta o no es válida."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            return None
        value = int(value)
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        return None
    return value


def to_date(value: Any) -> Optional[date]:
    """
    Lleva un valor de fecha del backend a día calendario.

    Acepta date, datetime (se descarta la hora), cadenas ISO (también la
    forma compacta AAAAMMDD) y timestamps en milisegundos (formato de
    Backendless). Los timestamps y los datetime
    con zona se interpretan en la zona horaria configurada.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        try:
            moment = datetime.fromtimestamp(value / 1000, tz=timezone.get_default_timezone())
        except (OverflowError, OSError, ValueError):
            return None
        return moment.date()
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.isdigit():
            # AAAAMMDD es fecha ISO compacta; solo cadenas más largas son timestamps.
            if len(raw) == 8:
                try:
                    return datetime.strptime(raw, "%Y%m%d").date()
                except ValueError:
                    return None
            if len(raw) < 8:
                return None
            return to_date(int(raw))
        try:
            parsed = parse_datetime(raw)
            if parsed is not None:
                return to_date(parsed)
            return parse_date(raw)
        except ValueError:
            return None
    return None


def date_to_timestamp(value: date) -> int:
    """Día calendario -> milisegundos (medianoche local), formato de Backendless."""
    moment = timezone.make_aware(
        datetime.combine(value, datetime.min.time()), timezone.get_default_timezone()
    )
    return int(moment.timestamp() * 1000)
