import re
from datetime import date
from typing import Any, Iterable, Mapping


REFERENCE_PATTERN = re.compile(r"^PAG-(\d{4})-(\d{2})-(\d+)$")


def next_payment_reference(payments: Iterable[Mapping[str, Any]], today: date) -> str:
    """
    Referencia consecutiva mensual: PAG-AAAA-MM-00001.
    El consecutivo reinicia cada mes.
    """
    prefix = f"PAG-{today.year}-{today.month:02d}-"
    numbers = []
    for payment in payments or ():
        match = REFERENCE_PATTERN.match(str(payment.get("referencia") or ""))
        if match and f"PAG-{match.group(1)}-{match.group(2)}-" == prefix:
            numbers.append(int(match.group(3)))
    return f"{prefix}{max(numbers, default=0) + 1:05d}"
