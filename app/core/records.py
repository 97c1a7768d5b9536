from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from .relations import ID_FIELDS


# Nombre lógico -> llaves aceptadas (canónica primero, luego Backendless).
FIELD_ALIASES = {
    "id": ID_FIELDS,
    "price": ("price", "precio"),
    "lot_number": ("number", "numeroLote"),
    "folio": ("folio", "folioExpediente"),
    "lot_ref": ("lotRef", "relacionLotes"),
    "client_ref": ("clientRef", "relacionUsuarios", "relacionClientes"),
    "name": ("name", "nombre"),
    "amount": ("amount", "monto"),
    "file_ref": ("fileRef", "relacionExpedientes"),
    "version": ("version",),
    "status": ("status", "estadoDocumento"),
    "certificate_folio": ("folio", "folioCLG", "folioReal"),
    "issue_date": ("issueDate", "fechaEmision"),
    "expiry_date": ("expiryDate", "fechaVencimiento"),
    "cancelled": ("cancelled", "cancelado"),
    "cached_state": ("estado",),
    "payment_state": ("state", "estado"),
    "concept": ("concept", "concepto"),
    "due_date": ("dueDate", "fechaVencimiento"),
    "document_type": ("type", "tipo"),
    "created": ("created",),
}


def field(record: Optional[Mapping[str, Any]], name: str, default: Any = None) -> Any:
    """Lee un campo lógico de un registro del backend."""
    if not record:
        return default
    for key in FIELD_ALIASES.get(name, (name,)):
        if key in record and record[key] is not None:
            return record[key]
    return default


def record_id(record: Optional[Mapping[str, Any]]) -> Optional[str]:
    value = field(record, "id")
    if value is None or isinstance(value, bool):
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class Snapshot:
    """Colecciones obtenidas por el llamador en un mismo instante."""

    files: Tuple[Mapping[str, Any], ...] = ()
    lots: Tuple[Mapping[str, Any], ...] = ()
    payments: Tuple[Mapping[str, Any], ...] = ()
    clients: Tuple[Mapping[str, Any], ...] = ()
    documents: Tuple[Mapping[str, Any], ...] = ()
    certificates: Tuple[Mapping[str, Any], ...] = ()

    @classmethod
    def from_collections(cls, **collections):
        return cls(**{name: tuple(records or ()) for name, records in collections.items()})
