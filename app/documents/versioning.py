"""
Versionado de documentos y CLG por expediente.

La secuencia de versiones de un expediente incluye registros reemplazados y
eliminados: el historial nunca se renumera.
"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from core.normalization import parse_version
from core.records import field, record_id
from core.relations import resolve

from .choices import DocumentStatus, parse_status


def next_version(history: Iterable[Mapping[str, Any]]) -> int:
    """
    Siguiente versión sobre un historial YA filtrado a un solo expediente.
    Versiones faltantes, 0, NaN o negativas se ignoran.
    """
    versions = [parse_version(field(item, "version")) for item in history or ()]
    versions = [v for v in versions if v is not None]
    if not versions:
        return 1
    return max(versions) + 1


def file_history(records: Iterable[Mapping[str, Any]], file_id: str) -> List[Mapping[str, Any]]:
    """Registros del expediente, en cualquier estado.

    Una relación malformada propaga ``MalformedRelationError``: omitirla
    podría reutilizar un número de versión.
    """
    return [r for r in records or () if resolve(field(r, "file_ref")).id == file_id]


def next_version_for_file(records: Iterable[Mapping[str, Any]], file_id: str) -> int:
    """Siguiente versión a partir de la colección completa, sin prefiltrar."""
    if not file_id:
        raise ValueError("Se requiere el id del expediente para versionar.")
    return next_version(file_history(records, file_id))


@dataclass(frozen=True)
class ReplacementPlan:
    version: int
    supersede_ids: Tuple[str, ...]

    def payload(self):
        return {"version": self.version, "status": DocumentStatus.ACTIVE.value}


def plan_replacement(
    records: Iterable[Mapping[str, Any]],
    file_id: str,
    replaced_id: Optional[str] = None,
) -> ReplacementPlan:
    """Versión del archivo nuevo y registros que pasan a Reemplazado.

    Sin ``replaced_id`` es un alta: no se reemplaza nada. Con ``replaced_id``
    el registro debe pertenecer al historial del mismo expediente.
    """
    records = list(records or ())
    version = next_version_for_file(records, file_id)
    if replaced_id is None:
        return ReplacementPlan(version=version, supersede_ids=())

    history = {record_id(r): r for r in file_history(records, file_id)}
    replaced = history.get(replaced_id)
    if replaced is None:
        raise ValueError(
            f"El registro {replaced_id} no pertenece al expediente {file_id}."
        )
    if parse_status(field(replaced, "status")) != DocumentStatus.ACTIVE:
        return ReplacementPlan(version=version, supersede_ids=())
    return ReplacementPlan(version=version, supersede_ids=(replaced_id,))


def supersede() -> dict:
    return {"status": DocumentStatus.REPLACED.value}


def soft_delete() -> dict:
    """Borrado lógico: el registro conserva su versión."""
    return {"status": DocumentStatus.DELETED.value}
