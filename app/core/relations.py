"""
Resolución de campos de relación del backend.

Backendless entrega una misma relación con tres formas distintas según las
opciones de la consulta (``loadRelations``, ``relationsDepth``):

    "A1B2"                       -> id sin cargar
    {"objectId": "A1B2", ...}    -> objeto completo
    [{"objectId": "A1B2", ...}]  -> arreglo de un elemento (uno a uno)

Todo el resto del motor trabaja con ``ResolvedRelation``.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional


ID_FIELDS = ("id", "objectId")


class MalformedRelationError(ValueError):
    """La relación no tiene ninguna de las formas conocidas."""

    def __init__(self, value: Any, reason: str = ""):
        self.value = value
        self.shape = shape_of(value)
        message = f"Relación con forma no reconocida: {self.shape}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


@dataclass(frozen=True)
class ResolvedRelation:
    id: Optional[str]
    loaded: Optional[Mapping[str, Any]]

    @property
    def is_absent(self) -> bool:
        return self.id is None

    @property
    def is_loaded(self) -> bool:
        return self.loaded is not None


ABSENT = ResolvedRelation(id=None, loaded=None)


def shape_of(value: Any) -> str:
    """Describe la forma de un valor para mensajes de error."""
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        keys = ", ".join(sorted(str(k) for k in value.keys())[:5])
        return f"object{{{keys}}}"
    if isinstance(value, (list, tuple)):
        inner = shape_of(value[0]) if value else "empty"
        return f"array[{len(value)}]<{inner}>"
    return type(value).__name__


def _identifier(record: Mapping[str, Any]) -> Optional[str]:
    for field in ID_FIELDS:
        value = record.get(field)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def resolve(raw: Any) -> ResolvedRelation:
    """Normaliza una relación a ``ResolvedRelation(id, loaded)``.

    Nunca modifica ``raw``. Una cadena vacía (lo que envía un select sin
    selección) se trata como relación ausente.
    """
    if raw is None:
        return ABSENT

    if isinstance(raw, str):
        value = raw.strip()
        if not value:
            return ABSENT
        return ResolvedRelation(id=value, loaded=None)

    if isinstance(raw, (list, tuple)):
        if not raw:
            return ABSENT
        return resolve(raw[0])

    if isinstance(raw, Mapping):
        identifier = _identifier(raw)
        if identifier is None:
            raise MalformedRelationError(raw, "sin identificador")
        return ResolvedRelation(id=identifier, loaded=raw)

    raise MalformedRelationError(raw)


def resolve_id(raw: Any) -> Optional[str]:
    return resolve(raw).id


def resolve_entity(
    raw: Any, index: Optional[Mapping[str, Mapping[str, Any]]] = None
) -> Optional[Mapping[str, Any]]:
    """Objeto relacionado: el anidado si vino cargado, si no el del índice."""
    relation = resolve(raw)
    if relation.is_loaded:
        return relation.loaded
    if relation.is_absent or not index:
        return None
    return index.get(relation.id)


def index_by_id(records: Iterable[Mapping[str, Any]]) -> Dict[str, Mapping[str, Any]]:
    """Mapa id -> registro para búsquedas de relaciones sin cargar."""
    index = {}
    for record in records or ():
        if not isinstance(record, Mapping):
            continue
        identifier = _identifier(record)
        if identifier is not None:
            index[identifier] = record
    return index
