from django.db import models

from core.normalization import normalize_label


class DocumentStatus(models.TextChoices):
    ACTIVE = "Activo", "Activo"
    REPLACED = "Reemplazado", "Reemplazado"
    DELETED = "Eliminado", "Eliminado"


# Valores heredados que siguen presentes en registros viejos.
LEGACY_STATUS = {
    "activo": DocumentStatus.ACTIVE,
    "active": DocumentStatus.ACTIVE,
    "reemplazado": DocumentStatus.REPLACED,
    "replaced": DocumentStatus.REPLACED,
    "eliminado": DocumentStatus.DELETED,
    "deleted": DocumentStatus.DELETED,
    "inactivo": DocumentStatus.DELETED,
}


def parse_status(value, default=DocumentStatus.ACTIVE):
    if not value:
        return default
    return LEGACY_STATUS.get(normalize_label(value), default)


class DocumentType(models.TextChoices):
    CONTRATO = "Contrato", "Contrato"
    ESCRITURA = "Escritura", "Escritura"
    ACUSE = "Acuse", "Acuse"
    CLG = "CLG", "CLG"
    IDENTIFICACION = "Identificación", "Identificación"
    COMPROBANTE = "Comprobante", "Comprobante"
    OTRO = "Otro", "Otro"
