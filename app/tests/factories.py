from datetime import date
from itertools import count

from documents.choices import DocumentStatus


def _relation(record, shape):
    """Codifica una relación como la devuelve Backendless."""
    if record is None:
        return None
    if shape == "id":
        return record["objectId"]
    if shape == "object":
        return record
    if shape == "list":
        return [record]
    raise ValueError(f"Forma de relación desconocida: {shape}")


class Factory:
    _seq = count(1)

    @classmethod
    def _n(cls):
        return next(cls._seq)

    @classmethod
    def client(cls, **kwargs):
        n = cls._n()
        defaults = {
            "objectId": f"CLI-{n}",
            "nombre": f"Cliente {n}",
        }
        defaults.update(kwargs)
        return defaults

    @classmethod
    def lot(cls, *, price="200000", **kwargs):
        n = cls._n()
        defaults = {
            "objectId": f"LOT-{n}",
            "numeroLote": f"L-{n}",
            "precio": price,
        }
        defaults.update(kwargs)
        return defaults

    @classmethod
    def expediente(cls, *, lot=None, client=None, shape="object", **kwargs):
        n = cls._n()
        defaults = {
            "objectId": f"EXP-{n}",
            "folioExpediente": f"FOL-{n:04d}",
            "relacionLotes": _relation(lot, shape),
            "relacionUsuarios": _relation(client, shape),
        }
        defaults.update(kwargs)
        return defaults

    @classmethod
    def payment(cls, *, expediente, amount="50000", shape="id", **kwargs):
        n = cls._n()
        defaults = {
            "objectId": f"PAG-{n}",
            "monto": amount,
            "relacionExpedientes": _relation(expediente, shape),
        }
        defaults.update(kwargs)
        return defaults

    @classmethod
    def document(
        cls,
        *,
        expediente,
        version=1,
        status=DocumentStatus.ACTIVE,
        shape="object",
        **kwargs,
    ):
        n = cls._n()
        defaults = {
            "objectId": f"DOC-{n}",
            "tipo": "Contrato",
            "version": version,
            "estadoDocumento": status.value if status is not None else None,
            "relacionExpedientes": _relation(expediente, shape),
        }
        defaults.update(kwargs)
        return defaults

    @classmethod
    def certificate(
        cls,
        *,
        expediente=None,
        expiry=None,
        issue=None,
        version=1,
        shape="id",
        **kwargs,
    ):
        n = cls._n()
        if expiry is None:
            expiry = date(2025, 6, 30)
        if issue is None:
            issue = date(2024, 6, 30)
        defaults = {
            "objectId": f"CLG-{n}",
            "folioCLG": f"CLG-{n:04d}",
            "fechaEmision": issue.isoformat() if isinstance(issue, date) else issue,
            "fechaVencimiento": expiry.isoformat() if isinstance(expiry, date) else expiry,
            "version": version,
            "relacionExpedientes": _relation(expediente, shape),
        }
        defaults.update(kwargs)
        return defaults
