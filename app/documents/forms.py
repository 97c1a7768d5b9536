from datetime import timedelta

from django import forms
from django.conf import settings
from django.utils import timezone

from core.normalization import date_to_timestamp, parse_version, to_date
from core.records import field, record_id
from core.relations import MalformedRelationError, index_by_id, resolve_id

from .choices import DocumentStatus, DocumentType, parse_status
from .lifecycle import classify
from .certificates import get_warning_days
from .versioning import plan_replacement


class VersionedRecordForm(forms.Form):
    """
    Base para formularios de registros versionados por expediente.

    Recibe el historial COMPLETO (sin filtrar) de documentos o CLG; la
    versión se calcula solo contra los registros del expediente elegido.
    """

    expediente = forms.ChoiceField(
        label="Expediente",
        widget=forms.Select(attrs={"class": "select select-bordered w-full"}),
    )
    archivo_nuevo = forms.BooleanField(
        label="Se adjunta un archivo nuevo",
        required=False,
        widget=forms.CheckboxInput(attrs={"class": "checkbox"}),
    )
    observaciones = forms.CharField(
        label="Observaciones",
        required=False,
        widget=forms.Textarea(attrs={"class": "textarea textarea-bordered w-full", "rows": 3}),
    )

    def __init__(self, *args, expedientes=(), history=(), instance=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.instance = instance
        self.history = list(history or ())
        self.expedientes = index_by_id(expedientes)
        self.version = None
        self.supersede_ids = ()

        self.fields["expediente"].choices = [
            (pk, field(exp, "folio") or pk) for pk, exp in self.expedientes.items()
        ]
        if instance is not None:
            self.initial.setdefault("expediente", self._instance_file_id())
            self.initial.setdefault("observaciones", instance.get("observaciones", ""))
            # En edición el expediente no se reasigna.
            self.fields["expediente"].disabled = True

    def _instance_file_id(self):
        try:
            return resolve_id(field(self.instance, "file_ref"))
        except MalformedRelationError:
            return None

    def _compute_version(self, file_id):
        is_new = self.instance is None
        if not is_new and not self.cleaned_data.get("archivo_nuevo"):
            return parse_version(field(self.instance, "version")) or 1

        try:
            plan = plan_replacement(
                self.history,
                file_id,
                replaced_id=None if is_new else record_id(self.instance),
            )
        except MalformedRelationError:
            raise forms.ValidationError(
                "El historial del expediente tiene relaciones inválidas; no se puede versionar."
            )
        except ValueError as exc:
            raise forms.ValidationError(str(exc))
        self.supersede_ids = plan.supersede_ids
        return plan.version

    def clean(self):
        cleaned = super().clean()
        file_id = cleaned.get("expediente")
        if not file_id:
            return cleaned
        if self.instance is None and not cleaned.get("archivo_nuevo"):
            raise forms.ValidationError("Debes seleccionar un archivo.")
        self.version = self._compute_version(file_id)
        return cleaned

    @property
    def creates_record(self):
        """El envío da de alta un registro: alta nueva o reemplazo de archivo."""
        return self.instance is None or bool(self.cleaned_data.get("archivo_nuevo"))

    def expediente_folio(self):
        expediente = self.expedientes.get(self.cleaned_data.get("expediente"))
        return field(expediente, "folio", "")

    def versioning_payload(self):
        """
        ``nuevo_registro`` indica si se crea un registro o se actualiza la
        instancia; ``reemplaza`` lista los ids que pasan a Reemplazado.
        """
        return {
            "version": self.version,
            "nuevo_registro": self.creates_record,
            "reemplaza": list(self.supersede_ids),
        }


class DocumentForm(VersionedRecordForm):
    tipo = forms.ChoiceField(
        label="Tipo de documento",
        choices=DocumentType.choices,
        widget=forms.Select(attrs={"class": "select select-bordered w-full"}),
    )

    field_order = ["tipo", "expediente", "archivo_nuevo", "observaciones"]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.instance is not None:
            self.initial.setdefault("tipo", self.instance.get("tipo", ""))

    def payload(self):
        if self.creates_record:
            status = DocumentStatus.ACTIVE
        else:
            # Una edición simple no revive registros reemplazados o eliminados.
            status = parse_status(field(self.instance, "status"))
        return {
            "tipo": self.cleaned_data["tipo"],
            "estadoDocumento": status.value,
            "relacionExpedientes": self.cleaned_data["expediente"],
            "expedienteFolio": self.expediente_folio(),
            "observaciones": self.cleaned_data.get("observaciones", ""),
            **self.versioning_payload(),
        }


class CertificateForm(VersionedRecordForm):
    folio = forms.CharField(
        label="Folio CLG",
        max_length=60,
        widget=forms.TextInput(attrs={"class": "input input-bordered w-full"}),
    )
    fecha_emision = forms.DateField(
        label="Fecha de emisión",
        widget=forms.DateInput(attrs={"class": "input input-bordered w-full", "type": "date"}),
    )
    fecha_vencimiento = forms.DateField(
        label="Fecha de vencimiento",
        widget=forms.DateInput(attrs={"class": "input input-bordered w-full", "type": "date"}),
    )
    cancelado = forms.BooleanField(
        label="Cancelado",
        required=False,
        widget=forms.CheckboxInput(attrs={"class": "checkbox"}),
    )

    field_order = [
        "folio",
        "expediente",
        "fecha_emision",
        "fecha_vencimiento",
        "archivo_nuevo",
        "cancelado",
        "observaciones",
    ]

    def __init__(self, *args, today=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.today = to_date(today) if today is not None else timezone.localdate()
        self.lifecycle = None
        if self.instance is not None:
            self.initial.setdefault("folio", field(self.instance, "certificate_folio", ""))
            self.initial.setdefault("fecha_emision", to_date(field(self.instance, "issue_date")))
            self.initial.setdefault("fecha_vencimiento", to_date(field(self.instance, "expiry_date")))
            self.initial.setdefault("cancelado", field(self.instance, "cancelled") is True)

    def clean(self):
        emision = self.cleaned_data.get("fecha_emision")
        vencimiento = self.cleaned_data.get("fecha_vencimiento")
        if emision and vencimiento:
            if emision >= vencimiento:
                raise forms.ValidationError(
                    "La fecha de emisión debe ser anterior a la fecha de vencimiento."
                )
            max_age = getattr(settings, "CLG_MAX_EXPIRED_AGE_DAYS", 365)
            if vencimiento < self.today - timedelta(days=max_age):
                raise forms.ValidationError(
                    "La fecha de vencimiento no puede ser anterior a más de 1 año."
                )
            self.lifecycle = classify(vencimiento, self.today, warning_days=get_warning_days())
        return super().clean()

    def payload(self):
        data = self.cleaned_data
        return {
            "folioCLG": data["folio"],
            "relacionExpedientes": data["expediente"],
            "expedienteFolio": self.expediente_folio(),
            "fechaEmision": date_to_timestamp(data["fecha_emision"]),
            "fechaVencimiento": date_to_timestamp(data["fecha_vencimiento"]),
            "estado": self.lifecycle.state.value,
            "cancelado": data.get("cancelado", False),
            "observaciones": data.get("observaciones", ""),
            **self.versioning_payload(),
        }
