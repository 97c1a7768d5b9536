from decimal import Decimal, InvalidOperation

from django import forms
from django.utils import timezone

from core.normalization import normalize_money_input, to_date
from core.records import field, record_id
from core.relations import MalformedRelationError, index_by_id, resolve_id

from .ledger import balances_by_file
from .references import next_payment_reference


PAYMENT_METHOD_CHOICES = [
    ("DEBITO", "Débito"),
    ("CREDITO", "Crédito"),
    ("EFECTIVO EN VENTANILLA", "Efectivo en ventanilla"),
]

CURRENCY_CHOICES = [
    ("MXN", "MXN"),
    ("USD", "USD"),
    ("EU", "EU"),
]


class PaymentForm(forms.Form):
    expediente = forms.ChoiceField(
        label="Expediente",
        widget=forms.Select(attrs={"class": "select select-bordered w-full"}),
    )
    monto = forms.CharField(
        label="Monto",
        widget=forms.TextInput(attrs={
            "class": "input input-bordered w-full",
            "inputmode": "decimal",
            "autocomplete": "off",
            "data-money-mask": "true",
        }),
    )
    metodo_pago = forms.ChoiceField(
        label="Método de pago",
        choices=PAYMENT_METHOD_CHOICES,
        widget=forms.Select(attrs={"class": "select select-bordered w-full"}),
    )
    moneda = forms.ChoiceField(
        label="Moneda",
        choices=CURRENCY_CHOICES,
        widget=forms.Select(attrs={"class": "select select-bordered w-full"}),
    )
    observaciones = forms.CharField(
        label="Observaciones",
        required=False,
        widget=forms.Textarea(attrs={"class": "textarea textarea-bordered w-full", "rows": 3}),
    )

    def __init__(self, *args, expedientes=(), lotes=(), pagos=(), instance=None, today=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.instance = instance
        self.pagos = list(pagos or ())
        self.today = to_date(today) if today is not None else timezone.localdate()
        self.expedientes = index_by_id(expedientes)

        # El pago en edición no cuenta contra su propio adeudo.
        self.balances = balances_by_file(
            self.expedientes.values(),
            lotes,
            self.pagos,
            exclude_payment_id=record_id(instance) if instance else None,
        )

        current_file_id = self._instance_file_id()
        choices = []
        for pk, expediente in self.expedientes.items():
            balance = self.balances.get(pk)
            if balance is None:
                continue
            if balance.owed > 0 or pk == current_file_id:
                folio = field(expediente, "folio") or pk
                choices.append((pk, f"{folio} (Adeudo: ${balance.owed:,.2f})"))
        self.fields["expediente"].choices = choices

        if instance is not None:
            self.initial.setdefault("expediente", current_file_id)
            self.initial.setdefault("monto", str(field(instance, "amount", "")))
            self.initial.setdefault("metodo_pago", instance.get("metodoPago", ""))
            self.initial.setdefault("moneda", instance.get("moneda", ""))
            self.initial.setdefault("observaciones", instance.get("observaciones", ""))
            self.fields["expediente"].disabled = True

    def _instance_file_id(self):
        if self.instance is None:
            return None
        try:
            return resolve_id(field(self.instance, "file_ref"))
        except MalformedRelationError:
            return None

    def clean_monto(self):
        raw = self.cleaned_data["monto"]
        normalized = normalize_money_input(raw)
        try:
            value = Decimal(normalized)
        except (InvalidOperation, ValueError):
            raise forms.ValidationError("Debe ser un monto válido mayor a 0.")
        if not value.is_finite() or value <= 0:
            raise forms.ValidationError("Debe ser un monto válido mayor a 0.")
        return value

    def clean(self):
        cleaned = super().clean()
        file_id = cleaned.get("expediente")
        monto = cleaned.get("monto")
        if not file_id or monto is None:
            return cleaned

        balance = self.balances.get(file_id)
        if balance is None:
            raise forms.ValidationError("Expediente no encontrado.")
        if monto > balance.owed:
            raise forms.ValidationError(
                f"El monto excede el adeudo. Adeudo pendiente: ${balance.owed:,.2f}"
            )
        return cleaned

    def payload(self):
        data = self.cleaned_data
        expediente = self.expedientes[data["expediente"]]
        if self.instance is not None and self.instance.get("referencia"):
            referencia = self.instance["referencia"]
        else:
            referencia = next_payment_reference(self.pagos, self.today)
        return {
            "folioExpediente": field(expediente, "folio", ""),
            "monto": float(data["monto"]),
            "metodoPago": data["metodo_pago"],
            "moneda": data["moneda"],
            "referencia": referencia,
            "relacionExpedientes": data["expediente"],
            "observaciones": data.get("observaciones", ""),
        }
