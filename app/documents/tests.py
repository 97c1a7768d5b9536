from datetime import date, datetime

from django.test import override_settings

from core.alerts import AlertKind, AlertPriority
from core.normalization import date_to_timestamp, to_date
from core.relations import MalformedRelationError
from documents.certificates import (
    CANCELLED_LABEL,
    certificate_stats,
    certificate_summary,
    display_status,
    expiry_alerts,
    filter_by_state,
    sort_by_priority,
)
from documents.choices import DocumentStatus, parse_status
from documents.forms import CertificateForm, DocumentForm
from documents.lifecycle import LifecycleState, classify, is_upcoming
from documents.versioning import (
    file_history,
    next_version,
    next_version_for_file,
    plan_replacement,
    soft_delete,
    supersede,
)
from tests.base import BaseEngineTestCase
from tests.factories import Factory


class NextVersionTests(BaseEngineTestCase):
    def test_max_plus_one_regardless_of_order(self):
        self.assertEqual(next_version([{"version": 1}, {"version": 3}, {"version": 2}]), 4)

    def test_empty_history_starts_at_one(self):
        self.assertEqual(next_version([]), 1)
        self.assertEqual(next_version(None), 1)

    def test_missing_or_zero_versions_are_absent(self):
        self.assertEqual(next_version([{"version": 0}, {"version": None}, {}]), 1)
        self.assertEqual(next_version([{"version": float("nan")}, {"version": 2}]), 3)

    def test_gaps_are_not_filled(self):
        self.assertEqual(next_version([{"version": 1}, {"version": 5}]), 6)


class FileScopedVersionTests(BaseEngineTestCase):
    def setUp(self):
        self.f1 = Factory.expediente()
        self.f2 = Factory.expediente()
        self.records = [
            Factory.document(expediente=self.f1, version=1, status=DocumentStatus.REPLACED),
            Factory.document(expediente=self.f1, version=2, status=DocumentStatus.DELETED, shape="id"),
            Factory.document(expediente=self.f1, version=3, status=DocumentStatus.ACTIVE, shape="list"),
            Factory.document(expediente=self.f2, version=7),
        ]

    def test_replaced_and_deleted_still_count(self):
        self.assertEqual(next_version_for_file(self.records, self.f1["objectId"]), 4)

    def test_other_files_are_ignored(self):
        self.assertEqual(next_version_for_file(self.records, self.f2["objectId"]), 8)
        self.assertEqual(next_version_for_file(self.records, "EXP-SIN-DOCS"), 1)

    def test_unscoped_history_is_the_known_bug(self):
        # Sin filtrar por expediente la versión sale del máximo global.
        self.assertEqual(next_version(self.records), 8)

    def test_file_history(self):
        history = file_history(self.records, self.f1["objectId"])
        self.assertEqual([d["version"] for d in history], [1, 2, 3])

    def test_malformed_history_propagates(self):
        records = self.records + [{"objectId": "DOC-X", "version": 9, "relacionExpedientes": 5}]
        with self.assertRaises(MalformedRelationError):
            next_version_for_file(records, self.f1["objectId"])

    def test_file_id_is_required(self):
        with self.assertRaises(ValueError):
            next_version_for_file(self.records, "")


class ReplacementTests(BaseEngineTestCase):
    def setUp(self):
        self.f1 = Factory.expediente()
        self.f2 = Factory.expediente()
        self.old = Factory.document(expediente=self.f1, version=1, status=DocumentStatus.REPLACED)
        self.current = Factory.document(expediente=self.f1, version=2)
        self.foreign = Factory.document(expediente=self.f2, version=1)
        self.records = [self.old, self.current, self.foreign]

    def test_new_upload_supersedes_nothing(self):
        plan = plan_replacement(self.records, self.f1["objectId"])
        self.assertEqual(plan.version, 3)
        self.assertEqual(plan.supersede_ids, ())
        self.assertEqual(plan.payload(), {"version": 3, "status": "Activo"})

    def test_replacing_active_record(self):
        plan = plan_replacement(self.records, self.f1["objectId"], self.current["objectId"])
        self.assertEqual(plan.version, 3)
        self.assertEqual(plan.supersede_ids, (self.current["objectId"],))

    def test_replacing_already_replaced_record(self):
        plan = plan_replacement(self.records, self.f1["objectId"], self.old["objectId"])
        self.assertEqual(plan.supersede_ids, ())

    def test_replacing_record_of_other_file_fails(self):
        with self.assertRaises(ValueError):
            plan_replacement(self.records, self.f1["objectId"], self.foreign["objectId"])

    def test_status_payloads(self):
        self.assertEqual(soft_delete(), {"status": "Eliminado"})
        self.assertEqual(supersede(), {"status": "Reemplazado"})

    def test_parse_status_reads_legacy_values(self):
        self.assertEqual(parse_status("Inactivo"), DocumentStatus.DELETED)
        self.assertEqual(parse_status("activo"), DocumentStatus.ACTIVE)
        self.assertEqual(parse_status(None), DocumentStatus.ACTIVE)


class ClassifyTests(BaseEngineTestCase):
    def test_boundaries(self):
        cases = [
            (date(2025, 1, 1), LifecycleState.EXPIRING, 0),
            (date(2025, 1, 11), LifecycleState.EXPIRING, 10),
            (date(2025, 1, 12), LifecycleState.CURRENT, 11),
            (date(2024, 12, 31), LifecycleState.EXPIRED, -1),
        ]
        for expiry, state, days in cases:
            with self.subTest(expiry=expiry):
                result = classify(expiry, self.today)
                self.assertEqual(result.state, state)
                self.assertEqual(result.days_remaining, days)

    def test_time_of_day_is_ignored(self):
        result = classify(datetime(2025, 1, 11, 0, 1), datetime(2025, 1, 1, 23, 59))
        self.assertEqual(result.days_remaining, 10)
        self.assertEqual(result.state, LifecycleState.EXPIRING)

    def test_wire_formats(self):
        self.assertEqual(classify("2025-01-12", self.today).state, LifecycleState.CURRENT)
        self.assertEqual(classify("2024-12-31T10:00:00", "2025-01-01").state, LifecycleState.EXPIRED)

    def test_compact_iso_date_is_classified_by_its_calendar_day(self):
        result = classify("20250111", self.today)
        self.assertEqual(result.state, LifecycleState.EXPIRING)
        self.assertEqual(result.days_remaining, 10)
        self.assertEqual(classify("20250230", self.today).state, LifecycleState.ERROR)

    def test_unparseable_expiry_is_error(self):
        for raw in (None, "", "pendiente", "2025-02-30"):
            with self.subTest(raw=raw):
                result = classify(raw, self.today)
                self.assertEqual(result.state, LifecycleState.ERROR)
                self.assertIsNone(result.days_remaining)
                self.assertEqual(result.label, "Error")

    def test_custom_threshold(self):
        result = classify(date(2025, 1, 25), self.today, warning_days=30)
        self.assertEqual(result.state, LifecycleState.EXPIRING)
        with self.assertRaises(ValueError):
            classify(date(2025, 1, 25), self.today, warning_days=-1)

    def test_invalid_reference_date(self):
        with self.assertRaises(ValueError):
            classify(date(2025, 1, 25), "ayer")

    def test_is_pure(self):
        first = classify(date(2025, 1, 5), self.today)
        second = classify(date(2025, 1, 5), self.today)
        self.assertEqual(first, second)

    def test_priority_and_labels(self):
        expired = classify(date(2024, 12, 1), self.today)
        current = classify(date(2025, 6, 1), self.today)
        self.assertLess(expired.priority, current.priority)
        self.assertEqual(expired.label, "Vencido")
        self.assertEqual(current.label, "Vigente")

    def test_upcoming_filter_is_not_a_state(self):
        in_twenty = classify(date(2025, 1, 21), self.today)
        self.assertEqual(in_twenty.state, LifecycleState.CURRENT)
        self.assertTrue(is_upcoming(in_twenty))
        self.assertFalse(is_upcoming(classify(date(2025, 2, 15), self.today)))
        self.assertFalse(is_upcoming(classify(date(2024, 12, 15), self.today)))
        self.assertFalse(is_upcoming(classify(None, self.today)))


class CertificateListTests(BaseEngineTestCase):
    def setUp(self):
        self.expired = Factory.certificate(expiry=date(2024, 12, 20))
        self.expiring = Factory.certificate(expiry=date(2025, 1, 5))
        self.upcoming = Factory.certificate(expiry=date(2025, 1, 20))
        self.current = Factory.certificate(expiry=date(2025, 8, 1))
        self.broken = Factory.certificate(fechaVencimiento="sin fecha")
        self.cancelled = Factory.certificate(expiry=date(2024, 11, 1), cancelado=True)
        self.all = [
            self.current, self.upcoming, self.broken,
            self.expiring, self.expired, self.cancelled,
        ]

    def test_stats(self):
        stats = certificate_stats(self.all, self.today)
        self.assertEqual(
            stats,
            {"total": 6, "vigentes": 2, "por_vencer": 1, "vencidos": 2, "con_error": 1},
        )

    def test_filter_by_state(self):
        self.assertEqual(filter_by_state(self.all, "expiring", self.today), [self.expiring])
        self.assertEqual(len(filter_by_state(self.all, "todos", self.today)), 6)
        with self.assertRaises(ValueError):
            filter_by_state(self.all, "archivado", self.today)

    def test_sort_by_priority(self):
        ordered = sort_by_priority(self.all, self.today)
        self.assertIs(ordered[0], self.broken)
        self.assertEqual(ordered[1:3], [self.cancelled, self.expired])
        self.assertIs(ordered[-1], self.current)

    def test_cancelled_overrides_display_only(self):
        self.assertEqual(display_status(self.cancelled, self.today), CANCELLED_LABEL)
        summary = certificate_summary(self.cancelled, self.today)
        self.assertEqual(summary["estado"], "expired")
        self.assertTrue(summary["cancelado"])

    def test_persisted_state_is_recomputed(self):
        stale = Factory.certificate(expiry=date(2024, 12, 20), estado="Vigente")
        fresh = Factory.certificate(expiry=date(2024, 12, 20), estado="Vencido")
        with self.assertLogs("documents.certificates", level="INFO"):
            summary = certificate_summary(stale, self.today)
        self.assertEqual(summary["estado"], "expired")
        self.assertEqual(summary["estado_label"], "Vencido")
        self.assertTrue(summary["estado_guardado_desactualizado"])
        self.assertFalse(certificate_summary(fresh, self.today)["estado_guardado_desactualizado"])

    def test_expiry_alerts(self):
        alerts = expiry_alerts(self.all, self.today)
        by_id = {a.record_id: a for a in alerts}

        self.assertNotIn(self.current["objectId"], by_id)
        self.assertNotIn(self.cancelled["objectId"], by_id)
        self.assertEqual(by_id[self.expired["objectId"]].priority, AlertPriority.HIGH)
        self.assertIn("venció hace 12 días", by_id[self.expired["objectId"]].description)
        self.assertEqual(by_id[self.expiring["objectId"]].priority, AlertPriority.HIGH)
        self.assertEqual(by_id[self.upcoming["objectId"]].priority, AlertPriority.MEDIUM)
        self.assertEqual(by_id[self.broken["objectId"]].priority, AlertPriority.MEDIUM)
        self.assertEqual({a.kind for a in alerts}, {AlertKind.CLG})

    def test_expiry_alerts_newest_first_within_priority(self):
        alerts = expiry_alerts(self.all, self.today)
        self.assertEqual(
            [a.record_id for a in alerts],
            [
                self.expiring["objectId"],
                self.expired["objectId"],
                self.upcoming["objectId"],
                self.broken["objectId"],
            ],
        )
        self.assertEqual(alerts[0].id, f"clg-expiring-{self.expiring['objectId']}")
        self.assertIsNone(alerts[-1].timestamp)

    @override_settings(CLG_UPCOMING_WINDOW_DAYS=10, CLG_URGENT_WINDOW_DAYS=2)
    def test_alert_windows_come_from_settings(self):
        alerts = expiry_alerts([self.expiring, self.upcoming], self.today)
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].priority, AlertPriority.MEDIUM)

    @override_settings(CLG_EXPIRY_WARNING_DAYS=30)
    def test_warning_threshold_from_settings(self):
        summary = certificate_summary(self.upcoming, self.today)
        self.assertEqual(summary["estado"], "expiring")


class DocumentFormTests(BaseEngineTestCase):
    def setUp(self):
        self.f1 = Factory.expediente()
        self.f2 = Factory.expediente()
        self.v1 = Factory.document(expediente=self.f1, version=1, status=DocumentStatus.REPLACED)
        self.v2 = Factory.document(expediente=self.f1, version=2)
        self.other = Factory.document(expediente=self.f2, version=9)
        self.history = [self.v1, self.v2, self.other]

    def _form(self, data, **kwargs):
        return DocumentForm(data, expedientes=[self.f1, self.f2], history=self.history, **kwargs)

    def test_new_document_version_is_scoped_to_file(self):
        form = self._form({"tipo": "Contrato", "expediente": self.f1["objectId"], "archivo_nuevo": "on"})
        self.assertTrue(form.is_valid(), form.errors)
        payload = form.payload()
        self.assertEqual(payload["version"], 3)
        self.assertEqual(payload["estadoDocumento"], "Activo")
        self.assertEqual(payload["expedienteFolio"], self.f1["folioExpediente"])
        self.assertEqual(form.supersede_ids, ())

    def test_new_document_requires_file(self):
        form = self._form({"tipo": "Contrato", "expediente": self.f1["objectId"]})
        self.assertFalse(form.is_valid())
        self.assertIn("Debes seleccionar un archivo.", form.non_field_errors())

    def test_replacing_file_bumps_against_history(self):
        form = self._form(
            {"tipo": "Contrato", "archivo_nuevo": "on"},
            instance=self.v2,
        )
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.version, 3)
        self.assertEqual(form.supersede_ids, (self.v2["objectId"],))

    def test_plain_edit_keeps_version(self):
        form = self._form({"tipo": "Escritura", "observaciones": "corrección"}, instance=self.v2)
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.payload()["version"], 2)
        self.assertEqual(form.supersede_ids, ())

    def test_replacement_payload_lists_superseded_records(self):
        form = self._form({"tipo": "Contrato", "archivo_nuevo": "on"}, instance=self.v2)
        self.assertTrue(form.is_valid(), form.errors)
        payload = form.payload()
        self.assertTrue(payload["nuevo_registro"])
        self.assertEqual(payload["reemplaza"], [self.v2["objectId"]])
        self.assertEqual(payload["estadoDocumento"], "Activo")
        self.assertEqual(payload["version"], 3)

    def test_new_document_payload_supersedes_nothing(self):
        form = self._form({"tipo": "Acuse", "expediente": self.f2["objectId"], "archivo_nuevo": "on"})
        self.assertTrue(form.is_valid(), form.errors)
        payload = form.payload()
        self.assertTrue(payload["nuevo_registro"])
        self.assertEqual(payload["reemplaza"], [])
        self.assertEqual(payload["version"], 10)

    def test_plain_edit_keeps_stored_status(self):
        deleted = Factory.document(expediente=self.f1, version=3, status=DocumentStatus.DELETED)
        for record, expected in ((self.v1, "Reemplazado"), (self.v2, "Activo"), (deleted, "Eliminado")):
            with self.subTest(status=expected):
                form = self._form({"tipo": "Contrato", "observaciones": "x"}, instance=record)
                self.assertTrue(form.is_valid(), form.errors)
                payload = form.payload()
                self.assertEqual(payload["estadoDocumento"], expected)
                self.assertFalse(payload["nuevo_registro"])
                self.assertEqual(payload["reemplaza"], [])

    def test_unknown_type_is_rejected(self):
        form = self._form({"tipo": "Pagaré", "expediente": self.f1["objectId"], "archivo_nuevo": "on"})
        self.assertFalse(form.is_valid())
        self.assertIn("tipo", form.errors)


class CertificateFormTests(BaseEngineTestCase):
    def setUp(self):
        self.f1 = Factory.expediente()
        self.history = [
            Factory.certificate(expediente=self.f1, version=1),
            Factory.certificate(expediente=self.f1, version=2),
        ]

    def _form(self, **overrides):
        data = {
            "folio": "CLG-2025-01",
            "expediente": self.f1["objectId"],
            "fecha_emision": "2024-12-01",
            "fecha_vencimiento": "2025-01-08",
            "archivo_nuevo": "on",
        }
        data.update(overrides)
        return CertificateForm(
            data, expedientes=[self.f1], history=self.history, today=self.today
        )

    def test_payload_carries_version_and_recomputed_state(self):
        form = self._form()
        self.assertTrue(form.is_valid(), form.errors)
        payload = form.payload()
        self.assertEqual(payload["version"], 3)
        self.assertEqual(payload["estado"], "expiring")
        self.assertEqual(to_date(payload["fechaVencimiento"]), date(2025, 1, 8))
        self.assertEqual(to_date(payload["fechaEmision"]), date(2024, 12, 1))

    def test_issue_must_precede_expiry(self):
        form = self._form(fecha_emision="2025-01-08")
        self.assertFalse(form.is_valid())
        self.assertIn(
            "La fecha de emisión debe ser anterior a la fecha de vencimiento.",
            form.non_field_errors(),
        )

    def test_expiry_older_than_a_year_is_rejected(self):
        form = self._form(fecha_emision="2023-01-01", fecha_vencimiento="2023-12-01")
        self.assertFalse(form.is_valid())
        self.assertIn(
            "La fecha de vencimiento no puede ser anterior a más de 1 año.",
            form.non_field_errors(),
        )

    def test_recently_expired_certificate_is_accepted(self):
        form = self._form(fecha_emision="2024-06-01", fecha_vencimiento="2024-12-01")
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.payload()["estado"], "expired")


class CertificateEditFormTests(BaseEngineTestCase):
    def setUp(self):
        self.f1 = Factory.expediente()
        self.f2 = Factory.expediente()
        self.old = Factory.certificate(expediente=self.f1, version=1)
        self.current = Factory.certificate(
            expediente=self.f1,
            version=2,
            folioCLG="CLG-2025-07",
            fechaEmision=date_to_timestamp(date(2024, 12, 1)),
            fechaVencimiento=date_to_timestamp(date(2025, 1, 8)),
            cancelado=False,
        )
        self.other = Factory.certificate(expediente=self.f2, version=5)
        self.history = [self.old, self.current, self.other]

    def _form(self, data=None):
        return CertificateForm(
            data,
            expedientes=[self.f1, self.f2],
            history=self.history,
            instance=self.current,
            today=self.today,
        )

    def _data(self, **overrides):
        data = {
            "folio": "CLG-2025-07",
            "fecha_emision": "2024-12-01",
            "fecha_vencimiento": "2025-03-01",
        }
        data.update(overrides)
        return data

    def test_initial_values_come_from_millisecond_dates(self):
        form = self._form()
        self.assertEqual(form.initial["expediente"], self.f1["objectId"])
        self.assertEqual(form.initial["folio"], "CLG-2025-07")
        self.assertEqual(form.initial["fecha_emision"], date(2024, 12, 1))
        self.assertEqual(form.initial["fecha_vencimiento"], date(2025, 1, 8))
        self.assertFalse(form.initial["cancelado"])
        self.assertTrue(form.fields["expediente"].disabled)

    def test_replacement_bumps_version_within_file(self):
        form = self._form(self._data(archivo_nuevo="on"))
        self.assertTrue(form.is_valid(), form.errors)
        payload = form.payload()
        self.assertEqual(payload["version"], 3)
        self.assertEqual(form.supersede_ids, (self.current["objectId"],))
        self.assertEqual(payload["reemplaza"], [self.current["objectId"]])
        self.assertTrue(payload["nuevo_registro"])
        self.assertEqual(payload["relacionExpedientes"], self.f1["objectId"])

    def test_plain_edit_keeps_version(self):
        form = self._form(self._data())
        self.assertTrue(form.is_valid(), form.errors)
        payload = form.payload()
        self.assertEqual(payload["version"], 2)
        self.assertEqual(payload["reemplaza"], [])
        self.assertFalse(payload["nuevo_registro"])
        self.assertEqual(payload["estado"], "current")
        self.assertEqual(to_date(payload["fechaVencimiento"]), date(2025, 3, 1))
