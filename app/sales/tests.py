from datetime import date
from decimal import Decimal

from core import quality
from core.alerts import AlertKind, AlertPriority
from core.normalization import date_to_timestamp
from sales.folios import next_file_folio
from sales.notifications import notifications, payment_alerts, recent_document_alerts
from sales.summary import (
    NO_CLIENT_LABEL,
    UNAVAILABLE_LABEL,
    client_label,
    dashboard_totals,
    expediente_rows,
)
from tests.base import BaseEngineTestCase
from tests.factories import Factory


class ClientLabelTests(BaseEngineTestCase):
    def setUp(self):
        self.client_record = Factory.client(nombre="Ana Torres")

    def test_nested_client(self):
        expediente = Factory.expediente(client=self.client_record, shape="object")
        self.assertEqual(client_label(expediente), "Ana Torres")

    def test_side_loaded_client(self):
        expediente = Factory.expediente(client=self.client_record, shape="id")
        index = {self.client_record["objectId"]: self.client_record}
        self.assertEqual(client_label(expediente, index), "Ana Torres")

    def test_singleton_array_client(self):
        expediente = Factory.expediente(client=self.client_record, shape="list")
        self.assertEqual(client_label(expediente), "Ana Torres")

    def test_absent_client(self):
        expediente = Factory.expediente(client=None)
        self.assertEqual(client_label(expediente), NO_CLIENT_LABEL)

    def test_unresolved_id_is_unavailable_not_absent(self):
        expediente = Factory.expediente(client=self.client_record, shape="id")
        self.assertEqual(client_label(expediente, {}), UNAVAILABLE_LABEL)

    def test_malformed_client_is_logged(self):
        expediente = Factory.expediente(relacionUsuarios={"nombre": "sin id"})
        with self.assertLogs("sales.summary", level="WARNING"):
            self.assertEqual(client_label(expediente), UNAVAILABLE_LABEL)


class ExpedienteRowsTests(BaseEngineTestCase):
    def setUp(self):
        self.client_record = Factory.client(nombre="Luis Pérez")
        self.lot1 = Factory.lot(price="200000")
        self.lot2 = Factory.lot(price="150000")
        self.f1 = Factory.expediente(lot=self.lot1, client=self.client_record, shape="id")
        self.f2 = Factory.expediente(lot=self.lot2, shape="object")
        self.payments = [
            Factory.payment(expediente=self.f1, amount=80000),
            Factory.payment(expediente=self.f1, amount=40000),
            Factory.payment(expediente=self.f2, amount=50000),
        ]

    def _snapshot(self, **extra):
        collections = {
            "files": [self.f1, self.f2],
            "lots": [self.lot1, self.lot2],
            "payments": self.payments,
            "clients": [self.client_record],
        }
        collections.update(extra)
        return self.snapshot(**collections)

    def test_rows_scope_payments_per_file(self):
        rows = expediente_rows(self._snapshot())

        self.assertEqual(rows[0]["id"], self.f1["objectId"])
        self.assertEqual(rows[0]["cliente"], "Luis Pérez")
        self.assertEqual(rows[0]["pagado"], Decimal("120000"))
        self.assertEqual(rows[0]["adeudo"], Decimal("80000"))
        self.assertEqual(rows[1]["cliente"], NO_CLIENT_LABEL)
        self.assertFalse(rows[0]["liquidado"])
        self.assertEqual(rows[1]["adeudo"], Decimal("100000"))

    def test_unloaded_lot_without_side_load_shows_zero_price(self):
        rows = expediente_rows(self._snapshot(lots=[]))
        self.assertEqual(rows[0]["precio"], Decimal("0"))
        self.assertEqual(rows[0]["adeudo"], Decimal("0"))
        self.assertTrue(rows[0]["liquidado"])
        # El lote anidado de F2 sigue disponible.
        self.assertEqual(rows[1]["precio"], Decimal("150000"))

    def test_malformed_record_does_not_blank_the_table(self):
        broken = Factory.expediente(relacionLotes=True)
        with self.assertLogs("sales.summary", level="WARNING"):
            rows = expediente_rows(self._snapshot(files=[self.f1, broken, self.f2]))

        self.assertEqual(len(rows), 3)
        self.assertIsNone(rows[1]["adeudo"])
        self.assertIsNone(rows[1]["liquidado"])
        self.assertIn("Relación con forma no reconocida", rows[1]["error"])
        self.assertEqual(rows[2]["adeudo"], Decimal("100000"))

    def test_dirty_payment_is_reported_on_the_row(self):
        dirty = Factory.payment(expediente=self.f2, amount=-1)
        with self.assertLogs("sales.summary", level="WARNING"):
            rows = expediente_rows(self._snapshot(payments=self.payments + [dirty]))
        self.assertEqual(rows[1]["warnings"][0].code, quality.NEGATIVE_AMOUNT)
        self.assertEqual(rows[1]["adeudo"], Decimal("100000"))


class DashboardTotalsTests(BaseEngineTestCase):
    def test_totals(self):
        lot1 = Factory.lot(price="200000")
        lot2 = Factory.lot(price="100000")
        free_lot = Factory.lot(price="100000")
        f1 = Factory.expediente(lot=lot1)
        f2 = Factory.expediente(lot=lot2)
        payments = [
            Factory.payment(expediente=f1, amount=120000),
            Factory.payment(expediente=f2, amount=100000),
            Factory.payment(expediente=f2, amount="abc"),
        ]

        totals = dashboard_totals(
            self.snapshot(
                files=[f1, f2],
                lots=[lot1, lot2, free_lot],
                payments=payments,
                clients=[Factory.client()],
            )
        )

        self.assertEqual(totals["expedientes"], 2)
        self.assertEqual(totals["clientes"], 1)
        self.assertEqual(totals["total_pagado"], Decimal("220000"))
        self.assertEqual(totals["valor_inventario"], Decimal("400000"))
        self.assertEqual(totals["adeudo_total"], Decimal("80000"))
        self.assertEqual(totals["porcentaje_cobrado"], Decimal("55.00"))
        self.assertEqual(totals["expedientes_con_adeudo"], 1)
        self.assertEqual(totals["expedientes_con_error"], 0)

    def test_empty_snapshot(self):
        totals = dashboard_totals(self.snapshot())
        self.assertEqual(totals["total_pagado"], Decimal("0"))
        self.assertEqual(totals["porcentaje_cobrado"], Decimal("0"))
        self.assertEqual(totals["expedientes"], 0)


class NotificationsTests(BaseEngineTestCase):
    def setUp(self):
        expediente = Factory.expediente()

        def pending(**kwargs):
            return Factory.payment(expediente=expediente, estado="pendiente", **kwargs)

        self.overdue = pending(amount=1500, concepto="Enganche", fechaVencimiento="2024-12-25")
        self.urgent = pending(fechaVencimiento="2025-01-06")
        self.soon = pending(fechaVencimiento="2025-01-12")
        self.later = pending(fechaVencimiento="2025-03-01")
        self.undated = pending()
        self.paid = Factory.payment(expediente=expediente, estado="pagado")
        self.payments = [self.later, self.paid, self.undated, self.soon, self.overdue, self.urgent]

        self.recent = Factory.document(
            expediente=expediente,
            nombre="Contrato firmado",
            created=date_to_timestamp(date(2024, 12, 28)),
        )
        self.week_old = Factory.document(expediente=expediente, created="2024-12-25")
        self.old = Factory.document(expediente=expediente, created="2024-12-01")
        self.no_date = Factory.document(expediente=expediente)
        self.documents = [self.old, self.week_old, self.no_date, self.recent]

        self.expired_clg = Factory.certificate(expiry=date(2024, 12, 20))

    def test_pending_payment_priorities(self):
        alerts = {a.record_id: a for a in payment_alerts(self.payments, self.today)}

        self.assertNotIn(self.paid["objectId"], alerts)
        overdue = alerts[self.overdue["objectId"]]
        self.assertEqual(overdue.priority, AlertPriority.HIGH)
        self.assertEqual(
            overdue.description, "Pago pendiente de $1,500.00 - Enganche (Vencido hace 7 días)"
        )
        self.assertEqual(alerts[self.urgent["objectId"]].priority, AlertPriority.HIGH)
        self.assertEqual(alerts[self.soon["objectId"]].priority, AlertPriority.MEDIUM)
        self.assertIn("(Vence en 11 días)", alerts[self.soon["objectId"]].description)
        self.assertEqual(alerts[self.later["objectId"]].priority, AlertPriority.MEDIUM)
        self.assertNotIn("Vence", alerts[self.later["objectId"]].description)
        self.assertEqual(alerts[self.undated["objectId"]].timestamp, self.today)
        self.assertIsNone(alerts[self.undated["objectId"]].days_remaining)

    def test_invalid_payment_due_date_is_logged(self):
        broken = Factory.payment(
            expediente=Factory.expediente(), estado="Pendiente", fechaVencimiento="sin fecha"
        )
        with self.assertLogs("sales.notifications", level="WARNING"):
            alerts = payment_alerts([broken], self.today)
        self.assertEqual(alerts[0].priority, AlertPriority.MEDIUM)

    def test_recent_documents(self):
        alerts = recent_document_alerts(self.documents, self.today)
        self.assertEqual(
            [a.record_id for a in alerts],
            [self.recent["objectId"], self.week_old["objectId"]],
        )
        self.assertEqual(alerts[0].description, "Se agregó Contrato firmado (Contrato)")
        self.assertEqual({a.priority for a in alerts}, {AlertPriority.LOW})
        self.assertEqual(alerts[0].kind, AlertKind.DOCUMENT)

    def test_feed_orders_by_priority_then_newest(self):
        feed = notifications(
            self.snapshot(
                payments=self.payments,
                documents=self.documents,
                certificates=[self.expired_clg],
            ),
            self.today,
        )
        self.assertEqual(
            [a.record_id for a in feed],
            [
                self.urgent["objectId"],
                self.overdue["objectId"],
                self.expired_clg["objectId"],
                self.later["objectId"],
                self.soon["objectId"],
                self.undated["objectId"],
                self.recent["objectId"],
                self.week_old["objectId"],
            ],
        )
        self.assertEqual(feed[2].kind, AlertKind.CLG)


class FileFolioTests(BaseEngineTestCase):
    def test_first_folio(self):
        self.assertEqual(next_file_folio([]), "EXP-0001")

    def test_uses_highest_folio_not_count(self):
        expedientes = [
            Factory.expediente(folioExpediente="EXP-0001"),
            Factory.expediente(folioExpediente="EXP-0004"),
            Factory.expediente(folioExpediente="LEGADO-7"),
        ]
        self.assertEqual(next_file_folio(expedientes), "EXP-0005")

    def test_grows_past_four_digits(self):
        self.assertEqual(
            next_file_folio([Factory.expediente(folioExpediente="EXP-9999")]), "EXP-10000"
        )
