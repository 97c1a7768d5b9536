from datetime import date
from decimal import Decimal

from core import quality
from core.relations import MalformedRelationError, index_by_id
from finance.forms import PaymentForm
from finance.ledger import (
    balance_for_file,
    balances_by_file,
    compute_balance,
    lot_for_file,
    payments_for_file,
)
from finance.references import next_payment_reference
from tests.base import BaseEngineTestCase
from tests.factories import Factory


class ComputeBalanceTests(BaseEngineTestCase):
    def test_price_minus_payments(self):
        expediente, lot = self.make_file(price="150000")
        payments = [
            Factory.payment(expediente=expediente, amount=50000),
            Factory.payment(expediente=expediente, amount=30000),
        ]

        balance = compute_balance(expediente, lot, payments)

        self.assertEqual(balance.price, Decimal("150000"))
        self.assertEqual(balance.paid, Decimal("80000"))
        self.assertEqual(balance.owed, Decimal("70000"))
        self.assertEqual(balance.warnings, ())
        self.assertEqual(balance.percent_paid, 53)

    def test_overpayment_floors_at_zero(self):
        expediente, lot = self.make_file(price="100000")
        payments = [
            Factory.payment(expediente=expediente, amount=60000),
            Factory.payment(expediente=expediente, amount=60000),
        ]

        balance = compute_balance(expediente, lot, payments)

        self.assertEqual(balance.owed, Decimal("0"))
        self.assertTrue(balance.is_settled)
        self.assertEqual(balance.percent_paid, 100)

    def test_owed_never_negative(self):
        for price, amounts in [("0", [1]), ("10", [10]), ("10", [3, 3, 3]), ("5", [])]:
            with self.subTest(price=price, amounts=amounts):
                expediente, lot = self.make_file(price=price)
                payments = [Factory.payment(expediente=expediente, amount=a) for a in amounts]
                balance = compute_balance(expediente, lot, payments)
                self.assertGreaterEqual(balance.owed, 0)
                if sum(amounts) >= Decimal(price):
                    self.assertEqual(balance.owed, 0)

    def test_missing_lot_counts_as_zero_price(self):
        expediente = Factory.expediente(lot=None)
        payments = [Factory.payment(expediente=expediente, amount=1000)]

        balance = compute_balance(expediente, None, payments)

        self.assertEqual(balance.price, Decimal("0"))
        self.assertEqual(balance.paid, Decimal("1000"))
        self.assertEqual(balance.owed, Decimal("0"))
        self.assertEqual(balance.percent_paid, 0)

    def test_dirty_amounts_contribute_zero_with_warnings(self):
        expediente, lot = self.make_file(price="100000")
        bad_negative = Factory.payment(expediente=expediente, amount=-500)
        bad_text = Factory.payment(expediente=expediente, amount="abc")
        bad_nan = Factory.payment(expediente=expediente, amount=float("nan"))
        good = Factory.payment(expediente=expediente, amount=40000)

        balance = compute_balance(expediente, lot, [bad_negative, bad_text, bad_nan, good])

        self.assertEqual(balance.paid, Decimal("40000"))
        self.assertEqual(balance.owed, Decimal("60000"))
        codes = [w.code for w in balance.warnings]
        self.assertEqual(
            codes,
            [quality.NEGATIVE_AMOUNT, quality.INVALID_AMOUNT, quality.INVALID_AMOUNT],
        )
        self.assertEqual(balance.warnings[0].record_id, bad_negative["objectId"])

    def test_invalid_lot_price_warns(self):
        expediente, lot = self.make_file(price="no-num")

        balance = compute_balance(expediente, lot, [])

        self.assertEqual(balance.price, Decimal("0"))
        self.assertEqual([w.code for w in balance.warnings], [quality.INVALID_PRICE])

    def test_file_without_id_is_malformed(self):
        with self.assertRaises(MalformedRelationError):
            compute_balance({"folioExpediente": "FOL-X"}, None, [])

    def test_payments_match_any_relation_shape(self):
        expediente, lot = self.make_file(price="100000")
        payments = [
            Factory.payment(expediente=expediente, amount=10000, shape="id"),
            Factory.payment(expediente=expediente, amount=20000, shape="object"),
            Factory.payment(expediente=expediente, amount=30000, shape="list"),
        ]

        balance = compute_balance(expediente, lot, payments)

        self.assertEqual(balance.paid, Decimal("60000"))

    def test_matching_uses_internal_id_not_folio(self):
        expediente, lot = self.make_file(price="100000")
        # Pago legado que solo trae el folio: no se atribuye.
        legacy = {"objectId": "PAG-L", "monto": 5000, "folioExpediente": expediente["folioExpediente"]}

        balance = compute_balance(expediente, lot, [legacy])

        self.assertEqual(balance.paid, Decimal("0"))

    def test_malformed_payment_relation_is_skipped_with_warning(self):
        expediente, lot = self.make_file(price="100000")
        broken = {"objectId": "PAG-B", "monto": 5000, "relacionExpedientes": 17}

        balance = compute_balance(expediente, lot, [broken])

        self.assertEqual(balance.paid, Decimal("0"))
        self.assertEqual(balance.warnings[0].code, quality.UNATTRIBUTED_PAYMENT)
        self.assertEqual(balance.warnings[0].detail, "int")

    def test_inputs_are_not_mutated(self):
        expediente, lot = self.make_file(price="100000")
        payments = [Factory.payment(expediente=expediente, amount=10000)]
        snapshot = (dict(expediente), dict(lot), [dict(p) for p in payments])

        compute_balance(expediente, lot, payments)

        self.assertEqual((expediente, lot, payments), snapshot)


class PaymentScopingTests(BaseEngineTestCase):
    """Expediente F1 (lote 200000) con pagos de F1 y un pago de F2."""

    def setUp(self):
        self.f1, self.lot = self.make_file(price="200000")
        self.f2, _ = self.make_file(price="300000")
        self.payments = [
            Factory.payment(expediente=self.f1, amount=80000),
            Factory.payment(expediente=self.f1, amount=40000),
            Factory.payment(expediente=self.f2, amount=50000),
        ]

    def test_full_collection_is_filtered_by_file(self):
        balance = compute_balance(self.f1, self.lot, self.payments)
        self.assertEqual(balance.owed, Decimal("80000"))

    def test_correctly_prefiltered_list(self):
        scoped = payments_for_file(self.payments, self.f1["objectId"])
        balance = compute_balance(self.f1, self.lot, scoped, prefiltered=True)
        self.assertEqual(balance.owed, Decimal("80000"))

    def test_unfiltered_list_marked_prefiltered_overcounts(self):
        # Uso incorrecto: se confía en el llamador y se suma el pago de F2.
        balance = compute_balance(self.f1, self.lot, self.payments, prefiltered=True)
        self.assertEqual(balance.paid, Decimal("170000"))
        self.assertEqual(balance.owed, Decimal("30000"))

    def test_balances_by_file(self):
        balances = balances_by_file([self.f1, self.f2], [self.lot], self.payments)
        self.assertEqual(balances[self.f1["objectId"]].owed, Decimal("80000"))
        # El lote de F2 viene anidado en el expediente.
        self.assertEqual(balances[self.f2["objectId"]].owed, Decimal("250000"))

    def test_balances_by_file_excludes_payment_being_edited(self):
        editing = self.payments[0]
        balances = balances_by_file(
            [self.f1], [self.lot], self.payments, exclude_payment_id=editing["objectId"]
        )
        self.assertEqual(balances[self.f1["objectId"]].owed, Decimal("160000"))

    def test_balances_by_file_skips_malformed_file(self):
        broken = Factory.expediente(relacionLotes=3.14)
        with self.assertLogs("finance.ledger", level="WARNING"):
            balances = balances_by_file([self.f1, broken], [self.lot], self.payments)
        self.assertIn(self.f1["objectId"], balances)
        self.assertNotIn(broken["objectId"], balances)


class LotLookupTests(BaseEngineTestCase):
    def test_lot_from_side_loaded_index(self):
        lot = Factory.lot(price="90000")
        expediente = Factory.expediente(lot=lot, shape="id")
        index = index_by_id([lot])

        self.assertIs(lot_for_file(expediente, index), lot)
        payments = [Factory.payment(expediente=expediente, amount=10000)]
        self.assertEqual(balance_for_file(expediente, index, payments).owed, Decimal("80000"))

    def test_unexpanded_lot_without_index_is_zero_price(self):
        lot = Factory.lot(price="90000")
        expediente = Factory.expediente(lot=lot, shape="id")

        balance = balance_for_file(expediente, {}, [])

        self.assertEqual(balance.price, Decimal("0"))


class PaymentReferenceTests(BaseEngineTestCase):
    def test_first_reference_of_month(self):
        self.assertEqual(next_payment_reference([], date(2025, 3, 5)), "PAG-2025-03-00001")

    def test_consecutive_restarts_each_month(self):
        payments = [
            {"referencia": "PAG-2025-03-00007"},
            {"referencia": "PAG-2025-03-00002"},
            {"referencia": "PAG-2025-02-00099"},
            {"referencia": "otra"},
            {},
        ]
        self.assertEqual(next_payment_reference(payments, date(2025, 3, 20)), "PAG-2025-03-00008")
        self.assertEqual(next_payment_reference(payments, date(2025, 4, 1)), "PAG-2025-04-00001")


class PaymentFormTests(BaseEngineTestCase):
    def setUp(self):
        self.f1, self.lot1 = self.make_file(price="200000")
        self.f2, self.lot2 = self.make_file(price="50000")
        self.pagos = [
            Factory.payment(expediente=self.f1, amount=120000, referencia="PAG-2025-01-00001"),
            Factory.payment(expediente=self.f2, amount=50000, referencia="PAG-2025-01-00002"),
        ]

    def _form(self, data=None, **kwargs):
        kwargs.setdefault("today", self.today)
        return PaymentForm(
            data,
            expedientes=[self.f1, self.f2],
            lotes=[self.lot1, self.lot2],
            pagos=self.pagos,
            **kwargs,
        )

    def _data(self, **overrides):
        data = {
            "expediente": self.f1["objectId"],
            "monto": "30,000.00",
            "metodo_pago": "DEBITO",
            "moneda": "MXN",
            "observaciones": "",
        }
        data.update(overrides)
        return data

    def test_only_files_with_balance_are_offered(self):
        form = self._form()
        offered = [value for value, _ in form.fields["expediente"].choices]
        self.assertEqual(offered, [self.f1["objectId"]])
        self.assertIn("Adeudo: $80,000.00", form.fields["expediente"].choices[0][1])

    def test_valid_payment_builds_payload(self):
        form = self._form(self._data())
        self.assertTrue(form.is_valid(), form.errors)
        payload = form.payload()
        self.assertEqual(payload["monto"], 30000.0)
        self.assertEqual(payload["relacionExpedientes"], self.f1["objectId"])
        self.assertEqual(payload["folioExpediente"], self.f1["folioExpediente"])
        self.assertEqual(payload["referencia"], "PAG-2025-01-00003")

    def test_amount_above_balance_is_rejected(self):
        form = self._form(self._data(monto="80000.01"))
        self.assertFalse(form.is_valid())
        self.assertIn("El monto excede el adeudo", form.non_field_errors()[0])
        self.assertIn("$80,000.00", form.non_field_errors()[0])

    def test_exact_balance_is_accepted(self):
        form = self._form(self._data(monto="80000"))
        self.assertTrue(form.is_valid(), form.errors)

    def test_non_positive_or_text_amount_is_rejected(self):
        for monto in ("0", "-10", "abc"):
            with self.subTest(monto=monto):
                form = self._form(self._data(monto=monto))
                self.assertFalse(form.is_valid())
                self.assertIn("monto", form.errors)

    def test_editing_excludes_own_amount_and_keeps_reference(self):
        editing = self.pagos[1]
        form = self._form(
            self._data(expediente=self.f2["objectId"], monto="50000"),
            instance=editing,
        )
        self.assertTrue(form.is_valid(), form.errors)
        self.assertTrue(form.fields["expediente"].disabled)
        self.assertEqual(form.payload()["referencia"], "PAG-2025-01-00002")

    def test_editing_cannot_reassign_file(self):
        editing = self.pagos[1]
        form = self._form(
            self._data(expediente=self.f1["objectId"], monto="100"),
            instance=editing,
        )
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data["expediente"], self.f2["objectId"])
