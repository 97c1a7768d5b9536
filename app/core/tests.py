import copy
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

from django.test import SimpleTestCase

from core.normalization import (
    date_to_timestamp,
    normalize_label,
    normalize_money_input,
    parse_amount,
    parse_version,
    to_date,
)
from core.records import Snapshot, field, record_id
from core.relations import (
    ABSENT,
    MalformedRelationError,
    ResolvedRelation,
    index_by_id,
    resolve,
    resolve_entity,
    resolve_id,
    shape_of,
)


class ResolveShapeTests(SimpleTestCase):
    def test_null_is_absent(self):
        self.assertEqual(resolve(None), ResolvedRelation(id=None, loaded=None))

    def test_bare_string_is_unloaded_id(self):
        self.assertEqual(resolve("abc"), ResolvedRelation(id="abc", loaded=None))

    def test_object_is_loaded(self):
        raw = {"id": "abc", "precio": 10}
        result = resolve(raw)
        self.assertEqual(result.id, "abc")
        self.assertIs(result.loaded, raw)

    def test_singleton_array_uses_first_element(self):
        raw = [{"id": "abc", "precio": 10}]
        result = resolve(raw)
        self.assertEqual(result.id, "abc")
        self.assertIs(result.loaded, raw[0])

    def test_empty_array_is_absent(self):
        self.assertEqual(resolve([]), ABSENT)

    def test_backendless_object_id(self):
        self.assertEqual(resolve({"objectId": "X1"}).id, "X1")

    def test_array_of_ids(self):
        self.assertEqual(resolve(["X1"]), ResolvedRelation(id="X1", loaded=None))

    def test_blank_string_is_absent(self):
        self.assertTrue(resolve("  ").is_absent)

    def test_integer_identifier_is_stringified(self):
        self.assertEqual(resolve({"id": 7}).id, "7")

    def test_object_without_identifier_is_malformed(self):
        with self.assertRaises(MalformedRelationError) as ctx:
            resolve({"folioExpediente": "FOL-1"})
        self.assertIn("folioExpediente", ctx.exception.shape)

    def test_scalars_are_malformed(self):
        for raw in (42, 3.5, True, {"id": ""}, {"objectId": None}, {1, 2}):
            with self.subTest(raw=raw):
                with self.assertRaises(MalformedRelationError):
                    resolve(raw)

    def test_error_carries_offending_value(self):
        with self.assertRaises(MalformedRelationError) as ctx:
            resolve(42)
        self.assertEqual(ctx.exception.value, 42)
        self.assertEqual(ctx.exception.shape, "int")
        self.assertIsInstance(ctx.exception, ValueError)

    def test_input_is_not_mutated(self):
        raw = [{"objectId": "X1", "nested": {"a": 1}}]
        before = copy.deepcopy(raw)
        resolve(raw)
        self.assertEqual(raw, before)

    def test_feeding_loaded_back_is_idempotent(self):
        for raw in ("abc", {"id": "abc"}, [{"id": "abc"}], None, []):
            with self.subTest(raw=raw):
                first = resolve(raw)
                second = resolve(first.loaded if first.loaded is not None else raw)
                self.assertEqual(first, second)


class ResolveHelpersTests(SimpleTestCase):
    def test_resolve_entity_prefers_nested_object(self):
        nested = {"objectId": "L1", "precio": 5}
        index = {"L1": {"objectId": "L1", "precio": 99}}
        self.assertIs(resolve_entity(nested, index), nested)

    def test_resolve_entity_uses_side_loaded_index(self):
        index = index_by_id([{"objectId": "L1", "precio": 99}])
        self.assertEqual(resolve_entity("L1", index)["precio"], 99)

    def test_resolve_entity_missing_from_index(self):
        self.assertIsNone(resolve_entity("L9", {}))
        self.assertIsNone(resolve_entity(None, {"L1": {}}))

    def test_index_skips_records_without_id(self):
        index = index_by_id([{"objectId": "A"}, {"nombre": "sin id"}, "basura"])
        self.assertEqual(list(index), ["A"])

    def test_resolve_id(self):
        self.assertEqual(resolve_id([{"objectId": "Z"}]), "Z")

    def test_shape_of_describes_nesting(self):
        self.assertEqual(shape_of([]), "array[0]<empty>")
        self.assertEqual(shape_of([{"id": 1}]), "array[1]<object{id}>")
        self.assertEqual(shape_of(None), "null")


class NormalizationTests(SimpleTestCase):
    def test_parse_amount(self):
        self.assertEqual(parse_amount(150000), Decimal("150000"))
        self.assertEqual(parse_amount("1,250.50"), Decimal("1250.50"))
        self.assertEqual(parse_amount("$ 300"), Decimal("300"))
        self.assertEqual(parse_amount(-5), Decimal("-5"))

    def test_parse_amount_rejects_non_numeric(self):
        for raw in (None, "", "abc", float("nan"), float("inf"), True, {}, "NaN"):
            with self.subTest(raw=raw):
                self.assertIsNone(parse_amount(raw))

    def test_parse_version(self):
        self.assertEqual(parse_version(3), 3)
        self.assertEqual(parse_version(2.0), 2)
        self.assertEqual(parse_version("4"), 4)
        for raw in (None, 0, -1, float("nan"), 1.5, "x", False):
            with self.subTest(raw=raw):
                self.assertIsNone(parse_version(raw))

    def test_to_date_accepts_wire_formats(self):
        self.assertEqual(to_date(date(2025, 1, 11)), date(2025, 1, 11))
        self.assertEqual(to_date(datetime(2025, 1, 11, 23, 59)), date(2025, 1, 11))
        self.assertEqual(to_date("2025-01-11"), date(2025, 1, 11))
        self.assertEqual(to_date("2025-01-11T08:30:00"), date(2025, 1, 11))

    def test_to_date_timestamp_uses_local_zone(self):
        # 2025-01-11 03:00 UTC es 2025-01-10 en Ciudad de México.
        moment = datetime(2025, 1, 11, 3, 0, tzinfo=dt_timezone.utc)
        self.assertEqual(to_date(int(moment.timestamp() * 1000)), date(2025, 1, 10))
        self.assertEqual(to_date(moment), date(2025, 1, 10))

    def test_to_date_compact_iso_is_not_a_timestamp(self):
        self.assertEqual(to_date("20250111"), date(2025, 1, 11))
        self.assertIsNone(to_date("20251345"))
        self.assertIsNone(to_date("2025011"))

    def test_to_date_digit_string_timestamp(self):
        moment = datetime(2025, 1, 11, 18, 0, tzinfo=dt_timezone.utc)
        self.assertEqual(to_date(str(int(moment.timestamp() * 1000))), date(2025, 1, 11))

    def test_to_date_rejects_garbage(self):
        for raw in (None, "", "no es fecha", "2025-13-45", [], True, float("nan")):
            with self.subTest(raw=raw):
                self.assertIsNone(to_date(raw))

    def test_date_to_timestamp_round_trips(self):
        day = date(2025, 3, 15)
        self.assertEqual(to_date(date_to_timestamp(day)), day)

    def test_labels_and_money_input(self):
        self.assertEqual(normalize_label("  Por   Vencer "), "por vencer")
        self.assertEqual(normalize_label("Identificación"), "identificacion")
        self.assertEqual(normalize_money_input("$1,000,000.00"), "1000000.00")


class RecordsTests(SimpleTestCase):
    def test_field_reads_canonical_and_backendless_keys(self):
        self.assertEqual(field({"price": 1}, "price"), 1)
        self.assertEqual(field({"precio": 2}, "price"), 2)
        self.assertEqual(field({"relacionExpedientes": "E1"}, "file_ref"), "E1")
        self.assertEqual(field({}, "price", 0), 0)
        self.assertEqual(field(None, "price", 0), 0)

    def test_record_id(self):
        self.assertEqual(record_id({"objectId": " A1 "}), "A1")
        self.assertEqual(record_id({"id": 3}), "3")
        self.assertIsNone(record_id({"nombre": "x"}))

    def test_snapshot_from_collections(self):
        snapshot = Snapshot.from_collections(files=[{"id": "F1"}], lots=None)
        self.assertEqual(snapshot.files, ({"id": "F1"},))
        self.assertEqual(snapshot.lots, ())
        self.assertEqual(snapshot.payments, ())
