from datetime import date

from django.test import SimpleTestCase

from core.records import Snapshot

from .factories import Factory


class BaseEngineTestCase(SimpleTestCase):
    today = date(2025, 1, 1)

    def make_file(self, *, price="200000", **kwargs):
        lot = Factory.lot(price=price)
        expediente = Factory.expediente(lot=lot, **kwargs)
        return expediente, lot

    def snapshot(self, **collections):
        return Snapshot.from_collections(**collections)
