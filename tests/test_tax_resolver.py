"""Tests for TaxResolver: rate matching, adjusting and rate removal."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from shoprules.errors import TaxAdjustmentError, TaxConfigurationError
from shoprules.taxation import (
    Adjustment,
    AdjustmentSourceType,
    Country,
    DefaultTax,
    InMemoryAdjustmentStore,
    Order,
    TaxableItem,
    TaxRate,
    TaxResolver,
    Zone,
)


class TestMatch:
    def test_no_jurisdiction_matches_nothing(self, european_store):
        assert european_store.resolver.match(None) == []

    def test_default_zone_gets_its_rates(self, european_store):
        s = european_store
        rates = s.resolver.match(s.germany_zone)
        assert rates == [s.book_vat, s.normal_vat, s.german_digital_vat]

    def test_destination_rate_replaces_default_rate_for_same_category(self, european_store):
        s = european_store
        rates = s.resolver.match(s.romania_zone)

        assert s.romanian_digital_vat in rates
        assert s.german_digital_vat not in rates
        assert set(rates) == {s.book_vat, s.normal_vat, s.romanian_digital_vat}

    def test_outside_zone_gets_default_vat_rates(self, european_store):
        s = european_store
        rates = s.resolver.match(s.world_zone)
        assert rates == [s.book_vat, s.normal_vat, s.german_digital_vat]

    def test_state_zone_matched_by_country_rate(self, new_york_store):
        s = new_york_store
        rates = s.resolver.match(s.new_york_zone)
        assert rates == [s.new_york_books_tax, s.federal_books_tax, s.federal_digital_tax]

    def test_deleted_rates_are_ignored(self, european_store):
        s = european_store
        s.book_vat.deleted_at = datetime.now(timezone.utc)
        assert s.book_vat not in s.resolver.match(s.germany_zone)


class TestValidation:
    def test_included_rate_requires_default_zone(self, categories):
        zone = Zone(1, "Germany", [Country(1, "DE")])
        rate = TaxRate(1, Decimal("0.19"), zone, categories.normal, included_in_price=True, calculator=DefaultTax())

        with pytest.raises(TaxConfigurationError, match="no default tax zone"):
            TaxResolver([zone], [rate])

    def test_rate_requires_category(self, european_store):
        rate = TaxRate(9, Decimal("0.05"), european_store.eu_zone, None, calculator=DefaultTax())
        with pytest.raises(TaxConfigurationError, match="no tax category"):
            european_store.resolver.add_rate(rate)

    def test_rate_amount_must_be_numeric(self, european_store, categories):
        rate = TaxRate(9, "lots", european_store.eu_zone, categories.books, calculator=DefaultTax())
        with pytest.raises(TaxConfigurationError, match="not numeric"):
            european_store.resolver.add_rate(rate)

    def test_rate_amount_is_coerced_to_decimal(self, european_store, categories):
        rate = european_store.resolver.add_rate(
            TaxRate(9, "0.05", european_store.eu_zone, categories.books, calculator=DefaultTax())
        )
        assert rate.amount == Decimal("0.05")

    def test_float_amount_keeps_its_printed_value(self, european_store, categories):
        rate = european_store.resolver.add_rate(
            TaxRate(9, 0.07, european_store.eu_zone, categories.books, included_in_price=True, calculator=DefaultTax())
        )

        assert rate.amount == Decimal("0.07")
        assert rate.label == "Books 7% (Included in Price)"

    def test_float_prices_keep_their_printed_value(self, european_store, categories):
        book = TaxableItem.line_item(1, 19.99, 2, categories.books, promo_total=-0.1)
        shipment = TaxableItem.shipment("S1", 4.2, categories.normal)

        assert book.amount == Decimal("39.98")
        assert book.discounted_amount == Decimal("39.88")
        assert shipment.amount == Decimal("4.2")


class TestAdjustInclusive:
    def test_book_shipped_to_default_zone(self, european_store, make_line_item, categories):
        s = european_store
        book = make_line_item("20.00", categories.books)

        s.resolver.adjust(s.germany_zone, [book])

        assert book.pre_tax_amount == Decimal("18.69")
        assert len(book.tax_adjustments) == 1
        adjustment = book.tax_adjustments[0]
        assert adjustment.amount == Decimal("1.31")
        assert adjustment.included is True
        assert adjustment.label == "Books 7% (Included in Price)"
        assert adjustment.source is s.book_vat
        assert book.included_tax_total == Decimal("1.31")
        assert book.additional_tax_total == Decimal("0")
        assert book.total == Decimal("20.00")

    def test_sweater_and_download_to_germany(self, european_store, make_line_item, categories):
        s = european_store
        sweater = make_line_item("30.00", categories.normal, item_id=1)
        download = make_line_item("10.00", categories.digital, item_id=2)

        s.resolver.adjust(s.germany_zone, [sweater, download])

        assert sweater.pre_tax_amount == Decimal("25.21")
        assert sweater.included_tax_total == Decimal("4.79")
        assert download.pre_tax_amount == Decimal("8.40")
        assert download.included_tax_total == Decimal("1.60")

    def test_book_shipped_within_eu(self, european_store, make_line_item, categories):
        s = european_store
        book = make_line_item("20.00", categories.books)

        s.resolver.adjust(s.romania_zone, [book])

        assert book.pre_tax_amount == Decimal("18.69")
        assert book.included_tax_total == Decimal("1.31")
        assert book.total == Decimal("20.00")

    def test_download_shipped_to_romania_uses_romanian_rate(self, european_store, make_line_item, categories):
        s = european_store
        download = make_line_item("10.00", categories.digital)

        s.resolver.adjust(s.romania_zone, [download])

        assert [adj.source for adj in download.tax_adjustments] == [s.romanian_digital_vat]
        # 10 / 1.24 = 8.06; 8.06 * 0.24 = 1.93
        assert download.pre_tax_amount == Decimal("8.06")
        assert download.included_tax_total == Decimal("1.93")

    def test_book_shipped_outside_eu_is_refunded(self, european_store, make_line_item, categories):
        s = european_store
        book = make_line_item("20.00", categories.books)

        s.resolver.adjust(s.world_zone, [book])

        assert book.pre_tax_amount == Decimal("18.69")
        assert len(book.tax_adjustments) == 1
        refund = book.tax_adjustments[0]
        assert refund.amount == Decimal("-1.31")
        assert refund.included is False
        assert refund.label == "Refund Books 7% (Included in Price)"
        assert book.included_tax_total == Decimal("0")
        assert book.additional_tax_total == Decimal("-1.31")
        assert book.total == Decimal("18.69")

    def test_promotion_reduces_taxable_base(self, european_store, order, categories):
        s = european_store
        sweater = TaxableItem.line_item(1, Decimal("30.00"), 1, categories.normal, order=order,
                                        promo_total=Decimal("-11.00"))

        s.resolver.adjust(s.germany_zone, [sweater])

        # 19 / 1.19 = 15.97; 15.97 * 0.19 = 3.03
        assert sweater.pre_tax_amount == Decimal("15.97")
        assert sweater.included_tax_total == Decimal("3.03")

    def test_shipments_are_taxed_like_line_items(self, european_store, order, categories):
        s = european_store
        shipment = TaxableItem.shipment("S1", Decimal("10.00"), categories.normal, order=order)

        s.resolver.adjust(s.germany_zone, [shipment])

        assert shipment.pre_tax_amount == Decimal("8.40")
        assert shipment.included_tax_total == Decimal("1.60")
        assert s.store.pre_tax_amounts[(shipment.kind, "S1")] == Decimal("8.40")


class TestAdjustExclusive:
    def test_book_shipped_to_new_york(self, new_york_store, make_line_item, categories):
        s = new_york_store
        book = make_line_item("20.00", categories.books)

        s.resolver.adjust(s.new_york_zone, [book])

        amounts = sorted(adj.amount for adj in book.tax_adjustments)
        assert amounts == [Decimal("1.00"), Decimal("2.00")]
        assert all(not adj.included for adj in book.tax_adjustments)
        assert book.pre_tax_amount == Decimal("20.00")
        assert book.additional_tax_total == Decimal("3.00")
        assert book.total == Decimal("23.00")
        labels = {adj.label for adj in book.tax_adjustments}
        assert labels == {"Books 5%", "Books 10%"}

    def test_category_without_rate_is_untaxed(self, new_york_store, make_line_item, categories):
        s = new_york_store
        sweater = make_line_item("30.00", categories.normal)

        s.resolver.adjust(s.new_york_zone, [sweater])

        assert sweater.tax_adjustments == []
        assert sweater.total == Decimal("30.00")

    def test_digital_goods(self, new_york_store, make_line_item, categories):
        s = new_york_store
        download = make_line_item("10.00", categories.digital)

        s.resolver.adjust(s.new_york_zone, [download])

        assert download.additional_tax_total == Decimal("2.00")
        assert download.total == Decimal("12.00")

    def test_no_zone_means_no_tax(self, new_york_store, make_line_item, categories):
        book = make_line_item("20.00", categories.books)

        new_york_store.resolver.adjust(None, [book])

        assert book.tax_adjustments == []
        assert book.total == Decimal("20.00")


class TestAdjustRepeated:
    def test_adjust_is_idempotent(self, european_store, make_line_item, categories):
        s = european_store
        book = make_line_item("20.00", categories.books)

        s.resolver.adjust(s.germany_zone, [book])
        s.resolver.adjust(s.germany_zone, [book])

        assert len(book.tax_adjustments) == 1
        assert book.included_tax_total == Decimal("1.31")
        assert s.store.for_item(book) == book.tax_adjustments
        assert len(s.store.deleted) == 1

    def test_freshly_loaded_items_replace_stored_adjustments(self, european_store, order, categories):
        s = european_store
        first_load = TaxableItem.line_item(1, Decimal("20.00"), 1, categories.books, order=order)
        second_load = TaxableItem.line_item(1, Decimal("20.00"), 1, categories.books, order=order)

        s.resolver.adjust(s.germany_zone, [first_load])
        s.resolver.adjust(s.germany_zone, [second_load])

        assert len(s.store.adjustments) == 1
        assert s.store.for_item(second_load) == second_load.tax_adjustments
        assert s.store.adjustments[0].adjustable is second_load

    def test_freshly_loaded_item_loses_stale_tax(self, new_york_store, order, categories):
        s = new_york_store
        first_load = TaxableItem.line_item(1, Decimal("20.00"), 1, categories.books, order=order)
        s.resolver.adjust(s.new_york_zone, [first_load])

        second_load = TaxableItem.line_item(1, Decimal("20.00"), 1, categories.books, order=order)
        s.resolver.adjust(None, [second_load])

        assert s.store.adjustments == []
        assert s.store.pre_tax_amounts[(second_load.kind, 1)] == Decimal("0")

    def test_items_with_same_id_but_different_kind_are_separate(self, european_store, order, categories):
        s = european_store
        line_item = TaxableItem.line_item(1, Decimal("20.00"), 1, categories.books, order=order)
        shipment = TaxableItem.shipment(1, Decimal("10.00"), categories.normal, order=order)

        s.resolver.adjust(s.germany_zone, [line_item, shipment])
        s.resolver.adjust(s.germany_zone, [line_item])

        assert len(s.store.for_item(shipment)) == 1
        assert len(s.store.adjustments) == 2

    def test_changing_destination_replaces_adjustments(self, european_store, make_line_item, categories):
        s = european_store
        book = make_line_item("20.00", categories.books)

        s.resolver.adjust(s.germany_zone, [book])
        s.resolver.adjust(s.world_zone, [book])

        assert [adj.amount for adj in book.tax_adjustments] == [Decimal("-1.31")]

    def test_stale_tax_is_removed_when_no_rate_applies(self, new_york_store, make_line_item, categories):
        s = new_york_store
        book = make_line_item("20.00", categories.books)
        s.resolver.adjust(s.new_york_zone, [book])
        assert book.tax_adjustments

        s.resolver.adjust(None, [book])

        assert book.tax_adjustments == []
        assert book.pre_tax_amount == Decimal("0")
        assert s.store.for_item(book) == []

    def test_promotion_adjustments_are_kept(self, new_york_store, make_line_item, categories):
        s = new_york_store
        book = make_line_item("20.00", categories.books)
        promotion = Adjustment(adjustable=book, amount=Decimal("-5.00"), label="Promotion",
                               source_type=AdjustmentSourceType.PROMOTION)
        book.adjustments.append(promotion)

        s.resolver.adjust(s.new_york_zone, [book])
        s.resolver.adjust(None, [book])

        assert book.adjustments == [promotion]


class ExplodingCalculator(DefaultTax):
    def __init__(self, bad_item_id):
        super().__init__()
        self.bad_item_id = bad_item_id

    def compute(self, rate, item):
        if item.id == self.bad_item_id:
            raise ArithmeticError("calculator exploded")
        return super().compute(rate, item)


class TestFailureIsolation:
    def test_failing_item_is_rolled_back_others_commit(self, new_york_store, make_line_item, categories):
        s = new_york_store
        good = make_line_item("20.00", categories.books, item_id=1)
        bad = make_line_item("20.00", categories.books, item_id=2)

        s.resolver.adjust(s.new_york_zone, [good, bad])
        previous = list(bad.adjustments)
        assert len(previous) == 2

        s.federal_books_tax.calculator = ExplodingCalculator(bad_item_id=2)
        with pytest.raises(TaxAdjustmentError) as exc_info:
            s.resolver.adjust(s.new_york_zone, [good, bad])

        failures = exc_info.value.failures
        assert [item for item, _ in failures] == [bad]
        assert isinstance(failures[0][1], ArithmeticError)
        assert "line_item 2" in str(exc_info.value)

        assert bad.adjustments == previous
        assert s.store.for_item(bad) == previous
        assert good.additional_tax_total == Decimal("3.00")
        assert previous[0] not in s.store.deleted

    def test_missing_calculator_is_reported(self, new_york_store, make_line_item, categories):
        s = new_york_store
        s.federal_digital_tax.calculator = None
        download = make_line_item("10.00", categories.digital)

        with pytest.raises(TaxAdjustmentError) as exc_info:
            s.resolver.adjust(s.new_york_zone, [download])

        assert isinstance(exc_info.value.failures[0][1], TaxConfigurationError)
        assert download.tax_adjustments == []


class TestRefreshAdjustment:
    def test_refresh_follows_new_discount(self, new_york_store, make_line_item, categories):
        s = new_york_store
        book = make_line_item("20.00", categories.books)
        s.resolver.adjust(s.new_york_zone, [book])
        federal = next(adj for adj in book.tax_adjustments if adj.source is s.federal_books_tax)

        book.promo_total = Decimal("-10.00")
        assert s.resolver.refresh_adjustment(federal, s.new_york_zone) == Decimal("1.00")
        assert federal.amount == Decimal("1.00")

    def test_finalized_adjustment_is_not_refreshed(self, new_york_store, make_line_item, categories):
        s = new_york_store
        book = make_line_item("20.00", categories.books)
        s.resolver.adjust(s.new_york_zone, [book])
        adjustment = book.tax_adjustments[0]
        adjustment.finalized = True

        book.promo_total = Decimal("-10.00")
        assert s.resolver.refresh_adjustment(adjustment, s.new_york_zone) == Decimal("1.00")
        assert adjustment.amount == Decimal("1.00")


class TestDestroyRate:
    def test_open_order_adjustments_are_removed(self, new_york_store, make_line_item, categories):
        s = new_york_store
        book = make_line_item("20.00", categories.books)
        s.resolver.adjust(s.new_york_zone, [book])

        s.resolver.destroy_rate(s.federal_books_tax)

        assert [adj.source for adj in book.tax_adjustments] == [s.new_york_books_tax]
        assert s.store.adjustments_for_source(s.federal_books_tax) == []
        assert s.federal_books_tax.deleted_at is not None
        assert s.federal_books_tax not in s.resolver.match(s.new_york_zone)

    def test_completed_order_adjustments_are_kept_detached(self, new_york_store, categories):
        s = new_york_store
        completed = Order(id="R200", completed_at=datetime(2026, 1, 5, tzinfo=timezone.utc))
        book = TaxableItem.line_item(1, Decimal("20.00"), 1, categories.books, order=completed)
        s.resolver.adjust(s.new_york_zone, [book])

        s.resolver.destroy_rate(s.federal_books_tax)

        assert len(book.tax_adjustments) == 2
        detached = [adj for adj in book.tax_adjustments if adj.source is None]
        assert [adj.amount for adj in detached] == [Decimal("2.00")]
        assert book.total == Decimal("23.00")


def test_resolver_uses_configured_precision(categories):
    from shoprules.utils.config import Config

    zone = Zone(1, "Germany", [Country(1, "DE")], default_tax=True)
    rate = TaxRate(1, Decimal("0.07"), zone, categories.books, included_in_price=True,
                   calculator=DefaultTax(precision=3))
    resolver = TaxResolver([zone], [rate], store=InMemoryAdjustmentStore(),
                           config=Config(overrides={"tax_precision": 3}))
    book = TaxableItem.line_item(1, Decimal("20.00"), 1, categories.books)

    resolver.adjust(zone, [book])

    assert book.pre_tax_amount == Decimal("18.692")
    assert book.included_tax_total == Decimal("1.308")
