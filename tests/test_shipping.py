"""Shipping rate engine tests."""

import logging
from decimal import Decimal

import pytest

from app.services.shipping import (
    CartItem,
    SelectedOptions,
    ShipmentPreference,
    ShippingCalculator,
    ShippingError,
    ShippingFailure,
    ShippingQuote,
    aggregate_weight_points,
    cart_subtotal,
    compute_timing,
    find_method,
    is_free_shipping,
    match_rate_rule,
    price_options,
    resolve_option_price,
    resolve_zone,
)
from app.services.shipping_config import (
    FreeShippingThreshold,
    OptionCode,
    OptionPrice,
    RateRule,
    ShippingConfig,
    ShippingMethod,
    ShippingOption,
    SizeClass,
    Zone,
    ZoneCountry,
)

EU = Zone(id="eu", name_fr="Europe", sort_order=1)
WORLD = Zone(id="world", name_fr="Monde", customs_notice=True, sort_order=2)
STANDARD = ShippingMethod(
    id="std", code="standard", name_fr="Standard",
    supports_insurance=True, supports_gift_wrap=True,
    eta_min_days=2, eta_max_days=4,
)
EXPRESS = ShippingMethod(
    id="exp", code="express", name_fr="Express",
    supports_insurance=True, supports_signature=True, supports_gift_wrap=True,
    eta_min_days=1, eta_max_days=2, sort_order=1,
)


@pytest.fixture
def config():
    return ShippingConfig(
        zones=(EU, WORLD, Zone(id="old", name_fr="Ancienne", is_active=False)),
        zone_countries=(
            ZoneCountry("eu", "FR"),
            ZoneCountry("eu", "DE"),
            ZoneCountry("world", "US"),
            ZoneCountry("old", "CH"),
        ),
        size_classes=(
            SizeClass("S", "Petit", Decimal("1")),
            SizeClass("M", "Moyen", Decimal("2")),
            SizeClass("L", "Grand", Decimal("4")),
            SizeClass("X", "Retiré", Decimal("9"), is_active=False),
        ),
        methods=(
            STANDARD,
            EXPRESS,
            ShippingMethod(id="off", code="off", name_fr="Désactivée", is_active=False),
        ),
        rate_rules=(
            RateRule(id="eu-std-low", zone_id="eu", method_id="std", max_subtotal_eur=5000, price_eur=990),
            RateRule(id="eu-std-high", zone_id="eu", method_id="std", min_subtotal_eur=5000, price_eur=590),
            RateRule(id="eu-exp", zone_id="eu", method_id="exp", price_eur=1990),
            RateRule(
                id="world-exp", zone_id="world", method_id="exp",
                max_weight_points=Decimal("10"), price_eur=4500,
            ),
        ),
        free_thresholds=(
            FreeShippingThreshold(id="eu-free", zone_id="eu", method_id="std", threshold_eur=10000),
        ),
        options=(
            ShippingOption("o-ins", OptionCode.INSURANCE, "Assurance"),
            ShippingOption("o-sig", OptionCode.SIGNATURE, "Signature"),
            ShippingOption("o-gift", OptionCode.GIFT_WRAP, "Emballage cadeau"),
        ),
        option_prices=(
            OptionPrice("p-ins", "o-ins", 300),
            OptionPrice("p-sig", "o-sig", 250),
            OptionPrice("p-gift", "o-gift", 500),
        ),
    )


@pytest.fixture
def calc(config):
    return ShippingCalculator(config)


def item(price, qty=1, size="M", mto=False, lead=None, pid="p1"):
    return CartItem(
        product_id=pid,
        quantity=qty,
        price_eur_cents=price,
        made_to_order=mto,
        lead_time_days=lead,
        size_class_code=size,
    )


class TestWeightAggregator:
    def test_sums_quantity_times_points(self, config):
        items = [item(1000, qty=2, size="S"), item(1000, size="L")]
        assert aggregate_weight_points(items, config.size_classes) == Decimal("6")

    def test_unknown_size_class_weighs_nothing(self, config):
        items = [item(1000, size="ZZ"), item(1000, size=None), item(1000, size="M")]
        assert aggregate_weight_points(items, config.size_classes) == Decimal("2")

    def test_inactive_size_class_weighs_nothing(self, config):
        assert aggregate_weight_points([item(1000, size="X")], config.size_classes) == 0

    def test_fractional_points(self):
        classes = [SizeClass("H", "Demi", Decimal("0.5"))]
        assert aggregate_weight_points([item(1000, qty=3, size="H")], classes) == Decimal("1.5")

    def test_unknown_size_class_is_logged(self, config, caplog):
        with caplog.at_level(logging.WARNING, logger="app.services.shipping"):
            aggregate_weight_points([item(1000, size="ZZ", pid="bag-42")], config.size_classes)
        assert "bag-42" in caplog.text

    def test_subtotal(self):
        assert cart_subtotal([item(1250, qty=2), item(500)]) == 3000


class TestZoneResolver:
    def test_resolves_country(self, config):
        assert resolve_zone("FR", config) == EU
        assert resolve_zone("US", config) == WORLD

    def test_case_insensitive(self, config):
        assert resolve_zone("fr", config) == EU
        assert resolve_zone(" de ", config) == EU

    def test_unknown_country(self, config):
        assert resolve_zone("ZZ", config) is None

    def test_inactive_zone_ignored(self, config):
        assert resolve_zone("CH", config) is None

    def test_duplicate_mapping_prefers_lowest_sort_order(self):
        dup = ShippingConfig(
            zones=(WORLD, EU),
            zone_countries=(ZoneCountry("world", "FR"), ZoneCountry("eu", "FR")),
        )
        assert resolve_zone("FR", dup) == EU

    def test_find_method_skips_inactive(self, config):
        assert find_method("std", config.methods) == STANDARD
        assert find_method("off", config.methods) is None
        assert find_method("nope", config.methods) is None


class TestRateRuleMatcher:
    def test_tiers_by_subtotal(self, config):
        low = match_rate_rule("eu", "std", 4000, Decimal("2"), config.rate_rules)
        high = match_rate_rule("eu", "std", 6000, Decimal("2"), config.rate_rules)
        assert low.id == "eu-std-low"
        assert high.id == "eu-std-high"

    def test_upper_bound_is_exclusive(self, config):
        rule = match_rate_rule("eu", "std", 5000, Decimal("2"), config.rate_rules)
        assert rule.id == "eu-std-high"

    def test_weight_upper_bound_is_exclusive(self, config):
        assert match_rate_rule("world", "exp", 1000, Decimal("10"), config.rate_rules) is None
        rule = match_rate_rule("world", "exp", 1000, Decimal("9.99"), config.rate_rules)
        assert rule.id == "world-exp"

    def test_other_zone_or_method_ignored(self, config):
        assert match_rate_rule("world", "std", 1000, Decimal("1"), config.rate_rules) is None

    def test_inactive_rule_ignored(self):
        rules = [RateRule(id="r", zone_id="eu", method_id="std", price_eur=100, is_active=False)]
        assert match_rate_rule("eu", "std", 1000, Decimal("1"), rules) is None

    @pytest.mark.parametrize("reverse", [False, True])
    def test_lowest_priority_wins_regardless_of_order(self, reverse):
        rules = [
            RateRule(id="a", zone_id="eu", method_id="std", price_eur=1200, priority=5),
            RateRule(id="b", zone_id="eu", method_id="std", price_eur=800, priority=1),
        ]
        if reverse:
            rules.reverse()
        rule = match_rate_rule("eu", "std", 1000, Decimal("1"), rules)
        assert rule.id == "b"

    def test_equal_priority_falls_back_to_id(self):
        rules = [
            RateRule(id="z", zone_id="eu", method_id="std", price_eur=1200),
            RateRule(id="a", zone_id="eu", method_id="std", price_eur=800),
        ]
        assert match_rate_rule("eu", "std", 1000, Decimal("1"), rules).id == "a"


class TestFreeShipping:
    def test_method_specific_threshold(self, config):
        assert is_free_shipping("eu", "std", 10000, config.free_thresholds) is True
        assert is_free_shipping("eu", "exp", 10000, config.free_thresholds) is False

    def test_below_threshold(self, config):
        assert is_free_shipping("eu", "std", 9999, config.free_thresholds) is False

    def test_zone_wide_threshold_applies_to_every_method(self):
        thresholds = [FreeShippingThreshold(id="t", zone_id="eu", threshold_eur=5000)]
        assert is_free_shipping("eu", "std", 5000, thresholds) is True
        assert is_free_shipping("eu", "exp", 5000, thresholds) is True
        assert is_free_shipping("world", "exp", 5000, thresholds) is False

    def test_inactive_threshold_ignored(self):
        thresholds = [FreeShippingThreshold(id="t", zone_id="eu", threshold_eur=0, is_active=False)]
        assert is_free_shipping("eu", "std", 100000, thresholds) is False


class TestOptionPricing:
    PRICES = [
        OptionPrice("global", "o-ins", 300),
        OptionPrice("method", "o-ins", 400, method_id="std"),
        OptionPrice("zone", "o-ins", 500, zone_id="eu"),
        OptionPrice("both", "o-ins", 600, zone_id="eu", method_id="std"),
    ]

    def test_zone_and_method_first(self):
        assert resolve_option_price("o-ins", "eu", "std", self.PRICES) == 600

    def test_zone_before_method(self):
        assert resolve_option_price("o-ins", "eu", "exp", self.PRICES) == 500

    def test_method_before_global(self):
        assert resolve_option_price("o-ins", "world", "std", self.PRICES) == 400

    def test_global_fallback(self):
        assert resolve_option_price("o-ins", "world", "exp", self.PRICES) == 300

    def test_inactive_rows_skipped(self):
        prices = [
            OptionPrice("both", "o-ins", 600, zone_id="eu", method_id="std", is_active=False),
            OptionPrice("global", "o-ins", 300),
        ]
        assert resolve_option_price("o-ins", "eu", "std", prices) == 300

    def test_no_price_is_free(self):
        assert resolve_option_price("o-ins", "eu", "std", []) == 0

    def test_sums_supported_options(self, config):
        selected = SelectedOptions(insurance=True, signature=True, gift_wrap=True)
        total, ignored = price_options(selected, EXPRESS, "eu", config)
        assert total == 1050
        assert ignored == ()

    def test_unsupported_option_ignored(self, config):
        selected = SelectedOptions(insurance=True, signature=True)
        total, ignored = price_options(selected, STANDARD, "eu", config)
        assert total == 300
        assert ignored == (OptionCode.SIGNATURE,)

    def test_inactive_option_contributes_nothing(self, config):
        cfg = ShippingConfig(
            options=(ShippingOption("o-ins", OptionCode.INSURANCE, "Assurance", is_active=False),),
            option_prices=config.option_prices,
        )
        total, _ = price_options(SelectedOptions(insurance=True), STANDARD, "eu", cfg)
        assert total == 0

    def test_from_mapping(self):
        opts = SelectedOptions.from_mapping({"gift_wrap": True})
        assert opts.codes() == [OptionCode.GIFT_WRAP]
        assert SelectedOptions.from_mapping(None).codes() == []


class TestShipmentTiming:
    def test_in_stock_only(self):
        timing = compute_timing([item(1000)], STANDARD)
        assert (timing.lead_time_days, timing.eta_min_days, timing.eta_max_days) == (0, 2, 4)
        assert timing.split_details is None

    def test_single_waits_for_slowest_piece(self):
        items = [item(1000), item(1000, mto=True, lead=10), item(1000, mto=True, lead=6)]
        timing = compute_timing(items, STANDARD, ShipmentPreference.SINGLE)
        assert timing.lead_time_days == 10
        assert (timing.eta_min_days, timing.eta_max_days) == (12, 14)
        assert timing.split_details is None

    def test_split_mixed_cart(self):
        items = [item(1000, lead=None), item(1000, mto=True, lead=10)]
        timing = compute_timing(items, STANDARD, ShipmentPreference.SPLIT)
        ready = timing.split_details.ready_shipment
        crafted = timing.split_details.made_to_order_shipment
        assert ready.lead_time_days == 0
        assert (ready.eta_min_days, ready.eta_max_days) == (2, 4)
        assert crafted.lead_time_days == 10
        assert (crafted.eta_min_days, crafted.eta_max_days) == (12, 14)
        assert timing.lead_time_days == 10
        assert (timing.eta_min_days, timing.eta_max_days) == (2, 4)

    def test_split_without_ready_items_is_single(self):
        items = [item(1000, mto=True, lead=7)]
        timing = compute_timing(items, STANDARD, ShipmentPreference.SPLIT)
        assert timing.split_details is None
        assert (timing.eta_min_days, timing.eta_max_days) == (9, 11)

    def test_made_to_order_without_lead_time_ships_ready(self):
        timing = compute_timing([item(1000, mto=True, lead=None)], STANDARD)
        assert timing.lead_time_days == 0

    def test_method_without_eta(self):
        method = ShippingMethod(id="m", code="m", name_fr="M")
        timing = compute_timing([item(1000, mto=True, lead=3)], method)
        assert (timing.eta_min_days, timing.eta_max_days) == (3, 3)


class TestShippingCalculator:
    def test_tiered_pricing(self, calc):
        low = calc.calculate([item(4000)], "FR", "std")
        high = calc.calculate([item(6000)], "FR", "std")
        assert low.shipping_price_eur == 990
        assert high.shipping_price_eur == 590

    def test_free_shipping(self, calc):
        result = calc.calculate([item(12000, size="M")], "FR", "std")
        assert isinstance(result, ShippingQuote)
        assert result.is_free_shipping is True
        assert result.shipping_price_eur == 0
        assert result.zone == EU
        assert (result.eta_min_days, result.eta_max_days) == (2, 4)

    def test_free_shipping_stays_free_above_threshold(self, calc):
        prices = [
            calc.calculate([item(subtotal)], "FR", "std").shipping_price_eur
            for subtotal in range(1000, 30001, 500)
        ]
        first_free = prices.index(0)
        assert all(p == 0 for p in prices[first_free:])
        assert all(p in (990, 590) for p in prices[:first_free])

    def test_unknown_country(self, calc):
        result = calc.calculate([item(1000)], "ZZ", "std")
        assert isinstance(result, ShippingFailure)
        assert result.error == ShippingError.NO_ZONE
        assert result.to_dict() == {"error": "NO_ZONE"}

    def test_unknown_or_inactive_method(self, calc):
        assert calc.calculate([item(1000)], "FR", "nope").error == ShippingError.NO_METHOD
        assert calc.calculate([item(1000)], "FR", "off").error == ShippingError.NO_METHOD

    def test_no_rate_rule(self, calc, caplog):
        with caplog.at_level(logging.WARNING, logger="app.services.shipping"):
            result = calc.calculate([item(1000)], "US", "std")
        assert result.error == ShippingError.NO_RATE_RULE
        assert "No rate rule" in caplog.text

    def test_too_heavy_for_any_tier(self, calc):
        result = calc.calculate([item(1000, qty=3, size="L")], "US", "exp")
        assert result.error == ShippingError.NO_RATE_RULE

    def test_customs_notice(self, calc):
        result = calc.calculate([item(1000)], "US", "exp")
        assert result.customs_notice is True
        assert result.shipping_price_eur == 4500

    def test_options_added_on_top(self, calc):
        opts = SelectedOptions(insurance=True, signature=True, gift_wrap=True)
        result = calc.calculate([item(1000)], "DE", "exp", opts)
        assert result.shipping_price_eur == 1990
        assert result.options_price_eur == 1050
        assert result.total_price_eur == 3040

    def test_unsupported_option_is_not_an_error(self, calc):
        result = calc.calculate([item(1000)], "FR", "std", SelectedOptions(signature=True))
        assert isinstance(result, ShippingQuote)
        assert result.options_price_eur == 0
        assert result.to_dict()["ignored_options"] == ["signature"]

    def test_options_still_charged_when_shipping_is_free(self, calc):
        result = calc.calculate([item(15000)], "FR", "std", SelectedOptions(insurance=True))
        assert result.shipping_price_eur == 0
        assert result.options_price_eur == 300

    def test_single_vs_split_timing(self, calc):
        items = [item(3000, pid="ready"), item(3000, mto=True, lead=10, pid="crafted")]
        single = calc.calculate(items, "FR", "std", shipment_preference=ShipmentPreference.SINGLE)
        split = calc.calculate(items, "FR", "std", shipment_preference=ShipmentPreference.SPLIT)
        assert single.lead_time_days == 10
        assert single.split_details is None
        assert split.split_details.ready_shipment.lead_time_days == 0
        assert split.split_details.made_to_order_shipment.lead_time_days == 10

    def test_split_prices_each_parcel(self, calc):
        items = [item(3000, pid="ready"), item(3000, mto=True, lead=10, pid="crafted")]
        result = calc.calculate(items, "FR", "std", shipment_preference="split")
        assert result.split_details.ready_shipment.shipping_price_eur == 990
        assert result.split_details.made_to_order_shipment.shipping_price_eur == 990
        assert result.shipping_price_eur == 1980
        assert result.is_free_shipping is False

    def test_split_order_over_threshold_ships_free(self, calc):
        items = [item(6000, pid="ready"), item(6000, mto=True, lead=10, pid="crafted")]
        result = calc.calculate(items, "FR", "std", shipment_preference="split")
        assert result.is_free_shipping is True
        assert result.shipping_price_eur == 0
        assert result.split_details.made_to_order_shipment.shipping_price_eur == 0

    def test_split_cart_without_rule_fails(self, calc):
        items = [item(1000, size="S"), item(1000, qty=3, size="L", mto=True, lead=5)]
        result = calc.calculate(items, "US", "exp", shipment_preference="split")
        assert result.error == ShippingError.NO_RATE_RULE

    def test_split_parcel_without_rule_ships_at_zero(self):
        cfg = ShippingConfig(
            zones=(EU,),
            zone_countries=(ZoneCountry("eu", "FR"),),
            size_classes=(SizeClass("M", "Moyen", Decimal("2")),),
            methods=(STANDARD,),
            rate_rules=(
                RateRule(id="high", zone_id="eu", method_id="std", min_subtotal_eur=5000, price_eur=590),
            ),
        )
        calc = ShippingCalculator(cfg)
        items = [item(3000, pid="ready"), item(3000, mto=True, lead=10, pid="crafted")]

        single = calc.calculate(items, "FR", "std", shipment_preference="single")
        split = calc.calculate(items, "FR", "std", shipment_preference="split")

        assert single.shipping_price_eur == 590
        assert isinstance(split, ShippingQuote)
        assert split.split_details.ready_shipment.shipping_price_eur == 0
        assert split.split_details.made_to_order_shipment.shipping_price_eur == 0
        assert split.shipping_price_eur == 0
        assert split.is_free_shipping is False

    def test_split_mixed_parcel_coverage(self):
        cfg = ShippingConfig(
            zones=(EU,),
            zone_countries=(ZoneCountry("eu", "FR"),),
            size_classes=(SizeClass("M", "Moyen", Decimal("2")),),
            methods=(STANDARD,),
            rate_rules=(
                RateRule(id="low", zone_id="eu", method_id="std", max_subtotal_eur=4000, price_eur=990),
                RateRule(id="high", zone_id="eu", method_id="std", min_subtotal_eur=5000, price_eur=590),
            ),
        )
        items = [item(1000, pid="ready"), item(4500, mto=True, lead=10, pid="crafted")]
        result = ShippingCalculator(cfg).calculate(items, "FR", "std", shipment_preference="split")
        assert result.split_details.ready_shipment.shipping_price_eur == 990
        assert result.split_details.made_to_order_shipment.shipping_price_eur == 0
        assert result.shipping_price_eur == 990

    def test_deterministic(self, calc):
        items = [item(3000), item(4500, mto=True, lead=8)]
        opts = SelectedOptions(insurance=True)
        first = calc.calculate(items, "DE", "exp", opts, "split")
        second = calc.calculate(items, "DE", "exp", opts, "split")
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_quote_dict(self, calc):
        data = calc.calculate([item(4000)], "FR", "std").to_dict()
        assert data["zone_id"] == "eu"
        assert data["method_code"] == "standard"
        assert data["total_price_eur"] == 990
        assert data["split_details"] is None


class TestQuoteMethods:
    def test_every_active_method_in_order(self, calc):
        results = calc.quote_methods([item(4000)], "FR")
        assert [m.code for m, _ in results] == ["standard", "express"]
        assert [r.shipping_price_eur for _, r in results] == [990, 1990]

    def test_failures_listed_per_method(self, calc):
        results = {m.code: r for m, r in calc.quote_methods([item(1000)], "US")}
        assert results["standard"].error == ShippingError.NO_RATE_RULE
        assert results["express"].shipping_price_eur == 4500


class TestSimulator:
    def test_exact_weight(self, calc):
        result = calc.simulate("US", 1000, Decimal("9.5"), "exp")
        assert result.shipping_price_eur == 4500

    def test_weight_out_of_range(self, calc):
        result = calc.simulate("US", 1000, Decimal("10"), "exp")
        assert result.error == ShippingError.NO_RATE_RULE

    def test_free_threshold(self, calc):
        result = calc.simulate("FR", 12000, Decimal("2"), "std")
        assert result.is_free_shipping is True

    def test_does_not_alter_config(self, calc, config):
        calc.simulate("FR", 1000, Decimal("1"), "std")
        assert calc.config is config
        assert len(config.size_classes) == 4
