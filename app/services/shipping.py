"""Shipping rate engine for the storefront checkout.

Resolves the destination zone, matches the cart against tiered rate rules,
applies free-shipping thresholds, prices add-on options and works out the
delivery window for single or split shipments.

Everything here is pure: the caller loads a ``ShippingConfig`` snapshot once
and passes it in. Monetary amounts are integer euro cents throughout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence, Union

from app.services.shipping_config import (
    FreeShippingThreshold,
    OptionCode,
    OptionPrice,
    RateRule,
    ShippingConfig,
    ShippingMethod,
    SizeClass,
    Zone,
)

logger = logging.getLogger(__name__)

SIMULATED_SIZE_CLASS = "__simulated__"


class ShippingError(str, Enum):
    """Expected, non-retriable reasons a quote cannot be produced."""
    NO_ZONE = "NO_ZONE"
    NO_METHOD = "NO_METHOD"
    NO_RATE_RULE = "NO_RATE_RULE"

    @property
    def message(self) -> str:
        return _ERROR_MESSAGES[self]


_ERROR_MESSAGES = {
    ShippingError.NO_ZONE: "Shipping is not available to this country",
    ShippingError.NO_METHOD: "Shipping method not found or inactive",
    ShippingError.NO_RATE_RULE: "No rate rule covers this cart for the selected zone and method",
}


class ShipmentPreference(str, Enum):
    """One consolidated delivery, or ready items first."""
    SINGLE = "single"
    SPLIT = "split"


@dataclass(frozen=True)
class CartItem:
    """Cart line as seen by the rate engine."""
    product_id: str
    quantity: int
    price_eur_cents: int
    made_to_order: bool = False
    lead_time_days: Optional[int] = None
    size_class_code: Optional[str] = None

    @property
    def line_total(self) -> int:
        return self.price_eur_cents * self.quantity

    @property
    def needs_crafting(self) -> bool:
        """Made-to-order with an actual lead time; otherwise ships as ready."""
        return self.made_to_order and (self.lead_time_days or 0) > 0


@dataclass(frozen=True)
class SelectedOptions:
    insurance: bool = False
    signature: bool = False
    gift_wrap: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, bool]]) -> "SelectedOptions":
        data = data or {}
        return cls(
            insurance=bool(data.get("insurance", False)),
            signature=bool(data.get("signature", False)),
            gift_wrap=bool(data.get("gift_wrap", False)),
        )

    def codes(self) -> list[OptionCode]:
        """Selected option codes, in a fixed order."""
        selected = []
        if self.insurance:
            selected.append(OptionCode.INSURANCE)
        if self.signature:
            selected.append(OptionCode.SIGNATURE)
        if self.gift_wrap:
            selected.append(OptionCode.GIFT_WRAP)
        return selected


@dataclass(frozen=True)
class ShipmentWindow:
    """Timing and price of one parcel of a split shipment."""
    lead_time_days: int
    eta_min_days: int
    eta_max_days: int
    shipping_price_eur: int = 0

    def to_dict(self) -> dict:
        return {
            "lead_time_days": self.lead_time_days,
            "eta_min_days": self.eta_min_days,
            "eta_max_days": self.eta_max_days,
            "shipping_price_eur": self.shipping_price_eur,
        }


@dataclass(frozen=True)
class SplitDetails:
    ready_shipment: ShipmentWindow
    made_to_order_shipment: ShipmentWindow

    def to_dict(self) -> dict:
        return {
            "ready_shipment": self.ready_shipment.to_dict(),
            "made_to_order_shipment": self.made_to_order_shipment.to_dict(),
        }


@dataclass(frozen=True)
class ShipmentTiming:
    lead_time_days: int
    eta_min_days: int
    eta_max_days: int
    split_details: Optional[SplitDetails] = None


@dataclass(frozen=True)
class ShippingQuote:
    """Successful rate resolution."""
    zone: Zone
    method: ShippingMethod
    shipping_price_eur: int
    options_price_eur: int
    is_free_shipping: bool
    customs_notice: bool
    lead_time_days: int
    eta_min_days: int
    eta_max_days: int
    split_details: Optional[SplitDetails] = None
    ignored_options: tuple[OptionCode, ...] = ()

    ok = True

    @property
    def total_price_eur(self) -> int:
        return self.shipping_price_eur + self.options_price_eur

    def to_dict(self) -> dict:
        return {
            "zone_id": self.zone.id,
            "zone_name": self.zone.name_fr,
            "method_id": self.method.id,
            "method_code": self.method.code,
            "shipping_price_eur": self.shipping_price_eur,
            "options_price_eur": self.options_price_eur,
            "total_price_eur": self.total_price_eur,
            "is_free_shipping": self.is_free_shipping,
            "customs_notice": self.customs_notice,
            "lead_time_days": self.lead_time_days,
            "eta_min_days": self.eta_min_days,
            "eta_max_days": self.eta_max_days,
            "split_details": self.split_details.to_dict() if self.split_details else None,
            "ignored_options": [o.value for o in self.ignored_options],
        }


@dataclass(frozen=True)
class ShippingFailure:
    """Rate resolution stopped at the first missing piece of configuration."""
    error: ShippingError

    ok = False

    def to_dict(self) -> dict:
        return {"error": self.error.value}


ShippingResult = Union[ShippingQuote, ShippingFailure]


# ── Building blocks ─────────────────────────────────────

def cart_subtotal(items: Iterable[CartItem]) -> int:
    return sum(item.line_total for item in items)


def aggregate_weight_points(
    items: Iterable[CartItem],
    size_classes: Iterable[SizeClass],
) -> Decimal:
    """Total weight points of a cart.

    Unknown or inactive size classes weigh nothing so that a misconfigured
    product never blocks checkout; they are logged for the catalogue team.
    """
    points = {sc.code: sc.weight_points for sc in size_classes if sc.is_active}
    total = Decimal("0")
    for item in items:
        wp = points.get(item.size_class_code) if item.size_class_code else None
        if wp is None:
            logger.warning(
                f"Product {item.product_id} has unknown size class "
                f"{item.size_class_code!r}; counted as 0 weight points"
            )
            continue
        total += wp * item.quantity
    return total


def resolve_zone(country_code: str, config: ShippingConfig) -> Optional[Zone]:
    """Active zone serving a country (ISO alpha-2, case-insensitive).

    A country mapped to several active zones goes to the one with the lowest
    sort_order, then the lowest id.
    """
    code = country_code.strip().upper()
    zone_ids = {zc.zone_id for zc in config.zone_countries if zc.country_code.upper() == code}
    candidates = [z for z in config.zones if z.is_active and z.id in zone_ids]
    if not candidates:
        return None
    return min(candidates, key=lambda z: (z.sort_order, z.id))


def find_method(method_id: str, methods: Iterable[ShippingMethod]) -> Optional[ShippingMethod]:
    for method in methods:
        if method.id == method_id and method.is_active:
            return method
    return None


def match_rate_rule(
    zone_id: str,
    method_id: str,
    subtotal_eur: int,
    weight_points: Decimal,
    rules: Iterable[RateRule],
) -> Optional[RateRule]:
    """Best active rule covering the subtotal and weight.

    Overlapping rules are settled by the lowest priority value, then by id.
    """
    matching = [
        r for r in rules
        if r.is_active
        and r.zone_id == zone_id
        and r.method_id == method_id
        and r.covers_subtotal(subtotal_eur)
        and r.covers_weight(weight_points)
    ]
    if not matching:
        return None
    return min(matching, key=lambda r: (r.priority, r.id))


def is_free_shipping(
    zone_id: str,
    method_id: str,
    subtotal_eur: int,
    thresholds: Iterable[FreeShippingThreshold],
) -> bool:
    return any(
        t.is_active
        and t.zone_id == zone_id
        and (t.method_id is None or t.method_id == method_id)
        and subtotal_eur >= t.threshold_eur
        for t in thresholds
    )


def resolve_option_price(
    option_id: str,
    zone_id: str,
    method_id: str,
    prices: Iterable[OptionPrice],
) -> int:
    """Price of one option: zone+method, then zone, then method, then global."""
    candidates = [p for p in prices if p.option_id == option_id and p.is_active]
    for zone_key, method_key in (
        (zone_id, method_id),
        (zone_id, None),
        (None, method_id),
        (None, None),
    ):
        for price in candidates:
            if price.zone_id == zone_key and price.method_id == method_key:
                return price.price_eur
    return 0


def price_options(
    selected: SelectedOptions,
    method: ShippingMethod,
    zone_id: str,
    config: ShippingConfig,
) -> tuple[int, tuple[OptionCode, ...]]:
    """Sum the selected options the method supports.

    Returns the total and the selected codes that were skipped because the
    method does not support them.
    """
    total = 0
    ignored = []
    for code in selected.codes():
        if not method.supports(code):
            ignored.append(code)
            continue
        option = next((o for o in config.options if o.code == code and o.is_active), None)
        if option is None:
            continue
        total += resolve_option_price(option.id, zone_id, method.id, config.option_prices)
    return total, tuple(ignored)


def split_cart(items: Iterable[CartItem]) -> tuple[list[CartItem], list[CartItem]]:
    """(ready items, made-to-order items)."""
    ready, crafted = [], []
    for item in items:
        (crafted if item.needs_crafting else ready).append(item)
    return ready, crafted


def compute_timing(
    items: Sequence[CartItem],
    method: ShippingMethod,
    preference: ShipmentPreference = ShipmentPreference.SINGLE,
) -> ShipmentTiming:
    """Delivery window for the cart.

    A single shipment waits for the slowest made-to-order piece. A split
    shipment of a mixed cart sends ready items at once and the crafted ones
    when done; the top-level window is then the first parcel's.
    """
    transit_min = method.eta_min_days or 0
    transit_max = method.eta_max_days or 0
    ready, crafted = split_cart(items)
    lead_time = max((i.lead_time_days for i in crafted), default=0)

    if preference == ShipmentPreference.SPLIT and ready and crafted:
        return ShipmentTiming(
            lead_time_days=lead_time,
            eta_min_days=transit_min,
            eta_max_days=transit_max,
            split_details=SplitDetails(
                ready_shipment=ShipmentWindow(0, transit_min, transit_max),
                made_to_order_shipment=ShipmentWindow(
                    lead_time, transit_min + lead_time, transit_max + lead_time,
                ),
            ),
        )

    return ShipmentTiming(
        lead_time_days=lead_time,
        eta_min_days=transit_min + lead_time,
        eta_max_days=transit_max + lead_time,
    )


# ── Orchestrator ────────────────────────────────────────

class ShippingCalculator:
    """Shipping rate resolver over one configuration snapshot."""

    def __init__(self, config: ShippingConfig):
        self.config = config

    def calculate(
        self,
        items: Sequence[CartItem],
        country_code: str,
        method_id: str,
        selected_options: Optional[SelectedOptions] = None,
        shipment_preference: ShipmentPreference = ShipmentPreference.SINGLE,
    ) -> ShippingResult:
        """Quote one shipping method for a cart, or report why it cannot be quoted."""
        cfg = self.config
        selected_options = selected_options or SelectedOptions()
        preference = ShipmentPreference(shipment_preference)

        zone = resolve_zone(country_code, cfg)
        if zone is None:
            return ShippingFailure(ShippingError.NO_ZONE)

        method = find_method(method_id, cfg.methods)
        if method is None:
            return ShippingFailure(ShippingError.NO_METHOD)

        timing = compute_timing(items, method, preference)
        subtotal = cart_subtotal(items)
        weight = aggregate_weight_points(items, cfg.size_classes)

        rule = match_rate_rule(zone.id, method.id, subtotal, weight, cfg.rate_rules)
        if rule is None:
            logger.warning(
                f"No rate rule for zone={zone.id} method={method.code} "
                f"subtotal={subtotal} weight={weight}"
            )
            return ShippingFailure(ShippingError.NO_RATE_RULE)

        is_free = is_free_shipping(zone.id, method.id, subtotal, cfg.free_thresholds)

        if timing.split_details is None:
            shipping_price = 0 if is_free else rule.price_eur
            split_details = None
        else:
            ready, crafted = split_cart(items)
            ready_price = 0 if is_free else self._parcel_price(zone, method, ready)
            crafted_price = 0 if is_free else self._parcel_price(zone, method, crafted)
            shipping_price = ready_price + crafted_price
            split_details = SplitDetails(
                ready_shipment=replace(
                    timing.split_details.ready_shipment, shipping_price_eur=ready_price,
                ),
                made_to_order_shipment=replace(
                    timing.split_details.made_to_order_shipment, shipping_price_eur=crafted_price,
                ),
            )

        options_price, ignored = price_options(selected_options, method, zone.id, cfg)
        if ignored:
            logger.debug(
                f"Ignoring options {[o.value for o in ignored]} not supported by {method.code}"
            )

        return ShippingQuote(
            zone=zone,
            method=method,
            shipping_price_eur=shipping_price,
            options_price_eur=options_price,
            is_free_shipping=is_free,
            customs_notice=zone.customs_notice,
            lead_time_days=timing.lead_time_days,
            eta_min_days=timing.eta_min_days,
            eta_max_days=timing.eta_max_days,
            split_details=split_details,
            ignored_options=ignored,
        )

    def _parcel_price(self, zone: Zone, method: ShippingMethod, items: Sequence[CartItem]) -> int:
        """Rate of one parcel of a split shipment; a parcel no rule covers ships at 0."""
        subtotal = cart_subtotal(items)
        weight = aggregate_weight_points(items, self.config.size_classes)
        rule = match_rate_rule(zone.id, method.id, subtotal, weight, self.config.rate_rules)
        if rule is None:
            logger.info(
                f"No rate rule for parcel zone={zone.id} method={method.code} "
                f"subtotal={subtotal} weight={weight}; charged 0"
            )
            return 0
        return rule.price_eur

    def quote_methods(
        self,
        items: Sequence[CartItem],
        country_code: str,
        selected_options: Optional[SelectedOptions] = None,
        shipment_preference: ShipmentPreference = ShipmentPreference.SINGLE,
    ) -> list[tuple[ShippingMethod, ShippingResult]]:
        """Quote every active method, in display order."""
        methods = sorted(
            (m for m in self.config.methods if m.is_active),
            key=lambda m: (m.sort_order, m.id),
        )
        return [
            (m, self.calculate(items, country_code, m.id, selected_options, shipment_preference))
            for m in methods
        ]

    def simulate(
        self,
        country_code: str,
        subtotal_eur: int,
        weight_points: Decimal,
        method_id: str,
        selected_options: Optional[SelectedOptions] = None,
    ) -> ShippingResult:
        """Price a synthetic one-line, in-stock cart with an exact weight."""
        config = self.config.with_size_class(SizeClass(
            code=SIMULATED_SIZE_CLASS,
            label_fr="Simulation",
            weight_points=Decimal(weight_points),
            sort_order=999,
        ))
        item = CartItem(
            product_id="simulation",
            quantity=1,
            price_eur_cents=subtotal_eur,
            size_class_code=SIMULATED_SIZE_CLASS,
        )
        return ShippingCalculator(config).calculate(
            [item], country_code, method_id, selected_options,
        )
