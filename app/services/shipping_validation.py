"""Configuration checks for the shipping admin.

The rate engine tolerates bad configuration (it resolves duplicates by a
fixed tie-break and treats unknown size classes as weightless). These checks
surface the problems so an operator can fix them.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from itertools import combinations
from typing import Optional

from app.services.shipping_config import RateRule, ShippingConfig


@dataclass(frozen=True)
class ConfigIssue:
    severity: str  # error, warning
    code: str
    message: str

    def to_dict(self) -> dict:
        return {"severity": self.severity, "code": self.code, "message": self.message}


def _ranges_overlap(
    a_min: Decimal, a_max: Optional[Decimal], b_min: Decimal, b_max: Optional[Decimal],
) -> bool:
    """Half-open [min, max) intervals, None max = unbounded."""
    a_below_b_end = b_max is None or a_min < b_max
    b_below_a_end = a_max is None or b_min < a_max
    return a_below_b_end and b_below_a_end


def _rules_overlap(a: RateRule, b: RateRule) -> bool:
    return (
        _ranges_overlap(
            Decimal(a.min_subtotal_eur), a.max_subtotal_eur,
            Decimal(b.min_subtotal_eur), b.max_subtotal_eur,
        )
        and _ranges_overlap(
            a.min_weight_points, a.max_weight_points,
            b.min_weight_points, b.max_weight_points,
        )
    )


def validate_config(config: ShippingConfig) -> list[ConfigIssue]:
    """List configuration problems, errors first."""
    issues: list[ConfigIssue] = []
    zone_ids = {z.id for z in config.zones}
    method_ids = {m.id for m in config.methods}
    option_ids = {o.id for o in config.options}
    active_zones = {z.id for z in config.zones if z.is_active}

    # Countries served by several active zones
    by_country: dict[str, set[str]] = defaultdict(set)
    for zc in config.zone_countries:
        if zc.zone_id not in zone_ids:
            issues.append(ConfigIssue(
                "error", "unknown_reference",
                f"Country {zc.country_code} is mapped to unknown zone {zc.zone_id}",
            ))
        elif zc.zone_id in active_zones:
            by_country[zc.country_code.upper()].add(zc.zone_id)
    for country, zones in sorted(by_country.items()):
        if len(zones) > 1:
            issues.append(ConfigIssue(
                "warning", "duplicate_country",
                f"Country {country} belongs to several active zones: {', '.join(sorted(zones))}",
            ))

    for sc in config.size_classes:
        if sc.weight_points < 0:
            issues.append(ConfigIssue(
                "error", "negative_weight",
                f"Size class {sc.code} has negative weight points ({sc.weight_points})",
            ))

    for m in config.methods:
        if m.eta_min_days is not None and m.eta_max_days is not None and m.eta_min_days > m.eta_max_days:
            issues.append(ConfigIssue(
                "warning", "eta_inverted",
                f"Method {m.code} has eta_min_days {m.eta_min_days} > eta_max_days {m.eta_max_days}",
            ))

    for r in config.rate_rules:
        if r.zone_id not in zone_ids or r.method_id not in method_ids:
            issues.append(ConfigIssue(
                "error", "unknown_reference",
                f"Rate rule {r.id} points to a missing zone or method",
            ))
        if r.price_eur < 0:
            issues.append(ConfigIssue(
                "error", "negative_price", f"Rate rule {r.id} has a negative price",
            ))
        if r.max_subtotal_eur is not None and r.min_subtotal_eur >= r.max_subtotal_eur:
            issues.append(ConfigIssue(
                "error", "inverted_range", f"Rate rule {r.id} has an empty subtotal range",
            ))
        if r.max_weight_points is not None and r.min_weight_points >= r.max_weight_points:
            issues.append(ConfigIssue(
                "error", "inverted_range", f"Rate rule {r.id} has an empty weight range",
            ))

    grouped: dict[tuple, list[RateRule]] = defaultdict(list)
    for r in config.rate_rules:
        if r.is_active:
            grouped[(r.zone_id, r.method_id, r.priority)].append(r)
    for (zone_id, method_id, priority), rules in sorted(grouped.items()):
        for a, b in combinations(sorted(rules, key=lambda r: r.id), 2):
            if _rules_overlap(a, b):
                issues.append(ConfigIssue(
                    "warning", "overlapping_rules",
                    f"Rate rules {a.id} and {b.id} overlap with the same priority "
                    f"{priority} (zone {zone_id}, method {method_id})",
                ))

    for t in config.free_thresholds:
        if t.zone_id not in zone_ids or (t.method_id is not None and t.method_id not in method_ids):
            issues.append(ConfigIssue(
                "error", "unknown_reference",
                f"Free threshold {t.id} points to a missing zone or method",
            ))
        if t.threshold_eur < 0:
            issues.append(ConfigIssue(
                "error", "negative_price", f"Free threshold {t.id} is negative",
            ))

    priced_options = set()
    for p in config.option_prices:
        if (
            p.option_id not in option_ids
            or (p.zone_id is not None and p.zone_id not in zone_ids)
            or (p.method_id is not None and p.method_id not in method_ids)
        ):
            issues.append(ConfigIssue(
                "error", "unknown_reference",
                f"Option price {p.id} points to a missing option, zone or method",
            ))
        if p.price_eur < 0:
            issues.append(ConfigIssue(
                "error", "negative_price", f"Option price {p.id} is negative",
            ))
        if p.is_active:
            priced_options.add(p.option_id)

    for o in config.options:
        if o.is_active and o.id not in priced_options:
            issues.append(ConfigIssue(
                "warning", "unpriced_option",
                f"Option {o.code.value} is active but has no active price; it will be free",
            ))

    issues.sort(key=lambda i: 0 if i.severity == "error" else 1)
    return issues
