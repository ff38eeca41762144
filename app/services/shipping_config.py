"""Shipping configuration snapshot.

Read-only view of the zones, methods, rate rules, thresholds and option
prices the rate engine works from. A snapshot is built once per request
(from the database or a JSON document) and never mutated afterwards.
"""

from __future__ import annotations

import json
from dataclasses import MISSING, dataclass, fields
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class ConfigError(ValueError):
    """Raised when a configuration document cannot be turned into a snapshot."""


class OptionCode(str, Enum):
    """Add-on services that can be layered onto a shipping method."""
    INSURANCE = "insurance"
    SIGNATURE = "signature"
    GIFT_WRAP = "gift_wrap"


@dataclass(frozen=True)
class Zone:
    id: str
    name_fr: str
    name_en: Optional[str] = None
    description_fr: Optional[str] = None
    description_en: Optional[str] = None
    customs_notice: bool = False
    is_active: bool = True
    sort_order: int = 0


@dataclass(frozen=True)
class ZoneCountry:
    zone_id: str
    country_code: str


@dataclass(frozen=True)
class SizeClass:
    code: str
    label_fr: str
    weight_points: Decimal
    label_en: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0


@dataclass(frozen=True)
class ShippingMethod:
    id: str
    code: str
    name_fr: str
    name_en: Optional[str] = None
    description_fr: Optional[str] = None
    description_en: Optional[str] = None
    is_active: bool = True
    supports_insurance: bool = False
    supports_signature: bool = False
    supports_gift_wrap: bool = False
    eta_min_days: Optional[int] = None
    eta_max_days: Optional[int] = None
    sort_order: int = 0

    def supports(self, option: OptionCode) -> bool:
        """Capability flag for an add-on option."""
        return {
            OptionCode.INSURANCE: self.supports_insurance,
            OptionCode.SIGNATURE: self.supports_signature,
            OptionCode.GIFT_WRAP: self.supports_gift_wrap,
        }[option]


@dataclass(frozen=True)
class RateRule:
    """Priced tier keyed by zone, method, subtotal range and weight range.

    Ranges are half-open ``[min, max)``; a ``None`` max is unbounded.
    """
    id: str
    zone_id: str
    method_id: str
    price_eur: int
    min_subtotal_eur: int = 0
    max_subtotal_eur: Optional[int] = None
    min_weight_points: Decimal = Decimal("0")
    max_weight_points: Optional[Decimal] = None
    is_active: bool = True
    priority: int = 0

    def covers_subtotal(self, subtotal_eur: int) -> bool:
        if subtotal_eur < self.min_subtotal_eur:
            return False
        return self.max_subtotal_eur is None or subtotal_eur < self.max_subtotal_eur

    def covers_weight(self, weight_points: Decimal) -> bool:
        if weight_points < self.min_weight_points:
            return False
        return self.max_weight_points is None or weight_points < self.max_weight_points


@dataclass(frozen=True)
class FreeShippingThreshold:
    id: str
    zone_id: str
    threshold_eur: int
    method_id: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class ShippingOption:
    id: str
    code: OptionCode
    name_fr: str
    name_en: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class OptionPrice:
    id: str
    option_id: str
    price_eur: int
    zone_id: Optional[str] = None
    method_id: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class ShippingConfig:
    """Immutable configuration snapshot handed to the rate engine."""
    zones: tuple[Zone, ...] = ()
    zone_countries: tuple[ZoneCountry, ...] = ()
    size_classes: tuple[SizeClass, ...] = ()
    methods: tuple[ShippingMethod, ...] = ()
    rate_rules: tuple[RateRule, ...] = ()
    free_thresholds: tuple[FreeShippingThreshold, ...] = ()
    options: tuple[ShippingOption, ...] = ()
    option_prices: tuple[OptionPrice, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShippingConfig":
        """Build a snapshot from the JSON document shape."""
        if not isinstance(data, dict):
            raise ConfigError("Configuration document must be an object")
        kwargs = {}
        for f in fields(cls):
            record_type = _RECORD_TYPES[f.name]
            rows = data.get(f.name, [])
            if not isinstance(rows, list):
                raise ConfigError(f"'{f.name}' must be a list")
            kwargs[f.name] = tuple(
                _build_record(record_type, row, f"{f.name}[{i}]")
                for i, row in enumerate(rows)
            )
        return cls(**kwargs)

    @classmethod
    def from_json_file(cls, path: str | Path) -> "ShippingConfig":
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        return cls.from_dict(data)

    def with_size_class(self, size_class: SizeClass) -> "ShippingConfig":
        """Copy of the snapshot with one extra size class."""
        return ShippingConfig(
            zones=self.zones,
            zone_countries=self.zone_countries,
            size_classes=self.size_classes + (size_class,),
            methods=self.methods,
            rate_rules=self.rate_rules,
            free_thresholds=self.free_thresholds,
            options=self.options,
            option_prices=self.option_prices,
        )


_RECORD_TYPES = {
    "zones": Zone,
    "zone_countries": ZoneCountry,
    "size_classes": SizeClass,
    "methods": ShippingMethod,
    "rate_rules": RateRule,
    "free_thresholds": FreeShippingThreshold,
    "options": ShippingOption,
    "option_prices": OptionPrice,
}

_DECIMAL_FIELDS = {"weight_points", "min_weight_points", "max_weight_points"}
_INT_FIELDS = {
    "price_eur", "min_subtotal_eur", "max_subtotal_eur", "threshold_eur",
    "priority", "sort_order", "eta_min_days", "eta_max_days",
}
_ID_FIELDS = {"id", "zone_id", "method_id", "option_id"}


def _build_record(record_type, row: Any, where: str):
    if not isinstance(row, dict):
        raise ConfigError(f"{where}: record must be an object")
    known = {f.name for f in fields(record_type)}
    missing = sorted(
        f.name for f in fields(record_type)
        if f.default is MISSING and f.name not in row
    )
    if missing:
        raise ConfigError(f"{where}: missing field(s) {', '.join(missing)}")
    values = {}
    for key, raw in row.items():
        if key not in known:
            continue  # extra columns (timestamps, etc.) are ignored
        values[key] = _coerce(record_type, key, raw, where)
    return record_type(**values)


def _coerce(record_type, key: str, raw: Any, where: str) -> Any:
    if raw is None:
        return None
    try:
        if key in _DECIMAL_FIELDS:
            return Decimal(str(raw))
        if key in _INT_FIELDS:
            if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
                raise ValueError(raw)
            return int(raw)
        if key in _ID_FIELDS:
            return str(raw)
        if key == "country_code":
            return str(raw).upper()
        if key == "code" and record_type is ShippingOption:
            return OptionCode(raw)
    except (InvalidOperation, ValueError) as e:
        raise ConfigError(f"{where}: invalid value for '{key}': {raw!r}") from e
    return raw
