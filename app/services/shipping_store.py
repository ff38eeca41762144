"""Load a shipping configuration snapshot from the database."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app import models
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


def _id(value) -> Optional[str]:
    return str(value) if value is not None else None


def _points(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


async def _all(db: AsyncSession, model, *order_by):
    result = await db.execute(select(model).order_by(*order_by))
    return result.scalars().all()


async def load_shipping_config(db: AsyncSession) -> ShippingConfig:
    """Read every shipping table once and freeze it into a snapshot."""
    zones = await _all(db, models.ShippingZone, models.ShippingZone.sort_order)
    countries = await _all(
        db, models.ShippingZoneCountry,
        models.ShippingZoneCountry.zone_id, models.ShippingZoneCountry.country_code,
    )
    size_classes = await _all(db, models.ShippingSizeClass, models.ShippingSizeClass.sort_order)
    methods = await _all(db, models.ShippingMethod, models.ShippingMethod.sort_order)
    rules = await _all(db, models.ShippingRateRule, models.ShippingRateRule.priority)
    thresholds = await _all(db, models.ShippingFreeThreshold)
    options = await _all(db, models.ShippingOption)
    prices = await _all(db, models.ShippingOptionPrice)

    return ShippingConfig(
        zones=tuple(
            Zone(
                id=_id(z.id),
                name_fr=z.name_fr,
                name_en=z.name_en,
                description_fr=z.description_fr,
                description_en=z.description_en,
                customs_notice=bool(z.customs_notice),
                is_active=bool(z.is_active),
                sort_order=z.sort_order or 0,
            )
            for z in zones
        ),
        zone_countries=tuple(
            ZoneCountry(zone_id=_id(c.zone_id), country_code=c.country_code.upper())
            for c in countries
        ),
        size_classes=tuple(
            SizeClass(
                code=sc.code,
                label_fr=sc.label_fr,
                label_en=sc.label_en,
                weight_points=_points(sc.weight_points) or Decimal("0"),
                is_active=bool(sc.is_active),
                sort_order=sc.sort_order or 0,
            )
            for sc in size_classes
        ),
        methods=tuple(
            ShippingMethod(
                id=_id(m.id),
                code=m.code,
                name_fr=m.name_fr,
                name_en=m.name_en,
                description_fr=m.description_fr,
                description_en=m.description_en,
                is_active=bool(m.is_active),
                supports_insurance=bool(m.supports_insurance),
                supports_signature=bool(m.supports_signature),
                supports_gift_wrap=bool(m.supports_gift_wrap),
                eta_min_days=m.eta_min_days,
                eta_max_days=m.eta_max_days,
                sort_order=m.sort_order or 0,
            )
            for m in methods
        ),
        rate_rules=tuple(
            RateRule(
                id=_id(r.id),
                zone_id=_id(r.zone_id),
                method_id=_id(r.method_id),
                min_subtotal_eur=r.min_subtotal_eur or 0,
                max_subtotal_eur=r.max_subtotal_eur,
                min_weight_points=_points(r.min_weight_points) or Decimal("0"),
                max_weight_points=_points(r.max_weight_points),
                price_eur=r.price_eur,
                is_active=bool(r.is_active),
                priority=r.priority or 0,
            )
            for r in rules
        ),
        free_thresholds=tuple(
            FreeShippingThreshold(
                id=_id(t.id),
                zone_id=_id(t.zone_id),
                method_id=_id(t.method_id),
                threshold_eur=t.threshold_eur,
                is_active=bool(t.is_active),
            )
            for t in thresholds
        ),
        options=tuple(
            ShippingOption(
                id=_id(o.id),
                code=OptionCode(o.code),
                name_fr=o.name_fr,
                name_en=o.name_en,
                is_active=bool(o.is_active),
            )
            for o in options
        ),
        option_prices=tuple(
            OptionPrice(
                id=_id(p.id),
                option_id=_id(p.option_id),
                zone_id=_id(p.zone_id),
                method_id=_id(p.method_id),
                price_eur=p.price_eur,
                is_active=bool(p.is_active),
            )
            for p in prices
        ),
    )
