"""Shipping configuration admin API: CRUD, simulator and config checks."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.shipping import raise_for_failure, to_options
from app.database import get_db
from app.models import (
    ShippingFreeThreshold,
    ShippingMethod,
    ShippingOption,
    ShippingOptionPrice,
    ShippingRateRule,
    ShippingSizeClass,
    ShippingZone,
    ShippingZoneCountry,
)
from app.schemas import (
    ConfigIssueOut,
    FreeThresholdCreate,
    FreeThresholdOut,
    FreeThresholdUpdate,
    MethodCreate,
    MethodOut,
    MethodUpdate,
    OptionCreate,
    OptionOut,
    OptionPriceCreate,
    OptionPriceOut,
    OptionPriceUpdate,
    OptionUpdate,
    QuoteOut,
    RateRuleCreate,
    RateRuleOut,
    RateRuleUpdate,
    SimulateRequest,
    SizeClassCreate,
    SizeClassOut,
    SizeClassUpdate,
    ZoneCountriesUpdate,
    ZoneCreate,
    ZoneOut,
    ZoneUpdate,
)
from app.services.shipping import ShippingCalculator
from app.services.shipping_store import load_shipping_config
from app.services.shipping_validation import validate_config

router = APIRouter(prefix="/admin/shipping", tags=["shipping-admin"])


async def _get_or_404(db: AsyncSession, model, pk, label: str):
    obj = await db.get(model, pk)
    if obj is None:
        raise HTTPException(404, f"{label} not found")
    return obj


async def _require(db: AsyncSession, model, pk, label: str) -> None:
    """400 when a referenced record does not exist."""
    if pk is not None and await db.get(model, pk) is None:
        raise HTTPException(400, f"Unknown {label}: {pk}")


def _normalize_countries(codes: list[str]) -> list[str]:
    normalized = sorted({c.strip().upper() for c in codes if c.strip()})
    bad = [c for c in normalized if len(c) != 2 or not c.isalpha()]
    if bad:
        raise HTTPException(400, f"Invalid country code(s): {', '.join(bad)}")
    return normalized


async def _zone_out(db: AsyncSession, zone: ShippingZone) -> dict:
    result = await db.execute(
        select(ShippingZoneCountry.country_code)
        .where(ShippingZoneCountry.zone_id == zone.id)
        .order_by(ShippingZoneCountry.country_code)
    )
    return {
        "id": zone.id,
        "name_fr": zone.name_fr,
        "name_en": zone.name_en,
        "description_fr": zone.description_fr,
        "description_en": zone.description_en,
        "customs_notice": zone.customs_notice,
        "is_active": zone.is_active,
        "sort_order": zone.sort_order,
        "countries": list(result.scalars().all()),
    }


# --- Zones ---

@router.get("/zones", response_model=list[ZoneOut])
async def list_zones(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ShippingZone).order_by(ShippingZone.sort_order))
    return [await _zone_out(db, z) for z in result.scalars().all()]


@router.post("/zones", response_model=ZoneOut, status_code=201)
async def create_zone(data: ZoneCreate, db: AsyncSession = Depends(get_db)):
    countries = _normalize_countries(data.countries)
    zone = ShippingZone(**data.model_dump(exclude={"countries"}))
    db.add(zone)
    await db.flush()
    for code in countries:
        db.add(ShippingZoneCountry(zone_id=zone.id, country_code=code))
    await db.commit()
    await db.refresh(zone)
    return await _zone_out(db, zone)


@router.get("/zones/{zone_id}", response_model=ZoneOut)
async def get_zone(zone_id: UUID, db: AsyncSession = Depends(get_db)):
    zone = await _get_or_404(db, ShippingZone, zone_id, "Zone")
    return await _zone_out(db, zone)


@router.patch("/zones/{zone_id}", response_model=ZoneOut)
async def update_zone(zone_id: UUID, data: ZoneUpdate, db: AsyncSession = Depends(get_db)):
    zone = await _get_or_404(db, ShippingZone, zone_id, "Zone")
    for key, val in data.model_dump(exclude_unset=True).items():
        setattr(zone, key, val)
    await db.commit()
    await db.refresh(zone)
    return await _zone_out(db, zone)


@router.put("/zones/{zone_id}/countries", response_model=ZoneOut)
async def replace_zone_countries(
    zone_id: UUID, data: ZoneCountriesUpdate, db: AsyncSession = Depends(get_db),
):
    zone = await _get_or_404(db, ShippingZone, zone_id, "Zone")
    countries = _normalize_countries(data.countries)
    await db.execute(delete(ShippingZoneCountry).where(ShippingZoneCountry.zone_id == zone.id))
    for code in countries:
        db.add(ShippingZoneCountry(zone_id=zone.id, country_code=code))
    await db.commit()
    await db.refresh(zone)
    return await _zone_out(db, zone)


@router.delete("/zones/{zone_id}", status_code=204)
async def delete_zone(zone_id: UUID, db: AsyncSession = Depends(get_db)):
    zone = await _get_or_404(db, ShippingZone, zone_id, "Zone")
    await db.execute(delete(ShippingZoneCountry).where(ShippingZoneCountry.zone_id == zone.id))
    await db.delete(zone)
    await db.commit()


# --- Size classes ---

@router.get("/size-classes", response_model=list[SizeClassOut])
async def list_size_classes(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ShippingSizeClass).order_by(ShippingSizeClass.sort_order))
    return result.scalars().all()


@router.post("/size-classes", response_model=SizeClassOut, status_code=201)
async def create_size_class(data: SizeClassCreate, db: AsyncSession = Depends(get_db)):
    if await db.get(ShippingSizeClass, data.code):
        raise HTTPException(409, "Size class with this code already exists")
    size_class = ShippingSizeClass(**data.model_dump())
    db.add(size_class)
    await db.commit()
    await db.refresh(size_class)
    return size_class


@router.patch("/size-classes/{code}", response_model=SizeClassOut)
async def update_size_class(code: str, data: SizeClassUpdate, db: AsyncSession = Depends(get_db)):
    size_class = await _get_or_404(db, ShippingSizeClass, code, "Size class")
    for key, val in data.model_dump(exclude_unset=True).items():
        setattr(size_class, key, val)
    await db.commit()
    await db.refresh(size_class)
    return size_class


@router.delete("/size-classes/{code}", status_code=204)
async def delete_size_class(code: str, db: AsyncSession = Depends(get_db)):
    size_class = await _get_or_404(db, ShippingSizeClass, code, "Size class")
    await db.delete(size_class)
    await db.commit()


# --- Methods ---

@router.get("/methods", response_model=list[MethodOut])
async def list_methods(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ShippingMethod).order_by(ShippingMethod.sort_order))
    return result.scalars().all()


@router.post("/methods", response_model=MethodOut, status_code=201)
async def create_method(data: MethodCreate, db: AsyncSession = Depends(get_db)):
    existing = await db.execute(select(ShippingMethod).where(ShippingMethod.code == data.code))
    if existing.scalar_one_or_none():
        raise HTTPException(409, "Shipping method with this code already exists")
    method = ShippingMethod(**data.model_dump())
    db.add(method)
    await db.commit()
    await db.refresh(method)
    return method


@router.patch("/methods/{method_id}", response_model=MethodOut)
async def update_method(method_id: UUID, data: MethodUpdate, db: AsyncSession = Depends(get_db)):
    method = await _get_or_404(db, ShippingMethod, method_id, "Shipping method")
    for key, val in data.model_dump(exclude_unset=True).items():
        setattr(method, key, val)
    await db.commit()
    await db.refresh(method)
    return method


@router.delete("/methods/{method_id}", status_code=204)
async def delete_method(method_id: UUID, db: AsyncSession = Depends(get_db)):
    method = await _get_or_404(db, ShippingMethod, method_id, "Shipping method")
    await db.delete(method)
    await db.commit()


# --- Rate rules ---

@router.get("/rate-rules", response_model=list[RateRuleOut])
async def list_rate_rules(
    zone_id: UUID | None = None,
    method_id: UUID | None = None,
    db: AsyncSession = Depends(get_db),
):
    stmt = select(ShippingRateRule)
    if zone_id:
        stmt = stmt.where(ShippingRateRule.zone_id == zone_id)
    if method_id:
        stmt = stmt.where(ShippingRateRule.method_id == method_id)
    stmt = stmt.order_by(ShippingRateRule.priority, ShippingRateRule.min_subtotal_eur)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("/rate-rules", response_model=RateRuleOut, status_code=201)
async def create_rate_rule(data: RateRuleCreate, db: AsyncSession = Depends(get_db)):
    await _require(db, ShippingZone, data.zone_id, "zone")
    await _require(db, ShippingMethod, data.method_id, "shipping method")
    rule = ShippingRateRule(**data.model_dump())
    db.add(rule)
    await db.commit()
    await db.refresh(rule)
    return rule


@router.patch("/rate-rules/{rule_id}", response_model=RateRuleOut)
async def update_rate_rule(rule_id: UUID, data: RateRuleUpdate, db: AsyncSession = Depends(get_db)):
    rule = await _get_or_404(db, ShippingRateRule, rule_id, "Rate rule")
    for key, val in data.model_dump(exclude_unset=True).items():
        setattr(rule, key, val)
    await db.commit()
    await db.refresh(rule)
    return rule


@router.delete("/rate-rules/{rule_id}", status_code=204)
async def delete_rate_rule(rule_id: UUID, db: AsyncSession = Depends(get_db)):
    rule = await _get_or_404(db, ShippingRateRule, rule_id, "Rate rule")
    await db.delete(rule)
    await db.commit()


# --- Free shipping thresholds ---

@router.get("/free-thresholds", response_model=list[FreeThresholdOut])
async def list_free_thresholds(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ShippingFreeThreshold))
    return result.scalars().all()


@router.post("/free-thresholds", response_model=FreeThresholdOut, status_code=201)
async def create_free_threshold(data: FreeThresholdCreate, db: AsyncSession = Depends(get_db)):
    await _require(db, ShippingZone, data.zone_id, "zone")
    await _require(db, ShippingMethod, data.method_id, "shipping method")
    threshold = ShippingFreeThreshold(**data.model_dump())
    db.add(threshold)
    await db.commit()
    await db.refresh(threshold)
    return threshold


@router.patch("/free-thresholds/{threshold_id}", response_model=FreeThresholdOut)
async def update_free_threshold(
    threshold_id: UUID, data: FreeThresholdUpdate, db: AsyncSession = Depends(get_db),
):
    threshold = await _get_or_404(db, ShippingFreeThreshold, threshold_id, "Free threshold")
    changes = data.model_dump(exclude_unset=True)
    await _require(db, ShippingMethod, changes.get("method_id"), "shipping method")
    for key, val in changes.items():
        setattr(threshold, key, val)
    await db.commit()
    await db.refresh(threshold)
    return threshold


@router.delete("/free-thresholds/{threshold_id}", status_code=204)
async def delete_free_threshold(threshold_id: UUID, db: AsyncSession = Depends(get_db)):
    threshold = await _get_or_404(db, ShippingFreeThreshold, threshold_id, "Free threshold")
    await db.delete(threshold)
    await db.commit()


# --- Options & option prices ---

@router.get("/options", response_model=list[OptionOut])
async def list_options(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ShippingOption))
    return result.scalars().all()


@router.post("/options", response_model=OptionOut, status_code=201)
async def create_option(data: OptionCreate, db: AsyncSession = Depends(get_db)):
    existing = await db.execute(select(ShippingOption).where(ShippingOption.code == data.code))
    if existing.scalar_one_or_none():
        raise HTTPException(409, "Option with this code already exists")
    option = ShippingOption(**data.model_dump())
    db.add(option)
    await db.commit()
    await db.refresh(option)
    return option


@router.patch("/options/{option_id}", response_model=OptionOut)
async def update_option(option_id: UUID, data: OptionUpdate, db: AsyncSession = Depends(get_db)):
    option = await _get_or_404(db, ShippingOption, option_id, "Option")
    for key, val in data.model_dump(exclude_unset=True).items():
        setattr(option, key, val)
    await db.commit()
    await db.refresh(option)
    return option


@router.delete("/options/{option_id}", status_code=204)
async def delete_option(option_id: UUID, db: AsyncSession = Depends(get_db)):
    option = await _get_or_404(db, ShippingOption, option_id, "Option")
    await db.delete(option)
    await db.commit()


@router.get("/option-prices", response_model=list[OptionPriceOut])
async def list_option_prices(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ShippingOptionPrice))
    return result.scalars().all()


@router.post("/option-prices", response_model=OptionPriceOut, status_code=201)
async def create_option_price(data: OptionPriceCreate, db: AsyncSession = Depends(get_db)):
    await _require(db, ShippingOption, data.option_id, "option")
    await _require(db, ShippingZone, data.zone_id, "zone")
    await _require(db, ShippingMethod, data.method_id, "shipping method")
    price = ShippingOptionPrice(**data.model_dump())
    db.add(price)
    await db.commit()
    await db.refresh(price)
    return price


@router.patch("/option-prices/{price_id}", response_model=OptionPriceOut)
async def update_option_price(
    price_id: UUID, data: OptionPriceUpdate, db: AsyncSession = Depends(get_db),
):
    price = await _get_or_404(db, ShippingOptionPrice, price_id, "Option price")
    changes = data.model_dump(exclude_unset=True)
    await _require(db, ShippingZone, changes.get("zone_id"), "zone")
    await _require(db, ShippingMethod, changes.get("method_id"), "shipping method")
    for key, val in changes.items():
        setattr(price, key, val)
    await db.commit()
    await db.refresh(price)
    return price


@router.delete("/option-prices/{price_id}", status_code=204)
async def delete_option_price(price_id: UUID, db: AsyncSession = Depends(get_db)):
    price = await _get_or_404(db, ShippingOptionPrice, price_id, "Option price")
    await db.delete(price)
    await db.commit()


# --- Simulator & checks ---

@router.post("/simulate", response_model=QuoteOut)
async def simulate(data: SimulateRequest, db: AsyncSession = Depends(get_db)):
    calculator = ShippingCalculator(await load_shipping_config(db))
    result = calculator.simulate(
        data.country_code,
        data.subtotal_eur_cents,
        data.weight_points,
        data.method_id,
        to_options(data.options),
    )
    raise_for_failure(result)
    return result.to_dict()


@router.get("/validate", response_model=list[ConfigIssueOut])
async def validate(db: AsyncSession = Depends(get_db)):
    issues = validate_config(await load_shipping_config(db))
    return [issue.to_dict() for issue in issues]
