"""Storefront shipping quote API."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.schemas import (
    CartItemIn,
    MethodQuoteOut,
    MethodQuotesRequest,
    QuoteOut,
    QuoteRequest,
    SelectedOptionsIn,
)
from app.services.shipping import (
    CartItem,
    SelectedOptions,
    ShipmentPreference,
    ShippingCalculator,
    ShippingFailure,
    ShippingResult,
)
from app.services.shipping_store import load_shipping_config

router = APIRouter(prefix="/shipping", tags=["shipping"])


def to_cart(items: list[CartItemIn]) -> list[CartItem]:
    return [CartItem(**item.model_dump()) for item in items]


def to_options(options: SelectedOptionsIn) -> SelectedOptions:
    return SelectedOptions(**options.model_dump())


def to_preference(value: Optional[str]) -> ShipmentPreference:
    return ShipmentPreference(value or get_settings().default_shipment_preference)


def raise_for_failure(result: ShippingResult) -> None:
    """Turn an engine failure into a 422 the checkout can act on."""
    if isinstance(result, ShippingFailure):
        raise HTTPException(
            422, {"error": result.error.value, "message": result.error.message},
        )


@router.post("/quote", response_model=QuoteOut)
async def quote(data: QuoteRequest, db: AsyncSession = Depends(get_db)):
    calculator = ShippingCalculator(await load_shipping_config(db))
    result = calculator.calculate(
        to_cart(data.items),
        data.country_code,
        data.method_id,
        to_options(data.options),
        to_preference(data.shipment_preference),
    )
    raise_for_failure(result)
    return result.to_dict()


@router.post("/quotes", response_model=list[MethodQuoteOut])
async def quote_all_methods(data: MethodQuotesRequest, db: AsyncSession = Depends(get_db)):
    calculator = ShippingCalculator(await load_shipping_config(db))
    results = calculator.quote_methods(
        to_cart(data.items),
        data.country_code,
        to_options(data.options),
        to_preference(data.shipment_preference),
    )
    out = []
    for method, result in results:
        entry = {
            "method_id": method.id,
            "method_code": method.code,
            "name_fr": method.name_fr,
            "name_en": method.name_en,
        }
        if isinstance(result, ShippingFailure):
            entry["error"] = result.error.value
        else:
            entry["quote"] = result.to_dict()
        out.append(entry)
    return out
