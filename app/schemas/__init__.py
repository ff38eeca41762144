"""Pydantic schemas for the shipping API."""

from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


# ── Quote ────────────────────────────────────────────────
class CartItemIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    price_eur_cents: int = Field(..., ge=0)
    made_to_order: bool = False
    lead_time_days: Optional[int] = Field(None, ge=0)
    size_class_code: Optional[str] = None


class SelectedOptionsIn(BaseModel):
    insurance: bool = False
    signature: bool = False
    gift_wrap: bool = False


class QuoteRequest(BaseModel):
    items: list[CartItemIn] = Field(default_factory=list)
    country_code: str = Field(..., min_length=2, max_length=2)
    method_id: str
    options: SelectedOptionsIn = Field(default_factory=SelectedOptionsIn)
    shipment_preference: Optional[Literal["single", "split"]] = None


class MethodQuotesRequest(BaseModel):
    items: list[CartItemIn] = Field(default_factory=list)
    country_code: str = Field(..., min_length=2, max_length=2)
    options: SelectedOptionsIn = Field(default_factory=SelectedOptionsIn)
    shipment_preference: Optional[Literal["single", "split"]] = None


class SimulateRequest(BaseModel):
    country_code: str = Field(..., min_length=2, max_length=2)
    subtotal_eur_cents: int = Field(..., ge=0)
    weight_points: Decimal = Field(..., ge=0)
    method_id: str
    options: SelectedOptionsIn = Field(default_factory=SelectedOptionsIn)


class ShipmentWindowOut(BaseModel):
    lead_time_days: int
    eta_min_days: int
    eta_max_days: int
    shipping_price_eur: int


class SplitDetailsOut(BaseModel):
    ready_shipment: ShipmentWindowOut
    made_to_order_shipment: ShipmentWindowOut


class QuoteOut(BaseModel):
    zone_id: str
    zone_name: str
    method_id: str
    method_code: str
    shipping_price_eur: int
    options_price_eur: int
    total_price_eur: int
    is_free_shipping: bool
    customs_notice: bool
    lead_time_days: int
    eta_min_days: int
    eta_max_days: int
    split_details: Optional[SplitDetailsOut] = None
    ignored_options: list[str] = Field(default_factory=list)


class MethodQuoteOut(BaseModel):
    method_id: str
    method_code: str
    name_fr: str
    name_en: Optional[str] = None
    quote: Optional[QuoteOut] = None
    error: Optional[str] = None


class ConfigIssueOut(BaseModel):
    severity: str
    code: str
    message: str


# ── Zone ─────────────────────────────────────────────────
class ZoneCreate(BaseModel):
    name_fr: str = Field(..., min_length=1)
    name_en: Optional[str] = None
    description_fr: Optional[str] = None
    description_en: Optional[str] = None
    customs_notice: bool = False
    is_active: bool = True
    sort_order: int = 0
    countries: list[str] = Field(default_factory=list)


class ZoneUpdate(BaseModel):
    name_fr: Optional[str] = None
    name_en: Optional[str] = None
    description_fr: Optional[str] = None
    description_en: Optional[str] = None
    customs_notice: Optional[bool] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class ZoneOut(BaseModel):
    id: UUID
    name_fr: str
    name_en: Optional[str]
    description_fr: Optional[str]
    description_en: Optional[str]
    customs_notice: bool
    is_active: bool
    sort_order: int
    countries: list[str] = Field(default_factory=list)


class ZoneCountriesUpdate(BaseModel):
    countries: list[str]


# ── Size class ───────────────────────────────────────────
class SizeClassCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    label_fr: str
    label_en: Optional[str] = None
    weight_points: Decimal = Field(..., ge=0)
    is_active: bool = True
    sort_order: int = 0


class SizeClassUpdate(BaseModel):
    label_fr: Optional[str] = None
    label_en: Optional[str] = None
    weight_points: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class SizeClassOut(SizeClassCreate):
    model_config = {"from_attributes": True}


# ── Method ───────────────────────────────────────────────
class MethodCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name_fr: str
    name_en: Optional[str] = None
    description_fr: Optional[str] = None
    description_en: Optional[str] = None
    is_active: bool = True
    supports_insurance: bool = False
    supports_signature: bool = False
    supports_gift_wrap: bool = False
    eta_min_days: Optional[int] = Field(None, ge=0)
    eta_max_days: Optional[int] = Field(None, ge=0)
    sort_order: int = 0


class MethodUpdate(BaseModel):
    name_fr: Optional[str] = None
    name_en: Optional[str] = None
    description_fr: Optional[str] = None
    description_en: Optional[str] = None
    is_active: Optional[bool] = None
    supports_insurance: Optional[bool] = None
    supports_signature: Optional[bool] = None
    supports_gift_wrap: Optional[bool] = None
    eta_min_days: Optional[int] = Field(None, ge=0)
    eta_max_days: Optional[int] = Field(None, ge=0)
    sort_order: Optional[int] = None


class MethodOut(MethodCreate):
    id: UUID

    model_config = {"from_attributes": True}


# ── Rate rule ────────────────────────────────────────────
class RateRuleCreate(BaseModel):
    zone_id: UUID
    method_id: UUID
    min_subtotal_eur: int = Field(0, ge=0)
    max_subtotal_eur: Optional[int] = Field(None, ge=0)
    min_weight_points: Decimal = Field(Decimal("0"), ge=0)
    max_weight_points: Optional[Decimal] = Field(None, ge=0)
    price_eur: int = Field(..., ge=0)
    is_active: bool = True
    priority: int = 0


class RateRuleUpdate(BaseModel):
    min_subtotal_eur: Optional[int] = Field(None, ge=0)
    max_subtotal_eur: Optional[int] = Field(None, ge=0)
    min_weight_points: Optional[Decimal] = Field(None, ge=0)
    max_weight_points: Optional[Decimal] = Field(None, ge=0)
    price_eur: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    priority: Optional[int] = None


class RateRuleOut(RateRuleCreate):
    id: UUID

    model_config = {"from_attributes": True}


# ── Free threshold ───────────────────────────────────────
class FreeThresholdCreate(BaseModel):
    zone_id: UUID
    method_id: Optional[UUID] = None
    threshold_eur: int = Field(..., ge=0)
    is_active: bool = True


class FreeThresholdUpdate(BaseModel):
    method_id: Optional[UUID] = None
    threshold_eur: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class FreeThresholdOut(FreeThresholdCreate):
    id: UUID

    model_config = {"from_attributes": True}


# ── Options ──────────────────────────────────────────────
class OptionCreate(BaseModel):
    code: Literal["insurance", "signature", "gift_wrap"]
    name_fr: str
    name_en: Optional[str] = None
    is_active: bool = True


class OptionUpdate(BaseModel):
    name_fr: Optional[str] = None
    name_en: Optional[str] = None
    is_active: Optional[bool] = None


class OptionOut(OptionCreate):
    id: UUID

    model_config = {"from_attributes": True}


class OptionPriceCreate(BaseModel):
    option_id: UUID
    zone_id: Optional[UUID] = None
    method_id: Optional[UUID] = None
    price_eur: int = Field(..., ge=0)
    is_active: bool = True


class OptionPriceUpdate(BaseModel):
    zone_id: Optional[UUID] = None
    method_id: Optional[UUID] = None
    price_eur: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class OptionPriceOut(OptionPriceCreate):
    id: UUID

    model_config = {"from_attributes": True}
