"""Shipping configuration data models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text,
)
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class ShippingZone(Base):
    """Group of destination countries priced alike."""
    __tablename__ = "shipping_zones"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name_fr = Column(String(200), nullable=False)
    name_en = Column(String(200), nullable=True)
    description_fr = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    customs_notice = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ShippingZoneCountry(Base):
    __tablename__ = "shipping_zone_countries"

    zone_id = Column(
        UUID(as_uuid=True), ForeignKey("shipping_zones.id", ondelete="CASCADE"), primary_key=True,
    )
    country_code = Column(String(2), primary_key=True)  # ISO 3166-1 alpha-2


class ShippingSizeClass(Base):
    """Weight-points bucket assigned to products."""
    __tablename__ = "shipping_size_classes"

    code = Column(String(50), primary_key=True)
    label_fr = Column(String(200), nullable=False)
    label_en = Column(String(200), nullable=True)
    weight_points = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)


class ShippingMethod(Base):
    __tablename__ = "shipping_methods"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name_fr = Column(String(200), nullable=False)
    name_en = Column(String(200), nullable=True)
    description_fr = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    supports_insurance = Column(Boolean, default=False)
    supports_signature = Column(Boolean, default=False)
    supports_gift_wrap = Column(Boolean, default=False)
    eta_min_days = Column(Integer, nullable=True)
    eta_max_days = Column(Integer, nullable=True)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class ShippingRateRule(Base):
    """Priced tier; amounts in euro cents, ranges are [min, max)."""
    __tablename__ = "shipping_rate_rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    zone_id = Column(UUID(as_uuid=True), ForeignKey("shipping_zones.id", ondelete="CASCADE"), nullable=False)
    method_id = Column(UUID(as_uuid=True), ForeignKey("shipping_methods.id", ondelete="CASCADE"), nullable=False)
    min_subtotal_eur = Column(Integer, default=0)
    max_subtotal_eur = Column(Integer, nullable=True)
    min_weight_points = Column(Numeric(10, 2), default=0)
    max_weight_points = Column(Numeric(10, 2), nullable=True)
    price_eur = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)
    priority = Column(Integer, default=0)  # lower wins
    created_at = Column(DateTime(timezone=True), default=utcnow)


class ShippingFreeThreshold(Base):
    __tablename__ = "shipping_free_thresholds"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    zone_id = Column(UUID(as_uuid=True), ForeignKey("shipping_zones.id", ondelete="CASCADE"), nullable=False)
    method_id = Column(UUID(as_uuid=True), ForeignKey("shipping_methods.id", ondelete="CASCADE"), nullable=True)
    threshold_eur = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)


class ShippingOption(Base):
    __tablename__ = "shipping_options"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(
        Enum("insurance", "signature", "gift_wrap", name="shipping_option_code"),
        unique=True, nullable=False,
    )
    name_fr = Column(String(200), nullable=False)
    name_en = Column(String(200), nullable=True)
    is_active = Column(Boolean, default=True)


class ShippingOptionPrice(Base):
    """Option price, optionally scoped to a zone and/or a method."""
    __tablename__ = "shipping_option_prices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    option_id = Column(UUID(as_uuid=True), ForeignKey("shipping_options.id", ondelete="CASCADE"), nullable=False)
    zone_id = Column(UUID(as_uuid=True), ForeignKey("shipping_zones.id", ondelete="CASCADE"), nullable=True)
    method_id = Column(UUID(as_uuid=True), ForeignKey("shipping_methods.id", ondelete="CASCADE"), nullable=True)
    price_eur = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)
