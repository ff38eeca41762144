"""Atelier-Shipping CLI.

Works on a JSON configuration snapshot (same shape as the admin export).

Usage:
    python -m cli shipping quote --config shipping.json --cart cart.json --country FR --method standard
    python -m cli shipping quote --config shipping.json --cart cart.json --country FR --method standard --split --insurance
    python -m cli shipping methods --config shipping.json --cart cart.json --country DE
    python -m cli shipping simulate --config shipping.json --country FR --subtotal 50 --weight 2 --method standard
    python -m cli shipping validate --config shipping.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path

from pydantic import ValidationError

from app.config import get_settings
from app.schemas import CartItemIn
from app.services.shipping import (
    CartItem,
    SelectedOptions,
    ShipmentPreference,
    ShippingCalculator,
    ShippingFailure,
)
from app.services.shipping_config import ConfigError, ShippingConfig
from app.services.shipping_validation import validate_config


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="atelier-shipping",
        description="Atelier-Shipping CLI",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log engine warnings")
    sub = parser.add_subparsers(dest="command", help="Top-level command")

    # ── Shipping ─────────────────────────────────────────
    ship_parser = sub.add_parser("shipping", help="Shipping quotes")
    ship_sub = ship_parser.add_subparsers(dest="action")

    quote = ship_sub.add_parser("quote", help="Quote one shipping method")
    _add_config_arg(quote)
    quote.add_argument("--cart", required=True, help="Cart JSON file")
    quote.add_argument("--country", required=True, help="Destination country code")
    quote.add_argument("--method", required=True, help="Shipping method id")
    _add_option_args(quote)
    quote.add_argument("--split", action="store_true", help="Ship ready items first")
    quote.add_argument("--json", action="store_true", help="Print the raw result")

    methods = ship_sub.add_parser("methods", help="Quote every active method")
    _add_config_arg(methods)
    methods.add_argument("--cart", required=True, help="Cart JSON file")
    methods.add_argument("--country", required=True, help="Destination country code")
    _add_option_args(methods)
    methods.add_argument("--split", action="store_true", help="Ship ready items first")

    simulate = ship_sub.add_parser("simulate", help="Price a synthetic cart")
    _add_config_arg(simulate)
    simulate.add_argument("--country", required=True, help="Destination country code")
    simulate.add_argument("--subtotal", type=Decimal, required=True, help="Cart subtotal (EUR)")
    simulate.add_argument("--weight", type=Decimal, required=True, help="Weight points")
    simulate.add_argument("--method", required=True, help="Shipping method id")
    _add_option_args(simulate)

    validate = ship_sub.add_parser("validate", help="Check the configuration")
    _add_config_arg(validate)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.ERROR,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    handlers = {
        "shipping": handle_shipping,
    }
    handler = handlers.get(args.command)
    if handler:
        handler(args)
    else:
        parser.print_help()


def _add_config_arg(p):
    p.add_argument("--config", help="Shipping configuration JSON (default: settings)")


def _add_option_args(p):
    p.add_argument("--insurance", action="store_true", help="Add insurance")
    p.add_argument("--signature", action="store_true", help="Require signature")
    p.add_argument("--gift-wrap", action="store_true", help="Gift wrap")


def _eur(cents: int) -> str:
    return f"{Decimal(cents) / 100:.2f} €"


def _load_config(args) -> ShippingConfig:
    path = args.config or get_settings().shipping_config_file
    if not path:
        print("No configuration file: pass --config or set SHIPPING_CONFIG_FILE")
        sys.exit(1)
    if not Path(path).exists():
        print(f"File not found: {path}")
        sys.exit(1)
    try:
        return ShippingConfig.from_json_file(path)
    except ConfigError as e:
        print(f"Invalid configuration: {e}")
        sys.exit(1)


def _load_cart(path_str: str) -> list[CartItem]:
    path = Path(path_str)
    if not path.exists():
        print(f"File not found: {path_str}")
        sys.exit(1)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print(f"Invalid cart: {e}")
        sys.exit(1)
    rows = data.get("items", []) if isinstance(data, dict) else data
    if not isinstance(rows, list):
        print("Invalid cart: expected a list of items")
        sys.exit(1)
    try:
        return [CartItem(**CartItemIn.model_validate(row).model_dump()) for row in rows]
    except ValidationError as e:
        print(f"Invalid cart: {e}")
        sys.exit(1)


def _options(args) -> SelectedOptions:
    return SelectedOptions(
        insurance=args.insurance,
        signature=args.signature,
        gift_wrap=args.gift_wrap,
    )


# ── Command Handlers ────────────────────────────────────

def handle_shipping(args):
    if args.action == "quote":
        calc = ShippingCalculator(_load_config(args))
        result = calc.calculate(
            _load_cart(args.cart),
            args.country,
            args.method,
            _options(args),
            ShipmentPreference.SPLIT if args.split else ShipmentPreference.SINGLE,
        )
        if args.json:
            print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
            return
        _print_result(result)

    elif args.action == "methods":
        calc = ShippingCalculator(_load_config(args))
        results = calc.quote_methods(
            _load_cart(args.cart),
            args.country,
            _options(args),
            ShipmentPreference.SPLIT if args.split else ShipmentPreference.SINGLE,
        )
        if not results:
            print("No active shipping methods.")
            return
        print(f"{'Method':<15} {'Price':<12} {'Days':<10} {'Note'}")
        print("-" * 50)
        for method, result in results:
            if isinstance(result, ShippingFailure):
                print(f"{method.code:<15} {'-':<12} {'-':<10} {result.error.value}")
                continue
            price = "Free" if result.is_free_shipping else _eur(result.shipping_price_eur)
            days = f"{result.eta_min_days}-{result.eta_max_days}"
            note = "customs" if result.customs_notice else ""
            print(f"{method.code:<15} {price:<12} {days:<10} {note}")

    elif args.action == "simulate":
        calc = ShippingCalculator(_load_config(args))
        subtotal_cents = int((args.subtotal * 100).to_integral_value())
        result = calc.simulate(
            args.country, subtotal_cents, args.weight, args.method, _options(args),
        )
        _print_result(result)

    elif args.action == "validate":
        issues = validate_config(_load_config(args))
        if not issues:
            print("✅ Configuration OK")
            return
        for issue in issues:
            symbol = "❌" if issue.severity == "error" else "⚠️ "
            print(f"{symbol} [{issue.code}] {issue.message}")
        if any(i.severity == "error" for i in issues):
            sys.exit(1)

    else:
        print("Usage: atelier-shipping shipping {quote|methods|simulate|validate}")


def _print_result(result):
    if isinstance(result, ShippingFailure):
        print(f"❌ {result.error.value}: {result.error.message}")
        sys.exit(2)

    print(f"Zone:       {result.zone.name_fr}")
    if result.customs_notice:
        print("            Customs duties payable by the customer")
    print(f"Method:     {result.method.name_fr}")
    shipping = "Free" if result.is_free_shipping else _eur(result.shipping_price_eur)
    print(f"Shipping:   {shipping}")
    if result.options_price_eur:
        print(f"Options:    {_eur(result.options_price_eur)}")
    if result.ignored_options:
        print(f"Ignored:    {', '.join(o.value for o in result.ignored_options)}")
    print(f"Total:      {_eur(result.total_price_eur)}")
    if result.lead_time_days:
        print(f"Lead time:  {result.lead_time_days} days")
    print(f"Delivery:   {result.eta_min_days}-{result.eta_max_days} days")
    if result.split_details:
        ready = result.split_details.ready_shipment
        crafted = result.split_details.made_to_order_shipment
        print(f"  Ready parcel:          {ready.eta_min_days}-{ready.eta_max_days} days, "
              f"{_eur(ready.shipping_price_eur)}")
        print(f"  Made-to-order parcel:  {crafted.eta_min_days}-{crafted.eta_max_days} days, "
              f"{_eur(crafted.shipping_price_eur)}")


if __name__ == "__main__":
    main()
