"""
Command-line interface for Shop Rules.
"""

import argparse
import sys
from typing import List, Optional, Tuple

from . import __version__
from .catalog import Catalog, load_catalog_file
from .errors import TaxAdjustmentError
from .stock.packager import StockPackager
from .taxation.models import TaxableItem
from .taxation.repository import AdjustmentStore, InMemoryAdjustmentStore
from .taxation.zones import Zone
from .utils.config import Config
from .utils.logging import get_logger, setup_logging


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Shop Rules - tax adjustment and shipment planning",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shop-rules --version
  shop-rules adjust-tax --catalog store.json --zone Germany
  shop-rules adjust-tax --catalog store.json --country US --state NY --order R100
  shop-rules plan-shipments --catalog store.json
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Shop Rules {__version__}",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "--log-file",
        help="Log file path",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
    )

    adjust_parser = subparsers.add_parser(
        "adjust-tax",
        help="Apply tax rates to the orders in a catalog file",
    )
    adjust_parser.add_argument(
        "--catalog",
        required=True,
        help="Path to the JSON catalog document",
    )
    adjust_parser.add_argument(
        "--zone",
        help="Tax zone name; overrides the zone stored on each order",
    )
    adjust_parser.add_argument(
        "--country",
        help="Destination country ISO code, used to match a zone",
    )
    adjust_parser.add_argument(
        "--state",
        help="Destination state abbreviation (with --country)",
    )
    adjust_parser.add_argument(
        "--order",
        help="Only adjust this order id",
    )
    adjust_parser.add_argument(
        "--persist",
        action="store_true",
        help="Write adjustments to MongoDB (DB_CONNECTION_URL / DB_NAME from .env)",
    )

    plan_parser = subparsers.add_parser(
        "plan-shipments",
        help="Turn the packages in a catalog file into shipments",
    )
    plan_parser.add_argument(
        "--catalog",
        required=True,
        help="Path to the JSON catalog document",
    )
    plan_parser.add_argument(
        "--persist",
        action="store_true",
        help="Write shipments to MongoDB (DB_CONNECTION_URL / DB_NAME from .env)",
    )

    return parser


def _print_box(header_lines: List[Tuple[str, str]]) -> None:
    label_width = max(len(lbl) for lbl, _ in header_lines)
    inner_width = max(len(f" {lbl.ljust(label_width)} : {val}") for lbl, val in header_lines)
    print("┌" + "─" * inner_width + "┐")
    for lbl, val in header_lines:
        line = f" {lbl.ljust(label_width)} : {val}"
        print(f"│{line.ljust(inner_width)}│")
    print("└" + "─" * inner_width + "┘")


def _print_item(item: TaxableItem) -> None:
    category = item.tax_category.name if item.tax_category else "-"
    print(f"\n   📦 {item.kind.value} {item.id} ({category})")
    print(f"      Amount: {item.discounted_amount:.2f}  Pre-tax: {item.pre_tax_amount:.2f}")
    for adjustment in item.tax_adjustments:
        marker = "incl." if adjustment.included else "add."
        print(f"      {marker:<6} {adjustment.label:<40} {adjustment.amount:>10.2f}")
    print(
        f"      Included tax: {item.included_tax_total:.2f}  "
        f"Additional tax: {item.additional_tax_total:.2f}  Total: {item.total:.2f}"
    )


def _resolve_zone(catalog: Catalog, order_id: str, zone: Optional[str], country: Optional[str],
                  state: Optional[str]) -> Optional[Zone]:
    if zone:
        if zone not in catalog.zones:
            raise ValueError(f"Unknown zone: {zone}")
        return catalog.zones[zone]
    if country:
        return catalog.zone_for_address(country, state)
    return catalog.order_zones.get(order_id)


def adjust_tax(catalog_path: str, zone: Optional[str] = None, country: Optional[str] = None,
               state: Optional[str] = None, order_id: Optional[str] = None, persist: bool = False) -> int:
    """
    Apply tax to the orders of a catalog file and print the result.

    Args:
        catalog_path: Path to the JSON catalog document
        zone: Zone name overriding each order's tax zone
        country: Destination country ISO code
        state: Destination state abbreviation
        order_id: Restrict to one order
        persist: Write adjustments through the MongoDB repository

    Returns:
        Exit code
    """
    config = Config(".env") if persist else Config()
    catalog = load_catalog_file(catalog_path, config=config)

    if persist:
        from .taxation.repository import MongoAdjustmentRepository
        with MongoAdjustmentRepository(config=config) as store:
            return _adjust_orders(catalog, store, config, zone, country, state, order_id)
    return _adjust_orders(catalog, InMemoryAdjustmentStore(), config, zone, country, state, order_id)


def _adjust_orders(catalog: Catalog, store: AdjustmentStore, config: Config, zone: Optional[str],
                   country: Optional[str], state: Optional[str], order_id: Optional[str]) -> int:
    logger = get_logger(__name__)
    resolver = catalog.tax_resolver(store=store, config=config)

    order_ids = [order_id] if order_id else list(catalog.orders)
    exit_code = 0
    for oid in order_ids:
        if oid not in catalog.orders:
            raise ValueError(f"Unknown order: {oid}")
        tax_zone = _resolve_zone(catalog, oid, zone, country, state)
        items = catalog.order_items[oid]

        _print_box([
            ("Order", oid),
            ("Tax zone", tax_zone.name if tax_zone else "None"),
            ("Default zone", resolver.default_zone.name if resolver.default_zone else "None"),
            ("Matched rates", str(len(resolver.match(tax_zone)))),
        ])

        try:
            resolver.adjust(tax_zone, items)
        except TaxAdjustmentError as e:
            logger.error(str(e))
            exit_code = 1

        for item in items:
            _print_item(item)
        print("")

    return exit_code


def plan_shipments(catalog_path: str, persist: bool = False) -> int:
    """Prioritize the packages of a catalog file and print the shipments."""
    config = Config(".env") if persist else Config()
    catalog = load_catalog_file(catalog_path, config=config)

    if persist:
        from .stock.repository import MongoShipmentRepository
        with MongoShipmentRepository(config=config) as repository:
            return _plan(catalog, StockPackager(config=config, repository=repository))
    return _plan(catalog, StockPackager(config=config))


def _plan(catalog: Catalog, packager: StockPackager) -> int:
    print("\n🚚 PACKAGES")
    print("=" * 60)
    for package in catalog.packages:
        methods = packager.eligible_shipping_methods(package)
        print(
            f"   {package.stock_location.name}: {package.quantity()} unit(s) "
            f"({package.quantity('on_hand')} on hand, {package.quantity('backordered')} backordered), "
            f"weight {package.weight}"
        )
        print(f"      Shipping methods: {', '.join(m.name for m in methods) or 'none'}")

    shipments = packager.to_shipments(catalog.packages)

    print("\n📋 SHIPMENTS")
    print("=" * 60)
    for shipment in shipments:
        units = ", ".join(f"{u.variant.sku}#{u.id} ({u.state})" for u in shipment.inventory_units)
        number = shipment.number or "(not saved)"
        print(f"   {number} from {shipment.stock_location.name}: {units}")
    return 0


def main(args: Optional[list] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    log_level = "DEBUG" if parsed_args.verbose else "INFO"
    logger = setup_logging(level=log_level, log_file=parsed_args.log_file)

    try:
        if parsed_args.command == "adjust-tax":
            return adjust_tax(
                catalog_path=parsed_args.catalog,
                zone=parsed_args.zone,
                country=parsed_args.country,
                state=parsed_args.state,
                order_id=parsed_args.order,
                persist=parsed_args.persist,
            )

        elif parsed_args.command == "plan-shipments":
            return plan_shipments(
                catalog_path=parsed_args.catalog,
                persist=parsed_args.persist,
            )

        elif not parsed_args.command:
            parser.print_help()
            return 1

    except ValueError as e:
        # Configuration and catalog problems
        print(f"\nCONFIGURATION ERROR: {e}")
        return 1
    except Exception as e:
        logger.error(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
