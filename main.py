#!/usr/bin/env python3
"""
PO Consolidation Pipeline — CLI entry point.

Usage examples:
  python main.py check                             # Verify setup (catalog, database)
  python main.py import-catalog data/catalog.csv   # Load / sync supplier links
  python main.py preview order.json                # Show allocation without committing
  python main.py process order.json                # Consolidate one order into POs
  python main.py process orders/                   # Batch-consolidate a folder of orders
  python main.py list --status pending_approval    # List generated POs
  python main.py approve PO-1001-0007 --by alice   # Approve a PO
  python main.py status PO-1001-0007 sent          # Advance a PO
  python main.py reorder                           # Supplier links needing replenishment
"""
import json
import logging
import sys
from pathlib import Path

import click

from config import Config
from models.order import SalesOrder
from models.purchase_order import ALL_STATUSES, STATUS_APPROVED
from pipeline.errors import InvalidStatusTransition, OrderLocked
from pipeline.processor import OrderProcessor


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )


def _config(db: str | None) -> Config:
    config = Config()
    if db:
        config.db_path = Path(db)
    return config


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--db", default=None, type=click.Path(), help="Path to the SQLite database")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, db: str | None) -> None:
    """PO Consolidation Pipeline — allocate orders to suppliers and build purchase orders."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["db"] = db
    _setup_logging(verbose)


# --------------------------------------------------------------------
# check / import-catalog
# --------------------------------------------------------------------

@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Verify that the catalog and database are ready."""
    config = _config(ctx.obj["db"])
    status = OrderProcessor(config).check_setup()

    click.echo("\n=== Pipeline Setup Check ===\n")
    csv_info = status["catalog_csv"]
    tick = "✓" if csv_info["exists"] else "✗"
    click.echo(f"  catalog.csv                  {tick}  {csv_info['path']}")
    click.echo(f"  Catalog links in database:   {status['catalog']['links']}")
    if not status["catalog"]["links"]:
        click.echo("     → Run: python main.py import-catalog <csv>")
    click.echo(f"  Database:                    {status['database']['path']}")
    click.echo()


@cli.command("import-catalog")
@click.argument("csv_path", required=False, type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_catalog(ctx: click.Context, csv_path: str | None) -> None:
    """Load supplier links from CSV_PATH (default: CATALOG_CSV) into the database."""
    processor = OrderProcessor(_config(ctx.obj["db"]))
    count = processor.import_catalog(csv_path)
    click.echo(f"Imported {count} supplier link(s).")


# --------------------------------------------------------------------
# preview / process
# --------------------------------------------------------------------

@cli.command()
@click.argument("order_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def preview(ctx: click.Context, order_file: str) -> None:
    """Show how ORDER_FILE would be allocated, without committing stock."""
    processor = OrderProcessor(_config(ctx.obj["db"]))
    with open(order_file, encoding="utf-8") as f:
        order = SalesOrder.from_payload(json.load(f))

    click.echo(f"\n  Order {order.order_reference}\n")
    for plan in processor.preview(order):
        click.echo(
            f"  {plan.product_id or '(custom line)'}  x{plan.quantity}  "
            f"preferred: {plan.preferred_supplier_id or '(no supplier)'}"
        )
        for entry in plan.allocation:
            flag = "  [BACKORDER]" if entry.is_backorder else ""
            click.echo(f"      {entry.supplier_id:<12} {entry.quantity:>6} @ {entry.price}{flag}")
        lt = plan.lead_time
        if lt.min_days is not None:
            click.echo(f"      lead time: {lt.min_days}–{lt.max_days} days")
    click.echo()


@cli.command()
@click.argument("target", type=click.Path(exists=True))
@click.option("--force", is_flag=True, help="Re-consolidate orders that were already processed")
@click.option("--no-pretty", is_flag=True, help="Output compact (non-indented) JSON")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def process(ctx: click.Context, target: str, force: bool, no_pretty: bool, as_json: bool) -> None:
    """Consolidate a single order JSON file or a directory of them."""
    config = _config(ctx.obj["db"])
    if no_pretty:
        config.pretty_json = False
    processor = OrderProcessor(config)
    target_path = Path(target)

    if target_path.is_dir():
        results = processor.process_batch(target_path, force=force)
        click.echo(f"\nConsolidated {len(results)} order(s).")
        for r in results:
            click.echo(f"   {r.order_reference}: {len(r.purchase_orders)} PO(s), {len(r.warnings)} warning(s)")
        return

    if target_path.suffix.lower() != ".json":
        click.echo(f"Error: '{target}' is not a JSON file.", err=True)
        sys.exit(1)

    try:
        result = processor.process_file(target_path, force=force)
    except OrderLocked as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if result is None:
        click.echo("Order already consolidated (use --force to redo).")
        return

    if as_json:
        indent = 2 if config.pretty_json else None
        click.echo(json.dumps(json.loads(result.model_dump_json()), indent=indent))
        return

    click.echo()
    for po in result.purchase_orders:
        click.echo(f"  {po.po_number}  {po.supplier_name or po.supplier_id}")
        click.echo(f"      items: {len(po.items)}   total: {po.total}   required by: {po.required_by}")
    if not result.purchase_orders:
        click.echo("  No purchase orders generated.")

    if result.warnings:
        click.echo(f"\n  Warnings ({len(result.warnings)}):")
        for w in result.warnings:
            click.echo(f"    ⚠ [{w.type}] {w.description}")
    click.echo()


# --------------------------------------------------------------------
# list / approve / status
# --------------------------------------------------------------------

@cli.command("list")
@click.option("--status", type=click.Choice(ALL_STATUSES), default=None)
@click.option("--order", "order_reference", default=None, help="Filter by order reference")
@click.pass_context
def list_pos(ctx: click.Context, status: str | None, order_reference: str | None) -> None:
    """List generated purchase orders."""
    processor = OrderProcessor(_config(ctx.obj["db"]))
    pos = processor.db.list_purchase_orders(status=status, order_reference=order_reference)
    if not pos:
        click.echo("No purchase orders.")
        return
    for po in pos:
        click.echo(
            f"  {po.po_number:<24} {po.status:<17} {po.supplier_id:<12} "
            f"{po.total:>10}  due {po.required_by}"
        )


def _advance(ctx: click.Context, po_number: str, new_status: str, actor: str) -> None:
    processor = OrderProcessor(_config(ctx.obj["db"]))
    try:
        found = processor.db.update_status(po_number, new_status, actor=actor)
    except InvalidStatusTransition as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if not found:
        click.echo(f"Error: PO '{po_number}' not found.", err=True)
        sys.exit(1)
    click.echo(f"{po_number} → {new_status}")


@cli.command()
@click.argument("po_number")
@click.option("--by", "actor", required=True, help="Who approved the PO")
@click.pass_context
def approve(ctx: click.Context, po_number: str, actor: str) -> None:
    """Approve a pending purchase order."""
    _advance(ctx, po_number, STATUS_APPROVED, actor)


@cli.command()
@click.argument("po_number")
@click.argument("new_status", type=click.Choice(ALL_STATUSES))
@click.option("--by", "actor", default="system", help="Who made the change")
@click.pass_context
def status(ctx: click.Context, po_number: str, new_status: str, actor: str) -> None:
    """Move a purchase order to NEW_STATUS (next workflow step only)."""
    _advance(ctx, po_number, new_status, actor)


# --------------------------------------------------------------------
# reorder
# --------------------------------------------------------------------

@cli.command()
@click.pass_context
def reorder(ctx: click.Context) -> None:
    """List supplier links at or below the reorder point."""
    processor = OrderProcessor(_config(ctx.obj["db"]))
    flagged = processor.reorder_report()
    if not flagged:
        click.echo("No supplier links need reordering.")
        return
    click.echo(f"\n  {len(flagged)} link(s) need reordering:\n")
    for link, st in flagged:
        click.echo(
            f"  {link.supplier_id:<12} {link.product_id:<16} "
            f"stock {link.stock_level:>4}  → order {st.reorder_amount}"
        )
    click.echo()


if __name__ == "__main__":
    cli()
