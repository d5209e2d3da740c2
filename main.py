#!/usr/bin/env python3
"""
ERP Purchase Order Reconciler — CLI entry point.

Usage examples:
  python main.py import-pos open_pos.csv                 # Reconcile a PO export
  python main.py import-line-items transactions.csv      # Attach seed inventory lines
  python main.py list                                    # Visible POs
  python main.py list --status "On Hold" --include-hidden
  python main.py hide PO10001 --reason Completed
  python main.py unhide PO10001
  python main.py notes PO10001                           # Timeline, newest first
  python main.py add-note PO10001 "Called vendor"
  python main.py serve --port 8000                       # HTTP API
"""
import logging
import sys
from pathlib import Path

import click

from config import Config
from models.purchase_order import HiddenReason
from pipeline.database import Database
from pipeline.errors import StructuralParseError
from pipeline.importer import Importer
from pipeline.notes import NoteTimeline
from pipeline.purchase_orders import PurchaseOrderService


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )


def _open_db(ctx: click.Context) -> Database:
    config: Config = ctx.obj["config"]
    return Database(config.db_path)


def _service(ctx: click.Context, db: Database) -> PurchaseOrderService:
    return PurchaseOrderService(db, system_actor=ctx.obj["config"].system_actor)


def _require_po(db: Database, po_number: str):
    po = db.get_purchase_order_by_number(po_number)
    if po is None:
        click.echo(f"Error: PO '{po_number}' not found.", err=True)
        sys.exit(1)
    return po


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--db", "db_path", default=None, type=click.Path(), help="Path to the SQLite database")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, db_path: str | None) -> None:
    """Reconcile ERP purchase order exports into the local PO store."""
    ctx.ensure_object(dict)
    _setup_logging(verbose)
    config = Config()
    if db_path:
        config.db_path = Path(db_path)
    ctx.obj["config"] = config


def _print_result(result) -> None:
    click.echo()
    if result.report_date:
        click.echo(f"  Report date:  {result.report_date}")
    click.echo(f"  Processed:    {result.processed}")
    click.echo(f"  Created:      {result.created}")
    if result.kind == "purchase_orders":
        click.echo(f"  Updated:      {result.updated}")
        click.echo(f"  Hidden:       {result.hidden}  (not in import)")
        click.echo(f"  Unhidden:     {result.unhidden}")
    click.echo(f"  Skipped:      {result.skipped}")
    for reason, count in sorted(result.skip_reasons.items()):
        click.echo(f"    {reason:<22} {count}")
    click.echo(f"  Errors:       {result.errors}")
    click.echo()


# --------------------------------------------------------------------
# import commands
# --------------------------------------------------------------------

@cli.command("import-pos")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--strict-amounts", is_flag=True, help="Skip rows whose amount does not parse")
@click.pass_context
def import_pos(ctx: click.Context, csv_file: str, strict_amounts: bool) -> None:
    """Reconcile a purchase order export into the store."""
    config: Config = ctx.obj["config"]
    if strict_amounts:
        config.strict_amounts = True
    try:
        result = Importer(config).import_purchase_orders(csv_file)
    except StructuralParseError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    _print_result(result)


@cli.command("import-line-items")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--account-prefix", default=None, help="Ledger account prefix to accept")
@click.pass_context
def import_line_items(ctx: click.Context, csv_file: str, account_prefix: str | None) -> None:
    """Attach seed-inventory lines from an accounting export to existing POs."""
    config: Config = ctx.obj["config"]
    if account_prefix:
        config.line_item_account_prefix = account_prefix
    try:
        result = Importer(config).import_line_items(csv_file)
    except StructuralParseError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    _print_result(result)


# --------------------------------------------------------------------
# read commands
# --------------------------------------------------------------------

@cli.command("list")
@click.option("--status", default=None, help="Custom workflow status")
@click.option("--ns-status", default=None, help="ERP status")
@click.option("--from", "date_from", default=None, help="PO date lower bound (YYYY-MM-DD)")
@click.option("--to", "date_to", default=None, help="PO date upper bound (YYYY-MM-DD)")
@click.option("--include-hidden", is_flag=True, help="Include hidden POs")
@click.option("--hidden-only", is_flag=True, help="Only hidden POs")
@click.pass_context
def list_pos(
    ctx: click.Context,
    status: str | None,
    ns_status: str | None,
    date_from: str | None,
    date_to: str | None,
    include_hidden: bool,
    hidden_only: bool,
) -> None:
    """List purchase orders."""
    db = _open_db(ctx)
    pos = db.list_purchase_orders(
        status=status, ns_status=ns_status,
        date_from=date_from, date_to=date_to,
        include_hidden=include_hidden, hidden_only=hidden_only,
    )
    for po in pos:
        flag = " [hidden]" if po.visibility.is_hidden else ""
        click.echo(
            f"  {po.po_number:<10} {po.system.date:<11} {po.system.vendor[:28]:<28} "
            f"{po.system.ns_status[:20]:<20} {po.local.status or '-':<12} "
            f"{po.system.amount:>12,.2f}{flag}"
        )
    click.echo(f"\n  {len(pos)} purchase order(s)")


@cli.command()
@click.argument("po_number")
@click.pass_context
def notes(ctx: click.Context, po_number: str) -> None:
    """Show the note timeline of a PO, newest first."""
    db = _open_db(ctx)
    po = _require_po(db, po_number)
    timeline = NoteTimeline(db).list(po.id)
    if not timeline:
        click.echo("  (no notes)")
    for note in timeline:
        click.echo(f"  #{note.id:<5} {note.created_at[:19]}  {note.content}")


# --------------------------------------------------------------------
# write commands
# --------------------------------------------------------------------

@cli.command("add-note")
@click.argument("po_number")
@click.argument("content")
@click.option("--user", default="cli", help="Who is writing the note")
@click.pass_context
def add_note(ctx: click.Context, po_number: str, content: str, user: str) -> None:
    """Append a note to a PO's timeline."""
    db = _open_db(ctx)
    po = _require_po(db, po_number)
    note = NoteTimeline(db, ctx.obj["config"].system_actor).append(po.id, content, actor=user)
    click.echo(f"  Note #{note.id} added to {po.po_number}")


@cli.command()
@click.argument("po_number")
@click.option(
    "--reason",
    type=click.Choice([r.value for r in HiddenReason]),
    default=HiddenReason.MANUALLY_HIDDEN.value,
)
@click.option("--user", default="cli")
@click.pass_context
def hide(ctx: click.Context, po_number: str, reason: str, user: str) -> None:
    """Soft-hide a PO."""
    db = _open_db(ctx)
    po = _require_po(db, po_number)
    _service(ctx, db).hide(po.id, user, HiddenReason(reason))
    click.echo(f"  {po.po_number} hidden ({reason})")


@cli.command()
@click.argument("po_number")
@click.option("--user", default="cli")
@click.pass_context
def unhide(ctx: click.Context, po_number: str, user: str) -> None:
    """Make a hidden PO visible again."""
    db = _open_db(ctx)
    po = _require_po(db, po_number)
    _service(ctx, db).unhide(po.id, user)
    click.echo(f"  {po.po_number} visible")


@cli.command()
@click.option("--host", default="127.0.0.1")
@click.option("--port", default=8000, type=int)
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the HTTP API."""
    import uvicorn
    uvicorn.run("dashboard.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    cli()
