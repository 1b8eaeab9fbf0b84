"""catalogsync CLI - supplier catalog import, asset queue and review tooling.

Commands:
- init: Initialize database schema
- import-catalog: Import a supplier catalog CSV
- uploads: List recent catalog uploads
- replay-upload: Re-run a previous upload from its retained content
- process-assets: Run one batch of asset download jobs
- cleanup-assets: Purge old completed asset jobs
- asset-stats: Show asset job counts per status
- release-stale-assets: Fail PROCESSING jobs left behind by crashed workers
- review list/search/confirm/change/create-product/ignore: Match review
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table

from catalogsync.catalog.repository import get_or_create_supplier
from catalogsync.config import get_config
from catalogsync.core.logging import configure_logging
from catalogsync.db.connection import init_db, session_scope
from catalogsync.exceptions import CatalogError
from catalogsync.models import ImportResult, ProductData
from catalogsync.review.repository import (
    count_items_needing_review,
    fetch_items_needing_review,
    search_products,
)
from catalogsync.services import Services, build_services, default_import_options

app = typer.Typer(
    name="catalogsync",
    help="catalogsync - Supplier catalog import and product matching",
    no_args_is_help=True,
)
review_cli = typer.Typer(help="Match review queue", no_args_is_help=True)
app.add_typer(review_cli, name="review")

console = Console()

T = TypeVar("T")


def _run(action: Callable[[Services], Awaitable[T]]) -> T:
    """Build services from the environment, run one async action, clean up."""
    config = get_config()
    configure_logging(config.log_level)

    async def _main() -> T:
        services = build_services(config)
        try:
            return await action(services)
        finally:
            await services.aclose()

    try:
        return asyncio.run(_main())
    except CatalogError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=1) from exc


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    async def _init(services: Services) -> None:
        await init_db(services.engine, drop=drop)

    _run(_init)
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="import-catalog")
def import_catalog_cmd(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Catalog CSV file"),
    supplier: str | None = typer.Option(None, "--supplier", help="Supplier name (created if missing)"),
    supplier_id: UUID | None = typer.Option(None, "--supplier-id", help="Existing supplier ID"),
    create_new: bool = typer.Option(True, "--create-new/--no-create-new", help="Create unmatched products"),
    auto_enrich: bool = typer.Option(True, "--enrich/--no-enrich", help="Enrich products with a GTIN"),
    strict: bool = typer.Option(False, "--strict", help="Fail the run on the first invalid row"),
    min_confidence: float | None = typer.Option(None, "--min-confidence", help="Auto-accept threshold (0-1)"),
    currency: str | None = typer.Option(None, "--currency", help="Default currency"),
    actor: str = typer.Option("cli", "--actor", help="Recorded as uploaded_by / matched_by"),
    show_rows: int = typer.Option(10, "--show-rows", help="Problem rows to print"),
):
    """Import a supplier catalog CSV."""
    if (supplier is None) == (supplier_id is None):
        console.print("[red]✗[/red] Pass exactly one of --supplier or --supplier-id")
        raise typer.Exit(code=2)

    content = file.read_text(encoding="utf-8-sig")

    async def _import(services: Services) -> ImportResult:
        options = default_import_options(services.config, actor=actor).model_copy(
            update={
                "create_new_products": create_new,
                "auto_enrich": auto_enrich and services.config.imports.auto_enrich,
                "skip_invalid_rows": not strict,
            }
        )
        if min_confidence is not None:
            options.min_auto_match_confidence = min_confidence
        if currency:
            options.default_currency = currency.upper()

        target = supplier_id
        if target is None:
            async with session_scope(services.session_factory) as session:
                target = (await get_or_create_supplier(session, supplier)).id

        console.print(f"[bold]Importing:[/bold] {file.name} → supplier {target}")
        return await services.orchestrator.import_csv(target, content, filename=file.name, options=options)

    result = _run(_import)
    _print_import_result(result, show_rows)
    if result.status.value == "FAILED":
        raise typer.Exit(code=1)


def _print_import_result(result: ImportResult, show_rows: int) -> None:
    table = Table(title=f"Upload {result.upload_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_row("Rows", str(result.total_rows))
    table.add_row("Succeeded", str(result.success_count))
    table.add_row("Failed", str(result.failed_count))
    table.add_row("Needs review", str(result.review_count))
    table.add_row("Enriched", str(result.enriched_count))
    console.print(table)

    problems = [item for item in result.items if item.errors or item.needs_review]
    for item in problems[:show_rows]:
        marker = "[red]✗[/red]" if not item.success else "[yellow]⚠[/yellow]"
        detail = "; ".join(item.errors) or (
            f"review: {item.match_method.value if item.match_method else '-'} "
            f"{item.match_confidence or 0:.2f}"
        )
        console.print(f"  {marker} row {item.row_index}: {detail}", style="dim")
    if len(problems) > show_rows:
        console.print(f"  ... {len(problems) - show_rows} more", style="dim")

    if result.status.value == "FAILED":
        console.print(f"[bold red]✗ Import failed:[/bold red] {result.error_message}")
    else:
        console.print("[bold green]✓[/bold green] Import completed")


@app.command()
def uploads(
    supplier_id: UUID | None = typer.Option(None, "--supplier-id", help="Filter by supplier"),
    limit: int = typer.Option(20, "--limit", help="Max uploads to show"),
):
    """List recent catalog uploads."""

    async def _list(services: Services):
        if supplier_id is not None:
            return await services.uploads.find_by_supplier(supplier_id, limit)
        return await services.uploads.find_recent(limit)

    records = _run(_list)
    if not records:
        console.print("[dim]No uploads found[/dim]")
        return

    table = Table(title="Catalog Uploads")
    table.add_column("ID", style="dim")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Rows", justify="right")
    table.add_column("OK", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Review", justify="right", style="yellow")
    table.add_column("Created")
    for upload in records:
        table.add_row(
            str(upload.id),
            upload.filename,
            upload.status,
            str(upload.row_count),
            str(upload.success_count),
            str(upload.failed_count),
            str(upload.review_count),
            upload.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@app.command(name="replay-upload")
def replay_upload_cmd(
    upload_id: UUID = typer.Argument(..., help="Upload to replay"),
    actor: str = typer.Option("cli", "--actor"),
):
    """Re-run a previous upload from its retained raw content."""

    async def _replay(services: Services) -> ImportResult:
        options = default_import_options(services.config, actor=actor)
        return await services.orchestrator.replay_upload(upload_id, options)

    _print_import_result(_run(_replay), show_rows=10)


@app.command(name="process-assets")
def process_assets_cmd(
    batch_size: int | None = typer.Option(None, "--batch-size", help="Jobs per batch"),
):
    """Run one batch of asset download jobs."""

    async def _process(services: Services):
        return await services.queue.process_batch(batch_size or services.config.assets.batch_size)

    result = _run(_process)
    console.print(
        f"[bold green]✓[/bold green] processed={result.processed} errors={result.errors} "
        f"media={result.media_downloaded} documents={result.documents_downloaded}"
    )


@app.command(name="cleanup-assets")
def cleanup_assets_cmd(
    days: int | None = typer.Option(None, "--days", help="Retention window in days"),
):
    """Delete completed asset jobs older than the retention window."""

    async def _cleanup(services: Services) -> int:
        return await services.queue.cleanup(days if days is not None else services.config.assets.retention_days)

    console.print(f"[bold green]✓[/bold green] Deleted {_run(_cleanup)} completed jobs")


@app.command(name="asset-stats")
def asset_stats_cmd():
    """Show asset job counts per status."""

    async def _stats(services: Services) -> dict[str, int]:
        return await services.queue.stats()

    counts = _run(_stats)
    table = Table(title="Asset Jobs")
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for status, count in counts.items():
        table.add_row(status, str(count))
    console.print(table)


@app.command(name="release-stale-assets")
def release_stale_assets_cmd(
    minutes: int = typer.Option(..., "--minutes", help="Release jobs PROCESSING for longer than this"),
):
    """Fail PROCESSING asset jobs left behind by crashed workers."""

    async def _release(services: Services) -> int:
        return await services.queue.release_stale(minutes)

    console.print(f"[bold green]✓[/bold green] Released {_run(_release)} stale jobs")


@review_cli.command("list")
def review_list_cmd(
    supplier_id: UUID | None = typer.Option(None, "--supplier-id"),
    limit: int = typer.Option(50, "--limit"),
    offset: int = typer.Option(0, "--offset"),
):
    """List supplier items waiting for review."""

    async def _list(services: Services):
        async with session_scope(services.session_factory) as session:
            total = await count_items_needing_review(session, supplier_id)
            items = await fetch_items_needing_review(session, limit, offset, supplier_id)
        return total, items

    total, items = _run(_list)
    table = Table(title=f"Needs review ({total})")
    table.add_column("Item ID", style="dim")
    table.add_column("Supplier")
    table.add_column("SKU")
    table.add_column("Supplier name")
    table.add_column("Matched product")
    table.add_column("Method")
    table.add_column("Conf.", justify="right")
    for item in items:
        table.add_row(
            str(item.supplier_item_id),
            item.supplier_name,
            item.supplier_sku or "-",
            item.item_name or "-",
            item.product_name,
            item.match_method,
            f"{item.match_confidence:.2f}",
        )
    console.print(table)


@review_cli.command("search")
def review_search_cmd(
    query: str = typer.Argument(..., help="GTIN prefix or name fragment"),
    limit: int = typer.Option(20, "--limit"),
):
    """Search products to re-link an item to."""

    async def _search(services: Services):
        async with session_scope(services.session_factory) as session:
            return await search_products(session, query, limit)

    table = Table(title=f"Products matching '{query}'")
    table.add_column("Product ID", style="dim")
    table.add_column("GTIN")
    table.add_column("Name")
    table.add_column("Brand")
    for product in _run(_search):
        table.add_row(str(product.id), product.gtin or "-", product.name, product.brand or "-")
    console.print(table)


@review_cli.command("confirm")
def review_confirm_cmd(
    supplier_item_id: UUID = typer.Argument(...),
    actor: str = typer.Option("cli", "--actor"),
):
    """Confirm the current match."""

    async def _confirm(services: Services):
        return await services.review.confirm_match(supplier_item_id, actor)

    _run(_confirm)
    console.print(f"[bold green]✓[/bold green] Confirmed {supplier_item_id}")


@review_cli.command("change")
def review_change_cmd(
    supplier_item_id: UUID = typer.Argument(...),
    product_id: UUID = typer.Argument(..., help="Product to link instead"),
    actor: str = typer.Option("cli", "--actor"),
):
    """Link the item to a different product."""

    async def _change(services: Services):
        return await services.review.change_product(supplier_item_id, product_id, actor)

    _run(_change)
    console.print(f"[bold green]✓[/bold green] {supplier_item_id} now linked to {product_id}")


@review_cli.command("create-product")
def review_create_product_cmd(
    supplier_item_id: UUID = typer.Argument(...),
    name: str = typer.Option(..., "--name"),
    gtin: str | None = typer.Option(None, "--gtin"),
    brand: str | None = typer.Option(None, "--brand"),
    description: str | None = typer.Option(None, "--description"),
    actor: str = typer.Option("cli", "--actor"),
):
    """Create a new product and link the item to it."""

    async def _create(services: Services):
        data = ProductData(gtin=gtin, name=name, brand=brand, description=description)
        return await services.review.create_product_and_link(supplier_item_id, data, actor)

    item, enrichment = _run(_create)
    console.print(f"[bold green]✓[/bold green] {supplier_item_id} linked to new product {item.product_id}")
    if enrichment is not None and not enrichment.success:
        for message in enrichment.errors + enrichment.warnings:
            console.print(f"  [yellow]⚠[/yellow] {message}", style="dim")


@review_cli.command("ignore")
def review_ignore_cmd(
    supplier_item_id: UUID = typer.Argument(...),
    actor: str = typer.Option("cli", "--actor"),
):
    """Mark the item as ignored."""

    async def _ignore(services: Services):
        return await services.review.mark_ignored(supplier_item_id, actor)

    _run(_ignore)
    console.print(f"[bold green]✓[/bold green] Ignored {supplier_item_id}")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
