# ruff: noqa: I001
"""Typer console interface for ``finflow``.

Every command loads ``.env`` from the working directory (without overriding
already-set variables), configures logging, then builds the services from
:func:`finflow.config.load_settings`. Business logic lives in
:mod:`finflow.api` and the modules it wires together.
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Ingest bank statement PDFs, categorize transactions and report spending. "
        "Reads DATABASE_URL and FINFLOW_* settings from the environment or a local .env."
    ),
)


# Module-level option objects keep calls out of parameter defaults (ruff B008).
USER_OPTION: OptionInfo = typer.Option(..., "--user", "-u", help="Owning user id.")
STATEMENT_ARGUMENT = typer.Argument(
    ..., help="Path to a statement PDF.", dir_okay=False, exists=True, readable=True
)


def _services():
    from .api import build_finflow
    from .config import load_settings

    try:
        settings = load_settings()
    except (RuntimeError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e
    return build_finflow(settings)


@app.callback()
def _root() -> None:
    """Load ``.env`` from the current directory and set up logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


@app.command("ingest")
def ingest_cmd(
    path: Annotated[Path, STATEMENT_ARGUMENT],
    user: Annotated[str, USER_OPTION],
    *,
    password: str | None = typer.Option(
        None, help="Statement password for encrypted PDFs (never stored)."
    ),
) -> None:
    """Ingest one statement synchronously and print the outcome."""

    ff = _services()
    try:
        result = ff.ingestion.ingest(
            user_id=user, data=path.read_bytes(), password=password, filename=path.name
        )
    finally:
        ff.close()
    typer.echo(
        f"document {result.document_id}: {result.status} "
        f"transactions={result.transaction_count} duplicates={result.duplicate_count}"
    )
    if result.error_message:
        typer.echo(f"error: {result.error_message}", err=True)
        raise typer.Exit(1)


@app.command("status")
def status_cmd(document_id: str) -> None:
    """Show the processing state of a document."""

    from .errors import DocumentNotFound

    ff = _services()
    try:
        view = ff.ingestion.document_status(document_id)
    except DocumentNotFound as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    finally:
        ff.close()
    typer.echo(
        f"{view.document_id} [{view.status}] file={view.filename or '-'} "
        f"transactions={view.transaction_count} duplicates={view.duplicate_count}"
    )
    if view.error_message:
        typer.echo(f"error: {view.error_message}")


@app.command("summary")
def summary_cmd(user: Annotated[str, USER_OPTION]) -> None:
    """Total debit, total credit and transaction count."""

    ff = _services()
    try:
        s = ff.queries.get_summary(user)
    finally:
        ff.close()
    typer.echo(f"debit:  {s.total_debit}")
    typer.echo(f"credit: {s.total_credit}")
    typer.echo(f"count:  {s.count}")


@app.command("categories")
def categories_cmd(user: Annotated[str, USER_OPTION]) -> None:
    """Debit spending per category, largest first."""

    ff = _services()
    try:
        rows = ff.queries.get_category_spending(user)
    finally:
        ff.close()
    if not rows:
        typer.echo("No spending recorded.")
        return
    for c in rows:
        typer.echo(f"{c.category:<16} {c.total:>12} {c.percentage:>6}% ({c.count})")


@app.command("trend")
def trend_cmd(user: Annotated[str, USER_OPTION]) -> None:
    """Monthly debit totals with anomaly markers."""

    ff = _services()
    try:
        months = ff.queries.get_monthly_trend(user)
    finally:
        ff.close()
    for m in months:
        flag = "  <- unusual" if m.is_anomaly else ""
        typer.echo(f"{m.label:<15} {m.total:>12}  top={m.top_category or '-'}{flag}")


@app.command("list")
def list_cmd(
    user: Annotated[str, USER_OPTION],
    *,
    search: str | None = typer.Option(None, help="Substring of description or merchant."),
    category: str | None = typer.Option(None, help="Exact category name."),
    direction: str | None = typer.Option(None, help="debit or credit."),
    start: str | None = typer.Option(None, help="Earliest date (YYYY-MM-DD)."),
    end: str | None = typer.Option(None, help="Latest date (YYYY-MM-DD)."),
    page: int = typer.Option(1, help="1-based page number."),
    page_size: int = typer.Option(20, help="Rows per page (max 100)."),
) -> None:
    """List transactions newest first."""

    from pydantic import ValidationError

    from .queries import TransactionFilters

    try:
        filters = TransactionFilters(
            search=search,
            category=category,
            direction=direction,
            start_date=dt.date.fromisoformat(start) if start else None,
            end_date=dt.date.fromisoformat(end) if end else None,
            page=page,
            page_size=page_size,
        )
    except (ValidationError, ValueError) as e:
        typer.echo(f"Error: invalid filters: {e}", err=True)
        raise typer.Exit(2) from e

    ff = _services()
    try:
        result = ff.queries.list_transactions(user, filters)
    finally:
        ff.close()
    for it in result.items:
        typer.echo(
            f"{it.date.isoformat()} {it.direction:<6} {it.amount:>12} "
            f"{it.category:<16} {it.description}"
        )
    typer.echo(f"page {result.page}/{result.total_pages} ({result.total} total)")


@app.command("consume")
def consume_cmd(
    group: str = typer.Option(
        "analytics-projection", help="Consumer group whose offsets to advance."
    ),
) -> None:
    """Apply pending transaction events to the analytics projection."""

    ff = _services()
    try:
        stats = ff.projection_subscriber(group=group).drain()
    finally:
        ff.close()
    typer.echo(f"applied={stats.applied} dropped={stats.dropped} failed={stats.failed}")


@app.command("resync")
def resync_cmd(user: Annotated[str, USER_OPTION]) -> None:
    """Rebuild a user's projection from the ledger."""

    ff = _services()
    try:
        n = ff.resync(user)
    finally:
        ff.close()
    typer.echo(f"projected {n} transactions")


@app.command("recategorize")
def recategorize_cmd(
    user: Annotated[str, USER_OPTION],
    transaction_id: str,
    category: str,
) -> None:
    """Manually set the category of one transaction."""

    from .errors import TransactionNotFound
    from .models import Category

    try:
        cat = Category(category)
    except ValueError as e:
        choices = ", ".join(c.value for c in Category)
        typer.echo(f"Error: unknown category {category!r} (choose from {choices})", err=True)
        raise typer.Exit(2) from e

    ff = _services()
    try:
        ff.recategorize(user, transaction_id, cat)
    except TransactionNotFound as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    finally:
        ff.close()
    typer.echo(f"{transaction_id} -> {cat}")


@app.command("dupes")
def dupes_cmd(user: Annotated[str, USER_OPTION]) -> None:
    """Ledger duplicate statistics for a user."""

    ff = _services()
    try:
        s = ff.duplicate_stats(user)
    finally:
        ff.close()
    typer.echo(f"total={s.total} unique={s.unique} duplicates={s.duplicates}")


if __name__ == "__main__":  # pragma: no cover
    app()
