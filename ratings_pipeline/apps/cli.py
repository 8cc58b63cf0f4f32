"""
Command-line interface for ingestion, maintenance and serving.
Usage examples:
  ratings-pipeline ingest --category current
  ratings-pipeline ingest --category all --no-details
  ratings-pipeline cleanup-logs
  ratings-pipeline export ratings.json
  ratings-pipeline merge base.json newer.json -o merged.json

Cron (twice a month, 03:00): 0 3 1,15 * * ratings-pipeline ingest --category all
"""

import asyncio
import json
from typing import Optional

import click

from ratings_pipeline.apps.ratings_app import RatingsDataApp
from ratings_pipeline.apps.scheduler import purge_request_logs
from ratings_pipeline.common.constants import ALL_CATEGORIES, Category, normalize_category
from ratings_pipeline.common.logging_utils import configure_logging
from ratings_pipeline.core.config import Settings, settings
from ratings_pipeline.data_collection.reconciliation import EmptyCrawlAborted
from ratings_pipeline.data_collection.scrapers.scraping_orchestrator import CrawlIncomplete
from ratings_pipeline.database.export import dumps, merge_documents
from ratings_pipeline.database.manager import DatabaseManager
from ratings_pipeline.domain.models import ApiKey
from ratings_pipeline.domain.utils import utcnow


def _build_app(cfg: Settings, service: str) -> RatingsDataApp:
    configure_logging(service=service, level=cfg.log_level)
    return RatingsDataApp(cfg).initialize()


def _categories(values: tuple[str, ...]) -> list[Category]:
    if not values or "all" in values:
        return list(Category)
    try:
        return list(dict.fromkeys(normalize_category(v) for v in values))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--category") from None


@click.group()
@click.option("--database-url", envvar="DATABASE_URL", default=None, help="Override the configured database URL.")
@click.pass_context
def cli(ctx: click.Context, database_url: Optional[str]):
    """NBA 2K ratings pipeline"""
    ctx.obj = settings.model_copy(update={"database_url": database_url}) if database_url else settings


@cli.command()
@click.option(
    "--category",
    "-c",
    multiple=True,
    type=click.Choice([*ALL_CATEGORIES, "curr", "class", "allt", "all"], case_sensitive=False),
    help="Category to crawl (repeatable, default: all).",
)
@click.option("--details/--no-details", default=True, help="Fetch player detail pages (attributes).")
@click.option("--team", "teams", multiple=True, help="Only crawl these teams (repeatable).")
@click.pass_obj
def ingest(cfg: Settings, category: tuple[str, ...], details: bool, teams: tuple[str, ...]):
    """Crawl and reconcile categories; exits non-zero on aborted or failed runs"""
    app = _build_app(cfg, "ingest")
    exit_code = 0
    try:
        for cat in _categories(category):
            try:
                job = asyncio.run(
                    app.ingestion.ingest(cat, with_details=details, team_filter=list(teams) or None)
                )
                click.echo(
                    f"{cat.value}: {job.players_scraped} players from {job.teams_scraped} teams "
                    f"(+{job.players_added} ~{job.players_updated} -{job.players_removed}, "
                    f"partial {job.partial_records})"
                )
            except EmptyCrawlAborted as e:
                click.echo(f"{cat.value}: ABORTED - {e}", err=True)
                exit_code = 1
            except CrawlIncomplete as e:
                click.echo(f"{cat.value}: FAILED - {e}", err=True)
                exit_code = 1
    finally:
        app.close()
    raise SystemExit(exit_code)


@cli.command(name="cleanup-logs")
@click.option("--retention-days", type=int, default=None, help="Override the configured retention period.")
@click.pass_obj
def cleanup_logs(cfg: Settings, retention_days: Optional[int]):
    """Delete request logs past the retention period"""
    app = _build_app(cfg, "cleanup")
    try:
        if retention_days is None:
            deleted = asyncio.run(app.registry.run("cleanup_request_logs"))
        else:
            deleted = purge_request_logs(app.store, utcnow(), retention_days, app.metrics)
        click.echo(f"Deleted {deleted} request logs")
    finally:
        app.close()


@cli.command()
@click.option("--run-now", "run_now", multiple=True, help="Run these tasks once and exit.")
@click.pass_obj
def scheduler(cfg: Settings, run_now: tuple[str, ...]):
    """Run the daily maintenance scheduler (or single tasks with --run-now)"""
    app = _build_app(cfg, "scheduler")
    try:
        if run_now:
            for name in run_now:
                result = asyncio.run(app.registry.run(name))
                click.echo(f"{name}: {result}")
            return
        click.echo(f"Scheduled tasks: {', '.join(t.name for t in app.registry.scheduled()) or 'none'}")
        try:
            asyncio.run(app.run_scheduled_tasks())
        except KeyboardInterrupt:
            click.echo("Scheduler stopped")
    finally:
        app.close()


@cli.command()
@click.option("--host", default=None)
@click.option("--port", type=int, default=None)
@click.pass_obj
def serve(cfg: Settings, host: Optional[str], port: Optional[int]):
    """Run the API server"""
    import uvicorn

    configure_logging(service="api", level=cfg.log_level)
    uvicorn.run(
        "ratings_pipeline.api.main:app",
        host=host or cfg.api_host,
        port=port or cfg.api_port,
        workers=cfg.api_workers,
        log_level=cfg.log_level.lower(),
    )


@cli.command(name="init-db")
@click.pass_obj
def init_db(cfg: Settings):
    """Create all tables (idempotent)"""
    configure_logging(service="cli", level=cfg.log_level)
    db = DatabaseManager(settings=cfg, database_url=cfg.database_url)
    db.initialize(create_tables=True)
    db.close()
    click.echo(f"Database initialized ({db.database_url.split('@')[-1]})")


@cli.command(name="create-api-key")
@click.option("--name", required=True)
@click.option("--email", default=None)
@click.option("--rate-limit", type=click.IntRange(min=1), default=None)
@click.pass_obj
def create_api_key(cfg: Settings, name: str, email: Optional[str], rate_limit: Optional[int]):
    """Register an API key and print it"""
    from ratings_pipeline.api.security import generate_api_key

    app = _build_app(cfg, "cli")
    try:
        api_key = ApiKey(
            key=generate_api_key(),
            name=name,
            email=email,
            rate_limit=rate_limit or cfg.rate_limit_requests,
            created_at=utcnow(),
        )
        app.store.save_api_key(api_key)
        click.echo(api_key.key)
    finally:
        app.close()


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False, writable=True))
@click.pass_obj
def export(cfg: Settings, path: str):
    """Write the canonical dataset as {"players": [...]} JSON"""
    app = _build_app(cfg, "cli")
    try:
        count = app.export(path)
        click.echo(f"Exported {count} players to {path}")
    finally:
        app.close()


@cli.command()
@click.argument("base", type=click.File("r", encoding="utf-8"))
@click.argument("newer", type=click.File("r", encoding="utf-8"))
@click.option("--output", "-o", type=click.File("w", encoding="utf-8"), default="-")
@click.option(
    "--category",
    "-c",
    multiple=True,
    default=(Category.CLASSIC.value, Category.ALL_TIME.value),
    show_default=True,
    help="Categories taken from NEWER (repeatable).",
)
def merge(base, newer, output, category: tuple[str, ...]):
    """Replace categories of BASE with those of NEWER"""
    try:
        merged = merge_documents(json.load(base), json.load(newer), _categories(category))
    except (json.JSONDecodeError, ValueError) as e:
        raise click.ClickException(f"Invalid export artifact: {e}") from None
    output.write(dumps(merged))
    output.write("\n")


@cli.command(name="import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--category", "-c", multiple=True, help="Only reconcile these categories (repeatable).")
@click.pass_obj
def import_artifact(cfg: Settings, path: str, category: tuple[str, ...]):
    """Reconcile an export artifact into the store"""
    app = _build_app(cfg, "cli")
    try:
        try:
            result = app.import_export(path, [c.value for c in _categories(category)] if category else None)
        except ValueError as e:
            raise click.ClickException(f"Invalid export artifact: {e}") from None
        for report in result["reports"]:
            click.echo(
                f"{report.category.value}: {report.total} players "
                f"(+{report.added} ~{report.updated} -{report.removed})"
            )
        if result["aborted"]:
            click.echo(f"Aborted (empty input): {', '.join(result['aborted'])}", err=True)
            raise SystemExit(1)
    finally:
        app.close()


@cli.command()
@click.option("--limit", type=int, default=10, show_default=True)
@click.pass_obj
def jobs(cfg: Settings, limit: int):
    """Show recent scrape jobs"""
    app = _build_app(cfg, "cli")
    try:
        for job in app.store.recent_scrape_jobs(limit):
            finished = job.finished_at.isoformat(timespec="seconds") if job.finished_at else "-"
            click.echo(
                f"{job.job_id[:8]}  {job.category.value:<9} {job.status.value:<10} "
                f"players={job.players_scraped:<5} partial={job.partial_records:<4} finished={finished}"
            )
            for error in job.errors:
                click.echo(f"    ! {error}")
    finally:
        app.close()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
