import json
from typing import Optional

import typer
from rich import print
from feedbrief.config.settings import get_settings
from feedbrief.db.database import get_engine, init_db
from feedbrief.models.schemas import DigestType, SourceDescriptor
from feedbrief.services.adapters.registry import parse_config
from feedbrief.services.errors import ConfigError
from feedbrief.services.history import PushHistoryStore
from feedbrief.services.sources import SqlSourceRegistry
from feedbrief.tools.lock import RunLock, RunLockBusy
from feedbrief.tools.logging_setup import setup_logging
from feedbrief.workflows.run_digest import run_digest


app = typer.Typer(help="Multi-source news digest: fetch, dedup, summarize, push")


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL")):
    setup_logging(log_level)


@app.command()
def doctor():
    """Check config + DB connectivity."""
    s = get_settings()
    print("[bold green]Config loaded[/bold green]")
    print("LLM:", s.llm_base_url, "| Model:", s.llm_model, "| Key set:", bool(s.llm_api_key))
    print("Webhook:", "configured" if s.webhook_enabled else "[yellow]not configured[/yellow]",
          "| Signed:", bool(s.feishu_secret))
    print("Proxy:", s.proxy_url or "-", "| RSSHub:", s.rsshub_url or "-")
    print("Collaborators:", s.api_base_url or "local database")
    init_db()
    print("[bold green]DB OK[/bold green]")


@app.command()
def run(
    type_: DigestType = typer.Option(DigestType.FOUR_HOURS, "--type", "-t", help="Digest type"),
    deep: bool = typer.Option(False, "--deep", help="Fetch each article and append long summaries"),
):
    """Run one digest pipeline execution."""
    s = get_settings()
    if not s.llm_api_key:
        print("[bold red]LLM_API_KEY is not set[/bold red]")
        raise SystemExit(1)

    try:
        with RunLock(f"digest-{type_.value}"):
            init_db()
            summary = run_digest(type_.value, deep_mode=deep)
    except RunLockBusy as e:
        print(f"[bold yellow]Skipped[/bold yellow]: {e}")
        raise SystemExit(0)

    color = {"ok": "green", "skipped": "yellow"}.get(summary.status, "red")
    print(f"[bold {color}]Run {summary.status}[/bold {color}]")
    print(summary.model_dump())
    if summary.failed:
        raise SystemExit(1)


@app.command("add-source")
def add_source(
    name: str = typer.Argument(..., help="Display name"),
    type_: str = typer.Argument(..., metavar="TYPE", help="rss, hackernews, reddit, github_trending, ..."),
    config: str = typer.Argument("{}", help="Adapter config as a JSON object"),
):
    """Validate a source config and add it to the local registry."""
    try:
        cfg = json.loads(config)
    except ValueError as e:
        print(f"[bold red]Config is not valid JSON[/bold red]: {e}")
        raise SystemExit(1)

    try:
        parse_config(SourceDescriptor(name=name, type=type_, config=cfg))
    except (ConfigError, ValueError) as e:
        print(f"[bold red]Invalid source[/bold red]: {e}")
        raise SystemExit(1)

    init_db()
    source_id = SqlSourceRegistry(get_engine()).add_source(name, type_, cfg)
    print(f"[bold green]Added[/bold green] #{source_id} {name} ({type_})")


@app.command()
def sources():
    """List active sources from the local registry."""
    init_db()
    rows = SqlSourceRegistry(get_engine()).list_active_sources()
    if not rows:
        print("[yellow]No active sources.[/yellow]")
        return
    for src in rows:
        print(f"#{src.id} [bold]{src.name}[/bold] ({src.type}) {json.dumps(src.config_dict(), ensure_ascii=False)}")


@app.command()
def prune(days: Optional[int] = typer.Option(None, "--days", help="Retention in days (default HISTORY_RETENTION_DAYS)")):
    """Delete push-history rows older than the retention window."""
    s = get_settings()
    init_db()
    deleted = PushHistoryStore(get_engine()).prune(days if days is not None else s.history_retention_days)
    print(f"[bold green]Pruned[/bold green] {deleted} history rows")


if __name__ == "__main__":
    app()
