"""web-cli: browse the web through named verbs.

Commands:
    nav      Navigate to a URL and create/overwrite a named tab
    tab      Show a tab's verbs, or execute one
    view     Print the full page text of a tab
    list     List all tabs
    clear    Remove a tab
    refine   Re-extract verbs with LLM guidance
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from . import __version__
from .browser import LinksBrowser
from .config import WebCliConfig, setup_logging
from .errors import ValidationError, WebCliError
from .executor import ContainerListing, ExecutionResolver, Navigation
from .llm import STATUS_FAILED, STATUS_UNAVAILABLE, OllamaPlanner
from .state import TabStore, validate_tab_name
from .types import Tab, Verb, utc_now
from .verbs import Discovery, VerbCachePolicy

console = Console(stderr=True)
output_console = Console()  # stdout for page text and JSON

logger = logging.getLogger("webcli.cli")

PREVIEW_CHARS = 500

app = typer.Typer(
    name="web-cli",
    help="Browse the web through a small catalog of named verbs.",
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@dataclass
class Services:
    """Collaborators shared by a command."""
    config: WebCliConfig
    store: TabStore
    fetcher: LinksBrowser
    planner: OllamaPlanner

    @property
    def policy(self) -> VerbCachePolicy:
        return VerbCachePolicy(self.store, self.fetcher, self.planner)

    @property
    def resolver(self) -> ExecutionResolver:
        return ExecutionResolver(self.store, self.fetcher, self.planner)


def build_services(config: WebCliConfig) -> Services:
    store = TabStore(config.state_dir)
    store.init()
    return Services(
        config=config,
        store=store,
        fetcher=LinksBrowser(binary=config.links_binary),
        planner=OllamaPlanner(
            model=config.model,
            host=config.ollama_host,
            enabled=config.planner_enabled,
        ),
    )


def _services(ctx: typer.Context) -> Services:
    return build_services(ctx.obj["config"])


def _run(coro) -> Any:
    """Run a command coroutine; any failure exits with code 1."""
    try:
        return asyncio.run(coro)
    except WebCliError as exc:
        logger.error(str(exc))
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(code=1)
    except Exception as exc:
        logger.exception("Unhandled error")
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1)


def _print_json(data: Dict[str, Any]) -> None:
    output_console.print(json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True)


def _print_text(text: str) -> None:
    output_console.print(text, markup=False, highlight=False, soft_wrap=True)


def _print_preview(text: str) -> None:
    console.print("\n[bold]Page preview[/bold] [dim](first 500 chars)[/dim]\n")
    _print_text(text[:PREVIEW_CHARS])
    console.print("\n...\n")


def _verb_line(verb: Verb) -> str:
    params = ""
    if verb.params:
        params = " <" + "> <".join(verb.params) + ">"
    if verb.is_container:
        marker = "[cyan]▸[/cyan]"
        label = f"{escape(verb.name)} [dim]({len(verb.subverbs)} items)[/dim]"
    elif verb.is_deterministic:
        marker = "[green]✓[/green]"
        label = escape(verb.name + params)
    else:
        marker = "[yellow]?[/yellow]"
        label = escape(verb.name + params)
    return f"  {marker} {label}\n      [dim]{escape(verb.description)}[/dim]"


def _print_verbs(verbs: List[Verb]) -> None:
    for verb in verbs:
        console.print(_verb_line(verb))
    console.print(
        "\n[dim]Legend: [green]✓[/green] deterministic, "
        "[yellow]?[/yellow] needs planning, [cyan]▸[/cyan] container[/dim]"
    )


def _split_verb(verb: str, child: Optional[str]) -> tuple:
    """Accept both `container child` and `container.child`."""
    if child is None and "." in verb:
        root, _, sub = verb.partition(".")
        return root, sub
    return verb, child


def normalize_url(url: str) -> str:
    """Prefix https:// when no scheme is given."""
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return f"https://{url}"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"web-cli v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None, "--version", "-V", help="Show version and exit.",
        callback=_version_callback, is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr."),
) -> None:
    """Browse the web through named verbs instead of raw URLs."""
    try:
        config = WebCliConfig.from_env()
        setup_logging(config, verbose=verbose)
    except (WebCliError, OSError) as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1)
    ctx.obj = {"config": config}


# ── nav ──────────────────────────────────────────────────────────────────


@app.command()
def nav(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="URL to navigate to (https:// is added if missing)."),
    name: str = typer.Argument(..., help="Name for this tab."),
) -> None:
    """Navigate to a URL and create or overwrite a named tab."""

    async def _nav() -> None:
        validate_tab_name(name)
        services = _services(ctx)
        if not services.fetcher.check_installed():
            raise WebCliError(
                f"{services.config.links_binary} browser is not installed; install links to use web-cli"
            )

        target = normalize_url(url)
        console.print(f"Navigating to {escape(target)}...")
        page = await services.fetcher.fetch(target)

        services.store.set(name, Tab(current_url=target, last_updated=utc_now().isoformat()))
        logger.info(f"Tab {name} -> {target}")

        console.print(f"[green]✓[/green] Tab \"{escape(name)}\" created/updated")
        _print_preview(page.text)
        console.print(f'Use "web-cli tab {escape(name)}" to see available verbs')

    _run(_nav())


# ── tab ──────────────────────────────────────────────────────────────────


def _render_discovery(name: str, discovery: Discovery, as_json: bool) -> None:
    tab = discovery.tab
    if as_json:
        _print_json({
            "tab": name,
            "url": tab.current_url,
            "last_updated": tab.last_updated,
            "source": discovery.source,
            "planner_status": discovery.planner_status,
            "verbs": [v.to_dict() for v in discovery.verbs],
        })
        return

    console.print(f"[bold]Tab:[/bold] {escape(name)}")
    console.print(f"[bold]URL:[/bold] {escape(tab.current_url)}")
    console.print(f"[bold]Last updated:[/bold] {escape(tab.last_updated)}")

    if discovery.page is not None:
        _print_preview(discovery.page.text)
    elif discovery.from_cache:
        console.print(f"\n[dim]{escape('[Using cached verbs]')}[/dim]\n")

    if discovery.planner_status == STATUS_UNAVAILABLE:
        console.print("[yellow]Planner not available, used HTML parser instead[/yellow]")
    elif discovery.planner_status == STATUS_FAILED:
        console.print(f"[yellow]Planner failed:[/yellow] {escape(discovery.planner_error or '')}")

    if not discovery.verbs:
        console.print("No verbs found on this page.")
        return

    console.print(f"\n[bold]Available verbs ({len(discovery.verbs)}):[/bold]\n")
    _print_verbs(discovery.verbs)


def _render_listing(listing: ContainerListing, as_json: bool) -> None:
    if as_json:
        _print_json({
            "tab": listing.tab_name,
            "container": listing.container.name,
            "subverbs": [v.to_dict() for v in listing.subverbs],
        })
        return
    console.print(
        f'Container "{escape(listing.container.name)}" has {len(listing.subverbs)} subverb(s):\n'
    )
    _print_verbs(listing.subverbs)
    console.print(
        f"\nUsage: web-cli tab {escape(listing.tab_name)} {escape(listing.container.name)} <subverb>"
    )


def _render_navigation(nav_result: Navigation, as_json: bool) -> None:
    if as_json:
        _print_json({
            "tab": nav_result.tab_name,
            "verb": nav_result.verb_id,
            "deterministic": nav_result.deterministic,
            "plan": nav_result.plan.to_dict(),
            "from_url": nav_result.from_url,
            "url": nav_result.to_url,
        })
        return

    console.print(f"Executing: {escape(nav_result.verb.description)}")
    if nav_result.deterministic:
        console.print(f"[dim]{escape('[Deterministic - using cached URL]')}[/dim]")
    elif nav_result.plan_from_cache:
        console.print(f"[dim]{escape('[Using cached execution plan]')}[/dim]")
    else:
        console.print(f"[dim]Plan: {escape(nav_result.plan.description)}[/dim]")
    console.print(f"Navigated to: {escape(nav_result.to_url)}")
    console.print("[green]✓[/green] Navigation complete")
    _print_preview(nav_result.page.text)
    console.print(f'Run "web-cli tab {escape(nav_result.tab_name)}" to see available verbs on this page')


@app.command()
def tab(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Tab name."),
    verb: Optional[str] = typer.Argument(None, help="Verb to execute; omit to list verbs."),
    child: Optional[str] = typer.Argument(None, help="Subverb, when VERB is a container."),
    use_llm: bool = typer.Option(False, "--use-llm", help="Extract verbs with the LLM planner."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show a tab's verbs, or execute one."""

    async def _tab() -> None:
        services = _services(ctx)
        if verb is None:
            discovery = await services.policy.discover(name, use_planner=use_llm)
            _render_discovery(name, discovery, as_json)
            return

        root, sub = _split_verb(verb, child)
        result = await services.resolver.resolve(name, root, sub)
        if isinstance(result, ContainerListing):
            _render_listing(result, as_json)
        else:
            _render_navigation(result, as_json)

    _run(_tab())


# ── view ─────────────────────────────────────────────────────────────────


@app.command()
def view(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Tab to view."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Show only the first N lines."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Print the full page text of a tab."""

    async def _view() -> None:
        validate_tab_name(name)
        services = _services(ctx)
        tab_data = services.store.get(name)
        if tab_data is None:
            raise WebCliError(f'Tab "{name}" does not exist; use "web-cli nav <url> {name}" to create it')

        page = await services.fetcher.fetch(tab_data.current_url)
        lines = page.text.split("\n")
        shown = lines[:limit] if limit else lines

        if as_json:
            _print_json({
                "tab": name,
                "url": tab_data.current_url,
                "last_updated": tab_data.last_updated,
                "text": "\n".join(shown),
                "line_count": len(lines),
            })
            return

        console.print(f"[bold]Tab:[/bold] {escape(name)}")
        console.print(f"[bold]URL:[/bold] {escape(tab_data.current_url)}")
        console.print(f"[bold]Last updated:[/bold] {escape(tab_data.last_updated)}")
        console.print("\n" + "─" * 80 + "\n")
        _print_text("\n".join(shown))
        if limit and len(lines) > limit:
            console.print(f"\n... ({len(lines) - limit} more lines)")

    _run(_view())


# ── list / clear ─────────────────────────────────────────────────────────


@app.command("list")
def list_tabs(ctx: typer.Context) -> None:
    """List all tabs."""

    async def _list() -> None:
        tabs = _services(ctx).store.get_all()
        if not tabs:
            console.print("No tabs found")
            console.print('Use "web-cli nav <url> <name>" to create a tab')
            return

        console.print(f"Found {len(tabs)} tab(s):\n")
        for tab_name, tab_data in tabs.items():
            console.print(f"  [bold]{escape(tab_name)}[/bold]")
            console.print(f"    URL: {escape(tab_data.current_url)}")
            console.print(f"    Updated: {escape(tab_data.last_updated)}\n")

    _run(_list())


@app.command()
def clear(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Tab to remove."),
) -> None:
    """Remove a named tab."""

    async def _clear() -> None:
        validate_tab_name(name)
        store = _services(ctx).store
        if store.get(name) is None:
            raise WebCliError(f'Tab "{name}" does not exist')
        store.delete(name)
        console.print(f"[green]✓[/green] Tab \"{escape(name)}\" removed")

    _run(_clear())


# ── refine ───────────────────────────────────────────────────────────────


@app.command()
def refine(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Tab name."),
    arg1: str = typer.Argument(..., help="Guidance, or a container verb name when GUIDANCE follows."),
    arg2: Optional[str] = typer.Argument(None, metavar="[GUIDANCE]", help="Guidance for the container."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Re-extract verbs with LLM guidance, for the whole tab or one container."""
    container, guidance = (arg1, arg2) if arg2 is not None else (None, arg1)

    async def _refine() -> None:
        if not guidance.strip():
            raise ValidationError(f'Guidance for tab "{name}" must not be empty')
        services = _services(ctx)
        if container:
            if not as_json:
                console.print(f'Refining container "{escape(container)}" of tab "{escape(name)}"...')
            discovery = await services.policy.refine_container(name, container, guidance)
        else:
            if not as_json:
                console.print(f'Refining verbs for tab "{escape(name)}"...')
            discovery = await services.policy.refine(name, guidance)

        if as_json:
            data: Dict[str, Any] = {"tab": name, "guidance": guidance}
            if container:
                data["container"] = container
                data["subverbs"] = [v.to_dict() for v in discovery.verbs]
            else:
                data["url"] = discovery.tab.current_url
                data["verbs"] = [v.to_dict() for v in discovery.verbs]
            data["planner_status"] = discovery.planner_status
            _print_json(data)
            return

        if not discovery.verbs:
            console.print("No verbs found with this guidance.")
            return
        if container:
            console.print(f'Updated container "{escape(container)}" with {len(discovery.verbs)} subverb(s)\n')
        else:
            console.print(f"Found {len(discovery.verbs)} refined verb(s):\n")
        _print_verbs(discovery.verbs)
        console.print(f'\n[green]✓[/green] Verbs cached; run "web-cli tab {escape(name)} <verb>"')

    _run(_refine())


if __name__ == "__main__":
    app()
