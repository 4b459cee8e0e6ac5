"""Command-line interface for tekken-overlays."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, TypeVar

import httpx
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from tekken_overlays import __version__
from tekken_overlays.api_client import CatalogClient
from tekken_overlays.channels import CHANNELS, LNW_DISPLAY_MODE, LOVE_AND_WAR_DISPLAY
from tekken_overlays.config import Settings, load_settings
from tekken_overlays.control.emitter import ControlEmitter, TransportPublisher
from tekken_overlays.exceptions import DetailFetchError, TransportError
from tekken_overlays.messages import (
    RIB_VIEW_FLAGS,
    MatchData,
    RibMatchCards,
    RibOverlayState,
    RibPlayerStats,
    RibStreamData,
)
from tekken_overlays.modes import parse_mode
from tekken_overlays.overlay.render import RenderState, team_cards
from tekken_overlays.realtime.client import TransportClient
from tekken_overlays.session import PageSession, SessionStore

app = typer.Typer(
    name="tekken-overlays",
    help="Real-time control and overlay server for Tekken broadcast graphics",
    no_args_is_help=True,
)
console = Console()

T = TypeVar("T")

KeyOption = Annotated[
    str | None,
    typer.Option("--key", "-k", help="Connection key (defaults to the stored key)"),
]
ChannelOption = Annotated[
    str,
    typer.Option("--channel", help="Channel to publish on"),
]


def version_callback(value: bool) -> None:
    if value:
        console.print(f"tekken-overlays version {__version__}")
        raise typer.Exit()


def setup_logging(level: str) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Socket.IO / Engine.IO are chatty at INFO
    for name in ("socketio", "engineio"):
        logging.getLogger(name).setLevel(logging.WARNING)


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Override TEKKEN_LOG_LEVEL"),
    ] = None,
) -> None:
    """tekken-overlays: broadcast overlay control for Tekken 8 tournaments."""
    settings = load_settings()
    if log_level:
        settings.app.log_level = log_level
    setup_logging(settings.app.log_level)
    ctx.obj = settings


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj if isinstance(ctx.obj, Settings) else load_settings()


def _session(settings: Settings, key: str | None) -> PageSession:
    store = SessionStore(settings.client.session_path)
    session = PageSession.from_params({"key": key} if key else {}, store)
    if key:
        session.remember_token()
    return session


async def _with_emitter(
    settings: Settings,
    key: str | None,
    action: Callable[[ControlEmitter], Awaitable[T]],
) -> T:
    """Open a transport like a control page would, run ``action``, close."""
    session = _session(settings, key)
    transport = TransportClient(
        settings.client.server_url,
        session.token,
        name=f"cli.{session.tab_id}",
        reconnection=False,
        connect_timeout_s=settings.client.connect_timeout_s,
    )
    try:
        if not await transport.connect():
            raise TransportError(transport.error or "Connection failed")
        emitter = ControlEmitter(TransportPublisher(transport), session, name="cli")
        return await action(emitter)
    finally:
        await transport.close()


def _run(coro: Awaitable[T]) -> T:
    try:
        return asyncio.run(coro)
    except TransportError as e:
        console.print(f"[red]Connection failed: {e}[/red]")
        raise typer.Exit(code=1) from None


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Bind port")] = None,
    headless: Annotated[
        bool,
        typer.Option("--headless", help="Serve realtime + REST only, no pages"),
    ] = False,
    key: Annotated[str | None, typer.Option("--key", "-k", help="Shared connection key")] = None,
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", help="Catalogue and snapshot directory"),
    ] = None,
) -> None:
    """Run the realtime server, REST routes and (unless --headless) the pages."""
    import uvicorn

    from tekken_overlays.server.app import create_app

    settings = _settings(ctx)
    if host:
        settings.server.host = host
    if port:
        settings.server.port = port
    if key:
        settings.server.connection_key = key
    if data_dir:
        settings.server.data_dir = data_dir
    settings.app.headless = settings.app.headless or headless

    if settings.logfire.enabled:
        from tekken_overlays.observability import configure_logfire

        configure_logfire(
            sample_rate=settings.logfire.sample_rate,
            environment=settings.logfire.environment,
        )
        if settings.logfire.dashboard_url:
            console.print(f"[dim]Logfire: {settings.logfire.dashboard_url}[/dim]")

    if not settings.server.connection_key and not settings.server.extra_keys:
        console.print("[yellow]Warning: no connection key set; every client is accepted.[/yellow]")

    server = create_app(settings)
    mode = "headless" if settings.app.headless else f"with pages at {settings.ui.mount_path}"
    console.print(
        f"[bold blue]Serving on http://{settings.server.host}:{settings.server.port} ({mode})[/bold blue]"
    )
    uvicorn.run(
        server.asgi,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.app.log_level.lower(),
    )


@app.command()
def status(ctx: typer.Context) -> None:
    """Show realtime server status."""
    settings = _settings(ctx)
    url = f"{settings.client.server_url.rstrip('/')}/api/realtime/status"
    try:
        response = httpx.get(url, timeout=settings.client.fetch_timeout_s)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]Server not reachable at {settings.client.server_url}: {e}[/red]")
        raise typer.Exit(code=1) from None

    data = response.json()
    console.print("[bold]Realtime Status[/bold]")
    console.print(f"Connections: {data.get('connections', 0)}  Published: {data.get('published', 0)}")
    table = Table("Channel", "Sequence", "Retained")
    for name, seq in sorted((data.get("sequences") or {}).items()):
        spec = CHANNELS.get(name)
        table.add_row(name, str(seq), "yes" if spec and spec.retained else "")
    console.print(table)


@app.command()
def select(
    ctx: typer.Context,
    team_id: Annotated[int, typer.Argument(help="Team id to display")],
    hidden: Annotated[bool, typer.Option("--hidden", help="Select without showing")] = False,
    channel: ChannelOption = LOVE_AND_WAR_DISPLAY.name,
    key: KeyOption = None,
) -> None:
    """Select the team an overlay shows."""
    settings = _settings(ctx)
    _run(_with_emitter(settings, key, lambda e: e.select_entity(channel, team_id, not hidden)))
    console.print(f"[green]Selected {team_id} on {channel}{' (hidden)' if hidden else ''}[/green]")


async def _toggle(emitter: ControlEmitter, channel: str, visible: bool) -> bool:
    selection = emitter.restore(channel)
    if selection is None or selection.entity_id is None:
        console.print(f"[yellow]No stored selection for {channel}; run select first[/yellow]")
        raise typer.Exit(code=1)
    return await emitter.set_visibility(channel, visible)


@app.command()
def show(ctx: typer.Context, channel: ChannelOption = LOVE_AND_WAR_DISPLAY.name, key: KeyOption = None) -> None:
    """Show the last selected entity."""
    _run(_with_emitter(_settings(ctx), key, lambda e: _toggle(e, channel, True)))
    console.print(f"[green]Shown on {channel}[/green]")


@app.command()
def hide(ctx: typer.Context, channel: ChannelOption = LOVE_AND_WAR_DISPLAY.name, key: KeyOption = None) -> None:
    """Hide the overlay without changing the selection."""
    _run(_with_emitter(_settings(ctx), key, lambda e: _toggle(e, channel, False)))
    console.print(f"[green]Hidden on {channel}[/green]")


@app.command()
def mode(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="idle, match, team-stats or match-card")],
    team: Annotated[int | None, typer.Option("--team", help="Team id for team-stats")] = None,
    hidden: Annotated[bool, typer.Option("--hidden", help="Send with visible=false")] = False,
    key: KeyOption = None,
) -> None:
    """Switch the unified overlay's display mode."""
    try:
        display_mode = parse_mode(name)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    extra: dict = {}
    if team is not None:
        extra["team_id"] = team
    if hidden:
        extra["visible"] = False

    async def _action(emitter: ControlEmitter) -> bool:
        emitter.restore(LNW_DISPLAY_MODE.name)
        return await emitter.set_mode(LNW_DISPLAY_MODE.name, display_mode, **extra)

    _run(_with_emitter(_settings(ctx), key, _action))
    console.print(f"[green]Mode set to {display_mode.value}[/green]")


@app.command()
def match(
    ctx: typer.Context,
    file: Annotated[Path, typer.Argument(help="JSON file with {team1, team2, round}", exists=True)],
    save: Annotated[bool, typer.Option("--save/--no-save", help="Also store it on the server")] = True,
    key: KeyOption = None,
) -> None:
    """Push a match snapshot to every match overlay."""
    settings = _settings(ctx)
    try:
        snapshot = MatchData.model_validate(json.loads(file.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as e:
        console.print(f"[red]Invalid match file: {e}[/red]")
        raise typer.Exit(code=1) from None

    async def _action(emitter: ControlEmitter) -> bool:
        if save:
            async with CatalogClient(settings.client.server_url, settings.client.fetch_timeout_s) as catalog:
                try:
                    await catalog.save_match_data(snapshot)
                except DetailFetchError as e:
                    console.print(f"[yellow]Could not save match data: {e}[/yellow]")
        return await emitter.push_match(snapshot)

    _run(_with_emitter(settings, key, _action))
    console.print(f"[green]Sent {snapshot.team1.name} vs {snapshot.team2.name}[/green]")


RIB_DATA = {
    "cards": RibMatchCards,
    "players": RibPlayerStats,
    "stream": RibStreamData,
}


@app.command()
def rib(
    ctx: typer.Context,
    view: Annotated[str, typer.Argument(help="none, single-match, part-one, player-stats or stream")],
    trigger: Annotated[bool, typer.Option("--trigger", help="Replay the entrance animation")] = False,
    player: Annotated[int | None, typer.Option("--player", help="Player index for player-stats")] = None,
    match_index: Annotated[int | None, typer.Option("--match", help="Selected match index")] = None,
    key: KeyOption = None,
) -> None:
    """Switch the Run-It-Back overlay to one view, or hide it with ``none``."""
    if view != "none" and view not in RIB_VIEW_FLAGS:
        console.print(f"[red]Unknown view {view!r}; expected none, {', '.join(RIB_VIEW_FLAGS)}[/red]")
        raise typer.Exit(code=1)

    async def _action(emitter: ControlEmitter) -> RibOverlayState:
        state = emitter.restore_rib_overlay().cleared()
        if view != "none":
            state = state.toggled(view)
        updates = {}
        if player is not None:
            updates["selected_player_index"] = player
        if match_index is not None:
            updates["selected_match_index"] = match_index
        state = state.model_copy(update=updates)
        if trigger:
            state = state.triggered()
        await emitter.set_rib_overlay(state)
        return state

    state = _run(_with_emitter(_settings(ctx), key, _action))
    console.print(f"[green]RIB overlay: {', '.join(state.active_views()) or 'hidden'}[/green]")


@app.command("rib-data")
def rib_data(
    ctx: typer.Context,
    kind: Annotated[str, typer.Argument(help="cards, players or stream")],
    file: Annotated[Path, typer.Argument(help="JSON file in the overlay's camelCase shape", exists=True)],
    key: KeyOption = None,
) -> None:
    """Push Run-It-Back card, player or stream data from a JSON file."""
    model = RIB_DATA.get(kind)
    if model is None:
        console.print(f"[red]Unknown data kind {kind!r}; expected {', '.join(RIB_DATA)}[/red]")
        raise typer.Exit(code=1)
    try:
        data = model.model_validate(json.loads(file.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as e:
        console.print(f"[red]Invalid {kind} file: {e}[/red]")
        raise typer.Exit(code=1) from None

    async def _action(emitter: ControlEmitter) -> bool:
        if isinstance(data, RibMatchCards):
            return await emitter.push_rib_cards(data)
        if isinstance(data, RibPlayerStats):
            return await emitter.push_rib_players(data)
        return await emitter.push_rib_stream(data)

    _run(_with_emitter(_settings(ctx), key, _action))
    console.print(f"[green]Sent RIB {kind}[/green]")


@app.command()
def catalog(
    ctx: typer.Context,
    kind: Annotated[str, typer.Argument(help="teams or players")] = "teams",
) -> None:
    """List catalogue teams or players."""
    settings = _settings(ctx)

    async def _load() -> list:
        async with CatalogClient(settings.client.server_url, settings.client.fetch_timeout_s) as client:
            if kind == "players":
                return await client.list_players()
            return await client.list_teams()

    if kind not in ("teams", "players"):
        console.print(f"[red]Unknown catalogue {kind!r}; expected teams or players[/red]")
        raise typer.Exit(code=1)
    try:
        rows = asyncio.run(_load())
    except DetailFetchError as e:
        console.print(f"[red]Could not load {kind}: {e}[/red]")
        raise typer.Exit(code=1) from None

    if kind == "players":
        table = Table("ID", "Name", "Character", "Division", "Rank")
        for p in rows:
            table.add_row(str(p.id), p.name, p.character_name or "", p.division or "", p.rank_name or "")
    else:
        table = Table("ID", "Team", "Player 1", "Player 2")
        for t in rows:
            table.add_row(str(t.id), t.team_name, t.player_1_name, t.player_2_name)
    console.print(table)
    console.print(f"[dim]{len(rows)} {kind}[/dim]")


def _describe(frame: RenderState) -> str:
    parts = [f"[bold]{frame.view}[/bold]", f"mode={frame.mode.value}", f"gen={frame.animation_generation}"]
    if frame.error:
        parts.append(f"[red]{frame.error}[/red]")
    if frame.team is not None:
        cards = team_cards(frame.team)
        parts.append(f"team={frame.team.team_name} ({' & '.join(c.name for c in cards)})")
    if frame.match is not None and frame.view in ("match", "match-card"):
        parts.append(
            f"{frame.match.team1.name} {frame.match.team1.score}-{frame.match.team2.score} {frame.match.team2.name}"
        )
    if frame.player is not None:
        parts.append(f"player={frame.player.name} chart={list(frame.chart_values)}")
    if frame.rib_player is not None and frame.view == "rib-player-stats":
        parts.append(f"rib player={frame.rib_player.name}")
    if frame.rib_stream is not None and frame.view == "rib-stream":
        s = frame.rib_stream
        parts.append(f"{s.p1_name} {s.p1_score}-{s.p2_score} {s.p2_name}")
    if frame.rib_cards is not None and frame.view in ("rib-single-match", "rib-part-one"):
        parts.append(f"event={frame.rib_cards.event_title}")
    return "  ".join(parts)


@app.command()
def watch(
    ctx: typer.Context,
    player: Annotated[int | None, typer.Option("--player", help="Watch a player radar instead")] = None,
    team: Annotated[int | None, typer.Option("--team", help="Bootstrap with this team")] = None,
    rib_view: Annotated[bool, typer.Option("--rib", help="Watch the Run-It-Back overlay instead")] = False,
    key: KeyOption = None,
) -> None:
    """Run a headless overlay and print each render."""
    from tekken_overlays.overlay.controller import (
        LoveAndWarOverlayController,
        PlayerRadarController,
        RibOverlayController,
    )

    settings = _settings(ctx)

    async def _watch() -> None:
        session = _session(settings, key)
        if team is not None:
            session.params["team"] = str(team)
        transport = None
        if session.has_token:
            transport = TransportClient(
                settings.client.server_url,
                session.token,
                name=f"watch.{session.tab_id}",
                reconnection=settings.client.reconnection,
                reconnection_delay_s=settings.client.reconnection_delay_s,
                connect_timeout_s=settings.client.connect_timeout_s,
            )
        async with CatalogClient(settings.client.server_url, settings.client.fetch_timeout_s) as catalog:
            if rib_view:
                controller = RibOverlayController(session, catalog, transport, settings.overlay)
            elif player is not None:
                controller = PlayerRadarController(session, catalog, transport, settings.overlay, player_id=player)
            else:
                controller = LoveAndWarOverlayController(session, catalog, transport, settings.overlay)
            controller.on_render(lambda frame: console.print(_describe(frame)))
            try:
                await controller.start()
                await asyncio.Event().wait()
            finally:
                await controller.stop()

    console.print("[dim]Watching; press Ctrl+C to stop.[/dim]")
    try:
        _run(_watch())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


if __name__ == "__main__":
    app()
