#!/usr/bin/env python3
"""
bracketbot/cli.py - Command line interface for bracketbot

Usage:
    bracketbot tournament create <name> --teams 8
    bracketbot tournament {list,show,start-registration,start,delete,bracket}
    bracketbot team {register,list}
    bracketbot match {report,list}
    bracketbot player {register,verify,profile,unlink}
    bracketbot verify <riot-id>
    bracketbot serve

Every command works on the configured store directly, scoped to one group
(--group, default "local").
"""

import argparse
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from rich.console import Console
from rich.table import Table

from .config import BracketbotConfig, load_config
from .errors import BracketError
from .identity import IdentityClient
from .models import ALLOWED_TEAM_COUNTS, MatchStatus, Tournament, TournamentStatus
from .players import PlayerDirectory
from .progression import describe_match, describe_tournament, stage_name
from .registry import TournamentRegistry
from .storage import open_store

logger = logging.getLogger(__name__)
console = Console()

DEFAULT_GROUP = "local"

_STATUS_STYLES = {
    MatchStatus.PENDING: "dim",
    MatchStatus.READY: "yellow",
    MatchStatus.IN_PROGRESS: "cyan",
    MatchStatus.COMPLETED: "green",
}


# ============================================================================
# Wiring
# ============================================================================

def _load(args) -> BracketbotConfig:
    return load_config(Path(args.config) if args.config else None)


def _identity(config: BracketbotConfig) -> IdentityClient:
    return IdentityClient(
        config.identity.api_key,
        regions=config.identity.regions,
        base_url=config.identity.base_url,
        timeout=config.identity.timeout,
        max_retries=config.identity.max_retries,
        retry_delay=config.identity.retry_delay,
    )


@contextmanager
def _services(args) -> Iterator[tuple[TournamentRegistry, PlayerDirectory]]:
    """Registry and player directory over the configured store."""
    config = _load(args)
    store = open_store(config.storage.backend, config.storage.path)
    identity = _identity(config)
    registry = TournamentRegistry(store)
    players = PlayerDirectory(store, identity)
    try:
        registry.initialize()
        players.initialize()
        yield registry, players
    finally:
        identity.close()
        store.close()


def _warn_if_unsaved(registry: TournamentRegistry) -> None:
    outcome = registry.last_persist
    if outcome is not None and not outcome.ok:
        console.print(f"[yellow]Warning: change not saved to disk ({outcome.error})[/yellow]")


# ============================================================================
# Display
# ============================================================================

def _tournament_table(tournaments: list[Tournament]) -> Table:
    table = Table(title="Tournaments")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Teams", justify="right")
    table.add_column("Status")
    for t in tournaments:
        table.add_row(t.id, t.name, f"{len(t.teams)}/{t.team_count}", t.status.value)
    return table


def _stage_table(tournament: Tournament, stage: int) -> Table:
    table = Table(title=stage_name(stage, tournament.total_stages))
    table.add_column("#", justify="right")
    table.add_column("Home")
    table.add_column("Score", justify="center")
    table.add_column("Away")
    table.add_column("Status")
    table.add_column("Match ID", style="dim")

    for m in tournament.stage_matches(stage):
        home = tournament.team_name(m.home_team_id) if m.home_team_id else "TBD"
        away = tournament.team_name(m.away_team_id) if m.away_team_id else "TBD"
        if m.home_team_id and m.home_team_id == m.winner_id:
            home = f"[bold]{home}[/bold]"
        if m.away_team_id and m.away_team_id == m.winner_id:
            away = f"[bold]{away}[/bold]"
        score = f"{m.home_score}-{m.away_score}" if m.is_completed else "-"
        style = _STATUS_STYLES[m.status]
        table.add_row(str(m.position), home, score, away, f"[{style}]{m.status.value}[/{style}]", m.id)
    return table


# ============================================================================
# Tournament Commands
# ============================================================================

def cmd_tournament_create(args):
    with _services(args) as (registry, _):
        t = registry.create_tournament(args.name, args.teams, args.group)
        console.print(f"Created {describe_tournament(t)}  [dim]{t.id}[/dim]")
        _warn_if_unsaved(registry)
    return 0


def cmd_tournament_list(args):
    with _services(args) as (registry, _):
        status = TournamentStatus(args.status) if args.status else None
        tournaments = registry.list(args.group, status)
        if not tournaments:
            console.print("No tournaments.")
            return 0
        console.print(_tournament_table(tournaments))
    return 0


def cmd_tournament_show(args):
    with _services(args) as (registry, _):
        t = registry.require(args.tournament_id)
        console.print(f"[bold]{describe_tournament(t)}[/bold]")
        console.print(f"  ID:     {t.id}")
        console.print(f"  Format: {t.format}")
        console.print(f"  Stages: {t.total_stages}")
        for team in t.teams:
            console.print(f"  - {team.name} (captain: {team.captain_name})")
    return 0


def cmd_tournament_start_registration(args):
    with _services(args) as (registry, _):
        t = registry.start_registration(args.tournament_id)
        console.print(f"Registration open: {describe_tournament(t)}")
        _warn_if_unsaved(registry)
    return 0


def cmd_tournament_start(args):
    with _services(args) as (registry, _):
        t = registry.start_tournament(args.tournament_id)
        console.print(f"Started {describe_tournament(t)}")
        for m in registry.current_stage_matches(t.id):
            console.print(f"  {describe_match(t, m)}  [dim]{m.id}[/dim]")
        _warn_if_unsaved(registry)
    return 0


def cmd_tournament_delete(args):
    with _services(args) as (registry, _):
        if not registry.delete(args.tournament_id):
            console.print(f"[red]Tournament not found: {args.tournament_id}[/red]")
            return 1
        console.print(f"Deleted {args.tournament_id}")
        _warn_if_unsaved(registry)
    return 0


def cmd_tournament_bracket(args):
    with _services(args) as (registry, _):
        t = registry.require(args.tournament_id)
        if not t.matches:
            console.print("The bracket is generated when the tournament starts.")
            return 0
        console.print(f"[bold]{describe_tournament(t)}[/bold]")
        for stage in range(1, t.total_stages + 1):
            console.print(_stage_table(t, stage))

        progress = registry.progress(t.id)
        if progress.champion:
            console.print(f"Champion: [bold green]{progress.champion.name}[/bold green]")
            if progress.runner_up:
                console.print(f"Runner-up: {progress.runner_up.name}")
    return 0


# ============================================================================
# Team Commands
# ============================================================================

def cmd_team_register(args):
    with _services(args) as (registry, players):
        t = registry.require(args.tournament_id)
        captain = players.require(t.group_id, args.captain)
        team = registry.register_team(
            t.id, args.name, args.captain, args.captain_name or captain.riot_id
        )
        console.print(
            f"Registered {team.name} ({len(t.teams)}/{t.team_count}) "
            f"captain {team.captain_name}"
        )
        _warn_if_unsaved(registry)
    return 0


def cmd_team_list(args):
    with _services(args) as (registry, _):
        teams = registry.teams(args.tournament_id)
        if not teams:
            console.print("No teams registered.")
            return 0
        for i, team in enumerate(teams, 1):
            console.print(f"{i:>2}. {team.name} (captain: {team.captain_name})")
    return 0


# ============================================================================
# Match Commands
# ============================================================================

def cmd_match_report(args):
    with _services(args) as (registry, _):
        report = registry.report_match_result(
            args.tournament_id, args.match_id, args.home_score, args.away_score
        )
        t = registry.require(args.tournament_id)
        console.print(f"{describe_match(t, report.match)}")
        console.print(f"Winner: [bold]{report.winner.name if report.winner else 'Unknown'}[/bold]")

        for m in report.advanced:
            console.print(f"  Advanced to: {describe_match(t, m)}")

        if report.progress.is_completed:
            console.print(f"[bold green]Tournament complete! Champion: {report.progress.champion.name}[/bold green]")
        if not report.saved.ok:
            console.print(f"[yellow]Warning: result not saved to disk ({report.saved.error})[/yellow]")
    return 0


def cmd_match_list(args):
    with _services(args) as (registry, _):
        t = registry.require(args.tournament_id)
        matches = registry.current_stage_matches(t.id) if args.current else registry.matches(t.id)
        if not matches:
            console.print("No matches.")
            return 0
        for m in matches:
            console.print(f"{describe_match(t, m)}  ({m.status.value})  [dim]{m.id}[/dim]")
    return 0


# ============================================================================
# Player Commands
# ============================================================================

def cmd_player_register(args):
    with _services(args) as (_, players):
        profile = players.link(args.group, args.user_id, args.riot_id)
        console.print(f"Linked {profile.riot_id} (region: {profile.region})")
    return 0


def cmd_player_verify(args):
    with _services(args) as (_, players):
        profile = players.reverify(args.group, args.user_id)
        console.print(f"Verified {profile.riot_id} (region: {profile.region})")
    return 0


def cmd_player_profile(args):
    with _services(args) as (_, players):
        profile = players.require(args.group, args.user_id)
        console.print(f"[bold]{profile.riot_id}[/bold]")
        console.print(f"  Region:        {profile.region}")
        console.print(f"  Verified at:   {profile.verified_at:%Y-%m-%d %H:%M}")
        console.print(f"  Last verified: {profile.last_verified:%Y-%m-%d %H:%M}")
    return 0


def cmd_player_unlink(args):
    with _services(args) as (_, players):
        if not players.unlink(args.group, args.user_id):
            console.print(f"[red]No linked Riot ID for {args.user_id}[/red]")
            return 1
        console.print(f"Unlinked {args.user_id}")
    return 0


def cmd_verify(args):
    """Look up a Riot ID without linking it."""
    with _identity(_load(args)) as identity:
        account = identity.verify(args.riot_id)
    console.print(f"{account.riot_id} found in {account.region} (puuid {account.puuid})")
    return 0


# ============================================================================
# Server
# ============================================================================

def cmd_serve(args):
    """Start the HTTP command server."""
    try:
        import uvicorn
    except ImportError:
        logger.error("The server requires extra dependencies: pip install bracketbot[arena]")
        return 1

    from arena.server import app

    config = _load(args)
    host = args.host or config.server.host
    port = args.port or config.server.port

    # Lifespan picks the config up from app state
    app.state.config = config
    logger.info(f"Starting bracketbot server on {host}:{port} ({config.storage.backend})")
    uvicorn.run(app, host=host, port=port, log_level="info")
    return 0


# ============================================================================
# Entry Point
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bracketbot",
        description="Single-elimination tournament brackets",
    )
    parser.add_argument("--config", default=None, help="Config file (default: ~/.bracketbot/config.toml)")
    parser.add_argument("--group", "-g", default=DEFAULT_GROUP, help=f"Group scope (default: {DEFAULT_GROUP})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # tournament commands
    tournament = subparsers.add_parser("tournament", help="Create and run tournaments")
    t_sub = tournament.add_subparsers(dest="action", required=True)

    p = t_sub.add_parser("create", help="Create a tournament")
    p.add_argument("name", help="Tournament name")
    p.add_argument("--teams", "-t", type=int, required=True, choices=ALLOWED_TEAM_COUNTS, help="Team count")
    p.set_defaults(func=cmd_tournament_create)

    p = t_sub.add_parser("list", help="List tournaments")
    p.add_argument("--status", choices=[s.value for s in TournamentStatus], default=None)
    p.set_defaults(func=cmd_tournament_list)

    for name, func, help_text in (
        ("show", cmd_tournament_show, "Show tournament details"),
        ("start-registration", cmd_tournament_start_registration, "Open team registration"),
        ("start", cmd_tournament_start, "Close registration and generate the bracket"),
        ("delete", cmd_tournament_delete, "Delete a tournament"),
        ("bracket", cmd_tournament_bracket, "Show the bracket"),
    ):
        p = t_sub.add_parser(name, help=help_text)
        p.add_argument("tournament_id", help="Tournament ID")
        p.set_defaults(func=func)

    # team commands
    team = subparsers.add_parser("team", help="Register and list teams")
    team_sub = team.add_subparsers(dest="action", required=True)

    p = team_sub.add_parser("register", help="Register a team (captain must be linked)")
    p.add_argument("tournament_id", help="Tournament ID")
    p.add_argument("name", help="Team name")
    p.add_argument("--captain", required=True, help="Captain user ID")
    p.add_argument("--captain-name", default=None, help="Captain display name (default: Riot ID)")
    p.set_defaults(func=cmd_team_register)

    p = team_sub.add_parser("list", help="List teams")
    p.add_argument("tournament_id", help="Tournament ID")
    p.set_defaults(func=cmd_team_list)

    # match commands
    match = subparsers.add_parser("match", help="Report results and list matches")
    match_sub = match.add_subparsers(dest="action", required=True)

    p = match_sub.add_parser("report", help="Report a final score")
    p.add_argument("tournament_id", help="Tournament ID")
    p.add_argument("match_id", help="Match ID")
    p.add_argument("home_score", type=int, help="Home team rounds")
    p.add_argument("away_score", type=int, help="Away team rounds")
    p.set_defaults(func=cmd_match_report)

    p = match_sub.add_parser("list", help="List matches")
    p.add_argument("tournament_id", help="Tournament ID")
    p.add_argument("--current", action="store_true", help="Only the current stage")
    p.set_defaults(func=cmd_match_list)

    # player commands
    player = subparsers.add_parser("player", help="Link users to Riot IDs")
    player_sub = player.add_subparsers(dest="action", required=True)

    p = player_sub.add_parser("register", help="Link a Riot ID")
    p.add_argument("user_id", help="User ID")
    p.add_argument("riot_id", help="Riot ID (Name#TAG)")
    p.set_defaults(func=cmd_player_register)

    for name, func, help_text in (
        ("verify", cmd_player_verify, "Re-verify a linked Riot ID"),
        ("profile", cmd_player_profile, "Show a linked profile"),
        ("unlink", cmd_player_unlink, "Remove a link"),
    ):
        p = player_sub.add_parser(name, help=help_text)
        p.add_argument("user_id", help="User ID")
        p.set_defaults(func=func)

    # verify command
    p = subparsers.add_parser("verify", help="Look up a Riot ID")
    p.add_argument("riot_id", help="Riot ID (Name#TAG)")
    p.set_defaults(func=cmd_verify)

    # serve command
    p = subparsers.add_parser("serve", help="Start the HTTP server")
    p.add_argument("--host", default=None, help="Bind address (default: from config)")
    p.add_argument("--port", "-p", type=int, default=None, help="Port (default: from config)")
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        code = args.func(args)
    except BracketError as e:
        console.print(f"[red]Error:[/red] {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
