"""Matchmaker CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from matchmaker import __version__
from matchmaker.config import get_settings
from matchmaker.coordinator import AGENT_AUTO_JOINED
from matchmaker.observability import configure_logging, initialize_logfire
from matchmaker.runtime import build_runtime
from matchmaker.storage import get_roster_path, load_roster

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Matchmaker Configuration
# Operational parameters for the autonomous arena loop.
# Secrets (LOGFIRE_TOKEN) belong in .env, not here.

scheduler:
  scan_interval_seconds: 10
  match_cooldown_seconds: 30
  match_timeout_seconds: 300
  min_budget_ratio: 2
  max_concurrent_matches: 1
  autostart: true

scoring:
  budget_fraction: 0.5
  default_risk_tolerance: 50
  default_aggressiveness: 50
  default_max_agents: 8

arena:
  countdown_seconds: 15
  match_duration_seconds: 5
  replenish: true
  seed_tier_pools: true

withdraw:
  gas_reserve: 0.01
"""

ROSTER_TEMPLATE = """# Matchmaker Agent Roster
# Agents with a strategy and status 'searching' are picked up by the loop.

agents:
  - id: agent_berserker
    name: Berserker
    status: searching
    strategy_code:
      decide: "function decide(gameState) { return { action: 'attack' }; }"
    strategy_params:
      risk_tolerance: 80
      aggressiveness: 95
      preferred_game_types: battle
    traits: [aggressive, ruthless]
  - id: agent_diplomat
    name: Diplomat
    status: searching
    strategy_code:
      decide: "function decide(gameState) { return { action: 'defend' }; }"
    strategy_params:
      risk_tolerance: 40
      aggressiveness: 20
      preferred_game_types: both
    traits: [loyal, diplomatic]
"""


def _init_logfire(app=None) -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        initialize_logfire(get_settings(), app)
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory, configuration and a sample roster."""
    data_dir = Path("data").resolve()

    try:
        data_dir.mkdir(exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        for path, template in (
            (data_dir / "config.yaml", CONFIG_TEMPLATE),
            (get_roster_path(data_dir), ROSTER_TEMPLATE),
        ):
            if path.exists():
                logger.info(f"File already exists: {path}")
                continue
            path.write_text(template, encoding="utf-8")
            logger.info(f"Created template: {path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Review data/config.yaml and data/agents.yaml")
        print("2. Run 'python -m matchmaker config' to verify configuration")
        print("3. Run 'python -m matchmaker run' to start the loop and API\n")
        return 0

    except Exception as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== Matchmaker Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}\n")

        print("Scheduler:")
        print(f"  Scan Interval: {settings.scheduler.scan_interval_seconds:g}s")
        print(f"  Match Cooldown: {settings.scheduler.match_cooldown_seconds:g}s")
        print(f"  Match Timeout: {settings.scheduler.match_timeout_seconds:g}s")
        print(f"  Min Budget Ratio: {settings.scheduler.min_budget_ratio:g}x (informational)")
        print(f"  Max Concurrent Matches: {settings.scheduler.max_concurrent_matches}")
        print(f"  Autostart: {settings.scheduler.autostart}\n")

        print("Scoring:")
        print(f"  Budget Fraction: {settings.scoring.budget_fraction:.0%} of earnings")
        print(f"  Default Risk Tolerance: {settings.scoring.default_risk_tolerance:g}")
        print(f"  Default Aggressiveness: {settings.scoring.default_aggressiveness:g}\n")

        print("Paper Arenas:")
        print(f"  Countdown: {settings.arena.countdown_seconds:g}s")
        print(f"  Match Duration: {settings.arena.match_duration_seconds:g}s")
        print(f"  Replenish: {settings.arena.replenish}\n")

        print("API:")
        print(f"  Listen: {settings.api_host}:{settings.api_port}")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")

        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Display the agent roster."""
    try:
        settings = get_settings()
        roster = load_roster(settings.data_dir)

        print("\n=== Matchmaker Agent Roster ===\n")
        if not len(roster):
            print("  (No agents)")
            print("Run 'python -m matchmaker init' to create a sample roster.\n")
            return 0

        for agent in roster:
            strategy = "strategy" if agent.has_strategy else "no strategy"
            print(
                f"  • {agent.name} ({agent.id}): {agent.status}, {strategy}, "
                f"risk={agent.strategy_params.risk_tolerance}, "
                f"earnings={agent.stats.total_earnings:g}"
            )
        print()
        return 0

    except Exception as e:
        logger.error(f"Failed to read status: {e}")
        print(f"\n❌ Failed to read status: {e}\n")
        return 1


async def _scan_once() -> int:
    runtime = build_runtime(get_settings())
    joins: list[str] = []
    runtime.loop.add_listener(
        AGENT_AUTO_JOINED,
        lambda event: joins.append(f"{event.agent_name} -> {event.arena_name} (lobby: {event.lobby_size})"),
    )
    try:
        await runtime.loop.scan()
    finally:
        runtime.loop.shutdown()
        runtime.save()

    print(f"Agents joined: {len(joins)}")
    for line in joins:
        print(f"  • {line}")
    print()
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Start the autonomous loop and its API server."""
    try:
        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()

        print("\n=== Matchmaker Autonomous Loop ===\n")
        print(f"Version: {__version__}")
        print(f"Scan Interval: {settings.scheduler.scan_interval_seconds:g}s")
        print(f"Data Directory: {settings.data_dir}\n")

        if args.once:
            _init_logfire()
            print("Running a single scan against paper arenas...\n")
            return asyncio.run(_scan_once())

        import uvicorn

        from matchmaker.api import create_app

        app = create_app(build_runtime(settings))
        _init_logfire(app)
        uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level="info")
        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


def main() -> int:
    """Main CLI entry point."""
    configure_logging()

    parser = argparse.ArgumentParser(
        description="Matchmaker: autonomous arena scheduler for AI gladiator agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Matchmaker {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory, configuration and sample roster",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_status = subparsers.add_parser(
        "status",
        help="Display the agent roster",
    )
    parser_status.set_defaults(func=cmd_status)

    parser_run = subparsers.add_parser(
        "run",
        help="Start the autonomous loop and API server",
    )
    parser_run.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_run.add_argument(
        "--once",
        action="store_true",
        help="Run a single scan against paper arenas then exit",
    )
    parser_run.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
