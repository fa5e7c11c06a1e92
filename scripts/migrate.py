#!/usr/bin/env python3
"""Database migration script.

Thin wrapper over Alembic's command API using the project's alembic.ini.
The database URL comes from CRM_DATABASE_URL (see migrations/env.py).

Usage:
    # Upgrade to latest
    uv run python scripts/migrate.py upgrade

    # Downgrade one version
    uv run python scripts/migrate.py downgrade

    # Show current revision
    uv run python scripts/migrate.py current

    # Create new migration
    uv run python scripts/migrate.py create "description of changes"
"""

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

USAGE = """Usage: python scripts/migrate.py <command> [args]

Commands:
  upgrade [revision]   - Upgrade to revision (default: head)
  downgrade [revision] - Downgrade to revision (default: -1)
  current              - Show current revision
  history              - Show migration history
  create <message>     - Create new migration"""


def alembic_config() -> Config:
    """Alembic configuration rooted at the project directory."""
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "packages/database/migrations"))
    return cfg


def main() -> None:
    """Main entry point."""
    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(1)

    cfg = alembic_config()
    command_name = sys.argv[1]

    if command_name == "upgrade":
        revision = sys.argv[2] if len(sys.argv) > 2 else "head"
        print(f"Upgrading database to {revision}...")
        command.upgrade(cfg, revision)

    elif command_name == "downgrade":
        revision = sys.argv[2] if len(sys.argv) > 2 else "-1"
        print(f"Downgrading database to {revision}...")
        command.downgrade(cfg, revision)

    elif command_name == "current":
        command.current(cfg, verbose=True)

    elif command_name == "history":
        command.history(cfg, verbose=True)

    elif command_name == "create":
        if len(sys.argv) < 3:
            print("Error: Migration message required")
            print("Usage: python scripts/migrate.py create 'description'")
            sys.exit(1)
        print(f"Creating migration: {sys.argv[2]}")
        command.revision(cfg, message=sys.argv[2], autogenerate=True)

    else:
        print(f"Unknown command: {command_name}")
        print(USAGE)
        sys.exit(1)


if __name__ == "__main__":
    main()
