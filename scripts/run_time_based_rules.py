#!/usr/bin/env python3
"""Run time-based automation rules.

Time-based rules only fire when something sweeps them; point cron (or any
scheduler) at this script. Each run evaluates every active time-based rule
of the given owner against that owner's leads at a single instant.

Usage:
    uv run python scripts/run_time_based_rules.py <owner-uuid>
"""

import asyncio
import sys
from pathlib import Path
from uuid import UUID

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from packages.automation.src.service import WorkflowAutomationService
from packages.core.src.protocols import CurrentUser, StaticIdentityProvider
from packages.database.src.session import close_db, get_db


async def main(owner_id: UUID) -> int:
    """Sweep the owner's time-based rules; returns the number of failed runs."""
    print(f"Running time-based rules for {owner_id}...")
    try:
        async with get_db() as db:
            service = WorkflowAutomationService(
                db, identity=StaticIdentityProvider(CurrentUser(id=owner_id))
            )
            outcomes = await service.run_time_based_rules()
    finally:
        await close_db()

    failed = [o for o in outcomes if not o.succeeded]
    print(f"Executed {len(outcomes)} rule runs, {len(failed)} failed")
    for outcome in failed:
        print(f"  {outcome.rule_name} ({outcome.rule_id}): {outcome.error}")
    return len(failed)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/run_time_based_rules.py <owner-uuid>")
        sys.exit(1)
    sys.exit(1 if asyncio.run(main(UUID(sys.argv[1]))) else 0)
