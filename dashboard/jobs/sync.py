"""Snapshot sync entrypoint: ``python -m dashboard.jobs.sync [--force]``."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Sequence

from dashboard.config.logging import configure_logging
from dashboard.config.settings import Settings
from dashboard.crawlers.github.errors import GitHubError
from dashboard.orchestrator import DashboardOrchestrator

logger = logging.getLogger(__name__)


async def run_sync_job(
    *,
    orchestrator: DashboardOrchestrator | None = None,
    force: bool = False,
) -> dict[str, Any]:
    """Run one full sync and write the snapshot."""
    if orchestrator is not None:
        return await orchestrator.run_sync(force=force)

    async with DashboardOrchestrator(Settings()) as job_orchestrator:
        return await job_orchestrator.run_sync(force=force)


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    force = "--force" in args

    settings = Settings()
    configure_logging(settings.LOG_LEVEL)

    async def _run() -> dict[str, Any]:
        async with DashboardOrchestrator(settings) as orchestrator:
            return await run_sync_job(orchestrator=orchestrator, force=force)

    try:
        result = asyncio.run(_run())
    except GitHubError as exc:
        logger.error(f"Sync failed: {exc}")
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
