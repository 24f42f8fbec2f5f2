"""Fire a small burst from Python instead of the CLI.

Run against a server you own:

    python examples/basic_burst.py http://localhost:8080/health
"""

from __future__ import annotations

import asyncio
import sys

from loadburst import Orchestrator, RunPlan, clamp_config


def _confirm(plan: RunPlan) -> bool:
    print(
        f"{plan.config.url}: {plan.config.total_requests} requests over "
        f"{plan.config.concurrency} units, ~{plan.estimated_aggregate_rps} req/s"
    )
    return True


async def main(url: str) -> None:
    orchestrator = Orchestrator(confirm=_confirm)
    orchestrator.start(clamp_config(url, concurrency=5, total_requests=50, target_rps=25))
    await orchestrator.wait()

    summary = orchestrator.summary
    print(f"sent={summary.sent} errors={summary.errors}")
    print(orchestrator.export_csv())


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1]))
