#!/usr/bin/env python3
"""Recompute or queue offer eligibility from the command line.

Intended usage: operator backfills after data fixes, or ad-hoc runs of the
maintenance jobs outside the scheduler.

Examples:
    python tooling/scripts/recompute_eligibility.py compute CASHBACK_CONFIG <uuid>
    python tooling/scripts/recompute_eligibility.py merchant <merchant-uuid> --reason "Data fix"
    python tooling/scripts/recompute_eligibility.py job budget_sweep
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from uuid import UUID

from loguru import logger

_JOBS = {
    "expire_outdated": "expire_outdated_eligibility",
    "budget_sweep": "sweep_budget_status",
    "activate_new_offers": "activate_new_offers",
    "cleanup": "cleanup_eligibility_data",
    "stale_recompute": "recompute_stale_eligibility",
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Offer eligibility maintenance")
    commands = parser.add_subparsers(dest="command", required=True)

    compute = commands.add_parser("compute", help="Recompute one offer inline, bypassing the queue.")
    compute.add_argument("entity_type", choices=["CASHBACK_CONFIG", "EXCLUSIVE_OFFER", "LOYALTY_PROGRAM"])
    compute.add_argument("entity_id", type=UUID)

    merchant = commands.add_parser("merchant", help="Queue every offer owned by a merchant.")
    merchant.add_argument("merchant_id", type=UUID)
    merchant.add_argument("--reason", default="Manual merchant recompute")
    merchant.add_argument("--priority", type=int, default=75, help="Queue priority between 0 and 100.")

    job = commands.add_parser("job", help="Run one maintenance job once.")
    job.add_argument("name", choices=sorted(_JOBS))
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> dict[str, object]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from offers_api.core.options import EligibilityOptions  # type: ignore import-position
    from offers_api.db.session import async_session  # type: ignore import-position
    from offers_api.jobs import eligibility as jobs  # type: ignore import-position
    from offers_api.services.eligibility import (  # type: ignore import-position
        EligibilityComputationService,
        EligibilityQueueService,
    )

    options = EligibilityOptions.from_settings()

    if args.command == "compute":
        async with async_session() as session:
            records = await EligibilityComputationService(session, options=options).compute(
                args.entity_type, args.entity_id
            )
        return {"records": records}

    if args.command == "merchant":
        async with async_session() as session:
            # No dispatcher: the running service's drain job picks the entries up.
            queue = EligibilityQueueService(session, options=options)
            count = await queue.enqueue_all_for_merchant(args.merchant_id, args.reason, args.priority)
        return {"enqueued": count}

    job_func = getattr(jobs, _JOBS[args.name])
    return await job_func(session_factory=async_session, options=options)


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args))
    if "error" in summary:
        logger.error("Eligibility command failed", command=args.command, **summary)
        return 1
    logger.success("Eligibility command completed", command=args.command, **summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
