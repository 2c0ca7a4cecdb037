#!/usr/bin/env python3
"""Recalculate roll numbers for one class-section/year, or reconcile every scope."""
import argparse
import asyncio
import os
import sys
from uuid import UUID

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from campusdesk.core.database import AsyncBackgroundSessionLocal, close_db_connections
from campusdesk.core.logging import setup_logging
from campusdesk.services.roll_number_service import RollNumberRecalculator


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--class-section-id", type=UUID)
    parser.add_argument("--academic-year-id", type=UUID)
    args = parser.parse_args(argv)
    if bool(args.class_section_id) != bool(args.academic_year_id):
        parser.error("--class-section-id and --academic-year-id must be given together")
    return args


async def run(args, session_factory=AsyncBackgroundSessionLocal) -> int:
    recalculator = RollNumberRecalculator(session_factory)

    if args.class_section_id:
        outcomes = [await recalculator.recalculate_quietly(args.class_section_id, args.academic_year_id)]
    else:
        outcomes = await recalculator.recalculate_all()

    failed = 0
    for outcome in outcomes:
        scope = outcome.scope
        if outcome.succeeded:
            print(f"OK    {scope.class_section_id} {scope.academic_year_id} "
                  f"active={outcome.summary.active_count} renumbered={outcome.summary.renumbered}")
        else:
            failed += 1
            print(f"FAIL  {scope.class_section_id} {scope.academic_year_id} {outcome.error.message}")

    print(f"{len(outcomes)} scope(s), {failed} failed")
    return 1 if failed else 0


async def main(argv=None) -> int:
    setup_logging()
    try:
        return await run(parse_args(argv))
    finally:
        await close_db_connections()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
