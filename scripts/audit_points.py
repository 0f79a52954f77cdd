#!/usr/bin/env python3
"""Admin script to check children's point balances against their history.

Usage:
    python scripts/audit_points.py <child_id>
    python scripts/audit_points.py --parent <parent_id>
"""

import asyncio
import logging
import sys

from src.core import db_client
from src.modules.family import service as family_service
from src.services import points_service


logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


async def audit_child(child_id: str) -> bool:
    """Audit one child and print the result.

    Returns:
        True if the balance is consistent
    """
    report = await points_service.audit_child_points(child_id=child_id)
    marker = "OK" if report["consistent"] else "MISMATCH"
    logger.info(
        f"{marker} {child_id}: profile={report['profile_points']} mirror={report['mirror_points']} "
        f"expected={report['expected']} (earned {report['earned']}, redeemed {report['redeemed']})"
    )
    return report["consistent"]


async def audit_family(parent_id: str) -> bool:
    """Audit every child on a parent's roster."""
    children = await family_service.list_children(parent_id=parent_id)
    if not children:
        logger.info(f"No children on roster of {parent_id}")
        return True

    results = [await audit_child(entry["profile_id"]) for entry in children]
    return all(results)


def print_usage() -> None:
    """Print usage information."""
    logger.info(__doc__)


async def main() -> None:
    """Main entry point."""
    args = sys.argv[1:]

    if not args or "--help" in args or "-h" in args:
        print_usage()
        return

    await db_client.init_db()
    try:
        if args[0] == "--parent":
            if len(args) < 2:  # noqa: PLR2004
                print_usage()
                sys.exit(1)
            consistent = await audit_family(args[1])
        else:
            consistent = await audit_child(args[0])
    finally:
        await db_client.close_connection()

    if not consistent:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
