#!/usr/bin/env python3
"""
Check every income transaction's Needs/Wants/Savings allocations against
the ledger invariants, optionally rebuilding broken groups.

Usage: python -m scripts.audit_distributions [--user-id UUID] [--repair]
"""
import argparse
import asyncio
import logging
import platform
import sys
import uuid

from app.core.database import AsyncSessionLocal, engine
from app.models import user as _models  # noqa: F401
from app.services.budget import DatabaseBudgetPreferenceProvider, DatabaseCategoryResolver
from app.services.distribution_engine import DistributionEngine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

async def audit(user_id, repair: bool) -> int:
    """Returns the number of groups still broken after the run"""
    try:
        async with AsyncSessionLocal() as session:
            ledger = DistributionEngine(
                session,
                preferences=DatabaseBudgetPreferenceProvider(session),
                categories=DatabaseCategoryResolver(session),
            )
            findings = await ledger.audit_distributions(owner_id=user_id, repair=repair)

        if not findings:
            print("✅ All income distributions are consistent")
            return 0

        for finding in findings:
            mark = "🔧 repaired" if finding.repaired else "❌ broken"
            print(f"   {mark}: income {finding.income_id} (user {finding.user_id}) - {finding.problem}")

        remaining = sum(1 for f in findings if not f.repaired)
        print(f"\n📊 {len(findings)} inconsistent group(s), {remaining} left unrepaired")
        return remaining
    finally:
        await engine.dispose()

def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--user-id", type=uuid.UUID, default=None, help="Only audit this user's ledger")
    parser.add_argument("--repair", action="store_true", help="Rebuild broken groups from current percentages")
    args = parser.parse_args()

    if platform.system() == 'Windows':
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

    remaining = asyncio.run(audit(args.user_id, args.repair))
    sys.exit(1 if remaining else 0)

if __name__ == "__main__":
    main()
