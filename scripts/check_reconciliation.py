#!/usr/bin/env python3
"""
Check that every wallet balance equals its journal sum.

Usage:
    python scripts/check_reconciliation.py
    python scripts/check_reconciliation.py --user-id 42
"""

import sys
import os
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import get_session
from finance_system.services.ledger_service import LedgerService

import logging

logging.basicConfig(level=logging.WARNING)


def main():
    """Check wallet reconciliation."""
    parser = argparse.ArgumentParser(description='Compare wallet balances with the transaction journal')
    parser.add_argument('--user-id', type=int, help='Check a single user')
    args = parser.parse_args()

    Config.initialize_from_env()
    session = get_session()

    try:
        ledger = LedgerService(session)

        print("\n" + "=" * 80)
        print("LEDGER RECONCILIATION")
        print("=" * 80)

        if args.user_id:
            result = ledger.reconcile(args.user_id)
            marker = "✅" if result["isConsistent"] else "❌"
            print(
                f"\n{marker} User {result['userID']}: balance={result['balance']}, "
                f"journal={result['journalSum']}, difference={result['difference']}"
            )
            sys.exit(0 if result["isConsistent"] else 1)

        mismatches = ledger.reconcileAll()
        if not mismatches:
            print("\n✅ All wallets match the journal")
            return

        print(f"\n❌ {len(mismatches)} wallet(s) out of balance:")
        print("-" * 80)
        for result in mismatches:
            print(
                f"User {result['userID']:6}: balance={result['balance']:>18} "
                f"journal={result['journalSum']:>18} difference={result['difference']:>18}"
            )
        sys.exit(1)

    finally:
        session.close()


if __name__ == "__main__":
    main()
