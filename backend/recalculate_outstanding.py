"""
Outstanding Reconciliation Script
Recomputes every customer and supplier outstanding from confirmed documents
and allocations, correcting any stored value that has drifted.

Usage:
    DATABASE_URL=sqlite:///./ledger.db python recalculate_outstanding.py
"""
import logging
import sys

from erp_ledger.core.database import SessionLocal, init_db
from erp_ledger.services.reconciliation_service import ReconciliationService


def recalculate_outstanding():
    """Run the reconciliation job and print one line per party"""
    init_db()
    db = SessionLocal()
    try:
        result = ReconciliationService(db).recalculate_all()
    finally:
        db.close()

    for detail in result["details"]:
        marker = "✓ corrected" if detail["updated"] else "  ok"
        print(
            f"{marker:12} {detail['role']:9} {detail['party_name']}: "
            f"{detail['previous']} -> {detail['corrected']}"
        )

    print(f"\n{result['updated_count']} of {len(result['details'])} parties corrected.")
    return result


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    recalculate_outstanding()
    sys.exit(0)
