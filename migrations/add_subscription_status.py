"""
Backfill subscriptionStatus on professional accounts created before the field existed

Status:
- premium_trial when the stored trial is active and has not ended yet
- free otherwise

Documents that already carry a subscriptionStatus, and non-professional
accounts, are left untouched, so the script can be re-run safely.
"""

# Ensure this script can be run directly from the repo root
import logging
import sys
from pathlib import Path

CURRENT_DIR = Path(__file__).resolve().parent
PROJECT_DIR = CURRENT_DIR.parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

from agendfy.database import USERS_COLLECTION, get_firestore_client
from agendfy.models import ProfessionalAccount, SubscriptionStatus, UserRole
from agendfy.trial import is_expired, utcnow

logger = logging.getLogger(__name__)


def backfilled_status(account: ProfessionalAccount, now) -> str:
    trial = account.trial
    if trial and trial.active and trial.ends_at and not is_expired(trial.ends_at, now):
        return SubscriptionStatus.PREMIUM_TRIAL.value
    return SubscriptionStatus.FREE.value


def upgrade(db=None, now=None, dry_run: bool = False) -> dict:
    db = db or get_firestore_client()
    now = now or utcnow()
    updated = skipped = 0

    for snapshot in db.collection(USERS_COLLECTION).stream():
        data = snapshot.to_dict() or {}
        if data.get("subscriptionStatus") or data.get("role") != UserRole.PROFESSIONAL.value:
            skipped += 1
            continue

        status = backfilled_status(ProfessionalAccount.from_document(snapshot.id, data), now)
        if not dry_run:
            db.collection(USERS_COLLECTION).document(snapshot.id).update({"subscriptionStatus": status})
        logger.info(f"✅ {'Would update' if dry_run else 'Updated'} user {snapshot.id}: {status}")
        updated += 1

    logger.info(f"✨ Migration add_subscription_status finished: {updated} updated, {skipped} skipped")
    return {"updated": updated, "skipped": skipped}


if __name__ == "__main__":
    import argparse

    logging.basicConfig(level=logging.INFO, format="%(message)s")

    parser = argparse.ArgumentParser(description="Backfill subscriptionStatus for professional accounts")
    parser.add_argument("--dry-run", action="store_true", help="Only report what would change")
    args = parser.parse_args()

    try:
        upgrade(dry_run=args.dry_run)
    except Exception as e:
        logger.error(f"❌ Migration failed: {e}")
        sys.exit(1)
