"""
Trial Expiry Sweep Runner
Run this periodically (cron / Cloud Scheduler): python run_trial_sweep.py

Session loads already reconcile expired trials; the sweep catches
professionals who have not signed in since their trial ended.
"""

import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from agendfy.database import get_firestore_client
from agendfy.domain.accounts.trial_reconciler import sweep_expired_trials
from agendfy.trial import utcnow

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("🚀 Starting trial expiry sweep...")
    try:
        result = sweep_expired_trials(get_firestore_client(), utcnow())
    except KeyboardInterrupt:
        logger.info("👋 Trial sweep stopped by user")
    except Exception as e:
        logger.error(f"❌ Trial sweep crashed: {e}")
        sys.exit(1)
    else:
        sys.exit(1 if result["failed"] else 0)
