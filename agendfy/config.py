import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Firebase Configuration
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
# Full service account JSON (optional - falls back to application default credentials)
FIREBASE_SERVICE_ACCOUNT = os.getenv("FIREBASE_SERVICE_ACCOUNT")

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_PRICE_ID = os.getenv("STRIPE_PRICE_ID", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
# Upper bound for every call made to Stripe (seconds)
STRIPE_API_TIMEOUT_SECONDS = float(os.getenv("STRIPE_API_TIMEOUT_SECONDS", "10"))
# Maximum age of a signed webhook before it is rejected as a replay (seconds)
STRIPE_WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))
CHECKOUT_LOCALE = os.getenv("CHECKOUT_LOCALE", "pt-BR")

# Frontend base URL for checkout redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Redis (optional) - webhook receipts are skipped when unset
REDIS_URL = os.getenv("REDIS_URL")
WEBHOOK_RECEIPT_TTL_SECONDS = int(os.getenv("WEBHOOK_RECEIPT_TTL_SECONDS", "86400"))
