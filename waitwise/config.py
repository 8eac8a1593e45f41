import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Local development falls back to a SQLite file; production points at Postgres
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./waitwise.db")

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# Pin Payments Configuration
# "live" selects the production host, anything else the test host
PIN_API_ENVIRONMENT = os.getenv("PIN_API_ENVIRONMENT", "test")
PIN_SECRET_KEY = os.getenv("PIN_SECRET_KEY")
PIN_WEBHOOK_SECRET = os.getenv("PIN_WEBHOOK_SECRET")
# Optional replay window for Pin webhooks; unset means timestamps are not checked
PIN_WEBHOOK_MAX_AGE_SECONDS = (
    int(os.getenv("PIN_WEBHOOK_MAX_AGE_SECONDS"))
    if os.getenv("PIN_WEBHOOK_MAX_AGE_SECONDS")
    else None
)
PIN_CURRENCY = os.getenv("PIN_CURRENCY", "AUD")

# ClickSend SMS Configuration
CLICKSEND_USERNAME = os.getenv("CLICKSEND_USERNAME")
CLICKSEND_API_KEY = os.getenv("CLICKSEND_API_KEY")
CLICKSEND_FROM_NUMBER = os.getenv("CLICKSEND_FROM_NUMBER")

# Monthly invoicing
# When set, /billing/process-monthly-invoices requires "Authorization: Bearer <CRON_SECRET>"
CRON_SECRET = os.getenv("CRON_SECRET")
PAY_AS_YOU_GO_TIER = os.getenv("PAY_AS_YOU_GO_TIER", "Pay-as-you-go")

# Shop opening hours and booking slots are evaluated in this timezone
SHOP_TIMEZONE = os.getenv("SHOP_TIMEZONE", "Australia/Sydney")
