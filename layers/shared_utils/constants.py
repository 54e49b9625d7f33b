import os

SERVICE_NAME = "wedding-reel"
ENVIRONMENT = os.getenv("ENVIRONMENT", "dev").lower()
AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")

# DynamoDB tables
SUBSCRIPTIONS_TABLE = os.environ.get("SUBSCRIPTIONS_TABLE", "user_subscriptions")
PURCHASES_TABLE = os.environ.get("PURCHASES_TABLE", "wedding_purchases")
PROJECTS_TABLE = os.environ.get("PROJECTS_TABLE", "projects")
VIDEOS_TABLE = os.environ.get("VIDEOS_TABLE", "videos")
NOTIFICATIONS_TABLE = os.environ.get("NOTIFICATIONS_TABLE", "storage_notifications")
ARCHIVED_CONTENT_TABLE = os.environ.get("ARCHIVED_CONTENT_TABLE", "archived_content")
PROCESSING_JOBS_TABLE = os.environ.get("PROCESSING_JOBS_TABLE", "processing_jobs")

PAYMENT_INTENT_INDEX = "stripe_payment_intent_id-index"
PROJECT_VIDEOS_INDEX = "project_id-index"
QR_CODE_INDEX = "qr_code-index"

# External services
CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"
STREAM_DELIVERY_BASE = "https://videodelivery.net"
STRIPE_API_BASE = "https://api.stripe.com/v1"
AI_SERVICE_URL = os.environ.get("AI_SERVICE_URL", "https://wedding-ai-service.onrender.com")
PROCESSING_WORKER_FUNCTION = os.environ.get("PROCESSING_WORKER_FUNCTION", "wedding-reel-process-wedding-videos")

HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))
STREAM_MAX_DURATION_SECONDS = 3600
SIGNED_URL_EXPIRES_IN = 3600

# AI job polling: 60 attempts, 5 seconds apart
AI_POLL_MAX_ATTEMPTS = int(os.environ.get("AI_POLL_MAX_ATTEMPTS", "60"))
AI_POLL_INTERVAL_SECONDS = float(os.environ.get("AI_POLL_INTERVAL_SECONDS", "5"))

# Guest upload rate limiting (per project + guest, per container)
GUEST_UPLOAD_MAX_REQUESTS = int(os.environ.get("GUEST_UPLOAD_MAX_REQUESTS", "10"))
GUEST_UPLOAD_WINDOW_SECONDS = int(os.environ.get("GUEST_UPLOAD_WINDOW_SECONDS", "60"))

THUMBNAIL_CACHE_TTL_SECONDS = 5 * 60

# Storage lifecycle
EXPIRATION_WARNING_DAYS = 7
FINAL_WARNING_DAYS = 1
ARCHIVE_RECOVERY_DAYS = 30

# Payments
MAX_PAYMENT_AMOUNT = 100000
DEFAULT_CUSTOMER_EMAIL = "guest@memoryweave.com"
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        "ALLOWED_ORIGINS", "http://localhost:5173,https://memoryweave.lovable.app"
    ).split(",")
    if origin.strip()
]


def missing_env_vars(*names: str) -> list:
    """Return the names of environment variables that are unset or empty."""
    return [name for name in names if not os.environ.get(name)]
