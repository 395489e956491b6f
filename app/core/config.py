import os
from dotenv import load_dotenv

# Loads .env from the project root
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./storefront.db")
ENV = os.getenv("ENV", "dev")
ENVIRONMENT = os.getenv("ENVIRONMENT", ENV).strip().lower()
ENV_NORMALIZED = ENVIRONMENT
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_STAGE = ENV_NORMALIZED in {"stage", "staging"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
DEV_BOOTSTRAP_ALLOW = os.getenv("DEV_BOOTSTRAP_ALLOW", "").strip().lower() in {
    "1",
    "true",
    "yes",
    "on",
}

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Coupons
COUPON_LOOKUP_TIMEOUT_SECONDS = float(os.getenv("COUPON_LOOKUP_TIMEOUT_SECONDS", "5"))
CURRENCY_DECIMAL_PLACES = int(os.getenv("CURRENCY_DECIMAL_PLACES", "2"))
COUPON_VALIDATE_RATE_LIMIT = int(os.getenv("COUPON_VALIDATE_RATE_LIMIT", "30"))
COUPON_VALIDATE_RATE_WINDOW_SECONDS = int(os.getenv("COUPON_VALIDATE_RATE_WINDOW_SECONDS", "60"))
# Peers allowed to set X-Forwarded-For, e.g. the load balancer address
_trusted_proxies_env = os.getenv("TRUSTED_PROXIES", "")
TRUSTED_PROXIES = [proxy.strip() for proxy in _trusted_proxies_env.split(",") if proxy.strip()]

# Admin session
ADMIN_SESSION_SECRET = os.getenv("ADMIN_SESSION_SECRET", "")
ADMIN_SESSION_MAX_AGE_SECONDS = int(os.getenv("ADMIN_SESSION_MAX_AGE_SECONDS", "604800"))
ADMIN_SESSION_COOKIE_SECURE = os.getenv(
    "ADMIN_SESSION_COOKIE_SECURE",
    "0" if IS_DEV else "1",
).strip().lower() in {"1", "true", "yes", "on"}
ADMIN_SESSION_COOKIE_HTTPONLY = os.getenv(
    "ADMIN_SESSION_COOKIE_HTTPONLY",
    "1",
).strip().lower() in {"1", "true", "yes", "on"}
ADMIN_SESSION_COOKIE_SAMESITE = os.getenv(
    "ADMIN_SESSION_COOKIE_SAMESITE",
    "lax",
).strip().lower()
if ADMIN_SESSION_COOKIE_SAMESITE not in {"lax", "strict", "none"}:
    ADMIN_SESSION_COOKIE_SAMESITE = "lax"
ADMIN_SESSION_COOKIE_DOMAIN = os.getenv("ADMIN_SESSION_COOKIE_DOMAIN", "").strip() or None
