# constants.py
import logging

from .models import RetryPolicy

logger = logging.getLogger(__name__)

# Target
BASE_URL = "https://www.amazon.com"
POSTAL_CODE = "90210"
REGION_MARKERS = ("United States",)
PRICE_CURRENCY = "USD"
PRICE_LANGUAGE = "en_US"
CURRENCY_SYMBOLS = ("$", "₹", "€", "£")
# Storefronts that show bucket links in another currency than the requested range
LOCALE_BUCKET_LABELS = {(500, 1000): ("₹40,000 to ₹80,000",)}

# Files
CREDENTIALS_PATH = "config/credentials.yaml"
CREDENTIALS_ENV = "STOREFRONT_CREDENTIALS"
SCREENSHOT_DIR = "screenshots"

# Timeouts (ms)
DEFAULT_TIMEOUT_MS = 10000
SHORT_TIMEOUT_MS = 3000
LOGIN_TIMEOUT_MS = 15000
DIALOG_TIMEOUT_MS = 20000
NAVIGATION_TIMEOUT_MS = 60000
CLICK_TIMEOUT_MS = 5000
RESOLVER_POLL_MS = 250

# Retry policies
STALE_RETRIES = 3
DIALOG_CONFIRM_ATTEMPTS = 3
OTP_POLICY = RetryPolicy(max_attempts=60, interval_ms=1000)
SIGN_IN_SETTLE_POLICY = RetryPolicy(max_attempts=20, interval_ms=500)
REGION_SETTLE_POLICY = RetryPolicy(max_attempts=10, interval_ms=500)
REGION_SUBMIT_POLICY = RetryPolicy(max_attempts=8, interval_ms=250)
CART_COUNT_POLICY = RetryPolicy(max_attempts=5, interval_ms=1000)
RESULTS_CHANGE_POLICY = RetryPolicy(max_attempts=20, interval_ms=500)
CART_UPDATE_POLICY = RetryPolicy(max_attempts=10, interval_ms=500)
NAVIGATION_POLICY = RetryPolicy(max_attempts=20, interval_ms=500)

MAX_INTERSTITIAL_TRANSITIONS = 6
MAX_REGION_ATTEMPTS = 2

# Session detection
SIGN_IN_URL_PATTERNS = ("/ap/signin", "/ap/register", "signin.amazon")
SIGN_IN_PHRASES = (
    "sign in or create account",
    "enter mobile number or email",
    "what is your email",
    "sign in to your account",
)
OTP_PHRASES = (
    "enter otp",
    "verification code",
    "enter the otp",
    "one time password",
    "verify your identity",
    "approval notification",
)
OTP_INPUT_SELECTORS = ("#auth-mfa-otpcode", "input[name='otpCode']")

# Result pages
RESULTS_PATH = "/s"
RESULTS_QUERY_PARAM = "k"
PRICE_PARAMS = ("low-price", "high-price", "currency", "language")
NO_RESULTS_PHRASES = ("no results", "0 results for", "did not match any products")
SUGGESTION_PHRASES = ("try checking your spelling", "did you mean", "related searches", "explore related")
