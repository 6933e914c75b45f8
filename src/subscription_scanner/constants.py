"""Constants for Gmail Subscription Scanner."""

from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path.home() / ".gmail-subscription-scanner"
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
TOKEN_PATH = CONFIG_DIR / "token.json"
STATE_DB_PATH = CONFIG_DIR / "state.db"

# --- Gmail API ---
SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]
USER_ID = "me"
PAGE_SIZE = 100  # message ids per search page
METADATA_HEADERS = ["Subject", "From", "Date", "List-Unsubscribe"]
MESSAGE_FORMATS = ("full", "metadata", "minimal")
HISTORY_TYPE_MESSAGE_ADDED = "messageAdded"

# --- Retry / backoff ---
INITIAL_RETRY_DELAY = 1.0  # seconds
MAX_RETRY_DELAY = 64.0  # seconds
MAX_RETRIES = 5
JITTER_MAX = 0.5  # up to +50%
MIN_REQUEST_SPACING = 0.1  # seconds between requests, also the inter-batch pause

# --- Circuit breaker ---
CIRCUIT_FAILURE_THRESHOLD = 5
CIRCUIT_RESET_TIMEOUT = 60.0  # seconds
CIRCUIT_HALF_OPEN_PROBES = 2

# --- Adaptive batching ---
MIN_BATCH_SIZE = 5
MAX_BATCH_SIZE = 20
DEFAULT_BATCH_SIZE = 15
BATCH_INCREASE_STEP = 2
BATCH_DECREASE_STEP = 5
SUCCESSES_BEFORE_INCREASE = 3

# --- Message cache ---
MEMORY_CACHE_LIMIT = 1000
CACHE_MAX_AGE_DAYS = 30

# --- Scan defaults ---
MAX_EMAILS_TO_SCAN = 500
MONTHS_TO_SCAN = 12
MIN_CONFIDENCE_SCORE = 50  # default keep threshold
MEDIUM_CONFIDENCE_SCORE = 50
HIGH_CONFIDENCE_SCORE = 70

# --- Scoring weights ---
WEIGHT_KNOWN_MERCHANT = 30
WEIGHT_PROCESSOR_MERCHANT_FOUND = 25
WEIGHT_STRONG_KEYWORD = 20
WEIGHT_MEDIUM_KEYWORD = 10
WEIGHT_STRUCTURAL_PRICE = 15
WEIGHT_TRIAL_CONVERSION = 18
WEIGHT_CONSISTENT_PRICE = 15
WEIGHT_RECURRING_WEEKLY = 10
WEIGHT_RECURRING_MONTHLY = 20
WEIGHT_RECURRING_QUARTERLY = 15
WEIGHT_RECURRING_YEARLY = 15
WEIGHT_INFERRED_CADENCE = 5
WEIGHT_CONSISTENCY_BONUS = 10
WEIGHT_MULTIPLE_EMAILS = 5
WEIGHT_MANY_EMAILS = 5
WEIGHT_UNSUBSCRIBE_HEADER = 5
WEIGHT_ANTI_KEYWORD = -25
WEIGHT_HARD_EXCLUSION = -100
SINGLE_EMAIL_PATTERN_SCORE = 5

# --- Pattern analysis ---
MIN_INTERVAL_DAYS = 5
MAX_INTERVAL_DAYS = 400
TIGHT_VARIANCE_DAYS = 3
LOOSE_VARIANCE_DAYS = 7
MULTIPLE_EMAILS_THRESHOLD = 3
MANY_EMAILS_THRESHOLD = 6

# --- Price bounds ---
MIN_DETECTED_PRICE = 0.99
MAX_DETECTED_PRICE = 500.0
MAX_SUBSCRIPTION_PRICE = 1000.0

# --- Processor merchant-name bounds ---
MIN_MERCHANT_NAME_LENGTH = 2
MAX_MERCHANT_NAME_LENGTH = 50
MAX_DISPLAY_NAME_LENGTH = 40

# --- Search query ---
QUERY_POSITIVE_KEYWORDS = [
    "subscription", "membership", "renewal", "auto-renewal",
    "recurring", "monthly plan", "annual plan", "yearly plan",
    "billing cycle", "next billing date",
    "invoice", "receipt",
]
QUERY_NEGATIVE_KEYWORDS = [
    "shipped", "tracking", "delivery",
    "order confirmation", "your order",
]
QUERY_CATEGORY_FILTER = "(category:purchases OR category:updates)"

# --- Domains ---
BLOCKED_DOMAINS = frozenset({
    # Banks & financial institutions
    "bankofamerica.com", "bofa.com", "boa.com",
    "chase.com", "jpmorganchase.com",
    "wellsfargo.com", "wf.com",
    "citi.com", "citibank.com",
    "capitalone.com", "usbank.com", "pnc.com",
    "td.com", "tdbank.com",
    "schwab.com", "fidelity.com", "vanguard.com",
    "americanexpress.com", "aexp.com",
    "discover.com", "synchrony.com", "ally.com", "marcus.com",
    "sofi.com", "robinhood.com", "coinbase.com", "binance.com",
    # Personal mailbox providers
    "gmail.com", "googlemail.com",
    "yahoo.com", "ymail.com",
    "outlook.com", "hotmail.com", "live.com",
    "icloud.com", "me.com", "mac.com",
    "aol.com", "protonmail.com", "proton.me",
    # Jobs
    "linkedin.com", "indeed.com", "glassdoor.com",
    # Shipping
    "ups.com", "fedex.com", "usps.com", "dhl.com", "ontrac.com", "lasership.com",
    # E-commerce
    "ebay.com", "etsy.com", "wish.com", "aliexpress.com", "alibaba.com",
    "shopify.com", "bigcommerce.com",
    # Insurance
    "geico.com", "statefarm.com", "progressive.com", "allstate.com", "libertymutual.com",
    # Utilities
    "pge.com", "sce.com", "coned.com", "nationalgrid.com",
    # Government
    "irs.gov", "ssa.gov", "dmv.gov", "ca.gov", "ny.gov",
})

HARD_EXCLUDED_DOMAINS = frozenset({
    "venmo.com", "zelle.com", "cashapp.com",
    "klarna.com", "affirm.com", "afterpay.com",
})

PAYMENT_PROCESSOR_DOMAINS = frozenset({
    "paypal.com", "paypal-communication.com",
    "stripe.com",
    "squareup.com", "square.com",
    "braintreepayments.com",
    "paddle.com", "gumroad.com", "lemonsqueezy.com",
    "chargebee.com", "recurly.com", "2checkout.com", "fastspring.com",
})

# --- Sender heuristics ---
INDIVIDUAL_SENDER_PATTERNS = [
    "publisher", "author", "editor",
    "via paypal", "sent you",
    "family", "friend",
    "personal", "private",
]

# --- Keyword tables ---
STRONG_KEYWORDS = [
    "subscription", "your subscription", "subscription renewal",
    "membership", "your membership", "membership renewal",
    "renewal", "auto-renewal", "will renew", "renews on",
    "automatically renews", "auto renew",
    "recurring", "recurring charge", "recurring payment",
    "monthly plan", "annual plan", "yearly plan",
    "premium", "pro plan", "plus plan", "basic plan",
    "billing cycle", "next billing date", "billing period",
    "subscription confirmed", "thanks for subscribing",
    "welcome to your subscription", "subscription activated",
    "manage your subscription", "cancel your subscription",
    "update your subscription", "subscription settings",
]

MEDIUM_KEYWORDS = [
    "receipt", "payment receipt",
    "invoice", "payment confirmation",
    "charged", "payment processed",
    "thank you for your payment",
    "successfully charged", "payment successful",
]

TRIAL_KEYWORDS = [
    "trial ending", "trial ends", "trial expiring",
    "trial conversion", "free trial ending",
    "trial period ending", "trial will end",
    "upgrade from trial", "trial expires",
]

ANTI_KEYWORDS = [
    # Shipping / orders
    "shipped", "shipping", "shipment",
    "delivery", "delivered", "out for delivery",
    "tracking", "track your", "tracking number",
    "package", "parcel", "your package",
    # Bank statements
    "statement", "bank statement", "account statement",
    "statement ready", "view statement", "e-statement",
    "account summary", "account ending in",
    "direct deposit", "wire transfer",
    "account alert", "low balance", "overdraft",
    "transaction alert", "fraud alert",
    # One-time purchases
    "order shipped", "order delivered",
    "refund", "return", "refunded",
    "one-time", "one time purchase",
    # Insurance & utilities
    "policy", "insurance", "premium due",
    "policy renewal", "coverage", "claim",
    "utility", "utility bill", "electric bill",
    "gas bill", "water bill",
    # Jobs
    "application", "applied", "job alert",
    "interview", "candidate", "resume",
    # Personal transfers
    "sent you money", "paid you",
    "request", "requested money", "money request",
    # Ride-hailing
    "trip with uber", "trip with lyft",
    "your ride", "ride receipt", "trip receipt",
    "your trip", "evening trip", "morning trip",
    "afternoon trip", "your uber trip", "your lyft trip",
    "trip on", "ride on", "fare",
    "popular picks", "reorder",
]

HARD_EXCLUSION_KEYWORDS = [
    "order confirmation", "order #", "order number",
    "your order has shipped",
    "bank statement", "account statement",
    "policy renewal", "insurance premium",
    "tracking number", "track your package",
    "trip with uber", "trip with lyft",
    "your monday", "your tuesday", "your wednesday", "your thursday",
    "your friday", "your saturday", "your sunday",
    "evening trip", "morning trip", "afternoon trip",
]

CANCELLATION_KEYWORDS = [
    "cancelled", "canceled", "subscription cancelled", "subscription canceled",
    "subscription ended", "subscription has ended",
    "membership cancelled", "membership canceled",
    "successfully cancelled", "successfully canceled",
    "cancellation confirmed", "cancellation complete",
    "final payment", "last payment",
    "subscription expired", "membership expired",
    "no longer subscribed", "unsubscribed",
    "account closed", "service terminated",
    "refund processed", "full refund",
]

GENERIC_PAYMENT_TERMS = frozenset({
    "payment", "subscription", "recurring", "charge",
    "invoice", "receipt", "billing", "automatic",
    "monthly", "annual", "yearly", "your",
})

# Words that end a merchant name captured from processor text, e.g.
# "Receipt from Figma for your subscription" -> "Figma".
MERCHANT_NAME_STOP_WORDS = frozenset({
    "for", "on", "at", "via", "with", "from", "to", "has", "have", "was", "is",
    "your", "the", "and", "of", "in", "by", "dated", "amount", "total",
})

# --- Regex patterns ---
STRUCTURAL_PRICE_PATTERNS = [
    r"\$\d+(?:\.\d{2})?\s*/\s*(?:mo|month)",
    r"\$\d+(?:\.\d{2})?\s*/\s*(?:yr|year)",
    r"\$\d+(?:\.\d{2})?\s*per\s*month",
    r"\$\d+(?:\.\d{2})?\s*per\s*year",
    r"€\d+(?:,\d{2})?\s*/\s*(?:mo|month)",
    r"billed\s+(?:monthly|annually|yearly)",
    r"(?:monthly|annual|yearly)\s+(?:charge|fee)",
]

# Capture group 1 is the amount. Per-period patterns are tried first.
PERIOD_PRICE_EXTRACTION_PATTERNS = [
    r"\$(\d{1,3}(?:\.\d{2})?)\s*/\s*(?:mo|month|yr|year)",
    r"\$(\d{1,3}(?:\.\d{2})?)\s*per\s*(?:month|year)",
    r"€(\d{1,3}(?:[,.]\d{2})?)\s*/\s*(?:mo|month|yr|year)",
]
BASIC_PRICE_EXTRACTION_PATTERNS = [
    r"\$(\d{1,3}(?:\.\d{2})?)",
    r"USD\s*(\d{1,3}(?:\.\d{2})?)",
    r"€(\d{1,3}(?:[,.]\d{2})?)",
]

MERCHANT_EXTRACTION_PATTERNS = [
    r"Receipt from\s+([A-Za-z0-9\s\-\.]+)",
    r"Payment to\s+([A-Za-z0-9\s\-\.]+)",
    r"automatic payment to\s+([A-Za-z0-9\s\-\.]+)",
    r"Statement descriptor:\s*([A-Za-z0-9\s\-\.]+)",
    r"Merchant:\s*([A-Za-z0-9\s\-\.]+)",
    r"paid\s+([A-Za-z0-9\s\-\.]+?)\s+\$",
]

# --- Cadence ---
WEEKLY_BAND = (6, 8)
MONTHLY_BAND = (25, 35)
QUARTERLY_BAND = (85, 100)
YEARLY_BAND = (355, 375)

# Max days since the last charge before a subscription counts as lapsed.
STALENESS_LIMIT_DAYS = {
    "weekly": 14,
    "monthly": 45,
    "quarterly": 120,
    "yearly": 400,
    "unknown": 60,
}

# --- Display ---
SYNC_FRESH_HOURS = 24
