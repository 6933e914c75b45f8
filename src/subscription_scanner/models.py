"""Data models for Gmail Subscription Scanner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum


class BillingCycle(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    UNKNOWN = "unknown"

    @property
    def approximate_days(self) -> int:
        return _CYCLE_DAYS[self]

    @property
    def short_label(self) -> str:
        return _CYCLE_LABELS[self]


_CYCLE_DAYS = {
    BillingCycle.WEEKLY: 7,
    BillingCycle.MONTHLY: 30,
    BillingCycle.QUARTERLY: 90,
    BillingCycle.YEARLY: 365,
    BillingCycle.UNKNOWN: 0,
}

_CYCLE_LABELS = {
    BillingCycle.WEEKLY: "/wk",
    BillingCycle.MONTHLY: "/mo",
    BillingCycle.QUARTERLY: "/qtr",
    BillingCycle.YEARLY: "/yr",
    BillingCycle.UNKNOWN: "",
}


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ScanMode(str, Enum):
    INCREMENTAL = "incremental"
    FULL = "full"

    @property
    def display_name(self) -> str:
        return "Quick Scan" if self is ScanMode.INCREMENTAL else "Full Scan"


class ScanPhase(str, Enum):
    STARTING = "starting"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Message:
    """Metadata of a single Gmail message."""

    message_id: str
    thread_id: str = ""
    snippet: str = ""
    subject: str = ""
    sender: str = ""  # Full From header value
    internal_date: str | None = None  # epoch milliseconds, as Gmail returns it
    has_unsubscribe_header: bool = False

    @property
    def date(self) -> datetime:
        """Message timestamp in UTC (now when Gmail did not report one)."""
        if self.internal_date:
            try:
                return datetime.fromtimestamp(int(self.internal_date) / 1000, tz=timezone.utc)
            except ValueError:
                pass
        return datetime.now(timezone.utc)

    @property
    def text(self) -> str:
        """Lowercased subject and snippet, the text every keyword rule runs against."""
        return f"{self.subject} {self.snippet}".lower()


@dataclass(frozen=True)
class CacheEntry:
    message: Message
    cached_at: datetime


@dataclass
class SyncState:
    """Checkpoint of the last successful sync."""

    cursor: str | None = None  # Gmail history id
    full_scan_at: datetime | None = None
    incremental_sync_at: datetime | None = None
    processed_ids: set[str] = field(default_factory=set)
    last_subscription_count: int = 0
    last_emails_scanned: int = 0

    @property
    def can_sync_incrementally(self) -> bool:
        return self.cursor is not None

    def is_fresh(self, hours: int = 24, now: datetime | None = None) -> bool:
        last_sync = self.incremental_sync_at or self.full_scan_at
        if last_sync is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now - last_sync < timedelta(hours=hours)


@dataclass(frozen=True)
class MerchantInfo:
    """Reference data for a known subscription merchant."""

    merchant_id: str
    name: str
    domains: tuple[str, ...]
    sender_patterns: tuple[str, ...]
    category: str
    typical_prices: tuple[float, ...] = ()
    typical_cycle: BillingCycle = BillingCycle.MONTHLY


@dataclass
class MerchantCandidate:
    """Messages attributed to one probable merchant, before scoring."""

    sender_domain: str
    sender_email: str
    messages: list[Message] = field(default_factory=list)
    known_merchant: MerchantInfo | None = None
    from_payment_processor: bool = False
    extracted_merchant_name: str | None = None


@dataclass(frozen=True)
class ContentAnalysis:
    score: int
    detected_price: float | None = None
    last_charge_date: datetime | None = None
    has_structural_pattern: bool = False
    has_trial_signal: bool = False
    has_cancellation_signal: bool = False
    has_hard_exclusion: bool = False


@dataclass(frozen=True)
class PatternAnalysis:
    score: int
    billing_cycle: BillingCycle
    detected_cycle: BillingCycle | None = None  # set only when an interval band matched
    interval_variance: int | None = None


@dataclass(frozen=True)
class CandidateAnalysis:
    score: int
    confidence: Confidence
    merchant_name: str
    price: float | None
    billing_cycle: BillingCycle
    last_charge_date: datetime | None
    next_billing_date: datetime | None
    has_structural_pattern: bool = False
    has_trial_signal: bool = False
    has_cancellation_signal: bool = False


@dataclass(frozen=True)
class Subscription:
    """A recurring paid subscription inferred from email."""

    merchant_id: str
    name: str
    price: float
    billing_cycle: BillingCycle
    confidence: Confidence
    score: int
    sender_email: str
    email_count: int
    last_charge_date: datetime | None = None
    next_billing_date: datetime | None = None
    category: str | None = None
    detection_source: str = "gmail"

    @property
    def price_with_cycle(self) -> str:
        return f"${self.price:.2f}{self.billing_cycle.short_label}"


@dataclass(frozen=True)
class HistoryPage:
    """One page of users.history.list, reduced to added message ids."""

    message_ids: list[str]
    next_page_token: str | None = None
    cursor: str | None = None
    records: int = 0


@dataclass(frozen=True)
class IncrementalSyncResult:
    """Message ids added since a history id, plus the newest history id seen."""

    new_message_ids: list[str]
    latest_cursor: str
    records_processed: int = 0


@dataclass(frozen=True)
class ScanProgress:
    phase: ScanPhase
    emails_scanned: int = 0
    candidates_found: int = 0
    current_merchant: str | None = None


@dataclass
class DetectionResult:
    """Result of one scan."""

    subscriptions: list[Subscription]
    emails_scanned: int
    mode: ScanMode
    scan_duration: float = 0.0
    scan_date: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def high_confidence_count(self) -> int:
        return sum(1 for s in self.subscriptions if s.confidence is Confidence.HIGH)

    @property
    def medium_confidence_count(self) -> int:
        return sum(1 for s in self.subscriptions if s.confidence is Confidence.MEDIUM)
