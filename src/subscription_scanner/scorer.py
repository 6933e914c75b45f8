"""Pass 2 - score candidates and turn the survivors into subscriptions."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone

import structlog

from .candidates import looks_like_individual
from .config import DetectionConfig
from .constants import (
    LOOSE_VARIANCE_DAYS,
    MANY_EMAILS_THRESHOLD,
    MAX_DETECTED_PRICE,
    MAX_DISPLAY_NAME_LENGTH,
    MAX_INTERVAL_DAYS,
    MAX_SUBSCRIPTION_PRICE,
    MEDIUM_CONFIDENCE_SCORE,
    MIN_DETECTED_PRICE,
    MIN_INTERVAL_DAYS,
    MONTHLY_BAND,
    MULTIPLE_EMAILS_THRESHOLD,
    QUARTERLY_BAND,
    SINGLE_EMAIL_PATTERN_SCORE,
    STALENESS_LIMIT_DAYS,
    TIGHT_VARIANCE_DAYS,
    WEEKLY_BAND,
    WEIGHT_ANTI_KEYWORD,
    WEIGHT_CONSISTENCY_BONUS,
    WEIGHT_CONSISTENT_PRICE,
    WEIGHT_HARD_EXCLUSION,
    WEIGHT_INFERRED_CADENCE,
    WEIGHT_KNOWN_MERCHANT,
    WEIGHT_MANY_EMAILS,
    WEIGHT_MEDIUM_KEYWORD,
    WEIGHT_MULTIPLE_EMAILS,
    WEIGHT_PROCESSOR_MERCHANT_FOUND,
    WEIGHT_RECURRING_MONTHLY,
    WEIGHT_RECURRING_QUARTERLY,
    WEIGHT_RECURRING_WEEKLY,
    WEIGHT_RECURRING_YEARLY,
    WEIGHT_STRONG_KEYWORD,
    WEIGHT_STRUCTURAL_PRICE,
    WEIGHT_TRIAL_CONVERSION,
    WEIGHT_UNSUBSCRIBE_HEADER,
    YEARLY_BAND,
)
from .models import (
    BillingCycle,
    CandidateAnalysis,
    Confidence,
    ContentAnalysis,
    MerchantCandidate,
    Message,
    PatternAnalysis,
    Subscription,
)
from .rules import DEFAULT_RULES, RuleSet

logger = structlog.get_logger()

_CADENCE_BANDS = (
    (WEEKLY_BAND, BillingCycle.WEEKLY, WEIGHT_RECURRING_WEEKLY),
    (MONTHLY_BAND, BillingCycle.MONTHLY, WEIGHT_RECURRING_MONTHLY),
    (QUARTERLY_BAND, BillingCycle.QUARTERLY, WEIGHT_RECURRING_QUARTERLY),
    (YEARLY_BAND, BillingCycle.YEARLY, WEIGHT_RECURRING_YEARLY),
)

_REFERENCE_CYCLES = (
    BillingCycle.WEEKLY,
    BillingCycle.MONTHLY,
    BillingCycle.QUARTERLY,
    BillingCycle.YEARLY,
)

# Second-level labels skipped when picking the name part of a domain
_SECOND_LEVEL_LABELS = frozenset({"co", "com", "org", "net", "ac", "gov"})


# --- price ---

def extract_price(text: str, rules: RuleSet = DEFAULT_RULES) -> float | None:
    """First price in ``text``; per-period patterns win over bare amounts."""
    for pattern in rules.period_price_patterns + rules.basic_price_patterns:
        m = pattern.search(text)
        if not m:
            continue
        try:
            return float(m.group(1).replace(",", "."))
        except ValueError:
            continue
    return None


# --- content ---

def analyze_content(messages: list[Message], rules: RuleSet = DEFAULT_RULES) -> ContentAnalysis:
    """Keyword, price and header signals across a candidate's messages."""
    score = 0
    prices: list[float] = []
    last_charge: datetime | None = None
    hard_excluded = False
    structural = False
    trial = False
    unsubscribe = False
    cancelled = False

    for msg in sorted(messages, key=lambda m: m.date, reverse=True):
        text = msg.text

        if not cancelled and rules.has_cancellation(text):
            cancelled = True

        if rules.has_hard_exclusion(text):
            hard_excluded = True
            score += WEIGHT_HARD_EXCLUSION
            continue

        if rules.has_anti_keyword(text):
            score += WEIGHT_ANTI_KEYWORD

        if not structural and rules.has_structural_price(text):
            structural = True
            score += WEIGHT_STRUCTURAL_PRICE

        if not trial and rules.has_trial_signal(text):
            trial = True
            score += WEIGHT_TRIAL_CONVERSION

        if rules.has_strong_keyword(text):
            score += WEIGHT_STRONG_KEYWORD
        elif rules.has_medium_keyword(text):
            score += WEIGHT_MEDIUM_KEYWORD

        price = extract_price(text, rules)
        if price is not None and MIN_DETECTED_PRICE <= price <= MAX_DETECTED_PRICE:
            prices.append(price)

        if msg.has_unsubscribe_header and not unsubscribe:
            unsubscribe = True
            score += WEIGHT_UNSUBSCRIBE_HEADER

        if last_charge is None or msg.date > last_charge:
            last_charge = msg.date

    rounded = [round(p, 2) for p in prices]
    if len(rounded) >= 2 and len(set(rounded)) == 1:
        score += WEIGHT_CONSISTENT_PRICE

    # Ties go to the price seen first, i.e. in the most recent message
    detected_price = Counter(rounded).most_common(1)[0][0] if rounded else None

    if hard_excluded:
        score = 0

    return ContentAnalysis(
        score=max(score, 0),
        detected_price=detected_price,
        last_charge_date=last_charge,
        has_structural_pattern=structural,
        has_trial_signal=trial,
        has_cancellation_signal=cancelled,
        has_hard_exclusion=hard_excluded,
    )


# --- cadence ---

def infer_billing_cycle(average_interval: int) -> BillingCycle:
    """Reference cadence nearest to ``average_interval`` days."""
    return min(_REFERENCE_CYCLES, key=lambda c: abs(c.approximate_days - average_interval))


def analyze_pattern(messages: list[Message]) -> PatternAnalysis:
    """Billing cadence from the gaps between consecutive messages."""
    if len(messages) < 2:
        return PatternAnalysis(score=SINGLE_EMAIL_PATTERN_SCORE, billing_cycle=BillingCycle.UNKNOWN)

    ordered = sorted(messages, key=lambda m: m.date)
    intervals = []
    for earlier, later in zip(ordered, ordered[1:]):
        days = (later.date - earlier.date).days
        if MIN_INTERVAL_DAYS <= days <= MAX_INTERVAL_DAYS:
            intervals.append(days)

    if not intervals:
        return PatternAnalysis(score=SINGLE_EMAIL_PATTERN_SCORE, billing_cycle=BillingCycle.UNKNOWN)

    average = sum(intervals) // len(intervals)
    score = 0
    detected: BillingCycle | None = None
    for (low, high), cycle, weight in _CADENCE_BANDS:
        if low <= average <= high:
            detected = cycle
            score += weight
            break

    if detected is None:
        cycle = infer_billing_cycle(average)
        score += WEIGHT_INFERRED_CADENCE
    else:
        cycle = detected

    variance = sum(abs(i - average) for i in intervals) // len(intervals)
    if len(intervals) >= 2:
        if variance <= TIGHT_VARIANCE_DAYS:
            score += WEIGHT_CONSISTENCY_BONUS
        elif variance <= LOOSE_VARIANCE_DAYS:
            score += WEIGHT_CONSISTENCY_BONUS // 2

    if len(messages) >= MULTIPLE_EMAILS_THRESHOLD:
        score += WEIGHT_MULTIPLE_EMAILS
    if len(messages) >= MANY_EMAILS_THRESHOLD:
        score += WEIGHT_MANY_EMAILS

    return PatternAnalysis(
        score=score,
        billing_cycle=cycle,
        detected_cycle=detected,
        interval_variance=variance,
    )


# --- naming ---

def clean_display_name(messages: list[Message], rules: RuleSet = DEFAULT_RULES) -> str | None:
    """Display name of the first sender, unless it looks like a person."""
    if not messages:
        return None
    sender = messages[0].sender
    if "<" not in sender or looks_like_individual(sender, rules):
        return None
    name = sender.split("<", 1)[0].strip().replace('"', "")
    if name and len(name) < MAX_DISPLAY_NAME_LENGTH:
        return name
    return None


def format_domain_as_name(domain: str) -> str:
    """``mail.figma.com`` -> ``Figma``, ``shop.example.co.uk`` -> ``Example``."""
    labels = [label for label in domain.split(".") if label]
    if not labels:
        return domain
    if len(labels) >= 3 and labels[-2] in _SECOND_LEVEL_LABELS:
        stem = labels[-3]
    elif len(labels) >= 2:
        stem = labels[-2]
    else:
        stem = labels[0]
    return stem[:1].upper() + stem[1:]


# --- candidate ---

def classify_confidence(score: int, config: DetectionConfig | None = None) -> Confidence:
    """Tier a score. The medium floor is fixed; the keep threshold is applied separately."""
    config = config or DetectionConfig()
    if score >= config.high_confidence_score:
        return Confidence.HIGH
    if score >= MEDIUM_CONFIDENCE_SCORE:
        return Confidence.MEDIUM
    return Confidence.LOW


def _correct_price(price: float | None, typical: tuple[float, ...]) -> float | None:
    if price is None or not typical:
        return price
    if price < min(typical) * 0.5 or price > max(typical) * 2:
        return min(typical, key=lambda t: abs(t - price))
    return price


def analyze_candidate(
    candidate: MerchantCandidate,
    rules: RuleSet = DEFAULT_RULES,
    config: DetectionConfig | None = None,
) -> CandidateAnalysis:
    """Total score, name, price and cadence for one candidate."""
    score = 0
    known = candidate.known_merchant
    if known is not None:
        score += WEIGHT_KNOWN_MERCHANT
    if candidate.from_payment_processor and candidate.extracted_merchant_name:
        score += WEIGHT_PROCESSOR_MERCHANT_FOUND

    content = analyze_content(candidate.messages, rules)
    pattern = analyze_pattern(candidate.messages)
    score += content.score + pattern.score

    if known is not None:
        name = known.name
    elif candidate.extracted_merchant_name:
        name = candidate.extracted_merchant_name
    else:
        name = clean_display_name(candidate.messages, rules) or format_domain_as_name(candidate.sender_domain)

    price = _correct_price(content.detected_price, known.typical_prices if known else ())

    if pattern.detected_cycle is not None:
        cycle = pattern.detected_cycle
    elif known is not None:
        cycle = known.typical_cycle
    else:
        cycle = pattern.billing_cycle

    next_billing = None
    if content.last_charge_date is not None and cycle is not BillingCycle.UNKNOWN:
        next_billing = content.last_charge_date + timedelta(days=cycle.approximate_days)

    return CandidateAnalysis(
        score=score,
        confidence=classify_confidence(score, config),
        merchant_name=name,
        price=price,
        billing_cycle=cycle,
        last_charge_date=content.last_charge_date,
        next_billing_date=next_billing,
        has_structural_pattern=content.has_structural_pattern,
        has_trial_signal=content.has_trial_signal,
        has_cancellation_signal=content.has_cancellation_signal,
    )


def is_currently_active(
    last_charge: datetime | None,
    cycle: BillingCycle,
    now: datetime | None = None,
) -> bool:
    """Whether the last charge is recent enough for the cadence."""
    if last_charge is None:
        return False
    now = now or datetime.now(timezone.utc)
    return (now - last_charge).days <= STALENESS_LIMIT_DAYS[cycle.value]


def _rejection_reason(analysis: CandidateAnalysis, config: DetectionConfig, now: datetime) -> str | None:
    if analysis.score < config.min_confidence_score:
        return "below_threshold"
    if analysis.price is None or not 0 < analysis.price < MAX_SUBSCRIPTION_PRICE:
        return "no_valid_price"
    if analysis.confidence is Confidence.LOW:
        return "low_confidence"
    if analysis.has_cancellation_signal:
        return "cancelled"
    if not is_currently_active(analysis.last_charge_date, analysis.billing_cycle, now):
        return "inactive"
    return None


def score_candidates(
    candidates: list[MerchantCandidate],
    rules: RuleSet = DEFAULT_RULES,
    config: DetectionConfig | None = None,
    now: datetime | None = None,
    on_candidate=None,
) -> list[Subscription]:
    """Score every candidate, apply the vetoes, dedupe by name and sort.

    ``on_candidate`` is called with each candidate's display label before it
    is analysed.
    """
    config = config or DetectionConfig()
    now = now or datetime.now(timezone.utc)

    best: dict[str, Subscription] = {}
    for candidate in candidates:
        if on_candidate is not None:
            on_candidate(
                candidate.extracted_merchant_name
                or (candidate.known_merchant.name if candidate.known_merchant else candidate.sender_domain)
            )
        analysis = analyze_candidate(candidate, rules, config)
        reason = _rejection_reason(analysis, config, now)
        if reason is not None:
            logger.debug("candidate_dropped", merchant=analysis.merchant_name, score=analysis.score, reason=reason)
            continue

        known = candidate.known_merchant
        subscription = Subscription(
            merchant_id=known.merchant_id if known else candidate.sender_domain,
            name=analysis.merchant_name,
            price=analysis.price,
            billing_cycle=analysis.billing_cycle,
            confidence=analysis.confidence,
            score=analysis.score,
            sender_email=candidate.sender_email,
            email_count=len(candidate.messages),
            last_charge_date=analysis.last_charge_date,
            next_billing_date=analysis.next_billing_date,
            category=known.category if known else None,
        )
        key = subscription.name.lower()
        if key not in best or subscription.score > best[key].score:
            best[key] = subscription

    return sorted(best.values(), key=lambda s: (-s.score, s.name.lower()))
