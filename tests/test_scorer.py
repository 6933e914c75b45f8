"""Tests for the scoring pass."""

from datetime import datetime, timedelta, timezone

import pytest
from conftest import days_ago, figma_receipts, make_message

from subscription_scanner.candidates import group_into_candidates
from subscription_scanner.config import DetectionConfig
from subscription_scanner.merchants import MerchantDatabase
from subscription_scanner.models import BillingCycle, Confidence, MerchantCandidate
from subscription_scanner.scorer import (
    analyze_candidate,
    analyze_content,
    analyze_pattern,
    classify_confidence,
    clean_display_name,
    extract_price,
    format_domain_as_name,
    infer_billing_cycle,
    is_currently_active,
    score_candidates,
)

BASE = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
NOW = datetime.now(timezone.utc)


def _spaced(days: int, count: int = 3) -> list:
    return [make_message(f"m{i}", date=BASE + timedelta(days=days * i)) for i in range(count)]


def _candidate(messages, merchant_id=None, domain="figmamail.com") -> MerchantCandidate:
    known = MerchantDatabase().get(merchant_id) if merchant_id else None
    return MerchantCandidate(
        sender_domain=domain,
        sender_email=f"billing@{domain}",
        messages=messages,
        known_merchant=known,
    )


# --- price ---


def test_period_price_wins_over_bare_amount():
    assert extract_price("Credit $5.00 applied. Plan $9.99/mo") == 9.99


def test_euro_price_with_comma():
    assert extract_price("Abo: €9,99 monatlich") == 9.99


def test_usd_prefix_and_missing_price():
    assert extract_price("Total USD 14.00") == 14.0
    assert extract_price("Thanks for being a member") is None


# --- content ---


def test_figma_content_score():
    content = analyze_content(figma_receipts())
    assert content.score == 155
    assert content.detected_price == 12.0
    assert content.has_structural_pattern
    assert not content.has_cancellation_signal


def test_anti_keyword_penalty_applies_once_per_message():
    messages = [
        make_message("a", subject="Your receipt", snippet="Tracking and shipping details"),
    ]
    # medium +10, one anti-keyword penalty of -25, floored at zero
    assert analyze_content(messages).score == 0


def test_hard_exclusion_zeroes_the_candidate():
    messages = figma_receipts(3) + [
        make_message("x", subject="Your order #4471 has shipped", snippet="tracking number 1Z999AA1"),
    ]
    content = analyze_content(messages)
    assert content.has_hard_exclusion
    assert content.score == 0


def test_trial_signal_adds_weight_once():
    messages = [
        make_message("t1", subject="Your free trial ending soon", date=days_ago(1)),
        make_message("t2", subject="Trial ends tomorrow", date=days_ago(2)),
    ]
    content = analyze_content(messages)
    assert content.has_trial_signal
    assert content.score == 18


def test_price_tie_goes_to_most_recent_message():
    messages = [
        make_message("old", subject="Receipt $20.00", date=days_ago(40)),
        make_message("new", subject="Receipt $25.00", date=days_ago(10)),
    ]
    assert analyze_content(messages).detected_price == 25.0


def test_last_charge_is_newest_message():
    newest = days_ago(3)
    messages = [make_message("a", date=days_ago(33)), make_message("b", date=newest)]
    assert analyze_content(messages).last_charge_date == messages[1].date


# --- cadence ---


@pytest.mark.parametrize(
    "days,detected,cycle",
    [
        (6, BillingCycle.WEEKLY, BillingCycle.WEEKLY),
        (8, BillingCycle.WEEKLY, BillingCycle.WEEKLY),
        (5, None, BillingCycle.WEEKLY),
        (9, None, BillingCycle.WEEKLY),
        (25, BillingCycle.MONTHLY, BillingCycle.MONTHLY),
        (35, BillingCycle.MONTHLY, BillingCycle.MONTHLY),
        (24, None, BillingCycle.MONTHLY),
        (85, BillingCycle.QUARTERLY, BillingCycle.QUARTERLY),
        (100, BillingCycle.QUARTERLY, BillingCycle.QUARTERLY),
        (355, BillingCycle.YEARLY, BillingCycle.YEARLY),
        (375, BillingCycle.YEARLY, BillingCycle.YEARLY),
        (376, None, BillingCycle.YEARLY),
    ],
)
def test_cadence_bands(days, detected, cycle):
    pattern = analyze_pattern(_spaced(days))
    assert pattern.detected_cycle == detected
    assert pattern.billing_cycle is cycle


def test_monthly_pattern_score():
    """Monthly band, tight variance and three messages."""
    pattern = analyze_pattern(_spaced(30))
    assert pattern.score == 20 + 10 + 5
    assert pattern.interval_variance == 0


def test_inferred_cadence_score():
    assert analyze_pattern(_spaced(24)).score == 5 + 10 + 5


def test_loose_variance_gets_half_bonus():
    dates = [BASE, BASE + timedelta(days=24), BASE + timedelta(days=60)]
    messages = [make_message(f"m{i}", date=d) for i, d in enumerate(dates)]
    pattern = analyze_pattern(messages)
    assert pattern.detected_cycle is BillingCycle.MONTHLY
    assert pattern.interval_variance == 6
    assert pattern.score == 20 + 5 + 5


def test_single_message_and_out_of_range_gaps():
    assert analyze_pattern([make_message("only")]).score == 5
    assert analyze_pattern([make_message("only")]).billing_cycle is BillingCycle.UNKNOWN
    same_day = [make_message("a", date=BASE), make_message("b", date=BASE + timedelta(hours=3))]
    assert analyze_pattern(same_day).billing_cycle is BillingCycle.UNKNOWN


def test_infer_billing_cycle_nearest():
    assert infer_billing_cycle(12) is BillingCycle.WEEKLY
    assert infer_billing_cycle(50) is BillingCycle.MONTHLY
    assert infer_billing_cycle(200) is BillingCycle.QUARTERLY
    assert infer_billing_cycle(300) is BillingCycle.YEARLY


# --- naming and confidence ---


def test_format_domain_as_name():
    assert format_domain_as_name("mail.figma.com") == "Figma"
    assert format_domain_as_name("shop.example.co.uk") == "Example"
    assert format_domain_as_name("localhost") == "Localhost"


def test_clean_display_name():
    assert clean_display_name([make_message("a")]) == "Figma"
    assert clean_display_name([make_message("a", sender="billing@figma.com")]) is None
    assert clean_display_name([make_message("a", sender='"Ann Lee" <ann@lee.dev>')]) is None
    assert clean_display_name([]) is None


def test_classify_confidence():
    assert classify_confidence(70) is Confidence.HIGH
    assert classify_confidence(69) is Confidence.MEDIUM
    assert classify_confidence(50) is Confidence.MEDIUM
    assert classify_confidence(49) is Confidence.LOW
    assert classify_confidence(60, DetectionConfig(high_confidence_score=60)) is Confidence.HIGH


def test_medium_tier_does_not_follow_keep_threshold():
    lowered = DetectionConfig(min_confidence_score=40)
    assert classify_confidence(45, lowered) is Confidence.LOW
    assert classify_confidence(50, lowered) is Confidence.MEDIUM


def test_is_currently_active_uses_cadence_limits():
    now = BASE
    assert is_currently_active(now - timedelta(days=45), BillingCycle.MONTHLY, now)
    assert not is_currently_active(now - timedelta(days=46), BillingCycle.MONTHLY, now)
    assert is_currently_active(now - timedelta(days=300), BillingCycle.YEARLY, now)
    assert not is_currently_active(now - timedelta(days=15), BillingCycle.WEEKLY, now)
    assert not is_currently_active(None, BillingCycle.MONTHLY, now)


# --- candidate ---


def test_figma_candidate_analysis():
    analysis = analyze_candidate(_candidate(figma_receipts()))
    assert analysis.score == 195
    assert analysis.confidence is Confidence.HIGH
    assert analysis.merchant_name == "Figma"
    assert analysis.price == 12.0
    assert analysis.billing_cycle is BillingCycle.MONTHLY
    assert analysis.next_billing_date == analysis.last_charge_date + timedelta(days=30)


def test_known_merchant_price_is_corrected():
    messages = [
        make_message("n1", sender="Netflix <info@netflix.com>", subject="Netflix receipt $3.00", date=days_ago(2)),
    ]
    analysis = analyze_candidate(_candidate(messages, "netflix", "netflix.com"))
    assert analysis.merchant_name == "Netflix"
    assert analysis.price == 6.99
    # single message: cadence falls back to the merchant's usual cycle
    assert analysis.billing_cycle is BillingCycle.MONTHLY


def test_known_yearly_merchant_cycle():
    messages = [make_message("c1", sender="Costco <m@costco.com>", subject="Membership renewal $60.00")]
    analysis = analyze_candidate(_candidate(messages, "costco", "costco.com"))
    assert analysis.billing_cycle is BillingCycle.YEARLY


# --- end to end over both passes ---


def test_score_candidates_keeps_figma():
    (subscription,) = score_candidates(group_into_candidates(figma_receipts()), now=NOW)
    assert subscription.name == "Figma"
    assert subscription.price == 12.0
    assert subscription.billing_cycle is BillingCycle.MONTHLY
    assert subscription.confidence is Confidence.HIGH
    assert subscription.email_count == 6
    assert subscription.merchant_id == "figmamail.com"
    assert subscription.price_with_cycle == "$12.00/mo"


def test_one_off_order_is_not_a_subscription():
    messages = [
        make_message(
            "o1",
            sender="Shop <orders@acmeshop.io>",
            subject="Your order #4471 has shipped",
            snippet="tracking number 1Z999AA1",
        )
    ]
    assert score_candidates(group_into_candidates(messages), now=NOW) == []


def test_cancelled_subscription_is_dropped():
    sender = "Spotify <no-reply@spotify.com>"
    messages = [
        make_message(f"s{i}", sender=sender, subject="Your Spotify receipt", snippet="Total $10.99", date=days_ago(5 + 30 * i))
        for i in range(3)
    ]
    messages.append(make_message("c", sender=sender, subject="Your Spotify subscription has been cancelled"))
    assert score_candidates(group_into_candidates(messages), now=NOW) == []


def test_lapsed_subscription_is_dropped():
    messages = figma_receipts()
    stale_now = NOW + timedelta(days=60)
    assert score_candidates(group_into_candidates(messages), now=stale_now) == []


def test_results_are_deduped_and_sorted():
    figma_direct = figma_receipts(6, prefix="direct")
    figma_paypal = [
        make_message(
            f"pp{i}",
            sender="PayPal <service@paypal.com>",
            subject="Receipt from Figma",
            snippet="Professional plan $12.00/mo",
            date=days_ago(2 + 30 * i),
        )
        for i in range(3)
    ]
    nyt = [
        make_message(
            f"ny{i}",
            sender="The New York Times <nytdirect@nytimes.com>",
            subject="Your New York Times subscription receipt",
            snippet="$4.00/mo",
            date=days_ago(3 + 30 * i),
        )
        for i in range(3)
    ]
    seen = []
    results = score_candidates(group_into_candidates(figma_direct + figma_paypal + nyt), now=NOW, on_candidate=seen.append)

    names = [s.name for s in results]
    assert names.count("Figma") == 1
    assert "New York Times" in names
    assert [s.score for s in results] == sorted((s.score for s in results), reverse=True)
    figma = next(s for s in results if s.name == "Figma")
    assert figma.email_count == 6
    assert len(seen) == 3
