"""Tests for rule tables and candidate grouping."""

from conftest import make_message

from subscription_scanner.candidates import (
    extract_processor_merchant,
    group_into_candidates,
    looks_like_individual,
)
from subscription_scanner.rules import DEFAULT_RULES, RuleSet


# --- rules ---


def test_blocked_domain_matches_subdomains():
    assert DEFAULT_RULES.is_blocked("chase.com")
    assert DEFAULT_RULES.is_blocked("alerts.Chase.com")
    assert not DEFAULT_RULES.is_blocked("purchase.com")


def test_hard_excluded_domains():
    assert DEFAULT_RULES.is_hard_excluded("venmo.com")
    assert DEFAULT_RULES.is_hard_excluded("email.klarna.com")
    assert not DEFAULT_RULES.is_hard_excluded("netflix.com")


def test_payment_processor_substring_match():
    assert DEFAULT_RULES.is_payment_processor("paypal.com")
    assert DEFAULT_RULES.is_payment_processor("mail.stripe.com")
    assert not DEFAULT_RULES.is_payment_processor("figma.com")


def test_keyword_checks_expect_lowercase_text():
    assert DEFAULT_RULES.has_strong_keyword("your subscription renews on may 3")
    assert DEFAULT_RULES.has_medium_keyword("payment receipt #42")
    assert DEFAULT_RULES.has_trial_signal("your free trial ending soon")
    assert DEFAULT_RULES.has_cancellation("your membership has been canceled")
    assert DEFAULT_RULES.has_anti_keyword("your package is out for delivery")
    assert DEFAULT_RULES.has_hard_exclusion("tracking number 1z999")
    assert not DEFAULT_RULES.has_hard_exclusion("thanks for subscribing")


def test_structural_price_patterns():
    assert DEFAULT_RULES.has_structural_price("Pro plan $12.00/mo")
    assert DEFAULT_RULES.has_structural_price("$99 per year")
    assert DEFAULT_RULES.has_structural_price("Billed annually")
    assert not DEFAULT_RULES.has_structural_price("You paid $12.00")


def test_custom_tables_replace_defaults():
    rules = RuleSet(blocked_domains={"Example.com"}, strong_keywords=["Widget Club"])
    assert rules.is_blocked("news.example.com")
    assert not rules.is_blocked("chase.com")
    assert rules.has_strong_keyword("welcome to the widget club")
    assert rules.is_hard_excluded("venmo.com")


# --- sender heuristics ---


def test_individual_senders():
    assert looks_like_individual('"Jane Smith" <jane@smithfamily.net>')
    assert looks_like_individual("Jane Smith via Substack <jane@substack.com>")
    assert looks_like_individual("Book Club Editor <club@books.io>")
    assert not looks_like_individual("Netflix <info@mailer.netflix.com>")
    assert not looks_like_individual("billing@figma.com")


def test_extract_processor_merchant():
    msg = make_message("p1", sender="service@paypal.com", subject="Receipt from Figma for your subscription")
    assert extract_processor_merchant(msg) == "Figma"

    msg = make_message("p2", sender="service@paypal.com", subject="You sent an automatic payment to Notion Labs")
    assert extract_processor_merchant(msg) == "Notion Labs"


def test_extract_processor_merchant_rejects_generic_names():
    msg = make_message("p1", sender="service@paypal.com", subject="Payment to your account")
    assert extract_processor_merchant(msg) is None
    msg = make_message("p2", sender="service@paypal.com", subject="Receipt from subscription")
    assert extract_processor_merchant(msg) is None


# --- grouping ---


def test_groups_direct_senders_by_domain():
    messages = [
        make_message("n1", sender="Netflix <info@mailer.netflix.com>", subject="Your Netflix receipt"),
        make_message("n2", sender="Netflix <info@mailer.netflix.com>", subject="Your Netflix receipt"),
        make_message("s1", sender="Spotify <no-reply@spotify.com>", subject="Spotify Premium receipt"),
    ]
    candidates = group_into_candidates(messages)
    by_domain = {c.sender_domain: c for c in candidates}
    assert set(by_domain) == {"mailer.netflix.com", "spotify.com"}
    netflix = by_domain["mailer.netflix.com"]
    assert len(netflix.messages) == 2
    assert netflix.known_merchant.merchant_id == "netflix"
    assert netflix.sender_email == "info@mailer.netflix.com"
    assert not netflix.from_payment_processor


def test_excluded_senders_are_dropped():
    messages = [
        make_message("b1", sender="Chase <no-reply@alerts.chase.com>", subject="Your receipt"),
        make_message("v1", sender="Venmo <venmo@venmo.com>", subject="Receipt"),
        make_message("i1", sender='"Sam Lee" <sam@samlee.dev>', subject="Receipt for lunch"),
        make_message("f1", subject="Receipt from Figma"),
    ]
    candidates = group_into_candidates(messages)
    assert [c.sender_domain for c in candidates] == ["figmamail.com"]


def test_processor_messages_grouped_by_merchant_name():
    messages = [
        make_message("p1", sender="PayPal <service@paypal.com>", subject="Receipt from Figma for your plan"),
        make_message("p2", sender="PayPal <service@paypal.com>", subject="Receipt from FIGMA"),
        make_message("p3", sender="PayPal <service@paypal.com>", subject="Receipt from Acme Hosting"),
        make_message("p4", sender="PayPal <service@paypal.com>", subject="Your account was updated"),
    ]
    candidates = group_into_candidates(messages)
    assert len(candidates) == 2
    by_name = {c.extracted_merchant_name: c for c in candidates}
    assert set(by_name) == {"Figma", "Acme Hosting"}
    figma = by_name["Figma"]
    assert figma.from_payment_processor
    assert len(figma.messages) == 2
    assert figma.known_merchant.merchant_id == "figma"
    assert figma.sender_domain == "paypal.com"
    assert by_name["Acme Hosting"].known_merchant is None


def test_shared_domain_candidate_resolved_from_content():
    messages = [make_message("a1", sender="Apple <no_reply@email.apple.com>", subject="Your iCloud storage plan")]
    (candidate,) = group_into_candidates(messages)
    assert candidate.known_merchant.merchant_id == "icloud"
