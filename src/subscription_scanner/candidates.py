"""Pass 1 - filter messages and group them into merchant candidates."""

from __future__ import annotations

import structlog

from .constants import MAX_MERCHANT_NAME_LENGTH, MIN_MERCHANT_NAME_LENGTH
from .gmail_client import extract_sender_domain, parse_from_header
from .merchants import MerchantDatabase
from .models import MerchantCandidate, Message
from .rules import DEFAULT_RULES, RuleSet

logger = structlog.get_logger()


def looks_like_individual(sender: str, rules: RuleSet = DEFAULT_RULES) -> bool:
    """Whether a From header looks like a person rather than a merchant.

    True for personal-relationship keywords anywhere in the header, a quoted
    display name, or a display name relayed "via" a service.
    """
    if rules.first_keyword(sender.lower(), rules.individual_patterns):
        return True

    if "<" in sender:
        name = sender.split("<", 1)[0].strip()
        if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
            return True
        if " via " in name.lower():
            return True

    return False


def _trim_merchant_name(captured: str, rules: RuleSet) -> str:
    words: list[str] = []
    for word in captured.split():
        if word.lower() in rules.merchant_name_stop_words:
            break
        words.append(word)
    return " ".join(words).strip(" .,-")


def extract_processor_merchant(message: Message, rules: RuleSet = DEFAULT_RULES) -> str | None:
    """Merchant name embedded in a payment processor message, e.g. "Receipt from Figma"."""
    text = f"{message.subject} {message.snippet}"
    for pattern in rules.merchant_extraction_patterns:
        m = pattern.search(text)
        if not m:
            continue
        name = _trim_merchant_name(m.group(1), rules)
        if (
            MIN_MERCHANT_NAME_LENGTH <= len(name) <= MAX_MERCHANT_NAME_LENGTH
            and not rules.is_generic_payment_term(name)
        ):
            return name
    return None


def group_into_candidates(
    messages: list[Message],
    rules: RuleSet = DEFAULT_RULES,
    merchants: MerchantDatabase | None = None,
) -> list[MerchantCandidate]:
    """Drop excluded senders and group the rest into one candidate per merchant.

    Direct senders are grouped by domain. Payment processor messages are
    grouped by the merchant name mined from their text; those without a
    recognisable name are dropped.
    """
    merchants = merchants or MerchantDatabase()
    by_domain: dict[str, list[Message]] = {}
    processor_messages: list[Message] = []
    dropped = 0

    for msg in messages:
        domain = extract_sender_domain(msg.sender)
        if rules.is_hard_excluded(domain) or rules.is_blocked(domain) or looks_like_individual(msg.sender, rules):
            dropped += 1
            continue
        if rules.is_payment_processor(domain):
            processor_messages.append(msg)
        else:
            by_domain.setdefault(domain, []).append(msg)

    candidates: list[MerchantCandidate] = []
    for domain, group in by_domain.items():
        content = " ".join(f"{m.subject} {m.snippet}" for m in group)
        _, address = parse_from_header(group[0].sender)
        candidates.append(
            MerchantCandidate(
                sender_domain=domain,
                sender_email=address,
                messages=group,
                known_merchant=merchants.find_by_domain(domain, content),
            )
        )

    by_name: dict[str, list[Message]] = {}
    for msg in processor_messages:
        name = extract_processor_merchant(msg, rules)
        if name is None:
            dropped += 1
            continue
        by_name.setdefault(name.lower().strip(), []).append(msg)

    for name, group in by_name.items():
        _, address = parse_from_header(group[0].sender)
        candidates.append(
            MerchantCandidate(
                sender_domain=extract_sender_domain(group[0].sender),
                sender_email=address,
                messages=group,
                known_merchant=merchants.find_by_keyword(name),
                from_payment_processor=True,
                extracted_merchant_name=name.title(),
            )
        )

    logger.debug(
        "candidates_grouped",
        messages=len(messages),
        dropped=dropped,
        direct=len(by_domain),
        relayed=len(by_name),
    )
    return candidates
