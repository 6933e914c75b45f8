"""Keyword, regex and domain tables compiled once for the detection passes."""

from __future__ import annotations

import re
from typing import Iterable, Sequence

from . import constants


def _lower_all(words: Iterable[str]) -> tuple[str, ...]:
    return tuple(w.lower() for w in words)


def _compile_all(patterns: Iterable[str]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def _matches_domain(domain: str, domains: frozenset[str]) -> bool:
    domain = domain.lower()
    if domain in domains:
        return True
    return any(domain.endswith("." + d) for d in domains)


class RuleSet:
    """Every table the detection passes consult.

    Defaults come from :mod:`subscription_scanner.constants`; any table can be
    replaced by passing it to the constructor. Keywords are matched as
    lowercase substrings, patterns case-insensitively.
    """

    def __init__(
        self,
        *,
        blocked_domains: Iterable[str] = constants.BLOCKED_DOMAINS,
        hard_excluded_domains: Iterable[str] = constants.HARD_EXCLUDED_DOMAINS,
        payment_processor_domains: Iterable[str] = constants.PAYMENT_PROCESSOR_DOMAINS,
        individual_patterns: Sequence[str] = constants.INDIVIDUAL_SENDER_PATTERNS,
        strong_keywords: Sequence[str] = constants.STRONG_KEYWORDS,
        medium_keywords: Sequence[str] = constants.MEDIUM_KEYWORDS,
        trial_keywords: Sequence[str] = constants.TRIAL_KEYWORDS,
        anti_keywords: Sequence[str] = constants.ANTI_KEYWORDS,
        hard_exclusion_keywords: Sequence[str] = constants.HARD_EXCLUSION_KEYWORDS,
        cancellation_keywords: Sequence[str] = constants.CANCELLATION_KEYWORDS,
        generic_payment_terms: Iterable[str] = constants.GENERIC_PAYMENT_TERMS,
        merchant_name_stop_words: Iterable[str] = constants.MERCHANT_NAME_STOP_WORDS,
        structural_price_patterns: Sequence[str] = constants.STRUCTURAL_PRICE_PATTERNS,
        period_price_patterns: Sequence[str] = constants.PERIOD_PRICE_EXTRACTION_PATTERNS,
        basic_price_patterns: Sequence[str] = constants.BASIC_PRICE_EXTRACTION_PATTERNS,
        merchant_extraction_patterns: Sequence[str] = constants.MERCHANT_EXTRACTION_PATTERNS,
    ) -> None:
        self.blocked_domains = frozenset(_lower_all(blocked_domains))
        self.hard_excluded_domains = frozenset(_lower_all(hard_excluded_domains))
        self.payment_processor_domains = frozenset(_lower_all(payment_processor_domains))
        self.individual_patterns = _lower_all(individual_patterns)
        self.strong_keywords = _lower_all(strong_keywords)
        self.medium_keywords = _lower_all(medium_keywords)
        self.trial_keywords = _lower_all(trial_keywords)
        self.anti_keywords = _lower_all(anti_keywords)
        self.hard_exclusion_keywords = _lower_all(hard_exclusion_keywords)
        self.cancellation_keywords = _lower_all(cancellation_keywords)
        self.generic_payment_terms = frozenset(_lower_all(generic_payment_terms))
        self.merchant_name_stop_words = frozenset(_lower_all(merchant_name_stop_words))
        self.structural_price_patterns = _compile_all(structural_price_patterns)
        self.period_price_patterns = _compile_all(period_price_patterns)
        self.basic_price_patterns = _compile_all(basic_price_patterns)
        self.merchant_extraction_patterns = _compile_all(merchant_extraction_patterns)

    # --- domains ---

    def is_blocked(self, domain: str) -> bool:
        """Exact or subdomain match against the blocked set, case-insensitive."""
        return _matches_domain(domain, self.blocked_domains)

    def is_hard_excluded(self, domain: str) -> bool:
        return _matches_domain(domain, self.hard_excluded_domains)

    def is_payment_processor(self, domain: str) -> bool:
        domain = domain.lower()
        return any(p in domain for p in self.payment_processor_domains)

    # --- text ---

    @staticmethod
    def first_keyword(text: str, keywords: Sequence[str]) -> str | None:
        """First keyword contained in ``text`` (already lowercased), or ``None``."""
        for keyword in keywords:
            if keyword in text:
                return keyword
        return None

    @staticmethod
    def any_pattern(text: str, patterns: Sequence[re.Pattern[str]]) -> bool:
        return any(p.search(text) for p in patterns)

    def has_hard_exclusion(self, text: str) -> bool:
        return self.first_keyword(text, self.hard_exclusion_keywords) is not None

    def has_anti_keyword(self, text: str) -> bool:
        return self.first_keyword(text, self.anti_keywords) is not None

    def has_cancellation(self, text: str) -> bool:
        return self.first_keyword(text, self.cancellation_keywords) is not None

    def has_trial_signal(self, text: str) -> bool:
        return self.first_keyword(text, self.trial_keywords) is not None

    def has_strong_keyword(self, text: str) -> bool:
        return self.first_keyword(text, self.strong_keywords) is not None

    def has_medium_keyword(self, text: str) -> bool:
        return self.first_keyword(text, self.medium_keywords) is not None

    def has_structural_price(self, text: str) -> bool:
        return self.any_pattern(text, self.structural_price_patterns)

    def is_generic_payment_term(self, term: str) -> bool:
        return term.lower() in self.generic_payment_terms


DEFAULT_RULES = RuleSet()
