"""Reference data for well-known subscription merchants."""

from __future__ import annotations

from .models import BillingCycle, MerchantInfo

STREAMING = "Streaming"
MUSIC = "Music"
PRODUCTIVITY = "Productivity"
CLOUD = "Cloud Storage"
GAMING = "Gaming"
FITNESS = "Fitness"
NEWS = "News & Media"
SOFTWARE = "Software"
FOOD = "Food & Delivery"
SHOPPING = "Shopping"
EDUCATION = "Education"
OTHER = "Other"


def _merchant(
    merchant_id: str,
    name: str,
    domains: tuple[str, ...],
    patterns: tuple[str, ...],
    category: str,
    prices: tuple[float, ...],
    cycle: BillingCycle = BillingCycle.MONTHLY,
) -> MerchantInfo:
    return MerchantInfo(
        merchant_id=merchant_id,
        name=name,
        domains=domains,
        sender_patterns=patterns,
        category=category,
        typical_prices=prices,
        typical_cycle=cycle,
    )


# Merchants sharing a domain are ordered so the first entry is the fallback
# when the message content names none of them.
DEFAULT_MERCHANTS: tuple[MerchantInfo, ...] = (
    # Streaming
    _merchant("netflix", "Netflix", ("netflix.com",), ("netflix", "nflx"), STREAMING, (6.99, 15.49, 22.99)),
    _merchant("hulu", "Hulu", ("hulu.com", "hulumail.com"), ("hulu",), STREAMING, (7.99, 17.99)),
    _merchant(
        "disney_plus", "Disney+", ("disneyplus.com", "disney.com"),
        ("disney+", "disneyplus", "disney plus"), STREAMING, (7.99, 13.99, 139.99),
    ),
    _merchant("hbo_max", "Max", ("hbomax.com", "max.com"), ("hbo", "max"), STREAMING, (9.99, 15.99, 19.99)),
    _merchant(
        "amazon_prime", "Amazon Prime", ("amazon.com",),
        ("amazon prime", "prime video", "prime membership"), STREAMING, (14.99, 139.00),
    ),
    _merchant(
        "paramount_plus", "Paramount+", ("paramountplus.com", "paramount.com"),
        ("paramount",), STREAMING, (5.99, 11.99),
    ),
    _merchant("peacock", "Peacock", ("peacocktv.com",), ("peacock",), STREAMING, (5.99, 11.99)),
    # Music
    _merchant("spotify", "Spotify", ("spotify.com",), ("spotify",), MUSIC, (10.99, 16.99)),
    _merchant(
        "apple_music", "Apple Music", ("apple.com", "itunes.com"),
        ("apple music",), MUSIC, (10.99, 16.99, 109.00),
    ),
    _merchant(
        "youtube_music", "YouTube Music", ("youtube.com", "google.com"),
        ("youtube music", "youtube premium"), MUSIC, (10.99, 13.99),
    ),
    _merchant("tidal", "TIDAL", ("tidal.com",), ("tidal",), MUSIC, (10.99, 19.99)),
    # Cloud and productivity
    _merchant(
        "icloud", "iCloud+", ("apple.com",), ("icloud", "icloud+", "icloud storage"), CLOUD, (0.99, 2.99, 9.99),
    ),
    _merchant(
        "google_one", "Google One", ("google.com",), ("google one", "google storage"), CLOUD, (1.99, 2.99, 9.99),
    ),
    _merchant("dropbox", "Dropbox", ("dropbox.com", "dropboxmail.com"), ("dropbox",), CLOUD, (11.99, 19.99)),
    _merchant(
        "microsoft_365", "Microsoft 365", ("microsoft.com", "office.com"),
        ("microsoft 365", "office 365", "microsoft subscription"), PRODUCTIVITY, (6.99, 9.99, 99.99),
    ),
    _merchant(
        "adobe_cc", "Adobe Creative Cloud", ("adobe.com",),
        ("adobe", "creative cloud"), SOFTWARE, (9.99, 22.99, 54.99),
    ),
    _merchant("notion", "Notion", ("notion.so", "makenotion.com"), ("notion",), PRODUCTIVITY, (8.00, 10.00)),
    _merchant("slack", "Slack", ("slack.com",), ("slack",), PRODUCTIVITY, (7.25, 12.50)),
    _merchant("figma", "Figma", ("figma.com",), ("figma",), SOFTWARE, (12.00, 15.00)),
    # Gaming
    _merchant(
        "xbox_gamepass", "Xbox Game Pass", ("microsoft.com", "xbox.com"),
        ("xbox", "game pass", "gamepass"), GAMING, (9.99, 14.99, 16.99),
    ),
    _merchant(
        "playstation_plus", "PlayStation Plus", ("playstation.com", "sony.com"),
        ("playstation", "ps plus", "psn"), GAMING, (9.99, 14.99, 17.99),
    ),
    _merchant(
        "nintendo_online", "Nintendo Switch Online", ("nintendo.com",),
        ("nintendo", "switch online"), GAMING, (3.99, 7.99, 49.99),
    ),
    _merchant("apple_arcade", "Apple Arcade", ("apple.com",), ("apple arcade",), GAMING, (6.99,)),
    # Fitness
    _merchant(
        "apple_fitness", "Apple Fitness+", ("apple.com",), ("apple fitness", "fitness+"), FITNESS, (9.99, 79.99),
    ),
    _merchant("peloton", "Peloton", ("onepeloton.com", "peloton.com"), ("peloton",), FITNESS, (12.99, 44.00)),
    _merchant("strava", "Strava", ("strava.com",), ("strava",), FITNESS, (11.99, 79.99)),
    # News and media
    _merchant(
        "nytimes", "New York Times", ("nytimes.com",),
        ("new york times", "nytimes", "nyt"), NEWS, (4.00, 17.00, 25.00),
    ),
    _merchant("apple_news", "Apple News+", ("apple.com",), ("apple news",), NEWS, (12.99,)),
    _merchant("medium", "Medium", ("medium.com",), ("medium",), NEWS, (5.00, 50.00)),
    _merchant(
        "wsj", "Wall Street Journal", ("wsj.com", "dowjones.com"),
        ("wall street journal", "wsj"), NEWS, (4.00, 38.99),
    ),
    # Software and developer tools
    _merchant("github", "GitHub", ("github.com",), ("github",), SOFTWARE, (4.00, 21.00)),
    _merchant("openai", "ChatGPT Plus", ("openai.com",), ("openai", "chatgpt"), SOFTWARE, (20.00,)),
    _merchant("anthropic", "Claude Pro", ("anthropic.com", "claude.ai"), ("anthropic", "claude"), SOFTWARE, (20.00,)),
    # VPN and security
    _merchant(
        "nordvpn", "NordVPN", ("nordvpn.com", "nordaccount.com"), ("nordvpn", "nord"), SOFTWARE, (3.99, 4.99, 12.99),
    ),
    _merchant("expressvpn", "ExpressVPN", ("expressvpn.com",), ("expressvpn",), SOFTWARE, (6.67, 9.99, 12.95)),
    _merchant("1password", "1Password", ("1password.com",), ("1password",), SOFTWARE, (2.99, 4.99)),
    _merchant("lastpass", "LastPass", ("lastpass.com",), ("lastpass",), SOFTWARE, (3.00, 4.00)),
    # Education
    _merchant("duolingo", "Duolingo Plus", ("duolingo.com",), ("duolingo",), EDUCATION, (6.99, 12.99)),
    _merchant("skillshare", "Skillshare", ("skillshare.com",), ("skillshare",), EDUCATION, (13.99, 32.00)),
    _merchant("masterclass", "MasterClass", ("masterclass.com",), ("masterclass",), EDUCATION, (10.00, 15.00, 20.00)),
    _merchant("coursera", "Coursera Plus", ("coursera.org",), ("coursera",), EDUCATION, (49.00, 59.00)),
    # Dating
    _merchant("tinder", "Tinder", ("gotinder.com", "tinder.com"), ("tinder",), OTHER, (9.99, 19.99, 29.99)),
    _merchant("bumble", "Bumble", ("bumble.com",), ("bumble",), OTHER, (16.99, 32.99)),
    _merchant("hinge", "Hinge", ("hinge.co",), ("hinge",), OTHER, (29.99, 49.99)),
    # Food delivery
    _merchant("doordash", "DoorDash DashPass", ("doordash.com",), ("doordash", "dashpass"), FOOD, (9.99,)),
    _merchant("ubereats", "Uber One", ("uber.com",), ("uber one", "uber eats pass"), FOOD, (9.99,)),
    _merchant("grubhub", "Grubhub+", ("grubhub.com",), ("grubhub",), FOOD, (9.99,)),
    # Shopping
    _merchant(
        "costco", "Costco Membership", ("costco.com",), ("costco",), SHOPPING, (60.00, 120.00), BillingCycle.YEARLY,
    ),
    _merchant("walmart_plus", "Walmart+", ("walmart.com",), ("walmart+", "walmart plus"), SHOPPING, (12.95, 98.00)),
    _merchant("instacart", "Instacart+", ("instacart.com",), ("instacart",), SHOPPING, (9.99, 99.00)),
)


def _domain_matches(domain: str, merchant_domain: str) -> bool:
    return domain == merchant_domain or domain.endswith("." + merchant_domain)


class MerchantDatabase:
    """Read-only lookup over a list of :class:`MerchantInfo` records."""

    def __init__(self, merchants: tuple[MerchantInfo, ...] | list[MerchantInfo] = DEFAULT_MERCHANTS) -> None:
        self.merchants = tuple(merchants)
        self._by_id = {m.merchant_id: m for m in self.merchants}

    def __len__(self) -> int:
        return len(self.merchants)

    def get(self, merchant_id: str) -> MerchantInfo | None:
        return self._by_id.get(merchant_id)

    def find_by_domain(self, domain: str, content: str = "") -> MerchantInfo | None:
        """Match a sender domain (or any subdomain of it).

        Several services can share one domain (apple.com hosts iCloud+, Apple
        Music, Apple Arcade...). When ``content`` mentions one of their sender
        patterns that merchant wins; otherwise the first domain match does.
        """
        domain = domain.lower()
        matches = [
            m for m in self.merchants
            if any(_domain_matches(domain, d.lower()) for d in m.domains)
        ]
        if not matches:
            return None
        if len(matches) > 1 and content:
            text = content.lower()
            for merchant in matches:
                if any(p.lower() in text for p in merchant.sender_patterns):
                    return merchant
        return matches[0]

    def find_by_sender_email(self, email: str) -> MerchantInfo | None:
        """Match by the address's domain first, then by sender pattern anywhere in it."""
        email = email.lower()
        if "@" in email:
            merchant = self.find_by_domain(email.rsplit("@", 1)[1])
            if merchant is not None:
                return merchant
        for merchant in self.merchants:
            if any(p.lower() in email for p in merchant.sender_patterns):
                return merchant
        return None

    def find_by_keyword(self, keyword: str) -> MerchantInfo | None:
        """Match a free-form name, e.g. one extracted from a payment processor receipt."""
        keyword = keyword.lower().strip()
        if not keyword:
            return None
        for merchant in self.merchants:
            if keyword in merchant.name.lower():
                return merchant
            if any(p.lower() in keyword for p in merchant.sender_patterns):
                return merchant
        return None
