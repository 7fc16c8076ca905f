"""
Heuristic rule table.

Each rule is data: a key, a player-facing label, a weight, a category and a
predicate. A predicate takes the email content and returns the flag detail
when the rule triggers, or None when it does not. Rules are evaluated in
table order, which is the detection order reported to the player.
"""

import re
from typing import Callable, NamedTuple, Optional, Tuple
from urllib.parse import urlparse


class EmailContent(NamedTuple):
    subject: str
    body: str
    sender_email: str = ""
    sender_name: str = ""

    @property
    def full_text(self) -> str:
        return f"{self.subject} {self.body}"

    @property
    def sender_domain(self) -> str:
        if "@" not in self.sender_email:
            return ""
        return self.sender_email.rsplit("@", 1)[1].split(">")[0].strip().lower()


Predicate = Callable[[EmailContent], Optional[str]]


class Rule(NamedTuple):
    key: str
    label: str
    weight: int
    category: str
    predicate: Predicate


# ============================================================================
# REFERENCE DATA
# ============================================================================

# Free-mail providers, matched on the registrable name with a common TLD
PUBLIC_MAIL_PROVIDERS = frozenset({
    'gmail', 'yahoo', 'hotmail', 'outlook', 'aol', 'icloud', 'protonmail', 'mail',
})
PUBLIC_MAIL_TLDS = frozenset({'com', 'net', 'org'})

SUSPICIOUS_DOMAIN_INFIX = re.compile(
    r'[-_](verify|support|security|billing|account|update|secure|official)', re.I
)

# Brands a display name may claim
SENDER_BRANDS = ('amazon', 'microsoft', 'apple', 'google', 'netflix', 'paypal', 'bank', 'github')

# Brands an anchor text may claim, with the domain its link must resolve to
BRAND_CANONICAL_DOMAINS = {
    'amazon': 'amazon.com',
    'microsoft': 'microsoft.com',
    'apple': 'apple.com',
    'google': 'google.com',
    'netflix': 'netflix.com',
    'paypal': 'paypal.com',
    'github': 'github.com',
}

URL_SHORTENERS = (
    'bit.ly', 'tinyurl.com', 't.co', 'goo.gl', 'short.link', 'ow.ly', 'is.gd',
    'buff.ly', 'rb.gy', 'cutt.ly', 't.ly',
)

MISSPELLINGS = re.compile(
    r'\b(acount|acess|recieve|securty|verifiy|immediatly|urgent|suspended|locked|expired)\b', re.I
)
URGENT_LANGUAGE = re.compile(
    r'\b(urgent|immediately|asap|right now|expires? today|within 24 hours?|act now|verify now'
    r'|suspended|locked|expired|terminated)\b',
    re.I,
)
CASUAL_TONE = re.compile(r'\b(hey|hi there|yo|dude|gotta|wanna|gonna)\b', re.I)
FORMAL_BRAND = re.compile(r'\b(amazon|microsoft|apple|google|netflix|paypal|bank|financial)\b', re.I)

ANCHOR = re.compile(r'<a[^>]*href=["\']([^"\']+)["\'][^>]*>([^<]+)</a>', re.I)
GENERIC_ANCHOR = re.compile(r'\b(click here|here)\b', re.I)
HTTP_LINK = re.compile(r'https?://[^\s"\'<>]+', re.I)
SHORTENED_LINK = re.compile(
    r'(?<![\w.-])(' + '|'.join(re.escape(host) for host in URL_SHORTENERS) + r')(?![\w-])', re.I
)

ATTACHMENT_MENTION = re.compile(
    r'\b(attachment|download|open|view|scan|virus|malware|invoice|document|file)\s+'
    r'(attached|below|here|enclosed)\b',
    re.I,
)
CREDENTIAL_REQUEST = re.compile(
    r'\b(password|username|login|credentials|account\s+details?|social\s+security|ssn|pin'
    r'|credit\s+card|bank\s+account)\b',
    re.I,
)
PAYMENT_REQUEST = re.compile(
    r'\b(pay\s+now|payment\s+required|overdue|invoice|amount\s+due|credit\s+card|wire\s+transfer'
    r'|bitcoin|crypto)\b',
    re.I,
)
NEGATIVE_CONSEQUENCE = re.compile(
    r'\b(suspended|locked|closed|terminated|deleted|expired|legal\s+action|lawsuit|arrest|warrant)\b',
    re.I,
)


def _parse(url: str):
    # Unbalanced brackets in the netloc make urlparse raise
    try:
        return urlparse(url)
    except ValueError:
        return None


def _host(url: str) -> str:
    parsed = _parse(url)
    return ((parsed and parsed.hostname) or '').lower()


def _resolves_to(url: str, domain: str) -> bool:
    host = _host(url)
    return host == domain or host.endswith('.' + domain)


def _is_shortener(url: str) -> bool:
    host = _host(url)
    return any(host == s or host.endswith('.' + s) for s in URL_SHORTENERS)

# ============================================================================
# SENDER CLUES
# ============================================================================

def public_domain_sender(email: EmailContent) -> Optional[str]:
    name, _, tld = email.sender_domain.rpartition('.')
    if name in PUBLIC_MAIL_PROVIDERS and tld in PUBLIC_MAIL_TLDS:
        return f"Sender uses a public email domain: {email.sender_email}"
    return None


def domain_misspelling(email: EmailContent) -> Optional[str]:
    if SUSPICIOUS_DOMAIN_INFIX.search(email.sender_domain):
        return f"Domain contains suspicious patterns: {email.sender_email}"
    return None


def sender_not_matching_brand(email: EmailContent) -> Optional[str]:
    if not email.sender_name or not email.sender_domain:
        return None
    display_name = email.sender_name.lower()
    for brand in SENDER_BRANDS:
        if brand in display_name and brand not in email.sender_domain:
            return f'Sender name mentions "{brand}" but email domain doesn\'t match'
    return None

# ============================================================================
# CONTENT / TONE
# ============================================================================

def spelling_grammar_issues(email: EmailContent) -> Optional[str]:
    if MISSPELLINGS.search(email.full_text):
        return "Contains common misspellings or grammar mistakes"
    return None


def urgent_language(email: EmailContent) -> Optional[str]:
    if URGENT_LANGUAGE.search(email.full_text):
        return "Uses urgent or time-sensitive language"
    return None


def tone_mismatch(email: EmailContent) -> Optional[str]:
    if CASUAL_TONE.search(email.body) and FORMAL_BRAND.search(email.full_text):
        return "Casual tone doesn't match formal brand communication"
    return None

# ============================================================================
# LINKS / ATTACHMENTS
# ============================================================================

def anchor_mismatch(email: EmailContent) -> Optional[str]:
    for href, text in ANCHOR.findall(email.body):
        anchor_text = text.lower()
        for brand, domain in BRAND_CANONICAL_DOMAINS.items():
            if brand in anchor_text:
                if not _resolves_to(href, domain):
                    return f'Link text mentions "{brand}" but URL points elsewhere: {href}'
                break
        else:
            if GENERIC_ANCHOR.search(anchor_text):
                parsed = _parse(href)
                scheme = parsed.scheme.lower() if parsed else ''
                if scheme not in ('http', 'https') or _is_shortener(href):
                    return f'Generic "click here" link: {href}'
    return None


def shortened_link(email: EmailContent) -> Optional[str]:
    match = SHORTENED_LINK.search(email.body)
    if match:
        return f"Contains shortened URL ({match.group(1).lower()})"
    return None


def http_not_https(email: EmailContent) -> Optional[str]:
    # Only the first insecure link is reported
    for url in HTTP_LINK.findall(email.body):
        lowered = url.lower()
        if lowered.startswith('http://') and _host(url) != 'localhost':
            return f"Link uses HTTP instead of HTTPS: {url}"
    return None


def unexpected_attachment(email: EmailContent) -> Optional[str]:
    if ATTACHMENT_MENTION.search(email.body):
        return "Email mentions attachments or files to download"
    return None

# ============================================================================
# SECURITY PRESSURE
# ============================================================================

def asks_for_credentials(email: EmailContent) -> Optional[str]:
    if CREDENTIAL_REQUEST.search(email.body):
        return "Asks for passwords, SSN, or other sensitive credentials"
    return None


def asks_for_payment(email: EmailContent) -> Optional[str]:
    if PAYMENT_REQUEST.search(email.full_text):
        return "Requests payment or financial information"
    return None


def threatens_negative_consequences(email: EmailContent) -> Optional[str]:
    if NEGATIVE_CONSEQUENCE.search(email.full_text):
        return "Threatens account suspension, legal action, or other consequences"
    return None


RULES: Tuple[Rule, ...] = (
    Rule('public_domain_sender', 'Public email domain', 1, 'sender', public_domain_sender),
    Rule('domain_misspelling', 'Suspicious domain pattern', 3, 'sender', domain_misspelling),
    Rule('sender_not_matching_brand', 'Brand name mismatch', 2, 'sender', sender_not_matching_brand),
    Rule('spelling_grammar_issues', 'Spelling or grammar errors', 1, 'content', spelling_grammar_issues),
    Rule('urgent_language', 'Urgent or threatening language', 2, 'content', urgent_language),
    Rule('tone_mismatch', 'Tone mismatch', 2, 'content', tone_mismatch),
    Rule('anchor_mismatch', 'Link text mismatch', 3, 'links', anchor_mismatch),
    Rule('shortened_link', 'Shortened URL', 2, 'links', shortened_link),
    Rule('http_not_https', 'Insecure HTTP link', 2, 'links', http_not_https),
    Rule('unexpected_attachment', 'Mentions attachments', 3, 'links', unexpected_attachment),
    Rule('asks_for_credentials', 'Requests sensitive information', 3, 'pressure', asks_for_credentials),
    Rule('asks_for_payment', 'Payment request', 3, 'pressure', asks_for_payment),
    Rule('threatens_negative_consequences', 'Threatening language', 3, 'pressure', threatens_negative_consequences),
)
