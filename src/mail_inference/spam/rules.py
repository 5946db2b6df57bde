"""
Deterministic rule-based spam signal.

Every rule contributes a fixed weight when it fires; the signal score is the
clamped sum. Rules look at the subject, the sender address, the plain-text
body, and (when present) the HTML body parsed with BeautifulSoup.
"""

from dataclasses import dataclass, field
import ipaddress
import re
from email.utils import parseaddr
from typing import Iterable, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup
import structlog

from mail_inference.models.results import SpamSignal


logger = structlog.get_logger(__name__)

SPAM_KEYWORDS = (
    "act now",
    "limited time",
    "winner",
    "you have won",
    "claim your prize",
    "free money",
    "risk-free",
    "guaranteed",
    "100% free",
    "no credit check",
    "click here",
    "urgent response",
    "wire transfer",
    "crypto giveaway",
    "lottery",
    "viagra",
    "unsubscribe now",
    "verify your account",
)

URL_SHORTENERS = frozenset({
    "bit.ly",
    "tinyurl.com",
    "goo.gl",
    "t.co",
    "ow.ly",
    "is.gd",
    "buff.ly",
    "rebrand.ly",
    "cutt.ly",
    "shorturl.at",
})

# Weight contributed by each rule when it fires
RULE_WEIGHTS = {
    "spam_keywords": 0.3,
    "shouting_subject": 0.15,
    "excessive_exclamation": 0.1,
    "url_shortener": 0.2,
    "ip_link": 0.25,
    "link_domain_mismatch": 0.15,
    "html_form": 0.2,
    "link_heavy_html": 0.1,
    "malformed_sender": 0.2,
}

MIN_SHOUTING_LETTERS = 6
EXCLAMATION_THRESHOLD = 3
LINK_HEAVY_THRESHOLD = 10
DOMAIN_MISMATCH_THRESHOLD = 2

_URL_RE = re.compile(r"https?://[^\s<>\"')]+", re.IGNORECASE)
_HOST_RE = re.compile(r"^[a-z0-9.-]+$")
_ADDRESS_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[a-z]{2,}$", re.IGNORECASE)


@dataclass(frozen=True)
class HtmlFeatures:
    """Structural features of an HTML body."""
    
    link_urls: list[str] = field(default_factory=list)
    has_form: bool = False
    
    @property
    def link_count(self) -> int:
        return len(self.link_urls)


def analyze_html(html: str) -> HtmlFeatures:
    """Extract link targets and form presence from an HTML fragment."""
    soup = BeautifulSoup(html, "html.parser")
    links = []
    for tag in soup.find_all(["a", "area"]):
        href = tag.get("href")
        if isinstance(href, str) and href.strip():
            links.append(href.strip())
    return HtmlFeatures(link_urls=links, has_form=soup.find("form") is not None)


def normalize_host(host: Optional[str]) -> Optional[str]:
    """
    Reduce a hostname to its registrable part (last two labels).
    
    IP literals are returned unchanged; invalid hosts give None.
    """
    if not host:
        return None
    candidate = host.strip().lower().rstrip(".").strip("[]")
    if not candidate:
        return None
    try:
        ipaddress.ip_address(candidate)
        return candidate
    except ValueError:
        pass
    if not _HOST_RE.match(candidate):
        return None
    labels = [label for label in candidate.split(".") if label]
    if not labels:
        return None
    return ".".join(labels[-2:])


def sender_domain(sender: str) -> Optional[str]:
    _, address = parseaddr(sender or "")
    if "@" not in address:
        return None
    return normalize_host(address.rsplit("@", 1)[1])


def link_host(link: str) -> Optional[str]:
    parsed = urlparse(link)
    host = parsed.hostname
    if not host and not parsed.scheme and parsed.path:
        host = urlparse(f"http://{link}").hostname
    return host


def is_ip_host(host: Optional[str]) -> bool:
    if not host:
        return False
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


def domain_mismatch_count(sender: str, links: Iterable[str]) -> int:
    """Count links whose registrable domain differs from the sender's."""
    own_domain = sender_domain(sender)
    link_domains = [d for d in (normalize_host(link_host(link)) for link in links) if d]
    if own_domain is None:
        return len(link_domains)
    return sum(1 for domain in link_domains if domain != own_domain)


class RuleEngine:
    """
    Deterministic spam heuristics.
    
    ``analyze`` never raises: a rule that blows up on odd input is logged
    and skipped.
    """
    
    def __init__(self, weights: Optional[dict[str, float]] = None):
        self.weights = dict(RULE_WEIGHTS)
        if weights:
            self.weights.update(weights)
    
    def analyze(
        self,
        subject: Optional[str],
        sender: Optional[str],
        body_text: Optional[str] = None,
        body_html: Optional[str] = None,
    ) -> SpamSignal:
        subject = subject or ""
        sender = sender or ""
        body_text = body_text or ""
        
        html = HtmlFeatures()
        if body_html:
            try:
                html = analyze_html(body_html)
            except Exception as e:
                logger.warning("HTML analysis failed", error=str(e))
        
        links = _URL_RE.findall(body_text) + html.link_urls
        
        checks = (
            ("spam_keywords", lambda: self._has_spam_keywords(subject, body_text)),
            ("shouting_subject", lambda: self._is_shouting(subject)),
            ("excessive_exclamation", lambda: (subject + body_text).count("!") >= EXCLAMATION_THRESHOLD),
            ("url_shortener", lambda: any(normalize_host(link_host(link)) in URL_SHORTENERS for link in links)),
            ("ip_link", lambda: any(is_ip_host(link_host(link)) for link in links)),
            ("link_domain_mismatch", lambda: domain_mismatch_count(sender, links) >= DOMAIN_MISMATCH_THRESHOLD),
            ("html_form", lambda: html.has_form),
            ("link_heavy_html", lambda: html.link_count >= LINK_HEAVY_THRESHOLD),
            ("malformed_sender", lambda: self._is_malformed_sender(sender)),
        )
        
        hits: list[str] = []
        for name, check in checks:
            try:
                fired = check()
            except Exception as e:
                logger.warning("Spam rule failed", rule=name, error=str(e))
                continue
            if fired:
                hits.append(name)
        
        score = min(1.0, max(0.0, sum(self.weights.get(name, 0.0) for name in hits)))
        logger.debug("Rule signal computed", score=round(score, 3), rule_hits=hits)
        return SpamSignal(score=score, rule_hits=hits)
    
    @staticmethod
    def _has_spam_keywords(subject: str, body_text: str) -> bool:
        haystack = f"{subject}\n{body_text}".lower()
        return any(keyword in haystack for keyword in SPAM_KEYWORDS)
    
    @staticmethod
    def _is_shouting(subject: str) -> bool:
        letters = [ch for ch in subject if ch.isalpha()]
        return len(letters) >= MIN_SHOUTING_LETTERS and all(ch.isupper() for ch in letters)
    
    @staticmethod
    def _is_malformed_sender(sender: str) -> bool:
        _, address = parseaddr(sender)
        return not _ADDRESS_RE.match(address or "")
