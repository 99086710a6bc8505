"""
Device / browser / OS classification and referrer + UTM parsing.

Classification is rule-based and order-sensitive:
  - Device: tablet patterns BEFORE mobile (tablet UAs often contain "Mobile")
  - Browser: Firefox, Edge, Chrome, Safari-without-Chrome, Opera
    (Edge and Safari UAs carry "Chrome"/"Safari" substrings)
  - OS: iPhone/iPad/iOS BEFORE "Mac OS" (iOS Safari UA contains "Mac OS")

Empty user agents classify as None ("unknown"), never desktop.
"""

import re
from urllib.parse import parse_qs, urlparse

from user_agents import parse as parse_ua

# iPad is deliberately absent from MOBILE_PATTERN
TABLET_PATTERN = re.compile(r"tablet|ipad|android(?!.*mobile)|kindle|silk", re.IGNORECASE)
MOBILE_PATTERN = re.compile(r"mobile|iphone|ipod|android.*mobile|windows phone|blackberry", re.IGNORECASE)

REFERRER_LABELS = {
    "t.co": "Twitter/X",
    "twitter.com": "Twitter/X",
    "x.com": "Twitter/X",
    "facebook.com": "Facebook",
    "fb.me": "Facebook",
    "linkedin.com": "LinkedIn",
    "lnkd.in": "LinkedIn",
    "instagram.com": "Instagram",
    "reddit.com": "Reddit",
    "youtube.com": "YouTube",
    "youtu.be": "YouTube",
    "tiktok.com": "TikTok",
    "pinterest.com": "Pinterest",
    "whatsapp.com": "WhatsApp",
    "telegram.org": "Telegram",
    "discord.com": "Discord",
    "github.com": "GitHub",
    "medium.com": "Medium",
    "dev.to": "Dev.to",
    "hashnode.com": "Hashnode",
}

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")


# --- User agent ---

def detect_device_type(ua: str | None) -> str | None:
    if not ua:
        return None
    if TABLET_PATTERN.search(ua):
        return "tablet"
    if MOBILE_PATTERN.search(ua):
        return "mobile"
    return "desktop"


def detect_browser(ua: str | None) -> str | None:
    if not ua:
        return None
    if "Firefox/" in ua:
        return "Firefox"
    if "Edg/" in ua:
        return "Edge"
    if "Chrome/" in ua:
        return "Chrome"
    if "Safari/" in ua and "Chrome/" not in ua:
        return "Safari"
    if "Opera/" in ua or "OPR/" in ua:
        return "Opera"
    return "Other"


def detect_os(ua: str | None) -> str | None:
    if not ua:
        return None
    if "iPhone" in ua:
        return "iOS"
    if "iPad" in ua:
        return "iPadOS"
    if "iOS" in ua:
        return "iOS"
    if "Android" in ua:
        return "Android"
    if "Windows" in ua:
        return "Windows"
    if "Mac OS" in ua:
        return "macOS"
    if "Linux" in ua:
        return "Linux"
    return "Other"


def describe_user_agent(ua: str | None) -> dict:
    """Version strings for display. Classification stays with the rules above."""
    if not ua:
        return {"browser_version": None, "os_version": None}

    parsed = parse_ua(ua)
    return {
        "browser_version": ".".join(str(v) for v in parsed.browser.version if v is not None) or None,
        "os_version": ".".join(str(v) for v in parsed.os.version if v is not None) or None,
    }


# --- Referrer ---

def _hostname(url: str) -> str | None:
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    host = parsed.hostname
    if host.startswith("www."):
        host = host[4:]
    return host


def parse_referrer_domain(referrer: str | None) -> str | None:
    """Hostname without a leading www., or None when empty/invalid."""
    if not referrer:
        return None
    return _hostname(referrer)


def referrer_label(domain: str | None) -> str:
    if not domain:
        return "Direct"
    return REFERRER_LABELS.get(domain, domain)


def parse_referrer(referrer: str | None) -> str:
    """Friendly label ("Twitter/X"), bare domain, "Direct", or "Unknown"."""
    if not referrer:
        return "Direct"
    host = _hostname(referrer)
    if host is None:
        return "Unknown"
    return REFERRER_LABELS.get(host, host)


# --- UTM ---

def parse_utm_params(url: str | None) -> dict[str, str]:
    if not url:
        return {}
    try:
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            return {}
        query = parse_qs(parsed.query)
    except ValueError:
        return {}

    params = {}
    for key in UTM_KEYS:
        values = query.get(key)
        if values and values[0]:
            params[key] = values[0]
    return params


# --- URL helpers (link creation) ---

def is_valid_url(url: str | None) -> bool:
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if any(c.isspace() for c in url):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_url(url: str) -> str:
    trimmed = url.strip()
    if not trimmed.startswith(("http://", "https://")):
        return "https://" + trimmed
    return trimmed


def extract_title_from_url(url: str) -> str:
    host = _hostname(url)
    if host is None:
        return "Untitled Link"
    path = urlparse(url).path.replace("/", " ").strip()
    if len(path) > 2:
        return f"{host} - {path[:30]}"
    return host
