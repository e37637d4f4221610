"""
User-agent classification for click tracking.

Each detector is an ordered rule table of ``(predicate, label)`` pairs,
evaluated first-match-wins against the lower-cased user agent.
"""

import ipaddress
from collections.abc import Callable
from dataclasses import dataclass

UNKNOWN_DEVICE = "unknown"

Rule = tuple[Callable[[str], bool], str]


def _contains(*needles: str) -> Callable[[str], bool]:
    return lambda ua: any(needle in ua for needle in needles)


KNOWN_BOTS: tuple[str, ...] = (
    "googlebot",
    "bingbot",
    "yandexbot",
    "duckduckbot",
    "slurp",
    "baiduspider",
    "facebookexternalhit",
    "twitterbot",
    "linkedinbot",
    "embedly",
    "showyoubot",
    "outbrain",
    "pinterest",
    "developers.google.com",
    "slackbot",
    "vkshare",
    "w3c_validator",
    "redditbot",
    "applebot",
    "whatsapp",
    "flipboard",
    "tumblr",
    "bitlybot",
    "skypeuripreview",
    "nuzzel",
    "discordbot",
    "google page speed",
    "qwantify",
    "pinterestbot",
    "bitrix link preview",
    "xing-contenttabreceiver",
    "chrome-lighthouse",
    "telegrambot",
)

BOT_RULES: tuple[Rule, ...] = tuple((_contains(bot), bot) for bot in KNOWN_BOTS) + (
    (_contains("bot", "crawler", "spider", "scraper"), "generic"),
)

# Tablets before mobile: tablet UAs frequently also say "mobile".
DEVICE_RULES: tuple[Rule, ...] = (
    (_contains("ipad", "tablet", "playbook"), "tablet"),
    (
        _contains("mobile", "android", "iphone", "ipod", "windows phone", "blackberry"),
        "mobile",
    ),
    (_contains("windows", "macintosh", "linux", "x11"), "desktop"),
)

# Edge UAs contain "chrome"; Chrome UAs contain "safari".
BROWSER_RULES: tuple[Rule, ...] = (
    (_contains("edg/"), "Edge"),
    (lambda ua: "chrome" in ua and "chromium" not in ua, "Chrome"),
    (_contains("chromium"), "Chromium"),
    (_contains("firefox"), "Firefox"),
    (lambda ua: "safari" in ua and "chrome" not in ua, "Safari"),
    (_contains("opera", "opr"), "Opera"),
    (_contains("msie", "trident"), "Internet Explorer"),
)

OS_RULES: tuple[Rule, ...] = (
    (_contains("windows nt 10"), "Windows 10"),
    (_contains("windows nt 11"), "Windows 11"),
    (_contains("windows"), "Windows"),
    (_contains("mac os x"), "macOS"),
    (_contains("android"), "Android"),
    (_contains("iphone", "ipad"), "iOS"),
    (_contains("linux"), "Linux"),
    (_contains("chromeos"), "ChromeOS"),
)


def first_match(rules: tuple[Rule, ...], user_agent: str, default: str) -> str:
    ua = user_agent.lower()
    for predicate, label in rules:
        if predicate(ua):
            return label
    return default


@dataclass
class BotDetection:
    is_bot: bool
    bot_type: str | None = None


@dataclass
class DeviceInfo:
    """Parsed device information from user-agent."""

    device_type: str = UNKNOWN_DEVICE
    browser: str = "Unknown"
    os: str = "Unknown"
    is_bot: bool = False
    bot_type: str | None = None

    @property
    def short_device(self) -> str:
        return f"{self.browser} on {self.os}"


def detect_bot(user_agent: str | None) -> BotDetection:
    if not user_agent:
        return BotDetection(is_bot=False)
    label = first_match(BOT_RULES, user_agent, "")
    if label:
        return BotDetection(is_bot=True, bot_type=label)
    return BotDetection(is_bot=False)


def detect_device_type(user_agent: str | None) -> str:
    if not user_agent:
        return UNKNOWN_DEVICE
    return first_match(DEVICE_RULES, user_agent, UNKNOWN_DEVICE)


def detect_browser(user_agent: str | None) -> str:
    if not user_agent:
        return "Unknown"
    return first_match(BROWSER_RULES, user_agent, "Unknown")


def detect_os(user_agent: str | None) -> str:
    if not user_agent:
        return "Unknown"
    return first_match(OS_RULES, user_agent, "Unknown")


def anonymize_ip(ip: str | None) -> str | None:
    """
    Strip the host part of an address before it is stored.

    IPv4 keeps the first three octets (``192.168.1.57`` -> ``192.168.1.0``).
    IPv6 keeps the first four groups as written (``2001:db8:abcd:12::1`` ->
    ``2001:db8:abcd:12::``). Anything else is returned unchanged.
    """
    if not ip:
        return ip

    if ":" in ip:
        return ":".join(ip.split(":")[:4]) + "::"

    try:
        ipaddress.IPv4Address(ip)
    except ValueError:
        return ip
    octets = ip.split(".")
    octets[3] = "0"
    return ".".join(octets)


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    """
    Parse a user-agent string to extract device information.

    Args:
        user_agent: The user-agent string to parse.

    Returns:
        DeviceInfo object with parsed device details.
    """
    if not user_agent:
        return DeviceInfo()

    bot = detect_bot(user_agent)
    return DeviceInfo(
        device_type=detect_device_type(user_agent),
        browser=detect_browser(user_agent),
        os=detect_os(user_agent),
        is_bot=bot.is_bot,
        bot_type=bot.bot_type,
    )
