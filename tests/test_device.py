import pytest

from affiliate_hub.utils.device import (
    anonymize_ip,
    detect_bot,
    detect_browser,
    detect_device_type,
    detect_os,
    parse_user_agent,
)

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/120.0.2210.91"
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
SAFARI_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Safari/605.1.15"
)
IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
ANDROID_PHONE = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)


@pytest.mark.parametrize(
    "user_agent,bot_type",
    [
        ("Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)", "googlebot"),
        ("Mozilla/5.0 (compatible; bingbot/2.0)", "bingbot"),
        ("facebookexternalhit/1.1", "facebookexternalhit"),
        ("TelegramBot (like TwitterBot)", "twitterbot"),
        ("Mozilla/5.0 (compatible; SomeCrawler/1.0)", "generic"),
        ("my-spider/0.1", "generic"),
    ],
)
def test_detect_bot(user_agent, bot_type):
    result = detect_bot(user_agent)
    assert result.is_bot
    assert result.bot_type == bot_type


def test_browsers_are_not_bots():
    assert not detect_bot(CHROME_WINDOWS).is_bot
    assert not detect_bot(None).is_bot


def test_device_rules_check_tablet_before_mobile():
    assert detect_device_type(IPAD) == "tablet"
    assert detect_device_type(ANDROID_PHONE) == "mobile"
    assert detect_device_type(CHROME_WINDOWS) == "desktop"
    assert detect_device_type("curl/7.68.0") == "unknown"
    assert detect_device_type("") == "unknown"


@pytest.mark.parametrize(
    "user_agent,browser",
    [
        (EDGE_WINDOWS, "Edge"),
        (CHROME_WINDOWS, "Chrome"),
        (FIREFOX_LINUX, "Firefox"),
        (SAFARI_MAC, "Safari"),
        ("Mozilla/5.0 (X11; Linux x86_64) Chromium/119.0 Safari/537.36", "Chromium"),
        ("Opera/9.80 (Windows NT 6.1) Presto/2.12", "Opera"),
        ("Mozilla/5.0 (Windows NT 6.1; Trident/7.0; rv:11.0) like Gecko", "Internet Explorer"),
        ("curl/7.68.0", "Unknown"),
    ],
)
def test_detect_browser(user_agent, browser):
    assert detect_browser(user_agent) == browser


@pytest.mark.parametrize(
    "user_agent,os_name",
    [
        (CHROME_WINDOWS, "Windows 10"),
        ("Mozilla/5.0 (Windows NT 6.1; Win64)", "Windows"),
        (SAFARI_MAC, "macOS"),
        (ANDROID_PHONE, "Android"),
        (FIREFOX_LINUX, "Linux"),
        ("Mozilla/5.0 (X11; CrOS x86_64) chromeos", "ChromeOS"),
        ("curl/7.68.0", "Unknown"),
    ],
)
def test_detect_os(user_agent, os_name):
    assert detect_os(user_agent) == os_name


@pytest.mark.parametrize(
    "ip,expected",
    [
        ("192.168.1.57", "192.168.1.0"),
        ("8.8.8.8", "8.8.8.0"),
        ("2001:db8:abcd:12:1:2:3:4", "2001:db8:abcd:12::"),
        ("2001:db8:abcd:12::1", "2001:db8:abcd:12::"),
        ("not-an-ip", "not-an-ip"),
        ("unknown", "unknown"),
        (None, None),
        ("", ""),
    ],
)
def test_anonymize_ip(ip, expected):
    assert anonymize_ip(ip) == expected


def test_parse_user_agent_bundles_detectors():
    info = parse_user_agent(ANDROID_PHONE)
    assert info.device_type == "mobile"
    assert info.browser == "Chrome"
    assert info.os == "Android"
    assert not info.is_bot
    assert info.short_device == "Chrome on Android"


def test_parse_user_agent_without_header():
    info = parse_user_agent(None)
    assert info.device_type == "unknown"
    assert info.browser == "Unknown"
    assert not info.is_bot
