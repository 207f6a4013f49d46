"""Heuristic sensitivity classification from app identity, titles and text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .models import SensitivityLevel

MASK_TOKEN = "[MASKED]"

# Password managers and keychains.
BLOCKED_APP_BUNDLES: frozenset[str] = frozenset(
    bundle.lower()
    for bundle in (
        "com.apple.keychainaccess",
        "com.lastpass.LastPass",
        "com.agilebits.onepassword7",
        "com.agilebits.onepassword-osx",
        "com.1password.1password",
        "com.bitwarden.desktop",
        "com.dashlane.Dashlane",
        "1password.exe",
        "keepass.exe",
        "bitwarden.exe",
    )
)

# Personal messaging; metadata may be kept but never content.
MESSAGING_APP_BUNDLES: frozenset[str] = frozenset(
    bundle.lower()
    for bundle in (
        "com.apple.MobileSMS",
        "com.facebook.archon",
        "com.tinyspeck.slackmacgap",
        "com.hnc.Discord",
        "ru.keepcoder.Telegram",
        "net.whatsapp.WhatsApp",
        "com.kakao.KakaoTalkMac",
        "jp.naver.line.mac",
        "slack.exe",
        "discord.exe",
        "telegram.exe",
        "whatsapp.exe",
    )
)


@dataclass(frozen=True, slots=True)
class TitlePattern:
    keyword: str
    level: SensitivityLevel


_B = SensitivityLevel.BLOCKED
_H = SensitivityLevel.HIGH

TITLE_PATTERNS: tuple[TitlePattern, ...] = (
    # passwords
    TitlePattern("password", _B),
    TitlePattern("비밀번호", _B),
    TitlePattern("암호", _B),
    # sign-in pages
    TitlePattern("sign in", _H),
    TitlePattern("log in", _H),
    TitlePattern("login", _H),
    TitlePattern("로그인", _H),
    # payment cards
    TitlePattern("credit card", _B),
    TitlePattern("card number", _B),
    TitlePattern("신용카드", _B),
    TitlePattern("카드번호", _B),
    # banking
    TitlePattern("bank", _H),
    TitlePattern("banking", _H),
    TitlePattern("은행", _H),
    TitlePattern("account number", _H),
    TitlePattern("계좌", _H),
    TitlePattern("social security", _H),
    TitlePattern("주민등록", _H),
    # one-time codes
    TitlePattern("one-time", _B),
    TitlePattern("otp", _B),
    TitlePattern("인증번호", _B),
    TitlePattern("인증코드", _B),
    TitlePattern("two-factor", _H),
    TitlePattern("2fa", _H),
    # private browsing
    TitlePattern("private browsing", _B),
    TitlePattern("incognito", _B),
    TitlePattern("inprivate", _B),
    TitlePattern("시크릿", _B),
    TitlePattern("keychain", _B),
)

TEXT_DETECTORS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (name, re.compile(pattern, re.IGNORECASE))
    for name, pattern in (
        ("credit_card", r"\b\d{4}[- ]?\d{4}[- ]?\d{4}[- ]?\d{4}\b"),
        ("ssn", r"\b\d{3}-\d{2}-\d{4}\b"),
        ("national_id", r"\b\d{6}-\d{7}\b"),
        ("bank_account", r"\b\d{3,4}-\d{4}-\d{4}\b"),
        ("password_assignment", r"password\s*[:=]\s*\S+"),
        ("otp_code", r"\botp\s*[:=]?\s*\d{4,8}\b"),
    )
)


class SensitivityClassifier:
    """Maps app identity, window title and optional text to a sensitivity level.

    Classification is pure: the same inputs always give the same level.
    """

    def __init__(
        self,
        blocked_apps: frozenset[str] = BLOCKED_APP_BUNDLES,
        messaging_apps: frozenset[str] = MESSAGING_APP_BUNDLES,
        title_patterns: tuple[TitlePattern, ...] = TITLE_PATTERNS,
        text_detectors: tuple[tuple[str, re.Pattern[str]], ...] = TEXT_DETECTORS,
    ) -> None:
        self._blocked_apps = frozenset(app.lower() for app in blocked_apps)
        self._messaging_apps = frozenset(app.lower() for app in messaging_apps)
        self._title_patterns = title_patterns
        self._text_detectors = text_detectors

    def assess_from_metadata(self, bundle_id: str, window_title: str) -> SensitivityLevel:
        bundle = (bundle_id or "").lower()
        if bundle in self._blocked_apps:
            return SensitivityLevel.BLOCKED
        if bundle in self._messaging_apps:
            return SensitivityLevel.HIGH
        return self._assess_title(window_title)

    def assess_with_text(
        self, bundle_id: str, window_title: str, text: Optional[str]
    ) -> SensitivityLevel:
        level = self.assess_from_metadata(bundle_id, window_title)
        if level != SensitivityLevel.NONE or not text:
            return level
        # Text evidence is advisory: it escalates to HIGH, never to BLOCKED.
        if self.detect(text):
            return SensitivityLevel.HIGH
        return SensitivityLevel.NONE

    def detect(self, text: Optional[str]) -> list[str]:
        """Return the names of the text detectors that match ``text``."""
        if not text:
            return []
        return [name for name, regex in self._text_detectors if regex.search(text)]

    def mask_sensitive_text(self, text: str) -> str:
        masked = text
        for _, regex in self._text_detectors:
            masked = regex.sub(MASK_TOKEN, masked)
        return masked

    def _assess_title(self, window_title: str) -> SensitivityLevel:
        title = (window_title or "").lower()
        if not title:
            return SensitivityLevel.NONE
        level = SensitivityLevel.NONE
        for pattern in self._title_patterns:
            if pattern.level > level and pattern.keyword in title:
                level = pattern.level
                if level == SensitivityLevel.BLOCKED:
                    break
        return level
