import pytest

from screen_agent.models import SensitivityLevel
from screen_agent.sensitivity import MASK_TOKEN, SensitivityClassifier


@pytest.fixture
def classifier() -> SensitivityClassifier:
    return SensitivityClassifier()


@pytest.mark.parametrize(
    "bundle_id",
    ["com.agilebits.onepassword7", "com.bitwarden.desktop", "com.apple.keychainaccess"],
)
def test_password_managers_are_blocked_whatever_the_title(classifier, bundle_id):
    assert classifier.assess_from_metadata(bundle_id, "") == SensitivityLevel.BLOCKED
    assert classifier.assess_from_metadata(bundle_id, "Readme notes") == SensitivityLevel.BLOCKED


def test_bundle_ids_match_case_insensitively(classifier):
    assert (
        classifier.assess_from_metadata("COM.BITWARDEN.DESKTOP", "")
        == SensitivityLevel.BLOCKED
    )


def test_messaging_apps_are_high(classifier):
    assert (
        classifier.assess_from_metadata("com.tinyspeck.slackmacgap", "general")
        == SensitivityLevel.HIGH
    )


def test_blocked_set_wins_over_messaging_and_title(classifier):
    assert (
        classifier.assess_from_metadata("com.lastpass.LastPass", "Slack login")
        == SensitivityLevel.BLOCKED
    )


@pytest.mark.parametrize(
    "title",
    [
        "Change Password - Settings",
        "Enter your OTP",
        "Add credit card",
        "Private Browsing",
        "New Incognito Tab",
        "비밀번호 재설정",
        "Keychain items",
    ],
)
def test_blocking_title_keywords(classifier, title):
    assert classifier.assess_from_metadata("com.google.Chrome", title) == SensitivityLevel.BLOCKED


@pytest.mark.parametrize(
    "title",
    ["Sign in to GitHub", "Online Banking", "로그인", "Set up 2FA"],
)
def test_high_title_keywords(classifier, title):
    assert classifier.assess_from_metadata("com.google.Chrome", title) == SensitivityLevel.HIGH


def test_most_severe_title_keyword_wins(classifier):
    # "login" alone is HIGH but the password keyword escalates.
    assert (
        classifier.assess_from_metadata("com.google.Chrome", "Login - reset password")
        == SensitivityLevel.BLOCKED
    )


def test_ordinary_metadata_is_none(classifier):
    assert (
        classifier.assess_from_metadata("com.microsoft.VSCode", "segmenter.py — screen-agent")
        == SensitivityLevel.NONE
    )
    assert classifier.assess_from_metadata("", "") == SensitivityLevel.NONE


@pytest.mark.parametrize(
    "text",
    [
        "card 4111 1111 1111 1111 exp 12/29",
        "SSN 123-45-6789",
        "id 900101-1234567",
        "account 110-1234-5678",
        "password: hunter2",
        "Your OTP: 123456",
    ],
)
def test_sensitive_text_escalates_to_high(classifier, text):
    assert (
        classifier.assess_with_text("com.apple.Notes", "Notes", text) == SensitivityLevel.HIGH
    )


def test_text_never_escalates_to_blocked(classifier):
    text = "password=abc 4111-1111-1111-1111 123-45-6789"

    assert classifier.assess_with_text("com.apple.Notes", "Notes", text) == SensitivityLevel.HIGH


def test_text_is_ignored_when_metadata_already_sensitive(classifier):
    assert (
        classifier.assess_with_text("com.hnc.Discord", "chat", "nothing here")
        == SensitivityLevel.HIGH
    )


def test_missing_text_skips_text_detection(classifier):
    assert classifier.assess_with_text("com.apple.Notes", "Notes", None) == SensitivityLevel.NONE
    assert classifier.assess_with_text("com.apple.Notes", "Notes", "") == SensitivityLevel.NONE
    assert (
        classifier.assess_with_text("com.apple.Notes", "Notes", "lunch at noon")
        == SensitivityLevel.NONE
    )


def test_detect_names_matching_detectors(classifier):
    assert classifier.detect("SSN 123-45-6789 and password: x") == [
        "ssn",
        "password_assignment",
    ]
    assert classifier.detect(None) == []


def test_mask_sensitive_text_replaces_every_match(classifier):
    masked = classifier.mask_sensitive_text(
        "pay 4111 1111 1111 1111 then password: hunter2, ssn 123-45-6789"
    )

    assert "4111" not in masked
    assert "hunter2" not in masked
    assert "6789" not in masked
    assert masked.count(MASK_TOKEN) == 3
    assert masked.startswith("pay ")


def test_mask_leaves_plain_text_alone(classifier):
    assert classifier.mask_sensitive_text("meeting notes") == "meeting notes"


def test_classification_is_deterministic(classifier):
    results = {
        classifier.assess_from_metadata("com.google.Chrome", "Online banking login")
        for _ in range(5)
    }
    assert results == {SensitivityLevel.HIGH}
