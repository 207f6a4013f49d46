import pytest

from screen_agent.normalization import clean_window_title, generate_summary, generate_tags


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Pull requests - Google Chrome", "Pull requests"),
        ("MDN Web Docs — Mozilla Firefox", "MDN Web Docs"),
        ("Apple – Safari", "Apple"),
        ("segmenter.py - Visual Studio Code", "segmenter.py"),
        ("Inbox and 3 more pages - Microsoft Edge", "Inbox"),
        ("  spaced    out  ", "spaced out"),
        ("", ""),
    ],
)
def test_clean_window_title(title, expected):
    assert clean_window_title(title) == expected


def test_summary_uses_cleaned_title():
    assert (
        generate_summary("Google Chrome", "Pull requests - Google Chrome")
        == "Google Chrome: Pull requests"
    )


def test_summary_without_title():
    assert generate_summary("Finder", "") == "Using Finder"
    assert generate_summary("Finder", None) == "Using Finder"


def test_tags_from_bundle_and_title():
    assert generate_tags("com.google.Chrome", "Google Search") == ["browsing", "search"]
    assert generate_tags("com.microsoft.VSCode", "Build failed") == ["coding", "error"]
    assert generate_tags("com.apple.mail", "Inbox") == ["email"]
    assert generate_tags("com.tinyspeck.slackmacgap", "") == ["communication"]
    assert generate_tags("com.googlecode.iterm2", "") == ["terminal", "coding"]


def test_tags_default_to_general():
    assert generate_tags("com.example.unknown", "Untitled") == ["general"]
    assert generate_tags(None, None) == ["general"]


def test_tags_follow_rule_order_not_match_order():
    tags = generate_tags("com.figma.Desktop", "Preferences - search")

    assert tags == ["design", "settings", "search"]
