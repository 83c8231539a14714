import pytest

from page_analyzer.core.errors import InvalidURLError
from page_analyzer.core.urlcheck import validate_url


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://example.com", "https://example.com"),
        ("  HTTP://Example.COM/Path?q=1  ", "http://example.com/Path?q=1"),
        ("example.com", "https://example.com"),
        ("example.com/a/b", "https://example.com/a/b"),
        ("localhost:8080/x", "https://localhost:8080/x"),
        ("127.0.0.1", "https://127.0.0.1"),
        ("[::1]:8443/", "https://[::1]:8443/"),
        ("http://example.com:8080/", "http://example.com:8080/"),
        ("https://example.com/a b", "https://example.com/a%20b"),
    ],
)
def test_accepts_and_canonicalizes(raw, expected):
    assert validate_url(raw) == expected


@pytest.mark.parametrize(
    "raw, kind",
    [
        ("", "empty"),
        ("   ", "empty"),
        ("https://example.com/" + "a" * 2100, "too-long"),
        ("https://exa\x01mple.com", "control-chars"),
        ("https://example.com/\x7f", "control-chars"),
        ("https://[::1", "parse-error"),
        ("ftp://example.com", "bad-scheme"),
        ("mailto:someone@example.com", "bad-scheme"),
        ("foo", "bad-scheme"),
        ("https://", "bad-host"),
        ("https://:8080/", "bad-host"),
        ("https://user:pw@example.com", "userinfo-present"),
        ("https://user@example.com/", "userinfo-present"),
        ("https://example.com:0", "bad-port"),
        ("https://example.com:70000", "bad-port"),
        ("https://example.com:abc", "bad-port"),
    ],
)
def test_rejects_with_kind(raw, kind):
    with pytest.raises(InvalidURLError) as exc:
        validate_url(raw)
    assert exc.value.kind == kind


def test_length_limit_is_inclusive():
    base = "https://example.com/"
    raw = base + "a" * (2048 - len(base))
    assert len(raw) == 2048
    assert validate_url(raw) == raw
