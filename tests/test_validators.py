from shortlinks.core.validators import (
    is_reserved_short_code,
    is_valid_short_code,
    is_valid_url,
    sanitize_short_code,
    validate_url_length,
)


class TestURLValidation:
    """Test URL validation function."""

    def test_valid_urls(self):
        valid_urls = [
            "http://example.com",
            "https://example.com",
            "https://www.example.com/path/to/page",
            "http://subdomain.example.com:8080/path?query=value",
            "http://localhost:3000/dashboard",
            "https://example.com/wiki/metadata:overview",
            "https://example.com/search?q=file:report.pdf",
            "https://example.com/docs/javascript:void",
        ]
        for url in valid_urls:
            assert is_valid_url(url), f"Should be valid: {url}"

    def test_invalid_urls(self):
        invalid_urls = [
            "not-a-url",
            "ftp://example.com",  # Only http/https
            "example.com",  # Missing scheme
            "",
            "http://",  # Missing domain
            "javascript:alert(1)",
            "data:text/html,<script>alert(1)</script>",
            "file:///etc/passwd",
            "https://intranet/page",  # No dot in host
            "https://example.com:99999/",  # Port out of range
            "https://exa mple.com/",
        ]
        for url in invalid_urls:
            assert not is_valid_url(url), f"Should be invalid: {url}"

    def test_rejects_overlong_urls(self):
        url = "https://example.com/" + "a" * 2048
        assert not validate_url_length(url)
        assert not is_valid_url(url)


class TestShortCodeValidation:

    def test_length_and_alphabet_policy(self):
        assert is_valid_short_code("abc123", 6, 8)
        assert is_valid_short_code("ABCdef12", 6, 8)
        assert not is_valid_short_code("abc12", 6, 8)
        assert not is_valid_short_code("abcdefghi", 6, 8)
        assert not is_valid_short_code("abc-123", 6, 8)
        assert not is_valid_short_code("abc 123", 6, 8)

    def test_reserved_words_are_case_insensitive(self):
        assert is_reserved_short_code("health")
        assert is_reserved_short_code("HEALTH")
        assert not is_reserved_short_code("healthy1")

    def test_sanitize_short_code(self):
        assert sanitize_short_code(" abc123 ") == "abc123"
        assert sanitize_short_code("../etc") is None
        assert sanitize_short_code("") is None
        assert sanitize_short_code("a" * 21) is None
