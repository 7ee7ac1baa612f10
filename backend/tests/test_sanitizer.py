import pytest

from learning_copilot.sanitizer import sanitize_response


def test_script_block_removed_and_text_kept():
    result = sanitize_response("<script>alert(1)</script>Hello")
    assert "Hello" in result.content
    assert "<script>" not in result.content
    assert "[SCRIPT REMOVED]" in result.content
    assert result.was_sanitized


def test_unterminated_script_tag_removed():
    result = sanitize_response("before <script>alert(1) after")
    assert "<script" not in result.content.lower()
    assert result.was_sanitized


@pytest.mark.parametrize("raw,placeholder", [
    ('<a href="javascript:alert(1)">x</a>', "[JAVASCRIPT REMOVED]"),
    ('<img src=x onerror="steal()">', "[EVENT REMOVED]"),
    ('<div onClick = "go()">', "[EVENT REMOVED]"),
    ("see data:image/png;base64,iVBORw0KGgo= here", "[DATA URL REMOVED]"),
])
def test_dangerous_patterns_get_placeholders(raw, placeholder):
    result = sanitize_response(raw)
    assert placeholder in result.content
    assert result.was_sanitized


def test_plain_markdown_untouched():
    text = "## Arrays\n\n- O(1) access\n- `arr[i]`\n\nOne more point on sorting."
    result = sanitize_response(text)
    assert result.content == text
    assert not result.was_sanitized


def test_whitespace_cleanup_is_not_sanitization():
    result = sanitize_response("  a" + "\n" * 12 + "b\0  ")
    assert result.content == "a\n\n\nb"
    assert not result.was_sanitized
