"""
Tests for the response sanitizer.
"""

import random
import unicodedata

import pytest

from prompt_improver.agents.sanitizer import (
    parse_json_object,
    sanitize,
    strip_code_fence,
    strip_control_characters,
)
from prompt_improver.errors import ResponseParseError


def _has_bad_controls(text: str) -> bool:
    return any(unicodedata.category(ch) == "Cc" and ch not in "\t\n\r" for ch in text)


class TestCodeFences:
    """Test fence stripping."""

    def test_json_fence_removed(self):
        """Test a language-tagged fence is stripped."""
        raw = '```json\n{"a": 1}\n```'
        assert sanitize(raw) == '{"a": 1}'

    def test_bare_fence_removed(self):
        """Test a fence without language tag is stripped."""
        assert sanitize('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_single_line_fence(self):
        """Test fence markers on the same line as content."""
        assert sanitize('```json {"a": 1}```') == '{"a": 1}'

    def test_truncated_fence_loses_opening_marker(self):
        """Test an opened but never closed fence."""
        result = sanitize('```json\n{"a": 1')
        assert "```" not in result
        assert result == '{"a": 1'

    def test_dangling_closing_fence(self):
        """Test a closing fence without an opening one."""
        assert sanitize('{"a": 1}\n```') == '{"a": 1}'

    def test_empty_fenced_block(self):
        """Test an empty fenced block sanitizes to empty text."""
        assert sanitize("```json\n```") == ""
        assert sanitize("```") == ""

    def test_unfenced_text_unchanged(self):
        """Test text without fences passes through untouched."""
        raw = '  {"a": "keep the spaces"}  '
        assert strip_code_fence(raw) == raw
        assert sanitize(raw) == raw

    def test_inner_backticks_preserved(self):
        """Test only the enclosing fence is removed."""
        raw = '```json\n{"code": "use `x` here"}\n```'
        assert sanitize(raw) == '{"code": "use `x` here"}'

    @pytest.mark.parametrize("body", ['{"k": "v"}', "plain text", "line1\nline2"])
    def test_fenced_output_non_empty_when_body_non_empty(self, body):
        """Test fence removal keeps a non-empty body."""
        result = sanitize(f"```text\n{body}\n```")
        assert "```" not in result
        assert result == body


class TestControlCharacters:
    """Test control character removal."""

    def test_c0_controls_removed(self):
        """Test NUL, BEL, ESC and friends are dropped."""
        raw = '{"a":\x00 "b\x07c\x1b"}'
        assert sanitize(raw) == '{"a": "bc"}'

    def test_del_and_c1_removed(self):
        """Test DEL and C1 controls are dropped."""
        assert strip_control_characters("a\x7fb\x85c\x9fd") == "abcd"

    def test_whitespace_controls_kept(self):
        """Test tab, newline and carriage return survive."""
        assert strip_control_characters("a\tb\nc\r\nd") == "a\tb\nc\r\nd"

    def test_non_ascii_text_kept(self):
        """Test printable non-ASCII characters are preserved."""
        raw = '{"prompt": "Écris un article sur l\'IA, 日本語"}'
        assert sanitize(raw) == raw

    def test_injected_controls_fuzz(self):
        """Test every C0/C1 control injected into JSON is removed."""
        controls = [chr(c) for c in list(range(0, 32)) + [127] + list(range(128, 160))]
        raw = '{"a": "' + "x".join(controls) + '"}'
        assert not _has_bad_controls(sanitize(raw))


class TestEncoding:
    """Test encoding repair."""

    def test_invalid_utf8_bytes_dropped(self):
        """Test undecodable byte sequences become empty strings."""
        raw = b'{"a": "b\xff\xfec"}'
        assert sanitize(raw) == '{"a": "bc"}'

    def test_valid_utf8_bytes_decoded(self):
        """Test valid UTF-8 bytes decode normally."""
        assert sanitize('{"a": "ü"}'.encode("utf-8")) == '{"a": "ü"}'

    def test_lone_surrogates_dropped(self):
        """Test unencodable code points are removed from str input."""
        assert sanitize('{"a": "b\ud800c"}') == '{"a": "bc"}'

    def test_bom_removed(self):
        """Test a leading byte order mark is removed."""
        assert sanitize('\ufeff{"a": 1}') == '{"a": 1}'

    def test_mixed_encoding_artifacts(self):
        """Test fence, controls and bad bytes together."""
        raw = b'```json\n{"a": "\x00ok\xc3"}\n```'
        assert sanitize(raw) == '{"a": "ok"}'


class TestEmptyInput:
    """Test empty and missing input."""

    def test_none(self):
        assert sanitize(None) == ""

    def test_empty_string(self):
        assert sanitize("") == ""

    def test_empty_bytes(self):
        assert sanitize(b"") == ""


class TestParseJsonObject:
    """Test JSON object parsing."""

    def test_parses_object(self):
        assert parse_json_object('{"a": [1, 2]}') == {"a": [1, 2]}

    def test_empty_text_fails(self):
        with pytest.raises(ResponseParseError, match="empty"):
            parse_json_object("   ")

    def test_invalid_json_fails(self):
        with pytest.raises(ResponseParseError, match="not valid JSON"):
            parse_json_object('{"a": 1')

    def test_array_top_level_fails(self):
        with pytest.raises(ResponseParseError, match="JSON object"):
            parse_json_object("[1, 2]")

    def test_no_bracket_repair(self):
        """Test trailing garbage is not repaired."""
        with pytest.raises(ResponseParseError):
            parse_json_object('{"a": 1}}')


# Characters a model reply may contain; no backticks, so fences only come from the wrapper
BODY_ALPHABET = 'abcxyzABC019 {}[]:,."\n\téü日本'
BLANK_ALPHABET = " \n\t"
FENCE_TAGS = ["", "json", "JSON", "python", "text"]
STRIPPED_CONTROLS = [chr(c) for c in list(range(0, 9)) + [11, 12] + list(range(14, 32)) + [127] + list(range(128, 160))]
# Bytes that can never appear in UTF-8, so they cannot merge with their neighbours
INVALID_BYTES = [0xC0, 0xC1] + list(range(0xF5, 0x100))

SEEDS = range(40)


def _random_body(rng: random.Random) -> str:
    alphabet = BLANK_ALPHABET if rng.random() < 0.2 else BODY_ALPHABET
    return "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 40)))


def _inject_controls(rng: random.Random, text: str) -> str:
    chars = list(text)
    for _ in range(rng.randint(0, 8)):
        chars.insert(rng.randint(0, len(chars)), rng.choice(STRIPPED_CONTROLS))
    return "".join(chars)


def _inject_garbage(rng: random.Random, text: str) -> bytes:
    """Encode text and splice invalid bytes in at character boundaries."""
    pieces = [ch.encode("utf-8") for ch in text]
    for _ in range(rng.randint(0, 8)):
        pieces.insert(rng.randint(0, len(pieces)), bytes([rng.choice(INVALID_BYTES)]))
    return b"".join(pieces)


class TestSanitizerFuzz:
    """Randomized replies: fences, truncation, control characters and broken bytes."""

    @pytest.mark.parametrize("seed", SEEDS)
    def test_fenced_reply(self, seed):
        rng = random.Random(seed)
        body = _random_body(rng)
        raw = _inject_controls(rng, f"```{rng.choice(FENCE_TAGS)}\n{body}\n```")

        result = sanitize(raw)

        assert "```" not in result
        assert not _has_bad_controls(result)
        assert result == body.strip()
        assert bool(result) == bool(body.strip())

    @pytest.mark.parametrize("seed", SEEDS)
    def test_truncated_reply(self, seed):
        rng = random.Random(seed)
        body = _random_body(rng)
        opening = f"```{rng.choice(FENCE_TAGS)}\n"
        full = f"{opening}{body}\n```"
        cut = rng.randint(0, len(full))
        raw = _inject_controls(rng, full[:cut])

        result = sanitize(raw)

        kept = body[:max(0, cut - len(opening))]
        assert "```" not in result
        assert not _has_bad_controls(result)
        # A cut inside the closing fence leaves at most two backticks behind
        assert result.rstrip("`").strip() == kept.strip()

    @pytest.mark.parametrize("seed", SEEDS)
    def test_reply_with_invalid_bytes(self, seed):
        rng = random.Random(seed)
        body = _random_body(rng)
        raw = _inject_garbage(rng, _inject_controls(rng, f"```{rng.choice(FENCE_TAGS)}\n{body}\n```"))

        result = sanitize(raw)

        assert "```" not in result
        assert not _has_bad_controls(result)
        assert result == body.strip()

    @pytest.mark.parametrize("seed", SEEDS)
    def test_blank_reply(self, seed):
        rng = random.Random(seed)
        blank = "".join(rng.choice(BLANK_ALPHABET) for _ in range(rng.randint(0, 10)))
        raw = _inject_garbage(rng, _inject_controls(rng, blank))

        assert sanitize(raw).strip() == ""
