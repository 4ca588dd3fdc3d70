"""Unit tests for the placeholder_sanitizer module."""
import pytest

from ltf_translator.placeholder_sanitizer import (
    NewlineMode,
    clean_translated_text,
    restore,
    sanitize
)


class TestSanitize:

    def test_bracket_placeholder_is_tokenized(self):
        cleaned, placeholder_map = sanitize("Score [%num#1] goals")

        assert cleaned == "Score __BRACKET_0__ goals"
        assert placeholder_map == {"__BRACKET_0__": "[%num#1]"}

    def test_space_inserted_next_to_alphanumerics(self):
        cleaned, _ = sanitize("Score[%num#1]goals")

        assert cleaned == "Score __BRACKET_0__ goals"

    def test_no_space_next_to_punctuation(self):
        cleaned, _ = sanitize("([%name#1]), {team}!")

        assert cleaned == "(__BRACKET_0__), __BRACE_1__!"

    def test_brackets_and_braces_share_one_counter(self):
        cleaned, placeholder_map = sanitize("[%name#1] joins {team} from [%club#2]")

        assert cleaned == "__BRACKET_0__ joins __BRACE_2__ from __BRACKET_1__"
        assert placeholder_map == {
            "__BRACKET_0__": "[%name#1]",
            "__BRACKET_1__": "[%club#2]",
            "__BRACE_2__": "{team}",
        }

    def test_spans_are_not_greedy(self):
        cleaned, placeholder_map = sanitize("[a] vs [b]")

        assert cleaned == "__BRACKET_0__ vs __BRACKET_1__"
        assert list(placeholder_map.values()) == ["[a]", "[b]"]

    def test_text_without_placeholders_is_unchanged(self):
        cleaned, placeholder_map = sanitize("Transfer budget adjusted")

        assert cleaned == "Transfer budget adjusted"
        assert placeholder_map == {}
        assert restore(cleaned, placeholder_map) == "Transfer budget adjusted"

    def test_token_collision_is_skipped(self):
        cleaned, placeholder_map = sanitize("__BRACKET_0__ [x]")

        assert cleaned == "__BRACKET_0__ __BRACKET_1__"
        assert placeholder_map == {"__BRACKET_1__": "[x]"}

    def test_escaped_newlines_become_spaces(self):
        cleaned, _ = sanitize("\\nLine one\\nLine two\\n", NewlineMode.SPACE)

        assert cleaned == "Line one Line two"

    def test_escaped_newlines_preserved(self):
        cleaned, _ = sanitize("\\n\\nLine one\\nLine two\\n", NewlineMode.PRESERVE)

        assert cleaned == "Line one\\nLine two"

    def test_long_whitespace_runs_collapse(self):
        assert sanitize("Kick    off")[0] == "Kick off"
        assert sanitize("Kick \t\t off")[0] == "Kick off"
        assert sanitize("Kick  off")[0] == "Kick  off"

    def test_only_escaped_newlines_sanitize_to_empty(self):
        assert sanitize("\\n\\n") == ("", {})

    def test_non_string_input(self):
        with pytest.raises(ValueError):
            sanitize(None)


class TestRestore:

    def test_restores_translated_placeholder(self):
        _, placeholder_map = sanitize("Score [%num#1] goals")

        assert restore("Cetak __BRACKET_0__ gol", placeholder_map) == "Cetak [%num#1] gol"

    def test_reordered_tokens(self):
        cleaned, placeholder_map = sanitize("[%name#1] joins {team}")

        assert cleaned == "__BRACKET_0__ joins __BRACE_1__"
        assert restore("__BRACE_1__ merekrut __BRACKET_0__", placeholder_map) == "{team} merekrut [%name#1]"

    def test_bracket_inside_brace_is_restored(self):
        cleaned, placeholder_map = sanitize("Pick {a [b] c} now")

        assert cleaned == "Pick __BRACE_1__ now"
        assert restore(cleaned, placeholder_map) == "Pick {a [b] c} now"
        assert restore("Pilih __BRACE_1__ sekarang", placeholder_map) == "Pilih {a [b] c} sekarang"

    def test_glued_token_is_still_restored(self):
        assert restore("__BRACKET_0__gol", {"__BRACKET_0__": "[%num#1]"}) == "[%num#1]gol"

    def test_missing_token_is_not_an_error(self):
        assert restore("Cetak gol", {"__BRACKET_0__": "[%num#1]"}) == "Cetak gol"

    def test_long_space_runs_collapse(self):
        assert restore("  Cetak   gol ", {}) == "Cetak gol"
        assert restore("Cetak  gol", {}) == "Cetak  gol"

    @pytest.mark.parametrize("source", [
        "Score [%num#1] goals",
        "[%name#1] signed for {club}",
        "{a}{b}[c]",
        "Nothing to protect here",
    ])
    def test_identity_translation_restores_source(self, source):
        cleaned, placeholder_map = sanitize(source)

        assert restore(cleaned, placeholder_map).replace(" ", "") == source.replace(" ", "")


class TestNewlineMode:

    def test_from_config(self):
        assert NewlineMode.from_config("PRESERVE") is NewlineMode.PRESERVE
        assert NewlineMode.from_config("space") is NewlineMode.SPACE

    def test_unknown_value(self):
        with pytest.raises(ValueError, match="Unknown newline mode"):
            NewlineMode.from_config("crlf")


class TestCleanTranslatedText:

    def test_strips_added_quotes(self):
        assert clean_translated_text('"Halo dunia"', "Hello world") == "Halo dunia"

    def test_keeps_quotes_present_in_original(self):
        assert clean_translated_text('"Halo dunia"', '"Hello world"') == '"Halo dunia"'

    def test_strips_added_brackets(self):
        assert clean_translated_text("[Halo]", "Hello") == "Halo"

    def test_surrounding_whitespace(self):
        assert clean_translated_text("  Halo \n", "Hello") == "Halo"
