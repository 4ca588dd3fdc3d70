"""Unit tests for the rejection_classifier module."""
import pytest

from ltf_translator.rejection_classifier import RejectionClassifier, compile_patterns, is_rejection


class TestIsRejection:

    @pytest.mark.parametrize("response", [
        "Maaf, saya tidak dapat menerjemahkan teks ini.",
        "Teks ini tidak lengkap, silakan berikan konteks.",
        "Sorry, I can't assist with that.",
        "I'm unable to translate this without more information.",
        "Please provide the full sentence.",
        "SORRY, I CANNOT HELP",
    ])
    def test_keyword_refusals(self, response):
        assert is_rejection(response)

    @pytest.mark.parametrize("response", [
        "Sorry to interrupt, but the text seems cut off.",
        "I can only assist with translation requests.",
        "Could you please clarify what this refers to?",
        "This needs additional context to translate.",
        "I'm here to help with translations.",
    ])
    def test_pattern_refusals(self, response):
        assert is_rejection(response)

    @pytest.mark.parametrize("response", [
        "Manajemen berharap kita bisa finis di papan atas.",
        "Dana transfer sudah disesuaikan.",
        "Kita benar-benar menguasai pertandingan.",
        "Cetak __BRACKET_0__ gol",
    ])
    def test_translations_are_not_refusals(self, response):
        assert not is_rejection(response)

    def test_empty_response_is_not_a_refusal(self):
        assert not is_rejection("")

    def test_translation_containing_a_keyword_is_flagged(self):
        # "Maaf" is a legitimate word in a translated apology line.
        assert is_rejection("Maaf, pelatih tidak bisa hadir.")

    def test_custom_lists(self):
        patterns = compile_patterns([r"\bnope\b"])

        assert is_rejection("Nope.", keywords=[], patterns=patterns)
        assert not is_rejection("Maaf", keywords=[], patterns=patterns)


class TestRejectionClassifier:

    def test_defaults_still_apply(self):
        classifier = RejectionClassifier()

        assert classifier("Maaf, saya tidak dapat menerjemahkan teks ini.")
        assert not classifier("Dana transfer sudah disesuaikan.")

    def test_extra_keywords_are_case_insensitive(self):
        classifier = RejectionClassifier(extra_keywords=["Mohon Berikan"])

        assert classifier("Mohon berikan teks lengkap.")

    def test_extra_patterns(self):
        classifier = RejectionClassifier(extra_patterns=[r"\bteks\b.*\bterpotong\b"])

        assert classifier("Teks ini sepertinya terpotong.")
        assert not RejectionClassifier()("Teks ini sepertinya terpotong.")

    def test_blank_entries_are_ignored(self):
        classifier = RejectionClassifier(extra_keywords=[""], extra_patterns=[""])

        assert not classifier("Dana transfer sudah disesuaikan.")
