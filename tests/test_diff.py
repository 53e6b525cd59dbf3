import pytest

from captions.diff import (
    changed_characters,
    diff_words,
    reconstruct_edited,
    reconstruct_original,
    tokenize,
)
from common.schemas import DiffType

PAIRS = [
    ("", ""),
    ("", "new text"),
    ("old text", ""),
    ("It was beautifull night.", "It was a beautiful night."),
    ("the the cat sat", "the cat sat down"),
    ("  leading and trailing  ", "leading and  trailing"),
    ("line one\nline two", "line one\nline 2"),
    ("a b c d e", "e d c b a"),
]


class TestTokenize:
    def test_alternates_words_and_whitespace(self):
        assert tokenize("Hi  there\nyou") == ["Hi", "  ", "there", "\n", "you"]

    def test_empty(self):
        assert tokenize("") == []


class TestDiffWords:
    def test_empty_strings(self):
        assert diff_words("", "") == []

    @pytest.mark.parametrize("text", ["Hello world!", "  spaced   out  ", "one"])
    def test_identical_strings_single_equal_token(self, text):
        tokens = diff_words(text, text)
        assert len(tokens) == 1
        assert tokens[0].type is DiffType.equal
        assert tokens[0].value == text

    @pytest.mark.parametrize("a,b", PAIRS)
    def test_reconstruction(self, a, b):
        tokens = diff_words(a, b)
        assert reconstruct_original(tokens) == a
        assert reconstruct_edited(tokens) == b

    @pytest.mark.parametrize("a,b", PAIRS)
    def test_adjacent_tokens_are_merged(self, a, b):
        tokens = diff_words(a, b)
        assert all(x.type is not y.type for x, y in zip(tokens, tokens[1:]))

    def test_inserted_article_and_spelling_fix(self):
        tokens = diff_words("It was beautifull night.", "It was a beautiful night.")
        inserts = [t.value for t in tokens if t.type is DiffType.insert]
        deletes = [t.value for t in tokens if t.type is DiffType.delete]

        assert "a" in inserts
        assert any("beautiful" in value for value in inserts)
        assert any("beautifull" in value for value in deletes)
        assert tokens[0].type is DiffType.equal
        assert tokens[0].value == "It was "

    def test_delete_preferred_on_ties(self):
        tokens = diff_words("cat", "dog")
        assert [(t.type, t.value) for t in tokens] == [(DiffType.delete, "cat"), (DiffType.insert, "dog")]

    def test_insert_only(self):
        tokens = diff_words("", "new text")
        assert [(t.type, t.value) for t in tokens] == [(DiffType.insert, "new text")]


class TestChangedCharacters:
    def test_counts_non_whitespace_in_changes(self):
        tokens = diff_words("It was beautifull night.", "It was a beautiful night.")
        # "beautifull" deleted, "a" and "beautiful" inserted
        assert changed_characters(tokens) == 10 + 1 + 9

    def test_whitespace_only_change_counts_zero(self):
        assert changed_characters(diff_words("a  b", "a b")) == 0
