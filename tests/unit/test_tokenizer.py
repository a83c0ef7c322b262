"""
Unit tests for the whitespace tokenizer
"""

from wordcount_engine.worker.tokenizer import TokenStream, tokenize


class TestTokenize:
    """Tests for whitespace splitting"""

    def test_splits_on_single_spaces(self):
        assert list(tokenize("the quick fox")) == ["the", "quick", "fox"]

    def test_ignores_leading_and_trailing_whitespace(self):
        assert list(tokenize("   padded words \t ")) == ["padded", "words"]

    def test_collapses_runs_of_mixed_delimiters(self):
        assert list(tokenize("a \t\t b\r\n\fc")) == ["a", "b", "c"]

    def test_empty_line_yields_nothing(self):
        assert list(tokenize("")) == []
        assert list(tokenize(" \t ")) == []

    def test_keeps_case_and_punctuation(self):
        assert list(tokenize("The the, THE")) == ["The", "the,", "THE"]

    def test_non_delimiter_whitespace_is_part_of_a_token(self):
        """Only space, tab, newline, carriage return and form feed delimit"""
        assert list(tokenize("a\x0bb c d")) == ["a\x0bb", "c d"]


class TestTokenStream:
    """Tests for laziness and restartability"""

    def test_is_restartable(self):
        stream = tokenize("one two three")
        assert list(stream) == list(stream) == ["one", "two", "three"]

    def test_is_lazy(self):
        stream = tokenize("first second")
        iterator = iter(stream)
        assert next(iterator) == "first"
        assert next(iterator) == "second"

    def test_returns_token_stream(self):
        assert isinstance(tokenize("x"), TokenStream)
