"""Tests for query tokenization."""

from __future__ import annotations

from memex_search.tokenizer import QueryTerms, split_query


class TestSplitQuery:
    """Tests for split_query function."""

    def test_terms_and_phrase(self) -> None:
        """Quoted text becomes a phrase, the rest becomes terms."""
        result = split_query('foo "bar baz" qux')
        assert set(result.terms) == {"foo", "qux"}
        assert set(result.phrases) == {"bar baz"}

    def test_empty_query(self) -> None:
        """Empty query yields no terms and no phrases."""
        result = split_query("")
        assert result.terms == []
        assert result.phrases == []
        assert result.is_empty

    def test_whitespace_only_query(self) -> None:
        """Whitespace-only query is empty."""
        assert split_query("   \t ").is_empty

    def test_lowercases_terms_and_phrases(self) -> None:
        """Everything is case-folded."""
        result = split_query('Memex "Associative TRAILS"')
        assert result.terms == ["memex"]
        assert result.phrases == ["associative trails"]

    def test_single_term_without_quotes(self) -> None:
        """A bare word is a term, not a phrase."""
        result = split_query("Memex")
        assert result.terms == ["memex"]
        assert result.phrases == []

    def test_deduplicates(self) -> None:
        """Repeated terms and phrases are kept once."""
        result = split_query('a b a "x y" "x y" b')
        assert sorted(result.terms) == ["a", "b"]
        assert result.phrases == ["x y"]

    def test_phrase_only(self) -> None:
        """A fully quoted query yields only a phrase."""
        result = split_query('"as we may think"')
        assert result.terms == []
        assert result.phrases == ["as we may think"]

    def test_phrase_adjacent_to_terms(self) -> None:
        """Quotes split words even without surrounding spaces."""
        result = split_query('foo"bar baz"qux')
        assert set(result.terms) == {"foo", "qux"}
        assert result.phrases == ["bar baz"]

    def test_phrase_is_trimmed(self) -> None:
        """Whitespace inside the quotes is trimmed from the phrase."""
        assert split_query('" padded phrase "').phrases == ["padded phrase"]

    def test_empty_quotes_ignored(self) -> None:
        """Empty quoted sections produce no phrase."""
        result = split_query('foo "" bar')
        assert set(result.terms) == {"foo", "bar"}
        assert result.phrases == []

    def test_unbalanced_quote_treated_as_terms(self) -> None:
        """Text after an unclosed quote is split into terms."""
        result = split_query('foo "bar baz')
        assert set(result.terms) == {"foo", "bar", "baz"}
        assert result.phrases == []

    def test_unbalanced_quote_after_phrase(self) -> None:
        """Only closed quote pairs form phrases."""
        result = split_query('"one two" three "four')
        assert result.phrases == ["one two"]
        assert set(result.terms) == {"three", "four"}

    def test_returns_query_terms(self) -> None:
        """split_query returns a QueryTerms instance."""
        assert isinstance(split_query("x"), QueryTerms)
