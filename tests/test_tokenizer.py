"""
Tests for the code tokenizer.
"""

import pytest

from clonelsh.embeddings.tokenizer import (
    NUMBER_PLACEHOLDER,
    STRING_PLACEHOLDER,
    CodeTokenizer,
    Token,
    TokenType,
    extract_ngrams,
    get_token_frequencies,
    split_identifier,
    tokenize,
)


def values(tokens):
    return [(t.value, t.type) for t in tokens]


class TestSplitIdentifier:
    """Test camelCase / snake_case splitting."""

    def test_camel_case(self):
        """Test that camelCase is split and lowercased."""
        assert split_identifier("getUserName") == ["get", "user", "name"]

    def test_snake_case(self):
        """Test that snake_case is split on underscores."""
        assert split_identifier("parse_user_input") == ["parse", "user", "input"]

    def test_acronyms(self):
        """Test that runs of capitals stay together."""
        assert split_identifier("XMLHttpRequest") == ["xml", "http", "request"]

    def test_single_characters_dropped(self):
        """Test that fragments of length one are discarded."""
        assert split_identifier("x") == []
        assert split_identifier("a_b_count") == ["count"]


class TestTokenize:
    """Test token stream extraction."""

    def test_empty_input(self):
        """Test that empty and whitespace-only input yield no tokens."""
        assert tokenize("") == []
        assert tokenize("   \n\t  ") == []

    def test_statement(self):
        """Test a simple TypeScript statement."""
        tokens = tokenize("const userName = getUserName();", "typescript")
        assert values(tokens) == [
            ("const", TokenType.KEYWORD),
            ("user", TokenType.IDENTIFIER),
            ("name", TokenType.IDENTIFIER),
            ("=", TokenType.OPERATOR),
            ("get", TokenType.IDENTIFIER),
            ("user", TokenType.IDENTIFIER),
            ("name", TokenType.IDENTIFIER),
            ("(", TokenType.PUNCTUATION),
            (")", TokenType.PUNCTUATION),
            (";", TokenType.PUNCTUATION),
        ]

    def test_python_definition(self):
        """Test Python keywords and snake_case identifiers."""
        tokens = tokenize("def parse_user_input(raw_value):", "python")
        assert values(tokens) == [
            ("def", TokenType.KEYWORD),
            ("parse", TokenType.IDENTIFIER),
            ("user", TokenType.IDENTIFIER),
            ("input", TokenType.IDENTIFIER),
            ("(", TokenType.PUNCTUATION),
            ("raw", TokenType.IDENTIFIER),
            ("value", TokenType.IDENTIFIER),
            (")", TokenType.PUNCTUATION),
            (":", TokenType.OPERATOR),
        ]

    def test_keyword_tables_per_language(self):
        """Test that keywords depend on the language."""
        assert tokenize("def", "python")[0].type == TokenType.KEYWORD
        assert tokenize("def", "typescript")[0].type == TokenType.IDENTIFIER
        assert tokenize("func", "go")[0].type == TokenType.KEYWORD

    def test_unknown_language_uses_default_table(self):
        """Test that unknown languages fall back to the TypeScript keywords."""
        assert tokenize("interface", "cobol")[0].type == TokenType.KEYWORD

    def test_comment_words(self):
        """Test that comment words become comment tokens."""
        tokens = tokenize("// compute the total\n# a note", "python")
        assert [t.value for t in tokens] == ["compute", "the", "total", "note"]
        assert all(t.type == TokenType.COMMENT for t in tokens)

    def test_block_comment(self):
        """Test that block comments are consumed whole."""
        tokens = tokenize("/* Returns the Sum */ return", "typescript")
        assert values(tokens) == [
            ("returns", TokenType.COMMENT),
            ("the", TokenType.COMMENT),
            ("sum", TokenType.COMMENT),
            ("return", TokenType.KEYWORD),
        ]

    def test_longest_operator_first(self):
        """Test that multi-character operators win over their prefixes."""
        assert [t.value for t in tokenize("total === count")][1] == "==="
        assert [t.value for t in tokenize("total == count")][1] == "=="
        assert [t.value for t in tokenize("total = count")][1] == "="
        assert [t.value for t in tokenize("mask >>>= 2")][1] == ">>>="

    def test_string_literals(self):
        """Test that strings collapse to a placeholder unless very short."""
        tokens = tokenize("'hello world'")
        assert values(tokens) == [(STRING_PLACEHOLDER, TokenType.STRING)]
        assert tokenize("'ab'") == []
        assert len(tokenize("'abc'")) == 1

    def test_escaped_quote_inside_string(self):
        """Test that escaped quotes do not end a string."""
        tokens = tokenize(r'"say \"hi\" now"')
        assert values(tokens) == [(STRING_PLACEHOLDER, TokenType.STRING)]

    def test_triple_quoted_string(self):
        """Test that a Python docstring is one literal."""
        tokens = tokenize('"""Return the "total" value."""', "python")
        assert values(tokens) == [(STRING_PLACEHOLDER, TokenType.STRING)]

    def test_numbers(self):
        """Test that numeric literals collapse to a placeholder."""
        tokens = tokenize("42 3.14 0xFF")
        assert values(tokens) == [(NUMBER_PLACEHOLDER, TokenType.NUMBER)] * 3

    def test_unknown_characters_skipped(self):
        """Test that characters outside the grammar are ignored."""
        tokens = tokenize("@decorator")
        assert values(tokens) == [("decorator", TokenType.IDENTIFIER)]

    def test_positions_are_offsets(self):
        """Test that token positions point into the source."""
        code = "return total;"
        tokens = tokenize(code)
        assert [t.position for t in tokens] == [0, 7, 12]

    def test_tokenizer_instance_matches_function(self):
        """Test that the class and module function agree."""
        code = "for (let i = 0; i < items.length; i++) { sum += items[i]; }"
        assert CodeTokenizer("javascript").tokenize(code) == tokenize(code, "javascript")


class TestFrequenciesAndNgrams:
    """Test term counting helpers."""

    def test_token_key(self):
        """Test the type:value key format."""
        assert Token("total", TokenType.IDENTIFIER).key == "identifier:total"

    def test_token_frequencies(self):
        """Test counting of repeated tokens."""
        freqs = get_token_frequencies(tokenize("foo foo bar"))
        assert freqs == {"identifier:foo": 2, "identifier:bar": 1}

    def test_bigrams(self):
        """Test structural bigram format."""
        tokens = tokenize("return total + count;")
        assert extract_ngrams(tokens, 2) == [
            "k:return|i:total",
            "i:total|o:+",
            "o:+|i:count",
            "i:count|p:;",
        ]

    def test_trigram_count(self):
        """Test that n-grams slide one token at a time."""
        tokens = tokenize("return total + count;")
        assert len(extract_ngrams(tokens, 3)) == len(tokens) - 2

    def test_too_few_tokens(self):
        """Test that fewer than n tokens yields nothing."""
        assert extract_ngrams(tokenize("return"), 2) == []

    def test_invalid_n(self):
        """Test that n below 2 is rejected."""
        with pytest.raises(ValueError):
            extract_ngrams(tokenize("return total"), 1)
