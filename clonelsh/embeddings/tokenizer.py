"""
Code tokenizer for embedding generation.

Lexes source text into typed tokens. Identifiers are split into lowercase
sub-words so that ``parseUserInput`` and ``parse_user_input`` share terms;
literal values are collapsed to placeholders so renamed constants do not
change the token stream.
"""

import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Sequence

from .keywords import MAX_OPERATOR_LENGTH, OPERATORS, PUNCTUATION, keywords_for


class TokenType(str, Enum):
    KEYWORD = "keyword"
    IDENTIFIER = "identifier"
    OPERATOR = "operator"
    STRING = "string"
    NUMBER = "number"
    COMMENT = "comment"
    PUNCTUATION = "punctuation"


@dataclass(frozen=True)
class Token:
    """A single token extracted from code."""
    value: str
    type: TokenType
    position: int = 0

    @property
    def key(self) -> str:
        """Term key used for frequency counting (``type:value``)."""
        return f"{self.type.value}:{self.value}"


STRING_PLACEHOLDER = "STRING_LITERAL"
NUMBER_PLACEHOLDER = "NUMBER"

# Sub-tokens of this length or shorter are dropped
MIN_FRAGMENT_LENGTH = 2

WHITESPACE_PATTERN = re.compile(r'\s+')
COMMENT_PATTERN = re.compile(r'//[^\n]*|/\*[\s\S]*?\*/|#[^\n]*')
TRIPLE_STRING_PATTERN = re.compile(r'"""[\s\S]*?"""|\'\'\'[\s\S]*?\'\'\'')
STRING_PATTERN = re.compile(r'([\'"`])(?:(?!\1)[^\\]|\\.)*?\1')
NUMBER_PATTERN = re.compile(r'-?(?:0x[0-9a-fA-F]+|0b[01]+|0o[0-7]+|\d+\.?\d*(?:e[+-]?\d+)?)')
IDENTIFIER_PATTERN = re.compile(r'[a-zA-Z_$][a-zA-Z0-9_$]*')
WORD_PATTERN = re.compile(r'[a-zA-Z_][a-zA-Z0-9_]*')
# XMLParser -> XML, Parser; getHTTP2Server -> get, HTTP, 2, Server
CAMEL_CASE_PATTERN = re.compile(r'[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+')


def split_identifier(identifier: str) -> List[str]:
    """
    Split an identifier on snake_case and camelCase boundaries.

    Returns lowercase fragments longer than one character, in source order.
    """
    fragments: List[str] = []
    for part in re.split(r'[_$]+', identifier):
        if not part:
            continue
        for piece in CAMEL_CASE_PATTERN.findall(part):
            if len(piece) >= MIN_FRAGMENT_LENGTH:
                fragments.append(piece.lower())
    return fragments


class CodeTokenizer:
    """
    Language-aware code tokenizer.

    Args:
        language: Source language; selects the keyword table. Unknown
            languages use the TypeScript table.
    """

    def __init__(self, language: str = "typescript"):
        self.language = language
        self.keywords = keywords_for(language)

    def tokenize(self, code: str) -> List[Token]:
        """Tokenize source code into an ordered list of typed tokens."""
        tokens: List[Token] = []
        if not code or not code.strip():
            return tokens

        position = 0
        length = len(code)

        while position < length:
            match = WHITESPACE_PATTERN.match(code, position)
            if match:
                position = match.end()
                continue

            match = COMMENT_PATTERN.match(code, position)
            if match:
                for word in WORD_PATTERN.findall(match.group(0)):
                    if len(word) >= MIN_FRAGMENT_LENGTH:
                        tokens.append(Token(word.lower(), TokenType.COMMENT, position))
                position = match.end()
                continue

            match = TRIPLE_STRING_PATTERN.match(code, position)
            if match:
                self._emit_string(tokens, match.group(0)[3:-3], position)
                position = match.end()
                continue

            match = STRING_PATTERN.match(code, position)
            if match:
                self._emit_string(tokens, match.group(0)[1:-1], position)
                position = match.end()
                continue

            match = NUMBER_PATTERN.match(code, position)
            if match:
                tokens.append(Token(NUMBER_PLACEHOLDER, TokenType.NUMBER, position))
                position = match.end()
                continue

            match = IDENTIFIER_PATTERN.match(code, position)
            if match:
                word = match.group(0)
                if word in self.keywords:
                    tokens.append(Token(word, TokenType.KEYWORD, position))
                else:
                    for fragment in split_identifier(word):
                        tokens.append(Token(fragment, TokenType.IDENTIFIER, position))
                position = match.end()
                continue

            operator = self._match_operator(code, position)
            if operator:
                tokens.append(Token(operator, TokenType.OPERATOR, position))
                position += len(operator)
                continue

            char = code[position]
            if char in PUNCTUATION:
                tokens.append(Token(char, TokenType.PUNCTUATION, position))
            # Unknown characters are skipped
            position += 1

        return tokens

    @staticmethod
    def _emit_string(tokens: List[Token], content: str, position: int) -> None:
        # Very short and very long literals carry no useful signal
        if 2 < len(content) < 100:
            tokens.append(Token(STRING_PLACEHOLDER, TokenType.STRING, position))

    @staticmethod
    def _match_operator(code: str, position: int) -> str:
        """Longest operator starting at ``position`` (``===`` before ``==``)."""
        for size in range(MAX_OPERATOR_LENGTH, 0, -1):
            candidate = code[position:position + size]
            if len(candidate) == size and candidate in OPERATORS:
                return candidate
        return ""


@lru_cache(maxsize=None)
def get_tokenizer(language: str = "typescript") -> CodeTokenizer:
    """Shared tokenizer per language (tokenizers are stateless)."""
    return CodeTokenizer(language)


def tokenize(code: str, language: str = "typescript") -> List[Token]:
    """Tokenize ``code`` using the keyword table for ``language``."""
    return get_tokenizer(language).tokenize(code)


def get_token_frequencies(tokens: Sequence[Token]) -> Dict[str, int]:
    """Map ``"type:value"`` to its count."""
    return dict(Counter(token.key for token in tokens))


def extract_ngrams(tokens: Sequence[Token], n: int = 2) -> List[str]:
    """
    Extract structural n-grams from a token stream.

    Each gram joins ``<type initial>:<value>`` parts with ``|``. Returns an
    empty list when there are fewer than ``n`` tokens.

    Raises:
        ValueError: If ``n`` is less than 2
    """
    if n < 2:
        raise ValueError(f"n-gram size must be at least 2, got {n}")
    if len(tokens) < n:
        return []
    parts = [f"{token.type.value[0]}:{token.value}" for token in tokens]
    return ["|".join(parts[i:i + n]) for i in range(len(parts) - n + 1)]
