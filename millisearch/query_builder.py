"""Turning a tokenized search query into a query tree."""

from __future__ import annotations

import enum
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from .query_tree import (
    Operation,
    Query,
    QueryKind,
    QueryOp,
    make_and,
    make_or,
    phrase,
)

__all__ = [
    "TokenKind",
    "Token",
    "Context",
    "PrimitiveWord",
    "PrimitivePhrase",
    "QueryTreeBuilder",
    "tokenize",
    "create_primitive_query",
    "split_best_frequency",
    "typos",
    "create_query_tree",
]

_MAX_NGRAM = 3
_TOKEN_RE = re.compile(r"([^\W_]+)|([\W_]+)")


class TokenKind(enum.Enum):
    """The kind of a token produced by the tokenizer."""

    WORD = "word"
    STOP_WORD = "stop_word"
    SEPARATOR = "separator"
    OTHER = "other"


@dataclass(frozen=True)
class Token:
    """A piece of the query text."""

    kind: TokenKind
    word: str


def tokenize(text: str) -> list[Token]:
    """Split ``text`` into lowercased words and runs of separator characters."""
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        word, separator = match.groups()
        if word is not None:
            tokens.append(Token(TokenKind.WORD, word.lower()))
        else:
            tokens.append(Token(TokenKind.SEPARATOR, separator))
    return tokens


class Context(ABC):
    """Access to the words and synonyms stored by the index."""

    @abstractmethod
    def word_docids(self, word: str) -> set[int] | None:
        """Return the documents ids containing ``word``, or None."""

    @abstractmethod
    def synonyms(self, words: Sequence[str]) -> list[list[str]] | None:
        """Return the synonyms of the sequence of ``words``, or None."""

    def word_documents_count(self, word: str) -> int | None:
        """Return the number of documents containing ``word``, or None."""
        docids = self.word_docids(word)
        return None if docids is None else len(docids)


@dataclass(frozen=True)
class PrimitiveWord:
    """A single query word, possibly to be matched as a prefix."""

    word: str
    prefix: bool


@dataclass(frozen=True)
class PrimitivePhrase:
    """Quoted words that must appear consecutively."""

    words: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "words", tuple(self.words))


PrimitiveQueryPart = PrimitiveWord | PrimitivePhrase


def _exact(word: str) -> Operation:
    return QueryOp(Query(prefix=False, kind=QueryKind.exact(word)))


def split_best_frequency(ctx: Context, word: str) -> Operation | None:
    """Split ``word`` in two where both halves are the most frequent, if anywhere."""
    best: tuple[int, str, str] | None = None
    for i in range(1, len(word)):
        left, right = word[:i], word[i:]
        left_freq = ctx.word_documents_count(left) or 0
        right_freq = ctx.word_documents_count(right) or 0
        min_freq = min(left_freq, right_freq)
        if min_freq != 0 and (best is None or min_freq > best[0]):
            best = (min_freq, left, right)

    if best is None:
        return None
    _, left, right = best
    from .query_tree import Consecutive

    return Consecutive([_exact(left), _exact(right)])


def typos(word: str, authorize_typos: bool) -> QueryKind:
    """Return the kind of query for ``word``, depending on its length in bytes."""
    if not authorize_typos:
        return QueryKind.exact(word)
    length = len(word.encode("utf-8"))
    if length <= 4:
        return QueryKind.exact(word)
    if length <= 8:
        return QueryKind.tolerant(1, word)
    return QueryKind.tolerant(2, word)


def _synonyms(ctx: Context, words: Sequence[str]) -> list[Operation]:
    found = ctx.synonyms(list(words))
    if found is None:
        return []
    return [make_and(_exact(word) for word in synonym) for synonym in found]


def _resolve_primitive_part(
    ctx: Context, authorize_typos: bool, part: PrimitiveQueryPart
) -> Operation:
    if isinstance(part, PrimitivePhrase):
        return phrase(part.words)
    children = _synonyms(ctx, [part.word])
    split = split_best_frequency(ctx, part.word)
    if split is not None:
        children.append(split)
    children.append(QueryOp(Query(prefix=part.prefix, kind=typos(part.word, authorize_typos))))
    return make_or(False, children)


def _group_parts(query: Sequence[PrimitiveQueryPart]) -> Iterator[list[PrimitiveQueryPart]]:
    """Group consecutive words together; every phrase stands alone."""
    group: list[PrimitiveQueryPart] = []
    for part in query:
        if group and (isinstance(part, PrimitivePhrase) or isinstance(group[-1], PrimitivePhrase)):
            yield group
            group = []
        group.append(part)
    if group:
        yield group


def _ngrams(
    ctx: Context, authorize_typos: bool, query: Sequence[PrimitiveQueryPart]
) -> Operation:
    op_children = []
    for sub_query in _group_parts(query):
        or_op_children = []
        for ngram in range(1, min(_MAX_NGRAM, len(sub_query)) + 1):
            group = sub_query[:ngram]
            tail = sub_query[ngram:]
            and_op_children = []

            if len(group) == 1:
                and_op_children.append(_resolve_primitive_part(ctx, authorize_typos, group[0]))
            else:
                last = group[-1]
                is_prefix = isinstance(last, PrimitiveWord) and last.prefix
                words = [part.word for part in group if isinstance(part, PrimitiveWord)]
                operations = _synonyms(ctx, words)
                concat = "".join(words)
                operations.append(
                    QueryOp(Query(prefix=is_prefix, kind=typos(concat, authorize_typos)))
                )
                and_op_children.append(make_or(False, operations))

            if tail:
                and_op_children.append(_ngrams(ctx, authorize_typos, tail))
            or_op_children.append(make_and(and_op_children))
        op_children.append(make_or(False, or_op_children))
    return make_and(op_children)


def _optional_word(
    ctx: Context, authorize_typos: bool, query: Sequence[PrimitiveQueryPart]
) -> Operation:
    number_phrases = sum(isinstance(part, PrimitivePhrase) for part in query)
    start = number_phrases if number_phrases else 1
    children = []
    for length in range(start, len(query) + 1):
        word_count = length - number_phrases
        kept = []
        for part in query:
            if isinstance(part, PrimitivePhrase):
                kept.append(part)
            elif word_count:
                word_count -= 1
                kept.append(part)
        children.append(_ngrams(ctx, authorize_typos, kept))
    return make_or(True, children)


def create_query_tree(
    ctx: Context,
    optional_words: bool,
    authorize_typos: bool,
    query: Sequence[PrimitiveQueryPart],
) -> Operation:
    """Build the final query tree from the primitive query."""
    if optional_words:
        return _optional_word(ctx, authorize_typos, query)
    return _ngrams(ctx, authorize_typos, query)


def _with_lookahead(tokens: Iterable[Token]) -> Iterator[tuple[Token, bool]]:
    """Yield each token along with whether another token follows it."""
    iterator = iter(tokens)
    sentinel = object()
    current = next(iterator, sentinel)
    while current is not sentinel:
        following = next(iterator, sentinel)
        yield current, following is not sentinel  # type: ignore[misc]
        current = following


def create_primitive_query(
    tokens: Iterable[Token],
    stop_words: Iterable[str] | None = None,
    words_limit: int | None = None,
) -> list[PrimitiveQueryPart]:
    """Turn tokens into words and quoted phrases, dropping non-final stop words."""
    stop_set = set(stop_words) if stop_words is not None else None
    primitive_query: list[PrimitiveQueryPart] = []
    current_phrase: list[str] = []
    quoted = False

    for token, has_next in _with_lookahead(tokens):
        if words_limit is not None and len(primitive_query) >= words_limit:
            return primitive_query

        if token.kind in (TokenKind.WORD, TokenKind.STOP_WORD):
            if quoted:
                current_phrase.append(token.word)
            elif has_next:
                if stop_set is None or token.word not in stop_set:
                    primitive_query.append(PrimitiveWord(token.word, False))
            else:
                primitive_query.append(PrimitiveWord(token.word, True))
        elif token.kind is TokenKind.SEPARATOR:
            quote_count = token.word.count('"')
            if quote_count % 2:
                quoted = not quoted
            if current_phrase and quote_count > 0:
                primitive_query.append(PrimitivePhrase(tuple(current_phrase)))
                current_phrase = []

    # An unclosed quote turns the rest of the query into a phrase.
    if current_phrase:
        primitive_query.append(PrimitivePhrase(tuple(current_phrase)))

    return primitive_query


class QueryTreeBuilder:
    """Builds query trees from tokens using the words known to a context."""

    def __init__(
        self,
        ctx: Context,
        stop_words: Iterable[str] | None = None,
        optional_words: bool = True,
        authorize_typos: bool = True,
        words_limit: int | None = None,
    ) -> None:
        self.ctx = ctx
        self.stop_words = set(stop_words) if stop_words is not None else None
        self.optional_words = optional_words
        self.authorize_typos = authorize_typos
        self.words_limit = words_limit

    def build(self, tokens: Iterable[Token] | str) -> Operation | None:
        """Return the query tree of ``tokens`` (or of a raw string), or None if empty."""
        if isinstance(tokens, str):
            tokens = tokenize(tokens)
        primitive_query = create_primitive_query(tokens, self.stop_words, self.words_limit)
        if not primitive_query:
            return None
        return create_query_tree(
            self.ctx, self.optional_words, self.authorize_typos, primitive_query
        )