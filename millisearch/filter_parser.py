"""Parsing of textual filter expressions into facet conditions."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

from .facet_condition import (
    AndCondition,
    FacetCondition,
    FacetConditionError,
    FacetNumberOperator,
    FacetStringOperator,
    NumberOp,
    OperatorNumber,
    OperatorString,
    OrCondition,
    _parse_number,
)
from .facet_store import FacetType

__all__ = ["FilterSyntaxError", "parse_filter"]

_TOKEN_RE = re.compile(
    r"""(?P<lparen>\()
      | (?P<rparen>\))
      | (?P<op>>=|<=|!=|=|>|<)
      | "(?P<dq>[^"]*)"
      | '(?P<sq>[^']*)'
      | (?P<word>[^\s()<>=!"']+)""",
    re.VERBOSE,
)
_WHITESPACE_RE = re.compile(r"\s*")
_KEYWORDS = frozenset({"AND", "OR", "NOT", "TO"})

_COMPARISONS = {
    ">": NumberOp.GREATER_THAN,
    ">=": NumberOp.GREATER_THAN_OR_EQUAL,
    "<": NumberOp.LOWER_THAN,
    "<=": NumberOp.LOWER_THAN_OR_EQUAL,
}


class FilterSyntaxError(FacetConditionError):
    """Raised when a filter expression is malformed or refers to unusable fields."""

    def __init__(self, message: str, position: int) -> None:
        super().__init__(f"{message} (at position {position})")
        self.message = message
        self.position = position


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    position: int

    @property
    def is_keyword(self) -> bool:
        return self.kind == "word" and self.text in _KEYWORDS

    def is_keyword_named(self, name: str) -> bool:
        return self.kind == "word" and self.text == name


def _tokenize(expression: str) -> list[_Token]:
    tokens = []
    pos = _WHITESPACE_RE.match(expression, 0).end()  # type: ignore[union-attr]
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            raise FilterSyntaxError(f"unexpected character {expression[pos]!r}", pos)
        kind = match.lastgroup or "word"
        if kind in ("dq", "sq"):
            tokens.append(_Token("quoted", match.group(kind), pos))
        else:
            tokens.append(_Token(kind, match.group(kind), pos))
        pos = _WHITESPACE_RE.match(expression, match.end()).end()  # type: ignore[union-attr]
    tokens.append(_Token("end", "", len(expression)))
    return tokens


@dataclass(frozen=True)
class _Comparison:
    key: str
    key_position: int
    operator: str  # a comparison operator, or "TO" for a range
    values: tuple[tuple[str, int], ...]
    position: int


@dataclass(frozen=True)
class _Not:
    inner: object


@dataclass(frozen=True)
class _Binary:
    operator: str
    left: object
    right: object


class _Parser:
    def __init__(self, tokens: list[_Token]) -> None:
        self._tokens = tokens
        self._index = 0

    def _peek(self) -> _Token:
        return self._tokens[self._index]

    def _advance(self) -> _Token:
        token = self._tokens[self._index]
        if token.kind != "end":
            self._index += 1
        return token

    def parse(self) -> object:
        if self._peek().kind == "end":
            raise FilterSyntaxError("empty filter expression", self._peek().position)
        node = self._expression()
        token = self._peek()
        if token.kind != "end":
            raise FilterSyntaxError(f"unexpected {token.text!r}", token.position)
        return node

    def _expression(self) -> object:
        node = self._conjunction()
        while self._peek().is_keyword_named("OR"):
            self._advance()
            node = _Binary("OR", node, self._conjunction())
        return node

    def _conjunction(self) -> object:
        node = self._unary()
        while self._peek().is_keyword_named("AND"):
            self._advance()
            node = _Binary("AND", node, self._unary())
        return node

    def _unary(self) -> object:
        token = self._peek()
        if token.is_keyword_named("NOT"):
            self._advance()
            return _Not(self._unary())
        if token.kind == "lparen":
            self._advance()
            node = self._expression()
            closing = self._advance()
            if closing.kind != "rparen":
                raise FilterSyntaxError("expected `)`", closing.position)
            return node
        return self._comparison()

    def _operand(self, what: str) -> tuple[str, int]:
        token = self._advance()
        if token.kind == "quoted" or (token.kind == "word" and not token.is_keyword):
            return token.text, token.position
        found = "end of input" if token.kind == "end" else repr(token.text)
        raise FilterSyntaxError(f"expected {what}, found {found}", token.position)

    def _comparison(self) -> _Comparison:
        start = self._peek().position
        key, key_position = self._operand("an attribute")
        token = self._peek()
        if token.kind == "op":
            self._advance()
            value = self._operand("a value")
            return _Comparison(key, key_position, token.text, (value,), start)
        low = self._operand("a comparison operator or a value")
        to = self._advance()
        if not to.is_keyword_named("TO"):
            raise FilterSyntaxError("expected `TO`", to.position)
        high = self._operand("a value")
        return _Comparison(key, key_position, "TO", (low, high), start)


class _Builder:
    def __init__(
        self,
        fields_ids_map: Mapping[str, int],
        faceted_fields: Mapping[int, FacetType | str],
    ) -> None:
        self._fields = fields_ids_map
        self._faceted = {fid: FacetType(ftype) for fid, ftype in faceted_fields.items()}

    def build(self, node: object) -> FacetCondition:
        if isinstance(node, _Binary):
            left, right = self.build(node.left), self.build(node.right)
            if node.operator == "OR":
                return OrCondition(left, right)
            return AndCondition(left, right)
        if isinstance(node, _Not):
            return self.build(node.inner).negate()
        assert isinstance(node, _Comparison)
        return self._comparison(node)

    def _field(self, node: _Comparison) -> tuple[int, FacetType]:
        field_id = self._fields.get(node.key)
        if field_id is None:
            available = ", ".join(
                name for name, _ in sorted(self._fields.items(), key=lambda item: item[1])
            )
            raise FilterSyntaxError(
                f"attribute `{node.key}` not found, available attributes are: {available}",
                node.key_position,
            )
        facet_type = self._faceted.get(field_id)
        if facet_type is None:
            names = {fid: name for name, fid in self._fields.items()}
            available = ", ".join(
                names[fid] for fid in sorted(self._faceted) if fid in names
            )
            raise FilterSyntaxError(
                f"attribute `{node.key}` is not faceted, "
                f"available faceted attributes are: {available}",
                node.key_position,
            )
        return field_id, facet_type

    @staticmethod
    def _number(value: tuple[str, int]) -> float:
        text, position = value
        try:
            return _parse_number(text)
        except FacetConditionError as error:
            raise FilterSyntaxError(str(error), position) from error

    def _comparison(self, node: _Comparison) -> FacetCondition:
        field_id, facet_type = self._field(node)
        if node.operator in ("=", "!="):
            condition: FacetCondition
            if facet_type is FacetType.STRING:
                condition = OperatorString(field_id, FacetStringOperator.equal(node.values[0][0]))
            else:
                number = self._number(node.values[0])
                condition = OperatorNumber(field_id, FacetNumberOperator(NumberOp.EQUAL, number))
            return condition.negate() if node.operator == "!=" else condition

        if facet_type is FacetType.STRING:
            raise FilterSyntaxError("invalid operator on a faceted string", node.position)
        if node.operator == "TO":
            low = self._number(node.values[0])
            high = self._number(node.values[1])
            return OperatorNumber(field_id, FacetNumberOperator(NumberOp.BETWEEN, low, high))
        number = self._number(node.values[0])
        return OperatorNumber(field_id, FacetNumberOperator(_COMPARISONS[node.operator], number))


def parse_filter(
    expression: str,
    fields_ids_map: Mapping[str, int],
    faceted_fields: Mapping[int, FacetType | str],
) -> FacetCondition:
    """Parse a filter such as ``a = x OR (b 1 TO 5 AND NOT c > 2)``.

    ``fields_ids_map`` maps field names to ids, ``faceted_fields`` maps the ids of
    faceted fields to their type. AND binds tighter than OR; both associate left.
    """
    tree = _Parser(_tokenize(expression)).parse()
    return _Builder(fields_ids_map, faceted_fields).build(tree)