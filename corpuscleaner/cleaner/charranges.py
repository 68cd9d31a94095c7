# corpuscleaner/cleaner/charranges.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Set

from ..errors import InvalidFormatError
from .mappings import HEX_CODEPOINT_PREFIXES

__all__ = ["CharRange", "UnicodeCharRanges", "parse_codepoint"]


def _parse_hex(expr: str) -> int | None:
    for prefix in HEX_CODEPOINT_PREFIXES:
        if expr.startswith(prefix) and len(expr) > len(prefix):
            try:
                return int(expr[len(prefix) :], 16)
            except ValueError:
                raise InvalidFormatError(
                    f"Invalid hexadecimal code point expression [{expr}]"
                ) from None
    return None


def parse_codepoint(expr: str) -> int:
    """
    Parse a code point expression.

    - a single character is taken literally (``"a"``, ``"0"``)
    - ``U+XXXX``, ``0xXXXX``, ``\\uXXXX`` and ``\\UXXXXXXXX`` are hexadecimal
    - two or more digits are decimal (``"65"``)

    :param expr: Expression as written in the configuration.
    :returns: The code point.
    :raises InvalidFormatError: If the expression cannot be parsed.
    """
    if expr is None or expr == "":
        raise InvalidFormatError("Code point expression should not be empty")
    if len(expr) == 1:
        return ord(expr)

    value = _parse_hex(expr)
    if value is None and expr.isdigit():
        value = int(expr)
    if value is None:
        raise InvalidFormatError(f"Invalid code point expression [{expr}]")
    if value > 0x10FFFF:
        raise InvalidFormatError(f"Code point out of Unicode range [{expr}]")
    return value


@dataclass(frozen=True)
class CharRange:
    begin: int
    end: int
    begin_expr: str
    end_expr: str

    def __contains__(self, codepoint: int) -> bool:
        return self.begin <= codepoint <= self.end


@dataclass
class UnicodeCharRanges:
    """
    Inclusion or exclusion set of Unicode code points.

    Made of inclusive ranges plus individual characters. Expressions are kept
    as written so the configuration can be saved back.
    """

    ranges: List[CharRange] = field(default_factory=list)
    char_exprs: List[str] = field(default_factory=list)
    _chars: Set[int] = field(default_factory=set, repr=False)

    @property
    def is_empty(self) -> bool:
        return not self.ranges and not self._chars

    def add_range(self, from_expr: str, to_expr: str) -> None:
        begin = parse_codepoint(from_expr)
        end = parse_codepoint(to_expr)
        if begin > end:
            raise InvalidFormatError(
                f"Invalid char range [{from_expr}, {to_expr}]: "
                "the begin code point is greater than the end code point"
            )
        self.ranges.append(CharRange(begin, end, from_expr, to_expr))

    def add_chars(self, symbol_expr: str) -> None:
        """
        Add one or more characters.

        A hexadecimal expression adds the single character it names, any other
        string adds each of its characters literally.
        """
        if not symbol_expr:
            raise InvalidFormatError("Chars symbol should not be empty")
        codepoint = _parse_hex(symbol_expr) if len(symbol_expr) > 1 else None
        if codepoint is not None:
            if codepoint > 0x10FFFF:
                raise InvalidFormatError(
                    f"Code point out of Unicode range [{symbol_expr}]"
                )
            self._chars.add(codepoint)
        else:
            self._chars.update(ord(ch) for ch in symbol_expr)
        self.char_exprs.append(symbol_expr)

    def is_in_range(self, codepoint: int) -> bool:
        if codepoint in self._chars:
            return True
        return any(codepoint in r for r in self.ranges)
