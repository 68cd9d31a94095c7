# corpuscleaner/cleaner/rules.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from ..errors import InvalidPatternError

__all__ = ["RegexRule", "RegexRuleType", "translate_replacement"]

# $1, ${name}, $$ and $& in configured replacement strings
RE_REPLACEMENT_TOKEN = re.compile(r"\$(?:(\d+)|\{(\w+)\}|(\$)|(&))")


class RegexRuleType(Enum):
    DELETE = "Delete"
    REPLACE = "Replace"


def translate_replacement(replacement: str) -> str:
    """
    Translate a configured replacement into a :func:`re.sub` template.

    Configurations use ``$1`` / ``${name}`` group references, ``$$`` for a
    literal dollar and ``$&`` for the whole match. Backslashes are literal.

    :param replacement: Replacement as written in the configuration.
    :returns: Equivalent Python template string.
    """
    out = []
    pos = 0
    for m in RE_REPLACEMENT_TOKEN.finditer(replacement):
        out.append(replacement[pos : m.start()].replace("\\", "\\\\"))
        number, name, dollar, whole = m.groups()
        if number is not None:
            out.append(f"\\g<{number}>")
        elif name is not None:
            out.append(f"\\g<{name}>")
        elif dollar is not None:
            out.append("$")
        elif whole is not None:
            out.append("\\g<0>")
        pos = m.end()
    out.append(replacement[pos:].replace("\\", "\\\\"))
    return "".join(out)


@dataclass(frozen=True)
class RegexRule:
    """
    One named line transformation.

    :param type: Delete or replace.
    :param pattern: Regular expression, compiled at construction.
    :param replacement: Replacement for replace rules (may be empty).
    :param delete_line: For delete rules, drop the whole line on match instead
                        of stripping only the matched substrings.
    :param before_merge: Apply before the line-merge stage (else after).
    """

    type: RegexRuleType
    pattern: str
    replacement: str = ""
    delete_line: bool = False
    before_merge: bool = False
    regex: re.Pattern = field(init=False, repr=False, compare=False)
    template: str = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.pattern:
            raise InvalidPatternError("Regex rule pattern should not be empty")
        try:
            compiled = re.compile(self.pattern)
        except re.error as e:
            raise InvalidPatternError(
                f"Invalid regex rule pattern : [{self.pattern}] ({e})"
            ) from e
        replacement = self.replacement or ""
        if self.type is RegexRuleType.REPLACE:
            for m in RE_REPLACEMENT_TOKEN.finditer(replacement):
                ref = m.group(1) or m.group(2)
                if ref is None:
                    continue
                if ref.isdigit():
                    unknown = int(ref) > compiled.groups
                else:
                    unknown = ref not in compiled.groupindex
                if unknown:
                    raise InvalidPatternError(
                        f"Invalid group reference [{m.group(0)}] in replacement "
                        f"for pattern [{self.pattern}]"
                    )
        template = translate_replacement(replacement)
        object.__setattr__(self, "regex", compiled)
        object.__setattr__(self, "template", template)

    @classmethod
    def delete(
        cls, pattern: str, *, delete_line: bool, before_merge: bool = False
    ) -> "RegexRule":
        return cls(
            RegexRuleType.DELETE,
            pattern,
            delete_line=delete_line,
            before_merge=before_merge,
        )

    @classmethod
    def replace(
        cls, pattern: str, replacement: str, *, before_merge: bool = False
    ) -> "RegexRule":
        return cls(
            RegexRuleType.REPLACE,
            pattern,
            replacement=replacement,
            before_merge=before_merge,
        )
