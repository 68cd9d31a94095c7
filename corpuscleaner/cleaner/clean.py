# corpuscleaner/cleaner/clean.py
from __future__ import annotations

import logging
import os
import re
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from html import unescape
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, Tuple

from .charranges import UnicodeCharRanges
from .mappings import ABBREVIATION_TITLES, TARGET_ENCODING
from .rules import RegexRule, RegexRuleType

__all__ = [
    "StageStats",
    "read_lines",
    "ensure_parent",
    "delete_empty_file",
    "delete_empty_folder",
    "resize_files",
    "decode_html_entities",
    "html_decode",
    "convert_encoding",
    "merge_lines",
    "is_valid_char",
    "drop_invalid_chars",
    "is_valid_line_length",
    "filter_line_length",
    "apply_regex_rules",
    "apply_regex_rules_on_file",
]

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHAR_NUM_PER_LINE = 5120

# Character references terminated by ";", e.g. "&amp;", "&#8217;", "&#x2019;"
RE_HTML_ENTITY = re.compile(r"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")


# ---------------------------------------------------------------------------
# Stage statistics
# ---------------------------------------------------------------------------


@dataclass
class StageStats:
    """
    Line counters returned by every stage.

    :param stage: Stage function name.
    :param source: Source file path.
    :param kept: Lines written to the stage output.
    :param dropped: Lines routed to a reject file.
    :param deleted_words: Lines written to the deleted-words log.
    :param invalid_chars: Occurrences of each character outside the valid
                          ranges (invalid-char stage only).
    """

    stage: str
    source: str
    kept: int = 0
    dropped: int = 0
    deleted_words: int = 0
    invalid_chars: Counter = field(default_factory=Counter)


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def read_lines(path: str | Path, encoding: str) -> Iterator[str]:
    """
    Stream lines of a text file without their line terminators.

    ``\\n``, ``\\r\\n`` and ``\\r`` all end a line. Undecodable bytes are
    replaced rather than aborting the run.
    """
    with Path(path).open("r", encoding=encoding, errors="replace") as f:
        for line in f:
            yield line[:-1] if line.endswith("\n") else line


def ensure_parent(path: str | Path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


def delete_empty_file(path: str | Path, encoding: str = TARGET_ENCODING) -> bool:
    """
    Delete ``path`` if it holds no line at all.

    A file with a BOM only is empty, a file with one blank line is not.

    :returns: True if the file was deleted.
    """
    p = Path(path)
    if not p.is_file():
        return False

    with p.open("r", encoding=encoding, errors="replace") as f:
        empty = f.readline() == ""

    if empty:
        p.unlink()
    return empty


def delete_empty_folder(directory: str | Path) -> None:
    """
    Recursively remove empty sub directories of ``directory``, and
    ``directory`` itself if nothing is left in it.
    """
    d = Path(directory)
    if not d.is_dir():
        raise FileNotFoundError(f"Directory not found: {d}")

    for sub in d.iterdir():
        if sub.is_dir():
            delete_empty_folder(sub)

    if not any(d.iterdir()):
        d.rmdir()


# ---------------------------------------------------------------------------
# Resize / re-encode
# ---------------------------------------------------------------------------


def resize_files(
    source_paths: Iterable[str | Path],
    source_encoding: str,
    target_dir: str | Path,
    target_encoding: str,
    target_size: int,
    name_format: str,
) -> List[Path]:
    """
    Re-chunk the lines of ``source_paths`` into files of about ``target_size``
    bytes.

    Lines are streamed in order across all sources. The size is checked after
    each line is written, so a chunk may exceed ``target_size`` by the last
    line, but a line is never split between chunks.

    :param name_format: Chunk file name, formatted with the 1-based chunk
                        number (e.g. ``"Corpus_{0}.txt"``).
    :returns: Produced chunk paths, in order.
    """
    if target_size <= 0:
        raise ValueError("target_size must be > 0")

    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    produced: List[Path] = []
    writer = None
    try:
        for source in source_paths:
            for line in read_lines(source, source_encoding):
                if writer is None:
                    chunk_path = target_dir / name_format.format(len(produced) + 1)
                    writer = chunk_path.open("w", encoding=target_encoding)
                    produced.append(chunk_path)

                writer.write(line + "\n")
                writer.flush()

                if os.fstat(writer.fileno()).st_size > target_size:
                    writer.close()
                    writer = None
    finally:
        if writer is not None:
            writer.close()

    logger.debug("Resized into %d chunk(s) under [%s].", len(produced), target_dir)
    return produced


def decode_html_entities(line: str) -> str:
    """
    Decode the character references of ``line`` that end with ``;``.

    ``"&copy2024"`` is left alone, ``"&copy;2024"`` becomes ``"©2024"``.
    Unknown names stay as written.
    """
    return RE_HTML_ENTITY.sub(lambda m: unescape(m.group(0)), line)


def html_decode(
    source_path: str | Path,
    source_encoding: str,
    target_path: str | Path,
    target_encoding: str = TARGET_ENCODING,
) -> StageStats:
    """Decode HTML entities (``&amp;``, ``&#8217;``...) line by line."""
    source_path = Path(source_path)
    if not source_path.is_file():
        raise FileNotFoundError(f"File not found: {source_path}")

    target_path = ensure_parent(target_path)
    stats = StageStats(stage="html_decode", source=str(source_path))

    with target_path.open("w", encoding=target_encoding) as out:
        for line in read_lines(source_path, source_encoding):
            out.write(decode_html_entities(line) + "\n")
            stats.kept += 1

    delete_empty_file(target_path, target_encoding)
    return stats


def convert_encoding(
    source_path: str | Path,
    source_encoding: str,
    target_path: str | Path,
    target_encoding: str = TARGET_ENCODING,
) -> StageStats:
    """
    Rewrite a file in another encoding.

    Characters the target encoding cannot represent are replaced.
    """
    target_path = ensure_parent(target_path)
    stats = StageStats(stage="convert_encoding", source=str(source_path))

    with target_path.open("w", encoding=target_encoding, errors="replace") as out:
        for line in read_lines(source_path, source_encoding):
            out.write(line + "\n")
            stats.kept += 1

    delete_empty_file(target_path, target_encoding)
    return stats


# ---------------------------------------------------------------------------
# Line merge
# ---------------------------------------------------------------------------


def _ends_with_abbreviation(s: str) -> bool:
    """
    Detect a trailing dot that most likely does not end a sentence.

    - single capital initial: ``"... J."``
    - titles: ``"... Mr."``, ``"... Mrs."``, ``"... Ms."``
    - last token has an inner dot: ``"... U.S."``, ``"... e.g."``

    The inner-dot rule also matches ``"3.14."`` or ``"..."``; those lines are
    merged with the next one.
    """
    if len(s) <= 2 or s[-1] != ".":
        return False
    if s[-2].isupper() and s[-3] == " ":
        return True
    if s.endswith(ABBREVIATION_TITLES):
        return True
    last_token = s[s.rfind(" ") + 1 : -1]
    return "." in last_token


def merge_lines(
    source_path: str | Path,
    source_encoding: str,
    target_path: str | Path,
    target_encoding: str,
    line_ending_punctuations: Sequence[str],
) -> StageStats:
    """
    Join soft-wrapped lines into sentences.

    Each trimmed line is appended to the current output line. The output line
    ends only when the input line ends with one of
    ``line_ending_punctuations`` and the ending is not an abbreviation,
    otherwise a space is appended and the next line continues it. Input lines
    are never split.
    """
    target_path = ensure_parent(target_path)
    stats = StageStats(stage="merge_lines", source=str(source_path))
    open_line = False

    with target_path.open("w", encoding=target_encoding) as out:
        for line in read_lines(source_path, source_encoding):
            trimmed = line.strip()
            out.write(trimmed)
            open_line = open_line or bool(trimmed)

            if _ends_with_abbreviation(trimmed):
                out.write(" ")
                continue

            if any(trimmed.endswith(p) for p in line_ending_punctuations):
                out.write("\n")
                stats.kept += 1
                open_line = False
            else:
                out.write(" ")

    if open_line:
        stats.kept += 1

    delete_empty_file(target_path, target_encoding)
    return stats


# ---------------------------------------------------------------------------
# Invalid chars
# ---------------------------------------------------------------------------


def _utf16_code_units(ch: str) -> Tuple[int, ...]:
    cp = ord(ch)
    if cp <= 0xFFFF:
        return (cp,)
    cp -= 0x10000
    return (0xD800 + (cp >> 10), 0xDC00 + (cp & 0x3FF))


def is_valid_char(
    code_unit: int,
    include: UnicodeCharRanges,
    exclude: UnicodeCharRanges,
) -> bool:
    """
    Check one UTF-16 code unit against the include/exclude ranges.

    ============  ============  ===================================
    include       exclude       valid iff
    ============  ============  ===================================
    empty         empty         always
    empty         non-empty     not excluded
    non-empty     empty         included
    non-empty     non-empty     included and not excluded
    ============  ============  ===================================
    """
    if include.is_empty and exclude.is_empty:
        return True
    if include.is_empty:
        return not exclude.is_in_range(code_unit)
    if exclude.is_empty:
        return include.is_in_range(code_unit)
    return include.is_in_range(code_unit) and not exclude.is_in_range(code_unit)


def _invalid_chars_in_line(
    line: str,
    include: UnicodeCharRanges,
    exclude: UnicodeCharRanges,
) -> List[str]:
    return [
        ch
        for ch in line
        if not all(is_valid_char(u, include, exclude) for u in _utf16_code_units(ch))
    ]


def drop_invalid_chars(
    source_path: str | Path,
    source_encoding: str,
    target_path: str | Path,
    target_encoding: str,
    invalid_sentences_path: str | Path,
    include: UnicodeCharRanges,
    exclude: UnicodeCharRanges,
) -> StageStats:
    """
    Route lines holding any invalid character to ``invalid_sentences_path``.

    The returned stats carry the occurrence count of every invalid character.
    """
    target_path = ensure_parent(target_path)
    invalid_sentences_path = ensure_parent(invalid_sentences_path)
    stats = StageStats(stage="drop_invalid_chars", source=str(source_path))

    with (
        target_path.open("w", encoding=target_encoding) as out,
        invalid_sentences_path.open("w", encoding=target_encoding) as invalid,
    ):
        for line in read_lines(source_path, source_encoding):
            if not line:
                continue

            bad = _invalid_chars_in_line(line, include, exclude)
            if bad:
                stats.invalid_chars.update(bad)
                invalid.write(line + "\n")
                stats.dropped += 1
            else:
                out.write(line + "\n")
                stats.kept += 1

    delete_empty_file(target_path, target_encoding)
    delete_empty_file(invalid_sentences_path, target_encoding)
    return stats


# ---------------------------------------------------------------------------
# Line length
# ---------------------------------------------------------------------------


def _is_punct_symbol_or_space(ch: str) -> bool:
    return ch.isspace() or unicodedata.category(ch)[0] in ("P", "S")


def is_valid_line_length(trimmed: str, max_char_num_per_line: int) -> bool:
    """
    A trimmed line is valid if it is not longer than ``max_char_num_per_line``
    and is not made only of punctuation, symbols and spaces.
    """
    if len(trimmed) > max_char_num_per_line:
        return False
    return not all(_is_punct_symbol_or_space(ch) for ch in trimmed)


def filter_line_length(
    source_path: str | Path,
    source_encoding: str,
    target_path: str | Path,
    target_encoding: str,
    deleted_sentences_path: str | Path,
    max_char_num_per_line: int = DEFAULT_MAX_CHAR_NUM_PER_LINE,
) -> StageStats:
    """
    Drop over-long and punctuation-only lines.

    Blank lines are skipped, every other line is written trimmed to either the
    target or ``deleted_sentences_path``.
    """
    target_path = ensure_parent(target_path)
    deleted_sentences_path = ensure_parent(deleted_sentences_path)
    stats = StageStats(stage="filter_line_length", source=str(source_path))

    with (
        target_path.open("w", encoding=target_encoding) as out,
        deleted_sentences_path.open("w", encoding=target_encoding) as deleted,
    ):
        for line in read_lines(source_path, source_encoding):
            trimmed = line.strip()
            if not trimmed:
                continue

            if is_valid_line_length(trimmed, max_char_num_per_line):
                out.write(trimmed + "\n")
                stats.kept += 1
            else:
                deleted.write(trimmed + "\n")
                stats.dropped += 1

    delete_empty_file(target_path, target_encoding)
    delete_empty_file(deleted_sentences_path, target_encoding)
    return stats


# ---------------------------------------------------------------------------
# Regex rules
# ---------------------------------------------------------------------------


def _find_deleted_words(content: str, rule: RegexRule) -> List[str]:
    """
    Collect successive matches, searching again in the remainder after each
    one. Empty matches are skipped.
    """
    words: List[str] = []
    while content:
        m = rule.regex.search(content)
        if m is None:
            break
        if m.end() == m.start():
            content = content[m.end() + 1 :]
            continue
        words.append(m.group(0))
        content = content[m.end() :]
    return words


def apply_regex_rules(
    line: str, rules: Sequence[RegexRule]
) -> Tuple[str, str | None, List[str]]:
    """
    Apply ``rules`` in order to one line.

    :returns: ``(result, deleted_sentence, deleted_word_groups)``.
              ``result`` is empty when a delete-line rule matched, in which
              case ``deleted_sentence`` holds the input line unchanged. Each
              entry of ``deleted_word_groups`` is the space-joined
              list of substrings removed by one word-delete rule.
    """
    result = line
    word_groups: List[str] = []

    for rule in rules:
        if rule.type is RegexRuleType.DELETE and rule.delete_line:
            if rule.regex.search(result):
                return "", line, word_groups
        elif rule.type is RegexRuleType.DELETE:
            words = _find_deleted_words(result, rule)
            if words:
                word_groups.append(" ".join(words))
                result = rule.regex.sub("", result)
        else:
            result = rule.regex.sub(rule.template, result)

    return result, None, word_groups


def apply_regex_rules_on_file(
    source_path: str | Path,
    source_encoding: str,
    target_path: str | Path,
    deleted_sentences_path: str | Path,
    deleted_words_path: str | Path,
    target_encoding: str,
    rules: Sequence[RegexRule],
) -> StageStats:
    """
    Apply regex rules to every non-empty line of a file.

    Lines dropped by delete-line rules go to ``deleted_sentences_path``,
    substrings removed by word-delete rules to ``deleted_words_path``. Lines
    left empty by the rules are dropped.
    """
    target_path = ensure_parent(target_path)
    deleted_sentences_path = ensure_parent(deleted_sentences_path)
    deleted_words_path = ensure_parent(deleted_words_path)
    stats = StageStats(stage="apply_regex_rules_on_file", source=str(source_path))

    with (
        target_path.open("w", encoding=target_encoding) as out,
        deleted_sentences_path.open("w", encoding=target_encoding) as sentences,
        deleted_words_path.open("w", encoding=target_encoding) as words,
    ):
        for line in read_lines(source_path, source_encoding):
            if not line:
                continue

            result, deleted_sentence, word_groups = apply_regex_rules(line, rules)
            for group in word_groups:
                words.write(group + "\n")
                stats.deleted_words += 1
            if deleted_sentence is not None:
                sentences.write(deleted_sentence + "\n")

            if result:
                out.write(result + "\n")
                stats.kept += 1
            else:
                stats.dropped += 1

    delete_empty_file(target_path, target_encoding)
    delete_empty_file(deleted_sentences_path, target_encoding)
    delete_empty_file(deleted_words_path, target_encoding)
    return stats
