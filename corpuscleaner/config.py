# corpuscleaner/config.py
from __future__ import annotations

import codecs
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .cleaner.charranges import UnicodeCharRanges
from .cleaner.clean import DEFAULT_MAX_CHAR_NUM_PER_LINE
from .cleaner.mappings import CODEPAGE_MAP, TARGET_ENCODING
from .cleaner.rules import RegexRule, RegexRuleType
from .errors import ConfigError

__all__ = [
    "NAMESPACE",
    "FileFilter",
    "SourceCorpusConfig",
    "CorpusCleanerConfig",
    "get_files_path",
    "resolve_encoding",
]

logger = logging.getLogger(__name__)

NAMESPACE = "http://schemas.microsoft.com/tts/toolsuite"

RE_FILE_SIZE = re.compile(r"^[0-9]{1,4}[kKmM]$")

# Staging sub directories, one per pipeline step, under "<target>/Log"
STAGE_DIRS: Dict[str, str] = {
    "same_file_size_dir": "1.HasMergedToSameFileSize",
    "unicode_dir": "2.HasConverttedToUnicode",
    "html_decode_dir": "3.HasDoneHtmlDecode",
    "regex_before_merge_dir": "4.HasAppliedRegexRulesBeforeMerge",
    "regex_sentences_before_merge_dir": "4.DeletedRegexSentencesBeforeMerge",
    "regex_words_before_merge_dir": "4.DeletedRegexWordsBeforeMerge",
    "merge_lines_dir": "5.HasMergedLines",
    "drop_duplicate_lines_dir": "6.HasDroppedDuplicateLines",
    "duplicate_lines_dir": "6.DeletedDuplicateLines",
    "drop_invalid_chars_dir": "7.HasDroppedInvalidChars",
    "invalid_char_sentences_dir": "7.DeletedInvalidCharSentences",
    "regex_after_merge_dir": "8.HasAppliedRegexRulesAfterMerge",
    "regex_sentences_after_merge_dir": "8.DeletedRegexSentencesAfterMerge",
    "regex_words_after_merge_dir": "8.DeletedRegexWordsAfterMerge",
    "filter_line_length_dir": "9.HasFilterredLineLength",
    "deleted_line_length_dir": "9.DeletedFilterLineLength",
}


# ---------------------------------------------------------------------------
# XML helpers
# ---------------------------------------------------------------------------


def _q(tag: str) -> str:
    return f"{{{NAMESPACE}}}{tag}"


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _attr(elem: ET.Element, name: str, *, required: bool = True) -> Optional[str]:
    value = elem.get(name)
    if value is None and required:
        raise ConfigError(
            f"Missing attribute [{name}] on element [{_local(elem.tag)}]"
        )
    return value


def _parse_bool(value: str, where: str) -> bool:
    # xs:boolean lexical space
    v = value.strip()
    if v in ("true", "1"):
        return True
    if v in ("false", "0"):
        return False
    raise ConfigError(f"Invalid boolean value [{value}] for [{where}]")


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


def _check_children(elem: ET.Element, allowed: tuple[str, ...]) -> None:
    for child in elem:
        if child.tag not in {_q(a) for a in allowed}:
            raise ConfigError(
                f"Unexpected element [{_local(child.tag)}] in "
                f"[{_local(elem.tag)}], allowed: {', '.join(allowed)}"
            )


def _single(elem: ET.Element, tag: str, *, required: bool = True) -> Optional[ET.Element]:
    found = elem.findall(_q(tag))
    if len(found) > 1:
        raise ConfigError(f"Element [{tag}] should appear at most once")
    if not found:
        if required:
            raise ConfigError(
                f"Missing element [{tag}] in [{_local(elem.tag)}]"
            )
        return None
    return found[0]


def resolve_encoding(code_page: str) -> str:
    """
    Map a ``codePage`` attribute to a Python codec name.

    Accepts Windows code page numbers (``"936"``, ``"65001"``) or codec names
    (``"utf-8"``).
    """
    value = code_page.strip()
    if value.isdigit():
        number = int(value)
        name = CODEPAGE_MAP.get(number, f"cp{number}")
    else:
        name = value
    try:
        codecs.lookup(name)
    except LookupError as e:
        raise ConfigError(
            f"Invalid source corpus encoding codepage [{code_page}]."
        ) from e
    return name


# ---------------------------------------------------------------------------
# File enumeration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileFilter:
    """Files under ``root / dir`` matching ``search_pattern`` (``"."`` is root)."""

    dir: str
    search_pattern: str


def get_files_path(
    root_dir: str | Path,
    search_pattern: str,
    exclude_file_filters: List[FileFilter],
) -> List[Path]:
    """
    Recursively list files under ``root_dir`` matching ``search_pattern``,
    minus the files selected by any exclude filter (exact path match).
    """
    root = Path(root_dir)
    files = [p for p in sorted(root.rglob(search_pattern)) if p.is_file()]

    for f in exclude_file_filters:
        exclude_dir = root if f.dir == "." else root / f.dir
        if not exclude_dir.is_dir():
            raise FileNotFoundError(f"Exclude directory not found: {exclude_dir}")
        excluded = {p for p in exclude_dir.rglob(f.search_pattern) if p.is_file()}
        files = [p for p in files if p not in excluded]

    return files


# ---------------------------------------------------------------------------
# Source corpus config
# ---------------------------------------------------------------------------


def _stage_dir_property(key: str) -> property:
    def getter(self: "SourceCorpusConfig") -> Path:
        return self.midterm_dir / STAGE_DIRS[key] / self.corpus_type

    getter.__doc__ = f"Staging directory ``{STAGE_DIRS[key]}/<type>``."
    return property(getter)


@dataclass
class SourceCorpusConfig:
    """
    Cleaning settings for one type of raw corpus.

    The staging directory properties need ``midterm_dir``, which
    :class:`CorpusCleanerConfig` sets for every source corpus.
    """

    corpus_type: str
    search_patterns: List[str] = field(default_factory=list)
    encoding: str = TARGET_ENCODING
    code_page: Optional[str] = None
    remove_duplicate_line: bool = False
    char_ranges_include: UnicodeCharRanges = field(default_factory=UnicodeCharRanges)
    char_ranges_exclude: UnicodeCharRanges = field(default_factory=UnicodeCharRanges)
    enable_merge_lines: bool = False
    line_ending_punctuations: List[str] = field(default_factory=list)
    before_merge_rules: List[RegexRule] = field(default_factory=list)
    after_merge_rules: List[RegexRule] = field(default_factory=list)
    _midterm_dir: Optional[Path] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.corpus_type:
            raise ConfigError("Corpus type should not be empty")
        if self.code_page is not None:
            self.encoding = resolve_encoding(self.code_page)

    @property
    def midterm_dir(self) -> Path:
        if self._midterm_dir is None:
            raise RuntimeError("midterm_dir is not set")
        return self._midterm_dir

    @midterm_dir.setter
    def midterm_dir(self, value: str | Path) -> None:
        self._midterm_dir = Path(value)

    same_file_size_dir = _stage_dir_property("same_file_size_dir")
    unicode_dir = _stage_dir_property("unicode_dir")
    html_decode_dir = _stage_dir_property("html_decode_dir")
    regex_before_merge_dir = _stage_dir_property("regex_before_merge_dir")
    regex_sentences_before_merge_dir = _stage_dir_property(
        "regex_sentences_before_merge_dir"
    )
    regex_words_before_merge_dir = _stage_dir_property("regex_words_before_merge_dir")
    merge_lines_dir = _stage_dir_property("merge_lines_dir")
    drop_duplicate_lines_dir = _stage_dir_property("drop_duplicate_lines_dir")
    duplicate_lines_dir = _stage_dir_property("duplicate_lines_dir")
    drop_invalid_chars_dir = _stage_dir_property("drop_invalid_chars_dir")
    invalid_char_sentences_dir = _stage_dir_property("invalid_char_sentences_dir")
    regex_after_merge_dir = _stage_dir_property("regex_after_merge_dir")
    regex_sentences_after_merge_dir = _stage_dir_property(
        "regex_sentences_after_merge_dir"
    )
    regex_words_after_merge_dir = _stage_dir_property("regex_words_after_merge_dir")
    filter_line_length_dir = _stage_dir_property("filter_line_length_dir")
    deleted_line_length_dir = _stage_dir_property("deleted_line_length_dir")

    def add_line_ending_punctuation(self, symbol: str) -> None:
        if not symbol:
            raise ConfigError("Line ending punctuation should not be empty")
        if symbol in self.line_ending_punctuations:
            raise ConfigError(
                f"Duplicate line ending punctuation detected : [{symbol}]"
            )
        self.line_ending_punctuations.append(symbol)

    def add_rule(self, rule: RegexRule) -> None:
        if rule.before_merge:
            self.before_merge_rules.append(rule)
        else:
            self.after_merge_rules.append(rule)

    # --- XML ---------------------------------------------------------------

    @classmethod
    def from_element(cls, node: ET.Element) -> "SourceCorpusConfig":
        _check_children(node, ("CharRange", "LineEndingPunctuation", "RegexRules"))

        patterns = [p for p in _attr(node, "searchPatterns").split("|") if p]
        if not patterns:
            raise ConfigError("CorpusFile searchPatterns should not be empty")

        config = cls(
            corpus_type=_attr(node, "type"),
            search_patterns=patterns,
            code_page=_attr(node, "codePage", required=False),
            remove_duplicate_line=_parse_bool(
                _attr(node, "removeDuplicateLine"), "removeDuplicateLine"
            ),
        )

        char_range = _single(node, "CharRange", required=False)
        if char_range is not None:
            _check_children(char_range, ("Include", "Exclude"))
            for tag, ranges in (
                ("Include", config.char_ranges_include),
                ("Exclude", config.char_ranges_exclude),
            ):
                part = _single(char_range, tag, required=False)
                if part is None:
                    continue
                _check_children(part, ("Range", "Chars"))
                for item in part:
                    if item.tag == _q("Range"):
                        ranges.add_range(_attr(item, "from"), _attr(item, "to"))
                    else:
                        ranges.add_chars(_attr(item, "symbol"))

        punctuation = _single(node, "LineEndingPunctuation")
        _check_children(punctuation, ("Punctuation",))
        config.enable_merge_lines = _parse_bool(_attr(punctuation, "merge"), "merge")
        for item in punctuation:
            config.add_line_ending_punctuation(_attr(item, "symbol"))

        rules = _single(node, "RegexRules", required=False)
        if rules is not None:
            for item in rules:
                config.add_rule(config._parse_rule(item))

        return config

    def _parse_rule(self, item: ET.Element) -> RegexRule:
        tag = _local(item.tag)
        if item.tag not in (_q("Replace"), _q("Delete")):
            raise ConfigError(
                f"Invalid regex rule type [{tag}], only [Replace and Delete] are allowed."
            )

        before_merge = item.get("beforeMerge")
        before = (
            _parse_bool(before_merge, "beforeMerge")
            if before_merge is not None
            else False
        )
        pattern = _attr(item, "pattern")

        if item.tag == _q("Replace"):
            if not pattern:
                raise ConfigError(
                    "RegexRule's attribute pattern should not be empty in "
                    f"corpus [type={self.corpus_type}]."
                )
            return RegexRule.replace(
                pattern, _attr(item, "replacement"), before_merge=before
            )
        return RegexRule.delete(
            pattern,
            delete_line=_parse_bool(_attr(item, "deleteLine"), "deleteLine"),
            before_merge=before,
        )

    def to_element(self) -> ET.Element:
        node = ET.Element(_q("CorpusFile"))
        node.set("type", self.corpus_type)
        if self.code_page is not None:
            node.set("codePage", self.code_page)
        node.set("searchPatterns", "|".join(self.search_patterns))
        node.set("removeDuplicateLine", _format_bool(self.remove_duplicate_line))

        char_range = ET.SubElement(node, _q("CharRange"))
        for tag, ranges in (
            ("Include", self.char_ranges_include),
            ("Exclude", self.char_ranges_exclude),
        ):
            part = ET.SubElement(char_range, _q(tag))
            for r in ranges.ranges:
                ET.SubElement(part, _q("Range"), {"from": r.begin_expr, "to": r.end_expr})
            for expr in ranges.char_exprs:
                ET.SubElement(part, _q("Chars"), {"symbol": expr})

        punctuation = ET.SubElement(node, _q("LineEndingPunctuation"))
        punctuation.set("merge", _format_bool(self.enable_merge_lines))
        for symbol in self.line_ending_punctuations:
            ET.SubElement(punctuation, _q("Punctuation"), {"symbol": symbol})

        rules = ET.SubElement(node, _q("RegexRules"))
        for rule in self.before_merge_rules + self.after_merge_rules:
            if rule.type is RegexRuleType.DELETE:
                ET.SubElement(
                    rules,
                    _q("Delete"),
                    {
                        "pattern": rule.pattern,
                        "deleteLine": _format_bool(rule.delete_line),
                        "beforeMerge": _format_bool(rule.before_merge),
                    },
                )
            else:
                ET.SubElement(
                    rules,
                    _q("Replace"),
                    {
                        "pattern": rule.pattern,
                        "replacement": rule.replacement,
                        "beforeMerge": _format_bool(rule.before_merge),
                    },
                )
        return node


# ---------------------------------------------------------------------------
# Cleaner config
# ---------------------------------------------------------------------------


@dataclass
class CorpusCleanerConfig:
    """
    Whole cleaner configuration, usually read with :meth:`load`.

    :param target_corpus_dir: Output directory of the cleaned corpus.
    :param target_corpus_file_size_string: Chunk size like ``"512k"`` or ``"2M"``.
    :param source_corpus_dir: Root of the raw corpus files.
    :param max_char_num_per_line: Longest line kept by the length filter.
    """

    target_corpus_dir: Path
    target_corpus_file_size_string: str
    source_corpus_dir: Path
    max_char_num_per_line: int = DEFAULT_MAX_CHAR_NUM_PER_LINE
    exclude_file_filters: List[FileFilter] = field(default_factory=list)
    source_corpus_configs: List[SourceCorpusConfig] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.target_corpus_dir = Path(self.target_corpus_dir)
        self.source_corpus_dir = Path(self.source_corpus_dir)

        size = (self.target_corpus_file_size_string or "").strip()
        if not RE_FILE_SIZE.match(size):
            raise ConfigError(
                f"File size [{self.target_corpus_file_size_string}] should match "
                f"the format [{RE_FILE_SIZE.pattern}]"
            )
        self.target_corpus_file_size_string = size
        if self.target_corpus_file_size <= 0:
            raise ConfigError("Target corpus file size should be positive")

        if self.max_char_num_per_line <= 0:
            raise ConfigError("maxCharNumPerLine should be positive")

        sources, self.source_corpus_configs = self.source_corpus_configs, []
        for source in sources:
            self.add_source_corpus_config(source)

    @property
    def target_corpus_file_size(self) -> int:
        """Chunk size in bytes (``k`` = 1024, ``m`` = 1024 * 1024)."""
        value = int(self.target_corpus_file_size_string[:-1])
        unit = self.target_corpus_file_size_string[-1].lower()
        return value * (1024 if unit == "k" else 1024 * 1024)

    @property
    def midterm_dir(self) -> Path:
        return self.target_corpus_dir / "Log"

    @property
    def log_file_path(self) -> Path:
        return self.midterm_dir / "CorpusCleaner.log"

    def add_source_corpus_config(self, source: SourceCorpusConfig) -> None:
        # staging folders are keyed by type
        if any(s.corpus_type == source.corpus_type for s in self.source_corpus_configs):
            raise ConfigError(
                f"Duplicate corpus type detected : [{source.corpus_type}]"
            )
        source.midterm_dir = self.midterm_dir
        self.source_corpus_configs.append(source)

    @classmethod
    def load(cls, path: str | Path) -> "CorpusCleanerConfig":
        """
        Load and validate a configuration file.

        Creates the target directory when missing.

        :raises ConfigError: On any malformed content.
        :raises FileNotFoundError: If the raw corpus directory does not exist.
        """
        try:
            root = ET.parse(path).getroot()
        except ET.ParseError as e:
            raise ConfigError(f"The configuration file [{path}] error is found: {e}") from e

        if root.tag != _q("CorpusCleaner"):
            raise ConfigError(
                f"The configuration file [{path}] root element should be "
                f"[CorpusCleaner] in namespace [{NAMESPACE}], got [{root.tag}]"
            )
        _check_children(root, ("CleanCorpus", "RawCorpus"))

        clean = _single(root, "CleanCorpus")
        raw = _single(root, "RawCorpus")
        _check_children(raw, ("ExcludeFiles", "CorpusFile"))

        max_chars = _attr(clean, "maxCharNumPerLine", required=False)
        try:
            max_char_num = (
                int(max_chars) if max_chars is not None else DEFAULT_MAX_CHAR_NUM_PER_LINE
            )
        except ValueError as e:
            raise ConfigError(f"Invalid maxCharNumPerLine [{max_chars}]") from e

        target_dir = _attr(clean, "dir")
        source_dir = _attr(raw, "dir")
        if not target_dir or not source_dir:
            raise ConfigError("CleanCorpus and RawCorpus dir should not be empty")

        config = cls(
            target_corpus_dir=Path(target_dir),
            target_corpus_file_size_string=_attr(clean, "fileSize"),
            source_corpus_dir=Path(source_dir),
            max_char_num_per_line=max_char_num,
            exclude_file_filters=[
                FileFilter(_attr(e, "dir"), _attr(e, "searchPattern"))
                for e in raw.findall(_q("ExcludeFiles"))
            ],
        )

        if not config.source_corpus_dir.is_dir():
            raise FileNotFoundError(
                f"Raw corpus directory not found: {config.source_corpus_dir}"
            )
        config.target_corpus_dir.mkdir(parents=True, exist_ok=True)

        for node in raw.findall(_q("CorpusFile")):
            source = SourceCorpusConfig.from_element(node)
            config.add_source_corpus_config(source)

        logger.debug(
            "Loaded configuration [%s] with %d corpus type(s).",
            path,
            len(config.source_corpus_configs),
        )
        return config

    def save(self, path: str | Path) -> None:
        ET.register_namespace("", NAMESPACE)
        root = ET.Element(_q("CorpusCleaner"))
        ET.SubElement(
            root,
            _q("CleanCorpus"),
            {
                "dir": str(self.target_corpus_dir),
                "fileSize": self.target_corpus_file_size_string,
                "maxCharNumPerLine": str(self.max_char_num_per_line),
            },
        )
        raw = ET.SubElement(root, _q("RawCorpus"), {"dir": str(self.source_corpus_dir)})
        for f in self.exclude_file_filters:
            ET.SubElement(
                raw, _q("ExcludeFiles"), {"dir": f.dir, "searchPattern": f.search_pattern}
            )
        for source in self.source_corpus_configs:
            raw.append(source.to_element())

        tree = ET.ElementTree(root)
        ET.indent(tree)
        out_path = Path(path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        tree.write(out_path, encoding="utf-8", xml_declaration=True)
