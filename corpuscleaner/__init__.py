from .cleaner.charranges import UnicodeCharRanges
from .cleaner.clean import (
    StageStats,
    apply_regex_rules,
    apply_regex_rules_on_file,
    convert_encoding,
    drop_invalid_chars,
    filter_line_length,
    html_decode,
    merge_lines,
    resize_files,
)
from .cleaner.duplicates import DuplicateLineManager
from .cleaner.rules import RegexRule, RegexRuleType
from .config import CorpusCleanerConfig, FileFilter, SourceCorpusConfig
from .errors import ConfigError, InvalidFormatError, InvalidPatternError
from .pipeline import CleanReport, clean_corpus, main

__all__ = [
    "UnicodeCharRanges",
    "StageStats",
    "apply_regex_rules",
    "apply_regex_rules_on_file",
    "convert_encoding",
    "drop_invalid_chars",
    "filter_line_length",
    "html_decode",
    "merge_lines",
    "resize_files",
    "DuplicateLineManager",
    "RegexRule",
    "RegexRuleType",
    "CorpusCleanerConfig",
    "FileFilter",
    "SourceCorpusConfig",
    "ConfigError",
    "InvalidFormatError",
    "InvalidPatternError",
    "CleanReport",
    "clean_corpus",
    "main",
]
