# corpuscleaner/pipeline.py
from __future__ import annotations

import argparse
import json
import logging
import re
import shutil
import time
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Iterator, List

from tqdm import tqdm

from .cleaner.clean import (
    StageStats,
    apply_regex_rules_on_file,
    delete_empty_folder,
    drop_invalid_chars,
    filter_line_length,
    html_decode,
    merge_lines,
    resize_files,
)
from .cleaner.duplicates import DuplicateLineManager
from .cleaner.mappings import TARGET_ENCODING
from .config import CorpusCleanerConfig, SourceCorpusConfig, get_files_path

__all__ = ["CleanReport", "clean_corpus", "clean_one_type_corpus", "main"]

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "corpuscleaner"
LOG_FILE_ENCODING = "utf-16"

CORPUS_NAME_FORMAT = "Corpus_{0}.txt"
FILTERED_OUT_NAME_FORMAT = "FilteredOutSentences_{0}.txt"

RE_FINAL_OUTPUT = re.compile(r"^(?:Corpus|FilteredOutSentences)_\d+\.txt$")


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass
class CleanReport:
    """
    Execution report for a cleaning run.

    :param source_files: Raw corpus files matched by the search patterns.
    :param chunk_files: Same-size chunks processed by the stage sequence.
    :param dropped_lines: Dropped line count per stage name.
    :param invalid_chars: Invalid character occurrences over all files.
    :param corpus_files: Final ``Corpus_{n}.txt`` files.
    :param filtered_out_files: Final ``FilteredOutSentences_{n}.txt`` files.
    """

    source_files: int = 0
    chunk_files: int = 0
    dropped_lines: Counter = field(default_factory=Counter)
    invalid_chars: Counter = field(default_factory=Counter)
    corpus_files: List[str] = field(default_factory=list)
    filtered_out_files: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    stages: List[StageStats] = field(default_factory=list)

    def add(self, stats: StageStats) -> StageStats:
        self.stages.append(stats)
        self.dropped_lines[stats.stage] += stats.dropped
        self.invalid_chars.update(stats.invalid_chars)
        return stats

    def to_jsonl(self, path: str | Path) -> None:
        """
        Export per-stage statistics as JSONL.
        """
        out_path = Path(path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with out_path.open("w", encoding="utf-8") as f:
            for s in self.stages:
                row = dict(vars(s))
                row["invalid_chars"] = dict(s.invalid_chars)
                f.write(json.dumps(row, ensure_ascii=False) + "\n")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@contextmanager
def _log_to_file(path: Path) -> Iterator[None]:
    """
    Append every record of the package logger to ``path`` while the block
    runs. The console only gets what its own handlers let through.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding=LOG_FILE_ENCODING)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(asctime)s\t%(message)s"))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    previous_level = package_logger.level
    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(handler)
    try:
        yield
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)
        handler.close()


def _format_invalid_chars(source: Path, invalid_chars: Counter) -> str:
    stats = "".join(f"[{ch},{count}]" for ch, count in invalid_chars.items())
    return f"Invalid char statistics in corpus [{source}] :\n\t{stats}"


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


def _remove_previous_outputs(target_dir: Path) -> None:
    for p in target_dir.iterdir():
        if p.is_file() and RE_FINAL_OUTPUT.match(p.name):
            p.unlink()


def _exists(path: Path, step: str) -> bool:
    if path.is_file():
        return True
    logger.debug("Skip %s, input [%s] does not exist.", step, path)
    return False


def _collect(path: Path, files: List[Path]) -> None:
    if path.is_file():
        files.append(path)


def clean_one_type_corpus(
    source: SourceCorpusConfig,
    config: CorpusCleanerConfig,
    target_files: List[Path],
    dropped_files: List[Path],
    report: CleanReport,
    *,
    show_progress: bool = True,
) -> None:
    """
    Run the stage sequence over one corpus type.

    Surviving chunk files are appended to ``target_files``, every non-empty
    reject file to ``dropped_files``. A stage whose input file does not exist
    is skipped, so staging folders can be pre-populated to resume a run.
    """
    config.target_corpus_dir.mkdir(parents=True, exist_ok=True)

    process_files: List[Path] = []
    for pattern in source.search_patterns:
        process_files.extend(
            get_files_path(config.source_corpus_dir, pattern, config.exclude_file_filters)
        )
    report.source_files += len(process_files)

    logger.info(
        "Resize corpus to [%s], from [%s] to [%s].",
        config.target_corpus_file_size_string,
        config.source_corpus_dir,
        source.same_file_size_dir,
    )
    logger.debug(
        "Source file list(FileNumber=%d):\n%s",
        len(process_files),
        "\n".join(str(p) for p in process_files),
    )

    # Resize corpus and convert to the staging encoding. Chunks of a previous
    # run are removed so that only this run's chunks go through the stages.
    if source.same_file_size_dir.is_dir():
        shutil.rmtree(source.same_file_size_dir)
    chunks = resize_files(
        process_files,
        source.encoding,
        source.same_file_size_dir,
        TARGET_ENCODING,
        config.target_corpus_file_size,
        CORPUS_NAME_FORMAT,
    )
    report.chunk_files += len(chunks)

    # One window per corpus type, shared by all its chunks
    duplicate_manager = DuplicateLineManager()

    for chunk in tqdm(
        chunks, desc=source.corpus_type, unit="file", disable=not show_progress
    ):
        name = chunk.name
        current = chunk

        # HTML decode
        target = source.html_decode_dir / name
        if _exists(current, "HTML decode"):
            logger.info("Apply HTML decode from [%s] to [%s].", current, target)
            report.add(html_decode(current, TARGET_ENCODING, target, TARGET_ENCODING))

        # Regex rules before merge
        current = target
        target = source.regex_before_merge_dir / name
        deleted_sentences = source.regex_sentences_before_merge_dir / name
        deleted_words = source.regex_words_before_merge_dir / name
        if _exists(current, "regex rules before merge"):
            logger.info(
                "Apply regex rules on corpus, source corpus file [%s], "
                "target corpus file [%s].",
                current,
                target,
            )
            report.add(
                apply_regex_rules_on_file(
                    current,
                    TARGET_ENCODING,
                    target,
                    deleted_sentences,
                    deleted_words,
                    TARGET_ENCODING,
                    source.before_merge_rules,
                )
            )
        _collect(deleted_sentences, dropped_files)
        _collect(deleted_words, dropped_files)

        # Merge lines without line ending punctuation
        if source.enable_merge_lines:
            current = target
            target = source.merge_lines_dir / name
            if _exists(current, "merge lines"):
                logger.info(
                    "Merge lines without line ending punctuation, source corpus "
                    "file [%s], target corpus file [%s].",
                    current,
                    target,
                )
                report.add(
                    merge_lines(
                        current,
                        TARGET_ENCODING,
                        target,
                        TARGET_ENCODING,
                        source.line_ending_punctuations,
                    )
                )

        # Duplicate lines
        current = target
        target = source.drop_duplicate_lines_dir / name
        duplicates = source.duplicate_lines_dir / name
        if source.remove_duplicate_line:
            if _exists(current, "drop duplicate lines"):
                report.add(
                    duplicate_manager.drop_duplicate_lines(
                        current, TARGET_ENCODING, target, duplicates, TARGET_ENCODING
                    )
                )
                logger.info(
                    "Drop duplicate lines from [%s] to [%s].", current, target
                )
            _collect(duplicates, dropped_files)
        elif current.is_file():
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(current, target)

        # Invalid chars
        current = target
        target = source.drop_invalid_chars_dir / name
        invalid_sentences = source.invalid_char_sentences_dir / name
        if _exists(current, "drop invalid chars"):
            logger.info(
                "Drop lines with invalid chars, source corpus file [%s], target "
                "corpus file [%s], invalid sentences file [%s].",
                current,
                target,
                invalid_sentences,
            )
            stats = report.add(
                drop_invalid_chars(
                    current,
                    TARGET_ENCODING,
                    target,
                    TARGET_ENCODING,
                    invalid_sentences,
                    source.char_ranges_include,
                    source.char_ranges_exclude,
                )
            )
            logger.debug(_format_invalid_chars(current, stats.invalid_chars))
        _collect(invalid_sentences, dropped_files)

        # Regex rules after merge
        current = target
        target = source.regex_after_merge_dir / name
        deleted_sentences = source.regex_sentences_after_merge_dir / name
        deleted_words = source.regex_words_after_merge_dir / name
        if _exists(current, "regex rules after merge"):
            logger.info(
                "Apply regex rules on corpus, source corpus file [%s], "
                "target corpus file [%s].",
                current,
                target,
            )
            report.add(
                apply_regex_rules_on_file(
                    current,
                    TARGET_ENCODING,
                    target,
                    deleted_sentences,
                    deleted_words,
                    TARGET_ENCODING,
                    source.after_merge_rules,
                )
            )
        _collect(deleted_sentences, dropped_files)
        _collect(deleted_words, dropped_files)

        # Line length
        current = target
        target = source.filter_line_length_dir / name
        too_long = source.deleted_line_length_dir / name
        if _exists(current, "filter line length"):
            logger.info(
                "Filter line length [maxCharNumPerLine=%d] on corpus.",
                config.max_char_num_per_line,
            )
            report.add(
                filter_line_length(
                    current,
                    TARGET_ENCODING,
                    target,
                    TARGET_ENCODING,
                    too_long,
                    config.max_char_num_per_line,
                )
            )
        _collect(too_long, dropped_files)
        _collect(target, target_files)


def clean_corpus(
    config: CorpusCleanerConfig, *, show_progress: bool = True
) -> CleanReport:
    """
    Clean every corpus type of ``config`` and write the final
    ``Corpus_{n}.txt`` / ``FilteredOutSentences_{n}.txt`` files.

    Staging files stay under ``<target>/Log``; empty staging folders are
    removed at the end. I/O errors abort the run.
    """
    report = CleanReport()
    start = time.perf_counter()

    with _log_to_file(config.log_file_path):
        target_files: List[Path] = []
        dropped_files: List[Path] = []

        for source in config.source_corpus_configs:
            clean_one_type_corpus(
                source,
                config,
                target_files,
                dropped_files,
                report,
                show_progress=show_progress,
            )

        _remove_previous_outputs(config.target_corpus_dir)

        logger.info(
            "Combine %d filtered out file(s) into [%s].",
            len(dropped_files),
            config.target_corpus_dir,
        )
        filtered_out = resize_files(
            dropped_files,
            TARGET_ENCODING,
            config.target_corpus_dir,
            TARGET_ENCODING,
            config.target_corpus_file_size,
            FILTERED_OUT_NAME_FORMAT,
        )

        logger.info(
            "Combine %d cleaned file(s) into [%s].",
            len(target_files),
            config.target_corpus_dir,
        )
        corpus = resize_files(
            target_files,
            TARGET_ENCODING,
            config.target_corpus_dir,
            TARGET_ENCODING,
            config.target_corpus_file_size,
            CORPUS_NAME_FORMAT,
        )

        delete_empty_folder(config.midterm_dir)

        report.filtered_out_files = [str(p) for p in filtered_out]
        report.corpus_files = [str(p) for p in corpus]
        report.elapsed_seconds = time.perf_counter() - start
        logger.info("Total cost : %s", timedelta(seconds=report.elapsed_seconds))

    return report


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def main(argv: List[str] | None = None) -> int:
    """
    CLI entrypoint.

    Usage::

        corpuscleaner -config CorpusCleaner.xml

    :param argv: Optional argv (defaults to ``sys.argv[1:]``).
    :returns: Process exit code, 0 on success.
    """
    ap = argparse.ArgumentParser(
        prog="corpuscleaner",
        description=(
            "Corpus cleaner tool converts original corpus into well formatted "
            "cleaned corpus."
        ),
    )
    ap.add_argument(
        "-config",
        dest="config",
        required=True,
        metavar="configFile",
        help="Specifies the location of the data cleaning configuration file",
    )
    args = ap.parse_args(argv)

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    logging.basicConfig(level=logging.INFO, format="%(message)s", handlers=[console])

    try:
        config = CorpusCleanerConfig.load(args.config)
        clean_corpus(config)
    except Exception:
        logger.exception("Corpus cleaning failed with config [%s].", args.config)
        return 1
    return 0
