import json
from pathlib import Path

import pytest

from corpuscleaner.config import NAMESPACE, CorpusCleanerConfig
from corpuscleaner.pipeline import clean_corpus, main


def _config_xml(
    tmp_path,
    *,
    file_size="2k",
    max_chars=5120,
    merge="false",
    dedupe="true",
    char_range='<CharRange><Include><Range from="0x20" to="0x7E" /></Include></CharRange>',
    rules='<RegexRules><Delete pattern="http://" deleteLine="true" beforeMerge="true" /></RegexRules>',
):
    path = tmp_path / "CorpusCleaner.xml"
    path.write_text(
        f"""<?xml version="1.0" encoding="utf-8"?>
<CorpusCleaner xmlns="{NAMESPACE}">
  <CleanCorpus dir="{tmp_path / 'clean'}" fileSize="{file_size}"
              maxCharNumPerLine="{max_chars}" />
  <RawCorpus dir="{tmp_path / 'raw'}">
    <CorpusFile type="General" codePage="65001" searchPatterns="*.txt"
                removeDuplicateLine="{dedupe}">
      {char_range}
      <LineEndingPunctuation merge="{merge}">
        <Punctuation symbol="." />
      </LineEndingPunctuation>
      {rules}
    </CorpusFile>
  </RawCorpus>
</CorpusCleaner>
""",
        encoding="utf-8",
    )
    return path


def _raw(tmp_path, name, lines):
    raw = tmp_path / "raw"
    raw.mkdir(exist_ok=True)
    (raw / name).write_text("\n".join(lines) + "\n", encoding="utf-8")


def _read(path):
    return path.read_text(encoding="utf-16").splitlines()


def test_end_to_end_scenario(tmp_path):
    _raw(
        tmp_path,
        "a.txt",
        ["Hello world", "Visit http://x.com now", "Hello world", "日本語テスト", "ok"],
    )
    config = CorpusCleanerConfig.load(_config_xml(tmp_path))

    report = clean_corpus(config, show_progress=False)

    clean = tmp_path / "clean"
    assert _read(clean / "Corpus_1.txt") == ["Hello world", "ok"]
    assert _read(clean / "FilteredOutSentences_1.txt") == [
        "Visit http://x.com now",
        "Hello world",
        "日本語テスト",
    ]
    assert not (clean / "Corpus_2.txt").exists()

    assert report.source_files == 1
    assert report.chunk_files == 1
    assert report.dropped_lines["drop_duplicate_lines"] == 1
    assert report.dropped_lines["drop_invalid_chars"] == 1
    assert report.invalid_chars["日"] == 1
    assert report.corpus_files == [str(clean / "Corpus_1.txt")]

    log = config.log_file_path.read_text(encoding="utf-16")
    assert "Drop duplicate lines" in log
    assert "[日,1]" in log
    assert "Total cost" in log


def test_basic_latin_corpus_with_url_rule(tmp_path):
    _raw(
        tmp_path,
        "a.txt",
        ["Hello world", "Hello world", "Visit http://x.com now", "日本語テスト", "ok"],
    )
    config = CorpusCleanerConfig.load(
        _config_xml(
            tmp_path,
            max_chars=20,
            rules=r'<RegexRules><Delete pattern="http\S+" deleteLine="true" /></RegexRules>',
        )
    )

    clean_corpus(config, show_progress=False)

    clean = tmp_path / "clean"
    assert _read(clean / "Corpus_1.txt") == ["Hello world", "ok"]
    assert _read(clean / "FilteredOutSentences_1.txt") == [
        "Hello world",
        "日本語テスト",
        "Visit http://x.com now",
    ]

    (source,) = config.source_corpus_configs
    assert _read(source.duplicate_lines_dir / "Corpus_1.txt") == ["Hello world"]
    assert _read(source.invalid_char_sentences_dir / "Corpus_1.txt") == ["日本語テスト"]
    assert _read(source.regex_sentences_after_merge_dir / "Corpus_1.txt") == [
        "Visit http://x.com now"
    ]


def test_rerun_ignores_previous_chunks(tmp_path):
    _raw(tmp_path, "a.txt", [f"old line {i:03d}" for i in range(200)])
    path = _config_xml(tmp_path, file_size="1k", rules="")
    first = clean_corpus(CorpusCleanerConfig.load(path), show_progress=False)
    assert first.chunk_files > 1
    assert len(first.corpus_files) > 1

    _raw(tmp_path, "a.txt", ["new only"])
    report = clean_corpus(CorpusCleanerConfig.load(path), show_progress=False)

    clean = tmp_path / "clean"
    assert report.chunk_files == 1
    assert report.corpus_files == [str(clean / "Corpus_1.txt")]
    assert _read(clean / "Corpus_1.txt") == ["new only"]
    assert not (clean / "Corpus_2.txt").exists()


def test_merge_without_dedupe(tmp_path):
    _raw(tmp_path, "a.txt", ["The quick", "fox.", "Next.", "Next."])
    config = CorpusCleanerConfig.load(
        _config_xml(tmp_path, merge="true", dedupe="false", char_range="", rules="")
    )

    report = clean_corpus(config, show_progress=False)

    clean = tmp_path / "clean"
    assert _read(clean / "Corpus_1.txt") == ["The quick fox.", "Next.", "Next."]
    assert report.filtered_out_files == []
    (source,) = config.source_corpus_configs
    assert (source.merge_lines_dir / "Corpus_1.txt").is_file()
    assert (source.drop_duplicate_lines_dir / "Corpus_1.txt").is_file()


def test_duplicate_window_spans_chunks(tmp_path):
    lines = ["repeat me"] + [f"line {i:03d}" for i in range(100)] + ["repeat me"]
    _raw(tmp_path, "a.txt", lines)
    config = CorpusCleanerConfig.load(
        _config_xml(tmp_path, file_size="1k", char_range="", rules="")
    )

    report = clean_corpus(config, show_progress=False)

    assert report.chunk_files > 1
    (source,) = config.source_corpus_configs
    assert sorted(p.name for p in source.same_file_size_dir.iterdir())[0] == "Corpus_1.txt"

    clean = tmp_path / "clean"
    kept = [line for p in report.corpus_files for line in _read(Path(p))]
    assert kept == lines[:-1]
    assert _read(clean / "FilteredOutSentences_1.txt") == ["repeat me"]


def test_report_to_jsonl(tmp_path):
    _raw(tmp_path, "a.txt", ["one", "one", "two"])
    config = CorpusCleanerConfig.load(_config_xml(tmp_path, rules=""))

    report = clean_corpus(config, show_progress=False)
    out = tmp_path / "report" / "stages.jsonl"
    report.to_jsonl(out)

    rows = [json.loads(line) for line in out.read_text(encoding="utf-8").splitlines()]
    assert [r["stage"] for r in rows][:2] == ["html_decode", "apply_regex_rules_on_file"]
    dedupe = [r for r in rows if r["stage"] == "drop_duplicate_lines"]
    assert dedupe[0]["kept"] == 2
    assert dedupe[0]["dropped"] == 1
    assert all(isinstance(r["invalid_chars"], dict) for r in rows)


def test_cli_success(tmp_path):
    _raw(tmp_path, "a.txt", ["Hello world"])
    path = _config_xml(tmp_path)

    assert main(["-config", str(path)]) == 0
    assert _read(tmp_path / "clean" / "Corpus_1.txt") == ["Hello world"]


def test_cli_bad_config_returns_error(tmp_path):
    _raw(tmp_path, "a.txt", ["Hello world"])
    path = _config_xml(tmp_path, file_size="huge")

    assert main(["-config", str(path)]) == 1
    assert not (tmp_path / "clean" / "Corpus_1.txt").exists()


def test_cli_requires_config():
    with pytest.raises(SystemExit):
        main([])
