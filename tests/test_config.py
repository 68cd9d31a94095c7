import pytest

from corpuscleaner.cleaner.rules import RegexRuleType
from corpuscleaner.config import (
    NAMESPACE,
    CorpusCleanerConfig,
    FileFilter,
    SourceCorpusConfig,
    get_files_path,
    resolve_encoding,
)
from corpuscleaner.errors import ConfigError, InvalidFormatError, InvalidPatternError

CORPUS_FILE = """
    <CorpusFile type="News" codePage="65001" searchPatterns="*.txt|*.text"
                removeDuplicateLine="true">
      <CharRange>
        <Include>
          <Range from="0x20" to="0x7E" />
          <Chars symbol="。" />
        </Include>
        <Exclude>
          <Chars symbol="@" />
        </Exclude>
      </CharRange>
      <LineEndingPunctuation merge="true">
        <Punctuation symbol="." />
        <Punctuation symbol="?" />
      </LineEndingPunctuation>
      <RegexRules>
        <Delete pattern="^#" deleteLine="true" beforeMerge="true" />
        <Replace pattern="(\\d+)%" replacement="$1 percent" />
      </RegexRules>
    </CorpusFile>
"""


def _xml(tmp_path, *, file_size="2k", corpus_file=CORPUS_FILE, extra_raw="", ns=NAMESPACE):
    raw_dir = tmp_path / "raw"
    raw_dir.mkdir(exist_ok=True)
    text = f"""<?xml version="1.0" encoding="utf-8"?>
<CorpusCleaner xmlns="{ns}">
  <CleanCorpus dir="{tmp_path / 'clean'}" fileSize="{file_size}" maxCharNumPerLine="300" />
  <RawCorpus dir="{raw_dir}">
    {extra_raw}
    {corpus_file}
  </RawCorpus>
</CorpusCleaner>
"""
    path = tmp_path / "CorpusCleaner.xml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_fields(tmp_path):
    config = CorpusCleanerConfig.load(_xml(tmp_path))

    assert config.target_corpus_file_size == 2048
    assert config.max_char_num_per_line == 300
    assert config.target_corpus_dir.is_dir()
    assert config.log_file_path == tmp_path / "clean" / "Log" / "CorpusCleaner.log"

    (source,) = config.source_corpus_configs
    assert source.corpus_type == "News"
    assert source.encoding == "utf-8-sig"
    assert source.search_patterns == ["*.txt", "*.text"]
    assert source.remove_duplicate_line
    assert source.enable_merge_lines
    assert source.line_ending_punctuations == [".", "?"]
    assert source.char_ranges_include.is_in_range(ord("。"))
    assert source.char_ranges_exclude.is_in_range(ord("@"))

    assert [r.type for r in source.before_merge_rules] == [RegexRuleType.DELETE]
    assert [r.type for r in source.after_merge_rules] == [RegexRuleType.REPLACE]
    assert source.after_merge_rules[0].regex.sub(
        source.after_merge_rules[0].template, "50%"
    ) == "50 percent"

    assert source.html_decode_dir == (
        tmp_path / "clean" / "Log" / "3.HasDoneHtmlDecode" / "News"
    )


def test_file_size_units():
    def size(s):
        return CorpusCleanerConfig(".", s, ".").target_corpus_file_size

    assert size("512k") == 512 * 1024
    assert size(" 2M ") == 2 * 1024 * 1024
    assert size("1m") == 1024 * 1024


@pytest.mark.parametrize("file_size", ["12345k", "2g", "k", "0k"])
def test_bad_file_size(tmp_path, file_size):
    with pytest.raises(ConfigError):
        CorpusCleanerConfig.load(_xml(tmp_path, file_size=file_size))


def test_invalid_regex_is_rejected(tmp_path):
    bad = CORPUS_FILE.replace('pattern="^#"', 'pattern="(unclosed"')
    with pytest.raises(InvalidPatternError):
        CorpusCleanerConfig.load(_xml(tmp_path, corpus_file=bad))


def test_inverted_char_range_is_rejected(tmp_path):
    bad = CORPUS_FILE.replace('from="0x20" to="0x7E"', 'from="0x7E" to="0x20"')
    with pytest.raises(InvalidFormatError):
        CorpusCleanerConfig.load(_xml(tmp_path, corpus_file=bad))


def test_duplicate_punctuation_is_rejected(tmp_path):
    bad = CORPUS_FILE.replace('symbol="?"', 'symbol="."')
    with pytest.raises(ConfigError, match="Duplicate line ending punctuation"):
        CorpusCleanerConfig.load(_xml(tmp_path, corpus_file=bad))


def test_duplicate_corpus_type_is_rejected(tmp_path):
    other = CORPUS_FILE.replace('searchPatterns="*.txt|*.text"', 'searchPatterns="*.text"')
    with pytest.raises(ConfigError, match="Duplicate corpus type"):
        CorpusCleanerConfig.load(_xml(tmp_path, corpus_file=CORPUS_FILE + other))


def test_duplicate_corpus_type_in_constructor():
    first = SourceCorpusConfig("News")
    second = SourceCorpusConfig("News")
    with pytest.raises(ConfigError):
        CorpusCleanerConfig(".", "1k", ".", source_corpus_configs=[first, second])


def test_unknown_rule_element_is_rejected(tmp_path):
    bad = CORPUS_FILE.replace("<Delete ", "<Remove ")
    with pytest.raises(ConfigError, match="Invalid regex rule type"):
        CorpusCleanerConfig.load(_xml(tmp_path, corpus_file=bad))


def test_wrong_namespace_is_rejected(tmp_path):
    with pytest.raises(ConfigError):
        CorpusCleanerConfig.load(_xml(tmp_path, ns="urn:other"))


def test_malformed_xml_is_config_error(tmp_path):
    path = tmp_path / "broken.xml"
    path.write_text("<CorpusCleaner", encoding="utf-8")
    with pytest.raises(ConfigError):
        CorpusCleanerConfig.load(path)


def test_missing_source_dir(tmp_path):
    path = _xml(tmp_path)
    (tmp_path / "raw").rmdir()
    with pytest.raises(FileNotFoundError):
        CorpusCleanerConfig.load(path)


def test_save_round_trip(tmp_path):
    config = CorpusCleanerConfig.load(
        _xml(tmp_path, extra_raw='<ExcludeFiles dir="." searchPattern="skip*" />')
    )
    saved = tmp_path / "saved" / "CorpusCleaner.xml"
    config.save(saved)

    again = CorpusCleanerConfig.load(saved)

    assert again.target_corpus_file_size_string == "2k"
    assert again.exclude_file_filters == [FileFilter(".", "skip*")]
    (source,) = again.source_corpus_configs
    assert source.code_page == "65001"
    assert source.line_ending_punctuations == [".", "?"]
    assert [r.pattern for r in source.before_merge_rules] == ["^#"]
    assert [r.replacement for r in source.after_merge_rules] == ["$1 percent"]
    assert source.char_ranges_include.char_exprs == ["。"]


def test_resolve_encoding():
    assert resolve_encoding("1200") == "utf-16"
    assert resolve_encoding("936") == "cp936"
    assert resolve_encoding("utf-8") == "utf-8"
    with pytest.raises(ConfigError):
        resolve_encoding("no-such-codec")


def test_get_files_path_with_excludes(tmp_path):
    root = tmp_path / "raw"
    (root / "sub").mkdir(parents=True)
    (root / "skip").mkdir()
    for rel in ("a.txt", "sub/b.txt", "skip/c.txt", "skip_me.txt", "d.log"):
        (root / rel).write_text("x", encoding="utf-8")

    files = get_files_path(
        root,
        "*.txt",
        [FileFilter("skip", "*.txt"), FileFilter(".", "skip_*")],
    )

    assert files == sorted([root / "a.txt", root / "sub" / "b.txt"])


def test_get_files_path_missing_exclude_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        get_files_path(tmp_path, "*.txt", [FileFilter("missing", "*")])
