from corpuscleaner.cleaner.duplicates import MAX_LINE_BUFFER_NUMBER, DuplicateLineManager


def _write(path, lines, encoding="utf-16"):
    path.write_text("".join(line + "\n" for line in lines), encoding=encoding)
    return path


def _read(path, encoding="utf-16"):
    return path.read_text(encoding=encoding).splitlines()


def test_repeat_inside_window_is_duplicate():
    m = DuplicateLineManager()
    assert not m.is_duplicate("A")
    for i in range(MAX_LINE_BUFFER_NUMBER - 1):
        assert not m.is_duplicate(f"line {i}")
    assert m.is_duplicate("A")


def test_repeat_after_full_window_is_not_duplicate():
    m = DuplicateLineManager()
    assert not m.is_duplicate("A")
    for i in range(MAX_LINE_BUFFER_NUMBER):
        m.is_duplicate(f"line {i}")
    assert not m.is_duplicate("A")
    assert len(m) == MAX_LINE_BUFFER_NUMBER


def test_hit_does_not_refresh_entry():
    m = DuplicateLineManager(max_lines=2)
    m.is_duplicate("a")
    m.is_duplicate("b")
    assert m.is_duplicate("a")
    # "a" is still the oldest and gets evicted
    m.is_duplicate("c")
    assert not m.is_duplicate("a")


def test_drop_duplicate_lines_on_file(tmp_path):
    src = _write(tmp_path / "in.txt", ["x", "", "y", "x", "z", "y"])
    out = tmp_path / "out" / "in.txt"
    dup = tmp_path / "dup" / "in.txt"

    stats = DuplicateLineManager().drop_duplicate_lines(src, "utf-16", out, dup)

    assert _read(out) == ["x", "y", "z"]
    assert _read(dup) == ["x", "y"]
    assert (stats.kept, stats.dropped) == (3, 2)


def test_no_duplicates_deletes_log(tmp_path):
    src = _write(tmp_path / "in.txt", ["a", "b"])
    out = tmp_path / "out.txt"
    dup = tmp_path / "dup.txt"

    DuplicateLineManager().drop_duplicate_lines(src, "utf-16", out, dup)

    assert out.is_file()
    assert not dup.exists()


def test_window_is_shared_between_files(tmp_path):
    m = DuplicateLineManager()
    first = _write(tmp_path / "1.txt", ["same", "one"])
    second = _write(tmp_path / "2.txt", ["same", "two"])

    m.drop_duplicate_lines(first, "utf-16", tmp_path / "o1.txt", tmp_path / "d1.txt")
    m.drop_duplicate_lines(second, "utf-16", tmp_path / "o2.txt", tmp_path / "d2.txt")

    assert _read(tmp_path / "o2.txt") == ["two"]
    assert _read(tmp_path / "d2.txt") == ["same"]
