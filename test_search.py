"""
Test the search engine: hex / ASCII / UTF-16LE literals, regex mode,
block-boundary matches, result caps, cancellation and progress.
"""
from binscope.config import ParserConfig
from binscope.detector import detect
from binscope.errors import SearchInputError
from binscope.regions import FileFormat, ParsedFile
from binscope.search import CancelToken, parse_hex_query, search
from synthetic_files import PE_MARKER, build_pe


def _buffer(data: bytes) -> ParsedFile:
    return ParsedFile(name="buf", size=len(data), data=data, format=FileFormat.PE)


def _expect_error(fn, *args, **kwargs) -> str:
    try:
        fn(*args, **kwargs)
    except SearchInputError as e:
        return e.message
    raise AssertionError("SearchInputError not raised")


def test_hex_search():
    print("── Test: hex search ──")
    data, _ = build_pe()
    pf = detect(data, "app.exe")
    for query in ("4D5A", "4d 5a", "0x4D5A", " 4D\t5A "):
        results = search(pf, query, "hex")
        assert results, query
        first = results[0]
        assert first.offset == 0 and first.size == 2, query
        assert first.matched_text == "4D5A"
        assert first.virtual_address == 0, "header bytes map to themselves"

    assert parse_hex_query("de AD be EF") == (b"\xDE\xAD\xBE\xEF", "DEADBEEF")
    assert "Invalid hex" in _expect_error(search, pf, "4D5", "hex")
    assert "Invalid hex" in _expect_error(search, pf, "GG", "hex")
    # use_regex has no effect in hex mode
    assert search(pf, "4D5A", "hex", use_regex=True)[0].offset == 0
    print("  ✅ hex search: PASS")


def test_ascii_literal():
    print("── Test: ASCII literal search ──")
    data, info = build_pe()
    pf = detect(data, "app.exe")
    results = search(pf, PE_MARKER.decode(), "ascii")
    assert len(results) == 1
    hit = results[0]
    assert hit.offset == info["marker_offset"]
    assert hit.size == len(PE_MARKER)
    assert hit.virtual_address == info["text_va"] + (info["marker_offset"] - info["text_ptr"])
    assert hit.to_dict()["matched_text"] == PE_MARKER.decode()

    assert search(pf, "no such string anywhere", "ascii") == []
    assert search(pf, "", "ascii") == []
    assert "single-byte" in _expect_error(search, pf, "日本", "ascii")
    print("  ✅ ASCII literal search: PASS")


def test_unicode_search():
    print("── Test: UTF-16LE search ──")
    data = b"\x00" * 10 + "Déjà vu".encode("utf-16-le") + b"\x00" * 10
    results = search(_buffer(data), "Déjà vu", "unicode")
    assert len(results) == 1
    assert results[0].offset == 10 and results[0].size == 14
    assert results[0].virtual_address is None, "no sections, no address"
    assert search(_buffer(data), "Déjà vu", "ascii") == []
    print("  ✅ UTF-16LE search: PASS")


def test_overlapping_and_boundaries():
    print("── Test: overlapping matches + block boundaries ──")
    assert [r.offset for r in search(_buffer(b"aaaa"), "aa", "ascii")] == [0, 1, 2]

    config = ParserConfig(search_block_size=8)
    data = b"x" * 6 + b"NEEDLE" + b"x" * 10 + b"NEEDLE" + b"x" * 3
    results = search(_buffer(data), "NEEDLE", "ascii", config=config)
    assert [r.offset for r in results] == [6, 22], "straddling matches found exactly once"

    # Pattern longer than one block
    data = b"-" * 20 + b"A-LONGER-PATTERN" + b"-" * 20
    results = search(_buffer(data), "A-LONGER-PATTERN", "ascii", config=config)
    assert [r.offset for r in results] == [20]
    print("  ✅ overlapping matches + block boundaries: PASS")


def test_result_cap():
    print("── Test: result cap ──")
    config = ParserConfig(max_search_results=3)
    results = search(_buffer(b"a" * 100), "a", "ascii", config=config)
    assert [r.offset for r in results] == [0, 1, 2]
    results = search(_buffer(b"ab" * 100), "a.", "ascii", use_regex=True, config=config)
    assert len(results) == 3
    print("  ✅ result cap: PASS")


def test_regex_search():
    print("── Test: regex search ──")
    data, info = build_pe()
    pf = detect(data, "app.exe")
    results = search(pf, r"Hel+o, \w+!", "ascii", use_regex=True)
    assert len(results) == 1
    hit = results[0]
    assert hit.offset == info["marker_offset"] and hit.size == len(PE_MARKER)
    assert hit.matched_text == PE_MARKER.decode()
    assert hit.virtual_address is not None

    # High bytes are matched one char per byte (latin-1)
    results = search(_buffer(b"\x00\xE9\xFF\x00"), "[\xE9-\xFF]+", "ascii", use_regex=True)
    assert [(r.offset, r.size) for r in results] == [(1, 2)]

    # Zero-length matches are not reported
    assert search(_buffer(b"abc"), "x*", "ascii", use_regex=True) == []

    assert "Invalid regular expression" in _expect_error(
        search, pf, "([a-z", "ascii", use_regex=True)
    assert "unicode" in _expect_error(search, pf, "abc", "unicode", use_regex=True)
    assert "Unknown search mode" in _expect_error(search, pf, "abc", "ebcdic")
    print("  ✅ regex search: PASS")


def test_regex_size_limit():
    print("── Test: regex size limit ──")
    big = _buffer(bytes(50 * 1024 * 1024 + 1))
    assert "too large" in _expect_error(search, big, "abc", "ascii", use_regex=True)
    # Refused regardless of query, even an empty one
    assert "too large" in _expect_error(search, big, "", "ascii", use_regex=True)
    # Literal search on the same buffer is fine
    assert search(big, "abc", "ascii") == []

    small_limit = ParserConfig(regex_size_limit=16)
    data, _ = build_pe()
    assert "too large" in _expect_error(
        search, detect(data), "MZ", "ascii", use_regex=True, config=small_limit)
    print("  ✅ regex size limit: PASS")


def test_cancel_and_progress():
    print("── Test: cancellation + progress ──")
    data = b"ab" * 100
    config = ParserConfig(search_block_size=16)

    calls = []
    results = search(_buffer(data), "ab", "ascii", config=config,
                     progress=lambda done, total: calls.append((done, total)))
    assert len(results) == 100
    assert calls[-1] == (len(data), len(data))
    assert all(a[0] <= b[0] for a, b in zip(calls, calls[1:])), "progress is monotonic"

    token = CancelToken()
    token.cancel()
    assert search(_buffer(data), "ab", "ascii", cancel=token, config=config) == []

    # Cancel after the first block: partial results come back
    token = CancelToken()
    partial = search(_buffer(data), "ab", "ascii", cancel=token, config=config,
                     progress=lambda done, total: token.cancel())
    assert len(partial) == 8, len(partial)
    assert [r.offset for r in partial] == list(range(0, 16, 2))

    # Regex mode checks the token every regex_check_interval matches
    token = CancelToken()
    token.cancel()
    assert search(_buffer(data), "ab", "ascii", use_regex=True, cancel=token) == []

    # A cancelled token stops a regex that would never match before it scans
    token = CancelToken()
    token.cancel()
    never_calls = []
    assert search(_buffer(bytes(4096)), "NO-SUCH-TEXT", "ascii", use_regex=True, cancel=token,
                  progress=lambda done, total: never_calls.append(done)) == []
    assert never_calls == [], "no scan progress after cancel"
    # Invalid patterns are still reported when cancelled
    assert "Invalid regular expression" in _expect_error(
        search, _buffer(b"abc"), "([a-z", "ascii", use_regex=True, cancel=token)

    regex_calls = []
    search(_buffer(data), "b", "ascii", use_regex=True,
           config=ParserConfig(regex_check_interval=10),
           progress=lambda done, total: regex_calls.append(done))
    assert len(regex_calls) == 11 and regex_calls[-1] == len(data)
    print("  ✅ cancellation + progress: PASS")


def main():
    print("=" * 60)
    print("  BinScope — Search Engine Tests")
    print("=" * 60)
    print()
    test_hex_search()
    test_ascii_literal()
    test_unicode_search()
    test_overlapping_and_boundaries()
    test_result_cap()
    test_regex_search()
    test_regex_size_limit()
    test_cancel_and_progress()
    print()
    print("=" * 60)
    print("  ALL TESTS PASSED ✅")
    print("=" * 60)


if __name__ == "__main__":
    main()
