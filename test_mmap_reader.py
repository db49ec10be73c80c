"""
Test file loading (mmap and plain-read paths), block iteration, and
parsing straight from a mapped file.
"""
import os
import tempfile
import shutil

from binscope.detector import detect, parse_file
from binscope.mmap_reader import FileReader, iter_blocks, load_file
from binscope.search import search
from synthetic_files import ELF_MARKER, build_elf


def test_mmap_reader():
    """Test the mmap-backed file reader."""
    print("── Test: mmap reader ──")
    tmpdir = tempfile.mkdtemp(prefix="test_mmap_")
    try:
        test_file = os.path.join(tmpdir, "test.bin")
        data = b"A" * 4096 + b"B" * 4096 + b"C" * 4096
        with open(test_file, "wb") as f:
            f.write(data)

        with FileReader(test_file, use_mmap=True) as reader:
            assert reader.is_mmap
            assert reader.size == len(data)
            assert reader.name == "test.bin"

            assert reader.read_at(0, 4096) == b"A" * 4096
            assert reader.read_at(4096, 4096) == b"B" * 4096
            assert reader.read_at(8192, 4096) == b"C" * 4096
            assert reader.read_at(0, 1) == b"A"
            assert reader.read_at(12000, 4096) == b"C" * 288, "clamped at EOF"
            assert reader.read_at(len(data), 1) == b""
            assert reader.data.find(b"B") == 4096

        assert not reader.is_mmap, "close() releases the mapping"

        print("  ✅ mmap reader: PASS")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_plain_read_fallback():
    print("── Test: plain-read fallback ──")
    tmpdir = tempfile.mkdtemp(prefix="test_mmap_")
    try:
        test_file = os.path.join(tmpdir, "plain.bin")
        with open(test_file, "wb") as f:
            f.write(b"0123456789")

        with FileReader(test_file, use_mmap=False) as reader:
            assert not reader.is_mmap
            assert reader.data == b"0123456789"
            assert reader.read_at(5, 100) == b"56789"

        # Empty files cannot be mapped
        empty = os.path.join(tmpdir, "empty.bin")
        open(empty, "wb").close()
        with FileReader(empty) as reader:
            assert not reader.is_mmap
            assert reader.size == 0 and reader.data == b""

        assert load_file(test_file) == b"0123456789"
        print("  ✅ plain-read fallback: PASS")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_iter_blocks():
    print("── Test: iter_blocks ──")
    assert list(iter_blocks(10, block_size=4)) == [(0, 4), (4, 8), (8, 10)]
    assert list(iter_blocks(10, block_size=4, overlap=1)) == [(0, 4), (3, 7), (6, 10)]
    assert list(iter_blocks(10, start=6, block_size=100)) == [(6, 10)]
    assert list(iter_blocks(0, block_size=4)) == []
    # Overlap ≥ block size still advances
    assert list(iter_blocks(8, block_size=4, overlap=4)) == [(0, 4), (4, 8)]
    try:
        list(iter_blocks(10, block_size=0))
        assert False, "zero block size accepted"
    except ValueError:
        pass
    print("  ✅ iter_blocks: PASS")


def test_parse_mapped_file():
    print("── Test: parse + search a mapped file ──")
    tmpdir = tempfile.mkdtemp(prefix="test_mmap_")
    try:
        data, info = build_elf()
        path = os.path.join(tmpdir, "prog.elf")
        with open(path, "wb") as f:
            f.write(data)

        with FileReader(path) as reader:
            assert reader.is_mmap
            pf = detect(reader.data, reader.name)
            assert pf.is_valid and pf.format == "ELF" and pf.name == "prog.elf"
            assert pf.read(0, 4) == b"\x7FELF"
            hits = search(pf, ELF_MARKER.decode(), "ascii")
            assert [h.offset for h in hits] == [info["marker_offset"]]
            regex_hits = search(pf, "ELF-MARK[A-Z]+", "ascii", use_regex=True)
            assert [h.offset for h in regex_hits] == [info["marker_offset"]]

        pf = parse_file(path)
        assert pf.is_valid and pf.name == "prog.elf"
        assert isinstance(pf.data, bytes)
        assert parse_file(path, name="renamed").name == "renamed"
        print("  ✅ parse + search a mapped file: PASS")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def main():
    print("=" * 60)
    print("  BinScope — File Reader Tests")
    print("=" * 60)
    print()
    test_mmap_reader()
    test_plain_read_fallback()
    test_iter_blocks()
    test_parse_mapped_file()
    print()
    print("=" * 60)
    print("  ALL TESTS PASSED ✅")
    print("=" * 60)


if __name__ == "__main__":
    main()
