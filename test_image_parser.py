"""
Test the image container walkers: PNG chunks with CRC checking, JPEG
marker segments with entropy data, and ISOBMFF/HEIC box trees.
"""
import struct

from binscope.config import ParserConfig
from binscope.image_parser import parse_isobmff, parse_jpeg, parse_png
from binscope.regions import RegionKind, check_region_invariants, walk_regions
from synthetic_files import box, build_heic, build_jpeg, build_nested_boxes, build_png


def _find(regions, name):
    for _depth, region, _parent in walk_regions(regions):
        if region.name == name:
            return region
    raise AssertionError(f"region {name!r} not found")


# ── PNG ──

def test_png_chunks():
    print("── Test: PNG chunk walk ──")
    data, info = build_png(width=4, height=2)
    pf = parse_png(data, "img.png")
    assert pf.is_valid and pf.format == "PNG"

    names = [r.name for r in pf.regions]
    assert names == ["PNG Signature", "Chunk: IHDR", "Chunk: tEXt", "Chunk: IDAT", "Chunk: IEND"]
    chunks = pf.regions[1:]
    for chunk, off, size in zip(chunks, info["chunk_offsets"], info["chunk_sizes"]):
        assert chunk.offset == off
        assert chunk.size == chunk.details["Length"] + 12 == size
        assert chunk.details["CRC OK"] == "Yes"
    assert chunks[-1].end == info["iend_end"], "walk ends at IEND"

    ihdr = chunks[0]
    assert ihdr.details["Width"] == 4 and ihdr.details["Height"] == 2
    assert ihdr.details["ColorType"] == "2 (Truecolor (RGB))"
    assert _find(ihdr.children, "Data").size == 13
    idat = chunks[2]
    assert _find(idat.children, "Data").description == "Compressed Image Data"
    assert [c.name for c in chunks[3].children] == ["Length", "Type", "CRC"]
    assert check_region_invariants(pf.regions, pf.size) == []
    print("  ✅ PNG chunk walk: PASS")


def test_png_crc_and_trailing():
    print("── Test: PNG CRC mismatch + trailing data ──")
    data, info = build_png(bad_crc=True, trailing=b"APPENDED" * 3)
    pf = parse_png(data)
    text = _find(pf.regions, "Chunk: tEXt")
    assert text.details["CRC OK"].startswith("No (computed")
    assert _find(text.children, "CRC").description == "CRC mismatch"

    tail = pf.regions[-1]
    assert tail.name == "Trailing Data" and tail.kind == RegionKind.UNKNOWN
    assert (tail.offset, tail.size) == (info["iend_end"], 24)
    assert tail.description == "24 bytes after IEND"
    print("  ✅ PNG CRC mismatch + trailing data: PASS")


def test_png_truncated():
    print("── Test: PNG truncated chunk ──")
    data, info = build_png()
    cut = info["chunk_offsets"][2] + 10
    pf = parse_png(data[:cut])
    assert pf.is_valid
    last = pf.regions[-1]
    assert last.name == "Truncated: IDAT"
    assert last.end == cut
    assert check_region_invariants(pf.regions, pf.size) == []

    pf = parse_png(b"\x89PNG\r\n\x1A\x0B" + b"\x00" * 16)
    assert not pf.is_valid and pf.error == "Invalid PNG signature"
    print("  ✅ PNG truncated chunk: PASS")


# ── JPEG ──

def test_jpeg_segments():
    print("── Test: JPEG marker walk ──")
    data, info = build_jpeg()
    pf = parse_jpeg(data, "photo.jpg")
    assert pf.is_valid and pf.format == "JPEG"

    names = [r.name for r in pf.regions]
    assert names == ["SOI", "APP0", "DQT", "SOF0", "DHT", "SOS", "Entropy Data", "EOI"], names

    soi = pf.regions[0]
    assert (soi.offset, soi.size) == (0, 2) and str(soi.value) == "FF D8"
    app0 = pf.regions[1]
    assert app0.description == "APP0 (JFIF)"
    assert app0.details["Identifier"] == "JFIF"
    assert app0.size == 2 + 16

    sof = pf.regions[3]
    assert sof.offset == info["sof0_offset"]
    assert sof.details["Width"] == info["width"]
    assert sof.details["Height"] == info["height"]
    assert sof.details["Components"] == 3

    entropy = pf.regions[6]
    assert entropy.kind == RegionKind.DATA
    assert (entropy.offset, entropy.size) == (info["entropy_offset"], info["entropy_size"])
    assert pf.regions[7].offset == info["eoi_offset"]
    assert check_region_invariants(pf.regions, pf.size) == []
    print("  ✅ JPEG marker walk: PASS")


def test_jpeg_fill_bytes():
    print("── Test: JPEG 0xFF fill bytes ──")
    plain, plain_info = build_jpeg()
    data, info = build_jpeg(fill=3)
    assert len(data) == len(plain) + 3
    assert data[info["dqt_offset"] - 3:info["dqt_offset"] + 2] == b"\xFF\xFF\xFF\xFF\xDB"

    pf = parse_jpeg(data, "padded.jpg")
    assert pf.is_valid
    names = [r.name for r in pf.regions]
    assert names == ["SOI", "APP0", "DQT", "SOF0", "DHT", "SOS", "Entropy Data", "EOI"], names

    dqt = _find(pf.regions, "DQT")
    assert dqt.offset == info["dqt_offset"] == plain_info["dqt_offset"] + 3
    assert dqt.size == 2 + 67
    assert _find(pf.regions, "SOF0").offset == info["sof0_offset"]
    assert _find(pf.regions, "EOI").offset == info["eoi_offset"]
    assert check_region_invariants(pf.regions, pf.size) == []
    print("  ✅ JPEG 0xFF fill bytes: PASS")


def test_jpeg_trailing_and_damage():
    print("── Test: JPEG trailing data + damage ──")
    data, info = build_jpeg(trailing=b"\x00" * 32)
    pf = parse_jpeg(data)
    tail = pf.regions[-1]
    assert tail.name == "Trailing Data" and tail.size == 32
    assert tail.description == "32 bytes after EOI"

    # Cut inside the DQT segment: clamped, walk stops
    cut = info["sof0_offset"] - 20
    pf = parse_jpeg(data[:cut])
    assert pf.is_valid
    assert pf.regions[-1].name == "DQT"
    assert pf.regions[-1].end == cut
    assert check_region_invariants(pf.regions, pf.size) == []

    # Length < 2 ends the walk
    bad = bytearray(data)
    struct.pack_into(">H", bad, 4, 1)
    pf = parse_jpeg(bytes(bad))
    assert [r.name for r in pf.regions] == ["SOI"]

    pf = parse_jpeg(b"\x89PNG")
    assert not pf.is_valid and pf.error == "Invalid JPEG signature (no SOI)"
    print("  ✅ JPEG trailing data + damage: PASS")


# ── ISOBMFF / HEIC ──

def test_heic_boxes():
    print("── Test: HEIC box tree ──")
    data, info = build_heic()
    pf = parse_isobmff(data, "photo.heic")
    assert pf.is_valid and pf.format == "HEIC"
    assert [r.name for r in pf.regions] == ["Box: ftyp", "Box: meta", "Box: mdat", "Box: free"]

    ftyp = pf.regions[0]
    assert ftyp.details["MajorBrand"] == "heic"
    assert ftyp.details["CompatibleBrands"] == "mif1, heic"
    assert ftyp.description == "File Type: heic (HEIC Image)"

    meta = pf.regions[1]
    assert meta.offset == info["meta_offset"]
    meta_children = [c.name for c in meta.children]
    assert meta_children == ["Size", "Type", "Ver/Flags", "Box: hdlr", "Box: iprp"]
    ispe = _find(meta.children, "Box: ispe")
    assert ispe.offset == info["ispe_offset"]
    assert _find(ispe.children, "Data").size == 12

    mdat = pf.regions[2]
    assert [c.name for c in mdat.children] == ["Size", "Type"], "mdat payload is opaque"

    large = pf.regions[3]
    assert large.offset == info["large_offset"]
    assert _find(large.children, "LargeSize").value.value == 20
    assert large.end == len(data)
    assert check_region_invariants(pf.regions, pf.size) == []
    print("  ✅ HEIC box tree: PASS")


def test_box_size_rules():
    print("── Test: ISOBMFF size 0 / overrun / junk ──")
    ftyp = box(b"ftyp", b"isom" + bytes(4))
    to_end = ftyp + struct.pack(">I", 0) + b"mdat" + b"\x11" * 40
    pf = parse_isobmff(to_end)
    mdat = pf.regions[1]
    assert mdat.end == len(to_end), "size 0 runs to end of file"

    overrun = ftyp + struct.pack(">I", 4096) + b"free" + b"\x00" * 10
    pf = parse_isobmff(overrun)
    assert pf.regions[1].end == len(overrun)
    assert check_region_invariants(pf.regions, pf.size) == []

    junk = ftyp + b"\x00\x00\x00\x10\x01\x02\x03\x04" + b"\x00" * 8
    pf = parse_isobmff(junk)
    assert [r.name for r in pf.regions] == ["Box: ftyp"]

    pf = parse_isobmff(b"\x00\x00\x00\x10\xFF\xFE\xFD\xFC" + b"\x00" * 8)
    assert not pf.is_valid and pf.error == "No ISOBMFF boxes found"
    print("  ✅ ISOBMFF size 0 / overrun / junk: PASS")


def test_box_nesting_limit():
    print("── Test: ISOBMFF nesting limit ──")
    data = build_nested_boxes(200)
    pf = parse_isobmff(data, config=ParserConfig(max_box_depth=16))
    assert pf.is_valid
    limited = [r for _, r, _ in walk_regions(pf.regions) if r.description == "Nesting limit reached"]
    assert len(limited) == 1
    deepest = max(d for d, r, _ in walk_regions(pf.regions) if r.name == "Box: moov")
    assert deepest == 15
    assert check_region_invariants(pf.regions, pf.size) == []

    # Default depth cap keeps the stack bounded on much deeper input
    pf = parse_isobmff(build_nested_boxes(2000))
    assert pf.is_valid
    print("  ✅ ISOBMFF nesting limit: PASS")


def main():
    print("=" * 60)
    print("  BinScope — Image Parser Tests")
    print("=" * 60)
    print()
    test_png_chunks()
    test_png_crc_and_trailing()
    test_png_truncated()
    test_jpeg_segments()
    test_jpeg_fill_bytes()
    test_jpeg_trailing_and_damage()
    test_heic_boxes()
    test_box_size_rules()
    test_box_nesting_limit()
    print()
    print("=" * 60)
    print("  ALL TESTS PASSED ✅")
    print("=" * 60)


if __name__ == "__main__":
    main()
