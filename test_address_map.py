"""
Test file offset ↔ virtual address mapping over hand-built section
tables and over the tables the parsers produce.
"""
from binscope.address_map import to_file_offset, to_virtual_address
from binscope.detector import detect
from binscope.regions import SectionInfo
from synthetic_files import build_elf, build_fat, build_macho, build_pe

SECTIONS = [
    SectionInfo(".text", 0x1000, 0x200, 0x400, 0x200),
    SectionInfo(".data", 0x2000, 0x300, 0x600, 0x100),   # 0x200 bytes zero-filled
]


def test_offset_to_address():
    print("── Test: offset → virtual address ──")
    assert to_virtual_address(0x400, SECTIONS) == 0x1000
    assert to_virtual_address(0x5FF, SECTIONS) == 0x11FF
    assert to_virtual_address(0x650, SECTIONS) == 0x2050
    # Header area before the first section maps to itself
    assert to_virtual_address(0x10, SECTIONS) == 0x10
    # Past every section's raw data
    assert to_virtual_address(0x700, SECTIONS) is None
    assert to_virtual_address(0x9000, SECTIONS) is None
    assert to_virtual_address(0x10, []) is None

    # Raw data longer than the virtual size: the tail is unmapped
    short = [SectionInfo("a", 0x1000, 0x10, 0x400, 0x200)]
    assert to_virtual_address(0x40F, short) == 0x100F
    assert to_virtual_address(0x420, short) is None

    # Overlapping tables resolve to the first listed section
    overlapping = [
        SectionInfo("first", 0x8000, 0x100, 0x100, 0x100),
        SectionInfo("second", 0x9000, 0x100, 0x100, 0x100),
    ]
    assert to_virtual_address(0x110, overlapping) == 0x8010
    print("  ✅ offset → virtual address: PASS")


def test_address_to_offset():
    print("── Test: virtual address → offset ──")
    assert to_file_offset(0x1000, SECTIONS) == 0x400
    assert to_file_offset(0x1010, SECTIONS) == 0x410
    assert to_file_offset(0x20FF, SECTIONS) == 0x6FF
    # Zero-filled tail has no file backing
    assert to_file_offset(0x2150, SECTIONS) is None
    assert to_file_offset(0x5000, SECTIONS) is None
    assert to_file_offset(0x1000, []) is None

    for offset in (0x400, 0x47F, 0x5FF, 0x600, 0x6FF):
        va = to_virtual_address(offset, SECTIONS)
        assert to_file_offset(va, SECTIONS) == offset
    print("  ✅ virtual address → offset: PASS")


def test_parsed_tables():
    print("── Test: mapping through parsed section tables ──")
    data, info = build_pe()
    pf = detect(data)
    va = to_virtual_address(info["marker_offset"], pf.sections)
    assert va == info["text_va"] + (info["marker_offset"] - info["text_ptr"])
    assert to_file_offset(va, pf.sections) == info["marker_offset"]
    assert to_virtual_address(info["overlay_offset"], pf.sections) is None

    data, info = build_elf()
    pf = detect(data)
    assert to_virtual_address(info["marker_offset"], pf.sections) == info["text_va"] + 16
    assert to_file_offset(info["entry"], pf.sections) == info["text_off"]

    data, info = build_macho()
    pf = detect(data)
    assert to_virtual_address(info["text_off"], pf.sections) == info["text_va"]
    assert to_virtual_address(info["data_off"] + 4, pf.sections) == info["data_va"] + 4

    # Fat: the second slice's __text resolves through its rebased entry
    data, info = build_fat()
    pf = detect(data)
    thin = info["slice_infos"][1]
    offset = info["slice_offsets"][1] + thin["text_off"]
    assert to_virtual_address(offset, pf.sections) == thin["text_va"]
    print("  ✅ mapping through parsed section tables: PASS")


def main():
    print("=" * 60)
    print("  BinScope — Address Map Tests")
    print("=" * 60)
    print()
    test_offset_to_address()
    test_address_to_offset()
    test_parsed_tables()
    print()
    print("=" * 60)
    print("  ALL TESTS PASSED ✅")
    print("=" * 60)


if __name__ == "__main__":
    main()
