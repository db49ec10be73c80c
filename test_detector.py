"""
Test format sniffing and dispatch, the PE fallback for unknown magic,
and that no input (truncated or corrupted) makes detect() raise or emit
a region outside the file.
"""
import random

from binscope import detector
from binscope.detector import detect, sniff_format
from binscope.errors import UnsupportedVariant
from binscope.palette import COLORS, DARK_COLORS
from binscope.regions import ParsedFile, check_region_invariants
from synthetic_files import (
    build_elf, build_fat, build_heic, build_jpeg, build_macho, build_pe, build_png,
)


def _samples():
    return {
        "PE": build_pe()[0],
        "PE64": build_pe(pe64=True)[0],
        "ELF": build_elf()[0],
        "ELF32BE": build_elf(elf64=False, little_endian=False)[0],
        "Mach-O": build_macho()[0],
        "Fat": build_fat()[0],
        "PNG": build_png()[0],
        "JPEG": build_jpeg()[0],
        "HEIC": build_heic()[0],
    }


def test_sniff_format():
    print("── Test: sniff_format ──")
    expected = {
        "PE": "PE", "PE64": "PE", "ELF": "ELF", "ELF32BE": "ELF",
        "Mach-O": "Mach-O", "Fat": "Mach-O",
        "PNG": "PNG", "JPEG": "JPEG", "HEIC": "HEIC",
    }
    for label, data in _samples().items():
        assert sniff_format(data) == expected[label], label

    for short in (b"", b"MZ", b"\x7FEL"):
        try:
            sniff_format(short)
            assert False, f"{short!r} sniffed"
        except UnsupportedVariant:
            pass
    try:
        sniff_format(b"\x00\x01\x02\x03\x04\x05\x06\x07")
        assert False, "garbage sniffed"
    except UnsupportedVariant as e:
        assert "00 01 02 03" in e.message
    print("  ✅ sniff_format: PASS")


def test_detect_dispatch():
    print("── Test: detect dispatch ──")
    for label, data in _samples().items():
        pf = detect(data, label)
        assert pf.is_valid, f"{label}: {pf.error}"
        assert pf.name == label and pf.size == len(data)
        assert check_region_invariants(pf.regions, pf.size) == [], label

    # memoryview and bytearray are accepted too
    data = build_png()[0]
    assert detect(memoryview(data)).is_valid
    assert detect(bytearray(data)).is_valid
    print("  ✅ detect dispatch: PASS")


def test_unknown_magic_falls_back_to_pe():
    print("── Test: unknown magic → PE fallback ──")
    pf = detect(b"\x00" * 256, "zeros.bin")
    assert pf.format == "PE"
    assert not pf.is_valid
    assert pf.error

    pf = detect(b"GIF89a" + b"\x00" * 100)
    assert pf.format == "PE" and not pf.is_valid and pf.error

    pf = detect(b"ab")
    assert pf.format == "PE" and not pf.is_valid and pf.error == "File too small"
    print("  ✅ unknown magic → PE fallback: PASS")


def test_parser_exception_is_contained():
    print("── Test: parser exception contained ──")

    def exploding(data, name="", dark=True, config=None):
        raise RuntimeError("boom")

    original = detector.PARSERS["PNG"]
    detector.PARSERS["PNG"] = exploding
    try:
        pf = detect(build_png()[0], "x.png")
    finally:
        detector.PARSERS["PNG"] = original
    assert isinstance(pf, ParsedFile)
    assert not pf.is_valid and pf.format == "PNG"
    assert pf.error == "Parser error: boom"
    print("  ✅ parser exception contained: PASS")


def test_palettes():
    print("── Test: dark / light palettes ──")
    data = build_pe()[0]
    dark = detect(data, dark=True)
    light = detect(data, dark=False)
    assert dark.regions[0].color == DARK_COLORS["DOS"]
    assert light.regions[0].color == COLORS["DOS"]
    dark_body = [r for r in dark.regions if r.name == "Section: .text"][0]
    light_body = [r for r in light.regions if r.name == "Section: .text"][0]
    assert dark_body.color == DARK_COLORS["SECTION_DATA"] != light_body.color
    print("  ✅ dark / light palettes: PASS")


def test_truncation_never_breaks_invariants():
    print("── Test: every prefix of every sample parses cleanly ──")
    checked = 0
    for label, data in _samples().items():
        step = max(1, len(data) // 97)
        for cut in list(range(0, len(data), step)) + [len(data) - 1]:
            pf = detect(data[:cut], f"{label}[:{cut}]")
            assert isinstance(pf, ParsedFile)
            assert pf.size == cut
            assert not (pf.error or "").startswith("Parser error"), f"{label}[:{cut}]: {pf.error}"
            problems = check_region_invariants(pf.regions, pf.size)
            assert problems == [], f"{label}[:{cut}]: {problems[:3]}"
            checked += 1
    print(f"  {checked} truncated inputs checked")
    print("  ✅ truncated inputs: PASS")


def test_corruption_never_breaks_invariants():
    print("── Test: random byte corruption ──")
    rng = random.Random(42)
    checked = 0
    for label, data in _samples().items():
        for _ in range(60):
            buf = bytearray(data)
            for _ in range(rng.randint(1, 12)):
                # Keep the magic so the format's own parser sees the damage
                pos = rng.randrange(4, len(buf))
                buf[pos] = rng.randrange(256)
            pf = detect(bytes(buf), label)
            assert not (pf.error or "").startswith("Parser error"), f"{label}: {pf.error}"
            problems = check_region_invariants(pf.regions, pf.size)
            assert problems == [], f"{label}: {problems[:3]}"
            checked += 1
    print(f"  {checked} corrupted inputs checked")
    print("  ✅ random byte corruption: PASS")


def main():
    print("=" * 60)
    print("  BinScope — Detector Tests")
    print("=" * 60)
    print()
    test_sniff_format()
    test_detect_dispatch()
    test_unknown_magic_falls_back_to_pe()
    test_parser_exception_is_contained()
    test_palettes()
    test_truncation_never_breaks_invariants()
    test_corruption_never_breaks_invariants()
    print()
    print("=" * 60)
    print("  ALL TESTS PASSED ✅")
    print("=" * 60)


if __name__ == "__main__":
    main()
