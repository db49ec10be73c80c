#!/usr/bin/env python3
"""
BinScope — Entry Point.

Usage:
    python main.py app.exe                       # Region tree
    python main.py libfoo.so --depth 1           # Top-level structures only
    python main.py a.out --search 4D5A --mode hex
    python main.py photo.heic --json             # Machine-readable dump
"""

APP_VERSION = "1.0.0"

import sys
import json
import time
import logging
import argparse

from binscope import ParserConfig, SearchInputError, detect, search
from binscope.mmap_reader import FileReader
from binscope.regions import walk_regions
from binscope.search import MODES


def _fmt(n):
    s = float(n)
    for u in ("B", "KB", "MB", "GB"):
        if s < 1024:
            return f"{s:.1f} {u}"
        s /= 1024
    return f"{s:.1f} TB"


def _fmt_va(va):
    return f"0x{va:X}" if va is not None else "-"


def print_tree(parsed, max_depth: int):
    """One line per region, indented by depth."""
    for depth, region, _parent in walk_regions(parsed.regions):
        if max_depth >= 0 and depth > max_depth:
            continue
        indent = "  " * depth
        line = f"  {indent}{region.name}  [0x{region.offset:08X} +0x{region.size:X}]"
        if region.value is not None:
            line += f" = {region.value}"
        if region.description:
            line += f"  ({region.description})"
        print(line)


def print_sections(parsed):
    if not parsed.sections:
        return
    print()
    print(f"  {'Section':24s} {'VirtAddr':>18s} {'VSize':>10s} {'FileOff':>10s} {'FSize':>10s}")
    print(f"  {'-'*24} {'-'*18} {'-'*10} {'-'*10} {'-'*10}")
    for s in parsed.sections:
        print(f"  {s.name[:24]:24s} {s.virtual_address:>#18x} {s.virtual_size:>#10x} "
              f"{s.file_offset:>#10x} {s.file_size:>#10x}")


def run_search(parsed, args, config):
    ll = 0

    def on_progress(scanned, total):
        nonlocal ll
        pct = 100.0 * scanned / total if total else 100.0
        bw = 30
        filled = int(bw * pct / 100)
        bar = "█" * filled + "░" * (bw - filled)
        line = f"\r  [{bar}] {pct:5.1f}%"
        sys.stdout.write(line + " " * max(0, ll - len(line)))
        sys.stdout.flush()
        ll = len(line)

    print(f"🔍 Searching for {args.search!r} ({args.mode}{', regex' if args.regex else ''})...")
    start = time.time()
    try:
        results = search(parsed, args.search, args.mode, use_regex=args.regex,
                         config=config, progress=None if args.json else on_progress)
    except SearchInputError as e:
        print(f"\n  ❌ {e.message}")
        return None
    elapsed = time.time() - start
    print("\n")

    print("─" * 60)
    print(f"  {len(results)} match(es) in {elapsed:.2f}s")
    print("─" * 60)
    for r in results:
        print(f"    0x{r.offset:08X}  VA {_fmt_va(r.virtual_address):>18s}  "
              f"{r.size:4d} B  {r.matched_text[:40]!r}")
    return results


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Inspect the structure of PE, ELF, Mach-O, PNG, JPEG and HEIC files.")
    parser.add_argument("file", help="File to inspect")
    parser.add_argument("--light", action="store_true", help="Use the light palette")
    parser.add_argument("--depth", type=int, default=-1,
                        help="Maximum tree depth to print (-1 = all)")
    parser.add_argument("--search", default="", help="Query to search for")
    parser.add_argument("--mode", choices=MODES, default="ascii", help="Search mode")
    parser.add_argument("--regex", action="store_true", help="Treat query as a regex")
    parser.add_argument("--max-results", type=int, default=2000,
                        help="Stop after this many matches")
    parser.add_argument("--regex-limit-mb", type=int, default=50,
                        help="Largest file (MB) regex search accepts")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    config = ParserConfig(
        max_search_results=args.max_results,
        regex_size_limit=args.regex_limit_mb * 1024 * 1024,
    )

    try:
        reader = FileReader(args.file)
    except OSError as e:
        print(f"❌ Cannot open {args.file}: {e}", file=sys.stderr)
        return 1

    with reader:
        parsed = detect(reader.data, reader.name, dark=not args.light, config=config)

        if args.json:
            out = parsed.to_dict()
            if args.search:
                try:
                    hits = search(parsed, args.search, args.mode,
                                  use_regex=args.regex, config=config)
                except SearchInputError as e:
                    out["search_error"] = e.message
                else:
                    out["search_results"] = [h.to_dict() for h in hits]
            json.dump(out, sys.stdout, indent=2)
            print()
            return 0 if parsed.is_valid else 2

        print("=" * 60)
        print(f"  🔬 BinScope  v{APP_VERSION}")
        print("  Binary structure viewer")
        print("=" * 60)
        print()
        print(f"File:    {parsed.name}")
        print(f"Size:    {_fmt(parsed.size)} ({parsed.size:,} bytes)")
        print(f"Format:  {parsed.format}")
        print(f"I/O:     {'mmap' if reader.is_mmap else 'buffered read'}")
        if not parsed.is_valid:
            print(f"Status:  ⚠️  {parsed.error}")
        print()

        print_tree(parsed, args.depth)
        print_sections(parsed)
        print()

        if args.search:
            run_search(parsed, args, config)
            print()

    return 0 if parsed.is_valid else 2


if __name__ == "__main__":
    sys.exit(main())
