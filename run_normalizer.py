#!/usr/bin/env python3
"""
Command-line script to run HTML files through a Document load/save cycle.

Reads each file as raw bytes (so the charset can be detected), normalizes it
into AMP document shape and writes the UTF-8 result.

Usage:
    python run_normalizer.py page.html
    python run_normalizer.py page*.html -o normalized/
    python run_normalizer.py legacy.html --encoding windows-1252 -v
"""

import argparse
import logging
import sys
from pathlib import Path

# Load .env file automatically (AMP_DOM_* settings)
from dotenv import load_dotenv
load_dotenv()

from amp_dom.document import Document
from amp_dom.logger import setup_logger
from amp_dom.schemas import DocumentConfig


def main():
    parser = argparse.ArgumentParser(
        description="Normalize HTML files into AMP document structure"
    )
    parser.add_argument(
        "files",
        nargs="+",
        help="HTML files to normalize"
    )
    parser.add_argument(
        "--output", "-o",
        help="Output directory (default: print to stdout)"
    )
    parser.add_argument(
        "--encoding", "-e",
        help="Encoding to assume when the markup declares none"
    )
    parser.add_argument(
        "--isolate-noscript",
        action="store_true",
        default=None,
        help="Force the noscript workaround regardless of the libxml2 version"
    )
    parser.add_argument(
        "--fragment-boundaries",
        action="store_true",
        default=None,
        help="Serialize subtrees via boundary comments"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging"
    )

    args = parser.parse_args()

    setup_logger(level=logging.DEBUG if args.verbose else logging.INFO)

    config = DocumentConfig.from_env(
        encoding=args.encoding,
        isolate_noscript=args.isolate_noscript,
        fragment_boundaries=args.fragment_boundaries,
    )

    output_dir = Path(args.output) if args.output else None
    if output_dir:
        output_dir.mkdir(parents=True, exist_ok=True)

    failures = 0

    for file_path in args.files:
        file_path = Path(file_path)
        print(f"Normalizing: {file_path.name}", file=sys.stderr)

        try:
            document = Document(config=config)
            if not document.load(file_path.read_bytes()):
                failures += 1
                print("  ✗ Error: libxml2 could not parse the document", file=sys.stderr)
                continue

            html = document.save()
        except OSError as e:
            failures += 1
            print(f"  ✗ Error: {e}", file=sys.stderr)
            continue

        if output_dir:
            (output_dir / file_path.name).write_text(html, encoding="utf-8")
        else:
            print(html)

        print(f"  ✓ Converted from: {document.original_encoding}", file=sys.stderr)

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
