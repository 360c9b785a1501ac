"""Round-trip demonstration for tycodec.

Usage: python -m tycodec [--count N] [--output-dir DIR] [--base64]
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from . import archive
from .config import XmlConfig
from .shape import Owned


@dataclass
class Node:
    value: int = 0
    next: Owned["Node"] = None

    @staticmethod
    def make_list(count: int) -> "Owned[Node]":
        head = None
        for i in range(count):
            head = Node(i, head)
        return head

    @staticmethod
    def values_of(head: "Owned[Node]") -> list[int]:
        values = []
        while head is not None:
            values.append(head.value)
            head = head.next
        return values


# Python frames per list node when the XML tree is built, indented,
# serialized and read back.
FRAMES_PER_NODE = 8


def ensure_recursion_limit(count: int) -> None:
    """Raise the interpreter recursion limit to fit an XML list of ``count`` nodes."""
    needed = count * FRAMES_PER_NODE + 1000
    if needed > sys.getrecursionlimit():
        logging.getLogger("tycodec").info(f"Raising recursion limit to {needed}")
        sys.setrecursionlimit(needed)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s] : %(message)s',
    )


def run(count: int, output_dir: Path, use_base64: bool) -> bool:
    """Write a linked list to binary and XML files and read both back."""
    output_dir.mkdir(parents=True, exist_ok=True)
    ensure_recursion_limit(count)
    original = Node.make_list(count)
    expected = Node.values_of(original)
    tp = Owned[Node]
    config = XmlConfig(use_base64=use_base64)

    bin_path = output_dir / "list.dat"
    archive.dump_file(original, bin_path, tp)
    bin_ok = Node.values_of(archive.load_file(tp, bin_path)) == expected
    print(f"Binary: {bin_path} ({bin_path.stat().st_size} bytes), match = {bin_ok}")

    xml_path = output_dir / "list.xml"
    archive.dump_xml_file(original, xml_path, config, tp)
    xml_ok = Node.values_of(archive.load_xml_file(tp, xml_path, config)) == expected
    print(f"XML:    {xml_path} (base64 = {use_base64}), match = {xml_ok}")

    return bin_ok and xml_ok


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Round-trip a linked list through the binary and XML archives",
        prog="python -m tycodec",
    )
    parser.add_argument(
        "-n",
        "--count",
        type=int,
        default=10,
        help="Number of list nodes (default: 10)",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory for list.dat and list.xml (default: current directory)",
    )
    parser.add_argument(
        "--base64",
        action="store_true",
        help="Encode XML primitives as Base64 of their raw bytes",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    args = parser.parse_args(argv)

    setup_logging(args.log_level.upper())
    if args.count < 0:
        parser.error("--count must not be negative")

    ok = run(args.count, args.output_dir, args.base64)
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
