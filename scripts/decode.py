"""Decode compressed deck strings into readable card lists."""
from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from codec import DeckError
from deck import decode_deck, format_report

LOGGER = logging.getLogger("decode")


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of decoding a single deck string."""

    source: str
    counts: dict[str, int] | None
    error: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.error is None


def decode_source(source: str, encoded: bytes | str) -> DecodeResult:
    try:
        counts = decode_deck(encoded)
    except DeckError as exc:
        LOGGER.debug("%s failed to decode", source, exc_info=True)
        return DecodeResult(source=source, counts=None, error=str(exc))
    return DecodeResult(source=source, counts=counts)


def _read_deck_file(path: Path) -> bytes:
    # Trailing line breaks are not part of the deck string.
    return path.read_bytes().rstrip(b"\r\n")


def run(
    decks: Iterable[str] = (),
    files: Iterable[str] = (),
) -> list[DecodeResult]:
    """Decode inline *decks* followed by the contents of each of *files*."""

    results: list[DecodeResult] = []
    for position, encoded in enumerate(decks, start=1):
        results.append(decode_source(f"deck #{position}", encoded))
    for raw_path in files:
        path = Path(raw_path)
        results.append(decode_source(str(path), _read_deck_file(path)))
    return results


def format_result(result: DecodeResult) -> str:
    if result.counts is None:
        return f"{result.source}: failed\n  error: {result.error}"
    total = sum(result.counts.values())
    header = f"{result.source}: {len(result.counts)} unique cards, {total} total"
    return header + "\n" + format_report(result.counts).rstrip("\n")


def result_to_dict(result: DecodeResult) -> dict[str, object]:
    payload: dict[str, object] = {"source": result.source}
    if result.counts is not None:
        payload["cards"] = dict(sorted(result.counts.items()))
    else:
        payload["error"] = result.error
    return payload


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "decks",
        nargs="*",
        help="Compressed deck strings to decode.",
    )
    parser.add_argument(
        "--file",
        dest="files",
        action="append",
        default=[],
        help="Read a compressed deck string from this file. Can be repeated.",
    )
    parser.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Emit card counts as JSON instead of formatted text.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.decks and not args.files:
        parser.error("at least one deck string or --file is required")

    try:
        results = run(args.decks, args.files)
    except OSError as exc:
        parser.error(str(exc))

    if args.as_json:
        print(json.dumps([result_to_dict(result) for result in results], indent=2))
    else:
        for result in results:
            print(format_result(result))

    return 0 if all(result.is_ok for result in results) else 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
