"""Card counting, report rendering and the decode-once deck cache."""
from __future__ import annotations

import enum
import logging
import threading
from typing import Iterable, Mapping, Sequence

from codec import (
    IndexOutOfRange,
    as_text,
    decompress,
    parse_index_list,
    parse_table,
    split_document,
)

LOGGER = logging.getLogger("deck")

# Always listed last, whatever its name or count.
ASCENDERS_BANE = "Ascender's Bane"


class DeckTimeout(TimeoutError):
    """Raised when waiting for another caller's decode takes too long."""


def count_cards(indices: Iterable[int], names: Sequence[str]) -> dict[str, int]:
    """Return how many times each name in *names* is referenced by *indices*."""

    counts: dict[str, int] = {}
    for index in indices:
        if index < 0 or index >= len(names):
            raise IndexOutOfRange(
                f"card index out of bounds: {index} (table has {len(names)} entries)"
            )
        name = names[index]
        counts[name] = counts.get(name, 0) + 1
    return counts


def sort_card_names(names: Iterable[str]) -> list[str]:
    return sorted(names, key=lambda name: (name == ASCENDERS_BANE, name))


def format_report(counts: Mapping[str, int]) -> str:
    """Return the ``"<name> x<count>"`` listing for *counts*.

    A zero count is written as the bare name.  Counts produced by
    :func:`count_cards` are never zero.
    """

    lines = []
    for name in sort_card_names(counts):
        count = counts[name]
        if count > 0:
            lines.append(f"{name} x{count}\n")
        else:
            lines.append(f"{name}\n")
    return "".join(lines)


def decode_deck(encoded: bytes | str) -> dict[str, int]:
    """Decode *encoded* into a mapping of card name to copy count."""

    document = decompress(as_text(encoded))
    index_text, table_text = split_document(document)
    names = parse_table(table_text)
    return count_cards(parse_index_list(index_text), names)


def render_report(encoded: bytes | str) -> str:
    return format_report(decode_deck(encoded))


class DeckState(enum.Enum):
    PENDING = "pending"
    DECODING = "decoding"
    DONE_OK = "done_ok"
    DONE_ERR = "done_err"


class Deck:
    """A compressed deck that is decoded on first use and then cached.

    The first caller of :meth:`resolve` performs the decode; concurrent callers
    wait for it and every later caller gets the stored outcome.  A failed
    decode is stored too, so a broken deck keeps raising the same exception
    and is never decoded again.
    """

    def __init__(self, encoded: bytes | str) -> None:
        if isinstance(encoded, str):
            encoded = encoded.encode("utf-8")
        # Raw deck string until decoded, then the rendered report.
        self._buf: bytes = bytes(encoded)
        self._error: Exception | None = None
        self._state = DeckState.PENDING
        self._lock = threading.Lock()
        self._done = threading.Event()

    @property
    def state(self) -> DeckState:
        return self._state

    def resolve(self, timeout: float | None = None) -> bytes:
        """Return the rendered report, decoding the deck if nobody has yet.

        *timeout* bounds how long to wait for a decode started by another
        caller; :class:`DeckTimeout` is raised when it expires.
        """

        while not self._done.is_set():
            with self._lock:
                done = self._done
                leader = self._state is DeckState.PENDING
                if leader:
                    self._state = DeckState.DECODING
            if leader:
                self._decode(done)
            elif not done.wait(timeout):
                raise DeckTimeout(f"deck decode did not finish within {timeout}s")

        if self._error is not None:
            # Each raise would otherwise extend the stored traceback.
            raise self._error.with_traceback(None)
        return self._buf

    def _decode(self, done: threading.Event) -> None:
        LOGGER.debug("Decoding deck (%d bytes)", len(self._buf))
        try:
            report = render_report(self._buf)
        except Exception as exc:
            LOGGER.warning("Deck failed to decode: %s", exc)
            self._error = exc
            self._state = DeckState.DONE_ERR
        except BaseException:
            # Interrupted, not failed: hand the decode to the next caller.
            with self._lock:
                self._state = DeckState.PENDING
                self._done = threading.Event()
            done.set()
            raise
        else:
            self._buf = report.encode("utf-8")
            self._state = DeckState.DONE_OK
            LOGGER.debug("Deck decoded into %d bytes", len(self._buf))
        done.set()


class DeckRegistry:
    """Thread-safe mapping from lowercase deck name to :class:`Deck`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._decks: dict[str, Deck] = {}

    @staticmethod
    def _key(name: str) -> str:
        return name.lower()

    def get(self, name: str) -> Deck | None:
        with self._lock:
            return self._decks.get(self._key(name))

    def put(self, name: str, encoded: bytes | str) -> Deck:
        """Register *encoded* under *name*, replacing any previous deck."""

        deck = Deck(encoded)
        with self._lock:
            self._decks[self._key(name)] = deck
        return deck

    def remove(self, name: str) -> bool:
        with self._lock:
            return self._decks.pop(self._key(name), None) is not None

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._decks)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        with self._lock:
            return self._key(name) in self._decks

    def __len__(self) -> int:
        with self._lock:
            return len(self._decks)


__all__ = [
    "ASCENDERS_BANE",
    "Deck",
    "DeckRegistry",
    "DeckState",
    "DeckTimeout",
    "count_cards",
    "decode_deck",
    "format_report",
    "render_report",
    "sort_card_names",
]
