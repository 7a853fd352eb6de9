"""Wire format helpers for compressed deck strings.

A deck string has the shape ``DICT||INDEXES;;;TABLE``.  ``DICT`` is a list of
``|`` separated words that the rest of the document references through
``&<symbol>`` placeholders, where the symbol's position in :data:`ALPHABET` is
the word's index.  The functions here undo that substitution and split the
resulting document into its index list and card table.
"""
from __future__ import annotations

import re
from typing import Iterator

ALPHABET = "0123456789abcdefghijklmnopqrstvwxyzABCDEFGHIJKLMNOPQRSTVWXYZ_`[]/^%?@><=-+*:;,.()#$!'{}~"

PLACEHOLDER_ESCAPE = "&"
PLACEHOLDERS = tuple(PLACEHOLDER_ESCAPE + symbol for symbol in ALPHABET)

DICTIONARY_SEPARATOR = "|"
DOCUMENT_SEPARATOR = "||"
SECTION_SEPARATOR = ";;;"
ENTRY_SEPARATOR = ";;"
FIELD_SEPARATOR = ";"
INDEX_SEPARATOR = ","
EMPTY_MARKER = "-"

_INDEX_PATTERN = re.compile(r"[+-]?[0-9]+")


class DeckError(ValueError):
    """Raised when a deck string cannot be decoded."""


class MalformedDocument(DeckError):
    """The document is missing a separator or cannot be read as text."""


class InvalidIndex(DeckError):
    """A field of the index list is not an integer."""


class IndexOutOfRange(DeckError):
    """An index does not address an entry of the card table."""


def as_text(encoded: bytes | str) -> str:
    if isinstance(encoded, str):
        return encoded
    try:
        return bytes(encoded).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedDocument("deck string is not valid UTF-8") from exc


def decompress(encoded: str) -> str:
    """Expand every dictionary placeholder in *encoded*.

    Words are substituted from the highest index down so that a word may refer
    to lower-indexed words and still be fully expanded.  Placeholders that
    point forwards are never revisited and remain in the output verbatim.
    """

    if DOCUMENT_SEPARATOR not in encoded:
        raise MalformedDocument("invalid deck: missing dictionary separator")
    dictionary_part, _, text = encoded.partition(DOCUMENT_SEPARATOR)

    dictionary = dictionary_part.split(DICTIONARY_SEPARATOR)
    if len(dictionary) > len(PLACEHOLDERS):
        raise MalformedDocument(
            f"invalid deck: {len(dictionary)} dictionary words but only "
            f"{len(PLACEHOLDERS)} placeholders"
        )

    for index in range(len(dictionary) - 1, -1, -1):
        text = text.replace(PLACEHOLDERS[index], dictionary[index])
    return text


def split_document(document: str) -> tuple[str, str]:
    """Return the index list and card table sections of *document*."""

    if SECTION_SEPARATOR not in document:
        raise MalformedDocument("invalid deck: missing card table separator")
    index_text, _, table_text = document.partition(SECTION_SEPARATOR)
    return index_text, table_text


def read_delimited(text: str, delimiter: str) -> Iterator[str]:
    """Yield the fields of *text* separated by *delimiter*.

    ``-`` and the empty string hold no fields.  A delimiter at the very end of
    *text* does not open a further, empty field.
    """

    if not text or text == EMPTY_MARKER:
        return
    position = 0
    while position < len(text):
        end = text.find(delimiter, position)
        if end == -1:
            end = len(text)
        yield text[position:end]
        position = end + len(delimiter)


def parse_index_list(text: str) -> list[int]:
    indices: list[int] = []
    for field in read_delimited(text, INDEX_SEPARATOR):
        if not _INDEX_PATTERN.fullmatch(field):
            raise InvalidIndex(f"invalid card index: {field!r}")
        indices.append(int(field, 10))
    return indices


def parse_card_name(entry: str) -> str:
    """Return the display name, the first field of a table entry."""

    name, _, _ = entry.partition(FIELD_SEPARATOR)
    return name


def parse_table(text: str) -> list[str]:
    return [parse_card_name(entry) for entry in read_delimited(text, ENTRY_SEPARATOR)]


__all__ = [
    "ALPHABET",
    "PLACEHOLDERS",
    "DeckError",
    "MalformedDocument",
    "InvalidIndex",
    "IndexOutOfRange",
    "as_text",
    "decompress",
    "split_document",
    "read_delimited",
    "parse_index_list",
    "parse_card_name",
    "parse_table",
]
