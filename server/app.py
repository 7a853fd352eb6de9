"""Minimal Flask API serving decoded deck lists by name."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable

import pandas as pd
from flask import Flask, Response, jsonify, request

from codec import DeckError
from deck import DeckRegistry, DeckTimeout

DATA_DIR = Path("data")
DECKS_PATH = DATA_DIR / "decks.parquet"
DECKS_SEED_PATH = DATA_DIR / "decks_seed.csv"

# Seconds a request waits on a decode already running in another request.
DECK_WAIT_TIMEOUT = 5.0

REQUIRED_COLUMNS = ("name", "deck")

LOGGER = logging.getLogger("server")

app = Flask(__name__)
registry = DeckRegistry()


class DeckStoreError(RuntimeError):
    """Raised when a deck file cannot be loaded into the registry."""


def _read_deck_frame(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        return pd.read_parquet(path)
    if suffix == ".csv":
        return pd.read_csv(path, dtype=str, keep_default_na=False)
    raise DeckStoreError(f"{path}: Unsupported file extension")


def load_decks(path: Path, target: DeckRegistry) -> int:
    """Register every ``name``/``deck`` row of *path* in *target*."""

    frame = _read_deck_frame(path)
    missing = [column for column in REQUIRED_COLUMNS if column not in frame]
    if missing:
        raise DeckStoreError(f"{path}: Missing required columns: {', '.join(missing)}")

    loaded = 0
    for record in frame[list(REQUIRED_COLUMNS)].to_dict(orient="records"):
        name = str(record["name"]).strip() if pd.notna(record["name"]) else ""
        encoded = str(record["deck"]) if pd.notna(record["deck"]) else ""
        if not name or not encoded:
            LOGGER.warning("Skipping deck row with empty name or deck in %s", path)
            continue
        target.put(name, encoded)
        loaded += 1

    LOGGER.info("Loaded %d decks from %s", loaded, path)
    return loaded


def load_default_decks(target: DeckRegistry) -> int:
    if DECKS_PATH.exists():
        return load_decks(DECKS_PATH, target)

    if DECKS_SEED_PATH.exists():
        LOGGER.info(
            "Primary Parquet store %s missing; loading seed CSV %s",
            DECKS_PATH,
            DECKS_SEED_PATH,
        )
        return load_decks(DECKS_SEED_PATH, target)

    LOGGER.info("No deck store at %s or %s; starting empty", DECKS_PATH, DECKS_SEED_PATH)
    return 0


@app.after_request
def log_request(response: Response) -> Response:
    LOGGER.info(
        "%s %s %s content_length=%s",
        request.method,
        request.path,
        response.status_code,
        request.content_length or 0,
    )
    return response


@app.get("/api/decks")
def list_decks():
    return jsonify({"decks": registry.names()})


@app.get("/api/deck/<name>")
def get_deck(name: str):
    deck = registry.get(name)
    if deck is None:
        return jsonify({"error": "deck not found"}), 404

    try:
        report = deck.resolve(timeout=DECK_WAIT_TIMEOUT)
    except DeckTimeout as exc:
        return jsonify({"error": str(exc)}), 503
    except DeckError as exc:
        return jsonify({"error": str(exc)}), 500

    return Response(report, status=200, mimetype="text/plain")


@app.put("/api/deck/<name>")
def put_deck(name: str):
    encoded = request.get_data()
    if not encoded:
        return jsonify({"error": "deck string required"}), 400

    registry.put(name, encoded)
    return jsonify({"status": "accepted"}), 201


@app.delete("/api/deck/<name>")
def delete_deck(name: str):
    if not registry.remove(name):
        return jsonify({"error": "deck not found"}), 404
    return "", 204


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--path",
        help="Parquet or CSV file with name and deck columns to serve",
    )
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=5000)
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.path:
            load_decks(Path(args.path), registry)
        else:
            load_default_decks(registry)
    except (DeckStoreError, OSError) as exc:
        LOGGER.error("%s", exc)
        return 1

    app.run(host=args.host, port=args.port, threaded=True)
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    raise SystemExit(main())
