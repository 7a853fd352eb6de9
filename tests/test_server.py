import pathlib
import sys
from pathlib import Path

import pandas as pd
import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from codec import ALPHABET
from deck import DeckRegistry, decode_deck, format_report
from server import app as app_module

SMALL_DECK = "card|junk||0,1,1,0,2,0;;;&01;&1;x;;&02;&1;y;;&03;&1;z"


def build_big_deck() -> str:
    dictionary = [f"Card Name {i};other details;junk" for i in range(52)]
    table = ";;".join(f"&{ALPHABET[i]}" for i in range(52))
    indices = [str(i) for i in range(52)] + ["17"] * 48
    return "|".join(dictionary) + "||" + ",".join(indices) + ";;;" + table


@pytest.fixture
def registry(monkeypatch):
    fresh = DeckRegistry()
    monkeypatch.setattr(app_module, "registry", fresh)
    return fresh


@pytest.fixture
def client(registry):
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as test_client:
        yield test_client


def test_get_deck_returns_report(client, registry):
    encoded = build_big_deck()
    registry.put("testdeck", encoded)
    expected = format_report(decode_deck(encoded))

    response = client.get("/api/deck/testdeck")

    assert response.status_code == 200, response.get_data(as_text=True)
    assert response.mimetype == "text/plain"
    assert response.get_data(as_text=True) == expected


def test_get_deck_is_case_insensitive(client, registry):
    registry.put("ironclad", SMALL_DECK)

    response = client.get("/api/deck/IronClad")

    assert response.status_code == 200
    assert response.get_data(as_text=True) == "card1 x3\ncard2 x2\ncard3 x1\n"


def test_unknown_deck_is_not_found(client):
    response = client.get("/api/deck/missing")

    assert response.status_code == 404
    assert response.get_json() == {"error": "deck not found"}


def test_broken_deck_reports_error_every_time(client, registry):
    registry.put("broken", "card|junk||3;;;&01;&1;x")

    first = client.get("/api/deck/broken")
    second = client.get("/api/deck/broken")

    assert first.status_code == second.status_code == 500
    assert "out of bounds" in first.get_json()["error"]
    assert first.get_json() == second.get_json()


def test_decode_timeout_is_service_unavailable(client, registry, monkeypatch):
    stored = registry.put("slow", SMALL_DECK)

    def timing_out(timeout=None):
        raise app_module.DeckTimeout("deck decode did not finish within 5.0s")

    monkeypatch.setattr(stored, "resolve", timing_out)

    response = client.get("/api/deck/slow")

    assert response.status_code == 503


def test_put_registers_deck(client, registry):
    response = client.put("/api/deck/Silent", data=SMALL_DECK)

    assert response.status_code == 201
    assert response.get_json() == {"status": "accepted"}
    assert "silent" in registry

    fetched = client.get("/api/deck/silent")
    assert fetched.get_data(as_text=True) == "card1 x3\ncard2 x2\ncard3 x1\n"


def test_put_requires_body(client, registry):
    response = client.put("/api/deck/empty", data=b"")

    assert response.status_code == 400
    assert "empty" not in registry


def test_delete_and_list_decks(client, registry):
    registry.put("watcher", SMALL_DECK)
    registry.put("defect", SMALL_DECK)

    assert client.get("/api/decks").get_json() == {"decks": ["defect", "watcher"]}
    assert client.delete("/api/deck/Watcher").status_code == 204
    assert client.delete("/api/deck/watcher").status_code == 404
    assert client.get("/api/decks").get_json() == {"decks": ["defect"]}


def test_load_decks_from_csv(tmp_path: Path):
    path = tmp_path / "decks.csv"
    pd.DataFrame(
        [
            {"name": "Ironclad", "deck": SMALL_DECK},
            {"name": "", "deck": SMALL_DECK},
            {"name": "silent", "deck": ""},
        ]
    ).to_csv(path, index=False)
    target = DeckRegistry()

    loaded = app_module.load_decks(path, target)

    assert loaded == 1
    assert target.names() == ["ironclad"]
    assert target.get("ironclad").resolve() == b"card1 x3\ncard2 x2\ncard3 x1\n"


def test_load_decks_from_parquet(tmp_path: Path):
    pytest.importorskip("pyarrow")
    path = tmp_path / "decks.parquet"
    pd.DataFrame([{"name": "defect", "deck": SMALL_DECK}]).to_parquet(path, index=False)
    target = DeckRegistry()

    assert app_module.load_decks(path, target) == 1
    assert "defect" in target


def test_load_decks_requires_columns(tmp_path: Path):
    path = tmp_path / "decks.csv"
    pd.DataFrame([{"title": "Ironclad"}]).to_csv(path, index=False)

    with pytest.raises(app_module.DeckStoreError, match="Missing required columns"):
        app_module.load_decks(path, DeckRegistry())


def test_load_decks_rejects_unknown_extension(tmp_path: Path):
    path = tmp_path / "decks.json"
    path.write_text("{}", encoding="utf-8")

    with pytest.raises(app_module.DeckStoreError):
        app_module.load_decks(path, DeckRegistry())


def test_load_default_decks_falls_back_to_seed(tmp_path: Path, monkeypatch):
    seed = tmp_path / "decks_seed.csv"
    pd.DataFrame([{"name": "watcher", "deck": SMALL_DECK}]).to_csv(seed, index=False)
    monkeypatch.setattr(app_module, "DECKS_PATH", tmp_path / "decks.parquet")
    monkeypatch.setattr(app_module, "DECKS_SEED_PATH", seed)
    target = DeckRegistry()

    assert app_module.load_default_decks(target) == 1
    assert "watcher" in target


def test_load_default_decks_without_store(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(app_module, "DECKS_PATH", tmp_path / "decks.parquet")
    monkeypatch.setattr(app_module, "DECKS_SEED_PATH", tmp_path / "decks_seed.csv")

    assert app_module.load_default_decks(DeckRegistry()) == 0
