import json

from fastapi.testclient import TestClient

from listingflow.ebay.categories import (
    find_category_path,
    load_categories,
    score_category,
    suggest_categories,
)
from listingflow.main_app import app

CATS = [
    {"id": 38204, "name": "Tische", "path": "Möbel > Tische", "keywords": ["tisch", "table"]},
    {"id": "20488", "name": "Stühle", "path": "Möbel > Stühle", "keywords": ["stuhl", "chair"]},
    {"id": "11700", "name": "Lampen", "path": "Wohnen > Lampen", "keywords": ["lampe"]},
]


def write_cats(tmp_path, data=CATS):
    path = tmp_path / "ebay-categories.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_normalizes_ids(tmp_path):
    cats = load_categories(write_cats(tmp_path))
    assert [c["id"] for c in cats] == ["38204", "20488", "11700"]


def test_load_accepts_wrapped_list(tmp_path):
    cats = load_categories(write_cats(tmp_path, {"categories": CATS}))
    assert len(cats) == 3


def test_missing_file_is_empty(tmp_path):
    assert load_categories(tmp_path / "absent.json") == []


def test_score_keyword_beats_path_word():
    table = {"id": "1", "name": "Tische", "path": "Möbel > Tische", "keywords": ["table"]}
    assert score_category(table, "oak table") == 10
    assert score_category(table, "möbel") == 2
    assert score_category(table, "tische") == 2 + 5
    assert score_category(table, "   ") == 0


def test_suggest_ranks_and_drops_zero():
    cats = [{**c, "id": str(c["id"])} for c in CATS]
    result = suggest_categories("Oak table for garden", cats)
    assert [c["id"] for c in result] == ["38204"]

    result = suggest_categories("möbel stuhl", cats)
    assert [c["id"] for c in result] == ["20488", "38204"]


def test_suggest_limit():
    cats = [{"id": str(i), "name": f"n{i}", "path": f"Garten > n{i}", "keywords": []} for i in range(10)]
    assert len(suggest_categories("garten", cats)) == 6


def test_find_category_path():
    cats = [{**c, "id": str(c["id"])} for c in CATS]
    assert find_category_path("11700", cats) == "Wohnen > Lampen"
    assert find_category_path(38204, cats) == "Möbel > Tische"
    assert find_category_path("999", cats) is None


def test_category_routes(tmp_path, monkeypatch):
    monkeypatch.setenv("EBAY_CATEGORIES_FILE", str(write_cats(tmp_path)))
    client = TestClient(app)

    resp = client.get("/api/ebay/category/suggest", params={"q": "lampe"})
    assert resp.status_code == 200
    assert [c["id"] for c in resp.json()["suggestions"]] == ["11700"]

    assert client.get("/api/ebay/category/suggest").json() == {"suggestions": []}

    assert client.get("/api/ebay/category/path", params={"id": "20488"}).json() == {"path": "Möbel > Stühle"}
    assert client.get("/api/ebay/category/path").status_code == 400
    assert client.get("/api/ebay/category/path", params={"id": "1"}).status_code == 404


def test_deprecated_drafts_route():
    resp = TestClient(app).post("/api/ebay/drafts")
    assert resp.status_code == 410
