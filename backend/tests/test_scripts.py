from __future__ import annotations

from backend.scripts import refresh_photos, seed_directory


def test_seed_inserts_new_rows_and_skips_existing(client, run, seed):
    seed.city()
    payload = {
        "cities": [
            {"name": "Amsterdam", "slug": "amsterdam"},
            {"name": "Utrecht", "slug": "utrecht", "province": "Utrecht"},
            {"name": "Kapot", "slug": "kapot", "latitude": 123},
        ],
        "cuisines": [{"name": "Indonesisch", "slug": "indonesisch"}],
    }
    assert run(seed_directory._seed, payload) == (1, 1)
    assert [c["slug"] for c in client.get("/v1/cities").json()] == ["amsterdam", "utrecht"]
    assert [c["slug"] for c in client.get("/v1/cuisines").json()] == ["indonesisch"]


def test_seed_missing_file(tmp_path, capsys):
    assert seed_directory.main([str(tmp_path / "missing.json")]) == 1
    assert "No seed file found" in capsys.readouterr().out


def test_refresh_rejects_batch_size(capsys):
    assert refresh_photos.main(["--batch-size", "0"]) == 2
    assert "between 1 and 100" in capsys.readouterr().err
