from backend.valveflow import config, run


def test_batch_without_store_data_exits_cleanly(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "FIREBASE_KEY_PATH", str(tmp_path / "missing.json"))
    assert run.main() == 0
