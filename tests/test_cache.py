from cityscene.cache import ResponseCache


def test_missing_cache_loads_none(tmp_path):
    assert ResponseCache(tmp_path / "none.json").load() is None


def test_store_replaces_previous(tmp_path):
    cache = ResponseCache(tmp_path / "nested" / "last.json")
    cache.store('{"elements": [1]}')
    cache.store('{"elements": [2]}')
    assert cache.load() == '{"elements": [2]}'
    assert not (tmp_path / "nested" / "last.json.tmp").exists()


def test_store_accepts_bytes(tmp_path):
    cache = ResponseCache(tmp_path / "last.json")
    cache.store('{"name": "Zürich"}'.encode("utf-8"))
    assert cache.load() == '{"name": "Zürich"}'


def test_clear(tmp_path):
    cache = ResponseCache(tmp_path / "last.json")
    cache.clear()
    cache.store("{}")
    cache.clear()
    assert cache.load() is None
