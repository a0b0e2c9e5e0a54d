import pytest

from rawmgr_backend import deps as deps_mod
from rawmgr_shared import Result


def test_resolve_paths_default_and_custom(monkeypatch, tmp_path):
    monkeypatch.setattr(deps_mod, "INDEX_DB", str(tmp_path / "default.db"))
    monkeypatch.setattr(deps_mod, "DATA_DIR_PATH", tmp_path)
    data_dir, db_path, previews = deps_mod._resolve_paths(None, None)
    assert (data_dir, db_path, previews) == (tmp_path, str(tmp_path / "default.db"), tmp_path / "previews")

    data_dir, db_path, previews = deps_mod._resolve_paths(str(tmp_path / "x" / "lib.db"), tmp_path / "p")
    assert data_dir == tmp_path / "x"
    assert db_path == str(tmp_path / "x" / "lib.db")
    assert previews == tmp_path / "p"


def test_init_db_or_error_failure(monkeypatch):
    class _BadSqlite:
        def __init__(self, *_args, **_kwargs):
            raise RuntimeError("boom")

    monkeypatch.setattr(deps_mod, "Sqlite", _BadSqlite)
    out = deps_mod._init_db_or_error("/tmp/db.sqlite")
    assert out.ok is False
    assert out.code == "DB_ERROR"


@pytest.mark.asyncio
async def test_migrate_db_or_error_failure(monkeypatch):
    async def _migrate(_db):
        return Result.Err("DB_ERROR", "migrate failed")

    monkeypatch.setattr(deps_mod, "migrate_schema", _migrate)
    out = await deps_mod._migrate_db_or_error(object())
    assert out.ok is False
    assert "migrate failed" in out.error


@pytest.mark.asyncio
async def test_build_services_migration_failure_closes_db(monkeypatch, tmp_path):
    closed = []

    class _Sqlite:
        def __init__(self, *_args, **_kwargs):
            pass

        async def aclose(self):
            closed.append(True)

    async def _migrate(_db):
        return Result.Err("DB_ERROR", "no")

    monkeypatch.setattr(deps_mod, "Sqlite", _Sqlite)
    monkeypatch.setattr(deps_mod, "migrate_schema", _migrate)

    out = await deps_mod.build_services(str(tmp_path / "db.sqlite"), watcher=False)
    assert out.ok is False
    assert out.code == "DB_ERROR"
    assert closed == [True]


@pytest.mark.asyncio
async def test_build_services_without_watcher(services):
    assert {
        "db",
        "settings",
        "library",
        "store",
        "metadata",
        "preview",
        "freshness",
        "consistency",
        "filesystem",
    } <= set(services)
    assert "watcher" not in services
    root = await services["library"].snapshot()
    assert root.canonical == services["library_path"].resolve()


@pytest.mark.asyncio
async def test_build_services_attaches_watcher(monkeypatch, tmp_path):
    started = []

    class _Watcher:
        def __init__(self, consistency):
            self.consistency = consistency

        async def start(self, root):
            started.append(root)
            return True

        async def retarget(self, root):
            started.append(root.canonical)

        async def stop(self):
            started.append("stopped")

    monkeypatch.setattr(deps_mod, "LibraryWatcher", _Watcher)
    library = tmp_path / "library"
    library.mkdir()
    out = await deps_mod.build_services(str(tmp_path / "data" / "w.db"), library_root=str(library), watcher=True)
    assert out.ok, out.error
    services = out.data
    try:
        assert services["watcher"].consistency is services["consistency"]
        assert started == [library.resolve()]
        other = tmp_path / "other"
        other.mkdir()
        assert (await services["library"].configure(str(other), persist=False)).ok
        assert started[-1] == other.resolve()
    finally:
        await deps_mod.shutdown_services(services)
    assert started[-1] == "stopped"
