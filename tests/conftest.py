import sys

import pytest_asyncio

from .repo_root import REPO_ROOT

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest_asyncio.fixture
async def services(tmp_path):
    from rawmgr_backend.deps import build_services, shutdown_services

    library = tmp_path / "library"
    library.mkdir()
    db_path = str(tmp_path / "data" / "test_services.db")
    svc_res = await build_services(db_path, library_root=str(library), watcher=False)
    assert svc_res.ok, svc_res.error
    svc = svc_res.data
    svc["library_path"] = library
    try:
        yield svc
    finally:
        await shutdown_services(svc)
