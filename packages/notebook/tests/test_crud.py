import asyncio

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from calc_engine import AiRewrite
from notebook import (
    add_log,
    clear_logs,
    create_document,
    delete_document,
    get_document,
    get_logs,
    get_setting,
    init_db,
    list_documents,
    load_ai_logic,
    rename_document,
    save_document,
    set_setting,
)


def run_with_db(tmp_path, fn):
    async def _inner():
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'notebook.db'}", poolclass=NullPool)
        await init_db(engine)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        try:
            async with session_factory() as db:
                return await fn(db)
        finally:
            await engine.dispose()

    return asyncio.run(_inner())


def test_document_lifecycle(tmp_path):
    async def scenario(db):
        doc = await create_document(db, "Budget.calc", "Rent = 100")
        assert doc.id is not None
        assert load_ai_logic(doc) == {}

        await save_document(db, doc.id, "Rent = 100\nhalf of it", {1: AiRewrite(kind="rewrite", rhs="Rent / 2")})
        # plain edit keeps the stored rewrite map
        await save_document(db, doc.id, "Rent = 100\nhalf of it ")
        await rename_document(db, doc.id, "Home.calc")
        await db.commit()

        loaded = await get_document(db, doc.id)
        assert loaded.title == "Home.calc"
        assert loaded.content == "Rent = 100\nhalf of it "
        rewrites = load_ai_logic(loaded)
        assert list(rewrites) == [1]
        assert rewrites[1].rhs == "Rent / 2"

        assert await delete_document(db, doc.id) is True
        assert await get_document(db, doc.id) is None
        assert await delete_document(db, doc.id) is False
        assert await save_document(db, doc.id, "x") is None

    run_with_db(tmp_path, scenario)


def test_list_documents_most_recent_first(tmp_path):
    async def scenario(db):
        a = await create_document(db, "a.calc")
        await create_document(db, "b.calc")
        await save_document(db, a.id, "1 + 1")
        docs = await list_documents(db)
        return [d.title for d in docs]

    titles = run_with_db(tmp_path, scenario)
    assert titles == ["a.calc", "b.calc"]


def test_settings(tmp_path):
    async def scenario(db):
        assert await get_setting(db, "theme", "light") == "light"
        await set_setting(db, "theme", {"dark": True})
        assert await get_setting(db, "theme") == {"dark": True}
        await set_setting(db, "theme", "sepia")
        assert await get_setting(db, "theme") == "sepia"

    run_with_db(tmp_path, scenario)


def test_logs_are_trimmed(tmp_path):
    async def scenario(db):
        for i in range(5):
            await add_log(db, "llm", f"m{i}", {"i": i}, max_logs=3)
        logs = await get_logs(db)
        assert [entry.message for entry in logs] == ["m4", "m3", "m2"]

        await clear_logs(db)
        assert await get_logs(db) == []

    run_with_db(tmp_path, scenario)
