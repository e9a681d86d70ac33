"""
世界连接管理器单元测试
"""
import asyncio
import time

import pytest

from rpworld.config import Settings
from rpworld.exceptions import (
    NotConnectedError,
    StaleHandleError,
    StorageUnavailableError,
    WorldConnectionError,
)
from rpworld.memory.vector_memory import VectorState


def run(coro):
    return asyncio.run(coro)


class TestListWorlds:
    def test_missing_data_dir(self, manager):
        assert run(manager.list_worlds()) == []

    def test_lists_sorted_world_names(self, manager, settings):
        async def scenario():
            await manager.connect("b世界")
            await manager.connect("a世界")
            manager.disconnect()
            (settings.data_path / "notes.txt").write_text("ignored")
            return await manager.list_worlds()

        assert run(scenario()) == ["a世界", "b世界"]

    def test_data_dir_not_enumerable(self, tmp_path, make_manager):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        manager = make_manager(Settings(DATA_DIR=str(blocker)))
        with pytest.raises(StorageUnavailableError):
            run(manager.list_worlds())


class TestConnect:
    def test_connect_creates_world(self, manager, settings):
        connected = run(manager.connect("艾尔登"))
        assert connected is True
        assert manager.is_connected()
        assert manager.current_world() == "艾尔登"
        assert settings.world_file("艾尔登").exists()
        assert manager.vector_memory.state == VectorState.READY
        assert not manager.loading
        assert manager.error is None

    def test_connect_same_world_twice(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            store = manager.current_store()
            await manager.characters.save({"name": "艾琳"})
            again = await manager.connect("  艾尔登 ")
            return store, again, manager.current_store(), manager.characters.all()

        store, again, store_after, chars = run(scenario())
        assert again is True
        assert store_after is store
        assert [c.name for c in chars] == ["艾琳"]

    def test_switch_worlds_isolates_caches(self, manager):
        async def scenario():
            await manager.connect("甲世界")
            old_store = manager.current_store()
            await manager.characters.save({"name": "甲"})
            await manager.connect("乙世界")
            in_b = manager.characters.all()
            await manager.connect("甲世界")
            return old_store, in_b, manager.characters.all()

        old_store, in_b, in_a = run(scenario())
        assert old_store.closed
        assert in_b == []
        assert [c.name for c in in_a] == ["甲"]

    @pytest.mark.parametrize("name", ["", "   ", "..", "a/b", "a\\b"])
    def test_invalid_name(self, manager, name):
        with pytest.raises(WorldConnectionError):
            run(manager.connect(name))
        assert not manager.is_connected()
        assert manager.error is not None

    def test_load_failure_rolls_back(self, manager, monkeypatch):
        """加载缓存失败时回到断开状态"""

        async def broken_load_all():
            raise NotConnectedError()

        monkeypatch.setattr(manager.worldbooks, "load_all", broken_load_all)
        with pytest.raises(WorldConnectionError):
            run(manager.connect("艾尔登"))

        assert not manager.is_connected()
        assert manager.current_world() is None
        assert manager.characters.all() == []
        assert manager.error is not None
        assert not manager.loading


class TestDisconnect:
    def test_disconnect_clears_state(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            char_id = await manager.characters.save({"name": "艾琳"})
            await manager.groups.save({"name": "小队", "characterIds": [char_id]})
            await manager.worldbooks.save({"title": "龙王", "keywords": "dragon", "content": "..."})
            await manager.config.save({"model": "gpt-4o"})
            store = manager.current_store()
            manager.disconnect()
            return store

        store = run(scenario())
        assert store.closed
        assert not manager.is_connected()
        assert manager.characters.all() == []
        assert manager.groups.all() == []
        assert manager.worldbooks.all() == []
        assert manager.config.get().model == ""
        assert manager.vector_memory.collection is None
        with pytest.raises(NotConnectedError):
            manager.current_store()

        # 幂等
        manager.disconnect()
        assert not manager.is_connected()

    def test_stale_save_does_not_touch_new_world(self, manager):
        """断开前发起的保存在断开后完成时被拒绝，不污染新世界的缓存"""

        async def scenario():
            await manager.connect("甲世界")
            pending = asyncio.create_task(manager.characters.save({"name": "迟到者"}))
            await asyncio.sleep(0)
            manager.disconnect()
            await manager.connect("乙世界")
            with pytest.raises(StaleHandleError):
                await pending
            return manager.characters.all()

        assert run(scenario()) == []

    def test_save_in_store_step_not_committed_after_disconnect(self, manager, monkeypatch):
        """存储步骤进行中断开世界，写入不会落盘"""
        original = manager.characters._save_record

        def slow_save_record(session, data):
            saved = original(session, data)
            time.sleep(0.2)
            return saved

        monkeypatch.setattr(manager.characters, "_save_record", slow_save_record)

        async def scenario():
            await manager.connect("艾尔登")
            pending = asyncio.create_task(manager.characters.save({"name": "迟到者"}))
            await asyncio.sleep(0.05)
            manager.disconnect()
            with pytest.raises(StaleHandleError):
                await pending
            await manager.connect("艾尔登")
            return [c.name for c in manager.characters.all()]

        assert run(scenario()) == []


class TestSyncConnectionState:
    def test_closed_handle_resets(self, manager):
        run(manager.connect("艾尔登"))
        manager._store.close()
        assert manager.sync_connection_state() is False
        assert manager.current_world() is None
        assert manager.characters.all() == []

    def test_name_recovered_from_handle(self, manager):
        run(manager.connect("艾尔登"))
        manager._world_name = ""
        assert manager.sync_connection_state() is True
        assert manager.current_world() == "艾尔登"

    def test_disconnected_stays_disconnected(self, manager):
        assert manager.sync_connection_state() is False


class TestDeleteWorld:
    def test_delete_connected_world(self, manager, settings):
        async def scenario():
            await manager.connect("艾尔登")
            deleted = await manager.delete_world("艾尔登")
            again = await manager.delete_world("艾尔登")
            return deleted, again

        deleted, again = run(scenario())
        assert deleted is True
        assert again is False
        assert not manager.is_connected()
        assert not settings.world_file("艾尔登").exists()

    def test_delete_other_world_keeps_connection(self, manager):
        async def scenario():
            await manager.connect("甲世界")
            await manager.connect("乙世界")
            await manager.delete_world("甲世界")
            return await manager.list_worlds()

        assert run(scenario()) == ["乙世界"]
        assert manager.current_world() == "乙世界"


def test_refresh_reloads_from_store(manager):
    from rpworld.db import character_crud

    async def scenario():
        await manager.connect("艾尔登")
        await manager.current_store().run(lambda s: character_crud.create(s, name="外部写入"))
        before = manager.characters.all()
        await manager.refresh()
        return before, manager.characters.all()

    before, after = run(scenario())
    assert before == []
    assert [c.name for c in after] == ["外部写入"]


def test_init_vector_db_after_connect(manager):
    async def scenario():
        await manager.connect("艾尔登")
        return await manager.init_vector_db()

    assert run(scenario()) is True
    assert manager.vector_memory.init_attempts == 1
