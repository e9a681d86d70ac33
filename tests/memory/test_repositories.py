"""
实体仓库单元测试

通过 WorldConnectionManager 测试缓存与存储的同步规则
"""
import asyncio

import pytest

from rpworld.config import EmptyGroupPolicy, Settings
from rpworld.db import character_crud
from rpworld.exceptions import NotConnectedError, ValidationError
from rpworld.memory.schemas import CharacterData


def run(coro):
    return asyncio.run(coro)


class TestCharacterRepository:
    def test_save_assigns_id_and_caches(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            char_id = await manager.characters.save({"name": "艾琳", "persona": "游侠"})
            return char_id, manager.characters.all()

        char_id, chars = run(scenario())
        assert char_id is not None
        assert [(c.id, c.name, c.persona) for c in chars] == [(char_id, "艾琳", "游侠")]
        assert not manager.loading

    def test_save_existing_id_updates_in_place(self, manager):
        """同一 ID 保存两次只保留一条，位置不变"""

        async def scenario():
            await manager.connect("艾尔登")
            first = await manager.characters.save(CharacterData(name="甲"))
            await manager.characters.save(CharacterData(name="乙"))
            await manager.characters.save(CharacterData(id=first, name="甲·改"))
            return manager.characters.all()

        chars = run(scenario())
        assert [c.name for c in chars] == ["甲·改", "乙"]

    def test_single_player(self, manager):
        """设置新主角时清除其他角色的主角标记（缓存与存储一致）"""

        async def scenario():
            await manager.connect("艾尔登")
            a = await manager.characters.save({"name": "甲", "isPlayer": True})
            b = await manager.characters.save({"name": "乙", "isPlayer": True})
            cached = manager.characters.player_character()
            available = manager.characters.available_characters()
            stored = await manager.current_store().run(
                lambda s: [c.id for c in character_crud.get_all(s) if c.is_player]
            )
            return a, b, cached, available, stored

        a, b, cached, available, stored = run(scenario())
        assert cached.id == b
        assert [c.id for c in available] == [a]
        assert stored == [b]

    def test_get_by_id_reads_through(self, manager):
        """缓存未命中时读取存储并只加入该条目"""

        async def scenario():
            await manager.connect("艾尔登")
            store = manager.current_store()
            new_id = await store.run(lambda s: character_crud.create(s, name="外部写入").id)
            before = len(manager.characters)
            found = await manager.characters.get_by_id(new_id)
            missing = await manager.characters.get_by_id(9999)
            return before, found, missing, len(manager.characters)

        before, found, missing, after = run(scenario())
        assert before == 0
        assert found.name == "外部写入"
        assert missing is None
        assert after == 1

    def test_cache_views_are_copies(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            char_id = await manager.characters.save({"name": "艾琳"})
            view = manager.characters.all()
            view[0].name = "被篡改"
            return manager.characters.cached(char_id)

        assert run(scenario()).name == "艾琳"

    def test_invalid_character_rejected(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            with pytest.raises(ValidationError):
                await manager.characters.save({"name": ""})
            return manager.error, len(manager.characters)

        error, count = run(scenario())
        assert error is not None
        assert count == 0

    def test_delete(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            char_id = await manager.characters.save({"name": "艾琳"})
            deleted = await manager.characters.delete(char_id)
            again = await manager.characters.delete(char_id)
            return deleted, again, manager.characters.all()

        deleted, again, chars = run(scenario())
        assert deleted is True
        assert again is False
        assert chars == []


class TestDeleteCharacterFixesGroups:
    def _scenario(self, mgr):
        async def scenario():
            await mgr.connect("艾尔登")
            a = await mgr.characters.save({"name": "甲"})
            b = await mgr.characters.save({"name": "乙"})
            solo = await mgr.groups.save({"name": "独行", "characterIds": [a]})
            pair = await mgr.groups.save({"name": "双人", "characterIds": [b, a]})
            await mgr.characters.delete(a)
            cached = {g.id: g.character_ids for g in mgr.groups.all()}
            await mgr.groups.load_all()
            stored = {g.id: g.character_ids for g in mgr.groups.all()}
            return b, solo, pair, cached, stored

        return run(scenario())

    def test_retain_empty_groups(self, settings, make_manager):
        mgr = make_manager(settings)
        b, solo, pair, cached, stored = self._scenario(mgr)
        assert cached == {solo: [], pair: [b]}
        assert stored == cached

    def test_delete_empty_groups(self, tmp_path, make_manager):
        settings = Settings(DATA_DIR=str(tmp_path / "worlds"), EMPTY_GROUP_POLICY=EmptyGroupPolicy.DELETE)
        mgr = make_manager(settings)
        b, solo, pair, cached, stored = self._scenario(mgr)
        assert cached == {pair: [b]}
        assert stored == cached


class TestGroupRepository:
    def test_unknown_member_rejected(self, manager):
        """引用不存在的角色时拒绝保存，缓存保持不变"""

        async def scenario():
            await manager.connect("艾尔登")
            a = await manager.characters.save({"name": "甲"})
            group_id = await manager.groups.save({"name": "小队", "characterIds": [a]})
            with pytest.raises(ValidationError) as exc_info:
                await manager.groups.save({"id": group_id, "name": "小队", "characterIds": [a, 404]})
            return a, group_id, exc_info.value, manager.error, manager.groups.all()

        a, group_id, error, status_error, groups = run(scenario())
        assert error.field == "character_ids"
        assert status_error is not None
        assert [(g.id, g.character_ids) for g in groups] == [(group_id, [a])]

    def test_get_group_characters_in_member_order(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            a = await manager.characters.save({"name": "甲"})
            b = await manager.characters.save({"name": "乙"})
            group_id = await manager.groups.save({"name": "小队", "characterIds": [b, a]})
            members = await manager.groups.get_group_characters(group_id)
            missing = await manager.groups.get_group_characters(404)
            return members, missing

        members, missing = run(scenario())
        assert [c.name for c in members] == ["乙", "甲"]
        assert missing == []


class TestWorldbookRepository:
    def test_triggered_from_cache(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            await manager.worldbooks.save({"title": "龙王", "keywords": "dragon, 龙王", "content": "远古之龙"})
            await manager.worldbooks.save({"title": "精灵", "keywords": "elf", "content": "森林居民"})
            return manager.get_triggered_worldbooks("The Dragon King awoke")

        result = run(scenario())
        assert [e.title for e in result] == ["龙王"]

    def test_extra_fields_preserved(self, manager):
        """未声明的字段原样保存"""

        async def scenario():
            await manager.connect("艾尔登")
            entry_id = await manager.worldbooks.save(
                {"title": "古堡", "keywords": "castle", "content": "...", "priority": 3}
            )
            manager.worldbooks.clear()
            return await manager.worldbooks.get_by_id(entry_id)

        entry = run(scenario())
        assert entry.model_extra == {"priority": 3}


class TestConfigRepository:
    def test_merge_keeps_unspecified_fields(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            await manager.config.save({"apiKey": "sk-test", "model": "gpt-4o"})
            merged = await manager.config.save({"model": "deepseek-chat"})
            await manager.config.load()
            return merged, manager.config.get()

        merged, loaded = run(scenario())
        assert merged.api_key == "sk-test"
        assert merged.model == "deepseek-chat"
        assert loaded == merged

    def test_defaults_when_missing(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            return manager.config.get()

        config = run(scenario())
        assert (config.api_key, config.api_url, config.model) == ("", "", "")


class TestStatus:
    def test_not_connected_sets_error(self, manager):
        with pytest.raises(NotConnectedError):
            run(manager.characters.save({"name": "艾琳"}))
        assert manager.error is not None
        assert manager.status.error_operation == "save_character"
        assert not manager.loading

    def test_error_cleared_by_next_operation(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            with pytest.raises(ValidationError):
                await manager.groups.save({"name": "小队", "characterIds": [404]})
            error_after_failure = manager.error
            await manager.groups.save({"name": "小队"})
            return error_after_failure, manager.error

        error_after_failure, error_after_success = run(scenario())
        assert error_after_failure is not None
        assert error_after_success is None


class TestChatRepository:
    def test_history_and_get_message(self, manager):
        async def scenario():
            await manager.connect("艾尔登")
            first = await manager.chat.save_message({"sessionId": "s1", "role": "user", "content": "你好"})
            await manager.chat.save_message(
                {"sessionId": "s1", "role": "assistant", "characterName": "艾琳", "content": "欢迎"}
            )
            await manager.vector_memory.drain()
            return (
                first,
                await manager.chat.get_message(first.id),
                await manager.chat.get_message(9999),
                await manager.chat.get_chat_history("s1"),
            )

        first, found, missing, history = run(scenario())
        assert found == first
        assert missing is None
        assert [(m.role, m.content) for m in history] == [("user", "你好"), ("assistant", "欢迎")]
