"""
命令行接口测试
"""
import json

import pytest
from click.testing import CliRunner

from rpworld.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path / "worlds")


@pytest.fixture
def world_file(tmp_path):
    document = {
        "characters": [{"id": 1, "name": "艾琳", "isPlayer": True}, {"id": 2, "name": "巴顿"}],
        "groups": [{"id": 1, "name": "冒险小队", "characterIds": [1, 2]}],
        "worldbooks": [{"id": 1, "title": "龙王", "keywords": "dragon", "content": "远古之龙"}],
        "chatMessages": [{"sessionId": "s1", "role": "user", "content": "你好"}],
        "config": {"model": "gpt-4o"},
    }
    path = tmp_path / "eldon.json"
    path.write_text(json.dumps(document, ensure_ascii=False), encoding="utf-8")
    return path


def test_import_list_export_delete(runner, data_dir, world_file, tmp_path):
    result = runner.invoke(cli, ["--data-dir", data_dir, "import", str(world_file), "艾尔登"])
    assert result.exit_code == 0, result.output
    assert "导入成功" in result.output

    result = runner.invoke(cli, ["--data-dir", data_dir, "list-worlds"])
    assert result.exit_code == 0
    assert "艾尔登" in result.output

    result = runner.invoke(cli, ["--data-dir", data_dir, "show", "艾尔登"])
    assert result.exit_code == 0
    assert "艾琳" in result.output

    output = tmp_path / "out.json"
    result = runner.invoke(cli, ["--data-dir", data_dir, "export", "艾尔登", "-o", str(output)])
    assert result.exit_code == 0
    exported = json.loads(output.read_text(encoding="utf-8"))
    assert [c["name"] for c in exported["characters"]] == ["艾琳", "巴顿"]
    assert exported["config"]["model"] == "gpt-4o"

    result = runner.invoke(cli, ["--data-dir", data_dir, "delete-world", "艾尔登", "--yes"])
    assert result.exit_code == 0
    assert "已删除" in result.output

    result = runner.invoke(cli, ["--data-dir", data_dir, "list-worlds"])
    assert "暂无世界" in result.output


def test_import_invalid_json(runner, data_dir, tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    result = runner.invoke(cli, ["--data-dir", data_dir, "import", str(path), "艾尔登"])
    assert result.exit_code == 1


def test_import_invalid_document(runner, data_dir, tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"characters": "nope"}), encoding="utf-8")
    result = runner.invoke(cli, ["--data-dir", data_dir, "import", str(path), "艾尔登"])
    assert result.exit_code == 1
    assert "错误" in result.output


def test_export_missing_world(runner, data_dir):
    result = runner.invoke(cli, ["--data-dir", data_dir, "export", "不存在"])
    assert result.exit_code == 1


def test_delete_requires_confirmation(runner, data_dir, world_file):
    runner.invoke(cli, ["--data-dir", data_dir, "import", str(world_file), "艾尔登"])
    result = runner.invoke(cli, ["--data-dir", data_dir, "delete-world", "艾尔登"], input="n\n")
    assert result.exit_code == 1

    result = runner.invoke(cli, ["--data-dir", data_dir, "list-worlds"])
    assert "艾尔登" in result.output
