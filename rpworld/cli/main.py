"""
CLI 命令行接口

提供命令行方式管理世界：列出、查看、导入导出、删除
"""
import asyncio
import json
from pathlib import Path
from typing import Optional
import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from loguru import logger

from rpworld import __version__
from rpworld.config import Settings, get_settings
from rpworld.exceptions import RpWorldError
from rpworld.memory.embedding import HashingEmbeddingBackend
from rpworld.world.manager import WorldConnectionManager

console = Console()


def get_manager(data_dir: Optional[str]) -> WorldConnectionManager:
    """创建管理器（命令行不做向量化，使用离线 embedding 后端）"""
    settings = Settings(DATA_DIR=data_dir) if data_dir else get_settings()
    return WorldConnectionManager(settings, embedder=HashingEmbeddingBackend())


def fail(message: str) -> None:
    console.print(f"[red]错误：{message}[/red]")
    raise click.exceptions.Exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="rpworld")
@click.option("--data-dir", default=None, help="世界数据库目录（默认读取 DATA_DIR 配置）")
@click.pass_context
def cli(ctx: click.Context, data_dir: Optional[str]):
    """
    rpworld - 角色扮演世界数据管理工具
    """
    ctx.obj = {"data_dir": data_dir}


@cli.command("list-worlds")
@click.pass_context
def list_worlds(ctx: click.Context):
    """
    列出所有世界

    示例：rpworld list-worlds
    """
    manager = get_manager(ctx.obj["data_dir"])
    try:
        worlds = asyncio.run(manager.list_worlds())
    except RpWorldError as e:
        logger.exception("列出世界失败")
        fail(str(e))

    if not worlds:
        console.print("[yellow]暂无世界，使用 'rpworld import <文件> <世界名>' 导入[/yellow]")
        return

    table = Table(title="世界列表", show_header=True, header_style="bold cyan")
    table.add_column("名称", min_width=20)
    table.add_column("文件", style="dim")
    for name in worlds:
        table.add_row(name, str(manager.settings.world_file(name)))
    console.print(table)


@cli.command()
@click.argument("world")
@click.pass_context
def show(ctx: click.Context, world: str):
    """
    显示世界概况

    示例：rpworld show 艾尔登
    """
    manager = get_manager(ctx.obj["data_dir"])

    async def collect():
        await manager.connect(world)
        try:
            return {
                "characters": manager.characters.all(),
                "player": manager.characters.player_character(),
                "groups": len(manager.groups),
                "worldbooks": len(manager.worldbooks),
                "sessions": await manager.chat.list_sessions(),
                "config": manager.config.get(),
            }
        finally:
            manager.disconnect()

    try:
        info = asyncio.run(collect())
    except RpWorldError as e:
        logger.exception("读取世界失败")
        fail(str(e))

    player = info["player"].name if info["player"] else "（未设置）"
    console.print(Panel.fit(
        f"[cyan]角色:[/cyan] {len(info['characters'])}\n"
        f"[cyan]主角:[/cyan] {player}\n"
        f"[cyan]群组:[/cyan] {info['groups']}\n"
        f"[cyan]世界书条目:[/cyan] {info['worldbooks']}\n"
        f"[cyan]会话:[/cyan] {len(info['sessions'])}\n"
        f"[cyan]模型:[/cyan] {info['config'].model or '（未配置）'}",
        title=f"世界：{world}",
        border_style="green"
    ))


@cli.command("export")
@click.argument("world")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None, help="输出文件（默认输出到终端）")
@click.pass_context
def export_world(ctx: click.Context, world: str, output: Optional[str]):
    """
    导出世界为 JSON

    示例：rpworld export 艾尔登 -o eldon.json
    """
    manager = get_manager(ctx.obj["data_dir"])
    try:
        document = asyncio.run(manager.export_world(world))
    except RpWorldError as e:
        logger.exception("导出世界失败")
        fail(str(e))

    text = json.dumps(document, ensure_ascii=False, indent=2)
    if output is None:
        click.echo(text)
        return
    Path(output).write_text(text, encoding="utf-8")
    console.print(f"[green]✓[/green] 已导出到 {output}")


@cli.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("world")
@click.pass_context
def import_world(ctx: click.Context, file: str, world: str):
    """
    从 JSON 导入世界（覆盖同名世界的数据）

    示例：rpworld import eldon.json 艾尔登
    """
    try:
        document = json.loads(Path(file).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        fail(f"无法解析JSON: {e}")

    manager = get_manager(ctx.obj["data_dir"])
    try:
        asyncio.run(manager.import_world(document, world))
    except RpWorldError as e:
        logger.exception("导入世界失败")
        fail(str(e))
    console.print(f"[green]✓[/green] 世界 {world} 导入成功")


@cli.command("delete-world")
@click.argument("world")
@click.option("--yes", is_flag=True, help="跳过确认")
@click.pass_context
def delete_world(ctx: click.Context, world: str, yes: bool):
    """
    删除世界

    示例：rpworld delete-world 艾尔登 --yes
    """
    if not yes:
        click.confirm(f"确定删除世界 {world}？", abort=True)

    manager = get_manager(ctx.obj["data_dir"])
    try:
        deleted = asyncio.run(manager.delete_world(world))
    except RpWorldError as e:
        logger.exception("删除世界失败")
        fail(str(e))

    if deleted:
        console.print(f"[green]✓[/green] 世界 {world} 已删除")
    else:
        console.print(f"[yellow]世界 {world} 不存在[/yellow]")


if __name__ == "__main__":
    cli()
