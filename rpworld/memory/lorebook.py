"""
世界书关键词匹配

参考 SillyTavern WorldInfo 机制：当对话文本中出现条目的触发关键词时，
将该条目注入到 LLM 上下文。匹配是大小写不敏感的子串匹配，而非精确分词匹配。

只读取已加载的缓存，不访问存储。
"""
import re
from dataclasses import dataclass, field
from typing import Iterable, List

from rpworld.memory.schemas import WorldbookData

# 英文逗号或中文逗号
_KEYWORD_SEPARATOR = re.compile(r"[,，]")


@dataclass
class LorebookHit:
    """世界书命中条目"""
    entry: WorldbookData
    matched_keywords: List[str] = field(default_factory=list)


def split_keywords(keywords: str) -> List[str]:
    """
    拆分关键词字符串，去除空白并转为小写

    空关键词保留：空串是任何文本的子串，因此关键词为空（或含空项，如 "phoenix,"）的条目总会命中。
    """
    return [token.strip().lower() for token in _KEYWORD_SEPARATOR.split(keywords or "")]


def scan(entries: Iterable[WorldbookData], text: str) -> List[LorebookHit]:
    """
    扫描文本，返回命中的条目及命中的关键词

    结果顺序与 entries 的迭代顺序一致。
    """
    normalized_text = (text or "").lower()
    hits: List[LorebookHit] = []
    for entry in entries:
        matched = [kw for kw in split_keywords(entry.keywords) if kw in normalized_text]
        if matched:
            hits.append(LorebookHit(entry=entry, matched_keywords=matched))
    return hits


def match_triggered(entries: Iterable[WorldbookData], text: str) -> List[WorldbookData]:
    """返回被 text 触发的世界书条目"""
    return [hit.entry for hit in scan(entries, text)]
