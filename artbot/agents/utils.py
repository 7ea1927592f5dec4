"""Agent 工具函数。"""
from __future__ import annotations

import json
import re
from datetime import datetime, UTC
from typing import Any

_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?|\n?```\s*$")


def utcnow() -> datetime:
    """返回当前 UTC 时间（无时区信息）。"""
    return datetime.now(UTC).replace(tzinfo=None)


def truncate(text: str | None, limit: int = 100) -> str:
    """日志里只打印前 limit 个字符"""
    if not text:
        return ""
    return text if len(text) <= limit else f"{text[:limit]}..."


def clean_completion(text: str) -> str:
    """去掉 LLM 回复外层的代码块标记和引号"""
    text = _FENCE.sub("", text.strip()).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {'"', "'"}:
        text = text[1:-1].strip()
    return text


def extract_json(text: str) -> dict[str, Any]:
    """从 LLM 响应中提取 JSON 对象，容忍代码块、前后说明文字和被截断的结尾。"""
    text = _FENCE.sub("", text.strip()).strip()

    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    start = text.find("{")
    if start == -1:
        raise ValueError("LLM 响应中未找到 JSON 对象")

    end = text.rfind("}")
    candidate = text[start : end + 1] if end > start else text[start:]

    for repaired in (
        candidate,
        _fix_common_json_errors(candidate),
        _close_open_structures(candidate),
        _close_open_structures(_fix_common_json_errors(candidate)),
    ):
        try:
            data = json.loads(repaired)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    raise ValueError(f"无法解析 LLM 响应的 JSON: {candidate[:200]}...")


def _fix_common_json_errors(text: str) -> str:
    """去掉注释和尾随逗号"""
    text = re.sub(r"//[^\n]*", "", text)
    text = re.sub(r"/\*.*?\*/", "", text, flags=re.DOTALL)
    return re.sub(r",\s*([\]}])", r"\1", text)


def _close_open_structures(text: str) -> str:
    """补齐被截断的字符串与括号。"""
    stack: list[str] = []
    in_string = False
    escaped = False

    for char in text:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]" and stack:
            stack.pop()

    if in_string:
        text += '"'
    return text + "".join(reversed(stack))


def as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
