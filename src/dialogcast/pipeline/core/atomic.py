"""
原子写入工具：避免中途中断留下半文件
"""
import json
from pathlib import Path
from typing import Any, Optional


def atomic_write(
    content: bytes | str,
    target_path: Path,
    *,
    encoding: Optional[str] = "utf-8",
) -> None:
    """
    原子写入文件（先写临时文件，再 rename）。

    Args:
        content: 文件内容（bytes 或 str）
        target_path: 目标路径
        encoding: 文本编码（仅当 content 是 str 时使用）
    """
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)

    # 临时文件放在同一目录，保证 rename 是原子操作
    temp_path = target_path.parent / f".{target_path.name}.tmp"

    try:
        if isinstance(content, str):
            temp_path.write_text(content, encoding=encoding)
        else:
            temp_path.write_bytes(content)
        temp_path.replace(target_path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def dumps_json(data: Any) -> str:
    """稳定的 JSON 序列化（key 排序、固定缩进），重复生成字节一致。"""
    return json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True) + "\n"
