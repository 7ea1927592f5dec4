"""生成结果落盘

每次生成写三个同级文件：
- <name>-prompt.txt    最终提示词
- <name>-image.txt     图片 URL（不下载图片本身）
- <name>-metadata.json 结构化元数据
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from artbot.agents.utils import utcnow

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    """把任意字符串转换为安全的文件名前缀"""
    cleaned = _UNSAFE_CHARS.sub("-", name.strip()).strip("-.")
    return cleaned[:80] or "artwork"


@dataclass(slots=True)
class ArtifactPaths:
    prompt: Path
    image: Path
    metadata: Path

    def as_dict(self) -> dict[str, str]:
        return {"prompt": str(self.prompt), "image": str(self.image), "metadata": str(self.metadata)}


class ArtifactWriter:
    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)

    def paths_for(self, name: str) -> ArtifactPaths:
        base = safe_filename(name)
        return ArtifactPaths(
            prompt=self.output_dir / f"{base}-prompt.txt",
            image=self.output_dir / f"{base}-image.txt",
            metadata=self.output_dir / f"{base}-metadata.json",
        )

    def write(
        self,
        name: str,
        *,
        prompt: str,
        image_url: str,
        metadata: dict[str, Any],
    ) -> ArtifactPaths:
        """写入三个输出文件

        Args:
            name: 文件名前缀
            prompt: 最终提示词
            image_url: 图片 URL
            metadata: 结构化元数据（会补充 prompt / imageUrl / createdAt）

        Returns:
            三个文件的路径
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        paths = self.paths_for(name)

        document = {
            **metadata,
            "prompt": prompt,
            "imageUrl": image_url,
        }
        document.setdefault("createdAt", utcnow().isoformat() + "Z")

        paths.prompt.write_text(prompt, encoding="utf-8")
        paths.image.write_text(image_url, encoding="utf-8")
        paths.metadata.write_text(json.dumps(document, ensure_ascii=False, indent=2, default=str), encoding="utf-8")

        logger.info("Saved artwork files to %s (%s-*)", self.output_dir, paths.prompt.name.removesuffix("-prompt.txt"))
        return paths
