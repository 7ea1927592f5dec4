"""图像后端描述与输出解码。

后端描述在启动时加载一次，之后只读；归一化器与降级链都通过参数显式拿到它，
不存在全局查表。每个后端声明自己的输出形状，解码时不做形状猜测。
"""
from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from artbot.config import Settings
from artbot.exceptions import BackendFailureError

logger = logging.getLogger(__name__)

# 归一化器识别的通用字段
GENERIC_FIELDS = (
    "prompt",
    "negative_prompt",
    "width",
    "height",
    "steps",
    "guidance_scale",
    "output_format",
)


class OutputShape(str, Enum):
    URL = "url"  # 单个 URL 字符串
    URL_LIST = "url_list"  # URL 字符串数组


@dataclass(frozen=True, slots=True)
class BackendDescriptor:
    id: str
    name: str
    min_dim: int
    max_dim: int
    param_names: Mapping[str, str]
    output_shape: OutputShape = OutputShape.URL_LIST
    default_width: int = 1024
    default_height: int = 1024
    leading_trigger: str | None = None
    trigger_keywords: tuple[str, ...] = ()
    default_steps: int | None = None
    default_guidance: float | None = None
    default_negative_prompt: str | None = None
    output_format: str | None = "png"
    extra_fields: frozenset[str] = frozenset()
    # Refiner 使用的提示词优化线索
    prompt_keywords: tuple[str, ...] = ()
    avoid_words: tuple[str, ...] = ()
    max_prompt_length: int = 2000

    def __post_init__(self) -> None:
        if self.min_dim <= 0 or self.max_dim < self.min_dim:
            raise ValueError(f"Invalid dimension bounds for {self.id}: [{self.min_dim}, {self.max_dim}]")
        unknown = set(self.param_names) - set(GENERIC_FIELDS)
        if unknown:
            raise ValueError(f"Unknown generic fields for {self.id}: {sorted(unknown)}")
        object.__setattr__(self, "param_names", MappingProxyType(dict(self.param_names)))

    def supports(self, generic_field: str) -> bool:
        return generic_field in self.param_names

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BackendDescriptor":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            min_dim=int(data["min_dim"]),
            max_dim=int(data["max_dim"]),
            param_names=dict(data.get("param_names") or {}),
            output_shape=OutputShape(data.get("output_shape", OutputShape.URL_LIST.value)),
            default_width=int(data.get("default_width", 1024)),
            default_height=int(data.get("default_height", 1024)),
            leading_trigger=data.get("leading_trigger"),
            trigger_keywords=tuple(data.get("trigger_keywords") or ()),
            default_steps=data.get("default_steps"),
            default_guidance=data.get("default_guidance"),
            default_negative_prompt=data.get("default_negative_prompt"),
            output_format=data.get("output_format", "png"),
            extra_fields=frozenset(data.get("extra_fields") or ()),
            prompt_keywords=tuple(data.get("prompt_keywords") or ()),
            avoid_words=tuple(data.get("avoid_words") or ()),
            max_prompt_length=int(data.get("max_prompt_length", 2000)),
        )


FLUX_PRO = BackendDescriptor(
    id="black-forest-labs/flux-1.1-pro",
    name="FLUX 1.1 Pro",
    min_dim=256,
    max_dim=1440,
    param_names={
        "prompt": "prompt",
        "negative_prompt": "negative_prompt",
        "width": "width",
        "height": "height",
        "steps": "steps",
        "guidance_scale": "guidance",
        "output_format": "output_format",
    },
    output_shape=OutputShape.URL,
    default_steps=45,
    default_guidance=4.5,
    default_negative_prompt="low quality, bad anatomy, blurry, pixelated, watermark",
    extra_fields=frozenset({"seed", "safety_tolerance", "prompt_upsampling"}),
    prompt_keywords=("photorealistic", "hyper-detailed", "cinematic lighting", "35mm film"),
    avoid_words=("anime", "cartoon", "stylized", "sketch"),
    max_prompt_length=1800,
)

FLUX_CINESTILL = BackendDescriptor(
    id="adirik/flux-cinestill",
    name="FLUX Cinestill",
    min_dim=256,
    max_dim=1440,
    param_names={
        "prompt": "prompt",
        "width": "width",
        "height": "height",
        "steps": "num_inference_steps",
        "guidance_scale": "guidance_scale",
        "output_format": "output_format",
    },
    output_shape=OutputShape.URL_LIST,
    leading_trigger="IKIGAI",
    trigger_keywords=("cinestill 800t", "film grain", "night time", "analog"),
    default_steps=35,
    default_guidance=5.5,
    extra_fields=frozenset({"seed", "lora_scale"}),
    prompt_keywords=("cinestill", "film grain", "shallow depth of field", "cinematic"),
    avoid_words=("digital", "sharp", "clean", "anime"),
    max_prompt_length=1500,
)

MINIMAX_IMAGE = BackendDescriptor(
    id="minimax/image-01",
    name="MiniMax image-01",
    min_dim=512,
    max_dim=1024,
    param_names={
        "prompt": "prompt",
        "negative_prompt": "negative_prompt",
        "width": "width",
        "height": "height",
        "output_format": "output_format",
    },
    output_shape=OutputShape.URL_LIST,
    default_negative_prompt="",
    prompt_keywords=("best quality", "detailed", "sharp"),
    avoid_words=("lowres", "blurry", "distorted"),
    max_prompt_length=1500,
)

BUILTIN_BACKENDS: tuple[BackendDescriptor, ...] = (FLUX_PRO, FLUX_CINESTILL, MINIMAX_IMAGE)


class BackendCatalog(Mapping[str, BackendDescriptor]):
    """只读后端目录，附带配置定义的降级顺序"""

    def __init__(self, backends: Mapping[str, BackendDescriptor], ladder: list[str]):
        missing = [backend_id for backend_id in ladder if backend_id not in backends]
        if missing:
            raise ValueError(f"Unknown image backends in ladder: {missing}")
        if not ladder:
            raise ValueError("Image backend ladder is empty")
        self._backends = MappingProxyType(dict(backends))
        self._ladder = tuple(ladder)

    def __getitem__(self, backend_id: str) -> BackendDescriptor:
        return self._backends[backend_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._backends)

    def __len__(self) -> int:
        return len(self._backends)

    @property
    def primary(self) -> BackendDescriptor:
        return self._backends[self._ladder[0]]

    @property
    def alternates(self) -> tuple[BackendDescriptor, ...]:
        return tuple(self._backends[backend_id] for backend_id in self._ladder[1:])

    def ladder(self) -> tuple[BackendDescriptor, ...]:
        return tuple(self._backends[backend_id] for backend_id in self._ladder)


def load_backend_catalog(settings: Settings) -> BackendCatalog:
    backends: dict[str, BackendDescriptor] = {b.id: b for b in BUILTIN_BACKENDS}

    if settings.image_backends_file:
        path = Path(settings.image_backends_file)
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"{path} must contain a JSON array of backend descriptors")
        for item in raw:
            descriptor = BackendDescriptor.from_dict(item)
            if descriptor.id in backends:
                logger.info("Overriding built-in image backend %s from %s", descriptor.id, path)
            backends[descriptor.id] = descriptor

    catalog = BackendCatalog(backends, settings.ladder_order())
    logger.info("Image backend ladder: %s", " -> ".join(b.id for b in catalog.ladder()))
    return catalog


def decode_output(backend: BackendDescriptor, output: Any, *, prediction_id: str | None = None) -> list[str]:
    """按后端声明的输出形状解析出图片 URL 列表"""
    if backend.output_shape is OutputShape.URL:
        if isinstance(output, str) and output.startswith(("http://", "https://")):
            return [output]
    elif backend.output_shape is OutputShape.URL_LIST:
        if (
            isinstance(output, list)
            and output
            and all(isinstance(item, str) and item.startswith(("http://", "https://")) for item in output)
        ):
            return list(output)

    raise BackendFailureError(
        f"{backend.id} returned output that does not match shape {backend.output_shape.value}",
        prediction_id=prediction_id,
        reason="undecodable output",
        details={"output": repr(output)[:200]},
    )
