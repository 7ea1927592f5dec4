"""把通用生成请求翻译成具体后端的参数。

纯函数：不做网络调用，不读全局状态，相同输入永远得到相同输出。
"""
from __future__ import annotations

from typing import Any

from artbot.schemas.generation import GenerationRequest
from artbot.services.backends import BackendDescriptor


def clamp_dimension(value: int, backend: BackendDescriptor) -> int:
    return max(backend.min_dim, min(backend.max_dim, value))


def inject_trigger_keywords(prompt: str, backend: BackendDescriptor) -> str:
    """补齐后端要求的触发词（大小写不敏感的子串判断，已存在则不重复添加）"""
    prompt = prompt.strip()

    trigger = backend.leading_trigger
    if trigger and trigger.lower() not in prompt.lower():
        prompt = f"{trigger} {prompt}"

    missing = [kw for kw in backend.trigger_keywords if kw.lower() not in prompt.lower()]
    if missing:
        prompt = f"{prompt}, {', '.join(missing)}"
    return prompt


def normalize(request: GenerationRequest, backend: BackendDescriptor) -> dict[str, Any]:
    generic: dict[str, Any] = {
        "prompt": inject_trigger_keywords(request.prompt, backend),
        "negative_prompt": request.negative_prompt
        if request.negative_prompt is not None
        else backend.default_negative_prompt,
        "width": clamp_dimension(request.width, backend),
        "height": clamp_dimension(request.height, backend),
        "steps": request.steps if request.steps is not None else backend.default_steps,
        "guidance_scale": request.guidance_scale
        if request.guidance_scale is not None
        else backend.default_guidance,
        "output_format": backend.output_format,
    }

    params: dict[str, Any] = {}
    for field, value in generic.items():
        target = backend.param_names.get(field)
        # 后端不支持的字段直接丢弃
        if target is None or value is None:
            continue
        params[target] = value

    for key in sorted(request.extra_params):
        if key in backend.extra_fields:
            params[key] = request.extra_params[key]

    return params
