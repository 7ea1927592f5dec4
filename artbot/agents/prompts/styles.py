"""风格注册表与系列关键词表"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StyleDefinition:
    name: str
    description: str
    prefix: str
    suffix: str
    emphasis: tuple[str, ...]
    negative_terms: tuple[str, ...]

    @property
    def negative_prompt(self) -> str:
        return ", ".join(self.negative_terms)

    def wrap(self, prompt: str) -> str:
        """套上风格前后缀（已包含的不重复添加）"""
        text = prompt.strip()
        if self.prefix and not text.lower().startswith(self.prefix.lower()):
            text = f"{self.prefix} {text}"
        if self.suffix and self.suffix.lower() not in text.lower():
            text = f"{text}, {self.suffix}"
        return text


_MAGRITTE_NEGATIVE = (
    "abstract",
    "3d render",
    "cartoon",
    "anime",
    "sketch",
    "blurry",
    "text",
    "watermark",
    "signature",
    "deformed",
)

STYLES: dict[str, StyleDefinition] = {
    "magritte": StyleDefinition(
        name="magritte",
        description="René Magritte surrealism: flat oil painting, impossible juxtapositions, calm skies",
        prefix="In the style of René Magritte,",
        suffix="surrealist oil painting, smooth matte finish, crisp edges, soft even lighting",
        emphasis=(
            "bowler hat",
            "floating objects",
            "cloud-filled blue sky",
            "visual paradox",
            "everyday objects in impossible contexts",
        ),
        negative_terms=_MAGRITTE_NEGATIVE,
    ),
    "bear_pfp": StyleDefinition(
        name="bear_pfp",
        description="Distinguished bear portrait in Magritte style, centered for a profile picture",
        prefix="Portrait of a distinguished bear in the style of René Magritte,",
        suffix="centered composition, head and shoulders, plain background, surrealist oil painting",
        emphasis=(
            "bowler hat",
            "dignified expression",
            "vintage attire",
            "symbolic accessory",
            "subtle surreal element",
        ),
        negative_terms=(*_MAGRITTE_NEGATIVE, "multiple animals", "full body", "cropped head"),
    ),
}

# 概念里出现这些关键词时附加对应系列
SERIES_KEYWORDS: dict[str, tuple[str, ...]] = {
    "hipster": ("hipster", "artisanal", "sustainable", "craft", "brewing", "urban", "vintage", "foraging"),
    "adventure": ("adventure", "explorer", "wilderness", "expedition", "navigation", "diving", "climbing"),
    "artistic": ("artistic", "artist", "creative", "painting", "sculpture", "composition", "design"),
    "academic": ("academic", "scholarly", "professor", "scientific", "research", "intellectual", "knowledge"),
    "steampunk": ("steampunk", "mechanical", "brass", "victorian", "gear", "clockwork", "contraption", "invention"),
}


def get_style(name: str) -> StyleDefinition:
    try:
        return STYLES[name.strip().lower()]
    except KeyError:
        raise KeyError(f"Unknown style: {name!r} (available: {', '.join(sorted(STYLES))})") from None


def detect_series(concept: str) -> str | None:
    """按关键词命中数选出最匹配的系列，没有命中返回 None"""
    lowered = concept.lower()
    best: str | None = None
    best_hits = 0
    for series, keywords in SERIES_KEYWORDS.items():
        hits = sum(1 for kw in keywords if kw in lowered)
        if hits > best_hits:
            best, best_hits = series, hits
    return best
