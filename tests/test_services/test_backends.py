from __future__ import annotations

import json

import pytest

from artbot.exceptions import BackendFailureError
from artbot.services.backends import (
    FLUX_CINESTILL,
    FLUX_PRO,
    BackendCatalog,
    BackendDescriptor,
    OutputShape,
    decode_output,
    load_backend_catalog,
)


def test_default_catalog_follows_configured_order(test_settings):
    catalog = load_backend_catalog(test_settings)

    assert catalog.primary.id == "black-forest-labs/flux-1.1-pro"
    assert [b.id for b in catalog.alternates] == ["adirik/flux-cinestill", "minimax/image-01"]


def test_catalog_rejects_unknown_backend(test_settings):
    settings = test_settings.model_copy(update={"image_fallback_backends": ["nobody/nothing"]})
    with pytest.raises(ValueError, match="nobody/nothing"):
        load_backend_catalog(settings)


def test_catalog_rejects_empty_ladder():
    with pytest.raises(ValueError):
        BackendCatalog({FLUX_PRO.id: FLUX_PRO}, [])


def test_backends_file_adds_descriptor(tmp_path, test_settings):
    path = tmp_path / "backends.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "stability-ai/sdxl:39ed52f2",
                    "name": "SDXL",
                    "min_dim": 512,
                    "max_dim": 1536,
                    "param_names": {"prompt": "prompt", "steps": "num_inference_steps"},
                    "output_shape": "url_list",
                }
            ]
        ),
        encoding="utf-8",
    )
    settings = test_settings.model_copy(
        update={
            "image_backends_file": str(path),
            "image_primary_backend": "stability-ai/sdxl:39ed52f2",
            "image_fallback_backends": [FLUX_PRO.id],
        }
    )

    catalog = load_backend_catalog(settings)

    assert catalog.primary.name == "SDXL"
    assert catalog.primary.param_names["steps"] == "num_inference_steps"
    assert [b.id for b in catalog.ladder()] == ["stability-ai/sdxl:39ed52f2", FLUX_PRO.id]


def test_descriptor_validates_fields():
    with pytest.raises(ValueError):
        BackendDescriptor(id="x", name="x", min_dim=512, max_dim=256, param_names={})
    with pytest.raises(ValueError):
        BackendDescriptor(id="x", name="x", min_dim=256, max_dim=512, param_names={"seed": "seed"})


def test_decode_output_per_shape():
    assert decode_output(FLUX_PRO, "https://x/1.png") == ["https://x/1.png"]
    assert decode_output(FLUX_CINESTILL, ["https://x/1.png", "https://x/2.png"]) == [
        "https://x/1.png",
        "https://x/2.png",
    ]
    assert FLUX_CINESTILL.output_shape is OutputShape.URL_LIST

    with pytest.raises(BackendFailureError):
        decode_output(FLUX_CINESTILL, "https://x/1.png")
    with pytest.raises(BackendFailureError):
        decode_output(FLUX_PRO, None)
    with pytest.raises(BackendFailureError):
        decode_output(FLUX_CINESTILL, [])
