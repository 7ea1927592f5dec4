from __future__ import annotations

import pytest


@pytest.mark.asyncio
async def test_list_backends_in_ladder_order(async_client):
    res = await async_client.get("/api/v1/backends")

    assert res.status_code == 200
    backends = res.json()
    assert [b["id"] for b in backends] == [
        "black-forest-labs/flux-1.1-pro",
        "adirik/flux-cinestill",
        "minimax/image-01",
    ]
    cinestill = backends[1]
    assert cinestill["leading_trigger"] == "IKIGAI"
    assert cinestill["output_shape"] == "url_list"
    assert "guidance_scale" in cinestill["supported_params"]
    assert backends[2]["max_dim"] == 1024
