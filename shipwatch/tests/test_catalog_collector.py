"""Tests for the relay catalog poller (collectors/catalog_collector.py).

HTTP is served by httpx.MockTransport, so requests never leave the process.
"""
import asyncio

import httpx
import pytest

from backend.models import AreaOfInterest, FilterSelection
from collectors.catalog_collector import TOKEN_HEADER, CatalogCollector

AREA = AreaOfInterest(south=43.0, west=9.5, north=44.0, east=10.5)


def _collector(handler, token="tok", query=""):
    collector = CatalogCollector(
        "http://relay.test/",
        token=token,
        area_source=lambda: AREA,
        filter_source=lambda: FilterSelection(query=query),
    )
    collector._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return collector


def _run(collector):
    async def scenario():
        try:
            return await collector.collect()
        finally:
            await collector.stop()
    return asyncio.run(scenario())


def test_request_carries_bbox_query_and_token():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[{"mmsi": "1"}])

    items = _run(_collector(handler, query=" zim "))
    request = seen[0]
    assert request.url.path == "/api/ships"
    assert request.url.params["bbox"] == "43.0,9.5,44.0,10.5"
    assert request.url.params["q"] == "zim"
    assert request.headers[TOKEN_HEADER] == "tok"
    assert items == [{"mmsi": "1"}]


def test_no_token_header_when_unset():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[])

    _run(_collector(handler, token=""))
    assert TOKEN_HEADER not in seen[0].headers
    assert "q" not in seen[0].url.params


def test_wrapped_response_and_non_dict_items():
    def handler(request):
        return httpx.Response(200, json={"ships": [{"mmsi": "1"}, "junk", {"mmsi": "2"}]})

    assert _run(_collector(handler)) == [{"mmsi": "1"}, {"mmsi": "2"}]


def test_unexpected_payload_is_empty():
    def handler(request):
        return httpx.Response(200, json="maintenance")

    assert _run(_collector(handler)) == []


def test_http_error_is_raised_from_collect():
    def handler(request):
        return httpx.Response(401, json={"error": "unauthorized"})

    with pytest.raises(httpx.HTTPStatusError) as excinfo:
        _run(_collector(handler))
    assert excinfo.value.response.status_code == 401


def test_disabled_without_url():
    collector = CatalogCollector(None, area_source=lambda: AREA)
    assert not collector.enabled
    assert asyncio.run(collector.collect()) == []


def test_no_area_yet():
    collector = CatalogCollector("http://relay.test")
    assert collector.enabled
    assert asyncio.run(collector.collect()) == []
