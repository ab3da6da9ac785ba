"""Tests for RxNorm name resolution."""

import asyncio

import httpx

from ddi_miner.resolve import NullResolver, RxNormResolver


def rxnav(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request.url.path)
        path = request.url.path
        if path.endswith("/rxcui.json"):
            if request.url.params["name"] == "warfarin":
                return httpx.Response(200, json={"idGroup": {"rxnormId": ["11289"]}})
            return httpx.Response(200, json={"idGroup": {}})
        if path.endswith("/approximateTerm.json"):
            if request.url.params["term"] == "warfarine":
                return httpx.Response(200, json={"approximateGroup": {"candidate": [{"rxcui": "11289"}]}})
            return httpx.Response(200, json={"approximateGroup": {}})
        if path.endswith("/rxcui/11289/related.json"):
            return httpx.Response(
                200,
                json={
                    "relatedGroup": {
                        "conceptGroup": [
                            {"tty": "BN", "conceptProperties": [{"name": "Coumadin"}, {"name": "Jantoven"}]}
                        ]
                    }
                },
            )
        return httpx.Response(404)

    return handler


def test_exact_match_is_cached():
    requests = []
    resolver = RxNormResolver(client=httpx.AsyncClient(transport=httpx.MockTransport(rxnav(requests))))

    async def run():
        return [await resolver.resolve("Warfarin"), await resolver.resolve(" warfarin ")]

    assert asyncio.run(run()) == ["11289", "11289"]
    assert requests == ["/REST/rxcui.json"]
    assert resolver.cache_stats().hits == 1


def test_approximate_fallback():
    requests = []
    resolver = RxNormResolver(client=httpx.AsyncClient(transport=httpx.MockTransport(rxnav(requests))))
    assert asyncio.run(resolver.resolve("warfarine")) == "11289"
    assert requests == ["/REST/rxcui.json", "/REST/approximateTerm.json"]


def test_unknown_name_is_a_cached_miss():
    requests = []
    resolver = RxNormResolver(client=httpx.AsyncClient(transport=httpx.MockTransport(rxnav(requests))))

    async def run():
        return [await resolver.resolve("notadrug"), await resolver.resolve("notadrug")]

    assert asyncio.run(run()) == [None, None]
    assert len(requests) == 2


def test_failures_resolve_to_none():
    resolver = RxNormResolver(
        client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    )
    assert asyncio.run(resolver.resolve("warfarin")) is None
    assert asyncio.run(resolver.resolve("")) is None


def test_brand_names():
    requests = []
    resolver = RxNormResolver(client=httpx.AsyncClient(transport=httpx.MockTransport(rxnav(requests))))
    assert asyncio.run(resolver.brand_names("warfarin")) == ["Coumadin", "Jantoven"]
    assert asyncio.run(resolver.brand_names("notadrug")) == []

    resolver.clear_cache()
    assert resolver.cache_stats().size == 0


def test_null_resolver():
    resolver = NullResolver()
    assert asyncio.run(resolver.resolve("warfarin")) is None
    assert asyncio.run(resolver.brand_names("warfarin")) == []
