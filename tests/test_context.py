import httpx

from context import ContextResult, Retriever, format_result
from tests.helpers import VECTOR_URL, FakeService, make_settings


def _retriever(respond):
    service = FakeService(respond)
    return Retriever(make_settings(VECTOR_API_URL=VECTOR_URL), client=service.client()), service


def test_format_result_with_defaults():
    assert format_result({}) == "• Unknown: Used for N/A. Side effects: None listed"
    item = {"Medicine Name": "Ibuprofen", "Uses": "pain", "Side_effects": "nausea"}
    assert format_result(item) == "• Ibuprofen: Used for pain. Side effects: nausea"


def test_fetch_formats_each_result():
    results = [
        {"Medicine Name": "Paracetamol", "Uses": "fever", "Side_effects": "rash"},
        {"Medicine Name": "Cetirizine", "Uses": "allergy"},
    ]
    retriever, service = _retriever(lambda request, n: httpx.Response(200, json={"results": results}))

    found = retriever.fetch("fever and allergy")

    assert service.requests == [{"query": "fever and allergy"}]
    assert found.available
    assert found.results == results
    assert found.text.splitlines() == [
        "• Paracetamol: Used for fever. Side effects: rash",
        "• Cetirizine: Used for allergy. Side effects: None listed",
    ]


def test_fetch_unavailable_on_server_error():
    retriever, _ = _retriever(lambda request, n: httpx.Response(500, text="boom"))
    assert retriever.fetch("q") == ContextResult.unavailable()


def test_fetch_unavailable_on_network_error():
    def respond(request, n):
        raise httpx.ConnectTimeout("timed out", request=request)

    retriever, _ = _retriever(respond)
    assert retriever.fetch("q") == ContextResult.unavailable()


def test_fetch_unavailable_on_malformed_json():
    retriever, _ = _retriever(lambda request, n: httpx.Response(200, text="not json"))
    assert retriever.fetch("q") == ContextResult.unavailable()


def test_fetch_unavailable_on_unexpected_shape_or_empty_results():
    for body in ({"results": []}, {"results": "nope"}, ["a"], {"other": 1}):
        retriever, _ = _retriever(lambda request, n, body=body: httpx.Response(200, json=body))
        assert not retriever.fetch("q").available


def test_fetch_skips_call_without_url():
    service = FakeService()
    retriever = Retriever(make_settings(VECTOR_API_URL=""), client=service.client())
    assert retriever.fetch("q") == ContextResult.unavailable()
    assert service.requests == []


def test_fetch_unavailable_on_malformed_url():
    service = FakeService()
    retriever = Retriever(make_settings(VECTOR_API_URL="http://[::1"), client=service.client())
    assert retriever.fetch("q") == ContextResult.unavailable()
    assert service.requests == []
