import pytest

from zipkintrace.baggage import Baggage


@pytest.fixture
def filled():
    handler = Baggage("X-Request-Id", "Some-Header")
    baggage = handler.new()
    baggage.add("X-Request-Id", "X-Request-Id-Value")
    baggage.add("Some-Header", "Some-Header-Value1", "Some-Header-Value2")
    baggage.add("Some-Header", "Some-Header-Value3")
    return handler, baggage


def test_registry_is_lowercased_and_deduplicated():
    handler = Baggage("X-Request-Id", "some-header", "x-request-id")
    assert sorted(handler.keys()) == ["some-header", "x-request-id"]


def test_add_results():
    baggage = Baggage("X-Request-Id", "Some-Header").new()
    assert baggage.add("Invalid-Key", "Invalid-Key-Value") is False
    assert baggage.add("X-Request-Id", "X-Request-Id-Value") is True
    assert baggage.add("Some-Header", "Some-Header-Value1", "Some-Header-Value2") is True
    assert baggage.add("Some-Header", "Some-Header-Value3") is True
    assert baggage.add("Some-Header") is False


def test_new_container_is_empty(filled):
    handler, _ = filled
    assert list(handler.new().iterate()) == []


def test_iterate_values(filled):
    _, baggage = filled
    assert dict(baggage.iterate()) == {
        "x-request-id": ["X-Request-Id-Value"],
        "some-header": ["Some-Header-Value1", "Some-Header-Value2", "Some-Header-Value3"],
    }


def test_iterate_returns_copies(filled):
    _, baggage = filled
    for _, values in baggage.iterate():
        values.clear()
    assert baggage.get("x-request-id") == ["X-Request-Id-Value"]


def test_delete(filled):
    _, baggage = filled
    assert baggage.delete("Invalid-Key") is False
    assert baggage.delete("some-header") is True
    assert dict(baggage.iterate()) == {"x-request-id": ["X-Request-Id-Value"]}


def test_set_replaces_values(filled):
    _, baggage = filled
    assert baggage.set("SOME-HEADER", "only") is True
    assert baggage.get("some-header") == ["only"]
    assert baggage.set("some-header") is False
    assert baggage.set("unknown", "value") is False
    assert baggage.get("unknown") is None


def test_get_is_case_insensitive(filled):
    _, baggage = filled
    assert baggage.get("X-REQUEST-ID") == ["X-Request-Id-Value"]