"""Tests for path placeholder resolution."""

from conftest import make_case

from spectra.fixtures import FixtureResolver


def test_payload_value_fills_placeholder_and_is_consumed():
    case = make_case(endpoint="/users/{id}", method="PUT", request={"id": 7, "name": "Ada"})

    resolved = FixtureResolver().resolve(case)

    assert resolved.path == "/users/7"
    assert resolved.payload == {"name": "Ada"}
    assert resolved.consumed == ["id"]
    assert resolved.fallbacks == {}
    # the case itself is untouched
    assert case.request == {"id": 7, "name": "Ada"}


def test_case_fixtures_then_injected_fixtures():
    case = make_case(endpoint="/users/{userId}/orders/{orderId}", fixtures={"userId": "42"})

    resolved = FixtureResolver(fixtures={"orderId": "9", "userId": "ignored"}).resolve(case)

    assert resolved.path == "/users/42/orders/9"
    assert resolved.fallbacks == {}


def test_default_guess_is_flagged():
    case = make_case(endpoint="/products/{productId}/reviews/{slug}")

    resolved = FixtureResolver().resolve(case)

    assert resolved.path == "/products/2/reviews/1"
    assert resolved.fallbacks == {"productId": "2", "slug": "1"}


def test_generator_placeholder_value_is_not_trusted():
    case = make_case(endpoint="/users/{id}", request={"id": "valid_string_value"})

    resolved = FixtureResolver().resolve(case)

    assert resolved.path == "/users/2"
    assert resolved.consumed == ["id"]
    assert resolved.fallbacks == {"id": "2"}


def test_defaults_disabled_leaves_placeholder_unresolved():
    case = make_case(endpoint="/users/{id}")

    resolved = FixtureResolver(allow_defaults=False).resolve(case)

    assert resolved.path == "/users/{id}"
    assert resolved.unresolved == ["id"]
    assert resolved.fallbacks == {}


def test_repeated_unresolved_placeholder_listed_once():
    case = make_case(endpoint="/a/{id}/b/{id}")

    resolved = FixtureResolver(allow_defaults=False).resolve(case)

    assert resolved.path == "/a/{id}/b/{id}"
    assert resolved.unresolved == ["id"]


def test_repeated_placeholder_resolves_once():
    case = make_case(endpoint="/a/{id}/b/{id}", request={"id": 3})

    resolved = FixtureResolver().resolve(case)

    assert resolved.path == "/a/3/b/3"
    assert resolved.fallbacks == {}


def test_describe_fallbacks():
    assert FixtureResolver().describe_fallbacks({"id": "2"}) == ("{id}=2",)
