"""Test suite for concurrent multi-secret retrieval (KeyVaultClient.get_secrets).

This test suite validates:
- Fan-out of one request per identifier, with an optional concurrency cap
- Settle-all aggregation into one generic failure with per-identifier detail
- Request-order results regardless of completion order
- Reshaping into a {name: value} mapping, including name collisions
"""
import asyncio
import logging

import httpx
import pytest
import pytest_asyncio

from agent_keyvault.vault.domains.errors import KeyVaultError, SecretsFetchError
from agent_keyvault.vault.domains.keyvault_client import KeyVaultClient

AGGREGATE_MESSAGE = "One or more secrets could not be fetched."


class RoutedHandler:
    """Async MockTransport handler answering per secret identifier.

    routes maps an identifier ('name' or 'name/version') to a
    (status_code, body) tuple or to an exception to raise. delays maps an
    identifier to seconds to wait before answering.
    """

    def __init__(self, routes, delays=None):
        self.routes = routes
        self.delays = delays or {}
        self.requests = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, request):
        self.requests.append(request)
        identifier = request.url.path[len("/secrets/"):]

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(identifier, 0.01))
        finally:
            self.in_flight -= 1

        outcome = self.routes[identifier]
        if isinstance(outcome, Exception):
            raise outcome
        status_code, body = outcome
        return httpx.Response(status_code, json=body)


@pytest_asyncio.fixture
async def make_client():
    """Factory for vault clients over a MockTransport; closes them on teardown."""
    http_clients = []

    def factory(handler, **kwargs):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        http_clients.append(http_client)
        return KeyVaultClient("vault1", {"access_token": "abcdef"}, http_client=http_client, **kwargs)

    yield factory

    for http_client in http_clients:
        await http_client.aclose()


def _secret(name, version, value):
    return {"id": f"https://vault1.vault.azure.net/secrets/{name}/{version}", "value": value}


class TestGetSecretsSuccess:
    """Test suite for batches where every request succeeds."""

    @pytest.mark.asyncio
    async def test_fetches_all_secrets(self, make_client):
        handler = RoutedHandler({
            "secret1": (200, {"id": "1", "value": "1"}),
            "secret2": (200, {"id": "2", "value": "2"}),
            "secret3": (200, {"id": "3", "value": "3"}),
        })

        secrets = await make_client(handler).get_secrets(["secret1", "secret2", "secret3"])

        assert len(secrets) == 3
        assert [(s["id"], s["value"]) for s in secrets] == [("1", "1"), ("2", "2"), ("3", "3")]
        assert len(handler.requests) == 3
        assert all(r.headers["Authorization"] == "Bearer abcdef" for r in handler.requests)

    @pytest.mark.asyncio
    async def test_results_follow_request_order_not_completion_order(self, make_client):
        handler = RoutedHandler(
            {
                "a": (200, _secret("a", "v1", "A")),
                "b": (200, _secret("b", "v1", "B")),
                "c": (200, _secret("c", "v1", "C")),
            },
            delays={"a": 0.05, "b": 0.03, "c": 0.0},
        )

        secrets = await make_client(handler).get_secrets(["a", "b", "c"])

        assert [s["value"] for s in secrets] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_versioned_identifier_is_passed_through(self, make_client):
        handler = RoutedHandler({"db-password/abc123": (200, _secret("db-password", "abc123", "pw"))})

        await make_client(handler).get_secrets(["db-password/abc123"])

        assert str(handler.requests[0].url) == (
            "https://vault1.vault.azure.net/secrets/db-password/abc123?api-version=7.0"
        )

    @pytest.mark.asyncio
    async def test_empty_list_dispatches_nothing(self, make_client):
        handler = RoutedHandler({})
        client = make_client(handler)

        assert await client.get_secrets([]) == []
        assert await client.get_secrets([], secrets_object=True) == {}
        assert handler.requests == []


class TestGetSecretsFailure:
    """Test suite for batches where at least one request fails."""

    @pytest.mark.asyncio
    async def test_raises_if_one_request_is_rejected(self, make_client):
        handler = RoutedHandler({
            "secret1": (200, {"id": "1", "value": "1"}),
            "secret2": (403, {"id": "2", "value": "2"}),
            "secret3": (200, {"id": "3", "value": "3"}),
        })

        with pytest.raises(SecretsFetchError) as exc_info:
            await make_client(handler).get_secrets(["secret1", "secret2", "secret3"])

        assert str(exc_info.value) == AGGREGATE_MESSAGE

    @pytest.mark.asyncio
    async def test_raises_if_one_request_hits_transport_error(self, make_client):
        handler = RoutedHandler({
            "secret1": httpx.ConnectError("Connection refused."),
            "secret2": (200, {"id": "2", "value": "2"}),
            "secret3": (200, {"id": "3", "value": "3"}),
        })

        with pytest.raises(SecretsFetchError) as exc_info:
            await make_client(handler).get_secrets(["secret1", "secret2", "secret3"])

        assert str(exc_info.value) == AGGREGATE_MESSAGE

    @pytest.mark.asyncio
    async def test_raises_on_mixed_rejection_and_transport_error(self, make_client):
        handler = RoutedHandler({
            "secret1": httpx.ConnectError("Connection refused"),
            "secret2": (404, {"error": {"message": "Secret not found: secret2"}}),
            "secret3": (200, {"id": "3", "value": "3"}),
        })

        with pytest.raises(SecretsFetchError) as exc_info:
            await make_client(handler).get_secrets(["secret1", "secret2", "secret3"])

        assert str(exc_info.value) == AGGREGATE_MESSAGE

    @pytest.mark.asyncio
    async def test_every_request_settles_before_failing(self, make_client):
        handler = RoutedHandler(
            {
                "fast-failure": (500, {"error": {"message": "boom"}}),
                "slow-success": (200, _secret("slow-success", "v1", "x")),
            },
            delays={"fast-failure": 0.0, "slow-success": 0.05},
        )

        with pytest.raises(SecretsFetchError):
            await make_client(handler).get_secrets(["fast-failure", "slow-success"])

        assert len(handler.requests) == 2
        assert handler.in_flight == 0

    @pytest.mark.asyncio
    async def test_error_carries_per_identifier_outcomes(self, make_client):
        handler = RoutedHandler({
            "secret1": httpx.ConnectError("Connection refused."),
            "secret2": (404, {"error": {"message": "Secret not found: secret2"}}),
            "secret3": (200, _secret("secret3", "v1", "3")),
        })

        with pytest.raises(SecretsFetchError) as exc_info:
            await make_client(handler).get_secrets(["secret1", "secret2", "secret3"])

        error = exc_info.value
        assert [o.identifier for o in error.outcomes] == ["secret1", "secret2", "secret3"]
        assert [(f.identifier, f.error) for f in error.failures] == [
            ("secret1", "Connection refused."),
            ("secret2", "Secret not found: secret2"),
        ]
        assert error.outcomes[2].ok
        assert error.outcomes[2].record["value"] == "3"

    @pytest.mark.asyncio
    async def test_identifier_that_cannot_form_a_url_counts_as_failure(self, make_client):
        handler = RoutedHandler({"ok": (200, _secret("ok", "v1", "fine"))})

        with pytest.raises(SecretsFetchError) as exc_info:
            await make_client(handler).get_secrets(["ok", "bad\x00name"])

        error = exc_info.value
        assert str(error) == AGGREGATE_MESSAGE
        assert [f.identifier for f in error.failures] == ["bad\x00name"]
        assert error.outcomes[0].ok
        assert handler.in_flight == 0

    @pytest.mark.asyncio
    async def test_success_body_without_id_counts_as_failure(self, make_client):
        handler = RoutedHandler({
            "secret1": (200, {"value": "no id"}),
            "secret2": (200, _secret("secret2", "v1", "2")),
        })

        with pytest.raises(SecretsFetchError) as exc_info:
            await make_client(handler).get_secrets(["secret1", "secret2"])

        assert [f.identifier for f in exc_info.value.failures] == ["secret1"]

    @pytest.mark.asyncio
    async def test_failures_are_logged_unless_quiet(self, caplog, make_client):
        handler = RoutedHandler({"secret1": (403, {"error": {"message": "Forbidden."}})})

        with caplog.at_level(logging.WARNING):
            with pytest.raises(SecretsFetchError):
                await make_client(handler).get_secrets(["secret1"])
        assert "secret1" in caplog.text
        assert "Forbidden." in caplog.text

        caplog.clear()
        with caplog.at_level(logging.WARNING):
            with pytest.raises(SecretsFetchError):
                await make_client(handler, quiet=True).get_secrets(["secret1"])
        assert caplog.text == ""


class TestGetSecretsObject:
    """Test suite for secrets_object=True reshaping."""

    @pytest.mark.asyncio
    async def test_returns_name_to_value_mapping(self, make_client):
        handler = RoutedHandler({
            "a": (200, {"id": "https://vault/secrets/name1/v1", "value": "value1"}),
            "b": (200, {"id": "https://vault/secrets/name2/v2", "value": "value2"}),
        })

        secrets = await make_client(handler).get_secrets(["a", "b"], secrets_object=True)

        assert secrets == {"name1": "value1", "name2": "value2"}

    @pytest.mark.asyncio
    async def test_colliding_names_keep_last_value(self, caplog, make_client):
        handler = RoutedHandler(
            {
                "a": (200, {"id": "https://vault/secrets/same/v1", "value": "first"}),
                "b": (200, {"id": "https://vault/secrets/same/v2", "value": "second"}),
            },
            # 'b' completes first; the request order still decides the winner
            delays={"a": 0.03, "b": 0.0},
        )

        with caplog.at_level(logging.WARNING):
            secrets = await make_client(handler).get_secrets(["a", "b"], secrets_object=True)

        assert secrets == {"same": "second"}
        assert "same" in caplog.text

    @pytest.mark.asyncio
    async def test_id_without_name_segment_is_rejected(self, make_client):
        handler = RoutedHandler({"a": (200, {"id": "opaque", "value": "x"})})

        with pytest.raises(KeyVaultError) as exc_info:
            await make_client(handler).get_secrets(["a"], secrets_object=True)

        assert "opaque" in str(exc_info.value)
        assert not isinstance(exc_info.value, SecretsFetchError)


class TestGetSecretsConcurrency:
    """Test suite for fan-out width."""

    @pytest.mark.asyncio
    async def test_all_requests_in_flight_together(self, make_client):
        names = [f"s{i}" for i in range(5)]
        handler = RoutedHandler({n: (200, _secret(n, "v1", n)) for n in names})

        await make_client(handler).get_secrets(names)

        assert handler.max_in_flight == 5

    @pytest.mark.asyncio
    async def test_concurrency_cap_is_respected(self, make_client):
        names = [f"s{i}" for i in range(6)]
        handler = RoutedHandler({n: (200, _secret(n, "v1", n)) for n in names})

        secrets = await make_client(handler, max_concurrency=2).get_secrets(names, secrets_object=True)

        assert handler.max_in_flight == 2
        assert secrets == {n: n for n in names}
