"""Tests for the ACME client helpers."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import josepy as jose
from acme import messages

from acme_tools import gen_account_key, new_account, new_order, refresh_order
from conftest import make_authorization, make_order

DIRECTORY = {
    "newNonce": "https://ca.test/new-nonce",
    "newOrder": "https://ca.test/new-order",
}


def _json(obj):
    return json.loads(obj.json_dumps())


def _response(payload, headers=None):
    return SimpleNamespace(json=lambda: payload, headers=headers or {})


def _client(responses):
    client = MagicMock()
    client.directory = DIRECTORY
    client.net.post.side_effect = lambda url, obj, **kwargs: responses[url]
    return client


def test_ec_account_key():
    key, alg = gen_account_key("ec", key_curve="ec384")
    assert isinstance(key, jose.JWKEC)
    assert alg is jose.ES384


def test_rsa_account_key():
    key, alg = gen_account_key("rsa", key_size=2048)
    assert isinstance(key, jose.JWKRSA)
    assert alg is jose.RS256


def test_new_account_agrees_to_terms():
    client = MagicMock()

    new_account(client, "ops@example.com")

    registration = client.new_account.call_args.args[0]
    assert registration.terms_of_service_agreed is True
    assert registration.contact == ("mailto:ops@example.com",)
    assert registration.external_account_binding is None


def test_new_order_from_identifiers():
    authorizations = [make_authorization("example.com", 0), make_authorization("www.example.com", 1)]
    template = make_order(["example.com", "www.example.com"], authorizations=authorizations)
    client = _client({
        DIRECTORY["newOrder"]: _response(_json(template.body), {"Location": "https://ca.test/order/7"}),
        authorizations[0].uri: _response(_json(authorizations[0].body)),
        authorizations[1].uri: _response(_json(authorizations[1].body)),
    })

    order = new_order(client, ["example.com", "www.example.com"])

    url, request = client.net.post.call_args_list[0].args
    assert url == DIRECTORY["newOrder"]
    assert [i.value for i in request.identifiers] == ["example.com", "www.example.com"]
    assert order.uri == "https://ca.test/order/7"
    assert [a.body.identifier.value for a in order.authorizations] == ["example.com", "www.example.com"]
    assert [a.uri for a in order.authorizations] == [a.uri for a in authorizations]
    for call in client.net.post.call_args_list:
        assert call.kwargs["new_nonce_url"] == DIRECTORY["newNonce"]


def test_refresh_order_updates_status():
    order = make_order(["example.com"])
    ready = order.body.update(status=messages.STATUS_READY)
    client = _client({order.uri: _response(_json(ready))})

    refreshed = refresh_order(client, order)

    assert refreshed.body.status == messages.STATUS_READY
    assert refreshed.authorizations == order.authorizations
    client.net.post.assert_called_once_with(order.uri, None, new_nonce_url=DIRECTORY["newNonce"])
