"""Shared fakes for the worker tests.

No network access: DNS answers come from ``FakeResolver``, ACME objects are
built from JSON with ``acme.messages`` and the coordinator service is a
recording fake.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

import dns.exception
import dns.resolver
import josepy as jose
import pytest
from acme import messages
from cryptography.hazmat.primitives.asymmetric import ec

from errors import CoordinatorError
from tools import Settings


class FakeResolver:
    """Stands in for ``dns.asyncresolver.Resolver``."""

    def __init__(self):
        self.cname = {}
        self.txt = {}
        self.failing = set()
        self.queries = []
        self.published_at = {}

    def publish(self, name, *values):
        self.txt.setdefault(name, []).extend(values)
        try:
            self.published_at[name] = asyncio.get_running_loop().time()
        except RuntimeError:
            pass

    async def resolve(self, name, rdtype):
        self.queries.append((name, rdtype))
        await asyncio.sleep(0)
        if name in self.failing:
            raise dns.exception.Timeout()
        if rdtype == "CNAME":
            if name in self.cname:
                return [SimpleNamespace(target=self.cname[name] + ".")]
            if name in self.txt:
                raise dns.resolver.NoAnswer()
            raise dns.resolver.NXDOMAIN()
        if name in self.txt:
            return [SimpleNamespace(strings=(value.encode(),)) for value in self.txt[name]]
        raise dns.resolver.NXDOMAIN()


class FakeCoordinator:
    """Records every call made to the coordinator service."""

    def __init__(self, domains=("example.com", "www.example.com"), email="ops@example.com",
                 resolver=None, fail_on=None):
        self.domains = tuple(domains)
        self.email = email
        self.resolver = resolver
        self.fail_on = fail_on
        self.calls = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    def _record(self, method, *args):
        self.calls.append((method, args))
        if method == self.fail_on:
            raise CoordinatorError(method, "unavailable")

    def called(self, method):
        return [args for name, args in self.calls if name == method]

    async def register_client(self):
        self._record("registerClient")
        return self.email

    async def fetch_domains(self):
        self._record("fetchDomains")
        return self.domains

    async def register_challenges(self, values):
        self._record("registerChallenges", list(values))
        # records arrive in domain order
        if self.resolver is not None:
            for domain, value in zip(self.domains, values):
                self.resolver.publish(f"_acme-challenge.{domain.removeprefix('*.')}", value)

    async def verified_callback(self, csr, private_key, certificate):
        self._record("verifiedCallback", csr, private_key, certificate)


def make_challenge_json(typ="dns-01", index=0, status="pending"):
    token = jose.b64encode(f"token-{typ}-{index}".encode().ljust(32, b"x")).decode()
    return {
        "type": typ,
        "url": f"https://ca.test/chall/{typ}/{index}",
        "status": status,
        "token": token,
    }


def make_authorization(domain, index=0, types=("http-01", "dns-01"), status="pending"):
    wildcard = domain.startswith("*.")
    authz = {
        "identifier": {"type": "dns", "value": domain[2:] if wildcard else domain},
        "status": status,
        "challenges": [make_challenge_json(typ, index) for typ in types],
    }
    if wildcard:
        authz["wildcard"] = True
    body = messages.Authorization.from_json(authz)
    return messages.AuthorizationResource(body=body, uri=f"https://ca.test/authz/{index}")


def make_order(domains, types=("http-01", "dns-01"), authorizations=None):
    if authorizations is None:
        authorizations = [make_authorization(d, i, types) for i, d in enumerate(domains)]
    body = messages.Order.from_json({
        "status": "pending",
        "identifiers": [{"type": "dns", "value": d} for d in domains],
        "authorizations": [a.uri for a in authorizations],
        "finalize": "https://ca.test/order/1/finalize",
    })
    return messages.OrderResource(body=body, uri="https://ca.test/order/1", authorizations=authorizations)


def with_status(authzr, status):
    return authzr.update(body=authzr.body.update(status=status))


@pytest.fixture(scope="session")
def account_key():
    return jose.JWKEC(key=ec.generate_private_key(ec.SECP256R1()))


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def acme_client(account_key):
    client = MagicMock()
    client.net.key = account_key
    client.poll.side_effect = lambda authzr: (with_status(authzr, messages.STATUS_VALID), None)
    return client


@pytest.fixture
def settings():
    return Settings(
        worker_uuid="worker-1",
        key_type="ec",
        poll_interval=0.01,
        settle_delay=0.01,
        authorization_timeout=1,
        finalize_timeout=1,
    )
