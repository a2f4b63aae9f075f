import logging

import josepy as jose
from acme import client, messages

from genPVTCSR import gen_key

USER_AGENT = "dns01-worker/1.0"

log = logging.getLogger(__name__)


def gen_account_key(key_type="rsa", key_size=2048, key_curve="ec256"):
    """Generate an account key and return it as a (jwk, alg) pair."""
    key = gen_key(key_type, key_size, key_curve)
    if key_type.lower() == "ec":
        if key.curve.key_size == 384:
            return jose.JWKEC(key=key), jose.ES384
        return jose.JWKEC(key=key), jose.ES256
    return jose.JWKRSA(key=key), jose.RS256


def pg_client(directory, account_key, alg=jose.RS256):
    net = client.ClientNetwork(account_key, alg=alg, user_agent=USER_AGENT)
    directory_obj = messages.Directory.from_json(net.get(directory).json())
    return client.ClientV2(directory_obj, net=net)


def new_account(pgclient, email, kid=None, hmac=None):
    external_account_binding = None
    if kid and hmac:
        if isinstance(hmac, bytes):
            hmac = hmac.decode("utf-8")
        external_account_binding = messages.ExternalAccountBinding.from_data(
            account_public_key=pgclient.net.key.public_key(),
            kid=kid,
            hmac_key=hmac,
            directory=pgclient.directory
        )
    registration = messages.NewRegistration.from_data(
        email=email,
        terms_of_service_agreed=True,
        external_account_binding=external_account_binding
    )
    account = pgclient.new_account(registration)
    log.info("ACME account registered for %s: %s", email, account.uri)
    return account


def post_as_get(pgclient, url):
    return pgclient.net.post(url, None, new_nonce_url=pgclient.directory["newNonce"])


def new_order(pgclient, domains):
    """Create one order covering ``domains`` and fetch its authorizations.

    ``ClientV2.new_order`` derives the identifiers from a CSR; the CSR here
    is only built once every challenge is valid, so the order is posted
    from the identifiers directly.
    """
    identifiers = [messages.Identifier(typ=messages.IDENTIFIER_FQDN, value=domain) for domain in domains]
    response = pgclient.net.post(
        pgclient.directory["newOrder"],
        messages.NewOrder(identifiers=identifiers),
        new_nonce_url=pgclient.directory["newNonce"],
    )
    body = messages.Order.from_json(response.json())
    authorizations = []
    for url in body.authorizations:
        authz = post_as_get(pgclient, url)
        authorizations.append(
            messages.AuthorizationResource(body=messages.Authorization.from_json(authz.json()), uri=url)
        )
    return messages.OrderResource(
        body=body,
        uri=response.headers.get("Location"),
        authorizations=authorizations,
    )


def refresh_order(pgclient, order):
    response = post_as_get(pgclient, order.uri)
    return order.update(body=messages.Order.from_json(response.json()))
