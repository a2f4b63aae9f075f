import asyncio
import logging
import sys

from acme_tools import gen_account_key, new_account, pg_client
from checkIssueCert import issue_certificate
from coordinator import CoordinatorClient
from errors import ConfigurationError
from tools import load_settings
from verificationTokens import ChallengeCoordinator
from verifyDNS import make_resolver

log = logging.getLogger(__name__)


async def start_worker(settings, coordinator=None, resolver=None):
    """Run one job: fetch the assigned domains, pass dns-01 and report the certificate.

    Every step is fatal on failure; nothing is retried or checkpointed.
    """
    if coordinator is None:
        coordinator = CoordinatorClient.connect(settings.host, settings.port, settings.worker_uuid)
    if resolver is None:
        resolver = make_resolver(settings.nameservers)

    async with coordinator:
        email = await coordinator.register_client()
        account_key, alg = gen_account_key(settings.key_type, settings.key_size, settings.key_curve)
        acme_client = await asyncio.to_thread(pg_client, settings.ca_server, account_key, alg)
        await asyncio.to_thread(new_account, acme_client, email, settings.eab_kid, settings.eab_hmac_key)

        domains = await coordinator.fetch_domains()
        challenge_coordinator = ChallengeCoordinator(
            acme_client,
            resolver=resolver,
            interval=settings.poll_interval,
            settle_delay=settings.settle_delay,
            authorization_timeout=settings.authorization_timeout,
        )
        order, challs = await challenge_coordinator.request_challenges(domains)
        records = await challenge_coordinator.compute_expected_records(challs)
        await challenge_coordinator.publish_records(coordinator, records)

        log.info("Waiting until DNS verified...")
        await challenge_coordinator.await_all_verified(records, timeout=settings.propagation_timeout)
        await challenge_coordinator.finalize_all(challs)

        bundle = await issue_certificate(
            acme_client, domains, order,
            key_type=settings.key_type,
            key_size=settings.key_size,
            key_curve=settings.key_curve,
            timeout=settings.finalize_timeout,
        )
        await coordinator.verified_callback(bundle.csr, bundle.private_key, bundle.certificate)
    return bundle


def run():
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO)
        log.error("Invalid configuration: %s", e)
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(start_worker(settings))
    except Exception:
        log.exception("Worker aborted")
        sys.exit(1)


if __name__ == "__main__":
    run()
