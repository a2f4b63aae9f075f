import asyncio
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from acme import challenges, messages

from acme_tools import new_order
from errors import ChallengeTypeNotFound, ChallengeVerificationError, PropagationTimeout
from verifyDNS import (POLL_INTERVAL, SETTLE_DELAY, ChallengeRecord, PropagationWatcher, State,
                       lookup_txt, make_resolver)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainChallenge:
    authorization: messages.AuthorizationResource
    challenge: messages.ChallengeBody

    @property
    def domain(self):
        return self.authorization.body.identifier.value

    @property
    def name(self):
        """The name as ordered, with the ``*.`` prefix of a wildcard authorization."""
        if self.authorization.body.wildcard:
            return f"*.{self.domain}"
        return self.domain


def challens(order, domains=()) -> List[DomainChallenge]:
    """Pick the first dns-01 challenge of every authorization in ``order``.

    The result follows the order of ``domains``. When an authorization names
    a domain outside ``domains`` the server order is kept as is.
    """
    position = {domain: index for index, domain in enumerate(domains)}
    challs = []
    for auth in order.authorizations:
        dns01 = [c for c in auth.body.challenges if isinstance(c.chall, challenges.DNS01)]
        if not dns01:
            raise ChallengeTypeNotFound(auth.body.identifier.value)
        challs.append(DomainChallenge(authorization=auth, challenge=dns01[0]))
    if any(c.name not in position for c in challs):
        return challs
    return sorted(challs, key=lambda c: position[c.name])


class ChallengeCoordinator:
    """Drives the dns-01 challenges of one order from creation to ``valid``."""

    def __init__(self, acme_client, resolver=None, interval=POLL_INTERVAL, settle_delay=SETTLE_DELAY,
                 authorization_timeout=90, acme_poll_interval=2):
        self.acme_client = acme_client
        self.resolver = resolver or make_resolver()
        self.interval = interval
        self.settle_delay = settle_delay
        self.authorization_timeout = authorization_timeout
        self.acme_poll_interval = acme_poll_interval

    @property
    def account_key(self):
        return self.acme_client.net.key

    async def request_challenges(self, domains: Sequence[str]) -> Tuple[messages.OrderResource, List[DomainChallenge]]:
        order = await asyncio.to_thread(new_order, self.acme_client, list(domains))
        challs = challens(order, domains)
        log.info("Order %s created with %d authorizations", order.uri, len(challs))
        return order, challs

    def expected_record(self, domain_challenge):
        return ChallengeRecord(
            key=f"_acme-challenge.{domain_challenge.domain}",
            value=domain_challenge.challenge.chall.validation(self.account_key),
        )

    async def compute_expected_records(self, challs: Sequence[DomainChallenge]) -> List[ChallengeRecord]:
        # gather keeps the input order
        records = await asyncio.gather(
            *(asyncio.to_thread(self.expected_record, c) for c in challs)
        )
        for record in records:
            log.info("Challenge record %s => %s", record.key, record.value)
        return list(records)

    async def publish_records(self, coordinator, records: Sequence[ChallengeRecord]):
        await coordinator.register_challenges([record.value for record in records])
        log.info("Published %d challenge records", len(records))

    async def await_all_verified(self, records: Sequence[ChallengeRecord], timeout=None) -> List[PropagationWatcher]:
        watchers = [PropagationWatcher(record, self.resolver, self.interval, self.settle_delay)
                    for record in records]
        for watcher in watchers:
            watcher.start()
        try:
            await asyncio.wait_for(asyncio.gather(*(w.wait() for w in watchers)), timeout)
        except asyncio.TimeoutError:
            pending = [w for w in watchers if not w.done]
            for watcher in pending:
                watcher.cancel(State.TIMED_OUT)
            raise PropagationTimeout([w.record.key for w in pending], timeout) from None
        except asyncio.CancelledError:
            for watcher in watchers:
                watcher.cancel()
            raise
        log.info("All %d DNS records verified", len(watchers))
        return watchers

    async def verify(self, domain_challenge):
        record = self.expected_record(domain_challenge)
        values = await lookup_txt(self.resolver, record.key)
        if record.value not in values:
            raise ChallengeVerificationError(
                f"TXT record {record.key} does not contain {record.value}, found {values}"
            )

    async def wait_for_valid(self, domain_challenge):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.authorization_timeout
        authzr = domain_challenge.authorization
        while True:
            authzr, _ = await asyncio.to_thread(self.acme_client.poll, authzr)
            status = authzr.body.status
            if status == messages.STATUS_VALID:
                log.info("Authorization for %s is valid", domain_challenge.domain)
                return authzr
            if status == messages.STATUS_INVALID:
                problems = [c.error for c in authzr.body.challenges if c.error is not None]
                raise ChallengeVerificationError(
                    f"Authorization for {domain_challenge.domain} is invalid: {problems}"
                )
            if loop.time() >= deadline:
                raise ChallengeVerificationError(
                    f"Authorization for {domain_challenge.domain} not valid within "
                    f"{self.authorization_timeout}s (status {status})"
                )
            await asyncio.sleep(self.acme_poll_interval)

    async def finalize(self, domain_challenge):
        await self.verify(domain_challenge)
        response = domain_challenge.challenge.chall.response(self.account_key)
        await asyncio.to_thread(self.acme_client.answer_challenge, domain_challenge.challenge, response)
        return await self.wait_for_valid(domain_challenge)

    async def finalize_all(self, challs: Sequence[DomainChallenge]):
        return [await self.finalize(c) for c in challs]
