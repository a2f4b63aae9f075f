import asyncio
import enum
import logging
from dataclasses import dataclass

import dns.asyncresolver
import dns.exception
import dns.resolver

from errors import PropagationTimeout

POLL_INTERVAL = 5
SETTLE_DELAY = 15

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChallengeRecord:
    key: str
    value: str


class State(enum.Enum):
    PENDING = "pending"
    PROPAGATING = "propagating"
    VERIFIED = "verified"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


def make_resolver(nameservers=()):
    resolver = dns.asyncresolver.Resolver()
    if nameservers:
        resolver.nameservers = list(nameservers)
    return resolver


def _name(target):
    return str(target).rstrip(".")


async def lookup_txt(resolver, key):
    """Return every TXT value reachable from ``key``.

    ``key`` is resolved as a CNAME first and the TXT records are read at each
    target. A name without a CNAME is read directly. DNS failures yield an
    empty or partial result; they are never raised.
    """
    try:
        answer = await resolver.resolve(key, "CNAME")
        targets = [_name(rdata.target) for rdata in answer]
    except dns.resolver.NoAnswer:
        targets = [key]
    except dns.exception.DNSException as e:
        log.debug("CNAME lookup for %s failed: %s", key, e)
        return []

    values = []
    for target in targets:
        if target != key:
            log.debug("Found CNAME %s => %s", key, target)
        try:
            answer = await resolver.resolve(target, "TXT")
        except dns.exception.DNSException as e:
            log.debug("TXT lookup for %s failed: %s", target, e)
            continue
        # A TXT rdata may be split into several character-strings.
        records = [b"".join(rdata.strings).decode("utf-8", errors="replace") for rdata in answer]
        log.debug("Found TXT %s => %s", target, records)
        values.extend(records)
    return values


class PropagationWatcher:
    """Polls public DNS until one challenge record becomes visible.

    The watcher moves through ``PENDING -> PROPAGATING -> VERIFIED``:
    PROPAGATING starts when the expected value is first observed and lasts
    ``settle_delay`` seconds so slower resolvers can catch up. The poll loop
    runs as a task owned by the watcher; ``cancel()`` or a ``wait()`` timeout
    stop it.
    """

    def __init__(self, record, resolver=None, interval=POLL_INTERVAL, settle_delay=SETTLE_DELAY):
        self.record = record
        self.resolver = resolver or make_resolver()
        self.interval = interval
        self.settle_delay = settle_delay
        self.state = State.PENDING
        self.first_seen = None
        self.verified_at = None
        self._task = None

    def __repr__(self):
        return f"<PropagationWatcher {self.record.key} {self.state.value}>"

    @property
    def done(self):
        return self.state is State.VERIFIED

    async def lookup(self):
        return await lookup_txt(self.resolver, self.record.key)

    async def _poll(self):
        loop = asyncio.get_running_loop()
        try:
            while self.record.value not in await self.lookup():
                await asyncio.sleep(self.interval)
            self.first_seen = loop.time()
            self.state = State.PROPAGATING
            log.info("TXT %s found for %s, waiting %ss for propagation",
                     self.record.value, self.record.key, self.settle_delay)
            await asyncio.sleep(self.settle_delay)
        except asyncio.CancelledError:
            if self.state in (State.PENDING, State.PROPAGATING):
                self.state = State.CANCELLED
            raise
        self.verified_at = loop.time()
        self.state = State.VERIFIED
        log.info("DNS record %s verified", self.record.key)

    def start(self):
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._poll())
        return self._task

    async def wait(self, timeout=None):
        task = self.start()
        try:
            await asyncio.wait_for(task, timeout)
        except asyncio.TimeoutError:
            self.state = State.TIMED_OUT
            raise PropagationTimeout([self.record.key], timeout) from None
        return self

    def cancel(self, state=State.CANCELLED):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if not self.done:
            self.state = state


async def wait_for_propagation(record, resolver=None, interval=POLL_INTERVAL,
                               settle_delay=SETTLE_DELAY, timeout=None):
    watcher = PropagationWatcher(record, resolver, interval, settle_delay)
    return await watcher.wait(timeout)
