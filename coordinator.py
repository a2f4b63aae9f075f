import functools
import logging

import grpc

from errors import CoordinatorError
from tools import b64encode

# resolved against sys.path, so it works from the source tree and from site-packages
PROTO_PATH = "coordinator_proto/certificate.proto"

log = logging.getLogger(__name__)


@functools.lru_cache(maxsize=None)
def load_protos():
    """Compile ``certificate.proto`` at runtime into (messages, services) modules."""
    return grpc.protos_and_services(PROTO_PATH)


class CoordinatorClient:
    """Client for the coordinator service that hands out domains and collects certificates."""

    def __init__(self, stub, protos, worker_uuid, channel=None):
        self.stub = stub
        self.protos = protos
        self.worker_uuid = worker_uuid
        self.channel = channel

    @classmethod
    def connect(cls, host, port, worker_uuid):
        protos, services = load_protos()
        channel = grpc.aio.insecure_channel(f"{host}:{port}")
        log.info("Connecting: %s:%s (%s)", host, port, worker_uuid)
        return cls(services.CertificateStub(channel), protos, worker_uuid, channel)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        if self.channel is not None:
            await self.channel.close()

    async def _call(self, method, request):
        try:
            return await getattr(self.stub, method)(request)
        except grpc.RpcError as e:
            raise CoordinatorError(method, e) from e

    async def register_client(self) -> str:
        reply = await self._call("registerClient", self.protos.ClientRequest(uuid=self.worker_uuid))
        log.info("Registered worker %s, contact email %s", self.worker_uuid, reply.email)
        return reply.email

    async def fetch_domains(self):
        reply = await self._call("fetchDomains", self.protos.ClientRequest(uuid=self.worker_uuid))
        domains = tuple(reply.domains)
        log.info("Fetched domains: %s", ", ".join(domains))
        return domains

    async def register_challenges(self, values):
        request = self.protos.ChallengesRequest(uuid=self.worker_uuid, records=list(values))
        await self._call("registerChallenges", request)

    async def verified_callback(self, csr, private_key, certificate):
        request = self.protos.VerifiedRequest(
            uuid=self.worker_uuid,
            csr=b64encode(csr),
            privKey=b64encode(private_key),
            certificate=b64encode(certificate),
        )
        await self._call("verifiedCallback", request)
        log.info("Reported certificate for worker %s", self.worker_uuid)
