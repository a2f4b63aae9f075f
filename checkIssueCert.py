import asyncio
import datetime
import logging
from dataclasses import dataclass
from typing import Sequence

from acme import errors, messages

from acme_tools import refresh_order
from errors import FinalizationError
from genPVTCSR import gen_pvt_csr

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificateBundle:
    private_key: bytes
    csr: bytes
    certificate: bytes


def _status_name(status):
    return status.name if status is not None else None


async def issue_certificate(acme_client, domains: Sequence[str], order, key_type: str = "rsa",
                            key_size: int = 2048, key_curve: str = "ec256",
                            timeout: int = 90) -> CertificateBundle:
    """Finalize ``order`` with a fresh key and CSR and download the certificate.

    The first domain becomes the common name, every domain is listed as a
    subject alternative name. Raises ``FinalizationError`` when the order is
    not ready or the CA refuses to issue.
    """
    private_key, csr = gen_pvt_csr(list(domains), key_type, key_size, key_curve)

    order = await asyncio.to_thread(refresh_order, acme_client, order)
    if order.body.status != messages.STATUS_READY:
        raise FinalizationError(
            f"Order {order.uri} cannot be finalized in status '{_status_name(order.body.status)}'"
        )

    deadline = datetime.datetime.now() + datetime.timedelta(seconds=timeout)
    try:
        final_order = await asyncio.to_thread(acme_client.finalize_order, order.update(csr_pem=csr), deadline)
    except (errors.Error, messages.Error) as e:
        raise FinalizationError(f"Order finalization failed: {e}") from e

    certificate = final_order.fullchain_pem.encode()
    log.info("Certificate issued for %s", ", ".join(domains))
    return CertificateBundle(private_key=private_key, csr=csr, certificate=certificate)
