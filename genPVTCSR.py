from typing import List, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

CURVES = {
    "ec256": ec.SECP256R1,
    "secp256r1": ec.SECP256R1,
    "ec384": ec.SECP384R1,
    "secp384r1": ec.SECP384R1,
}


def gen_key(key_type: str = "rsa", key_size: int = 2048, key_curve: str = "ec256"):
    if key_type.lower() == "ec":
        curve = CURVES.get((key_curve or "ec256").lower())
        if curve is None:
            raise ValueError(f"Unsupported key curve '{key_curve}'. Options are ['ec256', 'ec384']")
        return ec.generate_private_key(curve())
    elif key_type.lower() == "rsa":
        if key_size not in [2048, 3072, 4096]:
            raise ValueError(f"Unsupported RSA key size {key_size}. Options are [2048, 3072, 4096]")
        return rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    raise ValueError("Unsupported key type or parameters")


def gen_pvt(key_type: str = "rsa", key_size: int = 2048, key_curve: str = "ec256") -> bytes:
    key = gen_key(key_type, key_size, key_curve)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption()
    )


def gen_csr(private_key: bytes, domains: List[str]) -> bytes:
    """PEM CSR with ``domains[0]`` as common name and every domain in the SAN."""
    if not domains:
        raise ValueError("No domains specified")
    ssl_domains = [x509.DNSName(domain.strip()) for domain in domains]
    private_key_obj = serialization.load_pem_private_key(private_key, password=None)
    subject = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, domains[0].strip()),
    ])
    builder = x509.CertificateSigningRequestBuilder()
    builder = builder.subject_name(subject)
    builder = builder.add_extension(
        x509.SubjectAlternativeName(ssl_domains),
        critical=False,
    )
    csr = builder.sign(private_key_obj, hashes.SHA256())
    return csr.public_bytes(serialization.Encoding.PEM)


def gen_pvt_csr(domains: List[str], key_type: str = "rsa", key_size: int = 2048,
                key_curve: str = "ec256") -> Tuple[bytes, bytes]:
    private_key = gen_pvt(key_type, key_size, key_curve)
    csr = gen_csr(private_key, domains)
    return private_key, csr
