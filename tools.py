import base64
import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

from errors import ConfigurationError

DEFAULT_CA_SERVER = "https://acme-v02.api.letsencrypt.org/directory"


@dataclass(frozen=True)
class Settings:
    worker_uuid: str
    host: str = "127.0.0.1"
    port: int = 50051
    ca_server: str = DEFAULT_CA_SERVER
    key_type: str = "rsa"
    key_size: int = 2048
    key_curve: str = "ec256"
    eab_kid: Optional[str] = None
    eab_hmac_key: Optional[str] = None
    nameservers: Tuple[str, ...] = ()
    poll_interval: float = 5.0
    settle_delay: float = 15.0
    propagation_timeout: Optional[float] = None
    authorization_timeout: float = 90.0
    finalize_timeout: float = 90.0
    log_level: str = "INFO"


def split_list(value):
    items = []
    for item in value.split(","):
        item = item.strip()
        if item:
            items.append(item)
    return items


def get_ca_server(caserver, key_type):
    base_urls = {
        "SSL.com": {
            "rsa": "https://acme.ssl.com/sslcom-dv-rsa",
            "ec": "https://acme.ssl.com/sslcom-dv-ecc"
        },
        "Let's Encrypt (Testing)": "https://acme-staging-v02.api.letsencrypt.org/directory",
        "Let's Encrypt": "https://acme-v02.api.letsencrypt.org/directory",
        "Buypass (Testing)": "https://api.test4.buypass.no/acme/directory",
        "Buypass": "https://api.Buypass.com/acme/directory",
        "ZeroSSL": "https://acme.zerossl.com/v2/DV90",
        "Google (Testing)": "https://dv.acme-v02.test-api.pki.goog/directory",
        "Google": "https://dv.acme-v02.api.pki.goog/directory"
    }
    if caserver in base_urls:
        if isinstance(base_urls[caserver], dict):
            return base_urls[caserver].get(key_type, DEFAULT_CA_SERVER)
        return base_urls[caserver]
    if caserver.startswith("https://"):
        return caserver
    raise ConfigurationError(f"Unknown CA server '{caserver}'")


def _number(env, name, default, cast=float):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'") from None


def load_settings(env=None, dotenv=True):
    """Build the worker settings from a .env file and the process environment."""
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    worker_uuid = env.get("WORKER_UUID")
    if not worker_uuid:
        raise ConfigurationError("WORKER_UUID is not set")

    key_type = env.get("KEY_TYPE", "rsa").lower()
    if key_type not in ("rsa", "ec"):
        raise ConfigurationError(f"Invalid KEY_TYPE '{key_type}'. Options are ['rsa', 'ec']")

    log_level = env.get("LOG_LEVEL", "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"Invalid LOG_LEVEL '{log_level}'")

    return Settings(
        worker_uuid=worker_uuid,
        host=env.get("HOST", "127.0.0.1"),
        port=_number(env, "PORT", 50051, int),
        ca_server=get_ca_server(env.get("CA_SERVER", "Let's Encrypt"), key_type),
        key_type=key_type,
        key_size=_number(env, "KEY_SIZE", 2048, int),
        key_curve=env.get("KEY_CURVE", "ec256"),
        eab_kid=env.get("EAB_KID") or None,
        eab_hmac_key=env.get("EAB_HMAC_KEY") or None,
        nameservers=tuple(split_list(env.get("NAMESERVERS", ""))),
        poll_interval=_number(env, "DNS_POLL_INTERVAL", 5.0),
        settle_delay=_number(env, "DNS_SETTLE_DELAY", 15.0),
        propagation_timeout=_number(env, "PROPAGATION_TIMEOUT", None),
        authorization_timeout=_number(env, "AUTHORIZATION_TIMEOUT", 90.0),
        finalize_timeout=_number(env, "FINALIZE_TIMEOUT", 90.0),
        log_level=log_level,
    )


def b64encode(data):
    if isinstance(data, str):
        data = data.encode()
    return base64.b64encode(data).decode("ascii")
