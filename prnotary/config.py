"""
Configuration module for prnotary.

Centralizes all configuration with environment variable support.
Process-wide defaults are read once at import; everything a run needs is
then carried in explicit configuration values passed to the clients.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import InputError

# ============================================================
# Parsing Helpers
# ============================================================

_TRUE_VALUES = ("1", "t", "T", "TRUE", "true", "True")
_FALSE_VALUES = ("0", "f", "F", "FALSE", "false", "False")


def parse_bool(value: str, field_name: str = "no TLS") -> bool:
    """
    Parse a boolean flag the way the ledger tooling spells them.

    An empty value means False.

    Raises:
        InputError: If the value is not a recognised boolean literal
    """
    value = value.strip()
    if not value:
        return False
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise InputError(field_name, f'error parsing the value "{value}" as a boolean')


def env_flag(name: str, default: bool) -> bool:
    """
    Read a boolean environment variable with the parse_bool literals.

    Unset, empty or unrecognised values fall back to default.
    """
    value = os.getenv(name, "").strip()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default


# ============================================================
# Environment Configuration
# ============================================================

# Network timeout for every directory and ledger call (seconds)
HTTP_TIMEOUT_SECONDS = float(os.getenv("PRNOTARY_HTTP_TIMEOUT", "30"))

# Platform suffix turning a bare username into a signer ID
IDENTITY_SUFFIX = os.getenv("PRNOTARY_IDENTITY_SUFFIX", "@github")

# Paths
REPO_PATH = os.getenv("PRNOTARY_REPO_PATH", "/github/workspace")
STORE_DIR = os.getenv("PRNOTARY_STORE_DIR", "./.prnotary")

# Logging
LOG_LEVEL = os.getenv("PRNOTARY_LOG_LEVEL", "INFO")
LOG_JSON = env_flag("PRNOTARY_LOG_JSON", True)


# ============================================================
# Explicit Configuration Values
# ============================================================

@dataclass(frozen=True)
class DirectoryConfig:
    """Connection settings for the credential directory REST API."""
    base_url: str
    token: str
    ledger_id: str
    timeout: float = HTTP_TIMEOUT_SECONDS

    def __post_init__(self):
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))


@dataclass(frozen=True)
class LedgerConfig:
    """
    Connection settings for the notarization ledger.

    store_dir holds transient client configuration and the local ledger
    files; the ledger client creates it on connect via ensure_store_dir().
    """
    host: str
    port: str
    no_tls: bool = False
    store_dir: str = STORE_DIR
    timeout: float = HTTP_TIMEOUT_SECONDS

    def ensure_store_dir(self) -> Path:
        path = Path(self.store_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def to_dict(self):
        return {
            "host": self.host,
            "port": self.port,
            "no_tls": self.no_tls,
            "timeout": self.timeout,
        }
