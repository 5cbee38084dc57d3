"""
Notarization Ledger Transport

A ledger client records signed notarization assertions and reads back the
current trust status of an artifact for the signer behind one credential.
Each call runs inside its own session:

    connect -> sign(artifact, status)  -> disconnect     (notarization)
    connect -> load_artifact(hash)     -> disconnect     (verification)

"Not found" is an expected outcome of verification, so load_artifact
returns an explicit result variant (Found | NotFound) instead of raising.

Two implementations are provided:
- InMemoryLedger: a shared in-process store, for tests and demos
- FileLedger: an append-only JSON-lines ledger in the local store
  directory, each record signed with Ed25519
"""

import json
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple, Union

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .artifacts import ArtifactDescriptor
from .config import LedgerConfig
from .credentials import Credential
from .util import b64d, b64e, canonicalize, now_epoch, sha256_bytes


class TrustStatus(str, Enum):
    """Trust status of a notarized artifact for one signer."""
    TRUSTED = "TRUSTED"
    UNTRUSTED = "UNTRUSTED"
    UNKNOWN = "UNKNOWN"
    UNSUPPORTED = "UNSUPPORTED"
    APIKEY_REVOKED = "APIKEY_REVOKED"


@dataclass(frozen=True)
class LedgerRecord:
    """A notarization as stored on the ledger."""
    hash: str
    name: str
    signer: str
    status: TrustStatus
    timestamp: int
    revoked: Optional[int] = None
    kind: str = "git"
    size: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def is_revoked(self) -> bool:
        """True when the signing key was revoked (non-zero revocation timestamp)."""
        return bool(self.revoked)

    def effective_status(self) -> TrustStatus:
        """Revocation overrides whatever status was recorded."""
        if self.is_revoked():
            return TrustStatus.APIKEY_REVOKED
        return self.status

    def with_status(self, status: TrustStatus) -> 'LedgerRecord':
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "name": self.name,
            "signer": self.signer,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "revoked": self.revoked,
            "kind": self.kind,
            "size": self.size,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerRecord':
        return cls(
            hash=data["hash"],
            name=data["name"],
            signer=data["signer"],
            status=TrustStatus(data["status"]),
            timestamp=int(data["timestamp"]),
            revoked=data.get("revoked"),
            kind=data.get("kind", "git"),
            size=int(data.get("size", 0)),
            metadata=data.get("metadata") or {},
        )

    @classmethod
    def for_artifact(
        cls,
        artifact: ArtifactDescriptor,
        signer: str,
        status: TrustStatus
    ) -> 'LedgerRecord':
        return cls(
            hash=artifact.hash,
            name=artifact.name,
            signer=signer,
            status=status,
            timestamp=now_epoch(),
            kind=artifact.kind,
            size=artifact.size,
            metadata=dict(artifact.metadata),
        )


@dataclass(frozen=True)
class Found:
    """A record exists; verified is the ledger's own validity check."""
    record: LedgerRecord
    verified: bool = True


@dataclass(frozen=True)
class NotFound:
    """No notarization exists for this signer and artifact."""


LookupResult = Union[Found, NotFound]


class LedgerClient(ABC):
    """
    Abstract ledger client bound to a single credential.

    Implementations raise on transport failures (connection, I/O); a
    missing record is never an error.
    """

    def __init__(self, credential: Credential):
        self.credential = credential

    @property
    def signer_id(self) -> str:
        return self.credential.signer_id

    @abstractmethod
    def connect(self) -> None:
        pass

    @abstractmethod
    def disconnect(self) -> None:
        pass

    @abstractmethod
    def sign(self, artifact: ArtifactDescriptor, status: TrustStatus) -> LedgerRecord:
        """Record a signed assertion of status for artifact under this credential."""
        pass

    @abstractmethod
    def load_artifact(self, artifact_hash: str) -> LookupResult:
        """Read the latest record for artifact_hash signed by this credential's signer."""
        pass

    @contextmanager
    def session(self) -> Iterator['LedgerClient']:
        self.connect()
        try:
            yield self
        finally:
            self.disconnect()


ClientFactory = Callable[[Credential], LedgerClient]


# =============================================================================
# IN-MEMORY LEDGER
# =============================================================================

class InMemoryLedger:
    """
    In-memory ledger for development/testing.

    WARNING: Not suitable for production.
    - Not persistent
    - Not tamper-evident

    Hands out per-credential clients sharing one store, and records every
    sign and load call so tests can assert on them.
    """

    def __init__(self):
        self._records: Dict[Tuple[str, str], List[Tuple[LedgerRecord, bool]]] = {}
        self._offline: Set[str] = set()
        self.sign_calls: List[str] = []
        self.load_calls: List[str] = []

    def client(self, credential: Credential) -> 'InMemoryLedgerClient':
        return InMemoryLedgerClient(self, credential)

    def add(self, record: LedgerRecord, verified: bool = True) -> None:
        self._records.setdefault((record.signer, record.hash), []).append((record, verified))

    def notarize(
        self,
        artifact: ArtifactDescriptor,
        signer_id: str,
        status: TrustStatus = TrustStatus.TRUSTED
    ) -> LedgerRecord:
        """Seed a notarization directly, bypassing any client."""
        record = LedgerRecord.for_artifact(artifact, signer_id, status)
        self.add(record)
        return record

    def revoke(self, signer_id: str, when: Optional[int] = None) -> None:
        """Mark every record of a signer as signed with a revoked key."""
        when = when or now_epoch()
        for (signer, artifact_hash), entries in self._records.items():
            if signer == signer_id:
                self._records[(signer, artifact_hash)] = [
                    (replace(record, revoked=when), verified) for record, verified in entries
                ]

    def tamper(self, signer_id: str, artifact_hash: str) -> None:
        """Make the latest record for (signer, artifact) fail verification."""
        entries = self._records[(signer_id, artifact_hash)]
        record, _ = entries[-1]
        entries[-1] = (record, False)

    def set_offline(self, signer_id: str, offline: bool = True) -> None:
        """Make clients for signer_id fail to connect."""
        if offline:
            self._offline.add(signer_id)
        else:
            self._offline.discard(signer_id)

    def lookup(self, signer_id: str, artifact_hash: str) -> LookupResult:
        entries = self._records.get((signer_id, artifact_hash))
        if not entries:
            return NotFound()
        record, verified = entries[-1]
        return Found(record=record, verified=verified)

    def is_offline(self, signer_id: str) -> bool:
        return signer_id in self._offline


class InMemoryLedgerClient(LedgerClient):
    """Client view of an InMemoryLedger for one credential."""

    def __init__(self, ledger: InMemoryLedger, credential: Credential):
        super().__init__(credential)
        self.ledger = ledger
        self.connected = False

    def connect(self) -> None:
        if self.ledger.is_offline(self.signer_id):
            raise ConnectionError(f"ledger unreachable for signer {self.signer_id}")
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def sign(self, artifact: ArtifactDescriptor, status: TrustStatus) -> LedgerRecord:
        self._require_connection()
        self.ledger.sign_calls.append(self.signer_id)
        record = LedgerRecord.for_artifact(artifact, self.signer_id, status)
        self.ledger.add(record)
        return record

    def load_artifact(self, artifact_hash: str) -> LookupResult:
        self._require_connection()
        self.ledger.load_calls.append(self.signer_id)
        return self.ledger.lookup(self.signer_id, artifact_hash)

    def _require_connection(self) -> None:
        if not self.connected:
            raise ConnectionError("ledger client is not connected")


# =============================================================================
# FILE LEDGER
# =============================================================================

CLIENT_CONFIG_FILE = "config.json"
SIGNER_KEYRING_FILE = "signers.json"


class FileLedger(LedgerClient):
    """
    Append-only JSON-lines ledger in the local store directory.

    Each line holds a record, the Ed25519 verify key derived from the
    credential's API key, and the signature over the canonical record.
    The latest record for (signer, hash) wins.

    Verify keys are enrolled per signer in a keyring next to the ledger.
    The first credential to sign for a signer enrolls it. Later keys are
    accepted only when they belong to the same directory key ID (a
    rotation). A record is reported as found but unverified when:
    - its signature does not verify over the record body
    - the key on the line is not enrolled for the record's signer
    - the reading credential is not bound to the signer's enrollment
    """

    def __init__(self, config: LedgerConfig, credential: Credential):
        super().__init__(credential)
        self.config = config
        self._path: Optional[Path] = None

    @property
    def path(self) -> Path:
        host = self.config.host.replace("/", "_").replace(":", "_")
        return Path(self.config.store_dir) / f"ledger-{host}-{self.config.port}.jsonl"

    @property
    def keyring_path(self) -> Path:
        return Path(self.config.store_dir) / SIGNER_KEYRING_FILE

    def connect(self) -> None:
        store_dir = self.config.ensure_store_dir()
        client_config = dict(self.config.to_dict(), signer_id=self.signer_id)
        with open(store_dir / CLIENT_CONFIG_FILE, "w", encoding="utf-8") as f:
            json.dump(client_config, f, indent=2)
        self._path = self.path

    def disconnect(self) -> None:
        self._path = None

    def sign(self, artifact: ArtifactDescriptor, status: TrustStatus) -> LedgerRecord:
        path = self._require_connection()
        signing_key = self._signing_key()
        verify_key = b64e(bytes(signing_key.verify_key))

        keyring = self._load_keyring()
        enrollment = keyring.get(self.signer_id)
        if not self._bound_to(enrollment, verify_key):
            raise PermissionError(
                f"credential {self.credential.masked_key} is not enrolled for signer {self.signer_id}"
            )
        self._enroll(keyring, enrollment, verify_key)

        record = LedgerRecord.for_artifact(artifact, self.signer_id, status)
        body = record.to_dict()
        signature = signing_key.sign(canonicalize(body)).signature
        entry = {
            "record": body,
            "verify_key": verify_key,
            "signature": b64e(signature),
        }

        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, sort_keys=True) + "\n")
        return record

    def load_artifact(self, artifact_hash: str) -> LookupResult:
        path = self._require_connection()
        if not path.exists():
            return NotFound()

        latest: Optional[Dict[str, Any]] = None
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                entry = json.loads(line)
                body = entry["record"]
                if body.get("signer") == self.signer_id and body.get("hash") == artifact_hash:
                    latest = entry

        if latest is None:
            return NotFound()

        enrollment = self._load_keyring().get(self.signer_id)
        verified = (
            enrollment is not None
            and self._bound_to(enrollment, b64e(bytes(self._signing_key().verify_key)))
            and latest.get("verify_key") in enrollment["verify_keys"]
            and self._verify_entry(latest)
        )
        return Found(record=LedgerRecord.from_dict(latest["record"]), verified=verified)

    def _signing_key(self) -> SigningKey:
        return SigningKey(sha256_bytes(self.credential.key))

    def _bound_to(self, enrollment: Optional[Dict[str, Any]], verify_key: str) -> bool:
        """True if this credential may act for the signer described by enrollment."""
        if enrollment is None:
            return True
        if verify_key in enrollment["verify_keys"]:
            return True
        key_id = self.credential.key_id
        return bool(key_id) and enrollment.get("key_id") == key_id

    def _enroll(
        self,
        keyring: Dict[str, Any],
        enrollment: Optional[Dict[str, Any]],
        verify_key: str
    ) -> None:
        if enrollment is None:
            enrollment = {"key_id": self.credential.key_id, "verify_keys": []}
            keyring[self.signer_id] = enrollment
        if verify_key in enrollment["verify_keys"]:
            return
        enrollment["verify_keys"].append(verify_key)
        with open(self.keyring_path, "w", encoding="utf-8") as f:
            json.dump(keyring, f, indent=2, sort_keys=True)

    def _load_keyring(self) -> Dict[str, Any]:
        if not self.keyring_path.exists():
            return {}
        with open(self.keyring_path, "r", encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _verify_entry(entry: Dict[str, Any]) -> bool:
        try:
            verify_key = VerifyKey(b64d(entry["verify_key"]))
            verify_key.verify(canonicalize(entry["record"]), b64d(entry["signature"]))
            return True
        except (BadSignatureError, KeyError, ValueError, TypeError, AttributeError):
            return False

    def _require_connection(self) -> Path:
        if self._path is None:
            raise ConnectionError("ledger client is not connected")
        return self._path


def ledger_client_factory(config: LedgerConfig) -> ClientFactory:
    """Return the per-credential client factory the approval engine consumes."""
    def factory(credential: Credential) -> LedgerClient:
        return FileLedger(config, credential)
    return factory
