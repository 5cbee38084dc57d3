"""
Credential Reconciler

Ensures every required approver has exactly one live ledger credential
for the duration of a run.

Two sources are supported:
- directory-managed: each approver's key is looked up in the credential
  directory, rotated if it exists and created if it does not
- supplied: already-minted keys of the form <signer_id>.<secret> are
  decoded without any network access

Both produce a mapping from the bare approver identity (e.g. a GitHub
username) to its Credential. The platform suffix that turns a username
into a signer ID is a directory convention and never part of the key.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .config import IDENTITY_SUFFIX
from .directory import ApiKey, DirectoryClient
from .errors import DirectoryError, InputError
from .logging_config import AuditLogger, audit_log
from .util import mask_sensitive

KEY_SEPARATOR = "."


@dataclass(frozen=True)
class Credential:
    """A ledger API key bound to one approver for one run."""
    approver: str
    signer_id: str
    key: str = field(repr=False)
    key_id: Optional[str] = None

    @property
    def masked_key(self) -> str:
        return mask_sensitive(self.key)


def split_approvers(approvers: str) -> List[str]:
    """Split a comma-separated approver list, keeping empty positions."""
    return approvers.split(",")


def signer_id_for(approver: str, identity_suffix: str = IDENTITY_SUFFIX) -> str:
    """Map a bare approver identity to its platform-qualified signer ID."""
    return approver + identity_suffix


def approver_for(signer_id: str, identity_suffix: str = IDENTITY_SUFFIX) -> str:
    """Strip the platform suffix from a signer ID, if present."""
    if identity_suffix and signer_id.endswith(identity_suffix):
        return signer_id[:-len(identity_suffix)]
    return signer_id


class CredentialReconciler:
    """
    Get-and-rotate-or-create one credential per required approver.

    Rotation of an existing key is mandatory: a previously issued secret is
    never reused as-is. The first directory failure aborts the whole
    reconciliation; no partial mapping is ever returned.
    """

    def __init__(
        self,
        directory: DirectoryClient,
        identity_suffix: str = IDENTITY_SUFFIX,
        audit: Optional[AuditLogger] = None
    ):
        self.directory = directory
        self.identity_suffix = identity_suffix
        self.audit = audit or audit_log

    def reconcile(self, required_approvers: Sequence[str]) -> Dict[str, Credential]:
        """
        Reconcile credentials for the required approvers, in input order.

        Empty entries are skipped with a warning naming their position.
        Duplicate identities are reconciled again and the last credential
        wins: the second rotation invalidates the first secret.

        Raises:
            DirectoryError: On the first lookup, create or rotate failure
        """
        credentials: Dict[str, Credential] = {}

        for position, approver in enumerate(required_approvers):
            approver = approver.strip()
            if not approver:
                self.audit.approver_skipped(
                    position, "empty approver in the list of required approvers")
                continue

            signer_id = signer_id_for(approver, self.identity_suffix)
            try:
                api_key, action = self._get_and_rotate_or_create(signer_id)
            except DirectoryError as e:
                raise DirectoryError(
                    f"error getting or creating / rotating API key for approver {approver}: {e}",
                    method=e.method,
                    url=e.url,
                    expected_status=e.expected_status,
                    status=e.status,
                    body=e.body
                ) from e

            credential = Credential(
                approver=approver,
                signer_id=signer_id,
                key=api_key.key,
                key_id=api_key.id
            )
            credentials[approver] = credential
            self.audit.credential_reconciled(
                approver, signer_id, action, key_id=api_key.id, masked_key=credential.masked_key)

        return credentials

    def _get_and_rotate_or_create(self, signer_id: str):
        existing: Optional[ApiKey] = self.directory.get_api_key(signer_id)
        if existing is None:
            return self.directory.create_api_key(signer_id), "created"
        return self.directory.rotate_api_key(existing.id), "rotated"


def parse_key(key: str, identity_suffix: str = IDENTITY_SUFFIX) -> Credential:
    """
    Decode one supplied key of the form <signer_id>.<secret>.

    The key is split on its last separator, so signer IDs may themselves
    contain dots. The whole key is kept as the credential secret.

    Raises:
        InputError: If either half is empty
    """
    key = key.strip()
    signer_id, sep, secret = key.rpartition(KEY_SEPARATOR)
    if not sep or not signer_id or not secret:
        raise InputError(
            "credentials",
            f'malformed key "{mask_sensitive(key)}": expected <signer_id>{KEY_SEPARATOR}<secret>')

    approver = approver_for(signer_id, identity_suffix).strip()
    if not approver:
        raise InputError("credentials", f'key for signer "{signer_id}" has an empty identity')

    return Credential(approver=approver, signer_id=signer_id, key=key)


def credentials_from_keys(
    keys: Union[str, Iterable[str]],
    identity_suffix: str = IDENTITY_SUFFIX,
    audit: Optional[AuditLogger] = None
) -> Dict[str, Credential]:
    """
    Build the approver -> credential mapping from already-minted keys.

    Accepts a comma-separated string or an iterable of keys. Empty entries
    are skipped. Nothing is sent over the network.

    Raises:
        InputError: On a malformed key, on no keys at all, or when two keys
            decode to the same approver
    """
    audit = audit or audit_log
    if isinstance(keys, str):
        keys = split_approvers(keys)

    credentials: Dict[str, Credential] = {}
    for position, key in enumerate(keys):
        if not key.strip():
            audit.approver_skipped(position, "empty key in the list of credentials")
            continue

        credential = parse_key(key, identity_suffix)
        if credential.approver in credentials:
            raise InputError(
                "credentials",
                f"duplicate signer ID {credential.signer_id} for approver {credential.approver}")

        credentials[credential.approver] = credential
        audit.credential_reconciled(
            credential.approver, credential.signer_id, "supplied", masked_key=credential.masked_key)

    if not credentials:
        raise InputError("credentials", "no credentials supplied")

    return credentials
