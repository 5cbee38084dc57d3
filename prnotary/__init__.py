"""
prnotary - Multi-Approver PR Notarization and Verification

Version: 0.1.0
License: Apache 2.0

Gates a pull-request merge on cryptographic proof that every required
reviewer notarized the PR's head commit:

    MERGEABLE(commit, required) ⇔ ∀ approver ∈ required: status(approver, commit) = TRUSTED

There is no quorum and no partial success. A missing notarization, or any
status other than TRUSTED, fails the gate.

Usage:
    from prnotary import (
        ApprovalEngine,
        CredentialReconciler,
        DirectoryClient,
        DirectoryConfig,
        InMemoryLedger,
        first_artifact,
    )

    # One live credential per required approver (rotate or create)
    with DirectoryClient(DirectoryConfig(url, token, ledger_id)) as directory:
        credentials = CredentialReconciler(directory).reconcile(["alice", "bob"])

    # Notarize for the acting approver, verify everyone
    ledger = InMemoryLedger()
    engine = ApprovalEngine(ledger.client)
    outcome = engine.run(first_artifact("."), credentials, acting_approver="alice")

    if outcome.success:
        # every required approver notarized this commit
        ...
    else:
        missing = outcome.report.missing()
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"

# Configuration
from .config import DirectoryConfig, LedgerConfig, parse_bool

# Errors
from .errors import (
    NotaryError,
    InputError,
    DirectoryError,
    ArtifactError,
    NotarizationError,
    VerificationError,
    LedgerIntegrityError,
)

# Credential directory and reconciliation
from .directory import ApiKey, DirectoryClient
from .credentials import (
    Credential,
    CredentialReconciler,
    credentials_from_keys,
    parse_key,
    split_approvers,
    signer_id_for,
)

# Artifacts
from .artifacts import ArtifactDescriptor, artifact_from_git_repo, first_artifact

# Ledger transport
from .ledger import (
    TrustStatus,
    LedgerRecord,
    Found,
    NotFound,
    LedgerClient,
    InMemoryLedger,
    FileLedger,
    ledger_client_factory,
)

# Engine
from .engine import ApprovalEngine, ApprovalReport, Outcome


__all__ = [
    # Version
    "__version__",

    # Config
    "DirectoryConfig",
    "LedgerConfig",
    "parse_bool",

    # Errors
    "NotaryError",
    "InputError",
    "DirectoryError",
    "ArtifactError",
    "NotarizationError",
    "VerificationError",
    "LedgerIntegrityError",

    # Credentials
    "ApiKey",
    "DirectoryClient",
    "Credential",
    "CredentialReconciler",
    "credentials_from_keys",
    "parse_key",
    "split_approvers",
    "signer_id_for",

    # Artifacts
    "ArtifactDescriptor",
    "artifact_from_git_repo",
    "first_artifact",

    # Ledger
    "TrustStatus",
    "LedgerRecord",
    "Found",
    "NotFound",
    "LedgerClient",
    "InMemoryLedger",
    "FileLedger",
    "ledger_client_factory",

    # Engine
    "ApprovalEngine",
    "ApprovalReport",
    "Outcome",
]
