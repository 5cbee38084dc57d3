"""
Approval Reconciliation Engine

Gates a pull-request merge on proof that every required approver has
notarized the PR's head commit:

1. Conditional notarization: if the acting approver is required, the
   artifact is notarized once under that approver's credential. A
   non-required approver is skipped; that is not an error.
2. Independent verification: every required approver's trust status is
   read from the ledger with that approver's own credential.
3. Aggregation: the run succeeds only if every required approver is
   TRUSTED. There is no quorum and no partial success.

Failure handling:
- notarization failure, verification transport failure and a record that
  fails the ledger's own validity check abort the run (NotaryError)
- a missing notarization is recorded as absent and the run continues
- a non-unanimous result is a normal Outcome with success=False

The aggregate never depends on the order in which approvers are verified.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Optional

from .artifacts import ArtifactDescriptor
from .credentials import Credential
from .errors import LedgerIntegrityError, NotarizationError, VerificationError
from .ledger import ClientFactory, LedgerRecord, NotFound, TrustStatus
from .logging_config import AuditLogger, audit_log


class ApprovalReport(Mapping):
    """
    Immutable mapping of required approver -> TrustStatus, or None when the
    approver has not notarized the artifact.
    """

    def __init__(self, statuses: Optional[Dict[str, Optional[TrustStatus]]] = None):
        self._statuses: Dict[str, Optional[TrustStatus]] = dict(statuses or {})

    def __getitem__(self, approver: str) -> Optional[TrustStatus]:
        return self._statuses[approver]

    def __iter__(self) -> Iterator[str]:
        return iter(self._statuses)

    def __len__(self) -> int:
        return len(self._statuses)

    def __repr__(self) -> str:
        return f"ApprovalReport({self.to_dict()!r})"

    def notarized(self) -> List[str]:
        """Approvers whose notarization is TRUSTED, sorted."""
        return sorted(a for a, s in self._statuses.items() if s == TrustStatus.TRUSTED)

    def missing(self) -> List[str]:
        """Approvers that are absent or not TRUSTED, sorted."""
        return sorted(a for a, s in self._statuses.items() if s != TrustStatus.TRUSTED)

    def is_unanimous(self) -> bool:
        """True iff there is at least one approver and all are TRUSTED."""
        return bool(self._statuses) and not self.missing()

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {a: (s.value if s else None) for a, s in sorted(self._statuses.items())}


@dataclass(frozen=True)
class Outcome:
    """Result of one notarize-and-verify run."""
    success: bool
    report: ApprovalReport
    acting_approver: str
    notarized: bool = False
    records: Mapping = field(default_factory=lambda: MappingProxyType({}))

    def summary(self) -> str:
        required = len(self.report)
        if self.success:
            return f"PR is notarized for all {required} required approvers"
        return (
            f"PR is notarized for {len(self.report.notarized())} of {required} required approvers"
        )


class ApprovalEngine:
    """
    Orchestrates notarization and per-approver verification.

    Usage:
        ledger = InMemoryLedger()
        engine = ApprovalEngine(ledger.client)
        outcome = engine.run(artifact, credentials, acting_approver="alice")
        if outcome.success:
            # every required approver notarized this commit
            ...
    """

    def __init__(self, client_factory: ClientFactory, audit: Optional[AuditLogger] = None):
        self.client_factory = client_factory
        self.audit = audit or audit_log

    def run(
        self,
        artifact: ArtifactDescriptor,
        credentials: Mapping,
        acting_approver: str
    ) -> Outcome:
        """
        Notarize for the acting approver (if required), then verify everyone.

        Args:
            artifact: Descriptor of the commit under test
            credentials: Required approver -> Credential
            acting_approver: Identity of the approver who triggered the run

        Returns:
            Outcome with the aggregate decision and per-approver report

        Raises:
            NotarizationError: If the acting approver's notarization fails
            VerificationError: If the ledger cannot be queried
            LedgerIntegrityError: If a returned record fails verification
        """
        acting_approver = acting_approver.strip()

        # Step 1: notarize only for a required approver
        notarized = False
        credential = credentials.get(acting_approver)
        if credential is not None:
            self.notarize(artifact, credential)
            notarized = True
            self.audit.notarization(acting_approver, artifact.hash, True)
        else:
            self.audit.notarization(
                acting_approver, artifact.hash, False, reason="approver is not required")

        # Step 2: verify each required approver independently
        statuses: Dict[str, Optional[TrustStatus]] = {}
        records: Dict[str, LedgerRecord] = {}
        for approver, approver_credential in credentials.items():
            record = self.verify(artifact, approver_credential)
            if record is None:
                statuses[approver] = None
                self.audit.verification(approver, artifact.hash, None)
                continue
            statuses[approver] = record.status
            records[approver] = record
            self.audit.verification(approver, artifact.hash, record.status.value)

        # Step 3: unanimous-required-set aggregation
        report = ApprovalReport(statuses)
        success = report.is_unanimous()
        self.audit.decision(success, report.notarized(), sorted(report))

        return Outcome(
            success=success,
            report=report,
            acting_approver=acting_approver,
            notarized=notarized,
            records=MappingProxyType(records)
        )

    def notarize(self, artifact: ArtifactDescriptor, credential: Credential) -> LedgerRecord:
        """
        Record a TRUSTED notarization of artifact under credential.

        Raises:
            NotarizationError: On any failure to record the assertion
        """
        try:
            client = self.client_factory(credential)
            with client.session():
                return client.sign(artifact, TrustStatus.TRUSTED)
        except Exception as e:
            raise NotarizationError(credential.approver, str(e)) from e

    def verify(self, artifact: ArtifactDescriptor, credential: Credential) -> Optional[LedgerRecord]:
        """
        Read the current trust status of artifact for credential's signer.

        Returns:
            The record (status forced to APIKEY_REVOKED when the key was
            revoked), or None when the approver has not notarized

        Raises:
            VerificationError: If the ledger cannot be queried
            LedgerIntegrityError: If the record fails the ledger's validity check
        """
        try:
            client = self.client_factory(credential)
            with client.session():
                result = client.load_artifact(artifact.hash)
        except Exception as e:
            raise VerificationError(credential.approver, f"ledger might be compromised: {e}") from e

        if isinstance(result, NotFound):
            return None

        if not result.verified:
            raise LedgerIntegrityError(credential.approver)

        return result.record.with_status(result.record.effective_status())
