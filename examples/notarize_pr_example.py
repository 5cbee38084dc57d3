#!/usr/bin/env python3
"""
prnotary Example - Two-Reviewer Merge Gate

This example walks a pull request through a two-reviewer gate on an
in-memory ledger:

1. alice approves: her notarization is recorded, bob's is still missing
2. carol (not required) approves: nothing is notarized, gate still closed
3. bob approves: both required approvers are TRUSTED, gate opens
4. alice's key is revoked: the gate closes again

Run with: python examples/notarize_pr_example.py
"""

from prnotary import (
    ApprovalEngine,
    ArtifactDescriptor,
    InMemoryLedger,
    Outcome,
    credentials_from_keys,
)
from prnotary.util import sha256_hex


def print_outcome(step: str, outcome: Outcome) -> None:
    print("\n" + "-" * 60)
    print(step)
    print("-" * 60)
    print(f"Acting approver: {outcome.acting_approver} (notarized: {outcome.notarized})")
    for approver, status in outcome.report.to_dict().items():
        print(f"  {approver:<8} {status or 'NOT NOTARIZED'}")
    print(f"Gate: {'OPEN' if outcome.success else 'CLOSED'} - {outcome.summary()}")


def main():
    print("=" * 60)
    print("prnotary Merge Gate Demonstration")
    print("=" * 60)

    # In CI this comes from first_artifact("/github/workspace")
    artifact = ArtifactDescriptor(
        hash=sha256_hex(b"tree 9bc1e2f\nparent 77a0c3d\n\nAdd approval gate\n"),
        name="git://payments-service@9bc1e2f"
    )

    # Keys as minted by the ledger's directory: <signer_id>.<secret>
    credentials = credentials_from_keys("alice@github.ak_7f3e91,bob@github.ak_1c44d0")

    ledger = InMemoryLedger()
    engine = ApprovalEngine(ledger.client)

    print_outcome("Step 1: alice approves", engine.run(artifact, credentials, "alice"))
    print_outcome("Step 2: carol approves (not required)", engine.run(artifact, credentials, "carol"))
    print_outcome("Step 3: bob approves", engine.run(artifact, credentials, "bob"))

    ledger.revoke("alice@github")
    print_outcome("Step 4: alice's key revoked", engine.run(artifact, credentials, "carol"))

    print("\n" + "=" * 60)
    print("Demonstration complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
