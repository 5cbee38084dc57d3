#!/usr/bin/env python3
"""
prnotary Command Line Interface

Usage:
    prnotary run URL TOKEN HOST PORT NO_TLS LEDGER_ID REQUIRED_APPROVERS APPROVER
    prnotary run-with-keys HOST PORT NO_TLS KEYS APPROVER

Exit status is 0 only when the PR is notarized by every required approver.
"""

import argparse
import sys
from typing import Dict, List, Optional

from . import config
from .artifacts import first_artifact
from .config import DirectoryConfig, LedgerConfig, parse_bool
from .credentials import Credential, CredentialReconciler, credentials_from_keys, split_approvers
from .directory import DirectoryClient
from .engine import ApprovalEngine, Outcome
from .errors import InputError, NotaryError
from .ledger import TrustStatus, ledger_client_factory
from .logging_config import audit_log, configure_logging, set_run_id
from .util import utc_rfc3339

RED = "\033[1;31m{}\033[0m"
GREEN = "\033[1;32m{}\033[0m"
YELLOW = "\033[1;33m{}\033[0m"


def colored(color: str, text: str) -> str:
    return color.format(text)


def colored_status(status: TrustStatus) -> str:
    """Color a trust status the way reviewers scan for it."""
    color = GREEN
    if status in (TrustStatus.UNTRUSTED, TrustStatus.UNKNOWN, TrustStatus.UNSUPPORTED):
        color = RED
    elif status == TrustStatus.APIKEY_REVOKED:
        color = YELLOW
    return colored(color, status.value)


def require_arg(args: argparse.Namespace, name: str, label: str) -> str:
    """Return a trimmed positional argument, rejecting empty values."""
    value = (getattr(args, name) or "").strip()
    if not value:
        raise InputError(label, "required argument value is empty")
    return value


def abort(message: str) -> int:
    print(colored(RED, f"ABORTING: {message}"))
    return 1


def report_outcome(outcome: Outcome, required_label: str) -> int:
    """Print the per-approver verification details and the final decision."""
    approver = outcome.acting_approver
    if outcome.notarized:
        print(colored(GREEN, f"Successfully notarized PR for current approver {approver}"))
    else:
        print(colored(GREEN, f"SKIPPING notarization: PR approver {approver} is not required"))

    print(f"\nVerified if the PR has been notarized for all {len(outcome.report)} "
          f"required PR approvers:")
    for required in sorted(outcome.report):
        record = outcome.records.get(required)
        if record is None:
            print(colored(YELLOW, f"\n   PR is NOT notarized for required approver {required}"))
            continue
        print(f"\n   Verification details for approver {required}:")
        print(f"      Status:     {colored_status(record.status)}")
        print(f"      PR commit:  {record.name}")
        print(f"      Signer ID:  {record.signer}")
        print(f"      Notarized:  {utc_rfc3339(record.timestamp)}")
    print("")

    if not outcome.success:
        print(colored(YELLOW, (
            f"{outcome.summary()}:\n"
            f"   - notarized: {','.join(outcome.report.notarized())}\n"
            f"   - required : {required_label}"
        )))
        return 1

    print(colored(GREEN, f"{outcome.summary()} ({required_label})."))
    return 0


def notarize_and_verify(
    args: argparse.Namespace,
    credentials: Dict[str, Credential],
    ledger_config: LedgerConfig,
    approver: str,
    required_label: str
) -> int:
    artifact = first_artifact(args.repo)

    if approver in credentials:
        print("\nNotarizing PR ...")
    engine = ApprovalEngine(ledger_client_factory(ledger_config))
    outcome = engine.run(artifact, credentials, approver)
    return report_outcome(outcome, required_label)


def ledger_config_from_args(args: argparse.Namespace) -> LedgerConfig:
    host = require_arg(args, "host", "ledger gRPC API host")
    port = require_arg(args, "port", "ledger gRPC API port")
    no_tls = parse_bool(require_arg(args, "no_tls", "ledger gRPC no TLS"), "ledger gRPC no TLS")
    return LedgerConfig(host=host, port=port, no_tls=no_tls, store_dir=args.store_dir)


def cmd_run(args: argparse.Namespace) -> int:
    """Reconcile directory-managed keys, then notarize and verify."""
    url = require_arg(args, "url", "ledger REST API URL")
    token = require_arg(args, "token", "ledger REST API personal token")
    ledger_config = ledger_config_from_args(args)
    ledger_id = require_arg(args, "ledger_id", "ledger ID")
    required = require_arg(args, "required_approvers", "required PR approvers")
    approver = require_arg(args, "approver", "PR approver")

    directory_config = DirectoryConfig(base_url=url, token=token, ledger_id=ledger_id)
    with DirectoryClient(directory_config) as directory:
        credentials = CredentialReconciler(directory).reconcile(split_approvers(required))

    return notarize_and_verify(args, credentials, ledger_config, approver, required)


def cmd_run_with_keys(args: argparse.Namespace) -> int:
    """Use already-minted keys, then notarize and verify."""
    ledger_config = ledger_config_from_args(args)
    keys = require_arg(args, "keys", "approver credentials")
    approver = require_arg(args, "approver", "PR approver")

    credentials = credentials_from_keys(keys)
    required = ",".join(credentials)

    return notarize_and_verify(args, credentials, ledger_config, approver, required)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prnotary",
        description="Notarize a PR commit and verify it was notarized by every required approver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  prnotary run https://ledger.example/api $TOKEN grpc.example 443 false ledger-1 alice,bob alice
  prnotary run-with-keys grpc.example 443 false alice@github.KEY1,bob@github.KEY2 alice
        """
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--repo", default=config.REPO_PATH, help="Path to the git working copy")
    common.add_argument("--store-dir", default=config.STORE_DIR, help="Local ledger client state directory")
    common.add_argument("--log-level", default=config.LOG_LEVEL, help="Log level")
    common.add_argument("--no-json-logs", action="store_true", help="Plain text instead of JSON logs")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    run_parser = subparsers.add_parser(
        "run", parents=[common], help="Rotate or create approver keys, notarize and verify")
    run_parser.add_argument("url", help="Ledger REST API URL")
    run_parser.add_argument("token", help="Ledger REST API personal token")
    run_parser.add_argument("host", help="Ledger gRPC API host")
    run_parser.add_argument("port", help="Ledger gRPC API port")
    run_parser.add_argument("no_tls", help="Disable TLS towards the ledger (true/false)")
    run_parser.add_argument("ledger_id", help="Ledger ID")
    run_parser.add_argument("required_approvers", help="Comma-separated required PR approvers")
    run_parser.add_argument("approver", help="Username (signer ID) of the current PR approver")

    # run-with-keys
    keys_parser = subparsers.add_parser(
        "run-with-keys", parents=[common], help="Notarize and verify with supplied approver keys")
    keys_parser.add_argument("host", help="Ledger gRPC API host")
    keys_parser.add_argument("port", help="Ledger gRPC API port")
    keys_parser.add_argument("no_tls", help="Disable TLS towards the ledger (true/false)")
    keys_parser.add_argument("keys", help="Comma-separated <signer_id>.<secret> approver keys")
    keys_parser.add_argument("approver", help="Username (signer ID) of the current PR approver")

    return parser


COMMANDS = {
    "run": cmd_run,
    "run-with-keys": cmd_run_with_keys,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    configure_logging(level=args.log_level, json_format=config.LOG_JSON and not args.no_json_logs)
    set_run_id()

    try:
        return command(args)
    except InputError as e:
        audit_log.fatal(str(e), category="input")
        return abort(str(e))
    except NotaryError as e:
        audit_log.fatal(str(e), category=type(e).__name__)
        return abort(str(e))


if __name__ == "__main__":
    sys.exit(main())
