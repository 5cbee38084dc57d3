"""
Logging configuration for prnotary.

Provides structured JSON logging for audit trails and debugging.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, IO, List, Optional

# Context variable for run ID tracking
run_id_var: ContextVar[str] = ContextVar('run_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems like ELK, Splunk, or CloudWatch.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        run_id = run_id_var.get()
        if run_id:
            log_data["run_id"] = run_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


class AuditLogger:
    """
    Specialized logger for audit events.

    Provides one method per step of a notarize-and-verify run so that
    every credential, notarization and verification decision leaves a
    structured trace. Secrets are never passed to these methods.
    """

    def __init__(self, name: str = "prnotary.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
        extra = {
            "event_type": event_type,
            "run_id": run_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def approver_skipped(self, position: int, reason: str) -> None:
        """Log a required approver entry that was skipped."""
        self._log(
            logging.WARNING,
            "APPROVER_SKIPPED",
            position=position,
            reason=reason,
            message=f"Skipping approver on position {position}: {reason}"
        )

    def credential_reconciled(
        self,
        approver: str,
        signer_id: str,
        action: str,
        key_id: Optional[str] = None,
        masked_key: Optional[str] = None
    ) -> None:
        """Log a credential that was created, rotated or supplied."""
        self._log(
            logging.INFO,
            "CREDENTIAL_RECONCILED",
            approver=approver,
            signer_id=signer_id,
            action=action,
            key_id=key_id,
            masked_key=masked_key,
            message=f"Credential {action} for approver {approver}"
        )

    def notarization(
        self,
        approver: str,
        artifact_hash: str,
        notarized: bool,
        reason: Optional[str] = None
    ) -> None:
        """Log a notarization, or the decision to skip it."""
        self._log(
            logging.INFO,
            "NOTARIZATION",
            approver=approver,
            artifact_hash=artifact_hash,
            notarized=notarized,
            reason=reason,
            message=(
                f"Notarized artifact for approver {approver}" if notarized
                else f"Skipped notarization for approver {approver}"
            )
        )

    def verification(
        self,
        approver: str,
        artifact_hash: str,
        status: Optional[str]
    ) -> None:
        """Log the trust status read for one approver."""
        level = logging.INFO if status == "TRUSTED" else logging.WARNING
        self._log(
            level,
            "VERIFICATION",
            approver=approver,
            artifact_hash=artifact_hash,
            status=status,
            message=f"Approver {approver} status: {status or 'NOT NOTARIZED'}"
        )

    def decision(
        self,
        success: bool,
        notarized: List[str],
        required: List[str]
    ) -> None:
        """Log the aggregate decision of a run."""
        level = logging.INFO if success else logging.WARNING
        self._log(
            level,
            "DECISION",
            success=success,
            notarized=notarized,
            required=required,
            message=f"Notarized for {len(notarized)} of {len(required)} required approvers"
        )

    def fatal(self, error: str, **details: Any) -> None:
        """Log an error that aborted the run."""
        self._log(
            logging.ERROR,
            "FATAL",
            error=error,
            **details,
            message=f"Run aborted: {error}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
    stream: Optional[IO[str]] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for CI logs)
        log_file: Optional file path for log output
        stream: Console stream, stderr by default so stdout stays readable
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_run_id(run_id: Optional[str] = None) -> str:
    """
    Set the run ID for the current context.

    Args:
        run_id: Run ID to set, or None to generate one

    Returns:
        The run ID that was set
    """
    if run_id is None:
        run_id = str(uuid.uuid4())
    run_id_var.set(run_id)
    return run_id


# Global audit logger instance
audit_log = AuditLogger()
