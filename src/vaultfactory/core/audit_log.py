# Core - Logging & Audit Trail
#
# structlog configuration for the whole process plus an append-only
# audit logger for authentication and vault events.
# Used by the request layer only: the auth and vault cores never log,
# they raise typed errors and let the caller decide what to record.
#
# Never pass passwords, tokens, keys or payloads into log_event().

import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog


class EventType(str, Enum):
    """Types of security events that can be logged."""
    # Account / session events
    USER_REGISTERED = "user.registered"
    USER_LOGIN = "user.login"
    USER_LOGIN_FAILED = "user.login.failed"
    USER_LOGOUT = "user.logout"
    USER_PASSWORD_CHANGED = "user.password.changed"
    TOKEN_REFRESHED = "token.refreshed"
    TOKEN_REFRESH_FAILED = "token.refresh.failed"
    TOKEN_REJECTED = "token.rejected"
    SESSIONS_PURGED = "sessions.purged"

    # Vault events
    DATA_CREATED = "data.created"
    DATA_ACCESSED = "data.accessed"
    DATA_UPDATED = "data.updated"
    DATA_DELETED = "data.deleted"
    DATA_SYNCED = "data.synced"
    DATA_ACCESS_DENIED = "data.access.denied"

    # Consistency / system events
    PARTIAL_WRITE = "store.partial_write"
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"


class EventSeverity(str, Enum):
    """
    Severity levels for security events.

    - INFO: Normal activity
    - INVESTIGATE: Unusual but expected now and then (failed login)
    - ALERT: Policy violation (access to someone else's item)
    - CRITICAL: Data drift an operator must repair
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


_LEVEL_FOR_SEVERITY = {
    EventSeverity.INFO: logging.INFO,
    EventSeverity.INVESTIGATE: logging.INFO,
    EventSeverity.ALERT: logging.WARNING,
    EventSeverity.CRITICAL: logging.ERROR,
}


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """
    Configure structlog on top of stdlib logging for the whole process.

    Args:
        level: Root log level name (DEBUG, INFO, ...)
        fmt: "json" for machine-readable lines, "console" for development
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # structlog handles formatting
    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(level.upper())


class AuditLogger:
    """
    Append-only audit logger for security events.

    Features:
    - Structured records through structlog
    - Automatic event ID and UTC timestamp
    - Optional daily file under ``log_dir``
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for daily audit files (None: stdout only)
        """
        self.log_dir = Path(log_dir) if log_dir else None
        self._file_handler: Optional[logging.Handler] = None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._setup_file_handler()

        self.logger = structlog.get_logger("vaultfactory.audit")

    def _setup_file_handler(self):
        """Attach a daily audit file to the audit logger."""
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))

        logging.getLogger("vaultfactory.audit").addHandler(file_handler)
        self._file_handler = file_handler

    def close(self):
        """Detach and close the audit file, if any."""
        if self._file_handler is not None:
            logging.getLogger("vaultfactory.audit").removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> str:
        """
        Log a security event.

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (ids only, never secrets)
            user_id: Authenticated user the event belongs to, if any

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        self.logger.log(
            _LEVEL_FOR_SEVERITY[severity],
            "security_event",
            event_id=event_id,
            event_type=event_type.value,
            severity=severity.value,
            message=message,
            user_id=user_id,
            details=details or {},
        )

        return event_id
