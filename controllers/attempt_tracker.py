# Directory: controllers
# Filename: attempt_tracker.py

import logging
from typing import Callable, Optional

from controllers.errors import AuthMismatch, LockdownActive, verify_secret
from utils.access_log import AccessLog, AccessLogEntry
from utils.config_store import SystemConfig

NORMAL = 'NORMAL'
LOCKDOWN = 'LOCKDOWN'


class AttemptTracker:
    """
    Counts consecutive user-mode authentication failures and owns the lockdown flag.

    The threshold and the lockout toggle are read from the live configuration
    on every failure, so a master lowering `allowed_attempts` mid-sequence only
    affects the next failure. Lockdown has no timeout; `override_with` using the
    exact master password is the only way back to NORMAL.

    Attributes:
        wrong_attempts: Failures since the last override or reset.
        is_lockdown: True while in LOCKDOWN.
    """
    def __init__(self,
                 config_provider: Callable[[], SystemConfig],
                 access_log: AccessLog,
                 logger_instance: Optional[logging.Logger] = None):
        """
        Args:
            config_provider: Zero-argument callable returning the config in force.
            access_log: The log receiving FAILED, LOCKDOWN and override entries.
            logger_instance: Optional logger; defaults to 'NodeFSM.Attempts'.
        """
        self._config_provider = config_provider
        self.access_log = access_log
        self.logger = logger_instance or logging.getLogger("NodeFSM.Attempts")
        self.wrong_attempts: int = 0
        self.is_lockdown: bool = False

    @property
    def state(self) -> str:
        return LOCKDOWN if self.is_lockdown else NORMAL

    def record_failure(self) -> AccessLogEntry:
        config = self._config_provider()
        self.wrong_attempts += 1
        if config.lockout_enabled and self.wrong_attempts >= config.allowed_attempts:
            if not self.is_lockdown:
                self.logger.warning(f"Failure threshold reached ({self.wrong_attempts}/{config.allowed_attempts}). Entering LOCKDOWN.")
            self.is_lockdown = True
            return self.access_log.append(f"Critical Lockdown: {self.wrong_attempts} Failures", 'LOCKDOWN')
        self.logger.info(f"Authentication failure {self.wrong_attempts}/{config.allowed_attempts}.")
        return self.access_log.append(f"Auth Failure {self.wrong_attempts}/{config.allowed_attempts}", 'FAILED')

    def record_success(self) -> None:
        # Successful PIN entry leaves the failure counter alone.
        pass

    def override_with(self, password: str) -> bool:
        config = self._config_provider()
        try:
            verify_secret(config.master_password, password, label="Master password")
        except AuthMismatch:
            self.logger.warning("Lockdown override rejected: master password mismatch.")
            return False
        self.is_lockdown = False
        self.wrong_attempts = 0
        self.access_log.append('Node Restored by Master', 'SUCCESS')
        self.logger.info("Lockdown cleared by master override.")
        return True

    def ensure_not_locked(self) -> None:
        if self.is_lockdown:
            raise LockdownActive(f"Node is in lockdown after {self.wrong_attempts} failures.")

    def reset(self) -> None:
        self.wrong_attempts = 0
        self.is_lockdown = False
