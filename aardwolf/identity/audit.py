"""
Audit logging for security events.

Expected negative outcomes, such as a wrong password or a denied permission,
are recorded here rather than as errors. Each event is one INFO record on the
``aardwolf.identity.audit`` logger, with the event fields attached as
structured data for the JSON formatter.
"""

from typing import Any, Dict, Optional

from . import config
from .app_logging import getLogger

logger = getLogger(__name__)


class AuditLogger:
    """
    Emits audit events.

    Tracked events:
    - USER_REGISTERED
    - LOGIN_ATTEMPT (success/failure)
    - EMAIL_VERIFIED
    - ACCESS_CONTROL (allowed/denied)
    - ROLE_GRANTED / ROLE_REVOKED
    - USER_BANNED
    - INSTANCE_CONFIGURED
    """

    def __init__(self, enabled: Optional[bool] = None) -> None:
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        if self._enabled is None:
            return config.get_bool('AUDIT_LOG_ENABLED')
        return self._enabled

    def _emit(self, event: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        logger.info(event['event_type'], extra={'audit': event})

    def user_registered(self, user_id: int, email_id: int) -> None:
        self._emit({
            'event_type': 'USER_REGISTERED',
            'user_id': user_id,
            'email_id': email_id,
        })

    def login_attempt(self, user_id: int, success: bool,
                      reason: Optional[str] = None) -> None:
        """
        Log a password login attempt.

        Parameters
        ----------
        user_id : int
        success : bool
        reason : str
            Failure reason (optional). Never the password itself.

        """
        event: Dict[str, Any] = {
            'event_type': 'LOGIN_ATTEMPT',
            'user_id': user_id,
            'status': 'SUCCESS' if success else 'FAILURE',
        }
        if not success and reason:
            event['reason'] = reason
        self._emit(event)

    def email_verified(self, user_id: int, email_id: int,
                       success: bool, reason: Optional[str] = None) -> None:
        event: Dict[str, Any] = {
            'event_type': 'EMAIL_VERIFIED',
            'user_id': user_id,
            'email_id': email_id,
            'status': 'SUCCESS' if success else 'FAILURE',
        }
        if not success and reason:
            event['reason'] = reason
        self._emit(event)

    def access_control(self, user_id: int, permission: str, allowed: bool,
                       target: Optional[str] = None,
                       reason: Optional[str] = None) -> None:
        """Log the outcome of a capability check."""
        event: Dict[str, Any] = {
            'event_type': 'ACCESS_CONTROL',
            'user_id': user_id,
            'permission': permission,
            'status': 'ALLOWED' if allowed else 'DENIED',
        }
        if target is not None:
            event['target'] = target
        if not allowed and reason:
            event['reason'] = reason
        self._emit(event)

    def role_changed(self, performed_by: int, user_id: int, role: str,
                     granted: bool) -> None:
        self._emit({
            'event_type': 'ROLE_GRANTED' if granted else 'ROLE_REVOKED',
            'performed_by': performed_by,
            'user_id': user_id,
            'role': role,
        })

    def user_banned(self, performed_by: int, user_id: int) -> None:
        self._emit({
            'event_type': 'USER_BANNED',
            'performed_by': performed_by,
            'user_id': user_id,
        })

    def instance_configured(self, performed_by: int, key: str) -> None:
        self._emit({
            'event_type': 'INSTANCE_CONFIGURED',
            'performed_by': performed_by,
            'key': key,
        })


audit = AuditLogger()
"""Shared instance; enablement follows ``AUDIT_LOG_ENABLED``."""
