"""
Admin Auth API

Request/response handlers for the HTTP layer. Each handler takes the
decoded JSON body (plus client IP / User-Agent where relevant) and
returns the response dict; the web framework only has to route and
serialise.

    POST login        {email, password, totpCode?, backupCode?}
                      -> {success, requiresTwoFactor?, sessionToken?, error?}
    POST logout       {sessionToken} -> {success}
    POST 2fa/setup    (authenticated) -> {secret, qrPayload, qrCodeUrl, backupCodes}
    POST 2fa/enable   (authenticated) {totpCode} -> {success}
    POST 2fa/disable  (authenticated) {password} -> {success}

Privileged routes elsewhere use ``admin_required`` or
``AdminAuthAPI.validate_session``.
"""

import functools
import logging
from typing import Any, Callable, Dict, Optional

from .auth.coordinator import AuthenticationCoordinator
from .errors import AuthError, InvalidTwoFactor, StoreUnavailable
from .integration.audit_logger import AuditAction
from .models import AdminCredential, to_rfc3339

logger = logging.getLogger(__name__)

Response = Dict[str, Any]


def _field(body: Optional[Dict[str, Any]], name: str) -> Optional[str]:
    value = (body or {}).get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class AdminAuthAPI:
    """
    Dict-in/dict-out admin authentication endpoints.

    Example:
        >>> api = AdminAuthAPI(AuthenticationCoordinator.from_settings(store))
        >>> api.login({"email": "a@x.com", "password": "Correct1!"}, "10.0.0.1")
        {'success': False, 'requiresTwoFactor': True}
    """

    def __init__(self, coordinator: AuthenticationCoordinator):
        self._coordinator = coordinator

    @property
    def coordinator(self) -> AuthenticationCoordinator:
        return self._coordinator

    def _guarded(self, call: Callable[[], Response]) -> Response:
        try:
            return call()
        except StoreUnavailable as exc:
            logger.error("Admin auth request failed, store unavailable: %s", exc.reason)
            return exc.to_response()
        except AuthError as exc:
            return exc.to_response()

    # ========================================================================
    # Login / Logout
    # ========================================================================

    def login(self, body: Dict[str, Any], ip_address: str = '',
              user_agent: str = '') -> Response:
        def run() -> Response:
            result = self._coordinator.authenticate(
                email=_field(body, 'email') or '',
                password=(body or {}).get('password') or '',
                totp_code=_field(body, 'totpCode'),
                backup_code=_field(body, 'backupCode'),
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return {
                'success': True,
                'sessionToken': result.token,
                'expiresAt': to_rfc3339(result.session.expires_at),
                'user': result.credential.public_view(),
            }
        return self._guarded(run)

    def logout(self, body: Dict[str, Any], ip_address: str = '') -> Response:
        def run() -> Response:
            self._coordinator.logout(_field(body, 'sessionToken') or '', ip_address)
            return {'success': True}
        return self._guarded(run)

    def logout_all(self, token: str, ip_address: str = '') -> Response:
        def run() -> Response:
            count = self._coordinator.logout_everywhere(token, ip_address)
            return {'success': True, 'revoked': count}
        return self._guarded(run)

    # ========================================================================
    # Two-Factor
    # ========================================================================

    def setup_2fa(self, token: str, ip_address: str = '') -> Response:
        def run() -> Response:
            admin = self._coordinator.validate_session(token)
            setup = self._coordinator.two_factor.setup(admin.user_id)
            self._coordinator.audit.log(admin.user_id, AuditAction.SETUP_2FA, {}, ip_address)
            response = {'success': True}
            response.update(setup.to_dict())
            return response
        return self._guarded(run)

    def enable_2fa(self, token: str, body: Dict[str, Any],
                   ip_address: str = '') -> Response:
        def run() -> Response:
            admin = self._coordinator.validate_session(token)
            code = _field(body, 'totpCode') or ''
            if not self._coordinator.two_factor.enable(admin.user_id, code):
                raise InvalidTwoFactor(reason='enable confirmation failed')
            self._coordinator.audit.log(admin.user_id, AuditAction.ENABLE_2FA,
                                        {'enabled': True}, ip_address)
            return {'success': True}
        return self._guarded(run)

    def disable_2fa(self, token: str, body: Dict[str, Any],
                    ip_address: str = '') -> Response:
        def run() -> Response:
            self._coordinator.disable_two_factor(
                token, (body or {}).get('password') or '', ip_address)
            return {'success': True}
        return self._guarded(run)

    def regenerate_backup_codes(self, token: str, body: Dict[str, Any],
                                ip_address: str = '') -> Response:
        def run() -> Response:
            codes = self._coordinator.regenerate_backup_codes(
                token, (body or {}).get('password') or '', ip_address)
            return {'success': True, 'backupCodes': codes}
        return self._guarded(run)

    def two_factor_status(self, token: str) -> Response:
        def run() -> Response:
            admin = self._coordinator.validate_session(token)
            response = {'success': True}
            response.update(self._coordinator.two_factor.status(admin.user_id))
            return response
        return self._guarded(run)

    # ========================================================================
    # Middleware / privileged actions
    # ========================================================================

    def validate_session(self, token: str) -> AdminCredential:
        """Credential for ``token``; raises SessionInvalid or Unauthorized."""
        return self._coordinator.validate_session(token)

    def log_action(self, token: str, action: str,
                   details: Optional[Dict[str, Any]] = None,
                   ip_address: str = '') -> Response:
        def run() -> Response:
            self._coordinator.log_action(token, action, details, ip_address)
            return {'success': True}
        return self._guarded(run)

    def session_stats(self, token: str) -> Response:
        def run() -> Response:
            self._coordinator.validate_session(token)
            return {
                'success': True,
                'activeAdminSessions': self._coordinator.sessions.active_session_count(),
            }
        return self._guarded(run)


def admin_required(api: AdminAuthAPI, super_admin: bool = False):
    """
    Decorator for privileged route handlers.

    The wrapped handler is called as ``handler(token, ...)`` and receives
    the validated AdminCredential in place of the token; rejections are
    returned as error responses without calling it.

    Example:
        >>> @admin_required(api)
        ... def list_users(admin, page=1):
        ...     return {'success': True, 'requestedBy': admin.email}
    """
    def decorator(handler):
        @functools.wraps(handler)
        def wrapper(token: str, *args, **kwargs):
            try:
                admin = api.coordinator.require_admin(token, super_admin=super_admin)
            except AuthError as exc:
                return exc.to_response()
            return handler(admin, *args, **kwargs)
        return wrapper
    return decorator
