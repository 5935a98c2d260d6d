import base64
import binascii
import logging
import secrets
from typing import Optional, Tuple

from fastapi.security.utils import get_authorization_scheme_param

from cdn_server.config import Settings
from cdn_server.logger_config import structured_log
from cdn_server.monitor import FailureMonitor


def parse_basic_auth(header: Optional[str]) -> Optional[Tuple[str, str]]:
    """Extract the username/password pair from a Basic Authorization header."""
    scheme, param = get_authorization_scheme_param(header)
    if not param or scheme.lower() != "basic":
        return None

    try:
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, separator, password = decoded.partition(":")
    if not separator:
        return None
    return username, password


class Authenticator:
    def __init__(self, settings: Settings, logger: logging.Logger, monitor: Optional[FailureMonitor] = None):
        self.settings = settings
        self.logger = logger
        self.monitor = monitor

    def _credentials_match(self, credentials: Optional[Tuple[str, str]]) -> bool:
        if credentials is None:
            return False
        username, password = credentials
        username_ok = secrets.compare_digest(username.encode(), self.settings.username.encode())
        password_ok = secrets.compare_digest(password.encode(), self.settings.password.encode())
        return username_ok and password_ok

    def authenticate(self, header: Optional[str], method: str = "", path: str = "") -> bool:
        """Check a request's Authorization header against the configured credentials.

        Args:
            header: Raw value of the Authorization header, if any
            method: HTTP method of the request, used for logging
            path: URL path of the request, used for logging

        Returns:
            bool: True if authentication is disabled or the credentials match
        """
        if not self.settings.require_auth:
            return True

        if self._credentials_match(parse_basic_auth(header)):
            self.logger.info(structured_log(
                "Authentication successful",
                event="auth_succeeded",
                method=method,
                path=path,
            ))
            if self.monitor:
                self.monitor.pass_()
            return True

        self.logger.warning(structured_log(
            "Authentication failed",
            event="auth_failed",
            method=method,
            path=path,
        ))
        if self.monitor:
            self.monitor.fail()
        return False
