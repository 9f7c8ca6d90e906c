"""Custom exceptions for the OpenSubtitles proxy"""

from typing import Any, Dict, Optional


class OpenSubtitlesProxyError(Exception):
    """Base exception for the OpenSubtitles proxy"""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        self.details = details


class ConfigError(OpenSubtitlesProxyError):
    """Raised when a mandatory setting is missing"""
    pass


class AuthError(OpenSubtitlesProxyError):
    """Raised when the upstream login is rejected"""
    pass


class MissingCredentialsError(ConfigError, AuthError):
    """Raised when a login is needed but no username/password is configured"""
    pass


class TransportError(OpenSubtitlesProxyError):
    """Raised when the upstream API cannot be reached"""
    status_code = 502


class UpstreamError(OpenSubtitlesProxyError):
    """Raised when the upstream API answers with a non-2xx status"""
    pass


class FileFetchError(UpstreamError):
    """Raised when the signed subtitle link cannot be fetched"""
    pass


class InvalidRequestError(OpenSubtitlesProxyError):
    """Raised when client input is malformed"""
    status_code = 400


class NotFoundError(OpenSubtitlesProxyError):
    """Raised for unmapped routes"""
    status_code = 404
