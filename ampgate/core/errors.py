"""Project error hierarchy."""


class AmpGateError(Exception):
    """Base error."""

    code = "ampgate_error"
    status_code = 500


class ConfigurationMissingError(AmpGateError):
    """Raised when the profile or credential for the selected destination is absent."""

    code = "configuration_missing"
    status_code = 503


class SecurityRejectedError(AmpGateError):
    """Raised when a destination URL fails the SSRF policy."""

    code = "security_rejected"
    status_code = 403


class UpstreamFailureError(AmpGateError):
    """Raised on a non-success status or transport error from an outbound call."""

    code = "upstream_failure"
    status_code = 502


class SizeLimitExceededError(AmpGateError):
    """Raised when a fetched body grows past its byte ceiling."""

    code = "size_limit_exceeded"
    status_code = 502


class DecodeFailureError(AmpGateError):
    """Raised on non-UTF-8 text or malformed JSON where JSON is mandatory."""

    code = "decode_failure"
    status_code = 400


class UnknownLocalToolError(AmpGateError):
    code = "unknown_local_tool"
    status_code = 404
