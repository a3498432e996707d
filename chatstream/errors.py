"""Error taxonomy for provider calls.

Only ProviderTransportError, ProviderHttpError and MissingApiKeyError end a
query. MalformedFrameError and EmptyResponseError are raised and handled
inside the parsers.
"""


class ProviderError(Exception):
    """Base class for all provider failures."""
    category = "provider_error"


class ProviderTransportError(ProviderError):
    """The request never produced a usable HTTP response (DNS, TLS, timeout)."""
    category = "transport"


class ProviderHttpError(ProviderError):
    """The provider answered with a non-2xx status."""
    category = "http_status"

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        message = f"API returned error code {status}"
        if body:
            message += f": {body}"
        super().__init__(message)


class MalformedFrameError(ProviderError):
    """A single stream frame or response object could not be decoded."""
    category = "malformed_frame"


class EmptyResponseError(ProviderError):
    """A batch provider returned no extractable text."""
    category = "empty_response"


class MissingApiKeyError(ProviderError):
    """The configured API key is empty or still the placeholder value."""
    category = "credentials"
