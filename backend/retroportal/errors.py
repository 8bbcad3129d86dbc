"""Error taxonomy shared by the pages and the image pipeline.

Every error carries the status code it maps to and a message that is safe to
show to the client. Upstream details stay in the exception chain and the logs.
"""
from typing import Optional


class PortalError(Exception):
    status_code = 500
    public_message = "Something went wrong"

    def __init__(self, detail: str = "", *, message: Optional[str] = None):
        super().__init__(detail or self.public_message)
        self.detail = detail
        self.message = message or self.public_message


class InvalidIdentifier(PortalError):
    status_code = 400
    public_message = "Invalid identifier"


class UnsupportedFormat(PortalError):
    status_code = 400
    public_message = "Unsupported image format"


class InvalidDimension(PortalError):
    status_code = 400
    public_message = "Requested image size is too large"


class ItemNotFound(PortalError):
    status_code = 404
    public_message = "Item not found"

    def __init__(self, identifier: str):
        super().__init__(f"Item not found: {identifier}")
        self.identifier = identifier


class UpstreamFetchError(PortalError):
    status_code = 502
    public_message = "Image unavailable"


class ConverterSpawnError(PortalError):
    status_code = 502
    public_message = "Image conversion unavailable"


class ConverterRuntimeError(PortalError):
    status_code = 502
    public_message = "Image conversion failed"


class StreamWriteError(PortalError):
    # Client went away; nothing is sent back.
    status_code = 499
    public_message = "Client disconnected"


class UpstreamApiError(PortalError):
    status_code = 502
    public_message = "The archive is not responding right now. Please try again later."
