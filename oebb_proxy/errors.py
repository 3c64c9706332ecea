from typing import Optional


class AcquisitionError(Exception):
    """Base for failures inside a single acquisition strategy."""


class UpstreamUnavailable(AcquisitionError):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status


class OutboundRateLimited(UpstreamUnavailable):
    def __init__(self, retry_after: Optional[int]):
        super().__init__(429, "outbound rate limited")
        self.retry_after = retry_after


class UnparseableResponse(AcquisitionError):
    def __init__(self, message: str):
        super().__init__(message)


class Busy(Exception):
    def __init__(self, retry_after: Optional[int] = None):
        super().__init__("fetch already in progress")
        self.retry_after = retry_after


class ConfigurationMissing(Exception):
    def __init__(self, message: str):
        super().__init__(message)
