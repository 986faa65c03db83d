class NexaError(Exception):
    """Base exception for client-side errors"""
    pass


class BackendUnreachableError(NexaError):
    """Network failure or timeout talking to the API"""
    pass


class NexaAPIError(NexaError):
    """API answered with an error status"""

    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


class BadRequestError(NexaAPIError):
    pass


class RestrictedError(NexaAPIError):
    pass


class NotFoundError(NexaAPIError):
    pass


class ServiceUnavailableError(NexaAPIError):
    pass


class SendBlockedError(NexaError):
    """Send refused by the cooldown / spam guard"""

    def __init__(self, reason: str, retry_after: float):
        super().__init__(f"{reason} (retry in {retry_after:.0f}s)")
        self.reason = reason
        self.retry_after = retry_after


STATUS_ERRORS = {
    400: BadRequestError,
    403: RestrictedError,
    404: NotFoundError,
    503: ServiceUnavailableError,
}
