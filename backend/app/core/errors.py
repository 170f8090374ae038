from __future__ import annotations


class DomainError(Exception):
    """Base for errors raised by the demand/report services."""


class ValidationError(DomainError):
    """Rejected input; nothing was mutated."""


class NotFoundError(DomainError):
    pass


class ConflictError(DomainError):
    """The record changed since the caller read it."""


class ChannelDeliveryError(DomainError):
    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class DataReadError(DomainError):
    """The record store could not be read."""


_HTTP_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    ChannelDeliveryError: 502,
    DataReadError: 503,
}


def http_status_for(e: DomainError) -> int:
    for cls, status in _HTTP_STATUS.items():
        if isinstance(e, cls):
            return status
    return 500
