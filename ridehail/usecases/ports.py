from __future__ import annotations

from typing import Protocol, runtime_checkable

from ridehail.domain.models import EstimateRequest, UpfrontFare


@runtime_checkable
class UpfrontFareSourceProtocol(Protocol):
    """
    Назначение:
        Контракт источника фиксированных цен для сценария котировок.
    """

    def upfront_fare(self, request: EstimateRequest | None) -> UpfrontFare: ...


__all__ = ["UpfrontFareSourceProtocol"]
