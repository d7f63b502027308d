"""DTOs returned by the queue engine."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from ...domain.requests.entities import SongRequest
from ...domain.shared.exceptions import DomainError
from ...domain.shared.types import NonNegativeInt


class SubmitResult(BaseModel):
    """Synchronous answer given to a submitter."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    accepted: bool
    request: SongRequest | None = None
    position: NonNegativeInt = 0
    queue_length: NonNegativeInt = 0
    error: DomainError | None = None

    @property
    def request_id(self) -> str | None:
        return self.request.id if self.request else None

    @property
    def reason(self) -> str:
        return self.error.message if self.error else ""

    @classmethod
    def accept(cls, request: SongRequest, position: int, queue_length: int) -> SubmitResult:
        return cls(accepted=True, request=request, position=position, queue_length=queue_length)

    @classmethod
    def reject(cls, error: DomainError) -> SubmitResult:
        return cls(accepted=False, error=error)
