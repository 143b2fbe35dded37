"""Operation result domain models."""

from pydantic import BaseModel, ConfigDict


class ErrorDetails(BaseModel):
    """Details about a failed store operation."""

    model_config = ConfigDict(frozen=True)

    kind: str
    reason: str

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorDetails":
        """Describe an exception by its type name and message."""
        return cls(kind=type(error).__name__, reason=str(error) or type(error).__name__)


class DeleteResult(BaseModel):
    """Outcome of deleting a message.

    The local removal is never rolled back, so ``removed_locally`` can be True
    while ``remote_deleted`` is False and ``error`` is set.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str
    removed_locally: bool
    remote_deleted: bool
    error: ErrorDetails | None = None
