"""Error types raised by loaders and the catalog batch functions."""

from __future__ import annotations


class LoaderError(Exception):
    """Base class for loader failures."""


class InvalidKeyError(LoaderError, ValueError):
    """Raised when ``load`` is called with a key it cannot index."""


class BatchFunctionContractError(LoaderError):
    """The batch function broke the one-result-per-key contract.

    Raised into every waiter of the batch; positions are never guessed.
    """

    def __init__(self, loader: str, expected: int, received: int | None, detail: str = "") -> None:
        self.loader = loader
        self.expected = expected
        self.received = received
        if detail:
            message = f"{loader}: batch function {detail}"
        else:
            message = (
                f"{loader}: batch function must return one result per key. "
                f"Expected {expected} values, received {received}."
            )
        super().__init__(message)


class EntityNotFoundError(LookupError):
    """Per-key result for a catalog lookup that matched no row."""

    def __init__(self, entity: str, key: str) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key!r} not found")
