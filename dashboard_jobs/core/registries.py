from typing import Generic, Protocol, TypeVar

from pydantic import BaseModel

# Base registry implementation
T = TypeVar("T")
PayloadT = TypeVar("PayloadT", bound=BaseModel)


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def items(self) -> list[tuple[str, T]]:
        return list(self._implementations.items())

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job Registry - background processing handlers
class JobHandler(Protocol[PayloadT]):
    """Protocol for job handlers invoked by the job processor.

    Each handler declares the pydantic model its payload must validate
    against; the processor deserializes the envelope payload into that model
    before calling ``handle``, so handlers never see untyped dictionaries.
    """

    payload_model: type[PayloadT]

    async def handle(self, payload: PayloadT) -> None:
        """
        Handle one job.

        Raising any exception marks the attempt as failed; the processor
        then schedules a retry or dead-letters the envelope.
        """
        ...


class JobRegistry(Registry[JobHandler]):
    """Registry mapping job types to their handlers."""

    def __init__(self):
        super().__init__("Job")
