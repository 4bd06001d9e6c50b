"""Deletion sampling policy."""

from dataclasses import dataclass

from ..config.settings import Settings


@dataclass(frozen=True)
class DeletionPolicy:
    """
    Decides per simulated client whether the Delete step runs.

    Clients with client_id % modulus == remainder run the full
    Set/Get/Delete cycle; all others stop after Get.
    """
    modulus: int = 5
    remainder: int = 0

    def __post_init__(self):
        if self.modulus <= 0:
            raise ValueError(f"modulus must be positive, got {self.modulus}")
        if not 0 <= self.remainder < self.modulus:
            raise ValueError(f"remainder must be in [0, {self.modulus})")

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeletionPolicy":
        return cls(modulus=settings.DELETE_MODULUS, remainder=settings.DELETE_REMAINDER)

    def should_delete(self, client_id: int) -> bool:
        return client_id % self.modulus == self.remainder
