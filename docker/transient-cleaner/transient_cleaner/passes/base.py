from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..models import DataStore


@dataclass
class PassResult:
    rows_removed: int


class CleanupPass(ABC):
    name = ""
    category = "domain"

    @abstractmethod
    def run(self, data_store: DataStore, *, now: int, batch_size: int) -> PassResult:
        """Delete the rows this pass owns and report how many went away."""
