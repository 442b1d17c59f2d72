from abc import ABC, abstractmethod


class BaseFeed(ABC):
    @abstractmethod
    def fetch(self) -> bytes:
        """Raw feed document as served by the source."""
        pass
