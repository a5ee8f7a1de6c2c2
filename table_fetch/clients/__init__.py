from abc import ABC, abstractmethod


class ClientInterface(ABC):
    """Base interface class for implementing client connections.

    This abstract class defines the required methods that any client implementation
    must provide for establishing and managing connections to data sources.
    """

    @abstractmethod
    async def load(self, *args, **kwargs):
        """Establish the client connection."""

    @abstractmethod
    async def close(self):
        """Release the client and any pooled resources."""
