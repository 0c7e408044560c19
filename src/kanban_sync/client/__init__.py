from .api_client import BoardApiClient
from .reducers import Action, BoardState, reduce
from .store import ClientStateStore, Notification

__all__ = ["Action", "BoardApiClient", "BoardState", "ClientStateStore", "Notification", "reduce"]
