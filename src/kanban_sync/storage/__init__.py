from .container import Container
from .file_store import FileBoardStore, FileEventRepository
from .interfaces import BoardStore, EventRepository
from .memory import MemoryBoardStore, MemoryEventRepository
from .transaction import StoreTransaction

__all__ = [
    "BoardStore",
    "Container",
    "EventRepository",
    "FileBoardStore",
    "FileEventRepository",
    "MemoryBoardStore",
    "MemoryEventRepository",
    "StoreTransaction",
]
