from .loader import BoardAggregate, BoardLoader, ColumnView
from .mutations import BoardService
from .seed import seed_demo_data

__all__ = ["BoardAggregate", "BoardLoader", "BoardService", "ColumnView", "seed_demo_data"]
