from .models import Board, Column, Comment, Task, Team, User, UserTeam, Workspace

__all__ = [
    "Board",
    "Column",
    "Comment",
    "Task",
    "Team",
    "User",
    "UserTeam",
    "Workspace",
]
