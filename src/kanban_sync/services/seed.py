"""Demo data: four users, three workspaces, and one populated board."""

from __future__ import annotations

from typing import Any

from loguru import logger

from ..errors import ValidationError
from .mutations import BoardService

DEMO_PASSWORD = "password123"

DEMO_USERS = (
    ("alex", "https://images.unsplash.com/photo-1472099645785-5658abf4ff4e"),
    ("sarah", "https://images.unsplash.com/photo-1550525811-e5869dd03032"),
    ("michael", "https://images.unsplash.com/photo-1500648767791-00dcc994a43e"),
    ("olivia", "https://images.unsplash.com/photo-1438761681033-6461ffad8d80"),
)

# (workspace name, owner username)
DEMO_WORKSPACES = (("Product Team", "alex"), ("Marketing", "alex"), ("Engineering", "michael"))

# (team name, [(username, role), ...]); all teams live in the first workspace
DEMO_TEAMS = (
    ("Frontend", [("alex", "admin"), ("sarah", "member")]),
    ("Design Team", [("sarah", "admin")]),
    ("QA Team", [("michael", "admin"), ("olivia", "member")]),
)

DEMO_COLUMNS = ("To Do", "In Progress", "Code Review", "Done")

# column name -> [(title, description, assignee, priority, due date, category, done)]
DEMO_TASKS: dict[str, list[tuple[str, str, str, str, str, str, bool]]] = {
    "To Do": [
        ("Implement user authentication", "Set up Firebase Auth for email/password and Google login", "alex", "high", "2023-05-10", "feature", False),
        ("Design dashboard layout", "Create responsive layout for main dashboard view", "sarah", "medium", "2023-05-12", "ui", False),
        ("Set up Firebase Firestore", "Configure database rules and initial collections", "alex", "low", "2023-05-15", "api", False),
    ],
    "In Progress": [
        ("Research drag-and-drop libraries", "Evaluate React DnD vs. react-beautiful-dnd", "sarah", "high", "2023-05-08", "research", False),
        ("Create Redux store", "Set up action creators and reducers", "michael", "medium", "2023-05-11", "backend", False),
        ("Implement responsive UI", "Create mobile-friendly layout", "sarah", "medium", "2023-05-14", "frontend", False),
    ],
    "Code Review": [
        ("Implement drag and drop", "Integrate React DnD for task management", "alex", "high", "2023-05-09", "feature", False),
        ("Fix Firebase authentication issues", "Resolve Google sign-in redirect errors", "alex", "medium", "2023-05-09", "bug", False),
    ],
    "Done": [
        ("Project setup", "Initialize React project with create-react-app", "michael", "low", "2023-05-05", "ui", True),
        ("Install required dependencies", "Set up Redux, Firebase, and React DnD packages", "alex", "low", "2023-05-06", "frontend", True),
    ],
}

# (task title, author, content)
DEMO_COMMENTS = (
    ("Implement user authentication", "alex", "Let's use Firebase Auth for this project"),
    ("Design dashboard layout", "sarah", "I'll start on the UI design tomorrow"),
    ("Set up Firebase Firestore", "michael", "We need to make sure security rules are properly configured"),
)


def seed_demo_data(service: BoardService) -> dict[str, Any]:
    """Populate an empty store with the demo workspace.

    Returns a summary with the ids that were created.

    Raises:
        ValidationError: the store already contains users.
    """
    if service.list_users():
        raise ValidationError("Store already contains data; refusing to seed")

    users = {
        name: service.create_user(name, f"{name}@example.com", DEMO_PASSWORD, avatar_url=avatar)
        for name, avatar in DEMO_USERS
    }
    workspaces = [service.create_workspace(name, users[owner].id) for name, owner in DEMO_WORKSPACES]
    product = workspaces[0]
    for team_name, members in DEMO_TEAMS:
        team = service.create_team(team_name, product.id)
        for username, role in members:
            service.add_user_to_team(users[username].id, team.id, role)

    board = service.create_board("Product Team Board", product.id)
    task_ids: dict[str, int] = {}
    for column_name in DEMO_COLUMNS:
        column = service.create_column(column_name, board.id)
        for title, description, assignee, priority, due, category, done in DEMO_TASKS[column_name]:
            task = service.create_task(
                title,
                column.id,
                description=description,
                assignee_id=users[assignee].id,
                priority=priority,
                due_date=due,
                category=category,
                is_completed=done,
            )
            task_ids[title] = task.id
    for title, author, content in DEMO_COMMENTS:
        service.create_comment(content, task_ids[title], users[author].id)

    logger.info("Seeded demo board {} with {} tasks", board.id, len(task_ids))
    return {
        "users": {name: user.id for name, user in users.items()},
        "workspaces": [w.id for w in workspaces],
        "board_id": board.id,
        "tasks": len(task_ids),
    }
