from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

import uvicorn
from rich.console import Console
from rich.table import Table

from .config import get_log_level, get_server_config
from .constants import PRIORITIES, VALID_BACKENDS
from .errors import KanbanError
from .events.bus import EventBus
from .logging_utils import configure_logging
from .server.app import create_app
from .services.mutations import BoardService
from .services.seed import seed_demo_data
from .storage.container import Container


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _ctx(args: argparse.Namespace) -> tuple[Container, BoardService]:
    container = Container(_resolve_project_dir(args.project_dir), backend=args.backend)
    service = BoardService(container.store, EventBus(container.events))
    return container, service


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + '\n')


def _seed(args: argparse.Namespace) -> int:
    _, service = _ctx(args)
    _emit({'seeded': seed_demo_data(service)})
    return 0


def _board_list(args: argparse.Namespace) -> int:
    _, service = _ctx(args)
    boards = service.list_boards(args.workspace_id)
    _emit({'boards': [b.to_dict() for b in boards]})
    return 0


def _board_create(args: argparse.Namespace) -> int:
    _, service = _ctx(args)
    board = service.create_board(args.name, args.workspace_id, with_default_columns=not args.empty)
    _emit({'board': board.to_dict()})
    return 0


def _board_show(args: argparse.Namespace) -> int:
    _, service = _ctx(args)
    aggregate = service.load_board(args.board_id)
    if args.json:
        _emit(aggregate.to_dict())
        return 0
    table = Table(title=f'{aggregate.board.name} (#{aggregate.board.id})')
    for view in aggregate.columns:
        table.add_column(f'{view.column.order}. {view.column.name}', overflow='fold')
    depth = max((len(view.tasks) for view in aggregate.columns), default=0)
    for row in range(depth):
        cells = []
        for view in aggregate.columns:
            if row < len(view.tasks):
                task = view.tasks[row]
                mark = '[x] ' if task.is_completed else ''
                cells.append(f'{mark}#{task.id} {task.title} [{task.priority}]')
            else:
                cells.append('')
        table.add_row(*cells)
    Console().print(table)
    return 0


def _column_create(args: argparse.Namespace) -> int:
    _, service = _ctx(args)
    column = service.create_column(args.name, args.board_id)
    _emit({'column': column.to_dict()})
    return 0


def _column_delete(args: argparse.Namespace) -> int:
    _, service = _ctx(args)
    service.delete_column(args.column_id)
    _emit({'deleted': True, 'column_id': args.column_id})
    return 0


def _task_create(args: argparse.Namespace) -> int:
    _, service = _ctx(args)
    task = service.create_task(
        args.title,
        args.column_id,
        description=args.description,
        priority=args.priority,
        category=args.category,
        assignee_id=args.assignee_id,
        due_date=args.due_date,
    )
    _emit({'task': task.to_dict()})
    return 0


def _task_list(args: argparse.Namespace) -> int:
    _, service = _ctx(args)
    tasks = service.list_tasks(args.column_id)
    _emit({'tasks': [t.to_dict() for t in tasks]})
    return 0


def _task_move(args: argparse.Namespace) -> int:
    _, service = _ctx(args)
    task = service.move_task(args.task_id, args.column_id, args.index)
    _emit({'task': task.to_dict()})
    return 0


def _task_delete(args: argparse.Namespace) -> int:
    _, service = _ctx(args)
    service.delete_task(args.task_id)
    _emit({'deleted': True, 'task_id': args.task_id})
    return 0


def _server(args: argparse.Namespace) -> int:
    project_dir = _resolve_project_dir(args.project_dir)
    container = Container(project_dir, backend=args.backend)
    if args.seed:
        seed_demo_data(BoardService(container.store, EventBus(container.events)))
    server_cfg = get_server_config(container.config)
    app = create_app(container=container)
    uvicorn.run(app, host=args.host or server_cfg['host'], port=args.port or server_cfg['port'])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Kanban board service CLI')
    parser.add_argument('--project-dir', default=None, help='Directory holding .kanban_sync/ (default: current working directory)')
    parser.add_argument('--backend', default=None, choices=sorted(VALID_BACKENDS), help='Storage backend override')
    parser.add_argument('--log-level', default=None, help='Log level (default: KANBAN_SYNC_LOG_LEVEL or INFO)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    server = subparsers.add_parser('server', help='Start the web server')
    server.add_argument('--host', default=None)
    server.add_argument('--port', default=None, type=int)
    server.add_argument('--seed', action='store_true', help='Load demo data before serving')
    server.set_defaults(func=_server)

    seed = subparsers.add_parser('seed', help='Load demo users, workspaces, and a sample board')
    seed.set_defaults(func=_seed)

    board = subparsers.add_parser('board', help='Manage boards')
    board_sub = board.add_subparsers(dest='board_cmd', required=True)
    blist = board_sub.add_parser('list', help='List boards')
    blist.add_argument('--workspace-id', type=int, default=None)
    blist.set_defaults(func=_board_list)
    bshow = board_sub.add_parser('show', help='Show a board with its columns and tasks')
    bshow.add_argument('board_id', type=int)
    bshow.add_argument('--json', action='store_true', help='Print JSON instead of a table')
    bshow.set_defaults(func=_board_show)
    bcreate = board_sub.add_parser('create', help='Create a board')
    bcreate.add_argument('name')
    bcreate.add_argument('--workspace-id', type=int, required=True)
    bcreate.add_argument('--empty', action='store_true', help='Skip the default To Do / In Progress / Done columns')
    bcreate.set_defaults(func=_board_create)

    column = subparsers.add_parser('column', help='Manage columns')
    column_sub = column.add_subparsers(dest='column_cmd', required=True)
    ccreate = column_sub.add_parser('create', help='Append a column to a board')
    ccreate.add_argument('name')
    ccreate.add_argument('--board-id', type=int, required=True)
    ccreate.set_defaults(func=_column_create)
    cdelete = column_sub.add_parser('delete', help='Delete a column and its tasks')
    cdelete.add_argument('column_id', type=int)
    cdelete.set_defaults(func=_column_delete)

    task = subparsers.add_parser('task', help='Manage tasks')
    task_sub = task.add_subparsers(dest='task_cmd', required=True)
    tcreate = task_sub.add_parser('create', help='Append a task to a column')
    tcreate.add_argument('title')
    tcreate.add_argument('--column-id', type=int, required=True)
    tcreate.add_argument('--description', default=None)
    tcreate.add_argument('--priority', default='medium', choices=list(PRIORITIES))
    tcreate.add_argument('--category', default='feature')
    tcreate.add_argument('--assignee-id', type=int, default=None)
    tcreate.add_argument('--due-date', default=None)
    tcreate.set_defaults(func=_task_create)
    tlist = task_sub.add_parser('list', help='List the tasks of a column in order')
    tlist.add_argument('--column-id', type=int, required=True)
    tlist.set_defaults(func=_task_list)
    tmove = task_sub.add_parser('move', help='Move a task to a position in a column')
    tmove.add_argument('task_id', type=int)
    tmove.add_argument('--column-id', type=int, required=True)
    tmove.add_argument('--index', type=int, required=True)
    tmove.set_defaults(func=_task_move)
    tdelete = task_sub.add_parser('delete', help='Delete a task and its comments')
    tdelete.add_argument('task_id', type=int)
    tdelete.set_defaults(func=_task_delete)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level or get_log_level({}))
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return int(handler(args) or 0)
    except KanbanError as exc:
        sys.stderr.write(json.dumps({'error': exc.to_dict(), 'status': exc.status_code}) + '\n')
        return 1
