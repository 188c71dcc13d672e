"""
In-memory Store used by tests and local runs (STORE_BACKEND=memory).

Records are kept as stored items (the same dicts the DynamoDB backend writes)
so every read goes through from_item(), and a whole transaction is checked and
applied under one lock.
"""
import copy
import threading
from typing import Any, Dict, List, Optional

from .errors import Conflict
from .logging import logger
from .models import Contribution, Project, Task, TaskStatusChange, Validation, utc_now
from .store import Store, Transaction


class InMemoryTransaction(Transaction):

    def __init__(self, store: 'InMemoryStore'):
        self._store = store
        self._ops: List[Dict[str, Any]] = []

    def _put(self, table: str, key: str, item: Dict[str, Any]) -> None:
        self._ops.append({'op': 'put', 'table': table, 'key': key, 'item': copy.deepcopy(item)})

    def put_task(self, task: Task) -> None:
        self._put('tasks', task.task_id, task.to_item())

    def put_contribution(self, contribution: Contribution) -> None:
        self._put('contributions', contribution.contribution_id, contribution.to_item())

    def put_validation(self, validation: Validation) -> None:
        self._put('validations', validation.validation_id, validation.to_item())

    def put_project(self, project: Project) -> None:
        self._put('projects', project.project_id, project.to_item())

    def put_status_change(self, change: TaskStatusChange) -> None:
        self._put('history', change.change_id, change.to_item())

    def update_task(self, task_id, expected, status, assignee_id=None, updated_at=None) -> None:
        changes = {'status': status.value, 'updatedAt': updated_at or utc_now()}
        if assignee_id is not None:
            changes['assigneeId'] = assignee_id
        self._ops.append({
            'op': 'update',
            'table': 'tasks',
            'key': task_id,
            'expected': {s.value for s in expected},
            'changes': changes,
        })

    def update_contribution(self, contribution_id, expected, status, payload=None, updated_at=None) -> None:
        changes = {'status': status.value, 'updatedAt': updated_at or utc_now()}
        if payload is not None:
            changes['payload'] = copy.deepcopy(payload)
        self._ops.append({
            'op': 'update',
            'table': 'contributions',
            'key': contribution_id,
            'expected': {s.value for s in expected},
            'changes': changes,
        })

    def commit(self) -> None:
        if not self._ops:
            return

        with self._store._lock:
            # Cancellation reasons mirror DynamoDB: one entry per staged write
            reasons = [self._store._check(op) for op in self._ops]
            if any(r['Code'] != 'None' for r in reasons):
                raise Conflict('Transaction cancelled: record changed concurrently or already exists', reasons)

            for op in self._ops:
                self._store._apply(op)

        self._ops = []


class InMemoryStore(Store):

    def __init__(self):
        self._lock = threading.RLock()
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {
            'tasks': {},
            'contributions': {},
            'validations': {},
            'projects': {},
            'history': {},
        }
        # contributionId -> validationIds in insertion order
        self._validation_log: Dict[str, List[str]] = {}
        # taskId -> changeIds in insertion order
        self._history_log: Dict[str, List[str]] = {}

    # -- write path -------------------------------------------------------

    def transaction(self) -> Transaction:
        return InMemoryTransaction(self)

    def _check(self, op: Dict[str, Any]) -> Dict[str, str]:
        existing = self._tables[op['table']].get(op['key'])
        if op['op'] == 'put':
            if existing is not None:
                return {'Code': 'ConditionalCheckFailed', 'Message': f"{op['key']} already exists"}
        elif existing is None or existing.get('status') not in op['expected']:
            return {'Code': 'ConditionalCheckFailed', 'Message': f"{op['key']} status changed"}
        return {'Code': 'None'}

    def _apply(self, op: Dict[str, Any]) -> None:
        table = self._tables[op['table']]
        if op['op'] == 'put':
            table[op['key']] = op['item']
            if op['table'] == 'validations':
                self._validation_log.setdefault(op['item']['contributionId'], []).append(op['key'])
            elif op['table'] == 'history':
                self._history_log.setdefault(op['item']['taskId'], []).append(op['key'])
        else:
            table[op['key']].update(op['changes'])

    def batch_put_tasks(self, tasks: List[Task], changes: List[TaskStatusChange]) -> bool:
        with self._lock:
            for task in tasks:
                self._tables['tasks'][task.task_id] = copy.deepcopy(task.to_item())
            for change in changes:
                self._apply({'op': 'put', 'table': 'history', 'key': change.change_id, 'item': change.to_item()})
        logger.info(f"Successfully wrote {len(tasks)} items to tasks")
        return True

    # -- read path --------------------------------------------------------

    def _read(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._tables[table].get(key)
            return copy.deepcopy(item) if item is not None else None

    def _scan(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(item) for item in self._tables[table].values()]

    def get_task(self, task_id: str) -> Optional[Task]:
        item = self._read('tasks', task_id)
        return Task.from_item(item) if item else None

    def query_tasks(self, task_type=None, language=None, status=None, project_id=None) -> List[Task]:
        filters = {'type': task_type, 'language': language, 'status': status, 'projectId': project_id}
        wanted = {k: getattr(v, 'value', v) for k, v in filters.items() if v is not None}
        items = [item for item in self._scan('tasks')
                 if all(item.get(k) == v for k, v in wanted.items())]
        items.sort(key=lambda item: item.get('createdAt', ''))
        return [Task.from_item(item) for item in items]

    def get_contribution(self, contribution_id: str) -> Optional[Contribution]:
        item = self._read('contributions', contribution_id)
        return Contribution.from_item(item) if item else None

    def _contributions_where(self, attr: str, value: str) -> List[Contribution]:
        items = [item for item in self._scan('contributions') if item.get(attr) == value]
        items.sort(key=lambda item: item.get('createdAt', ''))
        return [Contribution.from_item(item) for item in items]

    def contributions_for_worker(self, worker_id: str) -> List[Contribution]:
        return self._contributions_where('workerId', worker_id)

    def contributions_for_task(self, task_id: str) -> List[Contribution]:
        return self._contributions_where('taskId', task_id)

    def validations_for(self, contribution_id: str) -> List[Validation]:
        with self._lock:
            ids = list(self._validation_log.get(contribution_id, []))
            return [Validation.from_item(copy.deepcopy(self._tables['validations'][i])) for i in ids]

    def task_history(self, task_id: str) -> List[TaskStatusChange]:
        with self._lock:
            ids = list(self._history_log.get(task_id, []))
            return [TaskStatusChange.from_item(copy.deepcopy(self._tables['history'][i])) for i in ids]

    def get_project(self, project_id: str) -> Optional[Project]:
        item = self._read('projects', project_id)
        return Project.from_item(item) if item else None

    def list_projects(self, owner_id: Optional[str] = None) -> List[Project]:
        items = [item for item in self._scan('projects')
                 if owner_id is None or item.get('ownerId') == owner_id]
        items.sort(key=lambda item: item.get('createdAt', ''))
        return [Project.from_item(item) for item in items]
