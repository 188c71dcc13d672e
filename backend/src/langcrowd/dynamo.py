"""
DynamoDB Store: conditional transactional writes and indexed reads.

Tables (names from config):
- TASKS_TABLE          pk taskId,          GSI StatusIndex (status, createdAt)
- CONTRIBUTIONS_TABLE  pk contributionId,  GSIs byWorker (workerId), byTask (taskId)
- VALIDATIONS_TABLE    pk validationId,    GSI byContribution (contributionId, createdAt)
- PROJECTS_TABLE       pk projectId
- TASK_HISTORY_TABLE   pk changeId,        GSI byTask (taskId, changedAt)
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from .config import config
from .errors import Conflict
from .logging import logger
from .models import Contribution, Project, Task, TaskStatusChange, Validation, utc_now
from .store import Store, Transaction

# DynamoDB caps a single TransactWriteItems call at 100 actions
MAX_TRANSACTION_ITEMS = 100

_serializer = TypeSerializer()


def to_dynamo_value(value: Any) -> Any:
    """Convert floats (rejected by DynamoDB) to Decimal, recursively."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_dynamo_value(v) for v in value]
    return value


def serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Marshal a plain item into the low-level attribute-value format."""
    return {k: _serializer.serialize(to_dynamo_value(v)) for k, v in item.items() if v is not None}


def _status_condition(expected) -> tuple:
    values = {}
    placeholders = []
    for idx, status in enumerate(sorted(s.value for s in expected)):
        placeholder = f':expected{idx}'
        placeholders.append(placeholder)
        values[placeholder] = {'S': status}
    return f"#status IN ({', '.join(placeholders)})", values


class DynamoTransaction(Transaction):
    """Buffers TransactItems and sends them in one transact_write_items call."""

    def __init__(self, client, tables: Dict[str, str]):
        self._client = client
        self._tables = tables
        self._items: List[Dict[str, Any]] = []

    def _put(self, table_name: str, key_name: str, item: Dict[str, Any]) -> None:
        self._items.append({
            'Put': {
                'TableName': table_name,
                'Item': serialize_item(item),
                # Ensure the record doesn't already exist for this ID
                'ConditionExpression': 'attribute_not_exists(#pk)',
                'ExpressionAttributeNames': {'#pk': key_name},
            }
        })

    def put_task(self, task: Task) -> None:
        self._put(self._tables['tasks'], 'taskId', task.to_item())

    def put_contribution(self, contribution: Contribution) -> None:
        self._put(self._tables['contributions'], 'contributionId', contribution.to_item())

    def put_validation(self, validation: Validation) -> None:
        self._put(self._tables['validations'], 'validationId', validation.to_item())

    def put_project(self, project: Project) -> None:
        self._put(self._tables['projects'], 'projectId', project.to_item())

    def put_status_change(self, change: TaskStatusChange) -> None:
        self._put(self._tables['history'], 'changeId', change.to_item())

    def _update(self, table_name, key, expected, set_values: Dict[str, Any]) -> None:
        condition, values = _status_condition(expected)
        clauses = []
        names = {'#status': 'status'}
        for idx, (attr, value) in enumerate(set_values.items()):
            name_ph, value_ph = f'#a{idx}', f':v{idx}'
            names[name_ph] = attr
            values[value_ph] = _serializer.serialize(to_dynamo_value(value))
            clauses.append(f'{name_ph} = {value_ph}')

        self._items.append({
            'Update': {
                'TableName': table_name,
                'Key': serialize_item(key),
                'UpdateExpression': 'SET ' + ', '.join(clauses),
                'ConditionExpression': condition,
                'ExpressionAttributeNames': names,
                'ExpressionAttributeValues': values,
            }
        })

    def update_task(self, task_id, expected, status, assignee_id=None, updated_at=None) -> None:
        set_values = {'status': status.value, 'updatedAt': updated_at or utc_now()}
        if assignee_id is not None:
            set_values['assigneeId'] = assignee_id
        self._update(self._tables['tasks'], {'taskId': task_id}, expected, set_values)

    def update_contribution(self, contribution_id, expected, status, payload=None, updated_at=None) -> None:
        set_values = {'status': status.value, 'updatedAt': updated_at or utc_now()}
        if payload is not None:
            set_values['payload'] = payload
        self._update(self._tables['contributions'], {'contributionId': contribution_id}, expected, set_values)

    def commit(self) -> None:
        if not self._items:
            return
        if len(self._items) > MAX_TRANSACTION_ITEMS:
            raise ValueError(f"Transaction has {len(self._items)} actions, limit is {MAX_TRANSACTION_ITEMS}")

        try:
            self._client.transact_write_items(TransactItems=self._items)
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code == 'TransactionCanceledException':
                # Cancellation reasons correspond to the TransactItems list order
                reasons = e.response.get('CancellationReasons', [])
                logger.warning(f"Transaction cancelled: {reasons}")
                raise Conflict('Transaction cancelled: record changed concurrently or already exists', reasons)
            logger.error(f"Transaction error: {e}")
            raise

        self._items = []


class DynamoStore(Store):
    """Store backed by five DynamoDB tables."""

    def __init__(self, dynamodb=None, tables: Optional[Dict[str, str]] = None):
        self.dynamodb = dynamodb or boto3.resource('dynamodb', region_name=config.AWS_REGION)
        self.tables = tables or {
            'tasks': config.TASKS_TABLE,
            'contributions': config.CONTRIBUTIONS_TABLE,
            'validations': config.VALIDATIONS_TABLE,
            'projects': config.PROJECTS_TABLE,
            'history': config.TASK_HISTORY_TABLE,
        }

    def _table(self, name: str):
        return self.dynamodb.Table(self.tables[name])

    def transaction(self) -> Transaction:
        return DynamoTransaction(self.dynamodb.meta.client, self.tables)

    def batch_put_tasks(self, tasks: List[Task], changes: List[TaskStatusChange]) -> bool:
        """
        Write a chunk of tasks, then their creation history, using batch_writer.
        Handles batching (max 25 items per request) automatically.

        Returns:
            True if all items written successfully, False otherwise
        """
        table_name = self.tables['tasks']
        try:
            table = self._table('tasks')

            with table.batch_writer() as batch:
                for task in tasks:
                    batch.put_item(Item=to_dynamo_value(task.to_item()))

            with self._table('history').batch_writer() as batch:
                for change in changes:
                    batch.put_item(Item=change.to_item())

            logger.info(f"Successfully wrote {len(tasks)} items to {table_name}")
            return True

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error batch writing to {table_name}: {e}")
            return False

    def _get(self, name: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = self._table(name).get_item(Key=key)
            return response.get('Item')
        except ClientError as e:
            logger.error(f"Error getting item from {self.tables[name]}: {e}")
            raise

    def _collect(self, name: str, operation: str, **params) -> List[Dict[str, Any]]:
        """Run a query or scan, following LastEvaluatedKey across pages."""
        table = self._table(name)
        items: List[Dict[str, Any]] = []
        try:
            while True:
                response = getattr(table, operation)(**params)
                items.extend(response.get('Items', []))
                last_key = response.get('LastEvaluatedKey')
                if not last_key or params.get('Limit'):
                    return items
                params['ExclusiveStartKey'] = last_key
        except ClientError as e:
            logger.error(f"Error running {operation} on {self.tables[name]}: {e}")
            raise

    def get_task(self, task_id: str) -> Optional[Task]:
        item = self._get('tasks', {'taskId': task_id})
        return Task.from_item(item) if item else None

    def query_tasks(self, task_type=None, language=None, status=None, project_id=None) -> List[Task]:
        filters = [
            Attr(attr).eq(getattr(value, 'value', value))
            for attr, value in (('type', task_type), ('language', language), ('projectId', project_id))
            if value is not None
        ]
        filter_expression = None
        for condition in filters:
            filter_expression = condition if filter_expression is None else filter_expression & condition

        params: Dict[str, Any] = {}
        if filter_expression is not None:
            params['FilterExpression'] = filter_expression

        if status is not None:
            items = self._collect(
                'tasks', 'query',
                IndexName='StatusIndex',
                KeyConditionExpression=Key('status').eq(getattr(status, 'value', status)),
                **params
            )
        else:
            items = self._collect('tasks', 'scan', **params)

        items.sort(key=lambda item: item.get('createdAt', ''))
        return [Task.from_item(item) for item in items]

    def get_contribution(self, contribution_id: str) -> Optional[Contribution]:
        item = self._get('contributions', {'contributionId': contribution_id})
        return Contribution.from_item(item) if item else None

    def contributions_for_worker(self, worker_id: str) -> List[Contribution]:
        items = self._collect(
            'contributions', 'query',
            IndexName='byWorker',
            KeyConditionExpression=Key('workerId').eq(worker_id),
        )
        items.sort(key=lambda item: item.get('createdAt', ''))
        return [Contribution.from_item(item) for item in items]

    def contributions_for_task(self, task_id: str) -> List[Contribution]:
        items = self._collect(
            'contributions', 'query',
            IndexName='byTask',
            KeyConditionExpression=Key('taskId').eq(task_id),
        )
        items.sort(key=lambda item: item.get('createdAt', ''))
        return [Contribution.from_item(item) for item in items]

    def validations_for(self, contribution_id: str) -> List[Validation]:
        items = self._collect(
            'validations', 'query',
            IndexName='byContribution',
            KeyConditionExpression=Key('contributionId').eq(contribution_id),
            ScanIndexForward=True,
        )
        return [Validation.from_item(item) for item in items]

    def latest_validation(self, contribution_id: str) -> Optional[Validation]:
        items = self._collect(
            'validations', 'query',
            IndexName='byContribution',
            KeyConditionExpression=Key('contributionId').eq(contribution_id),
            ScanIndexForward=False,
            Limit=1,
        )
        return Validation.from_item(items[0]) if items else None

    def task_history(self, task_id: str) -> List[TaskStatusChange]:
        items = self._collect(
            'history', 'query',
            IndexName='byTask',
            KeyConditionExpression=Key('taskId').eq(task_id),
            ScanIndexForward=True,
        )
        return [TaskStatusChange.from_item(item) for item in items]

    def get_project(self, project_id: str) -> Optional[Project]:
        item = self._get('projects', {'projectId': project_id})
        return Project.from_item(item) if item else None

    def list_projects(self, owner_id: Optional[str] = None) -> List[Project]:
        params = {}
        if owner_id is not None:
            params['FilterExpression'] = Attr('ownerId').eq(owner_id)
        items = self._collect('projects', 'scan', **params)
        items.sort(key=lambda item: item.get('createdAt', ''))
        return [Project.from_item(item) for item in items]
