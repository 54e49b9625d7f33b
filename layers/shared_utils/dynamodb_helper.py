import boto3
import logging
import time
import random
from typing import Any, Callable, Dict, List, Optional
from botocore.exceptions import ClientError
from decimal import Decimal
from exceptions import DynamoDBError, ValidationError

logger = logging.getLogger(__name__)

class DynamoDBHelper:
    """A streamlined DynamoDB helper for the row operations the handlers need."""

    def __init__(self, table_name: str, region: str = None):
        if not table_name:
            raise ValidationError("Table name cannot be empty")

        self.table_name = table_name
        self.region = region or 'us-east-1'
        self.max_retries = 3
        self.base_delay = 1.0

        try:
            self.dynamodb = boto3.resource('dynamodb', region_name=self.region)
            self.table = self.dynamodb.Table(table_name)
        except Exception as e:
            raise DynamoDBError(f"Failed to initialize DynamoDB helper: {e}")

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay with jitter."""
        delay = self.base_delay * (2 ** attempt)
        return delay + random.uniform(0.1, 0.3) * delay

    def _should_retry(self, error: ClientError, attempt: int) -> bool:
        """Determine if an error should be retried."""
        if attempt >= self.max_retries:
            return False

        retriable_errors = ['ProvisionedThroughputExceededException', 'ThrottlingException']
        return error.response['Error']['Code'] in retriable_errors

    def _sanitize_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Sanitize item data for DynamoDB with proper type conversion."""
        # Converts floats to Decimals and handles empty strings
        def clean_value(value):
            if isinstance(value, float):
                return Decimal(str(value))
            if isinstance(value, dict):
                return {k: clean_value(v) for k, v in value.items()}
            if isinstance(value, list):
                return [clean_value(v) for v in value]
            if value == '':
                return None
            return value

        return {k: clean_value(v) for k, v in item.items() if v is not None}

    def _execute(self, operation: str, call: Callable[[], Any], passthrough_errors: tuple = ()) -> Any:
        """Run a table call, retrying throttling errors with backoff."""
        for attempt in range(self.max_retries + 1):
            try:
                return call()
            except ClientError as e:
                if e.response['Error']['Code'] in passthrough_errors:
                    raise
                if self._should_retry(e, attempt):
                    time.sleep(self._calculate_backoff_delay(attempt))
                    continue
                logger.error(f"DynamoDB {operation} failed on {self.table_name}: {e.response['Error']}")
                raise DynamoDBError(f"Could not complete {operation} on {self.table_name}: {e}")
        raise DynamoDBError(f"Exhausted retries for {operation} on {self.table_name}")

    def put_item(self, item: Dict[str, Any]) -> bool:
        """Put an item with proper sanitization and retry logic."""
        if not item:
            raise ValidationError("Item cannot be empty")

        sanitized_item = self._sanitize_item(item)
        self._execute('put_item', lambda: self.table.put_item(Item=sanitized_item))
        return True

    def put_item_if_absent(self, item: Dict[str, Any], key_attribute: str) -> bool:
        """Put an item only when no item with the same key exists.

        Returns False instead of raising when the item is already present.
        """
        if not item:
            raise ValidationError("Item cannot be empty")

        sanitized_item = self._sanitize_item(item)
        try:
            self._execute(
                'put_item',
                lambda: self.table.put_item(
                    Item=sanitized_item,
                    ConditionExpression='attribute_not_exists(#key)',
                    ExpressionAttributeNames={'#key': key_attribute},
                ),
                passthrough_errors=('ConditionalCheckFailedException',),
            )
        except ClientError:
            return False
        return True

    def get_item(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Get an item from the table with retry logic."""
        if not key:
            raise ValidationError("Key cannot be empty")

        response = self._execute('get_item', lambda: self.table.get_item(Key=key))
        return response.get('Item')

    def update_item(self, key: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
        """SET the given attributes on an item and return the new values."""
        if not key:
            raise ValidationError("Key cannot be empty")
        if not updates:
            raise ValidationError("Updates cannot be empty")

        sanitized = self._sanitize_item(updates)
        removed = [name for name, value in updates.items() if value is None]
        names = {}
        values = {}
        set_clauses = []
        for index, (attribute, value) in enumerate(sanitized.items()):
            names[f'#a{index}'] = attribute
            values[f':v{index}'] = value
            set_clauses.append(f'#a{index} = :v{index}')

        expression = ''
        if set_clauses:
            expression = 'SET ' + ', '.join(set_clauses)
        if removed:
            offset = len(sanitized)
            for index, attribute in enumerate(removed, start=offset):
                names[f'#a{index}'] = attribute
            expression += ' REMOVE ' + ', '.join(f'#a{i}' for i in range(offset, offset + len(removed)))

        params = {
            'Key': key,
            'UpdateExpression': expression.strip(),
            'ExpressionAttributeNames': names,
            'ReturnValues': 'ALL_NEW',
        }
        if values:
            params['ExpressionAttributeValues'] = values

        response = self._execute('update_item', lambda: self.table.update_item(**params))
        return response.get('Attributes', {})

    def delete_item(self, key: Dict[str, Any]) -> bool:
        if not key:
            raise ValidationError("Key cannot be empty")

        self._execute('delete_item', lambda: self.table.delete_item(Key=key))
        return True

    def query(self, key_condition: Any, index_name: str = None, limit: int = None) -> List[Dict[str, Any]]:
        """Query the table or one of its indexes, following pagination."""
        params: Dict[str, Any] = {'KeyConditionExpression': key_condition}
        if index_name:
            params['IndexName'] = index_name
        if limit:
            params['Limit'] = limit

        items: List[Dict[str, Any]] = []
        while True:
            response = self._execute('query', lambda: self.table.query(**params))
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key or (limit and len(items) >= limit):
                break
            params['ExclusiveStartKey'] = last_key
        return items[:limit] if limit else items

    def scan(self, filter_expression: Any = None) -> List[Dict[str, Any]]:
        """Scan the whole table, optionally filtered, following pagination."""
        params: Dict[str, Any] = {}
        if filter_expression is not None:
            params['FilterExpression'] = filter_expression

        items: List[Dict[str, Any]] = []
        while True:
            response = self._execute('scan', lambda: self.table.scan(**params))
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                break
            params['ExclusiveStartKey'] = last_key
        return items
