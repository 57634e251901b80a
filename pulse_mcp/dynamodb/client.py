"""
DynamoDB client interface and boto3 implementation.

Tools talk to ``DynamoDBClient``; results use camelCase keys and plain JSON
numbers so they can be serialized straight back to the caller.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from ..core.config import DynamoDBConfig
from ..utils.formatting import convert_decimals, prepare_item
from ..utils.logger import get_logger

logger = get_logger("pulse_mcp.dynamodb")


def camelize(obj: Any) -> Any:
    """Lower-case the first letter of every key in a boto3 response structure"""
    if isinstance(obj, dict):
        return {(k[:1].lower() + k[1:]): camelize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [camelize(item) for item in obj]
    return obj


def pascalize(obj: Any) -> Any:
    """Upper-case the first letter of every key for a boto3 request structure"""
    if isinstance(obj, dict):
        return {(k[:1].upper() + k[1:]): pascalize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [pascalize(item) for item in obj]
    return obj


def _drop_none(params: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in params.items() if v is not None}


class DynamoDBClient(ABC):
    """Operations available to the DynamoDB tools"""

    # Table operations
    @abstractmethod
    async def list_tables(self, exclusive_start_table_name: Optional[str] = None,
                          limit: Optional[int] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def describe_table(self, table_name: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def create_table(self, table_name: str, key_schema: List[Dict[str, Any]],
                           attribute_definitions: List[Dict[str, Any]],
                           billing_mode: Optional[str] = None,
                           provisioned_throughput: Optional[Dict[str, int]] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def delete_table(self, table_name: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def update_table(self, table_name: str, billing_mode: Optional[str] = None,
                           provisioned_throughput: Optional[Dict[str, int]] = None,
                           global_secondary_index_updates: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]: ...

    # Item operations
    @abstractmethod
    async def get_item(self, table_name: str, key: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def put_item(self, table_name: str, item: Dict[str, Any], **options) -> Dict[str, Any]: ...

    @abstractmethod
    async def update_item(self, table_name: str, key: Dict[str, Any], update_expression: str,
                          **options) -> Dict[str, Any]: ...

    @abstractmethod
    async def delete_item(self, table_name: str, key: Dict[str, Any], **options) -> Dict[str, Any]: ...

    # Query and scan
    @abstractmethod
    async def query(self, table_name: str, key_condition_expression: str,
                    expression_attribute_values: Dict[str, Any], **options) -> Dict[str, Any]: ...

    @abstractmethod
    async def scan(self, table_name: str, **options) -> Dict[str, Any]: ...

    # Batch operations
    @abstractmethod
    async def batch_get_items(self, request_items: Dict[str, Dict[str, Any]]) -> Dict[str, Any]: ...

    @abstractmethod
    async def batch_write_items(self, request_items: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]: ...


# Keyword options accepted by item operations, mapped to boto3 parameter names
_OPTION_NAMES = {
    "condition_expression": "ConditionExpression",
    "expression_attribute_names": "ExpressionAttributeNames",
    "expression_attribute_values": "ExpressionAttributeValues",
    "return_values": "ReturnValues",
    "index_name": "IndexName",
    "limit": "Limit",
    "scan_index_forward": "ScanIndexForward",
    "exclusive_start_key": "ExclusiveStartKey",
    "filter_expression": "FilterExpression",
    "projection_expression": "ProjectionExpression",
}


def _boto_options(options: Dict[str, Any]) -> Dict[str, Any]:
    params = {}
    for name, value in options.items():
        if value is None:
            continue
        if name not in _OPTION_NAMES:
            raise ValueError(f"Unsupported option: {name}")
        if name in ("expression_attribute_values", "exclusive_start_key"):
            value = prepare_item(value)
        params[_OPTION_NAMES[name]] = value
    return params


def _page_result(response: Dict[str, Any]) -> Dict[str, Any]:
    result = {
        "items": convert_decimals(response.get("Items", [])),
        "count": response.get("Count", 0),
        "scannedCount": response.get("ScannedCount", 0),
    }
    if response.get("LastEvaluatedKey"):
        result["lastEvaluatedKey"] = convert_decimals(response["LastEvaluatedKey"])
    return result


class Boto3DynamoDBClient(DynamoDBClient):
    """DynamoDB access through the boto3 resource and low-level client"""

    def __init__(self, config: DynamoDBConfig):
        self.config = config
        session_kwargs = {"region_name": config.region}
        # Explicit keys win; otherwise boto3 uses its default credential chain
        if config.access_key_id and config.secret_access_key:
            session_kwargs.update(
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                aws_session_token=config.session_token,
            )
        self.session = boto3.Session(**session_kwargs)
        self.dynamodb = self.session.resource('dynamodb', endpoint_url=config.endpoint_url)
        self.client = self.session.client('dynamodb', endpoint_url=config.endpoint_url)

    def _table(self, table_name: str):
        return self.dynamodb.Table(table_name)

    async def list_tables(self, exclusive_start_table_name=None, limit=None):
        response = self.client.list_tables(**_drop_none({
            "ExclusiveStartTableName": exclusive_start_table_name,
            "Limit": limit,
        }))
        result = {"tableNames": response.get("TableNames", [])}
        if response.get("LastEvaluatedTableName"):
            result["lastEvaluatedTableName"] = response["LastEvaluatedTableName"]
        return result

    async def describe_table(self, table_name):
        table = self.client.describe_table(TableName=table_name)["Table"]
        fields = (
            "TableName", "TableStatus", "CreationDateTime", "ItemCount", "TableSizeBytes",
            "KeySchema", "AttributeDefinitions", "BillingModeSummary", "ProvisionedThroughput",
            "GlobalSecondaryIndexes", "LocalSecondaryIndexes",
        )
        summary = {name: table[name] for name in fields if name in table}
        if "CreationDateTime" in summary:
            summary["CreationDateTime"] = summary["CreationDateTime"].isoformat()
        return convert_decimals(camelize(summary))

    async def create_table(self, table_name, key_schema, attribute_definitions,
                           billing_mode=None, provisioned_throughput=None):
        params = {
            "TableName": table_name,
            "KeySchema": pascalize(key_schema),
            "AttributeDefinitions": pascalize(attribute_definitions),
            "BillingMode": billing_mode or "PAY_PER_REQUEST",
        }
        if provisioned_throughput:
            params["ProvisionedThroughput"] = pascalize(provisioned_throughput)
        logger.info(f"Creating table {table_name}")
        description = self.client.create_table(**params)["TableDescription"]
        return {"tableName": description["TableName"], "tableStatus": description.get("TableStatus")}

    async def delete_table(self, table_name):
        logger.info(f"Deleting table {table_name}")
        description = self.client.delete_table(TableName=table_name)["TableDescription"]
        return {"tableName": description["TableName"], "tableStatus": description.get("TableStatus")}

    async def update_table(self, table_name, billing_mode=None, provisioned_throughput=None,
                           global_secondary_index_updates=None):
        params = {"TableName": table_name}
        if billing_mode:
            params["BillingMode"] = billing_mode
        if provisioned_throughput:
            params["ProvisionedThroughput"] = pascalize(provisioned_throughput)
        if global_secondary_index_updates:
            params["GlobalSecondaryIndexUpdates"] = pascalize(global_secondary_index_updates)
        description = self.client.update_table(**params)["TableDescription"]
        return {"tableName": description["TableName"], "tableStatus": description.get("TableStatus")}

    async def get_item(self, table_name, key):
        response = self._table(table_name).get_item(Key=prepare_item(key))
        if "Item" in response:
            return {"item": convert_decimals(response["Item"])}
        return {}

    async def put_item(self, table_name, item, **options):
        response = self._table(table_name).put_item(Item=prepare_item(item), **_boto_options(options))
        return self._attributes(response)

    async def update_item(self, table_name, key, update_expression, **options):
        response = self._table(table_name).update_item(
            Key=prepare_item(key),
            UpdateExpression=update_expression,
            **_boto_options(options)
        )
        return self._attributes(response)

    async def delete_item(self, table_name, key, **options):
        response = self._table(table_name).delete_item(Key=prepare_item(key), **_boto_options(options))
        return self._attributes(response)

    async def query(self, table_name, key_condition_expression, expression_attribute_values, **options):
        response = self._table(table_name).query(
            KeyConditionExpression=key_condition_expression,
            ExpressionAttributeValues=prepare_item(expression_attribute_values),
            **_boto_options(options)
        )
        return _page_result(response)

    async def scan(self, table_name, **options):
        response = self._table(table_name).scan(**_boto_options(options))
        return _page_result(response)

    async def batch_get_items(self, request_items):
        boto_request = {}
        for table_name, entry in request_items.items():
            boto_request[table_name] = _drop_none({
                "Keys": prepare_item(entry["keys"]),
                "ProjectionExpression": entry.get("projectionExpression"),
                "ExpressionAttributeNames": entry.get("expressionAttributeNames"),
            })

        response = self.dynamodb.batch_get_item(RequestItems=boto_request)
        result = {"responses": convert_decimals(response.get("Responses", {}))}
        unprocessed = response.get("UnprocessedKeys") or {}
        if unprocessed:
            result["unprocessedKeys"] = {
                table: {"keys": convert_decimals(entry.get("Keys", []))}
                for table, entry in unprocessed.items()
            }
        return result

    async def batch_write_items(self, request_items):
        boto_request = {}
        for table_name, requests in request_items.items():
            converted = []
            for request in requests:
                if "putRequest" in request:
                    converted.append({"PutRequest": {"Item": prepare_item(request["putRequest"]["item"])}})
                elif "deleteRequest" in request:
                    converted.append({"DeleteRequest": {"Key": prepare_item(request["deleteRequest"]["key"])}})
                else:
                    raise ValueError(f"Write request for {table_name} needs putRequest or deleteRequest")
            boto_request[table_name] = converted

        response = self.dynamodb.batch_write_item(RequestItems=boto_request)
        unprocessed = response.get("UnprocessedItems") or {}
        if not unprocessed:
            return {}
        result = {}
        for table_name, requests in unprocessed.items():
            result[table_name] = [
                {"putRequest": {"item": convert_decimals(r["PutRequest"]["Item"])}}
                if "PutRequest" in r else
                {"deleteRequest": {"key": convert_decimals(r["DeleteRequest"]["Key"])}}
                for r in requests
            ]
        return {"unprocessedItems": result}

    @staticmethod
    def _attributes(response: Dict[str, Any]) -> Dict[str, Any]:
        if response.get("Attributes"):
            return {"attributes": convert_decimals(response["Attributes"])}
        return {}


def error_message(error: Exception) -> str:
    """Prefer the service's own message for AWS client errors"""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Message') or str(error)
    return str(error)
