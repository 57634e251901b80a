#!/usr/bin/env python3
"""
DynamoDB MCP Server

Table management, item CRUD, query/scan and batch operations against
Amazon DynamoDB, gated by tool groups and an optional table allow-list.
"""

from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .. import __version__
from ..core.config import DynamoDBConfig, require_environment
from ..core.errors import ToolError
from ..core.tool_groups import ToolFilter, filter_allowed_tables, is_table_allowed
from ..core.tooling import ToolInput, ToolSpec, build_server, json_text, run_main, run_stdio
from ..utils.logger import get_logger
from .client import Boto3DynamoDBClient, DynamoDBClient, error_message

SERVER_NAME = "dynamodb-mcp-server"
TOOL_GROUPS = ("readonly", "readwrite", "admin")

logger = get_logger("dynamodb-mcp-server")

ClientFactory = Callable[[], DynamoDBClient]


# =============================================================================
# Input models
# =============================================================================

TABLE_NAME = "Name of the DynamoDB table"
KEY = 'Primary key of the item. Example: {"userId": "123"}'
NAMES = 'Substitutions for reserved words in expressions. Example: {"#status": "status"}'
VALUES = 'Values for expression placeholders. Example: {":uid": "123"}'
CONDITION = 'Condition that must hold for the write to succeed. Example: "attribute_exists(userId)"'


class TableInput(ToolInput):
    table_name: str = Field(alias="tableName", min_length=1, description=TABLE_NAME)


class ListTablesInput(ToolInput):
    exclusive_start_table_name: Optional[str] = Field(
        None, alias="exclusiveStartTableName",
        description="Table name to start listing after (for pagination)")
    limit: Optional[int] = Field(None, ge=1, le=100, description="Maximum number of table names to return")


class GetItemInput(TableInput):
    key: Dict[str, Any] = Field(description=KEY)


class PutItemInput(TableInput):
    item: Dict[str, Any] = Field(description="Complete item to write, including its primary key")
    condition_expression: Optional[str] = Field(None, alias="conditionExpression", description=CONDITION)
    expression_attribute_names: Optional[Dict[str, str]] = Field(None, alias="expressionAttributeNames", description=NAMES)
    expression_attribute_values: Optional[Dict[str, Any]] = Field(None, alias="expressionAttributeValues", description=VALUES)
    return_values: Optional[Literal["NONE", "ALL_OLD"]] = Field(
        None, alias="returnValues", description='"ALL_OLD" returns the item that was replaced')


class UpdateItemInput(TableInput):
    key: Dict[str, Any] = Field(description=KEY)
    update_expression: str = Field(
        alias="updateExpression", min_length=1,
        description='Update expression. Example: "SET #name = :newName REMOVE #oldAttr"')
    expression_attribute_names: Optional[Dict[str, str]] = Field(None, alias="expressionAttributeNames", description=NAMES)
    expression_attribute_values: Optional[Dict[str, Any]] = Field(None, alias="expressionAttributeValues", description=VALUES)
    condition_expression: Optional[str] = Field(None, alias="conditionExpression", description=CONDITION)
    return_values: Optional[Literal["NONE", "UPDATED_OLD", "UPDATED_NEW", "ALL_OLD", "ALL_NEW"]] = Field(
        None, alias="returnValues", description="Which item values to return")


class DeleteItemInput(TableInput):
    key: Dict[str, Any] = Field(description=KEY)
    condition_expression: Optional[str] = Field(None, alias="conditionExpression", description=CONDITION)
    expression_attribute_names: Optional[Dict[str, str]] = Field(None, alias="expressionAttributeNames", description=NAMES)
    expression_attribute_values: Optional[Dict[str, Any]] = Field(None, alias="expressionAttributeValues", description=VALUES)
    return_values: Optional[Literal["NONE", "ALL_OLD"]] = Field(
        None, alias="returnValues", description='"ALL_OLD" returns the deleted item')


class ScanInput(TableInput):
    limit: Optional[int] = Field(None, ge=1, description="Maximum number of items to evaluate")
    exclusive_start_key: Optional[Dict[str, Any]] = Field(
        None, alias="exclusiveStartKey", description="Primary key of the item to start after (for pagination)")
    filter_expression: Optional[str] = Field(None, alias="filterExpression", description='Filter applied after reading. Example: "#status = :active"')
    expression_attribute_names: Optional[Dict[str, str]] = Field(None, alias="expressionAttributeNames", description=NAMES)
    expression_attribute_values: Optional[Dict[str, Any]] = Field(None, alias="expressionAttributeValues", description=VALUES)
    projection_expression: Optional[str] = Field(None, alias="projectionExpression", description='Attributes to retrieve. Example: "userId, name"')


class QueryInput(ScanInput):
    key_condition_expression: str = Field(
        alias="keyConditionExpression", min_length=1,
        description='Key condition including the partition key. Example: "userId = :uid"')
    expression_attribute_values: Dict[str, Any] = Field(alias="expressionAttributeValues", description=VALUES)
    index_name: Optional[str] = Field(None, alias="indexName", description="Secondary index to query instead of the table")
    scan_index_forward: Optional[bool] = Field(None, alias="scanIndexForward", description="false for descending sort key order")


class BatchGetTableRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    keys: List[Dict[str, Any]] = Field(min_length=1)
    projection_expression: Optional[str] = Field(None, alias="projectionExpression")
    expression_attribute_names: Optional[Dict[str, str]] = Field(None, alias="expressionAttributeNames")


class BatchGetInput(ToolInput):
    request_items: Dict[str, BatchGetTableRequest] = Field(
        alias="requestItems",
        description='Keys to fetch per table. Example: {"Users": {"keys": [{"userId": "1"}]}}')


class BatchWriteInput(ToolInput):
    request_items: Dict[str, List[Dict[str, Any]]] = Field(
        alias="requestItems",
        description='Writes per table, each {"putRequest": {"item": {...}}} or {"deleteRequest": {"key": {...}}}. Maximum 25 per call.')


class KeySchemaElement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    attribute_name: str = Field(alias="attributeName")
    key_type: Literal["HASH", "RANGE"] = Field(alias="keyType")


class AttributeDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    attribute_name: str = Field(alias="attributeName")
    attribute_type: Literal["S", "N", "B"] = Field(alias="attributeType")


class ProvisionedThroughput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    read_capacity_units: int = Field(alias="readCapacityUnits", ge=1)
    write_capacity_units: int = Field(alias="writeCapacityUnits", ge=1)


class CreateTableInput(ToolInput):
    table_name: str = Field(alias="tableName", min_length=3, max_length=255, description=TABLE_NAME)
    key_schema: List[KeySchemaElement] = Field(
        alias="keySchema", min_length=1, max_length=2,
        description="Partition key (HASH) and optional sort key (RANGE)")
    attribute_definitions: List[AttributeDefinition] = Field(
        alias="attributeDefinitions", min_length=1, description="Types of the key attributes")
    billing_mode: Optional[Literal["PROVISIONED", "PAY_PER_REQUEST"]] = Field(
        None, alias="billingMode", description="Defaults to PAY_PER_REQUEST")
    provisioned_throughput: Optional[ProvisionedThroughput] = Field(
        None, alias="provisionedThroughput", description="Required when billingMode is PROVISIONED")


class UpdateTableInput(TableInput):
    billing_mode: Optional[Literal["PROVISIONED", "PAY_PER_REQUEST"]] = Field(None, alias="billingMode")
    provisioned_throughput: Optional[ProvisionedThroughput] = Field(None, alias="provisionedThroughput")


def _options(params: BaseModel, *names: str) -> Dict[str, Any]:
    return {name: getattr(params, name) for name in names if getattr(params, name) is not None}


# =============================================================================
# Tools
# =============================================================================

def access_denied(table_name: str) -> ToolError:
    return ToolError(
        f"Access denied: Table '{table_name}' is not in the allowed tables list. "
        f"Configure DYNAMODB_ALLOWED_TABLES to include this table."
    )


def create_tools(client_factory: ClientFactory, allowed_tables: List[str]) -> List[ToolSpec]:
    """Build every DynamoDB tool; gating is applied by create_server"""

    def check_table(table_name: str) -> None:
        if not is_table_allowed(table_name, allowed_tables):
            raise access_denied(table_name)

    async def list_tables(params: ListTablesInput) -> str:
        try:
            result = await client_factory().list_tables(params.exclusive_start_table_name, params.limit)
        except Exception as e:
            raise ToolError(f"Error listing tables: {error_message(e)}") from e
        result["tableNames"] = filter_allowed_tables(result.get("tableNames", []), allowed_tables)
        return json_text(result)

    async def describe_table(params: TableInput) -> str:
        check_table(params.table_name)
        try:
            result = await client_factory().describe_table(params.table_name)
        except Exception as e:
            raise ToolError(f"Error describing table: {error_message(e)}") from e
        return json_text(result)

    async def get_item(params: GetItemInput) -> str:
        check_table(params.table_name)
        try:
            result = await client_factory().get_item(params.table_name, params.key)
        except Exception as e:
            raise ToolError(f"Error getting item: {error_message(e)}") from e
        return json_text(result)

    async def query(params: QueryInput) -> str:
        check_table(params.table_name)
        try:
            result = await client_factory().query(
                params.table_name,
                params.key_condition_expression,
                params.expression_attribute_values,
                **_options(params, "expression_attribute_names", "index_name", "limit",
                           "scan_index_forward", "exclusive_start_key", "filter_expression",
                           "projection_expression")
            )
        except Exception as e:
            raise ToolError(f"Error querying table: {error_message(e)}") from e
        return json_text(result)

    async def scan(params: ScanInput) -> str:
        check_table(params.table_name)
        try:
            result = await client_factory().scan(
                params.table_name,
                **_options(params, "limit", "exclusive_start_key", "filter_expression",
                           "expression_attribute_names", "expression_attribute_values",
                           "projection_expression")
            )
        except Exception as e:
            raise ToolError(f"Error scanning table: {error_message(e)}") from e
        return json_text(result)

    async def batch_get_items(params: BatchGetInput) -> str:
        for table_name in params.request_items:
            check_table(table_name)
        request = {
            table: entry.model_dump(by_alias=True, exclude_none=True)
            for table, entry in params.request_items.items()
        }
        try:
            result = await client_factory().batch_get_items(request)
        except Exception as e:
            raise ToolError(f"Error batch getting items: {error_message(e)}") from e
        return json_text(result)

    async def put_item(params: PutItemInput) -> str:
        check_table(params.table_name)
        try:
            result = await client_factory().put_item(
                params.table_name,
                params.item,
                **_options(params, "condition_expression", "expression_attribute_names",
                           "expression_attribute_values", "return_values")
            )
        except Exception as e:
            raise ToolError(f"Error putting item: {error_message(e)}") from e
        response: Dict[str, Any] = {"success": True}
        if result.get("attributes"):
            response["previousItem"] = result["attributes"]
        return json_text(response)

    async def update_item(params: UpdateItemInput) -> str:
        check_table(params.table_name)
        try:
            result = await client_factory().update_item(
                params.table_name,
                params.key,
                params.update_expression,
                **_options(params, "expression_attribute_names", "expression_attribute_values",
                           "condition_expression", "return_values")
            )
        except Exception as e:
            raise ToolError(f"Error updating item: {error_message(e)}") from e
        response: Dict[str, Any] = {"success": True}
        if result.get("attributes"):
            response["attributes"] = result["attributes"]
        return json_text(response)

    async def delete_item(params: DeleteItemInput) -> str:
        check_table(params.table_name)
        try:
            result = await client_factory().delete_item(
                params.table_name,
                params.key,
                **_options(params, "condition_expression", "expression_attribute_names",
                           "expression_attribute_values", "return_values")
            )
        except Exception as e:
            raise ToolError(f"Error deleting item: {error_message(e)}") from e
        response: Dict[str, Any] = {"success": True}
        if result.get("attributes"):
            response["deletedItem"] = result["attributes"]
        return json_text(response)

    async def batch_write_items(params: BatchWriteInput) -> str:
        for table_name in params.request_items:
            check_table(table_name)
        try:
            result = await client_factory().batch_write_items(params.request_items)
        except Exception as e:
            raise ToolError(f"Error batch writing items: {error_message(e)}") from e
        unprocessed = result.get("unprocessedItems") or {}
        response: Dict[str, Any] = {"success": True, "hasUnprocessedItems": bool(unprocessed)}
        if unprocessed:
            response["unprocessedItems"] = unprocessed
        return json_text(response)

    async def create_table(params: CreateTableInput) -> str:
        check_table(params.table_name)
        if params.billing_mode == "PROVISIONED" and params.provisioned_throughput is None:
            raise ToolError("Error: provisionedThroughput is required when billingMode is PROVISIONED")
        try:
            result = await client_factory().create_table(
                params.table_name,
                [k.model_dump(by_alias=True) for k in params.key_schema],
                [a.model_dump(by_alias=True) for a in params.attribute_definitions],
                billing_mode=params.billing_mode,
                provisioned_throughput=(
                    params.provisioned_throughput.model_dump(by_alias=True)
                    if params.provisioned_throughput else None
                ),
            )
        except Exception as e:
            raise ToolError(f"Error creating table: {error_message(e)}") from e
        return json_text({"success": True, **result})

    async def delete_table(params: TableInput) -> str:
        check_table(params.table_name)
        try:
            result = await client_factory().delete_table(params.table_name)
        except Exception as e:
            raise ToolError(f"Error deleting table: {error_message(e)}") from e
        return json_text({"success": True, **result})

    async def update_table(params: UpdateTableInput) -> str:
        check_table(params.table_name)
        if params.billing_mode is None and params.provisioned_throughput is None:
            raise ToolError("Error: At least one of billingMode or provisionedThroughput must be provided")
        if params.billing_mode == "PROVISIONED" and params.provisioned_throughput is None:
            raise ToolError("Error: provisionedThroughput is required when billingMode is PROVISIONED")
        try:
            result = await client_factory().update_table(
                params.table_name,
                billing_mode=params.billing_mode,
                provisioned_throughput=(
                    params.provisioned_throughput.model_dump(by_alias=True)
                    if params.provisioned_throughput else None
                ),
            )
        except Exception as e:
            raise ToolError(f"Error updating table: {error_message(e)}") from e
        return json_text({"success": True, **result})

    return [
        ToolSpec("dynamodb_list_tables",
                 "List DynamoDB tables in the configured region. Only tables permitted by the "
                 "allow-list are returned.",
                 ListTablesInput, list_tables, ("readonly",)),
        ToolSpec("dynamodb_describe_table",
                 "Describe a table: status, key schema, attribute definitions, item count, size, "
                 "billing mode and secondary indexes.",
                 TableInput, describe_table, ("readonly",)),
        ToolSpec("dynamodb_get_item",
                 "Get a single item by its full primary key.",
                 GetItemInput, get_item, ("readonly",)),
        ToolSpec("dynamodb_query",
                 "Query items sharing a partition key, with optional sort key conditions, filters "
                 "and pagination. Returns items, count, scannedCount and lastEvaluatedKey. Prefer "
                 "query over scan when the partition key is known.",
                 QueryInput, query, ("readonly",)),
        ToolSpec("dynamodb_scan",
                 "Scan every item in a table with an optional filter. Returns items, count, "
                 "scannedCount and lastEvaluatedKey for pagination.",
                 ScanInput, scan, ("readonly",)),
        ToolSpec("dynamodb_batch_get_items",
                 "Get up to 100 items across one or more tables in a single request.",
                 BatchGetInput, batch_get_items, ("readonly",)),
        ToolSpec("dynamodb_put_item",
                 "Create an item or replace an existing item with the same primary key.",
                 PutItemInput, put_item, ("readwrite",), is_write=True),
        ToolSpec("dynamodb_update_item",
                 "Update attributes of an item with SET, REMOVE, ADD and DELETE actions. Creates "
                 "the item if it does not exist.",
                 UpdateItemInput, update_item, ("readwrite",), is_write=True),
        ToolSpec("dynamodb_delete_item",
                 "Delete a single item by primary key, optionally guarded by a condition.",
                 DeleteItemInput, delete_item, ("readwrite",), is_write=True),
        ToolSpec("dynamodb_batch_write_items",
                 "Put or delete up to 25 items across one or more tables in a single request.",
                 BatchWriteInput, batch_write_items, ("readwrite",), is_write=True),
        ToolSpec("dynamodb_create_table",
                 "Create a table with a partition key and optional sort key.",
                 CreateTableInput, create_table, ("admin",), is_write=True),
        ToolSpec("dynamodb_delete_table",
                 "Permanently delete a table and all of its items.",
                 TableInput, delete_table, ("admin",), is_write=True),
        ToolSpec("dynamodb_update_table",
                 "Change a table's billing mode or provisioned throughput.",
                 UpdateTableInput, update_table, ("admin",), is_write=True),
    ]


ALL_TOOL_NAMES = [
    "dynamodb_list_tables", "dynamodb_describe_table", "dynamodb_get_item", "dynamodb_query",
    "dynamodb_scan", "dynamodb_batch_get_items", "dynamodb_put_item", "dynamodb_update_item",
    "dynamodb_delete_item", "dynamodb_batch_write_items", "dynamodb_create_table",
    "dynamodb_delete_table", "dynamodb_update_table",
]


def default_client_factory(config: DynamoDBConfig) -> ClientFactory:
    client: Optional[DynamoDBClient] = None

    def factory() -> DynamoDBClient:
        nonlocal client
        if client is None:
            client = Boto3DynamoDBClient(config)
        return client

    return factory


def enabled_tools(config: DynamoDBConfig, client_factory: ClientFactory) -> List[ToolSpec]:
    tool_filter = ToolFilter.from_values(
        config.enabled_tool_groups, config.enabled_tools, config.disabled_tools,
        TOOL_GROUPS, ALL_TOOL_NAMES, logger=logger
    )
    return [
        tool for tool in create_tools(client_factory, config.allowed_tables)
        if tool_filter.is_enabled(tool.name, tool.groups[0])
    ]


def create_server(config: DynamoDBConfig, client_factory: Optional[ClientFactory] = None):
    client_factory = client_factory or default_client_factory(config)
    tools = enabled_tools(config, client_factory)
    logger.info(f"Registering {len(tools)} DynamoDB tools")
    if config.allowed_tables:
        logger.info(f"Table access restricted to: {', '.join(config.allowed_tables)}")
    return build_server(SERVER_NAME, tools)


async def main():
    """Run the MCP server"""
    config = DynamoDBConfig.from_environment()
    require_environment(config, SERVER_NAME)
    server = create_server(config)
    logger.info(f"Starting {SERVER_NAME} v{__version__} in region {config.region}")
    await run_stdio(server, __version__)


def run():
    run_main(main, logger)


if __name__ == "__main__":
    run()
