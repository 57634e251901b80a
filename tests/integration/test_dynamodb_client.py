"""
Integration tests for the boto3 DynamoDB client against moto.
"""

import json
from decimal import Decimal

import pytest

from pulse_mcp.core.config import DynamoDBConfig
from pulse_mcp.core.errors import ToolError
from pulse_mcp.dynamodb.client import Boto3DynamoDBClient, camelize, pascalize
from pulse_mcp.dynamodb.server import create_tools


pytestmark = pytest.mark.integration


class TestKeyCasing:

    def test_camelize_and_pascalize(self):
        boto = {"KeySchema": [{"AttributeName": "id", "KeyType": "HASH"}]}
        assert camelize(boto) == {"keySchema": [{"attributeName": "id", "keyType": "HASH"}]}
        assert pascalize(camelize(boto)) == boto


class TestBoto3DynamoDBClient:
    """Exercise the real client against an emulated table."""

    @pytest.mark.asyncio
    async def test_item_lifecycle(self, mock_dynamodb_table, sample_orders):
        client = Boto3DynamoDBClient(DynamoDBConfig(region="us-east-1"))

        for order in sample_orders:
            await client.put_item("test-orders", order)

        got = await client.get_item("test-orders", {"customer_id": "c-1", "order_id": "o-1"})
        assert got["item"]["total"] == 19.99
        assert got["item"]["status"] == "shipped"

        page = await client.query(
            "test-orders",
            "customer_id = :c",
            {":c": "c-1"},
            scan_index_forward=False,
        )
        assert page["count"] == 2
        assert [i["order_id"] for i in page["items"]] == ["o-2", "o-1"]
        assert page["items"][0]["total"] == 5

        updated = await client.update_item(
            "test-orders",
            {"customer_id": "c-2", "order_id": "o-3"},
            "SET #s = :s",
            expression_attribute_names={"#s": "status"},
            expression_attribute_values={":s": "returned"},
            return_values="ALL_NEW",
        )
        assert updated["attributes"]["status"] == "returned"

        deleted = await client.delete_item(
            "test-orders", {"customer_id": "c-2", "order_id": "o-3"}, return_values="ALL_OLD")
        assert deleted["attributes"]["order_id"] == "o-3"

        scanned = await client.scan("test-orders")
        assert scanned["count"] == 2
        assert scanned["scannedCount"] == 2

    @pytest.mark.asyncio
    async def test_table_operations(self, mock_dynamodb_table):
        client = Boto3DynamoDBClient(DynamoDBConfig(region="us-east-1"))

        created = await client.create_table(
            "test-users",
            [{"attributeName": "userId", "keyType": "HASH"}],
            [{"attributeName": "userId", "attributeType": "S"}],
        )
        assert created["tableName"] == "test-users"

        listed = await client.list_tables()
        assert set(listed["tableNames"]) == {"test-orders", "test-users"}

        described = await client.describe_table("test-orders")
        assert described["tableName"] == "test-orders"
        assert described["keySchema"][0] == {"attributeName": "customer_id", "keyType": "HASH"}
        assert isinstance(described["creationDateTime"], str)

        deleted = await client.delete_table("test-users")
        assert deleted["tableName"] == "test-users"

    @pytest.mark.asyncio
    async def test_batch_operations(self, mock_dynamodb_table):
        client = Boto3DynamoDBClient(DynamoDBConfig(region="us-east-1"))

        written = await client.batch_write_items({"test-orders": [
            {"putRequest": {"item": {"customer_id": "c-9", "order_id": "o-1", "total": 1.5}}},
            {"putRequest": {"item": {"customer_id": "c-9", "order_id": "o-2", "total": 2}}},
        ]})
        assert written == {}

        fetched = await client.batch_get_items({"test-orders": {"keys": [
            {"customer_id": "c-9", "order_id": "o-1"},
            {"customer_id": "c-9", "order_id": "o-2"},
        ]}})
        totals = sorted(item["total"] for item in fetched["responses"]["test-orders"])
        assert totals == [1.5, 2]
        assert not any(isinstance(t, Decimal) for t in totals)

    @pytest.mark.asyncio
    async def test_tool_errors_use_service_message(self, mock_dynamodb_table):
        client = Boto3DynamoDBClient(DynamoDBConfig(region="us-east-1"))
        tools = {tool.name: tool for tool in create_tools(lambda: client, [])}

        with pytest.raises(ToolError, match="^Error querying table: "):
            await tools["dynamodb_query"].invoke({
                "tableName": "does-not-exist",
                "keyConditionExpression": "id = :id",
                "expressionAttributeValues": {":id": "1"},
            })

        result = json.loads(await tools["dynamodb_put_item"].invoke({
            "tableName": "test-orders",
            "item": {"customer_id": "c-1", "order_id": "o-9", "total": 3.25},
        }))
        assert result == {"success": True}
