"""
In-memory DynamoDB client used by functional tests and local experiments.
"""

import copy
import re
from typing import Any, Dict, List, Optional

from .client import DynamoDBClient


_EQUALS_RE = re.compile(r"(#?[\w]+)\s*=\s*(:[\w]+)")


class MockDynamoDBClient(DynamoDBClient):
    """
    Stores tables as lists of items. Key conditions and SET update
    expressions support simple ``name = :value`` clauses only.
    """

    def __init__(self, tables: Optional[Dict[str, Dict[str, Any]]] = None):
        # name -> {"keySchema": [...], "items": [...], "billingMode": str}
        self.tables: Dict[str, Dict[str, Any]] = copy.deepcopy(tables or {})
        self.calls: List[tuple] = []

    def add_table(self, name: str, hash_key: str, range_key: Optional[str] = None,
                  items: Optional[List[Dict[str, Any]]] = None) -> None:
        key_schema = [{"attributeName": hash_key, "keyType": "HASH"}]
        if range_key:
            key_schema.append({"attributeName": range_key, "keyType": "RANGE"})
        self.tables[name] = {
            "keySchema": key_schema,
            "items": list(items or []),
            "billingMode": "PAY_PER_REQUEST",
            "status": "ACTIVE",
        }

    def _require(self, table_name: str) -> Dict[str, Any]:
        if table_name not in self.tables:
            raise ValueError(f"Requested resource not found: Table: {table_name} not found")
        return self.tables[table_name]

    def _key_names(self, table: Dict[str, Any]) -> List[str]:
        return [k["attributeName"] for k in table["keySchema"]]

    def _find(self, table: Dict[str, Any], key: Dict[str, Any]) -> Optional[int]:
        names = self._key_names(table)
        for index, item in enumerate(table["items"]):
            if all(item.get(name) == key.get(name) for name in names):
                return index
        return None

    @staticmethod
    def _resolve(name: str, names: Optional[Dict[str, str]]) -> str:
        if name.startswith("#"):
            return (names or {}).get(name, name)
        return name

    async def list_tables(self, exclusive_start_table_name=None, limit=None):
        self.calls.append(("list_tables", exclusive_start_table_name, limit))
        names = sorted(self.tables)
        if exclusive_start_table_name:
            names = [n for n in names if n > exclusive_start_table_name]
        result: Dict[str, Any] = {}
        if limit and len(names) > limit:
            names = names[:limit]
            result["lastEvaluatedTableName"] = names[-1]
        result["tableNames"] = names
        return result

    async def describe_table(self, table_name):
        self.calls.append(("describe_table", table_name))
        table = self._require(table_name)
        return {
            "tableName": table_name,
            "tableStatus": table.get("status", "ACTIVE"),
            "itemCount": len(table["items"]),
            "keySchema": table["keySchema"],
            "billingModeSummary": {"billingMode": table.get("billingMode")},
        }

    async def create_table(self, table_name, key_schema, attribute_definitions,
                           billing_mode=None, provisioned_throughput=None):
        self.calls.append(("create_table", table_name))
        if table_name in self.tables:
            raise ValueError(f"Table already exists: {table_name}")
        self.tables[table_name] = {
            "keySchema": key_schema,
            "items": [],
            "billingMode": billing_mode or "PAY_PER_REQUEST",
            "status": "CREATING",
        }
        return {"tableName": table_name, "tableStatus": "CREATING"}

    async def delete_table(self, table_name):
        self.calls.append(("delete_table", table_name))
        self._require(table_name)
        del self.tables[table_name]
        return {"tableName": table_name, "tableStatus": "DELETING"}

    async def update_table(self, table_name, billing_mode=None, provisioned_throughput=None,
                           global_secondary_index_updates=None):
        self.calls.append(("update_table", table_name))
        table = self._require(table_name)
        if billing_mode:
            table["billingMode"] = billing_mode
        table["status"] = "UPDATING"
        return {"tableName": table_name, "tableStatus": "UPDATING"}

    async def get_item(self, table_name, key):
        self.calls.append(("get_item", table_name, key))
        table = self._require(table_name)
        index = self._find(table, key)
        return {"item": copy.deepcopy(table["items"][index])} if index is not None else {}

    async def put_item(self, table_name, item, **options):
        self.calls.append(("put_item", table_name, item))
        table = self._require(table_name)
        index = self._find(table, item)
        previous = None
        if index is not None:
            previous = table["items"][index]
            table["items"][index] = copy.deepcopy(item)
        else:
            table["items"].append(copy.deepcopy(item))
        if previous is not None and options.get("return_values") == "ALL_OLD":
            return {"attributes": previous}
        return {}

    async def update_item(self, table_name, key, update_expression, **options):
        self.calls.append(("update_item", table_name, key, update_expression))
        table = self._require(table_name)
        index = self._find(table, key)
        if index is None:
            table["items"].append(copy.deepcopy(key))
            index = len(table["items"]) - 1
        item = table["items"][index]
        old = copy.deepcopy(item)

        values = options.get("expression_attribute_values") or {}
        names = options.get("expression_attribute_names")
        expression = re.sub(r"^\s*SET\s+", "", update_expression, flags=re.IGNORECASE)
        for name, placeholder in _EQUALS_RE.findall(expression):
            item[self._resolve(name, names)] = values.get(placeholder)

        return_values = options.get("return_values")
        if return_values == "ALL_NEW":
            return {"attributes": copy.deepcopy(item)}
        if return_values == "ALL_OLD":
            return {"attributes": old}
        return {}

    async def delete_item(self, table_name, key, **options):
        self.calls.append(("delete_item", table_name, key))
        table = self._require(table_name)
        index = self._find(table, key)
        if index is None:
            return {}
        removed = table["items"].pop(index)
        if options.get("return_values") == "ALL_OLD":
            return {"attributes": removed}
        return {}

    async def query(self, table_name, key_condition_expression, expression_attribute_values, **options):
        self.calls.append(("query", table_name, key_condition_expression))
        table = self._require(table_name)
        names = options.get("expression_attribute_names")
        conditions = [
            (self._resolve(name, names), expression_attribute_values.get(placeholder))
            for name, placeholder in _EQUALS_RE.findall(key_condition_expression)
        ]
        items = [
            copy.deepcopy(item) for item in table["items"]
            if all(item.get(attr) == value for attr, value in conditions)
        ]
        return self._page(items, options.get("limit"))

    async def scan(self, table_name, **options):
        self.calls.append(("scan", table_name))
        table = self._require(table_name)
        return self._page([copy.deepcopy(i) for i in table["items"]], options.get("limit"))

    def _page(self, items, limit):
        result: Dict[str, Any] = {}
        if limit and len(items) > limit:
            items = items[:limit]
            result["lastEvaluatedKey"] = {"offset": limit}
        result.update({"items": items, "count": len(items), "scannedCount": len(items)})
        return result

    async def batch_get_items(self, request_items):
        self.calls.append(("batch_get_items", sorted(request_items)))
        responses = {}
        for table_name, entry in request_items.items():
            table = self._require(table_name)
            found = []
            for key in entry["keys"]:
                index = self._find(table, key)
                if index is not None:
                    found.append(copy.deepcopy(table["items"][index]))
            responses[table_name] = found
        return {"responses": responses}

    async def batch_write_items(self, request_items):
        self.calls.append(("batch_write_items", sorted(request_items)))
        for table_name, requests in request_items.items():
            for request in requests:
                if "putRequest" in request:
                    await self.put_item(table_name, request["putRequest"]["item"])
                elif "deleteRequest" in request:
                    await self.delete_item(table_name, request["deleteRequest"]["key"])
        return {}
