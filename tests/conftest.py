from __future__ import annotations

import copy
import re
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from boto3.dynamodb.conditions import AttributeBase, ConditionBase
from botocore.exceptions import ClientError

_STRING_CONDITION = re.compile(r"(attribute_exists|attribute_not_exists)\((\w+)\)")


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def _evaluate(condition, item: dict[str, object]) -> bool:
    """Evaluate the subset of boto3 condition objects the stores use."""
    if isinstance(condition, str):
        for clause in condition.split(" AND "):
            match = _STRING_CONDITION.fullmatch(clause.strip())
            assert match, f"unsupported condition {clause!r}"
            exists = match.group(2) in item
            if (match.group(1) == "attribute_exists") != exists:
                return False
        return True

    assert isinstance(condition, ConditionBase)
    expression = condition.get_expression()
    operator = expression["operator"]
    values = expression["values"]
    if operator == "AND":
        return all(_evaluate(value, item) for value in values)
    if operator == "OR":
        return any(_evaluate(value, item) for value in values)

    attribute, *operands = values
    assert isinstance(attribute, AttributeBase)
    actual = item.get(attribute.name)
    if operator == "attribute_exists":
        return attribute.name in item
    if operator == "attribute_not_exists":
        return attribute.name not in item
    if actual is None:
        return operator == "<>"
    expected = operands[0]
    if operator == "=":
        return actual == expected
    if operator == "<>":
        return actual != expected
    if operator == "<":
        return actual < expected
    if operator == "<=":
        return actual <= expected
    if operator == ">":
        return actual > expected
    if operator == ">=":
        return actual >= expected
    if operator == "begins_with":
        return str(actual).startswith(expected)
    raise AssertionError(f"unsupported operator {operator}")


class FakeTable:
    """In-memory stand-in for a boto3 DynamoDB ``Table`` with pk/sk keys."""

    def __init__(self, *, page_size: int | None = None) -> None:
        self.items: dict[tuple[str, str], dict[str, object]] = {}
        self.page_size = page_size
        self.failing: set[str] = set()
        self.calls: list[str] = []
        # items read by query/scan before any FilterExpression
        self.examined = 0

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise _client_error("InternalServerError", operation)

    def _page(self, keys, exclusive_start_key):
        keys = sorted(keys)
        if exclusive_start_key:
            start = (exclusive_start_key["pk"], exclusive_start_key["sk"])
            keys = [key for key in keys if key > start]
        if self.page_size is None or len(keys) <= self.page_size:
            return keys, None
        page = keys[: self.page_size]
        return page, {"pk": page[-1][0], "sk": page[-1][1]}

    def load(self) -> None:
        self._enter("load")

    def get_item(self, *, Key):
        self._enter("get_item")
        item = self.items.get((Key["pk"], Key["sk"]))
        return {"Item": copy.deepcopy(item)} if item else {}

    def put_item(self, *, Item, ConditionExpression=None):
        self._enter("put_item")
        key = (Item["pk"], Item["sk"])
        if ConditionExpression and not _evaluate(
            ConditionExpression, self.items.get(key, {})
        ):
            raise _client_error("ConditionalCheckFailedException", "PutItem")
        self.items[key] = copy.deepcopy(Item)
        return {}

    def update_item(
        self,
        *,
        Key,
        UpdateExpression,
        ExpressionAttributeValues,
        ConditionExpression=None,
        ReturnValues=None,
    ):
        self._enter("update_item")
        key = (Key["pk"], Key["sk"])
        current = self.items.get(key, {})
        if ConditionExpression and not _evaluate(ConditionExpression, current):
            raise _client_error("ConditionalCheckFailedException", "UpdateItem")
        assert UpdateExpression.startswith("SET ")
        updated = {**copy.deepcopy(current), **Key}
        for assignment in UpdateExpression[4:].split(","):
            name, placeholder = (part.strip() for part in assignment.split("="))
            updated[name] = ExpressionAttributeValues[placeholder]
        self.items[key] = updated
        if ReturnValues == "ALL_NEW":
            return {"Attributes": copy.deepcopy(updated)}
        return {}

    def delete_item(self, *, Key, ConditionExpression=None):
        self._enter("delete_item")
        key = (Key["pk"], Key["sk"])
        if ConditionExpression and not _evaluate(
            ConditionExpression, self.items.get(key, {})
        ):
            raise _client_error("ConditionalCheckFailedException", "DeleteItem")
        self.items.pop(key, None)
        return {}

    def query(
        self,
        *,
        KeyConditionExpression,
        FilterExpression=None,
        ExclusiveStartKey=None,
        **_kwargs,
    ):
        self._enter("query")
        candidates = [
            key
            for key, item in self.items.items()
            if _evaluate(KeyConditionExpression, item)
        ]
        page, last_key = self._page(candidates, ExclusiveStartKey)
        self.examined += len(page)
        items = [copy.deepcopy(self.items[key]) for key in page]
        if FilterExpression is not None:
            items = [item for item in items if _evaluate(FilterExpression, item)]
        response: dict[str, object] = {"Items": items, "Count": len(items)}
        if last_key:
            response["LastEvaluatedKey"] = last_key
        return response

    def scan(self, *, FilterExpression=None, ExclusiveStartKey=None, **_kwargs):
        self._enter("scan")
        page, last_key = self._page(list(self.items), ExclusiveStartKey)
        self.examined += len(page)
        items = [copy.deepcopy(self.items[key]) for key in page]
        if FilterExpression is not None:
            items = [item for item in items if _evaluate(FilterExpression, item)]
        response: dict[str, object] = {"Items": items, "Count": len(items)}
        if last_key:
            response["LastEvaluatedKey"] = last_key
        return response

    def items_with_prefix(self, prefix: str) -> list[dict[str, object]]:
        return [item for (pk, _), item in sorted(self.items.items()) if pk.startswith(prefix)]


class FrozenClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class MonotonicClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def monotonic() -> MonotonicClock:
    return MonotonicClock()


def make_role(role_id: int, name: str = "Verified", position: int = 1) -> MagicMock:
    role = MagicMock()
    role.id = role_id
    role.name = name
    role.position = position
    role.mention = f"<@&{role_id}>"
    return role


def make_member(member_id: int, roles=()) -> MagicMock:
    member = MagicMock()
    member.id = member_id
    member.roles = list(roles)
    member.add_roles = AsyncMock()
    return member


def make_guild(guild_id: int, *, members=(), roles=()) -> MagicMock:
    guild = MagicMock()
    guild.id = guild_id
    member_map = {member.id: member for member in members}
    role_map = {role.id: role for role in roles}
    guild.get_member.side_effect = member_map.get
    guild.get_role.side_effect = role_map.get
    guild.fetch_member = AsyncMock()
    return guild


def make_client(*guilds) -> MagicMock:
    client = MagicMock()
    guild_map = {guild.id: guild for guild in guilds}
    client.get_guild.side_effect = guild_map.get
    return client
