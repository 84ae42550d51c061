"""
DynamoDB single-table client.

Supports both DynamoDB Local (development) and AWS DynamoDB (production).
Set DYNAMODB_ENDPOINT env var for local, omit for AWS.
"""

from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def is_conditional_check_failure(error: Exception) -> bool:
    """True if a boto3 error was caused by a failed ConditionExpression."""
    return (
        isinstance(error, ClientError)
        and error.response.get("Error", {}).get("Code") == CONDITIONAL_CHECK_FAILED
    )


class DynamoDBClient:
    """Client for DynamoDB single-table operations."""

    def __init__(
        self,
        table_name: str,
        region: str = "ap-northeast-1",
        endpoint_url: str | None = None,
    ):
        self.table_name = table_name
        kwargs: dict[str, Any] = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
            logger.info(f"Using DynamoDB Local at {endpoint_url}")

        resource = boto3.resource("dynamodb", **kwargs)
        self.table = resource.Table(table_name)

    def put_item(self, item: dict[str, Any]) -> None:
        """Put an item into the table, replacing any item with the same key."""
        self.table.put_item(Item=item)

    def get_item(
        self, pk: str, sk: str, consistent: bool = False
    ) -> dict[str, Any] | None:
        """Get a single item by PK and SK."""
        response = self.table.get_item(
            Key={"PK": pk, "SK": sk}, ConsistentRead=consistent
        )
        return response.get("Item")

    def query(
        self,
        pk: str,
        sk_prefix: str | None = None,
        limit: int | None = None,
        scan_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """
        Query items by partition key with an optional sort key prefix.

        Args:
            pk: Partition key value
            sk_prefix: Sort key prefix (begins_with)
            limit: Max items to return
            scan_forward: True for ascending, False for descending
        """
        key_condition = Key("PK").eq(pk)
        if sk_prefix:
            key_condition = key_condition & Key("SK").begins_with(sk_prefix)

        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": scan_forward,
        }
        if limit:
            kwargs["Limit"] = limit

        response = self.table.query(**kwargs)
        return response.get("Items", [])

    def delete_item(
        self,
        pk: str,
        sk: str,
        condition: str | None = None,
        condition_values: dict[str, Any] | None = None,
        condition_names: dict[str, str] | None = None,
    ) -> dict[str, Any] | None:
        """
        Delete an item by PK and SK.

        When a condition is given the delete only happens if it holds;
        otherwise botocore raises a ClientError with code
        ConditionalCheckFailedException.

        Returns:
            The deleted item's attributes, if it existed
        """
        kwargs: dict[str, Any] = {
            "Key": {"PK": pk, "SK": sk},
            "ReturnValues": "ALL_OLD",
        }
        if condition:
            kwargs["ConditionExpression"] = condition
            if condition_values:
                kwargs["ExpressionAttributeValues"] = condition_values
            if condition_names:
                kwargs["ExpressionAttributeNames"] = condition_names

        response = self.table.delete_item(**kwargs)
        return response.get("Attributes")

    def create_table_if_not_exists(self) -> None:
        """Create the table (for DynamoDB Local development)."""
        try:
            self.table.load()
            logger.info(f"Table {self.table_name} already exists")
        except ClientError:
            client = self.table.meta.client
            client.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {"AttributeName": "PK", "KeyType": "HASH"},
                    {"AttributeName": "SK", "KeyType": "RANGE"},
                ],
                AttributeDefinitions=[
                    {"AttributeName": "PK", "AttributeType": "S"},
                    {"AttributeName": "SK", "AttributeType": "S"},
                ],
                BillingMode="PAY_PER_REQUEST",
            )
            logger.info(f"Created table {self.table_name}")
