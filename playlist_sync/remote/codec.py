"""
Firestore REST value codec.

The REST API wraps every field in a typed value object:

    {"stringValue": "Party Mix"}
    {"integerValue": "42"}          (64-bit ints travel as strings)
    {"arrayValue": {"values": [...]}}
    {"mapValue": {"fields": {...}}}

This module converts between those objects and plain Python values, and
builds the structuredQuery bodies used by documents:runQuery.
"""

from typing import Any


def encode_value(value: Any) -> dict[str, Any]:
    """
    Wrap a plain Python value into a Firestore value object.

    Raises:
        TypeError: For values with no Firestore representation.
    """
    if value is None:
        return {"nullValue": None}
    # bool before int: bool is a subclass of int
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        if not value:
            return {"arrayValue": {}}
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


def decode_value(value: dict[str, Any]) -> Any:
    """Unwrap a Firestore value object. Unknown value types decode to None."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return value["timestampValue"]
    if "referenceValue" in value:
        return value["referenceValue"]
    if "arrayValue" in value:
        return [decode_value(item) for item in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    return None


def encode_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {key: encode_value(item) for key, item in data.items()}


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: decode_value(item) for key, item in fields.items()}


def document_id(name: str) -> str:
    """Last path segment of a full document resource name."""
    return name.rsplit("/", 1)[-1]


def decode_document(document: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """
    Split a REST document into (document id, decoded fields).

    Example:
        >>> decode_document({
        ...     "name": "projects/p/databases/(default)/documents/shared_playlists/abc",
        ...     "fields": {"name": {"stringValue": "Party Mix"}},
        ... })
        ('abc', {'name': 'Party Mix'})
    """
    return document_id(document["name"]), decode_fields(document.get("fields", {}))


def field_filter(field: str, value: Any, op: str = "EQUAL") -> dict[str, Any]:
    return {
        "fieldFilter": {
            "field": {"fieldPath": field},
            "op": op,
            "value": encode_value(value),
        }
    }


def structured_query(
    collection: str,
    filters: list[dict[str, Any]] | None = None,
    order_by: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> dict[str, Any]:
    """
    Build a documents:runQuery request body.

    Several filters are combined with AND; a single filter is sent as is.
    """
    query: dict[str, Any] = {"from": [{"collectionId": collection}]}

    if filters:
        if len(filters) == 1:
            query["where"] = filters[0]
        else:
            query["where"] = {"compositeFilter": {"op": "AND", "filters": filters}}

    if order_by:
        query["orderBy"] = [{
            "field": {"fieldPath": order_by},
            "direction": "DESCENDING" if descending else "ASCENDING",
        }]

    if limit is not None:
        query["limit"] = limit

    return {"structuredQuery": query}


def query_documents(response: Any) -> list[tuple[str, dict[str, Any]]]:
    """
    Decode a runQuery response.

    The response is a list of result objects; entries without a 'document'
    key only carry read metadata and are skipped.
    """
    if not isinstance(response, list):
        return []
    return [
        decode_document(item["document"])
        for item in response
        if isinstance(item, dict) and "document" in item
    ]
