"""
Decode redis replies holding JSON into pydantic models.

    decode(conn.execute("GET", "user:1"), user)                     # update a model in place
    decode(conn.execute("MGET", "u:1", "u:2"), ListTarget(users, User))
    users = decode_list(conn.execute("LRANGE", "users", 0, -1), User)
"""
import json
from dataclasses import dataclass
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError
from redis.exceptions import ResponseError

from cachepool.errors import DecodeError, UnsupportedDestinationError

M = TypeVar("M", bound=BaseModel)


@dataclass
class Record:
    """Decode a single payload into an existing model instance"""
    target: BaseModel


@dataclass
class ListTarget:
    """Decode a multi-bulk reply into items, one model per payload"""
    items: list
    model: type


def to_bytes(reply: Any) -> bytes:
    """Convert a reply to a single byte payload"""
    if isinstance(reply, bytes):
        return reply
    if isinstance(reply, (bytearray, memoryview)):
        return bytes(reply)
    if isinstance(reply, str):
        return reply.encode()
    if isinstance(reply, int) and not isinstance(reply, bool):
        return str(reply).encode()
    if reply is None:
        raise DecodeError("nil reply")
    if isinstance(reply, ResponseError):
        raise DecodeError(f"error reply: {reply}") from reply
    raise DecodeError(f"unexpected type {type(reply).__name__} for bytes")


def to_byte_slices(reply: Any) -> list[Optional[bytes]]:
    """Convert a multi-bulk reply to a list of payloads, nil elements stay None"""
    if reply is None:
        raise DecodeError("nil reply")
    if isinstance(reply, ResponseError):
        raise DecodeError(f"error reply: {reply}") from reply
    if not isinstance(reply, (list, tuple)):
        raise DecodeError(f"unexpected type {type(reply).__name__} for byte slices")

    payloads = []
    for i, item in enumerate(reply):
        if item is None:
            payloads.append(None)
        elif isinstance(item, (bytes, bytearray, memoryview)):
            payloads.append(bytes(item))
        elif isinstance(item, str):
            payloads.append(item.encode())
        else:
            raise DecodeError(f"unexpected element type {type(item).__name__} at index {i}")
    return payloads


def decode(reply: Any, target):
    """
    Parse reply into target.

    A model instance (or Record) gets the payload's JSON object merged over its
    current field values. A ListTarget is cleared and refilled in reply order; an
    empty reply leaves it untouched. A failure part way through may leave a
    ListTarget partially filled.
    """
    if isinstance(target, BaseModel):
        target = Record(target)

    if isinstance(target, Record):
        _decode_record(reply, target.target)
    elif isinstance(target, ListTarget):
        if not isinstance(target.items, list):
            raise UnsupportedDestinationError(f"list destination must be a list, got {type(target.items).__name__}")
        if not (isinstance(target.model, type) and issubclass(target.model, BaseModel)):
            raise UnsupportedDestinationError(f"list element type {target.model!r} is not a pydantic model")
        _decode_list(reply, target.items, target.model)
    else:
        raise UnsupportedDestinationError(
            f"unsupported decode destination {type(target).__name__}, want a model, Record or ListTarget"
        )


def decode_record(reply: Any, model: type[M]) -> M:
    """Parse reply into a new model instance"""
    return _parse(to_bytes(reply), model)


def decode_list(reply: Any, model: type[M]) -> list[M]:
    """Parse a multi-bulk reply into a new list of models"""
    items = []
    _decode_list(reply, items, model)
    return items


def _decode_record(reply: Any, record: BaseModel):
    payload = to_bytes(reply)

    try:
        data = json.loads(payload)
    except ValueError as e:
        raise DecodeError(f"invalid JSON payload: {e}") from e

    if not isinstance(data, dict):
        raise DecodeError(f"cannot decode JSON {type(data).__name__} into {type(record).__name__}")

    model = type(record)
    try:
        merged = model.model_validate({**record.model_dump(by_alias=True), **data})
        for name in model.model_fields:
            setattr(record, name, getattr(merged, name))
    except ValidationError as e:
        raise DecodeError(f"cannot decode into {model.__name__}: {e}") from e


def _decode_list(reply: Any, items: list, model: type):
    payloads = to_byte_slices(reply)
    if not payloads:
        return

    items.clear()
    for i, payload in enumerate(payloads):
        if payload is None:
            raise DecodeError(f"nil element at index {i}")
        items.append(_parse(payload, model))


def _parse(payload: bytes, model: type[M]) -> M:
    try:
        return model.model_validate_json(payload)
    except ValidationError as e:
        raise DecodeError(f"cannot decode into {model.__name__}: {e}") from e
