"""Group decoded firehose operations by record kind and action."""

from typing import Iterable

from .firehose import DecodedOp
from .types import CreateOp, DeleteOp, Operations, OpsByType, RecordKind


def _bucket(ops_by_type: OpsByType, kind: RecordKind) -> Operations:
    if kind is RecordKind.POST:
        return ops_by_type.posts
    if kind is RecordKind.REPOST:
        return ops_by_type.reposts
    if kind is RecordKind.LIKE:
        return ops_by_type.likes
    if kind is RecordKind.FOLLOW:
        return ops_by_type.follows
    raise ValueError(f"unhandled record kind: {kind!r}")


def classify(ops: Iterable[DecodedOp]) -> OpsByType:
    ops_by_type = OpsByType()
    for op in ops:
        bucket = _bucket(ops_by_type, op.kind)
        if isinstance(op, CreateOp):
            bucket.creates.append(op)
        elif isinstance(op, DeleteOp):
            bucket.deletes.append(op)
    return ops_by_type
