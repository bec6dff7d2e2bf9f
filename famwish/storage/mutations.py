"""Typed preconditions and field-level mutations for conditional updates.

Backends with native update operators (MongoDB) translate these
descriptors directly; the others read the document, check the
preconditions and run :func:`apply_mutations` under their own atomicity
primitive.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Union


@dataclass(frozen=True)
class FieldEquals:
    field: str
    value: Any

    def holds(self, document: Mapping[str, Any]) -> bool:
        return document.get(self.field) == self.value


@dataclass(frozen=True)
class SetField:
    field: str
    value: Any


@dataclass(frozen=True)
class IncrementField:
    field: str
    amount: int = 1


@dataclass(frozen=True)
class PrependToSequence:
    field: str
    item: Any


Precondition = FieldEquals
Mutation = Union[SetField, IncrementField, PrependToSequence]


def preconditions_hold(document: Mapping[str, Any], preconditions: Iterable[Precondition]) -> bool:
    return all(condition.holds(document) for condition in preconditions)


def apply_mutations(document: Mapping[str, Any], mutations: Iterable[Mutation]) -> dict[str, Any]:
    """Return a copy of ``document`` with every mutation applied in order."""
    updated = deepcopy(dict(document))
    for mutation in mutations:
        if isinstance(mutation, SetField):
            updated[mutation.field] = deepcopy(mutation.value)
        elif isinstance(mutation, IncrementField):
            updated[mutation.field] = updated.get(mutation.field, 0) + mutation.amount
        elif isinstance(mutation, PrependToSequence):
            sequence = list(updated.get(mutation.field) or [])
            sequence.insert(0, deepcopy(mutation.item))
            updated[mutation.field] = sequence
        else:
            raise TypeError(f"unsupported mutation {mutation!r}")
    return updated


def to_mongo_update(mutations: Iterable[Mutation]) -> dict[str, Any]:
    """Translate mutations into MongoDB update operators."""
    update: dict[str, dict[str, Any]] = {}
    for mutation in mutations:
        if isinstance(mutation, SetField):
            update.setdefault("$set", {})[mutation.field] = mutation.value
        elif isinstance(mutation, IncrementField):
            update.setdefault("$inc", {})[mutation.field] = mutation.amount
        elif isinstance(mutation, PrependToSequence):
            update.setdefault("$push", {})[mutation.field] = {
                "$each": [mutation.item],
                "$position": 0,
            }
        else:
            raise TypeError(f"unsupported mutation {mutation!r}")
    return update
