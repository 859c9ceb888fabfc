"""Relationship patches: how a new version obtains its relationships.

Each relationship category of a new version is either inherited from the
version the caller expected to be current, or replaced by an explicit value
set. A request-level payload switches all categories at once (see
``RelationshipPatch.from_payload``); a partial patch can switch them one by
one (``RelationshipPatch.from_partial_payload``).
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Union

from pydantic import BaseModel


class Inherit:
    """Copy the category verbatim from the expected-current version."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Inherit()"


INHERIT = Inherit()


@dataclass(frozen=True)
class Replace:
    """Use exactly these values for the category; an empty tuple clears it."""

    values: tuple = ()


RelationshipChange = Union[Inherit, Replace]


@dataclass(frozen=True)
class RelationshipPatch:
    """Per-category Inherit or Replace decision for one new version."""

    changes: Mapping[str, RelationshipChange] = field(default_factory=dict)

    @classmethod
    def inherit_all(cls, categories: Iterable[str]) -> "RelationshipPatch":
        return cls({category: INHERIT for category in categories})

    @classmethod
    def replace_all(cls, categories: Iterable[str], values: Mapping[str, Any]) -> "RelationshipPatch":
        """Replace every category; categories missing from ``values`` become empty."""
        return cls({
            category: Replace(tuple(values.get(category) or ()))
            for category in categories
        })

    @classmethod
    def from_payload(cls, payload: BaseModel, categories: Iterable[str]) -> "RelationshipPatch":
        """Build the patch for a full create/update payload.

        If the payload explicitly set none of the relationship fields every
        category is inherited. If it set any of them, every category is
        replaced by what was supplied, and unset categories become empty.

        Args:
            payload: Validated request payload
            categories: Relationship field names of the record type

        Returns:
            RelationshipPatch with the same variant for every category
        """
        categories = tuple(categories)
        supplied = payload.model_fields_set.intersection(categories)
        if not supplied:
            return cls.inherit_all(categories)
        values = {category: getattr(payload, category) for category in supplied}
        return cls.replace_all(categories, values)

    @classmethod
    def from_partial_payload(cls, payload: BaseModel, categories: Iterable[str]) -> "RelationshipPatch":
        """Build the patch for a partial update: only supplied categories are replaced."""
        supplied = payload.model_fields_set
        return cls({
            category: (
                Replace(tuple(getattr(payload, category) or ()))
                if category in supplied else INHERIT
            )
            for category in categories
        })

    @property
    def inherits_anything(self) -> bool:
        return any(isinstance(change, Inherit) for change in self.changes.values())

    def resolve(self, inherited: Mapping[str, tuple]) -> dict:
        """Return the concrete value set per category.

        Args:
            inherited: Category values read from the expected-current version;
                empty for a brand new item

        Returns:
            Dict of category name to tuple of values
        """
        resolved = {}
        for category, change in self.changes.items():
            if isinstance(change, Replace):
                resolved[category] = change.values
            else:
                resolved[category] = tuple(inherited.get(category, ()))
        return resolved
