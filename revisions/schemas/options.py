# revisions/schemas/options.py

from typing import Any, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from revisions.utils.exceptions import ConfigurationError


def _flatten(values: Iterable[Any]) -> List[Any]:
    flat: List[Any] = []
    for value in values:
        if isinstance(value, (list, tuple, set, frozenset)):
            flat.extend(_flatten(value))
        else:
            flat.append(value)
    return flat


class RevisionOptions(BaseModel):
    """
    Per record type settings controlling what gets versioned and how.

    Instances are immutable; every builder method returns a new instance:

        RevisionOptions.instance().set_retention_limit(5).set_included_relations("tags")
    """

    model_config = ConfigDict(frozen=True)

    snapshot_on_create: bool = Field(
        False, description="Create a revision when the record is created"
    )
    retention_limit: Optional[int] = Field(
        None, description="Max revisions kept per record; oldest are pruned"
    )
    included_fields: FrozenSet[str] = Field(
        default_factory=frozenset, description="Allow-list of fields (empty = all)"
    )
    excluded_fields: FrozenSet[str] = Field(
        default_factory=frozenset, description="Deny-list applied after the allow-list"
    )
    included_relations: Tuple[str, ...] = Field(
        default_factory=tuple, description="Relations captured in the snapshot"
    )
    snapshot_on_rollback: bool = Field(
        True, description="Save current state as a revision before rolling back"
    )
    include_timestamps: bool = Field(
        False, description="Always capture creation/update timestamps"
    )

    @field_validator("retention_limit")
    @classmethod
    def _check_retention_limit(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ConfigurationError(
                f"Retention limit must be a positive integer, got {value}"
            )
        return value

    @classmethod
    def instance(cls) -> "RevisionOptions":
        return cls()

    def _with(self, **changes: Any) -> "RevisionOptions":
        # model_copy skips validation; rebuild so validators run
        return type(self).model_validate({**self.model_dump(), **changes})

    def enable_snapshot_on_create(self) -> "RevisionOptions":
        return self._with(snapshot_on_create=True)

    def set_retention_limit(self, limit: int) -> "RevisionOptions":
        return self._with(retention_limit=limit)

    def set_included_fields(self, *fields: Any) -> "RevisionOptions":
        return self._with(included_fields=frozenset(_flatten(fields)))

    def set_excluded_fields(self, *fields: Any) -> "RevisionOptions":
        return self._with(excluded_fields=frozenset(_flatten(fields)))

    def set_included_relations(self, *relations: Any) -> "RevisionOptions":
        # ordered set: first occurrence wins
        return self._with(included_relations=tuple(dict.fromkeys(_flatten(relations))))

    def disable_snapshot_on_rollback(self) -> "RevisionOptions":
        return self._with(snapshot_on_rollback=False)

    def enable_timestamps(self) -> "RevisionOptions":
        return self._with(include_timestamps=True)
