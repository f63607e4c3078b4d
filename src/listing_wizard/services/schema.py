"""Schema and step-list resolution for the selected listing type."""

from collections.abc import Mapping
from dataclasses import dataclass, replace
from functools import lru_cache

from listing_wizard.catalogue import (
    BASIC_INFO_STEP,
    COMMON_RULES,
    DETAILS,
    DETAILS_TITLES,
    DOCUMENTS_STEP,
    MEDIA_STEP,
    REVIEW_STEP,
    STEPLESS_DOCUMENTS,
    VARIANT_RULES,
)
from listing_wizard.domain.listings import ListingType
from listing_wizard.domain.records import get_value, index_of, instantiate, template_of
from listing_wizard.domain.schema import FieldKind, FieldRule, StepDefinition

DEFAULT_LISTING_TYPE = ListingType.BUSINESS


@dataclass(frozen=True)
class Schema:
    """Validation rules active for one listing type."""

    listing_type: ListingType
    rules: tuple[FieldRule, ...]
    by_path: Mapping[str, FieldRule]

    def rule_for(self, path: str) -> FieldRule | None:
        """Return the rule governing a concrete field path."""
        return self.by_path.get(template_of(path))

    def expand(self, rule: FieldRule, record: Mapping[str, object]) -> list[str]:
        """Return the concrete paths a rule applies to for this record."""
        if "*" not in rule.path:
            return [rule.path]
        head = rule.path.split(".", 1)[0]
        entries = get_value(record, head)
        count = len(entries) if isinstance(entries, list) else 0
        return [instantiate(rule.path, index) for index in range(count)]

    def paths_for_step(self, step_id: str, record: Mapping[str, object]) -> list[str]:
        """Return the field paths a step owns given the current record.

        Conditional fields whose predicate is false are not owned.
        """
        paths: list[str] = []
        for rule in self.rules:
            if rule.step != step_id:
                continue
            if rule.required_when is not None and not rule.required_when(record):
                continue
            paths.extend(self.expand(rule, record))
        return paths

    def descendants_of(self, path: str) -> list[str]:
        """Return every field path that depends on ``path``, transitively."""
        index = index_of(path)
        pending = [template_of(path)]
        found: list[str] = []
        while pending:
            parent = pending.pop(0)
            for rule in self.rules:
                if rule.parent == parent and rule.path not in found:
                    found.append(rule.path)
                    pending.append(rule.path)
        if index is None:
            return found
        return [instantiate(template, index) for template in found]

    def data_paths(self) -> list[str]:
        """Return the stored (non-virtual, non-indexed) field paths."""
        return [
            rule.path
            for rule in self.rules
            if "*" not in rule.path and rule.kind is not FieldKind.ASSETS
        ]


def resolve_steps(discriminant: object) -> tuple[StepDefinition, ...]:
    """Return the ordered step list for a listing type.

    Unknown or missing types fall back to the default variant's steps.
    """
    return _steps_for(ListingType.parse(discriminant) or DEFAULT_LISTING_TYPE)


def resolve_schema(discriminant: object) -> Schema:
    """Return the validation schema for a listing type."""
    return _schema_for(ListingType.parse(discriminant) or DEFAULT_LISTING_TYPE)


@lru_cache(maxsize=None)
def _steps_for(listing_type: ListingType) -> tuple[StepDefinition, ...]:
    details = StepDefinition(
        DETAILS,
        DETAILS_TITLES[listing_type],
        "Provide detailed information about your listing",
    )
    steps = [BASIC_INFO_STEP, MEDIA_STEP, details]
    if listing_type not in STEPLESS_DOCUMENTS:
        steps.append(DOCUMENTS_STEP)
    steps.append(REVIEW_STEP)
    return tuple(steps)


@lru_cache(maxsize=None)
def _schema_for(listing_type: ListingType) -> Schema:
    variant_rules = (
        _tag_variant(rule, listing_type) for rule in VARIANT_RULES[listing_type]
    )
    rules = (*COMMON_RULES, *variant_rules)
    return Schema(
        listing_type=listing_type,
        rules=rules,
        by_path={rule.path: rule for rule in rules},
    )


def _tag_variant(rule: FieldRule, listing_type: ListingType) -> FieldRule:
    if rule.variant is listing_type:
        return rule
    return replace(rule, variant=listing_type)


def exclusive_paths(previous: object, current: object) -> list[str]:
    """Return field paths owned only by the previous variant."""
    previous_type = ListingType.parse(previous)
    if previous_type is None:
        return []
    current_paths = {rule.path for rule in resolve_schema(current).rules}
    return [
        rule.path
        for rule in VARIANT_RULES[previous_type]
        if rule.path not in current_paths
    ]


def remap_step_index(
    previous_steps: tuple[StepDefinition, ...],
    current_steps: tuple[StepDefinition, ...],
    index: int,
) -> int:
    """Carry the active step across a step-list change.

    The same step id is kept when it still exists, otherwise the index is
    clamped into the new list.
    """
    if 0 <= index < len(previous_steps):
        step_id = previous_steps[index].id
        for position, step in enumerate(current_steps):
            if step.id == step_id:
                return position
    return max(0, min(index, len(current_steps) - 1))
