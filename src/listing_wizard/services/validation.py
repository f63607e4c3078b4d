"""Schema-driven validation of listing sessions."""

import asyncio
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from listing_wizard.domain.assets import AssetState
from listing_wizard.domain.records import get_value, index_of, set_value
from listing_wizard.domain.schema import (
    FieldKind,
    FieldRule,
    OptionSource,
    StepDefinition,
    ValidationError,
)
from listing_wizard.domain.sessions import FormSession
from listing_wizard.services.schema import Schema, resolve_schema, resolve_steps
from listing_wizard.services.taxonomy import TaxonomyService

_logger = logging.getLogger(__name__)

_TEXT_KINDS = {FieldKind.TEXT, FieldKind.EMAIL, FieldKind.URL, FieldKind.DATE}
_LIST_KINDS = {FieldKind.MULTI_CHOICE, FieldKind.ENTRIES}
_NUMBER_KINDS = {FieldKind.NUMBER, FieldKind.INTEGER}


@dataclass(frozen=True)
class StepCheck:
    """Outcome of gating a step."""

    errors: list[ValidationError]
    first_error_path: str | None

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class ValidationEngine:
    """Validates fields, steps and whole sessions against the active schema."""

    session: FormSession
    taxonomy: TaxonomyService | None = None
    min_media_count: int = 3
    _sequence: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _pending: dict[str, asyncio.Task] = field(
        default_factory=dict, init=False, repr=False
    )

    @property
    def schema(self) -> Schema:
        return resolve_schema(self.session.discriminant)

    def validate_field(self, path: str) -> ValidationError | None:
        """Validate one field path without touching the stored error set."""
        rule = self.schema.rule_for(path)
        if rule is None:
            return None
        message = self._check(rule, path)
        return ValidationError(path, message) if message else None

    def validate_fields(self, paths: Iterable[str]) -> list[ValidationError]:
        """Validate several field paths, returning errors in path order."""
        errors = []
        for path in paths:
            error = self.validate_field(path)
            if error is not None:
                errors.append(error)
        return errors

    def validate_all(self) -> list[ValidationError]:
        """Validate every step of the active step list."""
        errors: list[ValidationError] = []
        seen: set[str] = set()
        for step in resolve_steps(self.session.discriminant):
            paths = [path for path in self.step_owned_paths(step) if path not in seen]
            seen.update(paths)
            errors.extend(self.validate_fields(paths))
        return errors

    def step_owned_paths(self, step: StepDefinition) -> list[str]:
        """Return the field paths a step owns right now."""
        return self.schema.paths_for_step(step.id, self.session.record)

    def check_step(self, step: StepDefinition) -> StepCheck:
        """Validate a step and store its errors for display."""
        paths = self.step_owned_paths(step)
        errors = self.validate_fields(paths)
        self.record_errors(paths, errors)
        return StepCheck(
            errors=errors,
            first_error_path=errors[0].path if errors else None,
        )

    def record_errors(
        self, paths: Iterable[str], errors: Iterable[ValidationError]
    ) -> None:
        """Replace stored errors for ``paths`` with ``errors``."""
        for path in paths:
            self.session.errors.pop(path, None)
        for error in errors:
            self.session.errors[error.path] = error.message

    def clear_errors(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.session.errors.pop(path, None)

    def refresh_errors(self) -> None:
        """Drop stored errors that no longer apply to the current record."""
        for path in list(self.session.errors):
            if self.validate_field(path) is None:
                self.session.errors.pop(path, None)

    def apply_field(self, path: str) -> ValidationError | None:
        """Validate a just-edited field and store the result."""
        self._bump(path)
        return self._store_field(path)

    def coerce(self, path: str, value: object) -> object:
        """Normalise raw input for the field's kind."""
        rule = self.schema.rule_for(path)
        if rule is None:
            return value
        if rule.kind in _NUMBER_KINDS and isinstance(value, str):
            cleaned = value.strip().replace(",", "")
            if not cleaned:
                return None
            number = _as_number(cleaned)
            if number is None:
                return value
            if rule.kind is FieldKind.INTEGER and number.is_integer():
                return int(number)
            return number
        if rule.kind is FieldKind.BOOLEAN and isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "yes", "1"}:
                return True
            if lowered in {"false", "no", "0"}:
                return False
        return value

    def reset_descendants(self, path: str) -> list[str]:
        """Empty every field that depends on ``path`` and drop its errors."""
        schema = self.schema
        cleared = []
        for child in schema.descendants_of(path):
            rule = schema.rule_for(child)
            if rule is None:
                continue
            try:
                set_value(self.session.record, child, rule.empty_value)
            except KeyError:
                continue
            self._bump(child)
            self.session.errors.pop(child, None)
            cleared.append(child)
        return cleared

    def schedule_remote_check(self, path: str) -> None:
        """Revalidate a field once its remote option list is available."""
        rule = self.schema.rule_for(path)
        if rule is None or rule.options is None or self.taxonomy is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        sequence = self._bump(path)
        task = loop.create_task(self._revalidate(path, sequence))
        self._pending[path] = task
        task.add_done_callback(lambda done, key=path: self._forget(key, done))

    async def revalidate(self, path: str) -> ValidationError | None:
        """Fetch dependent option data, then validate and store the field."""
        return await self._revalidate(path, self._bump(path))

    def reset(self) -> None:
        """Cancel pending field checks and forget their sequence numbers."""
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()
        self._sequence.clear()

    async def settle(self) -> None:
        """Wait for option fetches and pending field checks to finish."""
        if self.taxonomy is not None:
            await self.taxonomy.settle()
        while self._pending:
            await asyncio.gather(*list(self._pending.values()), return_exceptions=True)

    async def _revalidate(self, path: str, sequence: int) -> ValidationError | None:
        await self._load_options(path)
        if self._sequence.get(path) != sequence:
            _logger.debug("Discarding stale validation", extra={"path": path})
            return None
        return self._store_field(path)

    async def _load_options(self, path: str) -> None:
        rule = self.schema.rule_for(path)
        if rule is None or rule.options is None or self.taxonomy is None:
            return
        parent_id = self._option_parent(rule, path)
        if rule.options is not OptionSource.INDUSTRIES and not parent_id:
            return
        await self.taxonomy.options(rule.options, parent_id)

    def _store_field(self, path: str) -> ValidationError | None:
        error = self.validate_field(path)
        if error is None:
            self.session.errors.pop(path, None)
        else:
            self.session.errors[path] = error.message
        return error

    def _bump(self, path: str) -> int:
        sequence = self._sequence.get(path, 0) + 1
        self._sequence[path] = sequence
        return sequence

    def _forget(self, path: str, task: asyncio.Task) -> None:
        if self._pending.get(path) is task:
            self._pending.pop(path, None)

    def _check(self, rule: FieldRule, path: str) -> str | None:
        record = self.session.record
        if rule.variant is not None and rule.variant is not self.session.discriminant:
            return None
        if rule.required_when is not None and not rule.required_when(record):
            return None
        if rule.kind is FieldKind.ASSETS:
            return self._check_media()
        value = get_value(record, path)
        if _is_empty(value):
            if rule.required or rule.required_when is not None:
                return rule.message or f"{rule.label} is required"
            return None
        message = _check_shape(rule, value) or self._check_options(rule, path, value)
        if message:
            return message
        if rule.check is not None:
            return rule.check(record)
        return None

    def _check_media(self) -> str | None:
        committed = sum(
            1
            for asset in self.session.media_assets
            if asset.state is AssetState.COMMITTED
        )
        if committed >= self.min_media_count:
            return None
        missing = self.min_media_count - committed
        return (
            f"Upload at least {self.min_media_count} images "
            f"({missing} more needed)"
        )

    def _check_options(self, rule: FieldRule, path: str, value: object) -> str | None:
        if rule.options is None or self.taxonomy is None:
            return None
        known = self.taxonomy.cached_ids(rule.options, self._option_parent(rule, path))
        if known is None:
            return None
        values = value if isinstance(value, list) else [value]
        if all(str(item) in known for item in values):
            return None
        return f"Select a valid {rule.label.lower()} from the list"

    def _option_parent(self, rule: FieldRule, path: str) -> str | None:
        index = index_of(path)
        if rule.options is OptionSource.INDUSTRIES or index is None:
            return None
        parent_field = (
            "industry" if rule.options is OptionSource.CATEGORIES else "category"
        )
        path = f"classifications.{index}.{parent_field}"
        parent = get_value(self.session.record, path)
        return str(parent) if parent else None


def _is_empty(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, list | tuple):
        return not value
    return False


def _as_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _check_shape(rule: FieldRule, value: object) -> str | None:  # noqa: PLR0911, PLR0912
    label = rule.label
    if rule.kind in _NUMBER_KINDS:
        number = _as_number(value)
        if number is None:
            return f"{label} must be a number"
        if rule.kind is FieldKind.INTEGER and not number.is_integer():
            return f"{label} must be a whole number"
        if rule.min_value is not None and number < rule.min_value:
            return f"{label} must be at least {rule.min_value:g}"
        if rule.max_value is not None and number > rule.max_value:
            return f"{label} cannot exceed {rule.max_value:g}"
        return None
    if rule.kind is FieldKind.BOOLEAN:
        return None if isinstance(value, bool) else f"{label} must be yes or no"
    if rule.kind is FieldKind.CHOICE:
        if rule.choices and str(value) not in rule.choices:
            return rule.message or f"Please select a valid {label.lower()}"
        return None
    if rule.kind in _LIST_KINDS:
        if not isinstance(value, list):
            return f"{label} must be a list"
        if rule.min_items is not None and len(value) < rule.min_items:
            return rule.message or f"Select at least {rule.min_items} {label.lower()}"
        if rule.max_items is not None and len(value) > rule.max_items:
            return f"You can select up to {rule.max_items} {label.lower()}"
        if rule.choices and any(str(item) not in rule.choices for item in value):
            return f"Please select valid {label.lower()}"
        return None
    if rule.kind in _TEXT_KINDS:
        if not isinstance(value, str):
            return f"{label} must be text"
        text = value.strip()
        if rule.min_length is not None and len(text) < rule.min_length:
            return f"{label} must be at least {rule.min_length} characters"
        if rule.max_length is not None and len(text) > rule.max_length:
            return f"{label} cannot exceed {rule.max_length} characters"
        if rule.pattern is not None and re.match(rule.pattern, text) is None:
            return rule.pattern_message or f"{label} is not valid"
    return None
