"""Declarative validation rules and step definitions."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from listing_wizard.domain.assets import AssetKind
from listing_wizard.domain.listings import ListingType

RecordPredicate = Callable[[Mapping[str, object]], bool]
RecordCheck = Callable[[Mapping[str, object]], str | None]


class FieldKind(str, Enum):
    """Value shape expected for a field."""

    TEXT = "text"
    EMAIL = "email"
    URL = "url"
    DATE = "date"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    CHOICE = "choice"
    MULTI_CHOICE = "multi_choice"
    ENTRIES = "entries"
    ASSETS = "assets"


class OptionSource(str, Enum):
    """Remote option list a field's value must belong to."""

    INDUSTRIES = "industries"
    CATEGORIES = "categories"
    SUBCATEGORIES = "subcategories"


@dataclass(frozen=True)
class FieldRule:
    """Constraints for one field path (``*`` stands for an entry index)."""

    path: str
    step: str
    label: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    min_value: float | None = None
    max_value: float | None = None
    min_items: int | None = None
    max_items: int | None = None
    pattern: str | None = None
    pattern_message: str | None = None
    choices: tuple[str, ...] = ()
    required_when: RecordPredicate | None = None
    check: RecordCheck | None = None
    parent: str | None = None
    variant: ListingType | None = None
    options: OptionSource | None = None
    message: str | None = None

    @property
    def empty_value(self) -> object:
        """Value a field is reset to when cleared."""
        if self.kind in {FieldKind.MULTI_CHOICE, FieldKind.ENTRIES, FieldKind.ASSETS}:
            return []
        if self.kind in {
            FieldKind.NUMBER,
            FieldKind.INTEGER,
            FieldKind.BOOLEAN,
            FieldKind.CHOICE,
        }:
            return None
        return ""


@dataclass(frozen=True)
class StepDefinition:
    """One wizard step."""

    id: str
    title: str
    description: str = ""
    asset_kind: AssetKind | None = None


@dataclass(frozen=True)
class ValidationError:
    """Validation failure scoped to one field path."""

    path: str
    message: str
