"""
Assessment template builder model.

An item's response configuration is a tagged union keyed on `kind`, so each
response kind carries only the fields that mean something for it. Builder
operations are pure: they return a new template and leave the input alone.
"""

from enum import Enum
from typing import Annotated, Any, Literal, TypeVar

from pydantic import BaseModel, Field, TypeAdapter


class ResponseKind(str, Enum):
    SCALE = "SCALE"
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TEXT = "TEXT"
    NUMBER = "NUMBER"
    DATE = "DATE"
    YES_NO = "YES_NO"


class ChoiceOption(BaseModel):
    value: str
    label: str
    score: float | None = None


class ScaleResponse(BaseModel):
    kind: Literal["SCALE"] = "SCALE"
    min_value: int
    max_value: int
    labels: dict[int, str] = Field(default_factory=dict)  # e.g. {0: "Independent"}


class SingleChoiceResponse(BaseModel):
    kind: Literal["SINGLE_CHOICE"] = "SINGLE_CHOICE"
    options: list[ChoiceOption]


class MultipleChoiceResponse(BaseModel):
    kind: Literal["MULTIPLE_CHOICE"] = "MULTIPLE_CHOICE"
    options: list[ChoiceOption]


class TextResponse(BaseModel):
    kind: Literal["TEXT"] = "TEXT"
    max_length: int | None = None
    placeholder: str | None = None


class NumberResponse(BaseModel):
    kind: Literal["NUMBER"] = "NUMBER"
    min_value: float | None = None
    max_value: float | None = None
    unit: str | None = None  # "lbs", "mmHg"


class DateResponse(BaseModel):
    kind: Literal["DATE"] = "DATE"


class YesNoResponse(BaseModel):
    kind: Literal["YES_NO"] = "YES_NO"


ResponseConfig = Annotated[
    ScaleResponse
    | SingleChoiceResponse
    | MultipleChoiceResponse
    | TextResponse
    | NumberResponse
    | DateResponse
    | YesNoResponse,
    Field(discriminator="kind"),
]

_response_adapter: TypeAdapter[ResponseConfig] = TypeAdapter(ResponseConfig)


class AssessmentItem(BaseModel):
    id: str
    code: str
    question_text: str
    required: bool = False
    response: ResponseConfig

    @property
    def kind(self) -> ResponseKind:
        return ResponseKind(self.response.kind)


class AssessmentSection(BaseModel):
    id: str
    title: str
    items: list[AssessmentItem] = Field(default_factory=list)


class AssessmentTemplate(BaseModel):
    id: str
    name: str
    version: int = 1
    sections: list[AssessmentSection] = Field(default_factory=list)


def parse_response(data: dict[str, Any]) -> ResponseConfig:
    return _response_adapter.validate_python(data)


def parse_template(data: dict[str, Any]) -> AssessmentTemplate:
    return AssessmentTemplate.model_validate(data)


T = TypeVar("T")


def _move(seq: list[T], from_index: int, to_index: int) -> list[T]:
    if not 0 <= from_index < len(seq):
        raise IndexError(f"from_index {from_index} out of range")
    if not 0 <= to_index < len(seq):
        raise IndexError(f"to_index {to_index} out of range")
    moved = list(seq)
    moved.insert(to_index, moved.pop(from_index))
    return moved


def _section_index(template: AssessmentTemplate, section_id: str) -> int:
    for i, section in enumerate(template.sections):
        if section.id == section_id:
            return i
    raise KeyError(section_id)


def _replace_section(
    template: AssessmentTemplate, index: int, section: AssessmentSection
) -> AssessmentTemplate:
    sections = list(template.sections)
    sections[index] = section
    return template.model_copy(update={"sections": sections})


def add_section(
    template: AssessmentTemplate, section: AssessmentSection
) -> AssessmentTemplate:
    return template.model_copy(update={"sections": [*template.sections, section]})


def add_item(
    template: AssessmentTemplate,
    section_id: str,
    item: AssessmentItem,
    index: int | None = None,
) -> AssessmentTemplate:
    i = _section_index(template, section_id)
    section = template.sections[i]
    items = list(section.items)
    if index is None:
        items.append(item)
    else:
        if not 0 <= index <= len(items):
            raise IndexError(f"index {index} out of range")
        items.insert(index, item)
    return _replace_section(
        template, i, section.model_copy(update={"items": items})
    )


def remove_item(template: AssessmentTemplate, item_id: str) -> AssessmentTemplate:
    for i, section in enumerate(template.sections):
        items = [item for item in section.items if item.id != item_id]
        if len(items) != len(section.items):
            return _replace_section(
                template, i, section.model_copy(update={"items": items})
            )
    raise KeyError(item_id)


def move_section(
    template: AssessmentTemplate, from_index: int, to_index: int
) -> AssessmentTemplate:
    return template.model_copy(
        update={"sections": _move(template.sections, from_index, to_index)}
    )


def move_item(
    template: AssessmentTemplate, section_id: str, from_index: int, to_index: int
) -> AssessmentTemplate:
    i = _section_index(template, section_id)
    section = template.sections[i]
    items = _move(section.items, from_index, to_index)
    return _replace_section(
        template, i, section.model_copy(update={"items": items})
    )


def move_item_to_section(
    template: AssessmentTemplate,
    item_id: str,
    target_section_id: str,
    index: int | None = None,
) -> AssessmentTemplate:
    """Drag an item out of whichever section holds it into another one."""
    item = next(
        (
            item
            for section in template.sections
            for item in section.items
            if item.id == item_id
        ),
        None,
    )
    if item is None:
        raise KeyError(item_id)

    return add_item(remove_item(template, item_id), target_section_id, item, index)
