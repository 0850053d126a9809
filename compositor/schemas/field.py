"""Template field schemas: the closed union of positioned field kinds.

Stored template content uses camelCase keys (``fontSize``, ``showTableHeader``),
so every model aliases its snake_case attributes and accepts either spelling.
"""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Unit(str, Enum):
    """Unit the four geometry numbers of a field are expressed in."""

    PERCENT = "percent"
    PX = "px"


class FieldType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    DATE = "date"
    TABLE = "table"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ── Table columns ──


class TableColumn(_CamelModel):
    """A table column; ``width`` is a percentage of the field's own width."""

    id: str
    header: str = ""
    key: str = ""
    width: float = 0


# ── Field kinds ──


class _FieldBase(_CamelModel):
    id: str
    x: float
    y: float
    width: float
    height: float
    unit: Unit = Unit.PERCENT
    page: int = Field(default=1, ge=1)
    rotation: float = 0
    label: str = ""
    placeholder: str | None = None
    required: bool = False

    background_color: str | None = None
    border_color: str | None = None
    border_width: float | None = None
    border_radius: float | None = None
    border_radius_top_left: float | None = None
    border_radius_top_right: float | None = None
    border_radius_bottom_right: float | None = None
    border_radius_bottom_left: float | None = None

    def corner_radii(self) -> tuple[float, float, float, float]:
        """Resolve (top-left, top-right, bottom-right, bottom-left) radii.

        An explicit corner wins over the unified ``border_radius``.
        """
        base = self.border_radius or 0
        return (
            base if self.border_radius_top_left is None else self.border_radius_top_left,
            base if self.border_radius_top_right is None else self.border_radius_top_right,
            base if self.border_radius_bottom_right is None else self.border_radius_bottom_right,
            base if self.border_radius_bottom_left is None else self.border_radius_bottom_left,
        )


class _TextStyle(_CamelModel):
    font_size: float = 12
    font_family: str | None = None
    font_weight: str | None = None
    text_align: Literal["left", "center", "right"] = "center"
    text_color: str = "#000000"


class TextField(_FieldBase, _TextStyle):
    type: Literal["text"] = "text"
    multiline: bool = False


class DateField(_FieldBase, _TextStyle):
    """A date field; its value is a caller-formatted string."""

    type: Literal["date"] = "date"


class ImageField(_FieldBase):
    type: Literal["image"] = "image"


class TableField(_FieldBase):
    type: Literal["table"] = "table"
    columns: list[TableColumn] = Field(default_factory=list)
    row_height: float = 24
    show_table_header: bool = True
    header_background_color: str = "#f3f4f6"
    header_text_color: str = "#000000"
    alternate_row_color: str | None = None
    table_header_font_size: float = 12
    table_body_font_size: float = 12
    table_font_family: str | None = None
    font_family: str | None = None
    text_color: str = "#000000"


# Discriminated union on "type"
TemplateField = Annotated[
    TextField | ImageField | DateField | TableField,
    Field(discriminator="type"),
]

FIELD_CLASSES: dict[FieldType, type[_FieldBase]] = {
    FieldType.TEXT: TextField,
    FieldType.IMAGE: ImageField,
    FieldType.DATE: DateField,
    FieldType.TABLE: TableField,
}
