"""Field geometry: conversion between percent-of-canvas and pixel units."""

from dataclasses import dataclass

from compositor.schemas.field import TemplateField, Unit


@dataclass(frozen=True)
class PixelBounds:
    """Axis-aligned bounds in canvas pixels (top-left origin)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


def _check_canvas(canvas_width: float, canvas_height: float) -> None:
    if canvas_width <= 0 or canvas_height <= 0:
        raise ValueError(
            f"Canvas dimensions must be positive, got {canvas_width}x{canvas_height}"
        )


def to_pixels(field: TemplateField, canvas_width: float, canvas_height: float) -> PixelBounds:
    """Resolve a field's bounds in pixels for the given canvas."""
    _check_canvas(canvas_width, canvas_height)
    if field.unit == Unit.PX:
        return PixelBounds(field.x, field.y, field.width, field.height)
    return PixelBounds(
        x=field.x / 100 * canvas_width,
        y=field.y / 100 * canvas_height,
        width=field.width / 100 * canvas_width,
        height=field.height / 100 * canvas_height,
    )


def from_pixels(
    bounds: PixelBounds,
    unit: Unit,
    canvas_width: float,
    canvas_height: float,
) -> dict[str, float]:
    """Express pixel bounds in ``unit`` as a dict of geometry attributes."""
    _check_canvas(canvas_width, canvas_height)
    if unit == Unit.PX:
        return {"x": bounds.x, "y": bounds.y, "width": bounds.width, "height": bounds.height}
    return {
        "x": bounds.x / canvas_width * 100,
        "y": bounds.y / canvas_height * 100,
        "width": bounds.width / canvas_width * 100,
        "height": bounds.height / canvas_height * 100,
    }


def to_unit(
    field: TemplateField,
    target_unit: Unit,
    canvas_width: float,
    canvas_height: float,
) -> TemplateField:
    """Return a copy of ``field`` with its geometry expressed in ``target_unit``.

    The input is never mutated. Converting to the unit the field already uses
    returns an unchanged copy.
    """
    if field.unit == target_unit:
        return field.model_copy()
    bounds = to_pixels(field, canvas_width, canvas_height)
    geometry = from_pixels(bounds, target_unit, canvas_width, canvas_height)
    return field.model_copy(update={**geometry, "unit": target_unit})


def with_pixel_bounds(
    field: TemplateField,
    bounds: PixelBounds,
    canvas_width: float,
    canvas_height: float,
) -> TemplateField:
    """Return a copy of ``field`` moved to ``bounds``, kept in its own unit."""
    geometry = from_pixels(bounds, field.unit, canvas_width, canvas_height)
    return field.model_copy(update=geometry)
