"""Domain errors raised by the compositing engine."""


class CompositorError(Exception):
    """Base class for compositing errors."""


class TemplateValidationError(CompositorError):
    """A template or its input failed synchronous validation."""

    def __init__(self, message: str, labels: list[str] | None = None) -> None:
        super().__init__(message)
        self.labels = labels or []


class MissingRequiredFieldsError(TemplateValidationError):
    """Required fields have no usable value."""

    def __init__(self, labels: list[str]) -> None:
        super().__init__(
            f"Missing required fields: {', '.join(labels)}",
            labels,
        )


class DuplicateLabelsError(TemplateValidationError):
    """Two or more fields share a label (case-insensitive, trimmed)."""

    def __init__(self, labels: list[str]) -> None:
        super().__init__(
            "Duplicate field labels found: "
            f"{', '.join(labels)}. Each field must have a unique label.",
            labels,
        )


class MissingColumnsError(TemplateValidationError):
    """A bulk upload lacks columns for required fields."""

    def __init__(self, labels: list[str]) -> None:
        super().__init__(
            f"CSV is missing required columns: {', '.join(labels)}",
            labels,
        )


class SourceFileError(TemplateValidationError):
    """An uploaded source file could not be read as an image or PDF."""


class AssetFetchError(CompositorError):
    """A source file or image value could not be loaded."""


class TableDataError(CompositorError):
    """A table field value is not a list of row mappings."""


class EmptyInputError(TemplateValidationError):
    """A bulk submission contained no rows."""
