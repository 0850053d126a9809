"""Single-document rendering: template + values -> image or PDF bytes."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from compositor.config import get_settings
from compositor.core.errors import AssetFetchError
from compositor.core.fonts import FontRegistry, font_registry
from compositor.core.layout import has_value
from compositor.core.pdf import compose_pdf
from compositor.core.raster import compose_image
from compositor.core.validation import (
    ensure_required_values,
    ensure_unique_labels,
    map_values_to_field_ids,
)
from compositor.schemas.field import ImageField
from compositor.schemas.template import TemplateDocument
from compositor.services.assets import AssetLoader, asset_loader

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedArtifact:
    content: bytes
    content_type: str
    extension: str


class DocumentRenderer:
    """Validates values and composes the final artifact for a template."""

    def __init__(
        self,
        assets: AssetLoader = asset_loader,
        fonts: FontRegistry = font_registry,
        image_quality: int | None = None,
    ) -> None:
        self.assets = assets
        self.fonts = fonts
        self.image_quality = image_quality or settings.image_output_quality

    def prepare_values(self, template: TemplateDocument, values: dict[str, Any]) -> dict[str, Any]:
        """Check labels, re-key values onto field ids and enforce required fields.

        Raises a ``TemplateValidationError`` subclass before any work is done.
        """
        ensure_unique_labels(template.fields)
        bound = map_values_to_field_ids(template.fields, values)
        ensure_required_values(template.fields, bound)
        return bound

    async def _load_images(self, template: TemplateDocument, values: dict[str, Any]) -> dict[str, bytes]:
        images: dict[str, bytes] = {}
        for field in template.fields:
            value = values.get(field.id)
            if isinstance(field, ImageField) and has_value(value):
                if not isinstance(value, str):
                    raise AssetFetchError(f'Image value for "{field.label}" must be a URL or data URI')
                images[field.id] = await self.assets.load_value(value)
        return images

    async def render(self, template: TemplateDocument, values: dict[str, Any]) -> RenderedArtifact:
        bound = self.prepare_values(template, values)

        if not template.source_key:
            raise AssetFetchError(f"Template {template.id} has no source file")
        source = await self.assets.load(template.source_key)
        images = await self._load_images(template, bound)

        if template.type == "pdf":
            content = await asyncio.to_thread(
                compose_pdf, source, template.fields, bound, images, self.fonts
            )
            return RenderedArtifact(content, "application/pdf", "pdf")

        content = await asyncio.to_thread(
            compose_image, source, template.fields, bound, images, self.fonts, self.image_quality
        )
        return RenderedArtifact(content, "image/jpeg", "jpg")


# Singleton instance
document_renderer = DocumentRenderer()
