"""Font resolution shared by the raster and PDF backends.

TrueType files are discovered in the configured fonts directory and named
``<Family>-Regular.ttf`` / ``<Family>-Bold.ttf``. Families the directory does
not provide fall back to Inter/Roboto aliases, then Open Sans, then the
built-in face of each backend (Pillow's default font, PDF Helvetica).
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import ImageFont
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont

from compositor.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

_BOLD_WEIGHTS = {"bold", "bolder", "600", "700", "800", "900"}


def _normalize(name: str) -> str:
    return "".join(ch for ch in name.lower() if ch.isalnum())


@dataclass(frozen=True)
class FontSpec:
    """Requested face: family name (may be unknown) and weight."""

    family: str | None = None
    bold: bool = False

    @classmethod
    def from_style(cls, family: str | None, weight: str | None = None) -> "FontSpec":
        return cls(family=family, bold=(weight or "").strip().lower() in _BOLD_WEIGHTS)


class FontRegistry:
    """Maps ``FontSpec`` to concrete Pillow fonts and reportlab font names."""

    def __init__(self, fonts_dir: str | Path | None = None) -> None:
        self.fonts_dir = Path(fonts_dir) if fonts_dir else None
        self._files: dict[tuple[str, bool], Path] | None = None
        self._names: dict[str, str] = {}  # normalized -> display family
        self._pil_cache: dict[tuple[str | None, bool, float], ImageFont.ImageFont] = {}

    # ── Discovery ──

    def _scan(self) -> dict[tuple[str, bool], Path]:
        if self._files is not None:
            return self._files

        files: dict[tuple[str, bool], Path] = {}
        if self.fonts_dir and self.fonts_dir.is_dir():
            for path in sorted(self.fonts_dir.glob("*.ttf")):
                family, _, style = path.stem.partition("-")
                key = _normalize(family)
                self._names.setdefault(key, family)
                bold = style.lower() in ("bold", "semibold", "extrabold")
                if style.lower() in ("", "regular", "bold", "semibold", "extrabold"):
                    files.setdefault((key, bold), path)
            logger.info(f"Discovered {len(files)} font files in {self.fonts_dir}")
        self._files = files
        return files

    @property
    def families(self) -> list[str]:
        self._scan()
        return sorted(self._names.values())

    def resolve_family(self, family: str | None) -> str | None:
        """Normalized key of the family to use, or ``None`` for the built-in face."""
        files = self._scan()
        available = {key for key, _ in files}

        if family:
            key = _normalize(family)
            if key in available:
                return key
            for alias in ("inter", "roboto"):
                if alias in key and alias in available:
                    return alias
        if "opensans" in available:
            return "opensans"
        return None

    def _font_path(self, spec: FontSpec) -> Path | None:
        key = self.resolve_family(spec.family)
        if key is None:
            return None
        files = self._scan()
        return files.get((key, spec.bold)) or files.get((key, not spec.bold))

    # ── Pillow ──

    def pil_font(self, spec: FontSpec, size: float) -> ImageFont.ImageFont:
        cache_key = (spec.family, spec.bold, size)
        font = self._pil_cache.get(cache_key)
        if font is None:
            path = self._font_path(spec)
            if path is not None:
                font = ImageFont.truetype(str(path), size)
            else:
                font = ImageFont.load_default(size)
            self._pil_cache[cache_key] = font
        return font

    def raster_measure(self, text: str, spec: FontSpec, size: float) -> float:
        return self.pil_font(spec, size).getlength(text)

    # ── reportlab ──

    def pdf_font_name(self, spec: FontSpec) -> str:
        path = self._font_path(spec)
        if path is None:
            return "Helvetica-Bold" if spec.bold else "Helvetica"

        name = path.stem
        if name not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont(name, str(path)))
        return name

    def pdf_measure(self, text: str, spec: FontSpec, size: float) -> float:
        return pdfmetrics.stringWidth(text, self.pdf_font_name(spec), size)


# Singleton instance
font_registry = FontRegistry(settings.fonts_dir)
