"""Tests for the template lifecycle service with a mocked session and storage."""

import io
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from PIL import Image

from compositor.core.content import parse_fields, serialize_fields
from compositor.core.editor import FieldNotFoundError
from compositor.core.errors import DuplicateLabelsError, SourceFileError
from compositor.core.fonts import FontRegistry
from compositor.models.invoice_template import InvoiceTemplate
from compositor.schemas.field import FieldType, Unit
from compositor.schemas.template import FieldCreate
from compositor.services.storage import StorageService
from compositor.services.templates import TemplateService, _safe_filename
from tests.factories import text_field


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _png(width: int = 200, height: int = 100) -> bytes:
    output = io.BytesIO()
    Image.new("RGB", (width, height), (255, 255, 255)).save(output, format="PNG")
    return output.getvalue()


def _template(fields=(), **kwargs) -> InvoiceTemplate:
    data = dict(
        id=uuid4(),
        entity_id=uuid4(),
        name="Invoice",
        type="image",
        source_key=None,
        source_width=1000,
        source_height=500,
        page_count=1,
        content=serialize_fields(list(fields)),
        is_draft=True,
    )
    data.update(kwargs)
    return InvoiceTemplate(**data)


@pytest.fixture
def db():
    session = MagicMock()
    session.commit = AsyncMock()
    session.refresh = AsyncMock()
    session.rollback = AsyncMock()
    session.delete = AsyncMock()
    return session


@pytest.fixture
def storage():
    mock = AsyncMock()
    mock.template_source_key = StorageService.template_source_key
    mock.get_url.return_value = "https://files.example.com/source.png"
    return mock


@pytest.fixture
def service(storage, tmp_path) -> TemplateService:
    return TemplateService(storage=storage, documents=AsyncMock(), fonts=FontRegistry(tmp_path))


# ─── Upload ───────────────────────────────────────────────────────────────────

class TestCreateFromUpload:
    @pytest.mark.asyncio
    async def test_stores_key_and_dimensions(self, service, db, storage):
        entity_id = uuid4()
        template = await service.create_from_upload(
            db, entity_id, "Letterhead", _png(200, 100), "image/png", "../My Letterhead.png"
        )

        assert (template.type, template.source_width, template.source_height) == ("image", 200, 100)
        key = storage.upload.await_args.args[1]
        assert key == template.source_key
        assert key.startswith(f"entities/{entity_id}/templates/{template.id}/source/")
        assert key.endswith("My_Letterhead.png")
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreadable_file_stores_nothing(self, service, db, storage):
        with pytest.raises(SourceFileError):
            await service.create_from_upload(db, uuid4(), "Bad", b"garbage", "image/png", "bad.png")
        storage.upload.assert_not_awaited()
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_commit_failure_removes_upload(self, service, db, storage):
        db.commit.side_effect = RuntimeError("db down")
        with pytest.raises(RuntimeError):
            await service.create_from_upload(db, uuid4(), "Letterhead", _png(), "image/png", "a.png")
        db.rollback.assert_awaited_once()
        storage.delete.assert_awaited_once_with(storage.upload.await_args.args[1])

    def test_safe_filename(self):
        assert _safe_filename("C:\\docs\\inv oice.pdf", "x") == "inv_oice.pdf"
        assert _safe_filename(None, "source") == "source"


# ─── Content and publish ──────────────────────────────────────────────────────

class TestContent:
    @pytest.mark.asyncio
    async def test_autosave_warns_but_saves(self, service, db):
        template = _template()
        fields = [text_field("a", "Name"), text_field("b", "name")]

        warnings = await service.save_content(db, template, fields)

        assert len(warnings) == 1
        assert parse_fields(template.content) == fields

    @pytest.mark.asyncio
    async def test_publish_rejects_duplicates(self, service, db):
        template = _template([text_field("a", "Name"), text_field("b", "NAME")])
        with pytest.raises(DuplicateLabelsError):
            await service.publish(db, template)
        assert template.is_draft is True
        db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish(self, service, db):
        template = _template([text_field("a", "Name")])
        await service.publish(db, template)
        assert template.is_draft is False
        assert template.published_at is not None


# ─── Field operations ─────────────────────────────────────────────────────────

class TestFieldOperations:
    @pytest.mark.asyncio
    async def test_add_field_persists(self, service, db):
        template = _template()
        field, warnings = await service.add_field(db, template, FieldCreate(type=FieldType.TABLE, page=2))

        stored = parse_fields(template.content)
        assert [f.id for f in stored] == [field.id]
        assert stored[0].page == 2
        assert warnings == []

    @pytest.mark.asyncio
    async def test_update_field_by_alias(self, service, db):
        template = _template([text_field("a", "Name")])
        field, _ = await service.update_field(db, template, "a", {"fontSize": 20, "label": "Customer"})
        assert field.font_size == 20
        assert parse_fields(template.content)[0].label == "Customer"

    @pytest.mark.asyncio
    async def test_unit_change_converts_with_source_size(self, service, db):
        template = _template([text_field("a", "Name", x=50, y=50, width=25, height=12.5)])
        field, _ = await service.update_field(db, template, "a", {"unit": "px"})
        assert (field.x, field.y, field.width, field.height) == (500, 250, 250, 62.5)
        assert parse_fields(template.content)[0].unit == Unit.PX

    @pytest.mark.asyncio
    async def test_duplicate_reports_label_warning(self, service, db):
        template = _template([text_field("a", "Name", unit=Unit.PX, x=100)])
        copy, warnings = await service.duplicate_field(db, template, "a")
        assert copy.label == "Name (Copy)"
        assert copy.x == 110
        assert warnings == []

    @pytest.mark.asyncio
    async def test_unknown_field(self, service, db):
        with pytest.raises(FieldNotFoundError):
            await service.delete_field(db, _template(), "missing")
        db.commit.assert_not_awaited()


# ─── Preview ──────────────────────────────────────────────────────────────────

class TestPreview:
    def test_scaled_layout_for_page(self, service):
        template = _template([
            text_field("a", "Name", font_size=20, placeholder="Your name"),
            text_field("b", "Ref", page=2),
        ])
        preview = service.preview(template, {}, canvas_width=500, canvas_height=250)

        assert preview.scale == 0.5
        assert [d["field_id"] for d in preview.drawings] == ["a"]
        texts = [op for op in preview.drawings[0]["ops"] if "text" in op]
        assert texts[0]["text"] == "Your name"
        assert texts[0]["size"] == 10

    def test_values_by_label(self, service):
        template = _template([text_field("a", "Name")])
        preview = service.preview(template, {"Name": "Ada"})
        texts = [op for op in preview.drawings[0]["ops"] if "text" in op]
        assert texts[0]["text"] == "Ada"

    def test_no_dimensions(self, service):
        template = _template([text_field()], source_width=0, source_height=0)
        with pytest.raises(ValueError):
            service.preview(template, {})
