"""Tests for the raster and PDF backends and the renderer service."""

import io
import zipfile
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from PIL import Image
from pypdf import PdfReader, PdfWriter

from compositor.core.errors import AssetFetchError, DuplicateLabelsError, MissingRequiredFieldsError
from compositor.core.fonts import FontRegistry, FontSpec
from compositor.core.pdf import compose_pdf
from compositor.core.raster import compose_image
from compositor.models.generated_document import GeneratedDocument
from compositor.schemas.field import Unit
from compositor.schemas.template import TemplateDocument
from compositor.services.assets import AssetLoader
from compositor.services.documents import DocumentService
from compositor.services.renderer import DocumentRenderer, RenderedArtifact
from compositor.services.storage import StorageService, UploadResult
from tests.factories import image_field, table_field, text_field


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _blank_pdf(*sizes: tuple[float, float]) -> bytes:
    writer = PdfWriter()
    for width, height in sizes:
        writer.add_blank_page(width=width, height=height)
    output = io.BytesIO()
    writer.write(output)
    return output.getvalue()


def _png(width: int, height: int, color=(255, 255, 255)) -> bytes:
    output = io.BytesIO()
    Image.new("RGB", (width, height), color).save(output, format="PNG")
    return output.getvalue()


def _is_red(pixel) -> bool:
    r, g, b = pixel[:3]
    return r > 200 and g < 60 and b < 60


@pytest.fixture
def fonts(tmp_path) -> FontRegistry:
    return FontRegistry(tmp_path)


# ─── Fonts ────────────────────────────────────────────────────────────────────

class TestFontRegistry:
    def test_falls_back_to_helvetica(self, fonts):
        assert fonts.pdf_font_name(FontSpec("Inter")) == "Helvetica"
        assert fonts.pdf_font_name(FontSpec("Inter", bold=True)) == "Helvetica-Bold"
        assert fonts.resolve_family("Whatever") is None

    def test_measures_are_positive(self, fonts):
        assert fonts.pdf_measure("Hello", FontSpec(), 12) > 0
        assert fonts.raster_measure("Hello", FontSpec(), 12) > 0


# ─── PDF backend ──────────────────────────────────────────────────────────────

class TestComposePdf:
    def test_text_lands_on_its_page(self, fonts):
        source = _blank_pdf((595, 842), (842, 595))
        fields = [
            text_field("a", "Name", page=1),
            text_field("b", "Ref", page=2),
        ]
        output = compose_pdf(source, fields, {"a": "Ada Lovelace", "b": "REF-42"}, {}, fonts)

        reader = PdfReader(io.BytesIO(output))
        assert len(reader.pages) == 2
        assert "Ada Lovelace" in reader.pages[0].extract_text()
        assert "REF-42" in reader.pages[1].extract_text()
        assert "REF-42" not in reader.pages[0].extract_text()

    def test_page_sizes_preserved(self, fonts):
        source = _blank_pdf((595, 842), (842, 595))
        output = compose_pdf(source, [text_field(page=2)], {"f1": "x"}, {}, fonts)
        reader = PdfReader(io.BytesIO(output))
        assert float(reader.pages[1].mediabox.width) == pytest.approx(842)

    def test_fields_past_last_page_are_skipped(self, fonts):
        source = _blank_pdf((595, 842), (595, 842))
        fields = [text_field("a", "A", page=1), text_field("c", "C", page=3)]
        output = compose_pdf(source, fields, {"a": "first", "c": "third"}, {}, fonts)

        reader = PdfReader(io.BytesIO(output))
        assert len(reader.pages) == 2
        text = "".join(page.extract_text() for page in reader.pages)
        assert "first" in text
        assert "third" not in text

    def test_table_and_image_render(self, fonts):
        source = _blank_pdf((595, 842))
        fields = [table_field(), image_field(rotation=30)]
        values = {"t1": [{"description": "Consulting", "qty": 3, "amount": "300"}], "i1": "logo"}
        output = compose_pdf(source, fields, values, {"i1": _png(20, 20, (0, 0, 255))}, fonts)

        text = PdfReader(io.BytesIO(output)).pages[0].extract_text()
        assert "Consulting" in text
        assert "Description" in text


# ─── Raster backend ───────────────────────────────────────────────────────────

class TestComposeImage:
    def test_output_is_jpeg_at_source_size(self, fonts):
        output = compose_image(_png(300, 200), [text_field()], {"f1": "Hello"}, {}, fonts)
        with Image.open(io.BytesIO(output)) as img:
            assert img.format == "JPEG"
            assert img.size == (300, 200)

    def test_background_painted_only_with_value(self, fonts):
        field = text_field(x=0, y=40, width=100, height=20, unit=Unit.PX, background_color="#ff0000")
        with Image.open(io.BytesIO(compose_image(_png(200, 100), [field], {"f1": "x"}, {}, fonts))) as img:
            assert _is_red(img.getpixel((90, 50)))
        with Image.open(io.BytesIO(compose_image(_png(200, 100), [field], {}, {}, fonts))) as img:
            assert not _is_red(img.getpixel((90, 50)))

    def test_rotation_about_center(self, fonts):
        # 100x20 bar centred on (50, 50); a quarter turn makes it vertical
        field = text_field(x=0, y=40, width=100, height=20, unit=Unit.PX, background_color="#ff0000", rotation=90)
        with Image.open(io.BytesIO(compose_image(_png(200, 100), [field], {"f1": " "}, {}, fonts))) as img:
            assert _is_red(img.getpixel((50, 10)))
            assert not _is_red(img.getpixel((5, 50)))

    def test_image_value_stretched_into_box(self, fonts):
        field = image_field(x=0, y=0, width=116, height=116, unit=Unit.PX)
        images = {"i1": _png(10, 40, (255, 0, 0))}
        output = compose_image(_png(200, 200), [field], {"i1": "ref"}, images, fonts)
        with Image.open(io.BytesIO(output)) as img:
            assert _is_red(img.getpixel((100, 100)))
            assert _is_red(img.getpixel((20, 20)))
            assert not _is_red(img.getpixel((150, 150)))

    def test_only_first_page_fields(self, fonts):
        field = text_field(x=0, y=0, width=50, height=50, unit=Unit.PX, background_color="#ff0000", page=2)
        with Image.open(io.BytesIO(compose_image(_png(100, 100), [field], {"f1": "x"}, {}, fonts))) as img:
            assert not _is_red(img.getpixel((25, 25)))


# ─── Renderer service ─────────────────────────────────────────────────────────

def _template(fields, type_="pdf", source_key="entities/e/templates/t/source/s.pdf") -> TemplateDocument:
    return TemplateDocument(
        id=uuid4(),
        entity_id=uuid4(),
        name="Invoice",
        type=type_,
        source_key=source_key,
        source_width=595,
        source_height=842,
        fields=fields,
    )


class TestDocumentRenderer:
    @pytest.mark.asyncio
    async def test_renders_pdf_with_label_keys(self, fonts):
        assets = AsyncMock()
        assets.load.return_value = _blank_pdf((595, 842))
        renderer = DocumentRenderer(assets=assets, fonts=fonts)
        template = _template([text_field("a", "Customer", required=True)])

        artifact = await renderer.render(template, {"Customer": "Grace Hopper"})

        assert artifact.content_type == "application/pdf"
        assert artifact.extension == "pdf"
        assert "Grace Hopper" in PdfReader(io.BytesIO(artifact.content)).pages[0].extract_text()

    @pytest.mark.asyncio
    async def test_image_template_gives_jpeg(self, fonts):
        assets = AsyncMock()
        assets.load.return_value = _png(100, 100)
        renderer = DocumentRenderer(assets=assets, fonts=fonts, image_quality=80)

        artifact = await renderer.render(_template([text_field()], type_="image"), {"f1": "x"})

        assert artifact.content_type == "image/jpeg"
        assert artifact.extension == "jpg"

    @pytest.mark.asyncio
    async def test_missing_required_rejected_before_any_fetch(self, fonts):
        assets = AsyncMock()
        renderer = DocumentRenderer(assets=assets, fonts=fonts)
        template = _template([
            text_field("a", "Name", required=True),
            text_field("b", "Amount", required=True),
        ])

        with pytest.raises(MissingRequiredFieldsError) as exc:
            await renderer.render(template, {"Name": "Ada"})

        assert exc.value.labels == ["Amount"]
        assets.load.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_labels_rejected(self, fonts):
        renderer = DocumentRenderer(assets=AsyncMock(), fonts=fonts)
        template = _template([text_field("a", "Name"), text_field("b", "name")])
        with pytest.raises(DuplicateLabelsError):
            await renderer.render(template, {"a": "x", "b": "y"})

    @pytest.mark.asyncio
    async def test_template_without_source(self, fonts):
        renderer = DocumentRenderer(assets=AsyncMock(), fonts=fonts)
        with pytest.raises(AssetFetchError):
            await renderer.render(_template([text_field()], source_key=None), {"f1": "x"})

    @pytest.mark.asyncio
    async def test_image_values_fetched(self, fonts):
        assets = AsyncMock()
        assets.load.return_value = _blank_pdf((595, 842))
        assets.load_value.return_value = _png(10, 10)
        renderer = DocumentRenderer(assets=assets, fonts=fonts)
        template = _template([image_field()])

        await renderer.render(template, {"Logo": "https://cdn.example.com/logo.png"})

        assets.load.assert_awaited_once_with(template.source_key)
        assets.load_value.assert_awaited_once_with("https://cdn.example.com/logo.png")

    @pytest.mark.asyncio
    async def test_image_value_storage_key_rejected(self, fonts):
        storage = AsyncMock()
        storage.download.return_value = _blank_pdf((595, 842))
        renderer = DocumentRenderer(assets=AssetLoader(storage=storage), fonts=fonts)
        template = _template([image_field()])
        other_key = f"entities/{uuid4()}/templates/x/documents/y/secret.pdf"

        with pytest.raises(AssetFetchError):
            await renderer.render(template, {"Logo": other_key})

        assert [call.args[0] for call in storage.download.await_args_list] == [template.source_key]


# ─── Document service ─────────────────────────────────────────────────────────

@pytest.fixture
def doc_storage():
    storage = AsyncMock()
    storage.document_key = StorageService.document_key
    storage.job_archive_key = StorageService.job_archive_key
    storage.upload.side_effect = lambda content, key, content_type: UploadResult(
        url=f"https://files.example.com/{key}", path=key, size=len(content)
    )
    storage.get_url.return_value = "https://files.example.com/signed"
    return storage


@pytest.fixture
def doc_db():
    db = MagicMock()
    db.commit = AsyncMock()
    db.execute = AsyncMock()
    return db


def _scalars(rows):
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    return result


class TestDocumentService:
    @pytest.mark.asyncio
    async def test_store_uploads_then_records(self, doc_storage, doc_db):
        service = DocumentService(renderer=AsyncMock(), storage=doc_storage)
        entity_id, template_id, job_id = uuid4(), uuid4(), uuid4()
        artifact = RenderedArtifact(b"%PDF-1.4", "application/pdf", "pdf")

        result = await service.store(
            doc_db, entity_id, artifact, "ACME Invoice", template_id=template_id, bulk_job_id=job_id
        )

        key = doc_storage.upload.await_args.args[1]
        assert key == f"entities/{entity_id}/templates/{template_id}/documents/{result.document_id}/ACME-Invoice.pdf"
        document = doc_db.add.call_args.args[0]
        assert (document.storage_key, document.bulk_job_id, document.file_size) == (key, job_id, 8)
        assert result.url.endswith("ACME-Invoice.pdf")
        doc_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_upload_failure_records_nothing(self, doc_storage, doc_db):
        doc_storage.upload.side_effect = OSError("S3 down")
        service = DocumentService(renderer=AsyncMock(), storage=doc_storage)

        with pytest.raises(OSError):
            await service.store(doc_db, uuid4(), RenderedArtifact(b"x", "image/jpeg", "jpg"), "Receipt")

        doc_db.add.assert_not_called()
        doc_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_job_archive(self, doc_storage, doc_db):
        entity_id, job_id = uuid4(), uuid4()
        documents = [
            GeneratedDocument(id=uuid4(), name="a.pdf", content_type="application/pdf", storage_key="k/a.pdf"),
            GeneratedDocument(id=uuid4(), name="b.jpg", content_type="image/jpeg", storage_key="k/b.jpg"),
        ]
        doc_db.execute.return_value = _scalars(documents)
        doc_storage.download.return_value = b"bytes"
        service = DocumentService(renderer=AsyncMock(), storage=doc_storage)

        archive = await service.build_job_archive(doc_db, entity_id, job_id)

        assert archive.key == f"entities/{entity_id}/bulk/{job_id}/documents.zip"
        assert archive.url == "https://files.example.com/signed"
        assert archive.document_count == 2
        zipped = zipfile.ZipFile(io.BytesIO(doc_storage.upload.await_args.args[0]))
        names = zipped.namelist()
        assert names[0].endswith("_1.pdf")
        assert names[1].endswith("_2.jpg")

    @pytest.mark.asyncio
    async def test_job_without_documents(self, doc_storage, doc_db):
        doc_db.execute.return_value = _scalars([])
        service = DocumentService(renderer=AsyncMock(), storage=doc_storage)
        assert await service.build_job_archive(doc_db, uuid4(), uuid4()) is None
        doc_storage.upload.assert_not_awaited()
