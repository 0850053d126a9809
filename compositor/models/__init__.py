"""SQLAlchemy models package."""

from compositor.models.entity import Entity
from compositor.models.invoice_template import InvoiceTemplate
from compositor.models.bulk_job import BulkGenerationJob, BulkJobBatch, BulkJobStatus
from compositor.models.generated_document import GeneratedDocument
from compositor.models.supplier import Supplier
from compositor.models.invoice import Invoice

__all__ = [
    "Entity",
    "InvoiceTemplate",
    "BulkGenerationJob",
    "BulkJobBatch",
    "BulkJobStatus",
    "GeneratedDocument",
    "Supplier",
    "Invoice",
]
