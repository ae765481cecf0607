from typing import List, Optional, Sequence

from loguru import logger

from app.core.errors import RowNormalizationError
from app.models.ingestion import BulkIngestionReport
from app.models.product import NormalizedProductDraft
from app.services.catalog_store import InMemoryCatalogStore
from app.services.format_dispatcher import FormatDispatcher
from app.services.row_normalizer import RowNormalizer


class BulkInsertCoordinator:
    """Parses, normalizes and batch-inserts one bulk catalog file."""

    def __init__(self, store: InMemoryCatalogStore, normalizer: Optional[RowNormalizer] = None):
        self.store = store
        self.normalizer = normalizer or RowNormalizer()

    def insert(
        self,
        drafts: Sequence[NormalizedProductDraft],
        vendor_id: str,
        row_errors: Sequence[RowNormalizationError] = (),
        total_rows: Optional[int] = None,
    ) -> BulkIngestionReport:
        """
        One batch create for every draft. Rows already inserted stay inserted
        if the store fails part way; there is no rollback.
        """
        if total_rows is None:
            total_rows = len(drafts) + len(row_errors)
        inserted = self.store.insert_many(vendor_id, drafts) if drafts else []
        report = BulkIngestionReport(
            inserted_count=len(inserted),
            total_rows=total_rows,
            row_errors=list(row_errors),
        )
        logger.info(
            f"Bulk insert for vendor {vendor_id}: {report.inserted_count}/{report.total_rows} rows inserted, "
            f"{len(report.row_errors)} rejected"
        )
        return report

    def ingest_file(self, file_path: str, original_filename: str, vendor_id: str) -> BulkIngestionReport:
        rows = FormatDispatcher.parse(file_path, original_filename)
        drafts, row_errors = self.normalizer.normalize_rows(rows, vendor_id)
        return self.insert(drafts, vendor_id, row_errors, total_rows=len(rows))

    @staticmethod
    def summary(report: BulkIngestionReport) -> str:
        message = f"Successfully uploaded {report.inserted_count} products"
        if report.row_errors:
            message += f" ({len(report.row_errors)} of {report.total_rows} rows skipped)"
        return message

    @staticmethod
    def row_error_dicts(report: BulkIngestionReport) -> List[dict]:
        return [error.to_dict() for error in report.row_errors]
