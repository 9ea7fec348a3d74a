import asyncio
import io
import logging
import math
import os
import time
import uuid
from datetime import date, datetime, time as dt_time
from typing import Any, Dict, List, Optional

import pandas as pd
from pydantic import BaseModel

import config
from ifsc_lookup import IfscLookupClient
from utils.result import Result

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class LogContext:
    """Context manager for tracking and logging operation metrics"""
    def __init__(self, operation_name: str, **kwargs):
        self.operation_name = operation_name
        self.start_time = None
        self.request_id = kwargs.pop('request_id', str(uuid.uuid4())[:8])
        self.extra = kwargs

    def __enter__(self):
        self.start_time = time.time()
        logger.info(f"Starting {self.operation_name}", extra={"request_id": self.request_id, **self.extra})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if exc_type:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {str(exc_val)}",
                extra={"request_id": self.request_id, "duration": duration, **self.extra},
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra={"request_id": self.request_id, "duration": duration, **self.extra}
            )


class PageWindow(BaseModel):
    """
    One page of enriched rows as shown in the results table.

    Attributes:
        page: 1-based page number after clamping
        page_size: Rows per page
        total_pages: Number of pages (0 when there are no rows)
        total_rows: Number of enriched rows in the session
        headers: Table header, taken from the first enriched row
        rows: The rows on this page, in original order
    """
    page: int
    page_size: int
    total_pages: int
    total_rows: int
    headers: List[str]
    rows: List[Dict[str, Any]]


class EnrichmentPipeline:
    """
    Spreadsheet enrichment stages.

    - Ingest an uploaded workbook into rows
    - Validate that the lookup column exists
    - Enrich every row with an IFSC lookup
    - Paginate and export the enriched rows
    """

    @staticmethod
    def load_rows(content: bytes, filename: Optional[str], lookup_column: str) -> Result[List[Row]]:
        """
        Ingest an uploaded spreadsheet and check it carries the lookup column.

        Args:
            content: Raw bytes of the uploaded file
            filename: Name the user uploaded the file under, if known
            lookup_column: Column that holds the IFSC codes

        Returns:
            Result[List[Row]]: The admissible rows, or the decode/schema failure
        """
        request_id = str(uuid.uuid4())[:8]
        log_context = {
            "request_id": request_id,
            "file_name": filename,
            "lookup_column": lookup_column
        }

        logger.info("Loading uploaded spreadsheet", extra=log_context)

        try:
            with LogContext("spreadsheet ingestion", **log_context):
                ingest_result = EnrichmentPipeline.ingest(content, filename)

            if not ingest_result.is_success():
                logger.warning(f"Ingestion failed: {ingest_result.error}", extra=log_context)
                return ingest_result

            log_context["row_count"] = len(ingest_result.data)

            with LogContext("column validation", **log_context):
                validation_result = EnrichmentPipeline.validate(ingest_result.data, lookup_column)

            if not validation_result.is_success():
                logger.warning(f"Column validation failed: {validation_result.error}", extra=log_context)

            return validation_result

        except Exception as e:
            logger.exception("Unexpected error while loading spreadsheet", extra={**log_context, "error": str(e)})
            return Result.server_error(f"Processing error: {str(e)}")

    @staticmethod
    def ingest(content: bytes, filename: Optional[str] = None) -> Result[List[Row]]:
        """
        Decode the first sheet of a workbook into rows.

        The first row of the sheet is the header. Each later row becomes a
        mapping of header to cell value; empty cells are left out of the
        mapping and fully blank rows are skipped. Columns are read as object
        dtype so an integer column with blanks keeps its integers.

        Args:
            content: Raw bytes of an .xlsx or .xls file
            filename: Original file name, used to check the extension

        Returns:
            Result[List[Row]]: Rows in sheet order, or an invalid-input failure
            when the file cannot be decoded
        """
        if filename:
            extension = os.path.splitext(filename)[1].lower()
            if extension not in config.SUPPORTED_FILE_EXTENSIONS:
                logger.error("Unsupported file type", extra={"file_name": filename})
                return Result.invalid_input(
                    f"Unsupported file type '{extension or filename}'. "
                    f"Supported types: {', '.join(config.SUPPORTED_FILE_EXTENSIONS)}"
                )

        if not content:
            logger.error("Uploaded file is empty", extra={"file_name": filename})
            return Result.invalid_input("Uploaded file is empty")

        try:
            start_time = time.time()
            df = pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=object)
            read_time = time.time() - start_time
        except Exception as e:
            logger.error(
                "Failed to read Excel file",
                extra={
                    "file_name": filename,
                    "error": str(e),
                    "error_type": type(e).__name__
                }
            )
            return Result.invalid_input(f"Failed to read Excel file: {str(e)}")

        rows = EnrichmentPipeline._frame_to_rows(df)
        logger.info(
            "Successfully read Excel file",
            extra={
                "file_name": filename,
                "row_count": len(rows),
                "column_count": len(df.columns),
                "read_time_seconds": f"{read_time:.2f}"
            }
        )
        return Result.ok(rows)

    @staticmethod
    def _frame_to_rows(df: pd.DataFrame) -> List[Row]:
        rows = []
        for record in df.to_dict(orient="records"):
            row = {}
            for column, value in record.items():
                cell = EnrichmentPipeline._to_cell_value(value)
                if cell is not None:
                    row[str(column)] = cell
            if row:
                rows.append(row)
        return rows

    @staticmethod
    def _to_cell_value(value: Any) -> Any:
        """Convert a pandas cell to a plain Python value, None for empty cells."""
        if value is None:
            return None
        try:
            if pd.isna(value):
                return None
        except (TypeError, ValueError):
            pass
        if isinstance(value, (datetime, date, dt_time)):
            return value.isoformat()
        # numpy scalars
        if hasattr(value, "item"):
            return value.item()
        return value

    @staticmethod
    def is_admissible(rows: List[Row], lookup_column: str) -> bool:
        """True iff there are rows and the first one has the lookup column (exact match)."""
        return bool(rows) and lookup_column in rows[0]

    @staticmethod
    def validate(rows: List[Row], lookup_column: str) -> Result[List[Row]]:
        """
        Gate the whole row set on the lookup column being present.

        Only the first row is inspected; the column name is matched exactly,
        without trimming or case folding.

        Args:
            rows: Rows produced by ingestion
            lookup_column: Configured lookup column name

        Returns:
            Result[List[Row]]: The rows unchanged, or a column-not-found failure
        """
        log_context = {
            "available_columns": list(rows[0].keys()) if rows else [],
            "lookup_column": lookup_column
        }

        if not EnrichmentPipeline.is_admissible(rows, lookup_column):
            logger.error("Lookup column missing", extra=log_context)
            return Result.column_not_found(lookup_column)

        logger.info("Column validation successful", extra=log_context)
        return Result.ok(rows)

    @staticmethod
    async def enrich(rows: List[Row], lookup_column: str, client: IfscLookupClient) -> List[Row]:
        """
        Look up every row's IFSC and merge the bank details into a copy of the row.

        Lookups run concurrently and are awaited together; the returned rows
        are in the same order as ``rows``. A failed lookup never aborts the
        batch, the row gets an error marker instead.

        Args:
            rows: Admissible rows
            lookup_column: Column holding the IFSC code
            client: An open IfscLookupClient

        Returns:
            List[Row]: Enriched rows, one per input row
        """
        async def enrich_row(row: Row) -> Row:
            key = row.get(lookup_column)
            result = await client.lookup(key)
            return EnrichmentPipeline.merge_lookup(row, key, result)

        results = await asyncio.gather(*(enrich_row(row) for row in rows), return_exceptions=True)

        enriched = []
        for index, result in enumerate(results):
            if isinstance(result, Exception):
                logger.error(f"Enrichment error for row {index}: {result}")
                key = rows[index].get(lookup_column)
                enriched.append(EnrichmentPipeline.merge_lookup(
                    rows[index], key, Result.server_error(str(result))
                ))
            else:
                enriched.append(result)

        failed = sum(1 for row in enriched if row.get("error") == config.LOOKUP_ERROR_MESSAGE)
        logger.info(
            "Enrichment finished",
            extra={"total_rows": len(enriched), "failed_rows": failed}
        )
        return enriched

    @staticmethod
    def merge_lookup(row: Row, key: Any, result: Result[Dict[str, Any]]) -> Row:
        """Right-biased merge of the lookup payload, or the error marker on failure."""
        if result.is_success():
            return {**row, **result.data}
        return {**row, "IFSC": key, "error": config.LOOKUP_ERROR_MESSAGE}

    @staticmethod
    def total_pages(total_rows: int, page_size: int = config.PAGE_SIZE) -> int:
        return math.ceil(total_rows / page_size)

    @staticmethod
    def clamp_page(page: int, total_rows: int, page_size: int = config.PAGE_SIZE) -> int:
        last_page = max(EnrichmentPipeline.total_pages(total_rows, page_size), 1)
        return min(max(page, 1), last_page)

    @staticmethod
    def paginate(rows: List[Row], page: int, page_size: int = config.PAGE_SIZE) -> PageWindow:
        """
        Slice ``rows[(page-1)*page_size : page*page_size]`` with the page clamped.

        Args:
            rows: Enriched rows
            page: Requested 1-based page number
            page_size: Rows per page

        Returns:
            PageWindow: The requested (or nearest valid) page
        """
        page = EnrichmentPipeline.clamp_page(page, len(rows), page_size)
        start = (page - 1) * page_size
        return PageWindow(
            page=page,
            page_size=page_size,
            total_pages=EnrichmentPipeline.total_pages(len(rows), page_size),
            total_rows=len(rows),
            headers=list(rows[0].keys()) if rows else [],
            rows=rows[start:start + page_size]
        )

    @staticmethod
    def export_headers(rows: List[Row], first_row_only: bool = config.EXPORT_HEADER_FROM_FIRST_ROW) -> List[str]:
        """
        Header row for the exported workbook.

        The first row's keys come first, followed by keys that only appear in
        later rows, in first-seen order. With ``first_row_only`` the later
        keys are dropped.
        """
        if not rows:
            return []
        if first_row_only:
            return list(rows[0].keys())
        return list(dict.fromkeys(key for row in rows for key in row))

    @staticmethod
    def export(
        rows: List[Row],
        sheet_name: str = config.EXPORT_SHEET_NAME,
        first_row_only: bool = config.EXPORT_HEADER_FROM_FIRST_ROW
    ) -> Result[bytes]:
        """
        Serialize enriched rows into an .xlsx workbook.

        Args:
            rows: Enriched rows, written in order
            sheet_name: Name of the single worksheet
            first_row_only: Derive the header from the first row only

        Returns:
            Result[bytes]: The workbook bytes, or a server error
        """
        headers = EnrichmentPipeline.export_headers(rows, first_row_only)
        try:
            with LogContext("spreadsheet export", row_count=len(rows), column_count=len(headers)):
                df = pd.DataFrame(rows, columns=headers)
                buffer = io.BytesIO()
                df.to_excel(buffer, index=False, sheet_name=sheet_name, engine="openpyxl")
        except Exception as e:
            logger.exception("Failed to write Excel file", extra={"error": str(e)})
            return Result.server_error(f"Failed to write Excel file: {str(e)}")
        return Result.ok(buffer.getvalue())
