import logging
import time
import uuid
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

import config
from ifsc_enrichment import EnrichmentPipeline, LogContext, PageWindow, Row
from ifsc_lookup import IfscLookupClient
from utils.result import Result

logger = logging.getLogger(__name__)


class SessionStatus(BaseModel):
    """
    Snapshot of a session, mirroring what the upload page shows.

    Attributes:
        session_id: Identifier of the session
        lookup_column: Column the next upload is checked against
        rows_lookup_column: Column the current rows are looked up by
        input_file_name: Name of the last uploaded file
        row_count: Rows accepted from the last upload
        enriched_count: Rows produced by the last enrichment
        current_page: Page currently displayed
        total_pages: Number of pages of enriched rows
        loading: Whether an enrichment batch is outstanding
        can_fetch: Whether enrichment may be started
        can_download: Whether an enriched workbook is available
        error: Message from the last rejected upload, if any
    """
    session_id: str
    lookup_column: str
    rows_lookup_column: Optional[str] = None
    input_file_name: Optional[str] = None
    row_count: int = 0
    enriched_count: int = 0
    current_page: int = 1
    total_pages: int = 0
    loading: bool = False
    can_fetch: bool = False
    can_download: bool = False
    error: Optional[str] = None


class EnrichmentSession:
    """
    State of one user's upload/enrich/download flow.

    Every upload bumps ``generation``. An enrichment batch remembers the
    generation it started from, and its rows are dropped if the session was
    re-uploaded before the batch settled.
    """

    def __init__(
        self,
        session_id: str,
        lookup_column: str = config.DEFAULT_LOOKUP_COLUMN,
        page_size: int = config.PAGE_SIZE
    ):
        self.session_id = session_id
        self.lookup_column = lookup_column
        self.page_size = page_size
        self.rows: List[Row] = []
        # column the current rows were validated against
        self.rows_lookup_column: Optional[str] = None
        self.enriched_rows: List[Row] = []
        self.current_page = 1
        self.input_file_name: Optional[str] = None
        self.last_error: Optional[str] = None
        self.generation = 0
        self._batch_generation: Optional[int] = None
        self.last_seen = time.monotonic()

    @property
    def loading(self) -> bool:
        return self._batch_generation is not None and self._batch_generation == self.generation

    @property
    def can_fetch(self) -> bool:
        return bool(self.rows) and not self.loading

    @property
    def can_download(self) -> bool:
        return bool(self.enriched_rows)

    def set_lookup_column(self, lookup_column: Optional[str]) -> Result[str]:
        """
        Change the lookup column used by the next upload.

        Rows already accepted keep being looked up by the column they were
        validated against until a new file is uploaded.
        """
        if not lookup_column:
            return Result.fail("Lookup column name must not be empty")
        self.lookup_column = lookup_column
        logger.info("Lookup column changed", extra={"session_id": self.session_id, "lookup_column": lookup_column})
        return Result.ok(lookup_column)

    def ingest(self, content: bytes, filename: Optional[str]) -> Result[List[Row]]:
        """
        Replace the session's rows with the contents of an uploaded file.

        Previous enrichment results are cleared whether or not the upload is
        accepted. A rejected upload leaves the session with no rows.
        """
        self.generation += 1
        self.input_file_name = filename
        self.enriched_rows = []
        self.current_page = 1

        result = EnrichmentPipeline.load_rows(content, filename, self.lookup_column)
        self.rows = result.unwrap(default=[])
        self.rows_lookup_column = self.lookup_column if result.is_success() else None
        self.last_error = result.error
        return result

    async def enrich(self, client: IfscLookupClient) -> Result[List[Row]]:
        """
        Look up bank details for every row of the current upload.

        Returns:
            Result[List[Row]]: The enriched rows, or a conflict when there is
            nothing to enrich, a batch is already running, or the file was
            re-uploaded while this batch was outstanding
        """
        if not self.rows:
            return Result.conflict("Upload a spreadsheet with IFSC codes before fetching bank details")
        if self.loading:
            return Result.conflict("Bank details are already being fetched")

        generation = self.generation
        rows = self.rows
        lookup_column = self.rows_lookup_column
        self._batch_generation = generation
        try:
            with LogContext("bank details enrichment", session_id=self.session_id, row_count=len(rows)):
                enriched = await EnrichmentPipeline.enrich(rows, lookup_column, client)
        finally:
            if self._batch_generation == generation:
                self._batch_generation = None

        if generation != self.generation:
            logger.warning(
                "Discarding enrichment results for a replaced upload",
                extra={"session_id": self.session_id, "stale_generation": generation}
            )
            return Result.conflict("The file was re-uploaded while bank details were being fetched")

        self.enriched_rows = enriched
        self.current_page = 1
        return Result.ok(enriched)

    def page(self, page: Optional[int] = None) -> PageWindow:
        """Show ``page`` (or the current page), clamped to the available pages."""
        requested = self.current_page if page is None else page
        window = EnrichmentPipeline.paginate(self.enriched_rows, requested, self.page_size)
        self.current_page = window.page
        return window

    def next_page(self) -> PageWindow:
        return self.page(self.current_page + 1)

    def previous_page(self) -> PageWindow:
        return self.page(self.current_page - 1)

    def export(self) -> Result[bytes]:
        if not self.enriched_rows:
            return Result.conflict("Fetch bank details before downloading")
        return EnrichmentPipeline.export(
            self.enriched_rows,
            sheet_name=config.EXPORT_SHEET_NAME,
            first_row_only=config.EXPORT_HEADER_FROM_FIRST_ROW
        )

    def status(self) -> SessionStatus:
        return SessionStatus(
            session_id=self.session_id,
            lookup_column=self.lookup_column,
            rows_lookup_column=self.rows_lookup_column,
            input_file_name=self.input_file_name,
            row_count=len(self.rows),
            enriched_count=len(self.enriched_rows),
            current_page=self.current_page,
            total_pages=EnrichmentPipeline.total_pages(len(self.enriched_rows), self.page_size),
            loading=self.loading,
            can_fetch=self.can_fetch,
            can_download=self.can_download,
            error=self.last_error
        )


class SessionStore:
    """
    In-memory sessions keyed by id. Nothing survives a restart.

    Sessions not touched for ``idle_timeout`` seconds are dropped on the next
    create or lookup, unless a batch is still being fetched for them. An
    ``idle_timeout`` of 0 keeps sessions until they are deleted.
    """

    def __init__(
        self,
        idle_timeout: float = config.SESSION_IDLE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic
    ):
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: Dict[str, EnrichmentSession] = {}

    def create(self, lookup_column: Optional[str] = None) -> EnrichmentSession:
        self.expire_idle()
        session_id = uuid.uuid4().hex
        session = EnrichmentSession(session_id, lookup_column or config.DEFAULT_LOOKUP_COLUMN)
        session.last_seen = self._clock()
        self._sessions[session_id] = session
        logger.info("Session created", extra={"session_id": session_id, "lookup_column": session.lookup_column})
        return session

    def get(self, session_id: str) -> Result[EnrichmentSession]:
        self.expire_idle()
        session = self._sessions.get(session_id)
        if session is None:
            return Result.not_found(f"Session {session_id} not found")
        session.last_seen = self._clock()
        return Result.ok(session)

    def delete(self, session_id: str) -> Result[str]:
        if self._sessions.pop(session_id, None) is None:
            return Result.not_found(f"Session {session_id} not found")
        logger.info("Session discarded", extra={"session_id": session_id})
        return Result.ok(session_id)

    def expire_idle(self) -> List[str]:
        """Drop idle sessions and return their ids."""
        if self.idle_timeout <= 0:
            return []
        cutoff = self._clock() - self.idle_timeout
        expired = [
            session_id for session_id, session in self._sessions.items()
            if session.last_seen < cutoff and not session.loading
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info(f"Expired {len(expired)} idle session(s)", extra={"session_ids": expired})
        return expired

    def __len__(self) -> int:
        return len(self._sessions)
