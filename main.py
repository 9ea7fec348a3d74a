from fastapi import FastAPI, Depends, File, Form, UploadFile, status
import io
import os
import logging
from datetime import datetime
from typing import Optional
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

import config
from ifsc_lookup import IfscLookupClient
from session import EnrichmentSession, SessionStore
from utils.result import Result


# Create logs directory if it doesn't exist
os.makedirs(config.LOG_DIR, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Add file handler to write logs to file
log_file_path = os.path.join(config.LOG_DIR, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path)
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
logging.getLogger().addHandler(file_handler)


# Initialize FastAPI app with metadata
app = FastAPI(
    title="IFSC Bank Details Enricher API",
    description="Upload an Excel file with IFSC codes, enrich each row with bank details and download the result",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

session_store = SessionStore()


class SessionRequest(BaseModel):
    """
    Body for creating a session or changing its lookup column.

    Attributes:
        lookup_column: Column holding the IFSC codes, defaults to "Remitter IFSC"
    """
    lookup_column: Optional[str] = None


def get_session_store() -> SessionStore:
    return session_store


async def get_lookup_client():
    """Open one lookup client per enrichment request."""
    async with IfscLookupClient() as client:
        yield client


def to_response(result: Result, success_status: int = status.HTTP_200_OK):
    """
    Turn a Result into an API response.

    Failures become a JSONResponse carrying the Result's status code; successes
    are returned as the Result dictionary so FastAPI serializes them.
    """
    if result.is_failure():
        return JSONResponse(status_code=result.status_code.value, content=result.to_dict())
    if success_status != status.HTTP_200_OK:
        return JSONResponse(status_code=success_status, content=result.to_dict())
    return result.to_dict()


def _find_session(session_id: str, store: SessionStore) -> Result[EnrichmentSession]:
    result = store.get(session_id)
    if result.is_failure():
        logger.warning(f"Unknown session requested: {session_id}")
    return result


# API Endpoints
@app.get("/health", tags=["Service"])
async def health():
    return {"status": "ok"}


@app.post("/sessions", tags=["Sessions"])
async def create_session(
    request: Optional[SessionRequest] = None,
    store: SessionStore = Depends(get_session_store)
):
    """
    Start a new enrichment session.

    Returns:
        dict: Result dictionary whose data is the new session's status
    """
    lookup_column = request.lookup_column if request else None
    session = store.create(lookup_column)
    return to_response(Result.ok(session.status().model_dump()), status.HTTP_201_CREATED)


@app.get("/sessions/{session_id}", tags=["Sessions"])
async def get_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    """Current file name, row counts, loading flag and which actions are enabled."""
    result = _find_session(session_id, store).and_then(
        lambda session: Result.ok(session.status().model_dump())
    )
    return to_response(result)


@app.delete("/sessions/{session_id}", tags=["Sessions"])
async def delete_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    return to_response(store.delete(session_id))


@app.put("/sessions/{session_id}/lookup-column", tags=["Sessions"])
async def set_lookup_column(
    session_id: str,
    request: SessionRequest,
    store: SessionStore = Depends(get_session_store)
):
    """Change the column that holds IFSC codes. Applies to the next upload."""
    result = _find_session(session_id, store).and_then(
        lambda session: session.set_lookup_column(request.lookup_column).and_then(
            lambda _: Result.ok(session.status().model_dump())
        )
    )
    return to_response(result)


@app.post("/sessions/{session_id}/upload", tags=["Excel Processing"])
async def upload_file(
    session_id: str,
    file: UploadFile = File(...),
    lookup_column: Optional[str] = Form(None),
    store: SessionStore = Depends(get_session_store)
):
    """
    Upload an Excel file (.xlsx or .xls) with IFSC codes.

    Only the first sheet is read. The upload is rejected when the lookup
    column is missing from the header, in which case the session holds no
    rows and fetching stays disabled.

    Returns:
        dict: Result dictionary whose data is the session status
    """
    session_result = _find_session(session_id, store)
    if session_result.is_failure():
        return to_response(session_result)
    session = session_result.data

    if lookup_column is not None:
        column_result = session.set_lookup_column(lookup_column)
        if column_result.is_failure():
            return to_response(column_result)

    content = await file.read()
    logger.info(f"Received upload {file.filename} ({len(content)} bytes) for session {session_id}")

    result = session.ingest(content, file.filename)
    return to_response(result.and_then(lambda _: Result.ok(session.status().model_dump())))


@app.post("/sessions/{session_id}/enrich", tags=["Excel Processing"])
async def enrich_rows(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
    client: IfscLookupClient = Depends(get_lookup_client)
):
    """
    Fetch bank details for every uploaded row.

    Rows whose IFSC cannot be resolved carry an ``error`` field instead of
    bank details. The response holds the first page of enriched rows.
    """
    session_result = _find_session(session_id, store)
    if session_result.is_failure():
        return to_response(session_result)
    session = session_result.data

    result = await session.enrich(client)
    return to_response(result.and_then(lambda _: Result.ok(session.page(1).model_dump())))


@app.get("/sessions/{session_id}/rows", tags=["Excel Processing"])
async def get_rows(
    session_id: str,
    page: Optional[int] = None,
    store: SessionStore = Depends(get_session_store)
):
    """One page of enriched rows; out-of-range pages are clamped."""
    result = _find_session(session_id, store).and_then(
        lambda session: Result.ok(session.page(page).model_dump())
    )
    return to_response(result)


@app.post("/sessions/{session_id}/page/next", tags=["Excel Processing"])
async def next_page(session_id: str, store: SessionStore = Depends(get_session_store)):
    result = _find_session(session_id, store).and_then(
        lambda session: Result.ok(session.next_page().model_dump())
    )
    return to_response(result)


@app.post("/sessions/{session_id}/page/previous", tags=["Excel Processing"])
async def previous_page(session_id: str, store: SessionStore = Depends(get_session_store)):
    result = _find_session(session_id, store).and_then(
        lambda session: Result.ok(session.previous_page().model_dump())
    )
    return to_response(result)


@app.get("/sessions/{session_id}/download", tags=["Excel Processing"])
async def download_file(session_id: str, store: SessionStore = Depends(get_session_store)):
    """Download the enriched rows as enriched_ifsc_details.xlsx."""
    result = _find_session(session_id, store).and_then(lambda session: session.export())
    if result.is_failure():
        return to_response(result)

    return StreamingResponse(
        io.BytesIO(result.data),
        media_type=config.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{config.EXPORT_FILENAME}"'},
    )


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting IFSC Enricher API in development mode.")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
