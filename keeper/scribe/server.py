"""
Knowledge Keeper Server

FastAPI server for capturing documents and chatting with the knowledge base.

Endpoints:
- GET /health: Health check
- GET /api/employees: List employees
- POST /api/employees: Create an employee
- DELETE /api/employees/{employee_id}: Not implemented (acknowledged only)
- POST /api/files: Upload a batch of documents for a new employee
- POST /api/chat: Ask a question
- GET /api/chat/{employee_id}/history: Past chat turns

Pipeline (upload):
1. Stream uploaded files to disk under unique names, capped at the size limit
2. Validate batch, create employee
3. Fingerprint, extract and store each file

Pipeline (chat):
1. Validate request
2. Per-keyword search, rank, synthesize
3. Record the turn
"""

import asyncio
import logging
import secrets
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional, Union

from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..common.config import KeeperConfig, ensure_directories, load_config
from ..common.store import KnowledgeStore, StoreError
from ..retriever.chat import ChatInputError, ChatService
from .capture import CaptureInputError, CaptureService, UploadedFile, parse_years

logger = logging.getLogger("keeper.scribe.server")

UPLOAD_CHUNK_SIZE = 1024 * 1024


# Global state
config: Optional[KeeperConfig] = None
store: Optional[KnowledgeStore] = None
capture_service: Optional[CaptureService] = None
chat_service: Optional[ChatService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup, close the store on shutdown"""
    global config, store, capture_service, chat_service

    logger.info("Starting up...")

    load_dotenv()
    config = load_config()
    ensure_directories(config)

    store = KnowledgeStore(config.store.db_path)
    capture_service = CaptureService(store, config=config.upload)
    chat_service = ChatService(store, config=config.retriever, debug=config.server.debug)

    logger.info("Ready (database: %s, uploads: %s)", config.store.db_path, config.upload.upload_dir)

    yield

    # Cleanup
    logger.info("Shutting down...")
    store.close()


app = FastAPI(
    title="Knowledge Keeper",
    description="Per-employee document capture and keyword question answering",
    version="0.1.0",
    lifespan=lifespan
)


# =============================================================================
# Request Models
# =============================================================================

class EmployeeCreate(BaseModel):
    """Create-employee request"""
    name: Optional[str] = None
    title: Optional[str] = None
    years: Optional[Union[int, str]] = None


class ChatRequest(BaseModel):
    """Chat request"""
    message: Optional[str] = None
    employeeId: Optional[str] = None


def _failure(message: str, error: Exception) -> str:
    """Generic failure text; internal detail only in debug mode"""
    if config is not None and config.server.debug:
        return f"{message}: {error}"
    return message


def _require_initialized() -> None:
    if store is None:
        raise HTTPException(status_code=503, detail="Server not initialized")


def _save_upload(upload: UploadFile, upload_dir: Path, max_bytes: int) -> UploadedFile:
    """
    Stream one upload to disk under a unique name.

    Blocking; run it in a worker thread. Stops reading as soon as the file
    grows past ``max_bytes`` and removes the partial file.

    Raises:
        CaptureInputError: if the upload exceeds ``max_bytes``
    """
    original_name = upload.filename or ""
    unique_name = f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{Path(original_name).suffix}"
    destination = upload_dir / unique_name

    written = 0
    try:
        with open(destination, "wb") as out:
            while chunk := upload.file.read(UPLOAD_CHUNK_SIZE):
                written += len(chunk)
                if written > max_bytes:
                    raise CaptureInputError(
                        f"File {original_name} exceeds the {max_bytes} byte limit"
                    )
                out.write(chunk)
    except Exception:
        destination.unlink(missing_ok=True)
        raise

    return UploadedFile(path=destination, original_name=original_name, size=written)


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "knowledge-keeper",
        "initialized": store is not None,
        "employees": len(store.get_employees()) if store else 0,
    }


@app.get("/api/employees")
async def list_employees():
    """All employees, newest first"""
    _require_initialized()

    try:
        employees = store.get_employees()
    except StoreError as e:
        logger.error("Error fetching employees: %s", e)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": _failure("Failed to fetch employees", e)},
        )

    return [e.model_dump(mode="json") for e in employees]


@app.post("/api/employees")
async def create_employee(request: EmployeeCreate):
    """Create an employee without files"""
    _require_initialized()

    name = (request.name or "").strip()
    title = (request.title or "").strip()
    if not name or not title:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Name and title are required"},
        )

    try:
        employee = store.create_employee(name, title, parse_years(request.years))
    except StoreError as e:
        logger.error("Error creating employee: %s", e)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": _failure("Failed to create employee", e)},
        )

    return {"success": True, "employee": employee.model_dump(mode="json")}


@app.delete("/api/employees/{employee_id}")
async def delete_employee(employee_id: str):
    """Employee deletion is not supported; the request is acknowledged only"""
    return {"success": True, "message": "Employee deletion not yet implemented"}


@app.post("/api/files")
async def upload_files(
    employeeName: Optional[str] = Form(None),
    jobTitle: Optional[str] = Form(None),
    yearsService: Optional[str] = Form(None),
    knowledgeFiles: List[UploadFile] = File(default=[]),
):
    """Upload documents for a new employee"""
    _require_initialized()

    upload_dir = Path(config.upload.upload_dir).expanduser()
    upload_dir.mkdir(parents=True, exist_ok=True)
    saved: List[UploadedFile] = []

    try:
        for upload in knowledgeFiles:
            saved.append(await asyncio.to_thread(
                _save_upload, upload, upload_dir, config.upload.max_file_size
            ))
        result = await asyncio.to_thread(
            capture_service.capture, employeeName, jobTitle, yearsService, saved
        )
    except CaptureInputError as e:
        for upload in saved:
            upload.path.unlink(missing_ok=True)
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
    except Exception as e:
        logger.error("Upload error: %s", e, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": _failure("Failed to process files", e)},
        )

    return result.to_dict()


@app.post("/api/chat")
async def chat(request: ChatRequest):
    """Answer a question from one employee's knowledge"""
    _require_initialized()

    try:
        response = await chat_service.ask(request.message, request.employeeId)
    except ChatInputError as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})

    if not response.success:
        return JSONResponse(status_code=500, content=response.to_dict())

    return response.to_dict()


@app.get("/api/chat/{employee_id}/history")
async def chat_history(employee_id: str, limit: int = 50):
    """Past chat turns, newest first"""
    _require_initialized()

    try:
        turns = store.get_chat_history(employee_id, limit)
    except StoreError as e:
        logger.error("Error fetching chat history: %s", e)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": _failure("Failed to fetch chat history", e)},
        )

    return {"employee_id": employee_id, "turns": [t.model_dump(mode="json") for t in turns]}


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Knowledge Keeper server"""
    import uvicorn

    load_dotenv()
    server_config = load_config().server
    logging.basicConfig(
        level=server_config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting server on %s:%d", server_config.host, server_config.port)
    uvicorn.run(
        "keeper.scribe.server:app",
        host=server_config.host,
        port=server_config.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
