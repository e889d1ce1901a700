import time
import asyncio
import logging
from dataclasses import asdict
from pathlib import Path

import yaml
from fastapi import APIRouter, UploadFile, File, HTTPException
from pydantic import BaseModel, Field

from ..core.attention import AttentionSample
from ..core.layout import TextSize, Viewport
from ..memory.session_store import SessionStore
from ..reader.engine import ReadingStats, SegmentationMode
from ..reader.loop import Message, MessageType
from ..reader.pdf_handler import DocumentText, PDFHandler, UnsupportedDocument, from_pasted_text
from ..reader.session import ViewerSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# ── Global state (single reader) ───────────────────────────────────────────

_session: ViewerSession | None = None
_store: SessionStore | None = None
_config: dict = {}
_last_completion: dict | None = None


def load_config(config_path: str = "config.yaml") -> dict:
    global _config
    path = Path(config_path)
    if path.exists():
        with open(path, "r") as f:
            _config = yaml.safe_load(f) or {}
    else:
        _config = {}
    return _config


def init_store(config: dict) -> SessionStore:
    global _store
    data_dir = config.get("persistence", {}).get("data_dir", "data")
    _store = SessionStore(db_path=f"{data_dir}/progress.db")
    return _store


async def shutdown() -> None:
    """Flush the open session and close the store."""
    global _session, _store
    if _session:
        await _session.close()
        _session = None
    if _store:
        _store.close()
        _store = None


# ── Request/Response models ────────────────────────────────────────────────

class ViewportModel(BaseModel):
    width: float
    height: float
    x: float = 0.0
    y: float = 0.0
    padding: float = 24.0

    def to_viewport(self) -> Viewport:
        return Viewport(width=self.width, height=self.height, x=self.x, y=self.y, padding=self.padding)

class DocumentRequest(BaseModel):
    title: str
    text: str
    viewport: ViewportModel | None = None
    text_size: TextSize | None = None
    mode: SegmentationMode | None = None

class SampleRequest(BaseModel):
    x: float
    y: float
    timestamp: int | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)

class ViewportRequest(BaseModel):
    viewport: ViewportModel | None = None
    text_size: TextSize | None = None

class NavigateRequest(BaseModel):
    index: int | None = None
    direction: str | None = None   # "next" or "previous"

class SimulateRequest(BaseModel):
    enabled: bool = True

class SessionInfo(BaseModel):
    session_id: str
    document_key: str
    title: str
    total_units: int
    current_unit: int
    completed_units: list[int]
    resumed: bool


# ── Helpers ────────────────────────────────────────────────────────────────

def _require_session() -> ViewerSession:
    if not _session:
        raise HTTPException(400, "No document loaded.")
    return _session


def _default_viewport() -> Viewport | None:
    cfg = _config.get("reader", {}).get("viewport")
    if not cfg:
        return None
    return ViewportModel(**cfg).to_viewport()


def _on_complete(stats: ReadingStats) -> None:
    global _last_completion
    _last_completion = asdict(stats)
    logger.info("Document finished: %s", _last_completion)


async def _open(document: DocumentText, viewport: Viewport | None, text_size: TextSize | None,
                mode: SegmentationMode | None) -> SessionInfo:
    global _session, _last_completion

    if _store is None:
        raise HTTPException(503, "Progress store not initialized.")
    if _session:
        await _session.close()
        _session = None

    reader_cfg = _config.get("reader", {})
    persistence_cfg = _config.get("persistence", {})
    _last_completion = None
    _session = await ViewerSession.open(
        document,
        _store,
        viewport=viewport or _default_viewport(),
        text_size=text_size or reader_cfg.get("text_size", TextSize.MEDIUM),
        mode=mode or reader_cfg.get("segmentation", SegmentationMode.VIEWPORT),
        on_complete=_on_complete,
        progress_debounce_s=persistence_cfg.get("progress_debounce_s"),
        session_interval_s=persistence_cfg.get("session_interval_s"),
    )

    attention_cfg = _config.get("attention", {})
    if attention_cfg.get("simulate", False):
        _session.start_simulation(interval_s=attention_cfg.get("interval_s", 0.05))

    engine = _session.engine
    return SessionInfo(
        session_id=_session.session_id,
        document_key=document.key,
        title=document.title,
        total_units=engine.total_units,
        current_unit=engine.current_index,
        completed_units=sorted(engine.completed_indexes),
        resumed=_session.resumed,
    )


# ── Routes ─────────────────────────────────────────────────────────────────

@router.post("/documents")
async def open_document(req: DocumentRequest) -> SessionInfo:
    if not req.title.strip():
        raise HTTPException(400, "A title is required.")
    document = from_pasted_text(req.text, req.title.strip())
    viewport = req.viewport.to_viewport() if req.viewport else None
    return await _open(document, viewport, req.text_size, req.mode)


@router.post("/upload")
async def upload_document(file: UploadFile = File(...)) -> SessionInfo:
    if not file.filename:
        raise HTTPException(400, "File name missing.")

    max_mb = _config.get("reader", {}).get("max_upload_mb", 50)
    data = await file.read()
    if len(data) > max_mb * 1024 * 1024:
        raise HTTPException(413, f"File too large (max {max_mb}MB).")

    try:
        document = PDFHandler().extract_from_bytes(data, filename=file.filename)
    except UnsupportedDocument as e:
        raise HTTPException(400, str(e))
    return await _open(document, None, None, None)


@router.get("/units/{index}")
async def get_unit(index: int) -> dict:
    session = _require_session()
    await session.loop.drain()
    engine = session.engine
    if index < 0 or index >= engine.total_units:
        raise HTTPException(404, "Unit not found.")

    unit = engine.units[index]
    lines = engine.lines_for(index)
    return {
        "index": index,
        "text": unit.text,
        "word_count": unit.word_count,
        "is_completed": unit.is_completed,
        "is_current": index == engine.current_index,
        "total_units": engine.total_units,
        "lines": [asdict(line) for line in lines] if lines is not None else None,
    }


@router.post("/attention")
async def receive_sample(req: SampleRequest) -> dict:
    session = _require_session()
    timestamp = req.timestamp if req.timestamp is not None else int(time.time() * 1000)
    session.loop.push_sample(AttentionSample(x=req.x, y=req.y, timestamp=timestamp, confidence=req.confidence))
    return {"status": "ok"}


@router.post("/viewport")
async def update_viewport(req: ViewportRequest) -> dict:
    session = _require_session()
    if req.viewport:
        session.loop.submit(Message(MessageType.VIEWPORT, req.viewport.to_viewport()))
    if req.text_size:
        session.loop.submit(Message(MessageType.TEXT_SIZE, req.text_size))
    await session.loop.drain()
    lines = session.engine.lines_for(session.engine.current_index)
    return {"status": "ok", "lines": len(lines) if lines is not None else None}


@router.post("/navigate")
async def navigate(req: NavigateRequest) -> dict:
    session = _require_session()
    engine = session.engine

    if req.index is not None:
        if req.index < 0 or req.index >= engine.total_units:
            raise HTTPException(404, "Unit not found.")
        message = Message(MessageType.NAVIGATE, req.index)
    elif req.direction == "next":
        message = Message(MessageType.NEXT)
    elif req.direction == "previous":
        message = Message(MessageType.PREVIOUS)
    else:
        raise HTTPException(400, "Give an index or a direction of 'next' or 'previous'.")

    session.loop.submit(message)
    await session.loop.drain()
    return {"current_unit": engine.current_index}


@router.post("/complete")
async def mark_complete() -> dict:
    session = _require_session()
    session.loop.submit(Message(MessageType.MARK_COMPLETE))
    await session.loop.drain()
    engine = session.engine
    return {
        "current_unit": engine.current_index,
        "completed_units": sorted(engine.completed_indexes),
        "document_complete": engine.is_document_complete,
    }


@router.post("/simulate")
async def simulate(req: SimulateRequest) -> dict:
    session = _require_session()
    if req.enabled:
        session.start_simulation(interval_s=_config.get("attention", {}).get("interval_s", 0.05))
    else:
        session.stop_simulation()
    return {"simulating": session.simulator is not None and session.simulator.running}


@router.get("/progress")
async def get_progress() -> dict:
    session = _require_session()
    await session.loop.drain()
    engine = session.engine
    processor = engine.processor

    line_states = []
    current_line = None
    if processor is not None:
        current_line = processor.current_line_index
        line_states = [
            {
                "line_index": line.line_index,
                "status": line.status.value,
                "completion_percentage": line.completion_percentage,
                "samples": len(line.attention_history),
            }
            for line in processor.lines
        ]

    return {
        "document_key": engine.document_key,
        "session_id": session.session_id,
        "current_unit": engine.current_index,
        "current_line": current_line,
        "completed_units": sorted(engine.completed_indexes),
        "document_complete": engine.is_document_complete,
        "stats": asdict(engine.stats()),
        "lines": line_states,
        "recent_events": [
            {"type": e.event_type.value, "unit": e.unit_index, "line": e.line_index}
            for e in list(session.loop.recent_events)[-10:]
        ],
        "completion": _last_completion,
    }


@router.get("/sessions")
async def get_sessions(document_key: str | None = None) -> dict:
    if not _store:
        return {"sessions": []}
    if document_key is None and _session:
        document_key = _session.document.key
    sessions = await asyncio.to_thread(_store.load_sessions, document_key)
    return {"sessions": [
        {**asdict(s), "captured_at": s.captured_at.isoformat()} for s in sessions
    ]}


@router.get("/completed")
async def get_completed() -> dict:
    if not _store:
        return {"documents": []}
    documents = await asyncio.to_thread(_store.load_completed)
    return {"documents": [
        {**asdict(d), "completed_at": d.completed_at.isoformat()} for d in documents
    ]}


@router.post("/close")
async def close_document() -> dict:
    global _session
    session = _require_session()
    await session.close()
    _session = None
    return {"status": "closed"}


@router.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "store_ready": _store is not None,
        "session_active": _session is not None,
        "simulating": bool(_session and _session.simulator and _session.simulator.running),
    }
