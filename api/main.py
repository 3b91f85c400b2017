from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Annotated, Any
from urllib.parse import quote

from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    Response,
    Security,
    UploadFile,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from redact_pro import (
    CategoryPolicy,
    DecodeError,
    DecodeErrorKind,
    DocumentFormat,
    DocumentSession,
    ExportFormat,
    ExternalCallError,
    ExternalCallErrorKind,
    MaskStrategy,
    PiiCategory,
    PiiScanner,
    ViewMode,
    ViewStateError,
    decode,
    mask,
    span_diff,
)
from redact_pro.advisor import call_advisor
from redact_pro.config import settings
from redact_pro.extract import extract_pdf_text
from redact_pro.fetch import fetch_url
from redact_pro.models import DetectionSpan, DiffSegment
from redact_pro.policy import CATEGORY_RULES, PRESETS
from redact_pro.ratelimit import RateLimitDecision, RateLimiter
from redact_pro.sessions import SessionStore

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# ── Auth / API key ───────────────────────────────────────────────────────────

_API_KEY = settings.api_key
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(key: Annotated[str | None, Security(_api_key_header)]) -> None:
    if not _API_KEY:
        return  # auth disabled, no API_KEY configured
    if key == _API_KEY:
        return
    if key:
        from api.db import check_api_key

        if check_api_key(key):
            return  # Active DB key
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
    )


# ── Rate limiting (per client IP, process-wide) ──────────────────────────────

_limiters: dict[str, RateLimiter] = {
    "fetch": RateLimiter(settings.fetch_rate_limit, settings.fetch_rate_window_seconds),
    "extract": RateLimiter(settings.extract_rate_limit, settings.extract_rate_window_seconds),
    "ai": RateLimiter(settings.ai_rate_limit, settings.ai_rate_window_seconds),
}


def client_ip(request: Request) -> str:
    if settings.trust_x_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if forwarded:
            return forwarded
        real_ip = request.headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip
    return request.client.host if request.client else "unknown"


def _enforce_rate_limit(name: str, request: Request, response: Response) -> RateLimitDecision:
    decision = _limiters[name].check(client_ip(request))
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers=decision.headers(),
        )
    response.headers.update(decision.headers())
    return decision


# ── Sessions (in-process) ────────────────────────────────────────────────────

_sessions = SessionStore(settings.session_ttl_seconds, settings.max_sessions)


def _get_session(session_id: str) -> DocumentSession:
    session = _sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown session")
    return session


# ── Pydantic models (JSON API) ───────────────────────────────────────────────


class ScanRequest(BaseModel):
    text: str
    preset: str | None = None
    categories: list[PiiCategory] | None = None
    custom_keywords: list[str] | None = None
    strategies: dict[PiiCategory, MaskStrategy] | None = None


class FindingOut(BaseModel):
    start: int
    end: int
    text: str
    category: str
    confidence: float
    rule_id: str | None
    replacement: str | None = None


class DiffSegmentOut(BaseModel):
    kind: str
    original: str
    replacement: str


class ScanResponse(BaseModel):
    masked_text: str
    findings: list[FindingOut]
    diff: list[DiffSegmentOut]


class AnonymizeResponse(BaseModel):
    masked_text: str


class DecodeResponse(BaseModel):
    format: str
    text: str
    warnings: list[str]
    page_count: int | None
    segments: list[dict[str, Any]]


class CategoryState(BaseModel):
    enabled: bool
    strategy: str
    label: str


class SessionOut(BaseModel):
    id: str
    file_name: str
    format: str
    preset: str | None
    active_view: str
    has_ai_text: bool
    warnings: list[str]
    categories: dict[str, CategoryState]
    span_counts: dict[str, int]


class CategoryUpdate(BaseModel):
    category: PiiCategory
    enabled: bool | None = None
    strategy: MaskStrategy | None = None
    literal: str = ""


class PresetUpdate(BaseModel):
    preset: str


class AiTextUpdate(BaseModel):
    text: str | None


class ViewOut(BaseModel):
    view: str
    text: str
    diff: list[DiffSegmentOut] | None = None


class FetchOut(BaseModel):
    url: str
    final_url: str
    content_type: str
    text: str
    html: str
    warnings: list[str]


class ExtractRequest(BaseModel):
    pdfBase64: str


class ExtractOut(BaseModel):
    text: str
    pageCount: int


class AdvisorMessage(BaseModel):
    role: str
    content: str | list[dict[str, Any]]


class AdvisorRequest(BaseModel):
    messages: list[AdvisorMessage] = Field(min_length=1)
    provider: str = "openai"
    model: str | None = None
    session_id: str | None = None
    context: str | None = None
    use_masked: bool = True
    preset_id: str | None = None
    job_description: str | None = None
    api_key: str | None = None
    local_endpoint: str | None = None


class AdvisorOut(BaseModel):
    text: str
    provider: str
    model: str
    remaining: int
    limit: int
    reset_at: float


# ── Helpers ──────────────────────────────────────────────────────────────────

_MEDIA_TYPES = {
    ExportFormat.TXT: "text/plain; charset=utf-8",
    ExportFormat.MD: "text/markdown; charset=utf-8",
    ExportFormat.CSV: "text/csv; charset=utf-8",
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ExportFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ExportFormat.PDF: "application/pdf",
}


def _policy(preset: str | None) -> CategoryPolicy:
    try:
        return CategoryPolicy.from_preset(preset or settings.default_preset)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _findings(spans: list[DetectionSpan], replacements: dict[DetectionSpan, str]) -> list[FindingOut]:
    return [
        FindingOut(
            start=s.start,
            end=s.end,
            text=s.text,
            category=s.category.value,
            confidence=s.confidence,
            rule_id=s.rule_id,
            replacement=replacements.get(s),
        )
        for s in spans
    ]


def _diff_out(segments: list[DiffSegment]) -> list[DiffSegmentOut]:
    return [DiffSegmentOut(kind=s.kind.value, original=s.original, replacement=s.replacement) for s in segments]


def _scan_text(request: ScanRequest) -> ScanResponse:
    policy = _policy(request.preset)
    if request.categories is not None:
        policy = policy.with_only(request.categories)
    for category, strategy in (request.strategies or {}).items():
        policy = policy.with_strategy(category, strategy)
    scanner = PiiScanner(custom_keywords=request.custom_keywords)
    spans = scanner.scan(request.text, policy)
    masked = mask(request.text, spans, policy)
    return ScanResponse(
        masked_text=masked.text,
        findings=_findings(spans, dict(masked.span_replacements)),
        diff=_diff_out(span_diff(request.text, masked)),
    )


def _session_out(session_id: str, session: DocumentSession) -> SessionOut:
    policy = session.policy
    counts = session.detection_counts()
    return SessionOut(
        id=session_id,
        file_name=session.file_name,
        format=session.normalized.source_format.value,
        preset=policy.preset,
        active_view=session.active_view.value,
        has_ai_text=session.ai_text is not None,
        warnings=list(session.normalized.warnings),
        categories={
            c.value: CategoryState(
                enabled=policy.is_enabled(c),
                strategy=policy.setting(c).strategy.value,
                label=CATEGORY_RULES[c].label,
            )
            for c in PiiCategory
        },
        span_counts={c.value: n for c, n in counts.items()},
    )


def _keywords(raw: str) -> list[str]:
    return [k.strip() for k in raw.replace("\n", ",").split(",") if k.strip()]


# ── App ──────────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(_: FastAPI):
    from api.db import init_db

    init_db()
    for limiter in _limiters.values():
        limiter.start_sweeper()
    _sessions.start_sweeper()
    yield
    for limiter in _limiters.values():
        limiter.stop()
    _sessions.stop()
    _sessions.clear()


app = FastAPI(title="redact-pro", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

_EXTERNAL_STATUS = {
    ExternalCallErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ExternalCallErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ExternalCallErrorKind.BLOCKED_SSRF: status.HTTP_400_BAD_REQUEST,
    ExternalCallErrorKind.UPSTREAM_STATUS: status.HTTP_502_BAD_GATEWAY,
    ExternalCallErrorKind.TOOL_UNAVAILABLE: status.HTTP_501_NOT_IMPLEMENTED,
    ExternalCallErrorKind.TOOL_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ExternalCallErrorKind.RESPONSE_REJECTED: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
}


@app.exception_handler(DecodeError)
async def decode_error_handler(_: Request, exc: DecodeError) -> JSONResponse:
    code = (
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
        if exc.kind is DecodeErrorKind.SIZE_EXCEEDED
        else status.HTTP_422_UNPROCESSABLE_ENTITY
    )
    return JSONResponse(status_code=code, content={"error": exc.message, "kind": exc.kind.value})


@app.exception_handler(ExternalCallError)
async def external_error_handler(_: Request, exc: ExternalCallError) -> JSONResponse:
    code = _EXTERNAL_STATUS[exc.kind]
    if exc.kind is ExternalCallErrorKind.RESPONSE_REJECTED and exc.status_code in (400, 413, 415):
        code = exc.status_code
    logger.info("External call failed: %s", exc.kind.value)
    return JSONResponse(status_code=code, content={"error": exc.message, "kind": exc.kind.value})


@app.exception_handler(ViewStateError)
async def view_state_error_handler(_: Request, exc: ViewStateError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"error": str(exc)})


# ── Core routes ──────────────────────────────────────────────────────────────


@app.get("/health")
async def health() -> dict[str, Any]:
    return {"status": "ok"}


@app.post("/decode", response_model=DecodeResponse, dependencies=[Depends(verify_api_key)])
async def decode_document(
    file: Annotated[UploadFile, File()],
    format: Annotated[DocumentFormat, Form()] = DocumentFormat.UNKNOWN,
) -> DecodeResponse:
    data = await file.read()
    normalized = decode(data, format, file_name=file.filename or "")
    return DecodeResponse(
        format=normalized.source_format.value,
        text=normalized.text,
        warnings=list(normalized.warnings),
        page_count=normalized.page_count,
        segments=[
            {"start": s.start, "end": s.end, "location": s.location}
            for s in normalized.offset_map
        ],
    )


@app.post("/scan", response_model=ScanResponse, dependencies=[Depends(verify_api_key)])
async def scan(request: ScanRequest) -> ScanResponse:
    return _scan_text(request)


@app.post(
    "/anonymize",
    response_model=AnonymizeResponse,
    dependencies=[Depends(verify_api_key)],
)
async def anonymize(request: ScanRequest) -> AnonymizeResponse:
    return AnonymizeResponse(masked_text=_scan_text(request).masked_text)


# ── Session routes ───────────────────────────────────────────────────────────


@app.post(
    "/sessions",
    response_model=SessionOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_api_key)],
)
async def create_session(
    file: Annotated[UploadFile, File()],
    format: Annotated[DocumentFormat, Form()] = DocumentFormat.UNKNOWN,
    preset: Annotated[str | None, Form()] = None,
    custom_keywords: Annotated[str, Form()] = "",
) -> SessionOut:
    policy = _policy(preset)
    data = await file.read()
    file_name = file.filename or ""
    normalized = decode(data, format, file_name=file_name)
    session = DocumentSession(
        normalized, policy, file_name=file_name, custom_keywords=_keywords(custom_keywords)
    )
    session_id = secrets.token_urlsafe(16)
    _sessions.put(session_id, session)
    return _session_out(session_id, session)


@app.get("/sessions/{session_id}", response_model=SessionOut, dependencies=[Depends(verify_api_key)])
async def get_session(session_id: str) -> SessionOut:
    return _session_out(session_id, _get_session(session_id))


@app.post(
    "/sessions/{session_id}/categories",
    response_model=SessionOut,
    dependencies=[Depends(verify_api_key)],
)
async def update_category(session_id: str, update: CategoryUpdate) -> SessionOut:
    session = _get_session(session_id)
    if update.strategy is not None:
        session.set_strategy(update.category, update.strategy, update.literal)
    if update.enabled is not None or update.strategy is None:
        session.toggle_category(update.category, update.enabled)
    return _session_out(session_id, session)


@app.post(
    "/sessions/{session_id}/preset",
    response_model=SessionOut,
    dependencies=[Depends(verify_api_key)],
)
async def apply_preset(session_id: str, update: PresetUpdate) -> SessionOut:
    session = _get_session(session_id)
    if update.preset not in PRESETS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown preset: {update.preset}")
    session.apply_preset(update.preset)
    return _session_out(session_id, session)


@app.get(
    "/sessions/{session_id}/views/{view}",
    response_model=ViewOut,
    dependencies=[Depends(verify_api_key)],
)
async def get_view(session_id: str, view: ViewMode) -> ViewOut:
    session = _get_session(session_id)
    session.set_view(view)
    diff: list[DiffSegmentOut] | None = None
    if view is ViewMode.DIFF:
        diff = _diff_out(session.diff())
    elif view is ViewMode.AI_DIFF:
        diff = _diff_out(session.ai_diff())
    return ViewOut(view=view.value, text=session.view_text(view), diff=diff)


@app.put(
    "/sessions/{session_id}/ai-text",
    response_model=SessionOut,
    dependencies=[Depends(verify_api_key)],
)
async def set_ai_text(session_id: str, update: AiTextUpdate) -> SessionOut:
    session = _get_session(session_id)
    session.set_ai_text(update.text)
    return _session_out(session_id, session)


@app.get("/sessions/{session_id}/export", dependencies=[Depends(verify_api_key)])
async def export_session(
    session_id: str,
    format: ExportFormat = ExportFormat.TXT,
    view: ViewMode | None = None,
    drop_placeholders: bool = False,
) -> Response:
    session = _get_session(session_id)
    data = session.export(format, view, drop_placeholders=drop_placeholders)
    stem = (session.file_name.rsplit(".", 1)[0] or "document") + "_redacted"
    filename = quote(f"{stem}.{format.value}")
    return Response(
        content=data,
        media_type=_MEDIA_TYPES[format],
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"},
    )


@app.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_api_key)],
)
async def delete_session(session_id: str) -> Response:
    removed = _sessions.pop(session_id)
    if removed is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown session")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Collaborator routes ──────────────────────────────────────────────────────


@app.get("/fetch", response_model=FetchOut, dependencies=[Depends(verify_api_key)])
def fetch(request: Request, response: Response, url: Annotated[str, Query(min_length=1)]) -> FetchOut:
    if not settings.fetch_enabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Fetching disabled")
    _enforce_rate_limit("fetch", request, response)
    result = fetch_url(url)
    return FetchOut(
        url=result.url,
        final_url=result.final_url,
        content_type=result.content_type,
        text=result.text,
        html=result.html,
        warnings=list(result.warnings),
    )


@app.post("/extract", response_model=ExtractOut, dependencies=[Depends(verify_api_key)])
def extract(request: Request, response: Response, body: ExtractRequest) -> ExtractOut:
    _enforce_rate_limit("extract", request, response)
    result = extract_pdf_text(body.pdfBase64)
    return ExtractOut(text=result.text, pageCount=result.page_count)


@app.get("/advisor/limit")
def advisor_limit(request: Request) -> dict[str, Any]:
    decision = _limiters["ai"].peek(client_ip(request))
    return {
        "used": decision.limit - decision.remaining,
        "limit": decision.limit,
        "remaining": decision.remaining,
        "reset_at": decision.reset_at,
    }


@app.post("/advisor", response_model=AdvisorOut, dependencies=[Depends(verify_api_key)])
def advisor(request: Request, response: Response, body: AdvisorRequest) -> AdvisorOut:
    decision = _enforce_rate_limit("ai", request, response)
    if body.session_id:
        context: Any = _get_session(body.session_id).advisor_context(use_masked=body.use_masked)
    elif body.context:
        context = body.context
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Either session_id or context is required"
        )
    try:
        reply = call_advisor(
            [m.model_dump() for m in body.messages],
            context,
            provider=body.provider,
            model=body.model,
            preset_id=body.preset_id,
            job_description=body.job_description,
            api_key=body.api_key,
            local_endpoint=body.local_endpoint,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return AdvisorOut(
        text=reply.text,
        provider=reply.provider,
        model=reply.model,
        remaining=decision.remaining,
        limit=decision.limit,
        reset_at=decision.reset_at,
    )

