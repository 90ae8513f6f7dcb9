"""
HTTP API for the credit bureau core.
The caller's identity is the connected wallet address, passed in the X-Wallet-Address header.
"""

from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from util.logging import audit_event, logger

from .schemas import (
    ReportSubmitRequest,
    ReportResponse,
    ReportListResponse,
    TransitionResponse,
    StatsResponse,
    ScoreStatsResponse,
    ChallengeResponse,
    RevealRequest,
    RevealResponse,
    PreviewRequest,
    PreviewResponse,
    HealthResponse,
    validate_status_filter,
)
from ..core import config
from ..core.codec import default_codec
from ..core.errors import CreditBureauError, Forbidden, NotAuthenticated
from ..core.lifecycle import ReportLifecycle
from ..core.reveal import SessionParams, build_challenge, reveal
from ..core.stats import approved_score_stats, status_counts
from ..core.store import ReportStore

# Initialize the FastAPI application
app = FastAPI(
    title="FHE Credit Bureau API",
    version=config.VERSION,
    description="Opaque credit reports over a flat key-value store",
    docs_url="/docs" if config.debug_enabled() else None,
    redoc_url="/redoc" if config.debug_enabled() else None
)

# Add CORS middleware to allow frontend connections
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_lifecycle: Optional[ReportLifecycle] = None
_session: Optional[SessionParams] = None


def get_lifecycle() -> ReportLifecycle:
    """Process-wide lifecycle manager over the configured store."""
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = ReportLifecycle(ReportStore(config.get_kv_store()))
    return _lifecycle


def get_session() -> SessionParams:
    """Reveal session parameters, stable for the life of the process."""
    global _session
    if _session is None:
        _session = SessionParams.start()
    return _session


def get_wallet(x_wallet_address: Optional[str] = Header(None)) -> Optional[str]:
    return x_wallet_address.strip() if x_wallet_address and x_wallet_address.strip() else None


@app.exception_handler(CreditBureauError)
async def credit_bureau_error_handler(request: Request, exc: CreditBureauError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc.__class__.__name__}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "error": exc.__class__.__name__}
    )


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(lifecycle: ReportLifecycle = Depends(get_lifecycle)):
    """Check store availability."""
    try:
        available = lifecycle.store.kv.is_available()
    except Exception as e:
        logger.error(f"Store probe failed: {e}")
        available = False

    return HealthResponse(
        status="healthy" if available else "unhealthy",
        version=config.VERSION,
        store_available=available
    )


@app.get("/reports", response_model=ReportListResponse)
def list_reports_endpoint(search: Optional[str] = None, status: Optional[str] = None,
                          lifecycle: ReportLifecycle = Depends(get_lifecycle)):
    """List reports newest first, optionally filtered by text or status."""
    try:
        validate_status_filter(status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    reports = lifecycle.list_reports(search=search, status=status)
    return ReportListResponse(
        reports=[ReportResponse.from_report(r) for r in reports],
        total=len(reports)
    )


# Define /reports/stats BEFORE /reports/{report_id} to avoid path parameter conflict
@app.get("/reports/stats", response_model=StatsResponse)
def report_stats_endpoint(lifecycle: ReportLifecycle = Depends(get_lifecycle)):
    """Status counts and approved score summary."""
    reports = lifecycle.list_reports()
    stats = approved_score_stats(reports, lifecycle.codec)
    return StatsResponse(
        counts=status_counts(reports),
        approved_scores=ScoreStatsResponse(**stats.to_dict())
    )


@app.get("/reports/{report_id}", response_model=ReportResponse)
def get_report_endpoint(report_id: str, lifecycle: ReportLifecycle = Depends(get_lifecycle)):
    """Get a single report (score stays opaque)."""
    return ReportResponse.from_report(lifecycle.get(report_id))


@app.post("/reports", response_model=ReportResponse, status_code=201)
def submit_report_endpoint(request: ReportSubmitRequest, wallet: Optional[str] = Depends(get_wallet),
                           lifecycle: ReportLifecycle = Depends(get_lifecycle)):
    """Encrypt and submit a new credit report owned by the caller."""
    report = lifecycle.submit(wallet, request.sources, request.score)
    return ReportResponse.from_report(report)


@app.post("/reports/{report_id}/approve", response_model=TransitionResponse)
def approve_report_endpoint(report_id: str, wallet: Optional[str] = Depends(get_wallet),
                            lifecycle: ReportLifecycle = Depends(get_lifecycle)):
    """Approve a pending report (owner only)."""
    report = lifecycle.approve(report_id, wallet)
    return TransitionResponse(success=True, message="Report approved", report=ReportResponse.from_report(report))


@app.post("/reports/{report_id}/reject", response_model=TransitionResponse)
def reject_report_endpoint(report_id: str, wallet: Optional[str] = Depends(get_wallet),
                           lifecycle: ReportLifecycle = Depends(get_lifecycle)):
    """Reject a pending report (owner only)."""
    report = lifecycle.reject(report_id, wallet)
    return TransitionResponse(success=True, message="Report rejected", report=ReportResponse.from_report(report))


@app.get("/reveal/challenge", response_model=ChallengeResponse)
def reveal_challenge_endpoint(session: SessionParams = Depends(get_session)):
    """The message a wallet must sign before a reveal."""
    return ChallengeResponse(
        challenge=build_challenge(session),
        public_key=session.public_key,
        contract_address=session.contract_address,
        chain_id=session.chain_id,
        start_timestamp=session.start_timestamp,
        duration_days=session.duration_days,
        expires_at=session.expires_at
    )


@app.post("/reports/{report_id}/reveal", response_model=RevealResponse)
def reveal_report_endpoint(report_id: str, request: RevealRequest, wallet: Optional[str] = Depends(get_wallet),
                           lifecycle: ReportLifecycle = Depends(get_lifecycle),
                           session: SessionParams = Depends(get_session)):
    """Decode a report's score for its owner once the challenge is signed."""
    if not wallet:
        raise NotAuthenticated("Connect a wallet before revealing a score")

    report = lifecycle.get(report_id)
    if not report.owned_by(wallet):
        raise Forbidden(f"{wallet} does not own report {report_id}")

    # The wallet signed client-side; the submitted signature is the consent
    value = reveal(report.opaque_score, session, lambda challenge: request.signature.strip(),
                   codec=lifecycle.codec)
    audit_event("reveal.granted", {"report_id": report.id, "owner": wallet},
                {"signature": request.signature, "chain_id": session.chain_id})
    return RevealResponse(id=report.id, score=value)


@app.post("/codec/preview", response_model=PreviewResponse)
def codec_preview_endpoint(request: PreviewRequest):
    """Show what a score looks like once encrypted, before submitting."""
    try:
        encrypted = default_codec.preview(request.score)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PreviewResponse(plain=request.score, encrypted=encrypted)
