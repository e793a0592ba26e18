"""
Main FastAPI application for the Community Problem Reporter.
Provides REST API endpoints for signing in, uploading a photo, choosing its
category, submitting reports, browsing and voting on them, and statistics.
"""

from dotenv import load_dotenv
load_dotenv()  # Load environment variables from .env file

import logging
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Header, HTTPException, Query, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware

from database import SETUP_INSTRUCTIONS, Settings, create_backend, load_settings
from schemas import (
    ALL,
    AnalysisResult,
    CategoryOption,
    CategorySelection,
    ComposerState,
    GeoFix,
    LocationReport,
    MessageResponse,
    PasswordResetRequest,
    PhotoAnalysisResponse,
    Report,
    ReportDraft,
    ReportFilter,
    SessionResponse,
    SetupResponse,
    SignInRequest,
    SignUpRequest,
    Statistics,
    VoteResponse,
)
from services.classifier import begin_analysis, get_catalog, select_category, validate_photo
from services.client_session import ClientSession, SessionRegistry
from services.errors import (
    AuthError,
    BackendError,
    GeolocationError,
    RateLimitedError,
    ReporterError,
    SubmissionInProgressError,
    ValidationError,
)
from services.statistics import get_statistics

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Community Problem Reporter"

router = APIRouter()


def _setup_payload(settings: Settings) -> dict:
    return SetupResponse(
        configured=settings.is_configured,
        missing=settings.missing,
        instructions=SETUP_INSTRUCTIONS,
    ).model_dump()


def _http_error(exc: ReporterError) -> HTTPException:
    """Map a service error onto the HTTP status shown to the client."""
    if isinstance(exc, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, RateLimitedError):
        code = status.HTTP_429_TOO_MANY_REQUESTS
    elif isinstance(exc, SubmissionInProgressError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, AuthError):
        code = status.HTTP_401_UNAUTHORIZED
    elif isinstance(exc, BackendError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=exc.message)


def get_client_session(
    request: Request,
    x_session_id: str = Header("default", description="Client session identifier"),
) -> ClientSession:
    """
    Dependency resolving the caller's ClientSession.

    Raises:
        HTTPException: 503 with setup instructions while credentials are missing
    """
    sessions: Optional[SessionRegistry] = request.app.state.sessions
    if sessions is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=_setup_payload(request.app.state.settings),
        )
    return sessions.get(x_session_id)


# ============== Health / Setup ==============

@router.get("/", tags=["Health"])
def health_check(request: Request):
    """Health check endpoint; also reports whether the backend is configured."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "configured": request.app.state.settings.is_configured,
    }


@router.get("/setup", response_model=SetupResponse, tags=["Health"])
def setup_instructions(request: Request):
    """Instructions for providing the backend credentials."""
    return _setup_payload(request.app.state.settings)


# ============== Auth Endpoints ==============

@router.post(
    "/auth/signup",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Auth"]
)
async def sign_up(body: SignUpRequest, session: ClientSession = Depends(get_client_session)):
    """Create an account with e-mail, password and display name."""
    try:
        message = await session.auth.sign_up(body.email, body.password, body.full_name)
    except ReporterError as e:
        raise _http_error(e) from e
    return MessageResponse(message=message)


@router.post("/auth/signin", response_model=SessionResponse, tags=["Auth"])
async def sign_in(body: SignInRequest, session: ClientSession = Depends(get_client_session)):
    """Sign in with e-mail and password."""
    try:
        identity = await session.auth.sign_in(body.email, body.password)
    except ReporterError as e:
        raise _http_error(e) from e
    return SessionResponse(authenticated=True, user=identity, message="Welcome back!")


@router.post("/auth/signout", response_model=MessageResponse, tags=["Auth"])
async def sign_out(session: ClientSession = Depends(get_client_session)):
    await session.auth.sign_out()
    return MessageResponse(message="Signed out")


@router.get("/auth/session", response_model=SessionResponse, tags=["Auth"])
async def current_session(session: ClientSession = Depends(get_client_session)):
    """
    Re-validate and return the current session.

    A session that can no longer be refreshed is reported as signed out.
    """
    try:
        identity = await session.auth.load_session()
    except AuthError as e:
        return SessionResponse(authenticated=False, message=e.message)
    return SessionResponse(authenticated=identity is not None, user=identity)


@router.post("/auth/password-reset", response_model=MessageResponse, tags=["Auth"])
async def password_reset(body: PasswordResetRequest, session: ClientSession = Depends(get_client_session)):
    """Send a password-reset e-mail."""
    try:
        message = await session.auth.request_password_reset(body.email)
    except ReporterError as e:
        raise _http_error(e) from e
    return MessageResponse(message=message)


# ============== Category Endpoints ==============

@router.get("/categories", response_model=List[CategoryOption], tags=["Categories"])
def list_categories(session: ClientSession = Depends(get_client_session)):
    """The fixed category catalog."""
    return get_catalog()


@router.post("/photos", response_model=PhotoAnalysisResponse, tags=["Categories"])
async def upload_photo(
    request: Request,
    image: UploadFile = File(...),
    session: ClientSession = Depends(get_client_session),
):
    """
    Upload a photo of the problem.

    The photo is stored in the backend bucket and attached to the draft.
    After the analysis delay the full catalog is returned for manual choice.
    """
    content = await image.read()
    try:
        validate_photo(image.content_type or "", len(content))
        uploaded = await session.backend.upload_image(
            content,
            image.filename or "photo.jpg",
            content_type=image.content_type,
            access_token=session.auth.access_token,
        )
    except ReporterError as e:
        raise _http_error(e) from e

    session.composer.attach_image(uploaded["public_url"])
    pending, catalog = await begin_analysis(request.app.state.settings.analysis_delay)
    return PhotoAnalysisResponse(analysis=pending, categories=catalog, image_url=uploaded["public_url"])


@router.post("/photos/category", response_model=AnalysisResult, tags=["Categories"])
def choose_category(body: CategorySelection, session: ClientSession = Depends(get_client_session)):
    """Resolve the manual category choice and seed the draft with it."""
    try:
        result = select_category(body.category)
    except ReporterError as e:
        raise _http_error(e) from e
    session.composer.apply_analysis(result)
    return result


# ============== Composer Endpoints ==============

@router.get("/composer", response_model=ComposerState, tags=["Composer"])
def composer_state(session: ClientSession = Depends(get_client_session)):
    return session.composer.state()


@router.put("/composer/location", response_model=ComposerState, tags=["Composer"])
async def report_location(body: LocationReport, session: ClientSession = Depends(get_client_session)):
    """
    Report the outcome of the device geolocation request made when the form opened.

    Only the first report counts; a denial or missing fix means a typed
    address is required for this session.
    """
    async def device_fix() -> GeoFix:
        if body.error or body.latitude is None or body.longitude is None:
            raise GeolocationError(body.error or "Location unavailable")
        return GeoFix(latitude=body.latitude, longitude=body.longitude)

    await session.composer.acquire_location(device_fix)
    return session.composer.state()


@router.delete("/composer/location", response_model=ComposerState, tags=["Composer"])
def clear_location(session: ClientSession = Depends(get_client_session)):
    session.composer.clear_location_fix()
    return session.composer.state()


# ============== Report Endpoints ==============

@router.post(
    "/reports",
    response_model=Report,
    status_code=status.HTTP_201_CREATED,
    tags=["Reports"]
)
async def submit_report(draft: ReportDraft, session: ClientSession = Depends(get_client_session)):
    """
    Submit a new problem report.

    The report is validated, created locally with status Reported and zero
    votes, and placed at the head of the session's report list. Fields left
    out of the body keep their current draft values (category chosen from a
    photo, attached image).
    """
    merged = session.composer.draft.model_copy(update=draft.model_dump(exclude_unset=True))
    try:
        return await session.composer.submit(merged)
    except ReporterError as e:
        raise _http_error(e) from e


@router.get("/reports", response_model=List[Report], tags=["Reports"])
def list_reports(
    search: str = Query("", description="Case-insensitive text search"),
    status_filter: str = Query(ALL, alias="status", description="Status or All"),
    category: str = Query(ALL, description="Category or All"),
    session: ClientSession = Depends(get_client_session),
):
    """List local reports first, then fetched ones, filtered."""
    criteria = ReportFilter(search_term=search, status=status_filter, category=category)
    return session.store.list(criteria)


@router.post("/reports/refresh", response_model=List[Report], tags=["Reports"])
async def refresh_reports(session: ClientSession = Depends(get_client_session)):
    """Re-fetch reports from the backend, replacing the fetched portion."""
    try:
        return await session.store.refresh()
    except ReporterError as e:
        raise _http_error(e) from e


@router.post("/reports/{report_id}/vote", response_model=VoteResponse, tags=["Reports"])
async def vote_report(report_id: str, session: ClientSession = Depends(get_client_session)):
    """Up-vote a report once per session."""
    try:
        state = await session.ledger.vote(report_id)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Report with id {report_id} not found"
        )
    except ReporterError as e:
        raise _http_error(e) from e

    report = session.store.get(report_id)
    return VoteResponse(
        report_id=report_id,
        votes=report.votes if report else 0,
        state=state.value,
        voted=session.ledger.has_voted(report_id),
    )


# ============== Statistics Endpoints ==============

@router.get("/stats", response_model=Statistics, tags=["Statistics"])
async def statistics(session: ClientSession = Depends(get_client_session)):
    """Totals, fixed count, active users and the signed-in user's points."""
    try:
        return await get_statistics(session.backend, session.auth.identity, session.auth.access_token)
    except ReporterError as e:
        raise _http_error(e) from e


# ============== Application Factory ==============

def create_app(settings: Optional[Settings] = None, backend=None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Runtime settings; read from the environment when omitted
        backend: Backend client; built from settings when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or load_settings()
    if backend is None:
        backend = create_backend(settings)

    application = FastAPI(
        title=SERVICE_NAME,
        description="API for reporting, browsing and voting on community problems",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    application.state.settings = settings
    application.state.backend = backend
    application.state.sessions = SessionRegistry(backend, settings) if backend is not None else None

    # Configure CORS middleware (explicit origins required when allow_credentials=True)
    cors_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        cors_origins.extend(o.strip() for o in extra_origins.split(",") if o.strip())
    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
