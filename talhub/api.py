"""
TAL Hub API
===========

FastAPI application for tenant-landlord dispute tracking.

Auth:
- POST /api/v1/auth/register, /auth/login, /auth/magic-link, /auth/magic-link/verify
- POST /api/v1/auth/refresh, /auth/logout
- GET  /api/v1/auth/me

Profiles:
- GET/PATCH /api/v1/profiles/me       - Onboarding
- PATCH     /api/v1/profiles/{id}     - Admin role management

Cases (every case-scoped route runs the authorization gate):
- GET/POST         /api/v1/cases
- GET              /api/v1/cases/stats
- GET/PATCH/DELETE /api/v1/cases/{case_id}
- GET              /api/v1/cases/{case_id}/permissions
- GET/POST         /api/v1/cases/{case_id}/participants
- DELETE           /api/v1/cases/{case_id}/participants/{user_id}
- GET/POST         /api/v1/cases/{case_id}/invitations
- POST             /api/v1/invitations/{token}/accept
- GET/POST         /api/v1/cases/{case_id}/deadlines
- PATCH/DELETE     /api/v1/deadlines/{deadline_id}
- GET              /api/v1/deadlines/upcoming

Documents and messages live in api_documents.py and api_messages.py.

Run with:
    uvicorn talhub.api:app --host 0.0.0.0 --port 8000
"""

import logging

from fastapi import FastAPI, APIRouter, Body, Cookie, Depends, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
from typing import Optional

from . import cases as case_service
from . import deadlines as deadline_service
from . import participants as participant_service
from . import profiles as profile_service
from .api_documents import router as documents_router
from .api_messages import router as messages_router, ws_router
from .auth import AuthContext, AuthService, issue_token_pair
from .config import get_settings
from .db.session import init_db, get_db_session
from .deps import get_db_dependency, require_auth
from .errors import TalHubError, AuthenticationError
from .middleware import SessionRefreshMiddleware, set_auth_cookies, clear_auth_cookies, REFRESH_COOKIE
from .permissions import participant_permissions
from .schemas import (
    LoginRequest, RegisterRequest, MagicLinkRequest, MagicLinkVerifyRequest,
    RefreshTokenRequest, TokenResponse,
    OnboardingRequest, AdminProfileUpdate,
    CreateCaseRequest, UpdateCaseRequest, CaseStatsResponse,
    ParticipantRequest, PermissionsResponse,
    CreateDeadlineRequest, UpdateDeadlineRequest,
    HealthResponse,
)
from .seed import seed_demo_data
from .storage import get_storage

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

settings = get_settings()

app = FastAPI(
    title="TAL Hub",
    description="Case tracking for tenant-landlord disputes",
    version=settings.service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)

logger.info(f"CORS allow origins: {settings.cors_origins}")

app.add_middleware(SessionRefreshMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(TalHubError)
async def talhub_error_handler(request: Request, exc: TalHubError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# =============================================================================
# Auth Endpoints
# =============================================================================

auth_router = APIRouter(prefix="/auth", tags=["Auth"])


def _token_response(response: Response, auth: AuthContext) -> TokenResponse:
    tokens = issue_token_pair(auth.user_id)
    set_auth_cookies(response, tokens["access_token"], tokens["refresh_token"])
    return TokenResponse(**tokens)


@auth_router.post("/register", response_model=TokenResponse)
async def register(request: RegisterRequest, response: Response, db: Session = Depends(get_db_dependency)):
    """Register with email and password. New profiles start as tenants."""
    auth = AuthService(db).register(request.email, request.password, request.full_name)
    return _token_response(response, auth)


@auth_router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, response: Response, db: Session = Depends(get_db_dependency)):
    auth = AuthService(db).authenticate_user(request.email, request.password)
    if not auth:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return _token_response(response, auth)


@auth_router.post("/magic-link")
async def request_magic_link(request: MagicLinkRequest, db: Session = Depends(get_db_dependency)):
    """
    Send a passwordless sign-in link.
    Without SMTP the link is only logged, and also returned for local testing.
    """
    link = AuthService(db).request_magic_link(request.email)
    body = {"message": "If the address is valid, a sign-in link has been sent."}
    if not get_settings().email_configured:
        body["_dev_link"] = link
    return body


@auth_router.post("/magic-link/verify", response_model=TokenResponse)
async def verify_magic_link(request: MagicLinkVerifyRequest, response: Response,
                            db: Session = Depends(get_db_dependency)):
    auth = AuthService(db).redeem_magic_link(request.token)
    return _token_response(response, auth)


@auth_router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    response: Response,
    request: Optional[RefreshTokenRequest] = Body(None),
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    db: Session = Depends(get_db_dependency),
):
    token = (request.refresh_token if request else None) or refresh_cookie
    if not token:
        raise AuthenticationError("Refresh token required")
    tokens = AuthService(db).refresh(token)
    set_auth_cookies(response, tokens["access_token"], tokens["refresh_token"])
    return TokenResponse(**tokens)


@auth_router.post("/logout")
async def logout(response: Response):
    """Clear session cookies. Bearer tokens simply expire."""
    clear_auth_cookies(response)
    return {"message": "Logged out"}


@auth_router.get("/me")
async def auth_me(auth: AuthContext = Depends(require_auth), db: Session = Depends(get_db_dependency)):
    profile = profile_service.get_profile(db, auth.user_id)
    return {**profile_service.profile_to_dict(profile), "is_admin": auth.is_admin}


# =============================================================================
# Profile Endpoints
# =============================================================================

profiles_router = APIRouter(prefix="/profiles", tags=["Profiles"])


@profiles_router.get("/me")
async def get_my_profile(auth: AuthContext = Depends(require_auth), db: Session = Depends(get_db_dependency)):
    return profile_service.profile_to_dict(profile_service.get_profile(db, auth.user_id))


@profiles_router.patch("/me")
async def complete_onboarding(
    request: OnboardingRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    profile = profile_service.complete_onboarding(db, auth, request.full_name, request.phone, request.role)
    return profile_service.profile_to_dict(profile)


@profiles_router.patch("/{user_id}")
async def admin_update_profile(
    user_id: str,
    request: AdminProfileUpdate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    changes = request.model_dump(exclude_unset=True)
    profile = profile_service.admin_update_profile(db, auth, user_id, changes)
    return profile_service.profile_to_dict(profile)


# =============================================================================
# Case Endpoints
# =============================================================================

cases_router = APIRouter(tags=["Cases"])


@cases_router.post("/cases", status_code=201)
async def create_case(
    request: CreateCaseRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    case = case_service.create_case(
        db, auth,
        title=request.title,
        case_type=request.type,
        opposing_party_name=request.opposing_party_name,
        status=request.status,
        tal_dossier_number=request.tal_dossier_number,
        next_hearing_date=request.next_hearing_date,
        notes=request.notes,
    )
    return case_service.case_to_dict(case)


@cases_router.get("/cases")
async def list_cases(auth: AuthContext = Depends(require_auth), db: Session = Depends(get_db_dependency)):
    return [case_service.case_to_dict(c) for c in case_service.list_cases(db, auth)]


@cases_router.get("/cases/stats", response_model=CaseStatsResponse)
async def case_stats(auth: AuthContext = Depends(require_auth), db: Session = Depends(get_db_dependency)):
    return case_service.case_stats(db, auth)


@cases_router.get("/cases/{case_id}")
async def get_case(case_id: str, auth: AuthContext = Depends(require_auth),
                   db: Session = Depends(get_db_dependency)):
    return case_service.case_to_dict(case_service.get_case(db, auth, case_id))


@cases_router.patch("/cases/{case_id}")
async def update_case(
    case_id: str,
    request: UpdateCaseRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    changes = request.model_dump(exclude_unset=True)
    return case_service.case_to_dict(case_service.update_case(db, auth, case_id, changes))


@cases_router.delete("/cases/{case_id}")
async def delete_case(case_id: str, auth: AuthContext = Depends(require_auth),
                      db: Session = Depends(get_db_dependency)):
    case_service.delete_case(db, auth, case_id)
    return {"deleted": True, "id": case_id}


@cases_router.get("/cases/{case_id}/permissions", response_model=PermissionsResponse)
async def get_case_permissions(case_id: str, auth: AuthContext = Depends(require_auth),
                               db: Session = Depends(get_db_dependency)):
    case = AuthService(db).require_case_access(auth, case_id)
    return participant_permissions(case, auth).to_dict()


# =============================================================================
# Participant Endpoints
# =============================================================================

@cases_router.get("/cases/{case_id}/participants", tags=["Participants"])
async def list_participants(case_id: str, auth: AuthContext = Depends(require_auth),
                            db: Session = Depends(get_db_dependency)):
    participants = participant_service.list_participants(db, auth, case_id)
    return [participant_service.participant_to_dict(p) for p in participants]


@cases_router.post("/cases/{case_id}/participants", status_code=201, tags=["Participants"])
async def add_participant(
    case_id: str,
    request: ParticipantRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    participant = participant_service.add_participant(db, auth, case_id, request.email, request.role)
    return participant_service.participant_to_dict(participant)


@cases_router.delete("/cases/{case_id}/participants/{user_id}", tags=["Participants"])
async def remove_participant(
    case_id: str,
    user_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    participant_service.remove_participant(db, auth, case_id, user_id)
    return {"removed": True, "case_id": case_id, "user_id": user_id}


@cases_router.post("/cases/{case_id}/invitations", status_code=201, tags=["Participants"])
async def invite_participant(
    case_id: str,
    request: ParticipantRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    return participant_service.invite_participant(db, auth, case_id, request.email, request.role)


@cases_router.get("/cases/{case_id}/invitations", tags=["Participants"])
async def list_invitations(case_id: str, auth: AuthContext = Depends(require_auth),
                           db: Session = Depends(get_db_dependency)):
    invitations = participant_service.list_invitations(db, auth, case_id)
    return [participant_service.invitation_to_dict(i) for i in invitations]


@cases_router.post("/invitations/{token}/accept", tags=["Participants"])
async def accept_invitation(token: str, auth: AuthContext = Depends(require_auth),
                            db: Session = Depends(get_db_dependency)):
    participant = participant_service.accept_invitation(db, auth, token)
    return participant_service.participant_to_dict(participant)


# =============================================================================
# Deadline Endpoints
# =============================================================================

@cases_router.get("/deadlines/upcoming", tags=["Deadlines"])
async def upcoming_deadlines(auth: AuthContext = Depends(require_auth),
                             db: Session = Depends(get_db_dependency)):
    """Banner feed: open deadlines due in the next 48 hours."""
    return deadline_service.upcoming_deadlines(db, auth)


@cases_router.get("/cases/{case_id}/deadlines", tags=["Deadlines"])
async def list_deadlines(case_id: str, auth: AuthContext = Depends(require_auth),
                         db: Session = Depends(get_db_dependency)):
    return [deadline_service.deadline_to_dict(d) for d in deadline_service.list_deadlines(db, auth, case_id)]


@cases_router.post("/cases/{case_id}/deadlines", status_code=201, tags=["Deadlines"])
async def add_deadline(
    case_id: str,
    request: CreateDeadlineRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    deadline = deadline_service.add_deadline(db, auth, case_id, request.title, request.due_date)
    return deadline_service.deadline_to_dict(deadline)


@cases_router.patch("/deadlines/{deadline_id}", tags=["Deadlines"])
async def update_deadline(
    deadline_id: str,
    request: UpdateDeadlineRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    changes = request.model_dump(exclude_unset=True)
    deadline = deadline_service.update_deadline(db, auth, deadline_id, changes)
    return deadline_service.deadline_to_dict(deadline)


@cases_router.delete("/deadlines/{deadline_id}", tags=["Deadlines"])
async def delete_deadline(deadline_id: str, auth: AuthContext = Depends(require_auth),
                          db: Session = Depends(get_db_dependency)):
    deadline_service.delete_deadline(db, auth, deadline_id)
    return {"deleted": True, "id": deadline_id}


api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth_router)
api_router.include_router(profiles_router)
api_router.include_router(cases_router)
api_router.include_router(documents_router)
api_router.include_router(messages_router)
app.include_router(api_router)
app.include_router(ws_router)


# =============================================================================
# System
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    database = "ok"
    try:
        with get_db_session() as db:
            db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Health check: database unavailable ({e})")
        database = "unavailable"

    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=get_settings().service_version,
        database=database,
        storage=type(get_storage()).__name__,
    )


@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    settings = get_settings()
    logger.info(f"Starting TAL Hub v{settings.service_version}")
    for warning in settings.validate_config():
        logger.warning(warning)

    init_db()
    logger.info("Database initialized")

    if settings.seed_demo_data:
        try:
            seed_demo_data()
        except Exception as e:
            logger.warning(f"Demo bootstrap failed: {e}")
