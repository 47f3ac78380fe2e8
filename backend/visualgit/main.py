"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the Git-learning backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return camelCase JSON built from the schemas module.

Endpoints implemented:
- POST /auth/register, /auth/login, /auth/refresh, /auth/logout
- GET  /auth/me, /auth/sessions/active, /auth/sessions/oauth
- POST /auth/oauth/unlink/{provider}
- GET/PUT /users/me, GET /users/me/stats
- GET /admin/users, PATCH /admin/users/{id}/status, DELETE /admin/users/{id}
- POST /git/execute, /git/validate-practice
- GET/POST /practices, GET/PUT/DELETE /practices/{id}
- POST /practices/{id}/view, /practices/{id}/complete
- GET/POST /lessons, GET /lessons/{id_or_slug}, PATCH /lessons/{id}
- POST /lessons/views, GET /lessons/views/me, GET /lessons/{id}/views/stats
- POST/PUT/DELETE/GET /lessons/{id}/ratings (+ /me, /stats)
- POST /lessons/extract, /lessons/extract-url
- GET /health
"""

import json
import logging
import time
import uuid
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from . import models, services
from .auth import get_current_user, get_user_id, require_admin
from .config import settings
from .database import create_db_and_tables, engine, get_session
from .git_engine import GitEngine
from .schemas import (
    AdminUserPage,
    ExtractUrlIn,
    ExtractedContent,
    GitCommandRequest,
    GitCommandResponse,
    LessonCreate,
    LessonOut,
    LessonPage,
    LessonUpdate,
    LessonViewOut,
    LessonViewPage,
    LessonViewStats,
    LoginIn,
    LoginOut,
    PracticeCreate,
    PracticeOut,
    PracticeUpdate,
    PracticeValidationRequest,
    PracticeValidationResponse,
    RatingIn,
    RatingOut,
    RatingStats,
    RefreshIn,
    RegisterIn,
    SessionListOut,
    TokenPair,
    TrackLessonViewIn,
    UpdateProfileIn,
    UserOut,
    UserStatsOut,
    UserStatusIn,
)
from .utils.parsers import extract_from_url, parse_document
from .utils.pdf_text import PdfTextError

app = FastAPI(title="Visualized Git API")
logger = logging.getLogger("visualgit.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

# Wide-open CORS for local front-ends during development.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()

with Session(engine) as _db:
    try:
        services.ensure_admin_user(_db)
    except SQLAlchemyError:
        logger.exception("admin_seed_failed")


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
                "client": request.client.host if request.client else "unknown",
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(services.ServiceError)
async def service_error_handler(request: Request, exc: services.ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def _client_info(request: Request) -> dict:
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip": request.client.host if request.client else None,
    }


# --- auth ------------------------------------------------------------------

@app.post('/auth/register', status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new user; 409 when the email is already taken."""
    user = services.AuthService(db).register(payload.email, payload.password)
    return {'id': user.id, 'email': user.email, 'role': user.role}


@app.post('/auth/login', response_model=LoginOut)
def login(payload: LoginIn, request: Request, db: Session = Depends(get_session)):
    """Authenticate a user and open a refresh-token session.

    The access token carries `sub` (user id) and `role`; the refresh token
    is stored hashed on the new session row.
    """
    result = services.AuthService(db).login(payload.email, payload.password, **_client_info(request))
    return LoginOut(
        user=UserOut.model_validate(result['user']),
        access_token=result['access_token'],
        refresh_token=result['refresh_token'],
    )


@app.post('/auth/refresh', response_model=TokenPair)
def refresh(payload: RefreshIn, request: Request, db: Session = Depends(get_session)):
    """Exchange a refresh token for a new pair; the old session is revoked."""
    tokens = services.AuthService(db).refresh(payload.refresh_token, **_client_info(request))
    return TokenPair(**tokens)


@app.post('/auth/logout')
def logout(payload: RefreshIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    services.AuthService(db).logout(user.id, payload.refresh_token)
    return {'success': True}


@app.get('/auth/me', response_model=UserOut)
def me(user: models.User = Depends(get_current_user)):
    return UserOut.model_validate(user)


@app.post('/auth/oauth/unlink/{provider}')
def unlink_provider(provider: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Remove an OAuth link unless it is the account's only way to sign in."""
    services.OAuthService(db).unlink(user, provider)
    return {'success': True, 'message': f'{provider.upper()} account unlinked'}


@app.get('/auth/sessions/active', response_model=SessionListOut)
def active_sessions(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.SessionService(db).list_sessions(user.id)


@app.get('/auth/sessions/oauth', response_model=SessionListOut)
def oauth_sessions(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.SessionService(db).list_sessions(user.id, models.SESSION_OAUTH)


@app.get('/users/me', response_model=UserOut)
def get_profile(user: models.User = Depends(get_current_user)):
    return UserOut.model_validate(user)


@app.put('/users/me', response_model=UserOut)
def update_profile(payload: UpdateProfileIn, db: Session = Depends(get_session),
                   user: models.User = Depends(get_current_user)):
    updated = services.UserService(db).update_profile(user.id, payload)
    return UserOut.model_validate(updated)


@app.get('/users/me/stats', response_model=UserStatsOut)
def my_stats(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.UserService(db).stats(user.id)


# --- admin --------------------------------------------------------------------

@app.get('/admin/users', response_model=AdminUserPage)
def admin_list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    role: Optional[Literal['USER', 'ADMIN']] = None,
    status: Optional[Literal['active', 'inactive']] = None,
    sort_by: Literal['createdAt', 'email', 'firstName', 'lastName'] = Query('createdAt', alias='sortBy'),
    sort_order: Literal['ASC', 'DESC'] = Query('DESC', alias='sortOrder'),
    db: Session = Depends(get_session),
    admin: models.User = Depends(require_admin),
):
    """Page through all users; `search` matches email, first or last name."""
    return services.UserService(db).list_users(
        page, limit, search=search, role=role, status=status, sort_by=sort_by, sort_order=sort_order,
    )


@app.patch('/admin/users/{user_id}/status', response_model=UserOut)
def admin_set_user_status(user_id: str, payload: UserStatusIn, db: Session = Depends(get_session),
                          admin: models.User = Depends(require_admin)):
    user = services.UserService(db).set_status(user_id, payload.is_active)
    return UserOut.model_validate(user)


@app.delete('/admin/users/{user_id}')
def admin_delete_user(user_id: str, db: Session = Depends(get_session),
                      admin: models.User = Depends(require_admin)):
    services.UserService(db).delete(user_id)
    return {'message': 'User deleted successfully'}


# --- git engine ---------------------------------------------------------------

@app.post('/git/execute', response_model=GitCommandResponse)
def execute_git_command(payload: GitCommandRequest):
    """Run one simulated git command against the supplied repository state."""
    result = GitEngine().execute(payload.repository_state, payload.command)
    logger.info("git_execute %s", json.dumps({"command": payload.command, "success": result.success}))
    return result


@app.post('/git/validate-practice', response_model=PracticeValidationResponse)
def validate_practice(payload: PracticeValidationRequest, db: Session = Depends(get_session)):
    """Compare the learner's repository with the practice goal and score it."""
    return services.GitPracticeService(db).validate_practice(payload.practice_id, payload.user_repository_state)


# --- practices ----------------------------------------------------------------

@app.get('/practices')
def list_practices(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    id: Optional[str] = None,
    lesson_id: Optional[str] = Query(None, alias='lessonId'),
    lesson_slug: Optional[str] = Query(None, alias='lessonSlug'),
    is_active: Optional[bool] = Query(None, alias='isActive'),
    q: Optional[str] = None,
    difficulty: Optional[int] = Query(None, ge=1, le=5),
    tag: Optional[str] = None,
    include_relations: bool = Query(True, alias='includeRelations'),
    db: Session = Depends(get_session),
):
    """List practices, or return a single one when `id` is given.

    Results are ordered by `order` then creation time; `q` matches the
    practice title, scenario or lesson title case-insensitively.
    """
    svc = services.PracticeService(db)
    if id:
        return services.practice_to_out(svc.get(id), include_relations)
    return svc.list_practices(
        limit, offset, include_relations,
        lesson_id=lesson_id, lesson_slug=lesson_slug, is_active=is_active,
        q=q, difficulty=difficulty, tag=tag,
    )


@app.get('/practices/{practice_id}', response_model=PracticeOut)
def get_practice(practice_id: str, db: Session = Depends(get_session)):
    return services.practice_to_out(services.PracticeService(db).get(practice_id))


@app.post('/practices', status_code=201, response_model=PracticeOut)
def create_practice(payload: PracticeCreate, db: Session = Depends(get_session)):
    practice = services.PracticeService(db).create(payload)
    return services.practice_to_out(practice)


@app.put('/practices/{practice_id}', response_model=PracticeOut)
def update_practice(practice_id: str, payload: PracticeUpdate, db: Session = Depends(get_session)):
    practice = services.PracticeService(db).update(practice_id, payload)
    return services.practice_to_out(practice)


@app.delete('/practices/{practice_id}')
def delete_practice(practice_id: str, db: Session = Depends(get_session)):
    services.PracticeService(db).delete(practice_id)
    return {'success': True}


@app.post('/practices/{practice_id}/view', status_code=204)
def record_practice_view(practice_id: str, db: Session = Depends(get_session)):
    services.PracticeService(db).record_view(practice_id)
    return Response(status_code=204)


@app.post('/practices/{practice_id}/complete', status_code=204)
def record_practice_completion(practice_id: str, db: Session = Depends(get_session)):
    services.PracticeService(db).record_completion(practice_id)
    return Response(status_code=204)


# --- lessons ------------------------------------------------------------------

@app.get('/lessons', response_model=LessonPage)
def list_lessons(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    id: Optional[str] = None,
    slug: Optional[str] = None,
    status: Optional[Literal['DRAFT', 'PUBLISHED', 'ARCHIVED']] = None,
    q: Optional[str] = None,
    db: Session = Depends(get_session),
):
    return services.LessonService(db).list_lessons(limit, offset, lesson_id=id, slug=slug, status=status, q=q)


@app.post('/lessons', status_code=201, response_model=LessonOut)
def create_lesson(payload: LessonCreate, db: Session = Depends(get_session)):
    return LessonOut.model_validate(services.LessonService(db).create(payload))


@app.post('/lessons/views', response_model=LessonViewOut)
def track_lesson_view(payload: TrackLessonViewIn, user_id: str = Depends(get_user_id),
                      db: Session = Depends(get_session)):
    """Count one view of a lesson by the calling user."""
    view = services.LessonViewService(db).track(user_id, payload.lesson_id)
    return LessonViewOut.model_validate(view)


@app.get('/lessons/views/me', response_model=LessonViewPage)
def my_lesson_views(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    order_by: Literal['viewedAt', 'lastViewedAt', 'viewCount'] = Query('lastViewedAt', alias='orderBy'),
    order: Literal['ASC', 'DESC'] = 'DESC',
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_session),
):
    return services.LessonViewService(db).list_for_user(user_id, limit, offset, order_by, order)


@app.post('/lessons/extract', response_model=ExtractedContent)
def extract_lesson_content(file: UploadFile = File(...), user: models.User = Depends(get_current_user)):
    """Extract cleaned text from an uploaded PDF or DOCX file.

    The upload is capped at `MAX_UPLOAD_BYTES`; unsupported types and
    unreadable documents are rejected with 400.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail='no file')
    content = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail='file too large')
    try:
        extracted = parse_document(content, file.filename)
    except PdfTextError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ExtractedContent.model_validate(extracted)


@app.post('/lessons/extract-url', response_model=ExtractedContent)
def extract_lesson_content_from_url(payload: ExtractUrlIn, user: models.User = Depends(get_current_user)):
    """Fetch a page from an allow-listed documentation site and extract its main text."""
    try:
        extracted = extract_from_url(str(payload.url))
    except PdfTextError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ExtractedContent.model_validate(extracted)


@app.get('/lessons/{lesson_id}/views/stats', response_model=LessonViewStats)
def lesson_view_stats(lesson_id: str, db: Session = Depends(get_session)):
    return services.LessonViewService(db).stats(lesson_id)


@app.post('/lessons/{lesson_id}/ratings', status_code=201, response_model=RatingOut)
def create_rating(lesson_id: str, payload: RatingIn, user_id: str = Depends(get_user_id),
                  db: Session = Depends(get_session)):
    """Rate a lesson once; 409 when the user already rated it."""
    rating = services.RatingService(db).create(user_id, lesson_id, payload)
    return RatingOut.model_validate(rating)


@app.put('/lessons/{lesson_id}/ratings', response_model=RatingOut)
def update_rating(lesson_id: str, payload: RatingIn, user_id: str = Depends(get_user_id),
                  db: Session = Depends(get_session)):
    rating = services.RatingService(db).update(user_id, lesson_id, payload)
    return RatingOut.model_validate(rating)


@app.delete('/lessons/{lesson_id}/ratings')
def delete_rating(lesson_id: str, user_id: str = Depends(get_user_id), db: Session = Depends(get_session)):
    services.RatingService(db).delete(user_id, lesson_id)
    return {'success': True}


@app.get('/lessons/{lesson_id}/ratings', response_model=List[RatingOut])
def list_ratings(lesson_id: str, db: Session = Depends(get_session)):
    return services.RatingService(db).list_for_lesson(lesson_id)


@app.get('/lessons/{lesson_id}/ratings/me', response_model=Optional[RatingOut])
def my_rating(lesson_id: str, user_id: str = Depends(get_user_id), db: Session = Depends(get_session)):
    rating = services.RatingService(db).get_mine(user_id, lesson_id)
    return RatingOut.model_validate(rating) if rating else None


@app.get('/lessons/{lesson_id}/ratings/stats', response_model=RatingStats)
def rating_stats(lesson_id: str, db: Session = Depends(get_session)):
    return services.RatingService(db).stats(lesson_id)


@app.get('/lessons/{id_or_slug}', response_model=LessonOut)
def get_lesson(id_or_slug: str, db: Session = Depends(get_session)):
    return LessonOut.model_validate(services.LessonService(db).get(id_or_slug))


@app.patch('/lessons/{lesson_id}', response_model=LessonOut)
def update_lesson(lesson_id: str, payload: LessonUpdate, db: Session = Depends(get_session)):
    return LessonOut.model_validate(services.LessonService(db).update(lesson_id, payload))


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
