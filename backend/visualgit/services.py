"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and domain logic. Services are intentionally thin: they perform
validation, execute domain logic and persist aggregates via
repositories. Failures are raised as `ServiceError` subclasses carrying
the HTTP status the API maps them to.
"""

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy import update
from sqlmodel import Session

from . import models, repositories, schemas
from .config import DEFAULT_ADMIN_PASSWORD, settings
from .git_engine import calculate_score, compare_repository_states
from .models import utcnow

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

logger = logging.getLogger("visualgit.services")


class ServiceError(ValueError):
    """Domain error; `status_code` is the HTTP status the API answers with."""
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class AuthError(ServiceError):
    status_code = 401


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def create_access_token(user: models.User) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_ACCESS_TTL_MINUTES)
    payload = {"sub": user.id, "role": user.role, "typ": ACCESS_TOKEN, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_ACCESS_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(user_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.JWT_REFRESH_TTL_DAYS)
    payload = {"sub": user_id, "typ": REFRESH_TOKEN, "jti": uuid.uuid4().hex, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_REFRESH_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, typ: str = ACCESS_TOKEN) -> Dict[str, Any]:
    """Verify signature, expiry and token type; jwt exceptions propagate."""
    secret = settings.JWT_ACCESS_SECRET if typ == ACCESS_TOKEN else settings.JWT_REFRESH_SECRET
    payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    if payload.get("typ") != typ:
        raise jwt.InvalidTokenError(f"expected a {typ} token")
    return payload


class AuthService:
    """Registration, password login and refresh-token sessions."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.session_repo = repositories.SessionRepository(session)

    def register(self, email: str, password: str) -> models.User:
        """Create a new user with a hashed password.

        Returns the persisted `User` instance.
        """
        if self.user_repo.get_by_email(email):
            raise ConflictError("Email already registered")
        user = models.User(email=email, password_hash=PWD_CTX.hash(password))
        return self.user_repo.create(user)

    def login(self, email: str, password: str, user_agent: Optional[str] = None,
              ip: Optional[str] = None) -> Dict[str, Any]:
        user = self.user_repo.get_by_email(email)
        if not user or not user.password_hash or not PWD_CTX.verify(password, user.password_hash):
            raise AuthError("Invalid credentials")
        if not user.is_active:
            raise AuthError("User account is disabled")
        tokens = self.issue_tokens(user, user_agent=user_agent, ip=ip)
        return {"user": user, **tokens}

    def issue_tokens(self, user: models.User, user_agent: Optional[str] = None, ip: Optional[str] = None,
                     **session_fields) -> Dict[str, str]:
        """Sign a token pair and store a session holding the refresh-token hash."""
        access_token = create_access_token(user)
        refresh_token = create_refresh_token(user.id)
        self.session_repo.create(models.UserSession(
            user_id=user.id,
            refresh_token_hash=PWD_CTX.hash(refresh_token),
            user_agent=user_agent,
            ip=ip,
            expires_at=utcnow() + timedelta(days=settings.JWT_REFRESH_TTL_DAYS),
            **session_fields,
        ))
        return {"access_token": access_token, "refresh_token": refresh_token}

    def find_session(self, user_id: str, refresh_token: str) -> Optional[models.UserSession]:
        """The open, unexpired session whose stored hash matches `refresh_token`."""
        now = utcnow()
        for candidate in self.session_repo.list_open_for_user(user_id):
            if _as_utc(candidate.expires_at) <= now:
                continue
            if PWD_CTX.verify(refresh_token, candidate.refresh_token_hash):
                return candidate
        return None

    def refresh(self, refresh_token: str, user_agent: Optional[str] = None,
                ip: Optional[str] = None) -> Dict[str, str]:
        """Rotate a refresh token: revoke its session and open a new one."""
        try:
            payload = decode_token(refresh_token, REFRESH_TOKEN)
        except jwt.PyJWTError:
            raise AuthError("Invalid refresh token")
        user = self.user_repo.get(payload.get("sub", ""))
        if not user or not user.is_active:
            raise AuthError("Invalid refresh token")
        current = self.find_session(user.id, refresh_token)
        if current is None:
            raise AuthError("Invalid refresh token")
        self.session_repo.revoke(current)
        return self.issue_tokens(
            user,
            user_agent=user_agent or current.user_agent,
            ip=ip or current.ip,
            session_type=current.session_type,
            oauth_provider=current.oauth_provider,
            oauth_provider_id=current.oauth_provider_id,
        )

    def logout(self, user_id: str, refresh_token: str) -> None:
        current = self.find_session(user_id, refresh_token)
        if current is not None:
            self.session_repo.revoke(current)


class SessionService:
    """Read-only views over a user's sessions."""
    def __init__(self, session: Session):
        self.session_repo = repositories.SessionRepository(session)

    def list_sessions(self, user_id: str, session_type: Optional[str] = None) -> schemas.SessionListOut:
        now = utcnow()
        rows = self.session_repo.list_open_for_user(user_id, session_type)
        sessions = [
            schemas.SessionOut(
                id=s.id,
                user_agent=s.user_agent,
                ip=s.ip,
                session_type=s.session_type,
                oauth_provider=s.oauth_provider,
                created_at=s.created_at,
                expires_at=s.expires_at,
                is_active=_as_utc(s.expires_at) > now,
            )
            for s in rows
        ]
        return schemas.SessionListOut(sessions=sessions, total=len(sessions))


class OAuthService:
    """Account linking for identities already verified by a provider."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.link_repo = repositories.OAuthProviderRepository(session)
        self.auth = AuthService(session)

    def login_with_profile(self, profile: schemas.OAuthProfileIn, user_agent: Optional[str] = None,
                           ip: Optional[str] = None) -> Dict[str, Any]:
        """Find or create the user behind `profile` and open an OAUTH session.

        Lookup order: an existing link for (provider, provider_id), then a
        user with the same email, then a brand new user.
        """
        is_new_user = False
        email = (profile.email or "").strip().lower()
        link = self.link_repo.get_by_provider_id(profile.provider, profile.provider_id)
        if link is not None:
            link.provider_email = email or link.provider_email
            link.provider_name = profile.name or link.provider_name
            link.provider_avatar = profile.avatar or link.provider_avatar
            self.link_repo.save(link)
            user = self.user_repo.get(link.user_id)
            if user is None:
                raise AuthError("Linked user no longer exists")
        else:
            user = self.user_repo.get_by_email(email) if email else None
            if user is None:
                first, _, last = (profile.name or "").strip().partition(" ")
                user = self.user_repo.create(models.User(
                    email=email or f"{profile.provider.lower()}:{profile.provider_id}",
                    password_hash=None,
                    first_name=first or None,
                    last_name=last.strip() or None,
                    avatar=profile.avatar,
                ))
                is_new_user = True
            self.link_repo.save(models.OAuthProvider(
                provider=profile.provider,
                provider_id=profile.provider_id,
                provider_email=email,
                provider_name=profile.name,
                provider_avatar=profile.avatar,
                user_id=user.id,
            ))
        if not user.is_active:
            raise AuthError("User account is disabled")

        tokens = self.auth.issue_tokens(
            user,
            user_agent=user_agent,
            ip=ip,
            session_type=models.SESSION_OAUTH,
            oauth_provider=profile.provider,
            oauth_provider_id=profile.provider_id,
            oauth_access_token_hash=PWD_CTX.hash(profile.access_token) if profile.access_token else None,
            oauth_refresh_token_hash=PWD_CTX.hash(profile.refresh_token) if profile.refresh_token else None,
        )
        logger.info("oauth_login provider=%s user=%s new=%s", profile.provider, user.id, is_new_user)
        return {"user": user, "is_new_user": is_new_user, **tokens}

    def unlink(self, user: models.User, provider: str) -> None:
        link = self.link_repo.get_for_user(user.id, provider.upper())
        if link is None:
            raise AuthError("OAuth provider not linked to this account")
        links = self.link_repo.list_for_user(user.id)
        if not user.password_hash and len(links) <= 1:
            raise AuthError("Cannot unlink the only authentication method")
        self.link_repo.delete(link)


class UserService:
    """Profiles, session statistics and admin user management."""
    def __init__(self, session: Session):
        self.user_repo = repositories.UserRepository(session)
        self.session_repo = repositories.SessionRepository(session)

    def get(self, user_id: str) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def update_profile(self, user_id: str, data: schemas.UpdateProfileIn) -> models.User:
        user = self.get(user_id)
        for name, value in data.model_dump(exclude_unset=True).items():
            setattr(user, name, value)
        return self.user_repo.save(user)

    def stats(self, user_id: str) -> schemas.UserStatsOut:
        """Session counters; a session is active while it is neither revoked nor expired."""
        now = utcnow()
        rows = self.session_repo.list_for_user(user_id)
        return schemas.UserStatsOut(
            total_sessions=len(rows),
            active_sessions=sum(1 for s in rows if s.revoked_at is None and _as_utc(s.expires_at) > now),
            oauth_sessions=sum(1 for s in rows if s.session_type == models.SESSION_OAUTH),
            last_login_at=rows[0].created_at if rows else None,
        )

    def list_users(self, page: int, limit: int, search: Optional[str] = None, role: Optional[str] = None,
                   status: Optional[str] = None, sort_by: str = "createdAt",
                   sort_order: str = "DESC") -> schemas.AdminUserPage:
        is_active = None if status is None else status == "active"
        rows, total = self.user_repo.list(
            limit, (page - 1) * limit, search=search, role=role, is_active=is_active,
            order_by=sort_by, order=sort_order,
        )
        users = []
        for user in rows:
            name = " ".join(part for part in (user.first_name, user.last_name) if part)
            users.append(schemas.AdminUserOut(
                id=user.id,
                name=name or user.email,
                email=user.email,
                role=user.role,
                status="active" if user.is_active else "inactive",
                joined_at=user.created_at,
                **self.stats(user.id).model_dump(),
            ))
        return schemas.AdminUserPage(
            users=users, total=total, page=page, limit=limit, total_pages=math.ceil(total / limit),
        )

    def set_status(self, user_id: str, is_active: bool) -> models.User:
        """Enable or disable an account; disabled users fail authentication on their next request."""
        user = self.get(user_id)
        user.is_active = is_active
        logger.info("user_status user=%s active=%s", user_id, is_active)
        return self.user_repo.save(user)

    def delete(self, user_id: str) -> None:
        user = self.get(user_id)
        self.user_repo.delete(user)
        logger.info("user_deleted user=%s", user_id)


def ensure_admin_user(session: Session) -> Optional[models.User]:
    """Make sure the configured admin account exists and holds the ADMIN role."""
    if not settings.ADMIN_EMAIL:
        return None
    repo = repositories.UserRepository(session)
    user = repo.get_by_email(settings.ADMIN_EMAIL)
    if user is not None and user.role == models.ROLE_ADMIN:
        logger.info("admin user present email=%s", settings.ADMIN_EMAIL)
        return user
    if user is not None:
        user.role = models.ROLE_ADMIN
        user.is_active = True
        logger.info("promoted existing user to admin email=%s", settings.ADMIN_EMAIL)
        return repo.save(user)
    user = repo.create(models.User(
        email=settings.ADMIN_EMAIL,
        password_hash=PWD_CTX.hash(settings.ADMIN_PASSWORD),
        role=models.ROLE_ADMIN,
        first_name="Admin",
        last_name="User",
    ))
    logger.info("created admin user email=%s", settings.ADMIN_EMAIL)
    if settings.ADMIN_PASSWORD == DEFAULT_ADMIN_PASSWORD:
        logger.warning("admin user uses the default password; set ADMIN_PASSWORD")
    return user


class LessonService:
    """Lesson CRUD."""
    def __init__(self, session: Session):
        self.lesson_repo = repositories.LessonRepository(session)

    def list_lessons(self, limit: int, offset: int, **filters) -> schemas.LessonPage:
        rows, total = self.lesson_repo.list(limit, offset, **filters)
        return schemas.LessonPage(
            data=[schemas.LessonOut.model_validate(r) for r in rows], total=total, limit=limit, offset=offset
        )

    def get(self, key: str) -> models.Lesson:
        lesson = self.lesson_repo.get_by_id_or_slug(key)
        if not lesson:
            raise NotFoundError("Lesson not found")
        return lesson

    def create(self, data: schemas.LessonCreate) -> models.Lesson:
        if self.lesson_repo.slug_taken(data.slug):
            raise ConflictError(f"Lesson with slug '{data.slug}' already exists")
        return self.lesson_repo.save(models.Lesson(**data.model_dump()))

    def update(self, lesson_id: str, data: schemas.LessonUpdate) -> models.Lesson:
        lesson = self.lesson_repo.get(lesson_id)
        if not lesson:
            raise NotFoundError("Lesson not found")
        changes = data.model_dump(exclude_unset=True)
        new_slug = changes.get("slug")
        if new_slug and new_slug != lesson.slug and self.lesson_repo.slug_taken(new_slug):
            raise ConflictError(f"Lesson with slug '{new_slug}' already exists")
        for name, value in changes.items():
            setattr(lesson, name, value)
        return self.lesson_repo.save(lesson)


class LessonViewService:
    """Per-user view tracking and per-lesson view statistics."""
    def __init__(self, session: Session):
        self.session = session
        self.lesson_repo = repositories.LessonRepository(session)
        self.view_repo = repositories.LessonViewRepository(session)

    def track(self, user_id: str, lesson_id: str) -> models.LessonView:
        """Record one view; the lesson's `views` becomes the sum of all view counts."""
        lesson = self.lesson_repo.get(lesson_id)
        if not lesson:
            raise NotFoundError("Lesson not found")
        now = utcnow()
        view = self.view_repo.get(user_id, lesson_id)
        if view is None:
            view = models.LessonView(user_id=user_id, lesson_id=lesson_id, viewed_at=now, last_viewed_at=now)
        else:
            view.view_count += 1
            view.last_viewed_at = now
        self.view_repo.add(view)
        self.session.flush()
        lesson.views, _ = self.view_repo.totals(lesson_id)
        self.session.add(lesson)
        self.session.commit()
        self.session.refresh(view)
        return view

    def list_for_user(self, user_id: str, limit: int, offset: int, order_by: str,
                      order: str) -> schemas.LessonViewPage:
        rows, total = self.view_repo.list_for_user(user_id, limit, offset, order_by, order)
        return schemas.LessonViewPage(data=[schemas.LessonViewOut.model_validate(r) for r in rows], total=total)

    def stats(self, lesson_id: str) -> schemas.LessonViewStats:
        if not self.lesson_repo.get(lesson_id):
            raise NotFoundError("Lesson not found")
        total_views, viewers = self.view_repo.totals(lesson_id)
        average = round(total_views / viewers, 2) if viewers else 0.0
        return schemas.LessonViewStats(total_views=total_views, unique_viewers=viewers,
                                       average_views_per_user=average)


class RatingService:
    """One rating per user and lesson."""
    def __init__(self, session: Session):
        self.lesson_repo = repositories.LessonRepository(session)
        self.rating_repo = repositories.RatingRepository(session)

    def _lesson(self, lesson_id: str) -> models.Lesson:
        lesson = self.lesson_repo.get(lesson_id)
        if not lesson:
            raise NotFoundError("Lesson not found")
        return lesson

    def _existing(self, user_id: str, lesson_id: str) -> models.Rating:
        rating = self.rating_repo.get(user_id, lesson_id)
        if rating is None:
            raise NotFoundError("Rating not found")
        return rating

    def create(self, user_id: str, lesson_id: str, data: schemas.RatingIn) -> models.Rating:
        self._lesson(lesson_id)
        if self.rating_repo.get(user_id, lesson_id):
            raise ConflictError("You have already rated this lesson")
        return self.rating_repo.save(models.Rating(
            user_id=user_id, lesson_id=lesson_id, rating=data.rating, comment=data.comment
        ))

    def update(self, user_id: str, lesson_id: str, data: schemas.RatingIn) -> models.Rating:
        rating = self._existing(user_id, lesson_id)
        rating.rating = data.rating
        if data.comment is not None:
            rating.comment = data.comment
        return self.rating_repo.save(rating)

    def delete(self, user_id: str, lesson_id: str) -> None:
        self.rating_repo.delete(self._existing(user_id, lesson_id))

    def list_for_lesson(self, lesson_id: str) -> List[schemas.RatingOut]:
        self._lesson(lesson_id)
        return [schemas.RatingOut.model_validate(r) for r in self.rating_repo.list_for_lesson(lesson_id)]

    def get_mine(self, user_id: str, lesson_id: str) -> Optional[models.Rating]:
        return self.rating_repo.get(user_id, lesson_id)

    def stats(self, lesson_id: str) -> schemas.RatingStats:
        self._lesson(lesson_id)
        distribution = {score: 0 for score in range(1, 6)}
        for score, count in self.rating_repo.distribution(lesson_id):
            distribution[int(score)] = int(count)
        total = sum(distribution.values())
        average = round(sum(s * c for s, c in distribution.items()) / total, 1) if total else 0.0
        return schemas.RatingStats(average_rating=average, total_ratings=total, rating_distribution=distribution)


CHILD_COLLECTIONS = {
    "instructions": models.PracticeInstruction,
    "hints": models.PracticeHint,
    "expected_commands": models.PracticeExpectedCommand,
    "validation_rules": models.PracticeValidationRule,
    "tags": models.PracticeTag,
}
PRACTICE_SCALARS = (
    "id", "lesson_id", "title", "scenario", "difficulty", "estimated_time", "is_active", "order",
    "version", "views", "completions", "goal_repository_state", "created_at", "updated_at",
)


def practice_to_out(practice: models.Practice, include_relations: bool = True) -> schemas.PracticeOut:
    """Build the response DTO; must run while `practice` is bound to its session."""
    fields = {name: getattr(practice, name) for name in PRACTICE_SCALARS}
    if include_relations:
        fields["lesson"] = practice.lesson
        for name in CHILD_COLLECTIONS:
            items = list(getattr(practice, name))
            if name != "tags":
                items.sort(key=lambda item: item.order)
            fields[name] = items
    return schemas.PracticeOut.model_validate(fields)


def _goal_to_json(state: Optional[schemas.RepositoryState]) -> Optional[Dict[str, Any]]:
    return state.model_dump(mode="json", by_alias=True) if state is not None else None


class PracticeService:
    """Practices and their child collections."""
    def __init__(self, session: Session):
        self.session = session
        self.practice_repo = repositories.PracticeRepository(session)
        self.lesson_repo = repositories.LessonRepository(session)

    def list_practices(self, limit: int, offset: int, include_relations: bool = True,
                       **filters) -> schemas.PracticePage:
        rows, total = self.practice_repo.list(limit, offset, **filters)
        return schemas.PracticePage(
            data=[practice_to_out(p, include_relations) for p in rows], total=total, limit=limit, offset=offset
        )

    def get(self, practice_id: str) -> models.Practice:
        practice = self.practice_repo.get(practice_id)
        if not practice:
            raise NotFoundError("Practice not found")
        return practice

    def create(self, data: schemas.PracticeCreate) -> models.Practice:
        """Create the practice and all its children in one transaction."""
        if not self.lesson_repo.get(data.lesson_id):
            raise NotFoundError("Lesson not found")
        scalars = data.model_dump(exclude=set(CHILD_COLLECTIONS) | {"goal_repository_state"})
        practice = models.Practice(**scalars, goal_repository_state=_goal_to_json(data.goal_repository_state))
        for name, model in CHILD_COLLECTIONS.items():
            setattr(practice, name, [model(**item.model_dump()) for item in getattr(data, name)])
        return self.practice_repo.save(practice)

    def update(self, practice_id: str, data: schemas.PracticeUpdate) -> models.Practice:
        """Update provided fields; a provided child list replaces the stored one."""
        practice = self.get(practice_id)
        provided = data.model_fields_set
        if "lesson_id" in provided and data.lesson_id and not self.lesson_repo.get(data.lesson_id):
            raise NotFoundError("Lesson not found")
        for name in provided:
            value = getattr(data, name)
            if name in CHILD_COLLECTIONS:
                if value is not None:
                    model = CHILD_COLLECTIONS[name]
                    setattr(practice, name, [model(**item.model_dump()) for item in value])
            elif name == "goal_repository_state":
                practice.goal_repository_state = _goal_to_json(value)
            elif value is not None:
                setattr(practice, name, value)
        return self.practice_repo.save(practice)

    def delete(self, practice_id: str) -> None:
        practice = self.get(practice_id)
        practice.deleted_at = utcnow()
        self.practice_repo.save(practice)

    def _increment(self, practice_id: str, column: str) -> None:
        self.get(practice_id)
        counter = getattr(models.Practice, column)
        self.session.execute(
            update(models.Practice).where(models.Practice.id == practice_id).values({column: counter + 1})
        )
        self.session.commit()

    def record_view(self, practice_id: str) -> None:
        self._increment(practice_id, "views")

    def record_completion(self, practice_id: str) -> None:
        self._increment(practice_id, "completions")


def _validation_failure(feedback: str, message: Optional[str] = None) -> schemas.PracticeValidationResponse:
    return schemas.PracticeValidationResponse(
        success=False, is_correct=False, score=0, feedback=feedback, differences=[], message=message or feedback
    )


class GitPracticeService:
    """Grade a learner's repository state against a practice goal."""
    def __init__(self, session: Session):
        self.practice_repo = repositories.PracticeRepository(session)

    def validate_practice(self, practice_id: str,
                          user_state: schemas.RepositoryState) -> schemas.PracticeValidationResponse:
        try:
            practice = self.practice_repo.get(practice_id)
            if practice is None:
                return _validation_failure("Practice not found")
            if not practice.goal_repository_state:
                return _validation_failure("No goal repository state defined for this practice")
            goal = schemas.RepositoryState.model_validate(practice.goal_repository_state)
            differences = compare_repository_states(goal, user_state)
            score = calculate_score(differences)
        except Exception:
            logger.exception("practice validation failed for %s", practice_id)
            return _validation_failure(
                "An error occurred while validating your practice", "Validation failed due to an internal error"
            )

        if not differences:
            feedback = "Perfect! Your repository state matches the goal exactly."
            message = "Congratulations! You have successfully completed the practice."
        else:
            feedback = f"Found {len(differences)} difference(s) between your repository state and the goal."
            message = "Your repository state is close but not exactly matching the goal."
        logger.info("practice_validated practice=%s score=%s differences=%d", practice_id, score, len(differences))
        return schemas.PracticeValidationResponse(
            success=True, is_correct=not differences, score=score, feedback=feedback,
            differences=differences, message=message,
        )
