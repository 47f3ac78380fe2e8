"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
sessions, OAuth links, lessons, lesson views, ratings, practices).
Repositories return SQLModel objects and perform commits/refreshes where
appropriate. Soft-deleted rows (`deleted_at` set) are never returned.
"""

from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlmodel import Session, select

from . import models
from .models import utcnow


def _count(session: Session, stmt) -> int:
    return session.exec(select(func.count()).select_from(stmt.subquery())).one()


class UserRepository:
    """CRUD operations for `User` objects."""
    ORDER_COLUMNS = {
        "createdAt": models.User.created_at,
        "email": models.User.email,
        "firstName": models.User.first_name,
        "lastName": models.User.last_name,
    }

    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def save(self, user: models.User) -> models.User:
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email, models.User.deleted_at.is_(None))
        return self.session.exec(stmt).first()

    def get(self, user_id: str) -> Optional[models.User]:
        """Get a `User` by primary key."""
        user = self.session.get(models.User, user_id)
        if user is None or user.deleted_at is not None:
            return None
        return user

    def list(self, limit: int, offset: int, search: Optional[str] = None, role: Optional[str] = None,
             is_active: Optional[bool] = None, order_by: str = "createdAt",
             order: str = "DESC") -> Tuple[List[models.User], int]:
        """Filtered page of users with the unpaged total."""
        stmt = select(models.User).where(models.User.deleted_at.is_(None))
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(
                models.User.email.ilike(like),
                models.User.first_name.ilike(like),
                models.User.last_name.ilike(like),
            ))
        if role:
            stmt = stmt.where(models.User.role == role)
        if is_active is not None:
            stmt = stmt.where(models.User.is_active == is_active)
        total = _count(self.session, stmt)
        column = self.ORDER_COLUMNS.get(order_by, models.User.created_at)
        column = column.asc() if order.upper() == "ASC" else column.desc()
        rows = self.session.exec(stmt.order_by(column).offset(offset).limit(limit)).all()
        return rows, total

    def delete(self, user: models.User):
        """Remove the row; sessions, views and ratings go with it through the foreign keys."""
        self.session.delete(user)
        self.session.commit()


class SessionRepository:
    """Refresh-token sessions."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user_session: models.UserSession) -> models.UserSession:
        self.session.add(user_session)
        self.session.commit()
        self.session.refresh(user_session)
        return user_session

    def list_open_for_user(self, user_id: str, session_type: Optional[str] = None) -> List[models.UserSession]:
        """Non-revoked sessions of a user, newest first (expired ones included)."""
        stmt = select(models.UserSession).where(
            models.UserSession.user_id == user_id,
            models.UserSession.revoked_at.is_(None),
            models.UserSession.deleted_at.is_(None),
        )
        if session_type:
            stmt = stmt.where(models.UserSession.session_type == session_type)
        stmt = stmt.order_by(models.UserSession.created_at.desc())
        return self.session.exec(stmt).all()

    def revoke(self, user_session: models.UserSession) -> models.UserSession:
        user_session.revoked_at = utcnow()
        self.session.add(user_session)
        self.session.commit()
        return user_session

    def list_for_user(self, user_id: str) -> List[models.UserSession]:
        """Every session of a user, revoked ones included, newest first."""
        stmt = select(models.UserSession).where(
            models.UserSession.user_id == user_id,
            models.UserSession.deleted_at.is_(None),
        ).order_by(models.UserSession.created_at.desc())
        return self.session.exec(stmt).all()


class OAuthProviderRepository:
    """Links between users and external identity providers."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_provider_id(self, provider: str, provider_id: str) -> Optional[models.OAuthProvider]:
        stmt = select(models.OAuthProvider).where(
            models.OAuthProvider.provider == provider,
            models.OAuthProvider.provider_id == provider_id,
        )
        return self.session.exec(stmt).first()

    def get_for_user(self, user_id: str, provider: str) -> Optional[models.OAuthProvider]:
        stmt = select(models.OAuthProvider).where(
            models.OAuthProvider.user_id == user_id,
            models.OAuthProvider.provider == provider,
        )
        return self.session.exec(stmt).first()

    def list_for_user(self, user_id: str) -> List[models.OAuthProvider]:
        stmt = select(models.OAuthProvider).where(models.OAuthProvider.user_id == user_id)
        return self.session.exec(stmt).all()

    def save(self, link: models.OAuthProvider) -> models.OAuthProvider:
        self.session.add(link)
        self.session.commit()
        self.session.refresh(link)
        return link

    def delete(self, link: models.OAuthProvider):
        self.session.delete(link)
        self.session.commit()


class LessonRepository:
    """Lessons, addressable by id or slug."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, lesson: models.Lesson) -> models.Lesson:
        self.session.add(lesson)
        self.session.commit()
        self.session.refresh(lesson)
        return lesson

    def get(self, lesson_id: str) -> Optional[models.Lesson]:
        lesson = self.session.get(models.Lesson, lesson_id)
        if lesson is None or lesson.deleted_at is not None:
            return None
        return lesson

    def get_by_slug(self, slug: str) -> Optional[models.Lesson]:
        stmt = select(models.Lesson).where(models.Lesson.slug == slug, models.Lesson.deleted_at.is_(None))
        return self.session.exec(stmt).first()

    def get_by_id_or_slug(self, key: str) -> Optional[models.Lesson]:
        return self.get(key) or self.get_by_slug(key)

    def slug_taken(self, slug: str) -> bool:
        """True if any lesson row (soft-deleted included) uses `slug`."""
        stmt = select(models.Lesson.id).where(models.Lesson.slug == slug)
        return self.session.exec(stmt).first() is not None

    def list(self, limit: int, offset: int, lesson_id: Optional[str] = None, slug: Optional[str] = None,
             status: Optional[str] = None, q: Optional[str] = None) -> Tuple[List[models.Lesson], int]:
        """Filtered page of lessons, newest first, with the unpaged total."""
        stmt = select(models.Lesson).where(models.Lesson.deleted_at.is_(None))
        if lesson_id:
            stmt = stmt.where(models.Lesson.id == lesson_id)
        if slug:
            stmt = stmt.where(models.Lesson.slug == slug)
        if status:
            stmt = stmt.where(models.Lesson.status == status)
        if q:
            like = f"%{q}%"
            stmt = stmt.where(or_(models.Lesson.title.ilike(like), models.Lesson.description.ilike(like)))
        total = _count(self.session, stmt)
        rows = self.session.exec(
            stmt.order_by(models.Lesson.created_at.desc()).offset(offset).limit(limit)
        ).all()
        return rows, total


class LessonViewRepository:
    """Per-user lesson view counters."""
    ORDER_COLUMNS = {
        "viewedAt": models.LessonView.viewed_at,
        "lastViewedAt": models.LessonView.last_viewed_at,
        "viewCount": models.LessonView.view_count,
    }

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str, lesson_id: str) -> Optional[models.LessonView]:
        stmt = select(models.LessonView).where(
            models.LessonView.user_id == user_id,
            models.LessonView.lesson_id == lesson_id,
        )
        return self.session.exec(stmt).first()

    def add(self, view: models.LessonView):
        self.session.add(view)

    def list_for_user(self, user_id: str, limit: int, offset: int, order_by: str = "lastViewedAt",
                      order: str = "DESC") -> Tuple[List[models.LessonView], int]:
        stmt = select(models.LessonView).where(models.LessonView.user_id == user_id)
        total = _count(self.session, stmt)
        column = self.ORDER_COLUMNS.get(order_by, models.LessonView.last_viewed_at)
        column = column.asc() if order.upper() == "ASC" else column.desc()
        rows = self.session.exec(stmt.order_by(column).offset(offset).limit(limit)).all()
        return rows, total

    def totals(self, lesson_id: str) -> Tuple[int, int]:
        """(sum of view counts, number of distinct viewers) for a lesson."""
        stmt = select(
            func.coalesce(func.sum(models.LessonView.view_count), 0),
            func.count(models.LessonView.id),
        ).where(models.LessonView.lesson_id == lesson_id)
        total_views, viewers = self.session.exec(stmt).one()
        return int(total_views), int(viewers)


class RatingRepository:
    """Lesson ratings, one per user and lesson."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str, lesson_id: str) -> Optional[models.Rating]:
        stmt = select(models.Rating).where(
            models.Rating.user_id == user_id,
            models.Rating.lesson_id == lesson_id,
            models.Rating.deleted_at.is_(None),
        )
        return self.session.exec(stmt).first()

    def save(self, rating: models.Rating) -> models.Rating:
        self.session.add(rating)
        self.session.commit()
        self.session.refresh(rating)
        return rating

    def delete(self, rating: models.Rating):
        self.session.delete(rating)
        self.session.commit()

    def list_for_lesson(self, lesson_id: str) -> List[models.Rating]:
        stmt = (
            select(models.Rating)
            .where(models.Rating.lesson_id == lesson_id, models.Rating.deleted_at.is_(None))
            .order_by(models.Rating.created_at.desc())
        )
        return self.session.exec(stmt).all()

    def distribution(self, lesson_id: str) -> List[Tuple[int, int]]:
        """(rating, count) pairs for a lesson."""
        stmt = (
            select(models.Rating.rating, func.count(models.Rating.id))
            .where(models.Rating.lesson_id == lesson_id, models.Rating.deleted_at.is_(None))
            .group_by(models.Rating.rating)
        )
        return self.session.exec(stmt).all()


class PracticeRepository:
    """Practices together with their child collections."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, practice_id: str) -> Optional[models.Practice]:
        practice = self.session.get(models.Practice, practice_id)
        if practice is None or practice.deleted_at is not None:
            return None
        return practice

    def save(self, practice: models.Practice) -> models.Practice:
        """Persist a practice and its attached children in one transaction."""
        self.session.add(practice)
        self.session.commit()
        self.session.refresh(practice)
        return practice

    def list(self, limit: int, offset: int, lesson_id: Optional[str] = None, lesson_slug: Optional[str] = None,
             is_active: Optional[bool] = None, q: Optional[str] = None, difficulty: Optional[int] = None,
             tag: Optional[str] = None) -> Tuple[List[models.Practice], int]:
        """Filtered page ordered by `order` then `created_at`, with the unpaged total."""
        stmt = (
            select(models.Practice)
            .join(models.Lesson, models.Lesson.id == models.Practice.lesson_id)
            .where(models.Practice.deleted_at.is_(None))
        )
        if lesson_id:
            stmt = stmt.where(models.Practice.lesson_id == lesson_id)
        if lesson_slug:
            stmt = stmt.where(models.Lesson.slug == lesson_slug)
        if is_active is not None:
            stmt = stmt.where(models.Practice.is_active == is_active)
        if difficulty is not None:
            stmt = stmt.where(models.Practice.difficulty == difficulty)
        if q:
            like = f"%{q}%"
            stmt = stmt.where(or_(
                models.Practice.title.ilike(like),
                models.Practice.scenario.ilike(like),
                models.Lesson.title.ilike(like),
            ))
        if tag:
            tagged = select(models.PracticeTag.practice_id).where(models.PracticeTag.name == tag)
            stmt = stmt.where(models.Practice.id.in_(tagged))
        total = _count(self.session, stmt)
        rows = self.session.exec(
            stmt.order_by(models.Practice.order, models.Practice.created_at).offset(offset).limit(limit)
        ).all()
        return rows, total
