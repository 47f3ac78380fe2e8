"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Every schema speaks camelCase on the wire
(`practiceId`, `userRepositoryState`, ...) while Python code uses the
snake_case attribute names; both spellings are accepted on input.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator
from pydantic.alias_generators import to_camel

SLUG_RE = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"

OAuthProviderName = Literal["GOOGLE", "GITHUB", "FACEBOOK"]
UserRole = Literal["USER", "ADMIN"]
UserStatus = Literal["active", "inactive"]
LessonStatus = Literal["DRAFT", "PUBLISHED", "ARCHIVED"]
ValidationRuleType = Literal["min_commands", "required_commands", "expected_graph_state", "custom"]


class CamelModel(BaseModel):
    """Base model: camelCase aliases, populated by name or alias, readable from ORM rows."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- auth -----------------------------------------------------------------

class RegisterIn(CamelModel):
    """Payload for the registration endpoint."""
    email: EmailStr
    password: str = Field(min_length=6)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.lower()


class LoginIn(CamelModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        return v.strip().lower()


class RefreshIn(CamelModel):
    refresh_token: str = Field(min_length=1)


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str


class UserOut(CamelModel):
    """Public view of a user."""
    id: str
    email: str
    role: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class LoginOut(CamelModel):
    user: UserOut
    access_token: str
    refresh_token: str


class OAuthLoginOut(LoginOut):
    is_new_user: bool


class UpdateProfileIn(CamelModel):
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    avatar: Optional[str] = None


class OAuthProfileIn(CamelModel):
    """Profile returned by an identity provider after it verified the user."""
    provider: OAuthProviderName
    provider_id: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class SessionOut(CamelModel):
    id: str
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    session_type: str
    oauth_provider: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    is_active: bool


class SessionListOut(CamelModel):
    sessions: List[SessionOut]
    total: int


class UserStatsOut(CamelModel):
    total_sessions: int
    active_sessions: int
    oauth_sessions: int
    last_login_at: Optional[datetime] = None


# --- admin ------------------------------------------------------------------

class AdminUserOut(UserStatsOut):
    """One row of the admin user table."""
    id: str
    name: str
    email: str
    role: str
    status: UserStatus
    joined_at: datetime


class AdminUserPage(CamelModel):
    users: List[AdminUserOut]
    total: int
    page: int
    limit: int
    total_pages: int


class UserStatusIn(CamelModel):
    is_active: bool


# --- git state --------------------------------------------------------------

class Person(CamelModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    date: datetime


class Commit(CamelModel):
    id: str = Field(min_length=1)
    type: Literal["BLOB", "TREE", "COMMIT"]
    tree: Optional[str] = None
    parents: List[str]
    author: Person
    committer: Person
    message: str = Field(min_length=1)
    branch: str = Field(min_length=1)


class Branch(CamelModel):
    name: str = Field(min_length=1)
    commit_id: str


class Tag(CamelModel):
    name: str = Field(min_length=1)
    commit_id: str


class Head(CamelModel):
    type: Literal["branch", "commit"]
    ref: str = Field(min_length=1)
    commit_id: Optional[str] = None


class RepositoryState(CamelModel):
    """Commits, branches and tags of a simulated repository plus HEAD."""
    commits: List[Commit]
    branches: List[Branch]
    tags: List[Tag]
    head: Optional[Head] = None


class GitCommandRequest(CamelModel):
    command: str
    repository_state: Optional[RepositoryState] = None


class GitCommandResponse(CamelModel):
    success: bool
    output: str
    repository_state: Optional[RepositoryState] = None


class PracticeValidationRequest(CamelModel):
    practice_id: str = Field(min_length=1)
    user_repository_state: RepositoryState


class RepositoryDifference(CamelModel):
    type: Literal["commit", "branch", "tag", "head"]
    field: str
    expected: Any = None
    actual: Any = None
    description: str


class PracticeValidationResponse(CamelModel):
    success: bool
    is_correct: bool
    score: float
    feedback: str
    differences: List[RepositoryDifference]
    message: str


# --- practice ---------------------------------------------------------------

class InstructionIn(CamelModel):
    content: str = Field(min_length=1)
    order: int = Field(default=0, ge=0)


class HintIn(CamelModel):
    content: str = Field(min_length=1)
    order: int = Field(default=0, ge=0)


class ExpectedCommandIn(CamelModel):
    command: str = Field(min_length=1)
    order: int = Field(default=0, ge=0)
    is_required: bool = True


class ValidationRuleIn(CamelModel):
    type: ValidationRuleType
    value: str
    message: Optional[str] = None
    order: int = Field(default=0, ge=0)


class TagIn(CamelModel):
    name: str = Field(min_length=1)
    color: Optional[str] = None


class InstructionOut(InstructionIn):
    id: str


class HintOut(HintIn):
    id: str


class ExpectedCommandOut(ExpectedCommandIn):
    id: str


class ValidationRuleOut(ValidationRuleIn):
    id: str


class TagOut(TagIn):
    id: str


class PracticeCreate(CamelModel):
    lesson_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    scenario: str = Field(min_length=1)
    difficulty: int = Field(default=1, ge=1, le=5)
    estimated_time: int = Field(default=0, ge=0)
    is_active: bool = True
    order: int = Field(default=0, ge=0)
    version: int = Field(default=1, ge=1)
    instructions: List[InstructionIn] = []
    hints: List[HintIn] = []
    expected_commands: List[ExpectedCommandIn] = []
    validation_rules: List[ValidationRuleIn] = []
    tags: List[TagIn] = []
    goal_repository_state: Optional[RepositoryState] = None


class PracticeUpdate(CamelModel):
    """Partial update; a supplied child list replaces the whole collection."""
    lesson_id: Optional[str] = None
    title: Optional[str] = Field(default=None, min_length=1)
    scenario: Optional[str] = Field(default=None, min_length=1)
    difficulty: Optional[int] = Field(default=None, ge=1, le=5)
    estimated_time: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=0)
    version: Optional[int] = Field(default=None, ge=1)
    instructions: Optional[List[InstructionIn]] = None
    hints: Optional[List[HintIn]] = None
    expected_commands: Optional[List[ExpectedCommandIn]] = None
    validation_rules: Optional[List[ValidationRuleIn]] = None
    tags: Optional[List[TagIn]] = None
    goal_repository_state: Optional[RepositoryState] = None


class LessonSummary(CamelModel):
    id: str
    title: str
    slug: str


class PracticeOut(CamelModel):
    id: str
    lesson_id: str
    title: str
    scenario: str
    difficulty: int
    estimated_time: int
    is_active: bool
    order: int
    version: int
    views: int
    completions: int
    goal_repository_state: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime
    lesson: Optional[LessonSummary] = None
    instructions: List[InstructionOut] = []
    hints: List[HintOut] = []
    expected_commands: List[ExpectedCommandOut] = []
    validation_rules: List[ValidationRuleOut] = []
    tags: List[TagOut] = []


class PracticePage(CamelModel):
    data: List[PracticeOut]
    total: int
    limit: int
    offset: int


# --- lessons, views and ratings -----------------------------------------------

class LessonCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    slug: str = Field(pattern=SLUG_RE, max_length=200)
    description: Optional[str] = None
    practice: Optional[str] = None
    status: LessonStatus = "PUBLISHED"


class LessonUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1)
    slug: Optional[str] = Field(default=None, pattern=SLUG_RE, max_length=200)
    description: Optional[str] = None
    practice: Optional[str] = None
    status: Optional[LessonStatus] = None


class LessonOut(CamelModel):
    id: str
    title: str
    slug: str
    description: Optional[str] = None
    content: str
    practice: Optional[str] = None
    views: int
    status: str
    created_at: datetime
    updated_at: datetime


class LessonPage(CamelModel):
    data: List[LessonOut]
    total: int
    limit: int
    offset: int


class TrackLessonViewIn(CamelModel):
    lesson_id: str = Field(min_length=1)


class LessonViewOut(CamelModel):
    id: str
    user_id: str
    lesson_id: str
    viewed_at: datetime
    view_count: int
    last_viewed_at: datetime


class LessonViewPage(CamelModel):
    data: List[LessonViewOut]
    total: int


class LessonViewStats(CamelModel):
    total_views: int
    unique_viewers: int
    average_views_per_user: float


class RatingIn(CamelModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=1000)


class RatingUserOut(CamelModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None


class RatingOut(CamelModel):
    id: str
    user_id: str
    lesson_id: str
    rating: int
    comment: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[RatingUserOut] = None


class RatingStats(CamelModel):
    average_rating: float
    total_ratings: int
    rating_distribution: Dict[int, int]


class ExtractedMetadata(CamelModel):
    source: str
    type: Literal["pdf", "docx", "url"]
    word_count: int
    extracted_at: datetime


class ExtractUrlIn(CamelModel):
    url: HttpUrl


class ExtractedContent(CamelModel):
    title: str
    content: str
    metadata: ExtractedMetadata
