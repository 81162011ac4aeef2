from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, Field, model_validator

RoleName = Literal["VIEWER", "MEMBER", "ADMIN", "OWNER"]
TicketType = Literal["ISSUE", "FIX", "HOTFIX", "PROBLEM"]
TicketPriority = Literal["LOWEST", "LOW", "MEDIUM", "HIGH", "HIGHEST"]
TicketStatus = Literal["TODO", "IN_PROGRESS", "IN_REVIEW", "DONE"]
SprintStatus = Literal["PLANNED", "ACTIVE", "COMPLETED"]

_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


def _as_utc(value: datetime) -> datetime:
  if value.tzinfo is None:
    return value.replace(tzinfo=timezone.utc)
  return value


# SQLite hands back naive datetimes for timezone-aware columns.
UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class UserOut(BaseModel):
  id: str
  email: str
  name: str
  avatarUrl: str | None = None


class BoardCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=100)
  prefix: str = Field(min_length=1, max_length=5, pattern=r"^[A-Z]+$")
  description: str | None = Field(default=None, max_length=500)
  color: str = Field(default="#FFB7C5", pattern=_COLOR_PATTERN)


class BoardUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=100)
  description: str | None = Field(default=None, max_length=500)
  color: str | None = Field(default=None, pattern=_COLOR_PATTERN)


class MemberOut(BaseModel):
  userId: str
  email: str
  name: str
  avatarUrl: str | None = None
  role: RoleName
  createdAt: UtcDatetime


class MemberAddIn(BaseModel):
  userId: str | None = None
  email: str | None = Field(default=None, min_length=3, max_length=320)
  role: RoleName = "MEMBER"

  @model_validator(mode="after")
  def _one_reference(self) -> "MemberAddIn":
    if not self.userId and not self.email:
      raise ValueError("userId or email is required")
    return self


class MemberRoleIn(BaseModel):
  role: RoleName


class SprintProgressOut(BaseModel):
  total: int = 0
  todo: int = 0
  inProgress: int = 0
  inReview: int = 0
  completed: int = 0
  totalPoints: int = 0
  completedPoints: int = 0
  completionPercentage: int = 0
  pointsCompletionPercentage: int = 0


class SprintOut(BaseModel):
  id: str
  boardId: str
  number: int
  name: str
  goal: str | None = None
  startDate: UtcDatetime
  endDate: UtcDatetime
  status: SprintStatus
  progress: SprintProgressOut = Field(default_factory=SprintProgressOut)
  createdAt: UtcDatetime
  updatedAt: UtcDatetime


class SprintCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=100)
  goal: str | None = Field(default=None, max_length=500)
  startDate: UtcDatetime
  endDate: UtcDatetime
  autoStart: bool = True

  @model_validator(mode="after")
  def _end_after_start(self) -> "SprintCreateIn":
    if self.endDate <= self.startDate:
      raise ValueError("End date must be after start date")
    return self


class SprintUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=100)
  goal: str | None = Field(default=None, max_length=500)
  startDate: UtcDatetime | None = None
  endDate: UtcDatetime | None = None


class SprintCompleteIn(BaseModel):
  moveUnfinishedToBacklog: bool = False


class LabelOut(BaseModel):
  id: str
  boardId: str
  name: str
  color: str | None = None
  createdAt: UtcDatetime


class LabelCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=50)
  color: str | None = Field(default=None, pattern=_COLOR_PATTERN)


class LabelUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=50)
  color: str | None = Field(default=None, pattern=_COLOR_PATTERN)


class CommentCreateIn(BaseModel):
  body: str = Field(min_length=1, max_length=20000)


class CommentOut(BaseModel):
  id: str
  ticketId: str
  authorId: str
  authorName: str
  body: str
  createdAt: UtcDatetime
  updatedAt: UtcDatetime


class TicketOut(BaseModel):
  id: str
  boardId: str
  key: str
  title: str
  description: str | None = None
  type: TicketType
  priority: TicketPriority
  status: TicketStatus
  storyPoints: int | None = None
  creatorId: str
  assigneeId: str | None = None
  parentId: str | None = None
  backlogId: str | None = None
  sprintId: str | None = None
  orderIndex: int
  assigneeIds: list[str] = Field(default_factory=list)
  reviewerIds: list[str] = Field(default_factory=list)
  labelIds: list[str] = Field(default_factory=list)
  subTicketCount: int = 0
  commentCount: int = 0
  createdAt: UtcDatetime
  updatedAt: UtcDatetime


class TicketDetailOut(TicketOut):
  subTickets: list[TicketOut] = Field(default_factory=list)
  comments: list[CommentOut] = Field(default_factory=list)
  labels: list[LabelOut] = Field(default_factory=list)


class TicketCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=200)
  description: str | None = None
  type: TicketType = "ISSUE"
  priority: TicketPriority = "MEDIUM"
  status: TicketStatus = "TODO"
  storyPoints: int | None = Field(default=None, ge=0, le=100)
  assigneeId: str | None = None
  assigneeIds: list[str] = Field(default_factory=list)
  reviewerIds: list[str] = Field(default_factory=list)
  labelIds: list[str] = Field(default_factory=list)
  sprintId: str | None = None
  parentId: str | None = None


class TicketUpdateIn(BaseModel):
  # Nullable fields are only applied when present in the request body.
  title: str | None = Field(default=None, min_length=1, max_length=200)
  description: str | None = None
  type: TicketType | None = None
  priority: TicketPriority | None = None
  status: TicketStatus | None = None
  storyPoints: int | None = Field(default=None, ge=0, le=100)
  assigneeId: str | None = None
  parentId: str | None = None
  assigneeIds: list[str] | None = None
  reviewerIds: list[str] | None = None
  labelIds: list[str] | None = None


class TicketMoveIn(BaseModel):
  sprintId: str | None = None
  status: TicketStatus | None = None


class TicketOrderIn(BaseModel):
  orderIndex: int


class SubTicketCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=200)
  description: str | None = None
  type: TicketType = "ISSUE"
  priority: TicketPriority = "MEDIUM"
  assigneeId: str | None = None


class UserRefIn(BaseModel):
  userId: str


class LabelRefIn(BaseModel):
  labelId: str


class TicketRefIn(BaseModel):
  ticketId: str


class SprintDetailOut(SprintOut):
  tickets: list[TicketOut] = Field(default_factory=list)


class BacklogOut(BaseModel):
  id: str
  boardId: str
  ticketCount: int
  tickets: list[TicketOut] = Field(default_factory=list)


class BoardOut(BaseModel):
  id: str
  name: str
  prefix: str
  description: str | None = None
  color: str
  ownerId: str
  memberCount: int = 0
  ticketCount: int = 0
  sprintCount: int = 0
  createdAt: UtcDatetime
  updatedAt: UtcDatetime


class BoardDetailOut(BoardOut):
  backlogId: str | None = None
  members: list[MemberOut] = Field(default_factory=list)
  sprints: list[SprintOut] = Field(default_factory=list)


class AuditOut(BaseModel):
  id: str
  boardId: str | None
  ticketId: str | None
  actorId: str | None
  eventType: str
  entityType: str
  entityId: str | None
  payload: dict[str, Any]
  createdAt: UtcDatetime
