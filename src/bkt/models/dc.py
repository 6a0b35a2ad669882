from enum import StrEnum
from typing import Any, Generic, Literal, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class DCModel(BaseModel):
    # Unknown server fields are kept so read-modify-write round trips are lossless.
    model_config = ConfigDict(extra="allow")


Links = dict[str, list[dict[str, Any]]]


class Project(DCModel):
    key: str
    id: int | None = None
    name: str | None = None
    description: str | None = None
    public: bool | None = None
    type: str | None = None
    links: Links | None = None

    def __str__(self):
        return f"Project key={self.key}"


class Repository(DCModel):
    slug: str
    id: int | None = None
    name: str | None = None
    hierarchyId: str | None = None
    scmId: str | None = None
    state: str | None = None
    statusMessage: str | None = None
    forkable: bool | None = None
    project: Project | None = None
    public: bool | None = None
    archived: bool | None = None
    links: Links | None = None

    def __str__(self):
        key = self.project.key if self.project else "?"
        return f"<Repo: {key}/{self.slug}>"


class User(DCModel):
    id: int | None = None
    name: str
    active: bool | None = None
    displayName: str | None = None
    slug: str | None = None
    type: str | None = None
    emailAddress: str | None = None
    links: Links | None = None


class RefType(StrEnum):
    BRANCH = "BRANCH"
    TAG = "TAG"


class Ref(DCModel):
    id: str
    type: RefType | None = None
    displayId: str | None = None
    latestCommit: str | None = None
    repository: Repository | None = None


class Branch(DCModel):
    id: str
    displayId: str
    type: RefType | None = None
    latestCommit: str | None = None
    isDefault: bool = False


class ParticipantStatus(StrEnum):
    UNAPPROVED = "UNAPPROVED"
    NEEDS_WORK = "NEEDS_WORK"
    APPROVED = "APPROVED"


class ParticipantRole(StrEnum):
    AUTHOR = "AUTHOR"
    REVIEWER = "REVIEWER"
    PARTICIPANT = "PARTICIPANT"


class Participant(DCModel):
    user: User
    status: ParticipantStatus | None = None
    role: ParticipantRole | None = None
    lastReviewedCommit: str | None = None
    approved: bool | None = None


class PullRequestState(StrEnum):
    DECLINED = "DECLINED"
    MERGED = "MERGED"
    OPEN = "OPEN"


class PullRequest(DCModel):
    id: int
    version: int
    title: str = ""
    state: PullRequestState | None = None
    open: bool | None = None
    closed: bool | None = None
    locked: bool | None = None
    description: str | None = None
    fromRef: Ref | None = None
    toRef: Ref | None = None
    author: Participant | None = None
    participants: list[Participant] = Field(default_factory=list)
    reviewers: list[Participant] = Field(default_factory=list)
    createdDate: int | None = None
    updatedDate: int | None = None
    closedDate: int | None = None
    links: Links | None = None


T = TypeVar("T")


class DCPage(BaseModel, Generic[T]):
    """One page of a Data Center paged collection."""

    values: list[T] = Field(default_factory=list)
    size: int = 0
    limit: int = 0
    isLastPage: bool = True
    nextPageStart: int | None = None
    start: int = 0


class Webhook(DCModel):
    id: int | None = None
    name: str
    url: str
    events: list[str] = Field(default_factory=list)
    active: bool = True
    configuration: dict[str, Any] | None = None
    createdDate: int | None = None
    updatedDate: int | None = None

    def __str__(self):
        return f"Webhook(name={self.name}, url={self.url})"


class CommentAnchor(DCModel):
    path: str | None = None
    line: int | None = None
    lineType: Literal["ADDED", "CONTEXT", "REMOVED"] | None = None
    fileType: Literal["FROM", "TO"] | None = None


class Comment(DCModel):
    id: int | None = None
    version: int | None = None
    text: str | None = None
    author: User | None = None
    severity: str | None = None
    state: str | None = None
    parent: Self | None = None
    comments: list[Self] | None = None
    anchor: CommentAnchor | None = None
    createdDate: int | None = None
    updatedDate: int | None = None


class Task(DCModel):
    id: int
    text: str = ""
    state: str | None = None
    author: User | None = None
    createdDate: int | None = None
    updatedDate: int | None = None


class Reaction(DCModel):
    emoji: str
    count: int = 0


class Suggestion(DCModel):
    id: int
    text: str = ""
    applied: bool = False
    commentId: int | None = None


class AutoMergeSettings(DCModel):
    enabled: bool = False
    strategyId: str | None = None
    commitMessage: str | None = None
    closeSourceBranch: bool = False


class ReviewerGroup(DCModel):
    id: int | None = None
    name: str


class RefMatcherType(DCModel):
    id: str
    name: str | None = None


class RefMatcher(DCModel):
    id: str
    displayId: str | None = None
    type: RefMatcherType | None = None


class BranchRestriction(DCModel):
    id: int | None = None
    type: str
    matcher: RefMatcher
    users: list[User] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)
    accessKeys: list[dict[str, Any]] = Field(default_factory=list)


class UserPermission(DCModel):
    user: User
    permission: str


class FileReference(DCModel):
    toString: str | None = None
    name: str | None = None
    parent: str | None = None
    components: list[str] | None = None
    extension: str | None = None


class ChangeStats(DCModel):
    additions: int = 0
    deletions: int = 0


class Change(DCModel):
    type: Literal["ADD", "COPY", "DELETE", "MODIFY", "MOVE", "UNKNOWN"] | None = None
    path: FileReference | None = None
    srcPath: FileReference | None = None
    nodeType: Literal["DIRECTORY", "FILE", "SUBMODULE"] | None = None
    stats: ChangeStats | None = None


class DiffStat(BaseModel):
    files: int = 0
    additions: int = 0
    deletions: int = 0


class CommitStatus(DCModel):
    state: str
    key: str
    name: str | None = None
    url: str | None = None
    description: str | None = None
    dateAdded: int | None = None


class LoggingConfig(DCModel):
    level: str = ""
    async_: bool = Field(default=False, alias="async")

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class ApplicationProperties(DCModel):
    version: str | None = None
    buildNumber: str | None = None
    buildDate: str | None = None
    displayName: str | None = None
