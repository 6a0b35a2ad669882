from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class CloudModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class Href(CloudModel):
    href: str = ""


class Account(CloudModel):
    uuid: str | None = None
    account_id: str | None = None
    username: str | None = None
    nickname: str | None = None
    display_name: str | None = None


class RepositoryLinks(CloudModel):
    html: Href | None = None
    clone: list[dict[str, str]] = Field(default_factory=list)


class Repository(CloudModel):
    slug: str
    uuid: str | None = None
    name: str | None = None
    full_name: str | None = None
    scm: str | None = None
    is_private: bool | None = None
    description: str | None = None
    mainbranch: dict[str, Any] | None = None
    links: RepositoryLinks | None = None


class Named(CloudModel):
    name: str = ""


class PipelineRef(CloudModel):
    type: str | None = None
    ref_type: str | None = None
    ref_name: str | None = None


class PipelineState(CloudModel):
    name: str | None = None
    result: Named | None = None
    stage: Named | None = None


class Pipeline(CloudModel):
    uuid: str
    build_number: int | None = None
    state: PipelineState | None = None
    target: PipelineRef | None = None
    created_on: str | None = None
    completed_on: str | None = None


class PipelineStep(CloudModel):
    uuid: str
    name: str | None = None
    state: PipelineState | None = None


class CommitStatus(CloudModel):
    key: str
    state: str
    name: str | None = None
    url: str | None = None
    description: str | None = None


class BranchTarget(CloudModel):
    hash: str | None = None
    type: str | None = None


class Branch(CloudModel):
    name: str
    target: BranchTarget | None = None
    default: bool = False


class Endpoint(CloudModel):
    branch: Named | None = None
    commit: dict[str, Any] | None = None
    repository: dict[str, Any] | None = None


class PullRequest(CloudModel):
    id: int
    title: str = ""
    state: str | None = None
    description: str | None = None
    author: Account | None = None
    source: Endpoint | None = None
    destination: Endpoint | None = None
    reviewers: list[Account] = Field(default_factory=list)
    close_source_branch: bool | None = None
    created_on: str | None = None
    updated_on: str | None = None


class Content(CloudModel):
    raw: str = ""
    markup: str | None = None
    html: str | None = None


class Issue(CloudModel):
    id: int
    title: str = ""
    state: str | None = None
    kind: str | None = None
    priority: str | None = None
    content: Content | None = None
    reporter: Account | None = None
    assignee: Account | None = None
    milestone: Named | None = None
    component: Named | None = None
    version: Named | None = None
    created_on: str | None = None
    updated_on: str | None = None


class IssueComment(CloudModel):
    id: int
    content: Content | None = None
    user: Account | None = None
    created_on: str | None = None
    updated_on: str | None = None


class IssueAttachment(CloudModel):
    name: str
    links: dict[str, Href] = Field(default_factory=dict)


class PipelineVariable(CloudModel):
    uuid: str | None = None
    key: str
    value: str | None = None
    secured: bool = False


class DeploymentEnvironment(CloudModel):
    uuid: str
    name: str | None = None
    slug: str | None = None
    environment_type: Named | None = None


class Webhook(CloudModel):
    uuid: str | None = None
    description: str = ""
    url: str
    events: list[str] = Field(default_factory=list)
    active: bool = True


T = TypeVar("T")


class CloudPage(BaseModel, Generic[T]):
    values: list[T] = Field(default_factory=list)
    next: str | None = None
    page: int | None = None
    pagelen: int | None = None
    size: int | None = None
