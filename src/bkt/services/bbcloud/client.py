"""Bitbucket Cloud REST binding (API 2.0)."""

import logging
from typing import Any, BinaryIO, TypeVar

from pydantic import BaseModel

from bkt.models.cloud import (
    Account,
    Branch,
    CloudPage,
    CommitStatus,
    Pipeline,
    PipelineStep,
    PullRequest,
    Repository,
    Webhook,
)
from bkt.services.bbcloud.issues import IssuesMixin
from bkt.services.bbcloud.variables import VariablesMixin
from bkt.services.binding import bbql, braced_uuid, escape, query_string, require, require_positive
from bkt.services.http.client import Transport
from bkt.services.http.context import Context
from bkt.services.http.errors import InvalidInputError
from bkt.services.http.fields import UNSET, Maybe, drop_unset
from bkt.services.http.pagination import PageWalker, cloud_decoder, page_size
from bkt.services.http.ratelimit import RateLimit

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.bitbucket.org/2.0"

DEFAULT_PAGE_LEN = 20
MAX_PAGE_LEN = 100
PIPELINE_MAX_PAGE_LEN = 50

M = TypeVar("M", bound=BaseModel)


class CloudClient(IssuesMixin, VariablesMixin):
    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def close(self) -> None:
        self.transport.close()

    def rate_limit(self) -> RateLimit:
        return self.transport.rate_limit_state()

    @staticmethod
    def _workspace_path(workspace: str) -> str:
        require(workspace=workspace)
        return f"/repositories/{escape(workspace.strip())}"

    @staticmethod
    def _repo_path(workspace: str, repo_slug: str) -> str:
        require(workspace=workspace, repo_slug=repo_slug)
        return f"/repositories/{escape(workspace.strip())}/{escape(repo_slug.strip())}"

    def _walk(
        self,
        path: str,
        model: type[M],
        limit: int = 0,
        ctx: Context | None = None,
        *,
        default_len: int = DEFAULT_PAGE_LEN,
        max_len: int = MAX_PAGE_LEN,
        **params: Any,
    ) -> list[M]:
        first = path + query_string({"pagelen": page_size(limit, default_len, max_len), **params})
        walker = PageWalker(self.transport, CloudPage[model], cloud_decoder(self.transport.base_url))
        return walker.walk(first, limit=limit, ctx=ctx)

    # --- core ---

    def ping(self, ctx: Context | None = None) -> Account:
        return self.current_user(ctx=ctx)

    def current_user(self, ctx: Context | None = None) -> Account:
        return self.transport.request("GET", "/user", target=Account, ctx=ctx)

    # --- repositories ---

    def list_repositories(self, workspace: str, limit: int = 0, ctx: Context | None = None) -> list[Repository]:
        return self._walk(self._workspace_path(workspace), Repository, limit, ctx)

    def get_repository(self, workspace: str, repo_slug: str, ctx: Context | None = None) -> Repository:
        return self.transport.request("GET", self._repo_path(workspace, repo_slug), target=Repository, ctx=ctx)

    def create_repository(
        self,
        workspace: str,
        repo_slug: str,
        *,
        name: str = "",
        description: str = "",
        is_private: bool = True,
        project_key: str = "",
        ctx: Context | None = None,
    ) -> Repository:
        body: dict[str, Any] = {"scm": "git", "is_private": is_private}
        if name:
            body["name"] = name
        if description:
            body["description"] = description
        if project_key:
            body["project"] = {"key": project_key}
        return self.transport.request("POST", self._repo_path(workspace, repo_slug), body, target=Repository, ctx=ctx)

    # --- branches ---

    def list_branches(
        self, workspace: str, repo_slug: str, *, filter: str = "", limit: int = 0, ctx: Context | None = None
    ) -> list[Branch]:
        q = f'name ~ "{filter.strip()}"' if filter.strip() else ""
        path = f"{self._repo_path(workspace, repo_slug)}/refs/branches"
        return self._walk(path, Branch, limit, ctx, default_len=30, q=q)

    # --- pipelines ---

    def list_pipelines(self, workspace: str, repo_slug: str, limit: int = 0, ctx: Context | None = None) -> list[Pipeline]:
        path = f"{self._repo_path(workspace, repo_slug)}/pipelines/"
        return self._walk(path, Pipeline, limit, ctx, max_len=PIPELINE_MAX_PAGE_LEN, sort="-created_on")

    def trigger_pipeline(
        self,
        workspace: str,
        repo_slug: str,
        ref: str,
        variables: dict[str, str] | None = None,
        ctx: Context | None = None,
    ) -> Pipeline:
        require(ref=ref)
        body: dict[str, Any] = {
            "target": {"ref_type": "branch", "type": "pipeline_ref_target", "ref_name": ref},
        }
        if variables:
            body["variables"] = [{"key": k, "value": v, "secured": False} for k, v in variables.items()]
        path = f"{self._repo_path(workspace, repo_slug)}/pipelines/"
        return self.transport.request("POST", path, body, target=Pipeline, ctx=ctx)

    def get_pipeline(self, workspace: str, repo_slug: str, uuid: str, ctx: Context | None = None) -> Pipeline:
        require(pipeline_uuid=uuid)
        path = f"{self._repo_path(workspace, repo_slug)}/pipelines/{escape(braced_uuid(uuid))}"
        return self.transport.request("GET", path, target=Pipeline, ctx=ctx)

    def get_pipeline_by_build_number(
        self, workspace: str, repo_slug: str, build_number: int, ctx: Context | None = None
    ) -> Pipeline:
        require_positive(build_number=build_number)
        path = f"{self._repo_path(workspace, repo_slug)}/pipelines/{build_number}"
        return self.transport.request("GET", path, target=Pipeline, ctx=ctx)

    def list_pipeline_steps(
        self, workspace: str, repo_slug: str, pipeline_uuid: str, ctx: Context | None = None
    ) -> list[PipelineStep]:
        require(pipeline_uuid=pipeline_uuid)
        path = f"{self._repo_path(workspace, repo_slug)}/pipelines/{escape(braced_uuid(pipeline_uuid))}/steps/"
        return self._walk(path, PipelineStep, 0, ctx)

    def get_pipeline_log(
        self,
        workspace: str,
        repo_slug: str,
        pipeline_uuid: str,
        step_uuid: str,
        sink: BinaryIO,
        ctx: Context | None = None,
    ) -> None:
        require(pipeline_uuid=pipeline_uuid, step_uuid=step_uuid)
        path = (
            f"{self._repo_path(workspace, repo_slug)}/pipelines/{escape(braced_uuid(pipeline_uuid))}"
            f"/steps/{escape(braced_uuid(step_uuid))}/log"
        )
        request = self.transport.build_request("GET", path, ctx=ctx, accept="application/octet-stream")
        self.transport.do(request, sink)

    def commit_statuses(
        self, workspace: str, repo_slug: str, commit: str, ctx: Context | None = None
    ) -> list[CommitStatus]:
        require(commit=commit)
        path = f"{self._repo_path(workspace, repo_slug)}/commit/{escape(commit.strip())}/statuses"
        return self._walk(path, CommitStatus, 0, ctx)

    # --- pull requests ---

    def _pr_path(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        require_positive(pull_request_id=pr_id)
        return f"{self._repo_path(workspace, repo_slug)}/pullrequests/{pr_id}"

    def list_pull_requests(
        self,
        workspace: str,
        repo_slug: str,
        *,
        state: str = "",
        mine: str = "",
        limit: int = 0,
        ctx: Context | None = None,
    ) -> list[PullRequest]:
        state = state.strip()
        if state.lower() == "all":
            state = ""
        q = bbql(("author.username", mine))
        path = f"{self._repo_path(workspace, repo_slug)}/pullrequests"
        return self._walk(path, PullRequest, limit, ctx, state=state.upper(), q=q)

    def get_pull_request(self, workspace: str, repo_slug: str, pr_id: int, ctx: Context | None = None) -> PullRequest:
        return self.transport.request("GET", self._pr_path(workspace, repo_slug, pr_id), target=PullRequest, ctx=ctx)

    def create_pull_request(
        self,
        workspace: str,
        repo_slug: str,
        *,
        title: str,
        source: str,
        destination: str,
        description: str = "",
        close_source: bool = False,
        reviewers: list[str] | None = None,
        ctx: Context | None = None,
    ) -> PullRequest:
        require(title=title, source=source, destination=destination)
        body: dict[str, Any] = {
            "title": title,
            "close_source_branch": close_source,
            "source": {"branch": {"name": source}},
            "destination": {"branch": {"name": destination}},
        }
        if description:
            body["description"] = description
        if reviewers:
            body["reviewers"] = [{"username": name} for name in reviewers]
        path = f"{self._repo_path(workspace, repo_slug)}/pullrequests"
        return self.transport.request("POST", path, body, target=PullRequest, ctx=ctx)

    def update_pull_request(
        self,
        workspace: str,
        repo_slug: str,
        pr_id: int,
        *,
        title: Maybe[str] = UNSET,
        description: Maybe[str] = UNSET,
        ctx: Context | None = None,
    ) -> PullRequest:
        body = drop_unset({"title": title, "description": description})
        if not body:
            raise InvalidInputError("nothing to update")
        return self.transport.request(
            "PUT", self._pr_path(workspace, repo_slug, pr_id), body, target=PullRequest, ctx=ctx
        )

    def approve_pull_request(self, workspace: str, repo_slug: str, pr_id: int, ctx: Context | None = None) -> None:
        path = f"{self._pr_path(workspace, repo_slug, pr_id)}/approve"
        self.transport.request("POST", path, ctx=ctx, idempotent=True)

    def merge_pull_request(
        self,
        workspace: str,
        repo_slug: str,
        pr_id: int,
        *,
        message: str = "",
        strategy: str = "",
        close_source_branch: Maybe[bool] = UNSET,
        ctx: Context | None = None,
    ) -> PullRequest:
        body = drop_unset(
            {
                "message": message or UNSET,
                "merge_strategy": strategy or UNSET,
                "close_source_branch": close_source_branch,
            }
        )
        path = f"{self._pr_path(workspace, repo_slug, pr_id)}/merge"
        return self.transport.request("POST", path, body, target=PullRequest, ctx=ctx)

    def decline_pull_request(self, workspace: str, repo_slug: str, pr_id: int, ctx: Context | None = None) -> None:
        path = f"{self._pr_path(workspace, repo_slug, pr_id)}/decline"
        self.transport.request("POST", path, ctx=ctx, idempotent=True)

    def reopen_pull_request(self, workspace: str, repo_slug: str, pr_id: int, ctx: Context | None = None) -> None:
        self.transport.request("PUT", self._pr_path(workspace, repo_slug, pr_id), {"state": "OPEN"}, ctx=ctx)

    def comment_pull_request(
        self, workspace: str, repo_slug: str, pr_id: int, text: str, ctx: Context | None = None
    ) -> None:
        require(text=text)
        path = f"{self._pr_path(workspace, repo_slug, pr_id)}/comments"
        self.transport.request("POST", path, {"content": {"raw": text}}, ctx=ctx)

    def pull_request_diff(
        self, workspace: str, repo_slug: str, pr_id: int, sink: BinaryIO, ctx: Context | None = None
    ) -> None:
        request = self.transport.build_request(
            "GET", f"{self._pr_path(workspace, repo_slug, pr_id)}/diff", ctx=ctx, accept="text/plain"
        )
        self.transport.do(request, sink)

    # --- webhooks ---

    def list_webhooks(self, workspace: str, repo_slug: str, ctx: Context | None = None) -> list[Webhook]:
        return self._walk(f"{self._repo_path(workspace, repo_slug)}/hooks", Webhook, 0, ctx)

    def create_webhook(
        self,
        workspace: str,
        repo_slug: str,
        *,
        url: str,
        events: list[str],
        description: str = "",
        active: bool = True,
        ctx: Context | None = None,
    ) -> Webhook:
        require(url=url)
        if not events:
            raise InvalidInputError("at least one event is required")
        body = {"description": description, "url": url, "events": events, "active": active}
        return self.transport.request(
            "POST", f"{self._repo_path(workspace, repo_slug)}/hooks", body, target=Webhook, ctx=ctx
        )

    def delete_webhook(self, workspace: str, repo_slug: str, uuid: str, ctx: Context | None = None) -> None:
        require(webhook_uuid=uuid)
        path = f"{self._repo_path(workspace, repo_slug)}/hooks/{escape(uuid.strip().strip('{}'))}"
        self.transport.request("DELETE", path, ctx=ctx)
