"""Bitbucket Data Center REST binding."""

import logging
from typing import Any, TypeVar

from pydantic import BaseModel

from bkt.models.dc import (
    ApplicationProperties,
    Branch,
    BranchRestriction,
    CommitStatus,
    DCPage,
    LoggingConfig,
    Project,
    Repository,
    User,
    UserPermission,
    Webhook,
)
from bkt.services.bbdc.pullrequests import PullRequestsMixin
from bkt.services.binding import ensure_ref, escape, query_string, require, require_positive
from bkt.services.http.client import Transport
from bkt.services.http.context import Context
from bkt.services.http.errors import InvalidInputError
from bkt.services.http.pagination import PageWalker, dc_decoder, page_size
from bkt.services.http.ratelimit import RateLimit

logger = logging.getLogger(__name__)

API = "/rest/api/1.0"
BRANCH_UTILS = "/rest/branch-utils/1.0"
BRANCH_PERMISSIONS = "/rest/branch-permissions/2.0"
BUILD_STATUS = "/rest/build-status/1.0"

DEFAULT_PAGE_SIZE = 25
PERMISSIONS_PAGE_SIZE = 100

M = TypeVar("M", bound=BaseModel)


class DataCenterClient(PullRequestsMixin):
    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def close(self) -> None:
        self.transport.close()

    def rate_limit(self) -> RateLimit:
        return self.transport.rate_limit_state()

    # --- paths ---

    @staticmethod
    def _project_path(project_key: str) -> str:
        require(project_key=project_key)
        return f"{API}/projects/{escape(project_key.strip().upper())}"

    @staticmethod
    def _repo_path(project_key: str, repo_slug: str, root: str = API) -> str:
        require(project_key=project_key, repo_slug=repo_slug)
        return f"{root}/projects/{escape(project_key.strip().upper())}/repos/{escape(repo_slug.strip())}"

    def _walk(
        self,
        path: str,
        model: type[M],
        limit: int = 0,
        ctx: Context | None = None,
        default_size: int = DEFAULT_PAGE_SIZE,
        **params: Any,
    ) -> list[M]:
        size = page_size(limit, default_size, default_size)
        first = path + query_string({**params, "limit": size, "start": 0})
        return PageWalker(self.transport, DCPage[model], dc_decoder).walk(first, limit=limit, ctx=ctx)

    # --- core ---

    def ping(self, ctx: Context | None = None) -> ApplicationProperties:
        return self.transport.request("GET", f"{API}/application-properties", target=ApplicationProperties, ctx=ctx)

    def current_user(self, user_slug: str, ctx: Context | None = None) -> User:
        require(user_slug=user_slug)
        return self.transport.request("GET", f"{API}/users/{escape(user_slug)}", target=User, ctx=ctx)

    def list_projects(self, limit: int = 0, ctx: Context | None = None) -> list[Project]:
        return self._walk(f"{API}/projects", Project, limit, ctx)

    def list_repositories(self, project_key: str, limit: int = 0, ctx: Context | None = None) -> list[Repository]:
        return self._walk(f"{self._project_path(project_key)}/repos", Repository, limit, ctx)

    def get_repository(self, project_key: str, repo_slug: str, ctx: Context | None = None) -> Repository:
        return self.transport.request("GET", self._repo_path(project_key, repo_slug), target=Repository, ctx=ctx)

    def create_repository(
        self,
        project_key: str,
        name: str,
        *,
        description: str = "",
        forkable: bool = True,
        public: bool = False,
        scm_id: str = "git",
        default_branch: str = "",
        ctx: Context | None = None,
    ) -> Repository:
        require(name=name)
        body = {
            "name": name,
            "scmId": scm_id or "git",
            "forkable": forkable,
            "public": public,
            "description": description,
        }
        repo = self.transport.request(
            "POST", f"{self._project_path(project_key)}/repos", body, target=Repository, ctx=ctx
        )
        if default_branch:
            self.set_default_branch(project_key, repo.slug, default_branch, ctx=ctx)
        return repo

    # --- branches ---

    def list_branches(
        self, project_key: str, repo_slug: str, *, filter: str = "", limit: int = 0, ctx: Context | None = None
    ) -> list[Branch]:
        path = f"{self._repo_path(project_key, repo_slug)}/branches"
        return self._walk(path, Branch, limit, ctx, filterText=filter.strip())

    def create_branch(
        self, project_key: str, repo_slug: str, name: str, start_point: str, ctx: Context | None = None
    ) -> Branch:
        require(name=name, start_point=start_point)
        body = {"name": ensure_ref(name), "startPoint": ensure_ref(start_point)}
        path = f"{self._repo_path(project_key, repo_slug, BRANCH_UTILS)}/branches"
        return self.transport.request("POST", path, body, target=Branch, ctx=ctx)

    def delete_branch(
        self, project_key: str, repo_slug: str, name: str, *, dry_run: bool = False, ctx: Context | None = None
    ) -> None:
        require(branch=name)
        body = {"name": ensure_ref(name), "dryRun": dry_run}
        path = f"{self._repo_path(project_key, repo_slug, BRANCH_UTILS)}/branches"
        self.transport.request("DELETE", path, body, ctx=ctx)

    def set_default_branch(self, project_key: str, repo_slug: str, name: str, ctx: Context | None = None) -> None:
        require(branch=name)
        path = f"{self._repo_path(project_key, repo_slug)}/settings/default-branch"
        self.transport.request("PUT", path, {"id": ensure_ref(name)}, ctx=ctx)

    # --- branch permissions ---

    def list_branch_restrictions(
        self, project_key: str, repo_slug: str, limit: int = 0, ctx: Context | None = None
    ) -> list[BranchRestriction]:
        path = f"{self._repo_path(project_key, repo_slug, BRANCH_PERMISSIONS)}/restrictions"
        return self._walk(path, BranchRestriction, limit, ctx)

    def create_branch_restriction(
        self,
        project_key: str,
        repo_slug: str,
        *,
        type: str,
        matcher_id: str,
        matcher_type: str = "BRANCH",
        users: list[str] | None = None,
        groups: list[str] | None = None,
        ctx: Context | None = None,
    ) -> BranchRestriction:
        require(type=type, matcher_id=matcher_id)
        body: dict[str, Any] = {
            "type": type.lower().replace("_", "-"),
            "matcher": {
                "id": matcher_id,
                "displayId": matcher_id,
                "type": {"id": matcher_type.upper()},
            },
        }
        if users:
            body["users"] = users
        if groups:
            body["groups"] = groups
        path = f"{self._repo_path(project_key, repo_slug, BRANCH_PERMISSIONS)}/restrictions"
        return self.transport.request("POST", path, body, target=BranchRestriction, ctx=ctx)

    def delete_branch_restriction(
        self, project_key: str, repo_slug: str, restriction_id: int, ctx: Context | None = None
    ) -> None:
        require_positive(restriction_id=restriction_id)
        path = f"{self._repo_path(project_key, repo_slug, BRANCH_PERMISSIONS)}/restrictions/{restriction_id}"
        self.transport.request("DELETE", path, ctx=ctx)

    # --- permissions ---

    def list_repo_permissions(
        self, project_key: str, repo_slug: str, limit: int = 0, ctx: Context | None = None
    ) -> list[UserPermission]:
        path = f"{self._repo_path(project_key, repo_slug)}/permissions/users"
        return self._walk(path, UserPermission, limit, ctx, default_size=PERMISSIONS_PAGE_SIZE)

    def list_project_permissions(
        self, project_key: str, limit: int = 0, ctx: Context | None = None
    ) -> list[UserPermission]:
        path = f"{self._project_path(project_key)}/permissions/users"
        return self._walk(path, UserPermission, limit, ctx, default_size=PERMISSIONS_PAGE_SIZE)

    def grant_repo_permission(
        self, project_key: str, repo_slug: str, username: str, permission: str, ctx: Context | None = None
    ) -> None:
        require(username=username, permission=permission)
        query = query_string({"name": username, "permission": permission.upper()})
        self.transport.request("PUT", f"{self._repo_path(project_key, repo_slug)}/permissions/users{query}", ctx=ctx)

    def grant_project_permission(
        self, project_key: str, username: str, permission: str, ctx: Context | None = None
    ) -> None:
        require(username=username, permission=permission)
        query = query_string({"name": username, "permission": permission.upper()})
        self.transport.request("PUT", f"{self._project_path(project_key)}/permissions/users{query}", ctx=ctx)

    def revoke_repo_permission(
        self, project_key: str, repo_slug: str, username: str, ctx: Context | None = None
    ) -> None:
        require(username=username)
        query = query_string({"name": username})
        self.transport.request("DELETE", f"{self._repo_path(project_key, repo_slug)}/permissions/users{query}", ctx=ctx)

    def revoke_project_permission(self, project_key: str, username: str, ctx: Context | None = None) -> None:
        require(username=username)
        query = query_string({"name": username})
        self.transport.request("DELETE", f"{self._project_path(project_key)}/permissions/users{query}", ctx=ctx)

    # --- webhooks ---

    def list_webhooks(self, project_key: str, repo_slug: str, limit: int = 0, ctx: Context | None = None) -> list[Webhook]:
        return self._walk(f"{self._repo_path(project_key, repo_slug)}/webhooks", Webhook, limit, ctx)

    def create_webhook(
        self,
        project_key: str,
        repo_slug: str,
        *,
        name: str,
        url: str,
        events: list[str],
        active: bool = True,
        ctx: Context | None = None,
    ) -> Webhook:
        require(name=name, url=url)
        if not events:
            raise InvalidInputError("at least one event is required")
        body = {"name": name, "url": url, "events": events, "active": active}
        return self.transport.request(
            "POST", f"{self._repo_path(project_key, repo_slug)}/webhooks", body, target=Webhook, ctx=ctx
        )

    def delete_webhook(self, project_key: str, repo_slug: str, webhook_id: int, ctx: Context | None = None) -> None:
        require_positive(webhook_id=webhook_id)
        self.transport.request("DELETE", f"{self._repo_path(project_key, repo_slug)}/webhooks/{webhook_id}", ctx=ctx)

    # --- build status ---

    def commit_statuses(self, sha: str, limit: int = 0, ctx: Context | None = None) -> list[CommitStatus]:
        require(commit=sha)
        return self._walk(f"{BUILD_STATUS}/commits/{escape(sha.strip())}", CommitStatus, limit, ctx)

    # --- admin ---

    def rotate_secret(self, ctx: Context | None = None) -> None:
        self.transport.request("POST", "/rest/secrets-manager/1.0/keys/rotate", ctx=ctx)

    def get_logging_config(self, ctx: Context | None = None) -> LoggingConfig:
        return self.transport.request("GET", f"{API}/admin/logs/settings", target=LoggingConfig, ctx=ctx)

    def update_logging_config(self, config: LoggingConfig, ctx: Context | None = None) -> LoggingConfig:
        body = config.model_dump(by_alias=True, exclude_none=True)
        return self.transport.request("PUT", f"{API}/admin/logs/settings", body, target=LoggingConfig, ctx=ctx)
