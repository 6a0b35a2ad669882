from typing import Any, BinaryIO

from bkt.models.dc import (
    AutoMergeSettings,
    Change,
    Comment,
    DCPage,
    DiffStat,
    PullRequest,
    Reaction,
    ReviewerGroup,
    Suggestion,
    Task,
)
from bkt.services.binding import ensure_ref, escape, query_string, require, require_positive
from bkt.services.http.client import Transport
from bkt.services.http.context import Context
from bkt.services.http.fields import UNSET, Maybe, is_set
from bkt.services.http.pagination import PageWalker, dc_decoder

CHANGES_PAGE_SIZE = 1000


class PullRequestsMixin:
    """Pull request endpoints of the Data Center binding."""

    transport: Transport

    def _pr_path(self, project_key: str, repo_slug: str, pr_id: int) -> str:
        require_positive(pull_request_id=pr_id)
        return f"{self._repo_path(project_key, repo_slug)}/pull-requests/{pr_id}"

    def list_pull_requests(
        self,
        project_key: str,
        repo_slug: str,
        *,
        state: str = "OPEN",
        limit: int = 0,
        ctx: Context | None = None,
    ) -> list[PullRequest]:
        path = f"{self._repo_path(project_key, repo_slug)}/pull-requests"
        return self._walk(path, PullRequest, limit, ctx, state=state.strip().upper())

    def get_pull_request(self, project_key: str, repo_slug: str, pr_id: int, ctx: Context | None = None) -> PullRequest:
        return self.transport.request("GET", self._pr_path(project_key, repo_slug, pr_id), target=PullRequest, ctx=ctx)

    def create_pull_request(
        self,
        project_key: str,
        repo_slug: str,
        *,
        title: str,
        source_branch: str,
        target_branch: str,
        description: str = "",
        reviewers: list[str] | None = None,
        close_source: bool = False,
        ctx: Context | None = None,
    ) -> PullRequest:
        require(title=title, source_branch=source_branch, target_branch=target_branch)
        repository = {"slug": repo_slug, "project": {"key": project_key.strip().upper()}}
        body: dict[str, Any] = {
            "title": title,
            "description": description,
            "fromRef": {"id": ensure_ref(source_branch), "repository": repository},
            "toRef": {"id": ensure_ref(target_branch), "repository": repository},
            "closeSourceBranch": close_source,
        }
        if reviewers:
            body["reviewers"] = [{"user": {"name": name}} for name in reviewers]
        path = f"{self._repo_path(project_key, repo_slug)}/pull-requests"
        return self.transport.request("POST", path, body, target=PullRequest, ctx=ctx)

    def update_pull_request(
        self,
        project_key: str,
        repo_slug: str,
        pr_id: int,
        *,
        title: Maybe[str] = UNSET,
        description: Maybe[str] = UNSET,
        target_branch: str = "",
        reviewers: Maybe[list[str]] = UNSET,
        ctx: Context | None = None,
    ) -> PullRequest:
        """Edit a pull request with a read-modify-write cycle.

        Data Center's PUT replaces the reviewer list and refs, so the current
        values are read first and sent back unless they are being replaced.
        The server rejects the write with 409 when `version` is stale.
        """
        current = self.get_pull_request(project_key, repo_slug, pr_id, ctx=ctx)
        snapshot = current.model_dump(mode="json", exclude_none=True)

        body: dict[str, Any] = {
            "version": current.version,
            "title": snapshot.get("title", ""),
            "fromRef": snapshot.get("fromRef"),
            "toRef": snapshot.get("toRef"),
            "reviewers": [{"user": {"name": p["user"]["name"]}} for p in snapshot.get("reviewers", [])],
        }
        if "description" in snapshot:
            body["description"] = snapshot["description"]

        if is_set(title):
            body["title"] = title
        if is_set(description):
            body["description"] = description
        if target_branch:
            body["toRef"] = {**(body.get("toRef") or {}), "id": ensure_ref(target_branch)}
        if is_set(reviewers):
            body["reviewers"] = [{"user": {"name": name}} for name in reviewers or []]

        return self.transport.request(
            "PUT", self._pr_path(project_key, repo_slug, pr_id), body, target=PullRequest, ctx=ctx
        )

    def merge_pull_request(
        self,
        project_key: str,
        repo_slug: str,
        pr_id: int,
        version: int,
        *,
        message: str = "",
        strategy: str = "",
        close_source_branch: bool = False,
        ctx: Context | None = None,
    ) -> None:
        body: dict[str, Any] = {"version": version, "message": message, "closeSourceBranch": close_source_branch}
        if strategy:
            body["mergeStrategyId"] = strategy
        self.transport.request("POST", f"{self._pr_path(project_key, repo_slug, pr_id)}/merge", body, ctx=ctx)

    def approve_pull_request(self, project_key: str, repo_slug: str, pr_id: int, ctx: Context | None = None) -> None:
        self.transport.request(
            "POST", f"{self._pr_path(project_key, repo_slug, pr_id)}/approve", ctx=ctx, idempotent=True
        )

    def decline_pull_request(
        self, project_key: str, repo_slug: str, pr_id: int, version: int, ctx: Context | None = None
    ) -> None:
        self.transport.request(
            "POST",
            f"{self._pr_path(project_key, repo_slug, pr_id)}/decline",
            {"version": version},
            ctx=ctx,
            idempotent=True,
        )

    def reopen_pull_request(
        self, project_key: str, repo_slug: str, pr_id: int, version: int, ctx: Context | None = None
    ) -> None:
        self.transport.request(
            "POST",
            f"{self._pr_path(project_key, repo_slug, pr_id)}/reopen",
            {"version": version},
            ctx=ctx,
            idempotent=True,
        )

    def comment_pull_request(
        self, project_key: str, repo_slug: str, pr_id: int, text: str, ctx: Context | None = None
    ) -> Comment:
        require(text=text)
        path = f"{self._pr_path(project_key, repo_slug, pr_id)}/comments"
        return self.transport.request("POST", path, {"text": text}, target=Comment, ctx=ctx)

    def pull_request_diff(
        self, project_key: str, repo_slug: str, pr_id: int, sink: BinaryIO, ctx: Context | None = None
    ) -> None:
        request = self.transport.build_request(
            "GET", f"{self._pr_path(project_key, repo_slug, pr_id)}/diff", ctx=ctx, accept="text/plain"
        )
        self.transport.do(request, sink)

    def pull_request_diff_stat(
        self, project_key: str, repo_slug: str, pr_id: int, ctx: Context | None = None
    ) -> DiffStat:
        path = f"{self._pr_path(project_key, repo_slug, pr_id)}/changes" + query_string(
            {"withCounts": True, "limit": CHANGES_PAGE_SIZE, "start": 0}
        )
        changes = PageWalker(self.transport, DCPage[Change], dc_decoder).walk(path, ctx=ctx)
        stat = DiffStat(files=len(changes))
        for change in changes:
            if change.stats is not None:
                stat.additions += change.stats.additions
                stat.deletions += change.stats.deletions
        return stat

    # --- tasks ---

    def list_pull_request_tasks(
        self, project_key: str, repo_slug: str, pr_id: int, ctx: Context | None = None
    ) -> list[Task]:
        path = f"{self._pr_path(project_key, repo_slug, pr_id)}/tasks"
        page = self.transport.request("GET", path, target=DCPage[Task], ctx=ctx)
        return page.values if page else []

    def create_pull_request_task(
        self, project_key: str, repo_slug: str, pr_id: int, text: str, ctx: Context | None = None
    ) -> Task:
        require(text=text)
        path = f"{self._pr_path(project_key, repo_slug, pr_id)}/tasks"
        return self.transport.request("POST", path, {"text": text}, target=Task, ctx=ctx)

    def complete_pull_request_task(
        self, project_key: str, repo_slug: str, pr_id: int, task_id: int, ctx: Context | None = None
    ) -> None:
        require_positive(task_id=task_id)
        path = f"{self._pr_path(project_key, repo_slug, pr_id)}/tasks/{task_id}/resolve"
        self.transport.request("POST", path, ctx=ctx, idempotent=True)

    def reopen_pull_request_task(
        self, project_key: str, repo_slug: str, pr_id: int, task_id: int, ctx: Context | None = None
    ) -> None:
        require_positive(task_id=task_id)
        path = f"{self._pr_path(project_key, repo_slug, pr_id)}/tasks/{task_id}/reopen"
        self.transport.request("POST", path, ctx=ctx, idempotent=True)

    # --- reactions ---

    def _reactions_path(self, project_key: str, repo_slug: str, pr_id: int, comment_id: int) -> str:
        require_positive(comment_id=comment_id)
        return f"{self._pr_path(project_key, repo_slug, pr_id)}/comments/{comment_id}/reactions"

    def list_comment_reactions(
        self, project_key: str, repo_slug: str, pr_id: int, comment_id: int, ctx: Context | None = None
    ) -> list[Reaction]:
        path = self._reactions_path(project_key, repo_slug, pr_id, comment_id)
        page = self.transport.request("GET", path, target=DCPage[Reaction], ctx=ctx)
        return page.values if page else []

    def add_comment_reaction(
        self, project_key: str, repo_slug: str, pr_id: int, comment_id: int, emoji: str, ctx: Context | None = None
    ) -> None:
        require(emoji=emoji)
        path = self._reactions_path(project_key, repo_slug, pr_id, comment_id)
        self.transport.request("POST", path, {"emoji": emoji}, ctx=ctx, idempotent=True)

    def remove_comment_reaction(
        self, project_key: str, repo_slug: str, pr_id: int, comment_id: int, emoji: str, ctx: Context | None = None
    ) -> None:
        require(emoji=emoji)
        path = f"{self._reactions_path(project_key, repo_slug, pr_id, comment_id)}/{escape(emoji)}"
        self.transport.request("DELETE", path, ctx=ctx)

    # --- suggestions ---

    def _suggestion_path(self, project_key: str, repo_slug: str, pr_id: int, comment_id: int, suggestion_id: int) -> str:
        require_positive(comment_id=comment_id, suggestion_id=suggestion_id)
        return f"{self._pr_path(project_key, repo_slug, pr_id)}/comments/{comment_id}/suggestions/{suggestion_id}"

    def get_suggestion(
        self,
        project_key: str,
        repo_slug: str,
        pr_id: int,
        comment_id: int,
        suggestion_id: int,
        ctx: Context | None = None,
    ) -> Suggestion:
        path = self._suggestion_path(project_key, repo_slug, pr_id, comment_id, suggestion_id)
        return self.transport.request("GET", path, target=Suggestion, ctx=ctx)

    def apply_suggestion(
        self,
        project_key: str,
        repo_slug: str,
        pr_id: int,
        comment_id: int,
        suggestion_id: int,
        ctx: Context | None = None,
    ) -> None:
        path = self._suggestion_path(project_key, repo_slug, pr_id, comment_id, suggestion_id)
        self.transport.request("POST", f"{path}/apply", ctx=ctx)

    # --- auto-merge ---

    def get_auto_merge(self, project_key: str, repo_slug: str, pr_id: int, ctx: Context | None = None) -> AutoMergeSettings:
        path = f"{self._pr_path(project_key, repo_slug, pr_id)}/auto-merge"
        return self.transport.request("GET", path, target=AutoMergeSettings, ctx=ctx)

    def enable_auto_merge(
        self,
        project_key: str,
        repo_slug: str,
        pr_id: int,
        settings: AutoMergeSettings | None = None,
        ctx: Context | None = None,
    ) -> None:
        settings = (settings or AutoMergeSettings()).model_copy(update={"enabled": True})
        body = settings.model_dump(exclude_none=True)
        path = f"{self._pr_path(project_key, repo_slug, pr_id)}/auto-merge"
        self.transport.request("PUT", path, body, ctx=ctx)

    def disable_auto_merge(self, project_key: str, repo_slug: str, pr_id: int, ctx: Context | None = None) -> None:
        path = f"{self._pr_path(project_key, repo_slug, pr_id)}/auto-merge"
        self.transport.request("DELETE", path, ctx=ctx)

    # --- default reviewer groups ---

    def list_reviewer_groups(self, project_key: str, repo_slug: str, ctx: Context | None = None) -> list[ReviewerGroup]:
        path = f"{self._repo_path(project_key, repo_slug)}/default-reviewers/groups"
        page = self.transport.request("GET", path, target=DCPage[ReviewerGroup], ctx=ctx)
        return page.values if page else []

    def add_reviewer_group(self, project_key: str, repo_slug: str, group: str, ctx: Context | None = None) -> None:
        require(group=group)
        path = f"{self._repo_path(project_key, repo_slug)}/default-reviewers/groups" + query_string({"name": group})
        self.transport.request("PUT", path, ctx=ctx)

    def remove_reviewer_group(self, project_key: str, repo_slug: str, group: str, ctx: Context | None = None) -> None:
        require(group=group)
        path = f"{self._repo_path(project_key, repo_slug)}/default-reviewers/groups" + query_string({"name": group})
        self.transport.request("DELETE", path, ctx=ctx)
