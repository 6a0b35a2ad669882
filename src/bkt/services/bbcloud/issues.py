"""Issue tracker endpoints, including attachments.

The issue tracker can be disabled per repository. Bitbucket then answers
404, which surfaces to callers as an ordinary APIError.
"""

from typing import Any, BinaryIO

from pydantic import BaseModel

from bkt.models.cloud import Issue, IssueAttachment, IssueComment
from bkt.services.binding import bbql, escape, require, require_positive
from bkt.services.http.client import Transport
from bkt.services.http.context import Context
from bkt.services.http.errors import BitbucketError, InvalidInputError
from bkt.services.http.fields import UNSET, Maybe, is_set
from bkt.services.http.multipart import MultipartFile

ISSUE_PAGE_LEN = 30


class IssueListOptions(BaseModel):
    state: str = ""
    kind: str = ""
    priority: str = ""
    assignee: str = ""
    reporter: str = ""
    milestone: str = ""
    query: str = ""
    limit: int = 0

    def bbql(self) -> str:
        return bbql(
            ("state", self.state),
            ("kind", self.kind),
            ("priority", self.priority),
            ("assignee.username", self.assignee),
            ("reporter.username", self.reporter),
            ("milestone.name", self.milestone),
            raw=self.query,
        )


def _named(value: str | None, key: str = "name") -> dict[str, str] | None:
    # An empty string clears the relation.
    if not value:
        return None
    return {key: value}


class IssuesMixin:
    transport: Transport

    def _issue_path(self, workspace: str, repo_slug: str, issue_id: int) -> str:
        require_positive(issue_id=issue_id)
        return f"{self._repo_path(workspace, repo_slug)}/issues/{issue_id}"

    def list_issues(
        self,
        workspace: str,
        repo_slug: str,
        options: IssueListOptions | None = None,
        ctx: Context | None = None,
    ) -> list[Issue]:
        options = options or IssueListOptions()
        path = f"{self._repo_path(workspace, repo_slug)}/issues"
        return self._walk(path, Issue, options.limit, ctx, default_len=ISSUE_PAGE_LEN, q=options.bbql())

    def get_issue(self, workspace: str, repo_slug: str, issue_id: int, ctx: Context | None = None) -> Issue:
        return self.transport.request("GET", self._issue_path(workspace, repo_slug, issue_id), target=Issue, ctx=ctx)

    def create_issue(
        self,
        workspace: str,
        repo_slug: str,
        *,
        title: str,
        content: str = "",
        kind: str = "",
        priority: str = "",
        assignee: str = "",
        milestone: str = "",
        component: str = "",
        version: str = "",
        ctx: Context | None = None,
    ) -> Issue:
        require(title=title)
        body: dict[str, Any] = {"title": title}
        if content:
            body["content"] = {"raw": content}
        if kind:
            body["kind"] = kind
        if priority:
            body["priority"] = priority
        if assignee:
            body["assignee"] = {"username": assignee}
        for field, value in (("milestone", milestone), ("component", component), ("version", version)):
            if value:
                body[field] = {"name": value}
        path = f"{self._repo_path(workspace, repo_slug)}/issues"
        return self.transport.request("POST", path, body, target=Issue, ctx=ctx)

    def update_issue(
        self,
        workspace: str,
        repo_slug: str,
        issue_id: int,
        *,
        title: Maybe[str] = UNSET,
        content: Maybe[str] = UNSET,
        state: Maybe[str] = UNSET,
        kind: Maybe[str] = UNSET,
        priority: Maybe[str] = UNSET,
        assignee: Maybe[str] = UNSET,
        milestone: Maybe[str] = UNSET,
        component: Maybe[str] = UNSET,
        version: Maybe[str] = UNSET,
        ctx: Context | None = None,
    ) -> Issue:
        """Partially update an issue.

        Untouched fields are omitted. Relations (assignee, milestone,
        component, version) set to None or "" are sent as JSON null,
        which clears them.
        """
        body: dict[str, Any] = {}
        for field, value in (("title", title), ("state", state), ("kind", kind), ("priority", priority)):
            if is_set(value):
                body[field] = value
        if is_set(content):
            body["content"] = None if content is None else {"raw": content}
        if is_set(assignee):
            body["assignee"] = _named(assignee, "username")
        for field, value in (("milestone", milestone), ("component", component), ("version", version)):
            if is_set(value):
                body[field] = _named(value)
        if not body:
            raise InvalidInputError("nothing to update")
        return self.transport.request(
            "PUT", self._issue_path(workspace, repo_slug, issue_id), body, target=Issue, ctx=ctx
        )

    def delete_issue(self, workspace: str, repo_slug: str, issue_id: int, ctx: Context | None = None) -> None:
        self.transport.request("DELETE", self._issue_path(workspace, repo_slug, issue_id), ctx=ctx)

    def list_issue_comments(
        self, workspace: str, repo_slug: str, issue_id: int, limit: int = 0, ctx: Context | None = None
    ) -> list[IssueComment]:
        path = f"{self._issue_path(workspace, repo_slug, issue_id)}/comments"
        return self._walk(path, IssueComment, limit, ctx, default_len=ISSUE_PAGE_LEN)

    def create_issue_comment(
        self, workspace: str, repo_slug: str, issue_id: int, text: str, ctx: Context | None = None
    ) -> IssueComment:
        require(text=text)
        path = f"{self._issue_path(workspace, repo_slug, issue_id)}/comments"
        return self.transport.request("POST", path, {"content": {"raw": text}}, target=IssueComment, ctx=ctx)

    # --- attachments ---

    def list_issue_attachments(
        self, workspace: str, repo_slug: str, issue_id: int, ctx: Context | None = None
    ) -> list[IssueAttachment]:
        path = f"{self._issue_path(workspace, repo_slug, issue_id)}/attachments"
        return self._walk(path, IssueAttachment, 0, ctx)

    def upload_issue_attachment(
        self,
        workspace: str,
        repo_slug: str,
        issue_id: int,
        filename: str,
        reader: BinaryIO,
        ctx: Context | None = None,
    ) -> IssueAttachment:
        require(filename=filename)
        path = f"{self._issue_path(workspace, repo_slug, issue_id)}/attachments"
        request = self.transport.build_multipart_request(
            "POST", path, [MultipartFile("files", filename, reader)], ctx=ctx
        )
        attachments = self.transport.do(request, list[IssueAttachment])
        if not attachments:
            raise BitbucketError("upload succeeded but no attachment returned")
        return attachments[0]

    def download_issue_attachment(
        self,
        workspace: str,
        repo_slug: str,
        issue_id: int,
        filename: str,
        sink: BinaryIO,
        ctx: Context | None = None,
    ) -> None:
        require(filename=filename)
        path = f"{self._issue_path(workspace, repo_slug, issue_id)}/attachments/{escape(filename)}"
        request = self.transport.build_request("GET", path, ctx=ctx, accept="*/*")
        self.transport.do(request, sink)

    def delete_issue_attachment(
        self, workspace: str, repo_slug: str, issue_id: int, filename: str, ctx: Context | None = None
    ) -> None:
        require(filename=filename)
        path = f"{self._issue_path(workspace, repo_slug, issue_id)}/attachments/{escape(filename)}"
        self.transport.request("DELETE", path, ctx=ctx)
