from bkt.models.cloud import DeploymentEnvironment, PipelineVariable
from bkt.services.binding import braced_uuid, escape, require
from bkt.services.http.client import Transport
from bkt.services.http.context import Context

VARIABLE_PAGE_LEN = 100


def _variable_body(key: str, value: str, secured: bool) -> dict[str, object]:
    require(key=key)
    return {"key": key, "value": value, "secured": secured}


class VariablesMixin:
    """Pipeline variables at repository, workspace and deployment scope."""

    transport: Transport

    def _repo_variables_path(self, workspace: str, repo_slug: str) -> str:
        return f"{self._repo_path(workspace, repo_slug)}/pipelines_config/variables"

    @staticmethod
    def _workspace_variables_path(workspace: str) -> str:
        require(workspace=workspace)
        return f"/workspaces/{escape(workspace.strip())}/pipelines-config/variables"

    def _deployment_variables_path(self, workspace: str, repo_slug: str, environment_uuid: str) -> str:
        require(environment_uuid=environment_uuid)
        return (
            f"{self._repo_path(workspace, repo_slug)}/deployments_config/environments/"
            f"{escape(braced_uuid(environment_uuid))}/variables"
        )

    def _list_variables(self, path: str, limit: int, ctx: Context | None) -> list[PipelineVariable]:
        return self._walk(path, PipelineVariable, limit, ctx, default_len=VARIABLE_PAGE_LEN)

    def _put_variable(self, path: str, uuid: str, body: dict[str, object], ctx: Context | None) -> PipelineVariable:
        require(variable_uuid=uuid)
        return self.transport.request("PUT", f"{path}/{escape(braced_uuid(uuid))}", body, target=PipelineVariable, ctx=ctx)

    def _delete_variable(self, path: str, uuid: str, ctx: Context | None) -> None:
        require(variable_uuid=uuid)
        self.transport.request("DELETE", f"{path}/{escape(braced_uuid(uuid))}", ctx=ctx)

    # --- repository ---

    def list_repository_variables(
        self, workspace: str, repo_slug: str, limit: int = 0, ctx: Context | None = None
    ) -> list[PipelineVariable]:
        return self._list_variables(self._repo_variables_path(workspace, repo_slug), limit, ctx)

    def create_repository_variable(
        self, workspace: str, repo_slug: str, key: str, value: str, secured: bool = False, ctx: Context | None = None
    ) -> PipelineVariable:
        path = self._repo_variables_path(workspace, repo_slug)
        body = _variable_body(key, value, secured)
        return self.transport.request("POST", path, body, target=PipelineVariable, ctx=ctx)

    def update_repository_variable(
        self,
        workspace: str,
        repo_slug: str,
        variable_uuid: str,
        key: str,
        value: str,
        secured: bool = False,
        ctx: Context | None = None,
    ) -> PipelineVariable:
        path = self._repo_variables_path(workspace, repo_slug)
        return self._put_variable(path, variable_uuid, _variable_body(key, value, secured), ctx)

    def delete_repository_variable(
        self, workspace: str, repo_slug: str, variable_uuid: str, ctx: Context | None = None
    ) -> None:
        self._delete_variable(self._repo_variables_path(workspace, repo_slug), variable_uuid, ctx)

    # --- workspace ---

    def list_workspace_variables(self, workspace: str, limit: int = 0, ctx: Context | None = None) -> list[PipelineVariable]:
        return self._list_variables(self._workspace_variables_path(workspace), limit, ctx)

    def create_workspace_variable(
        self, workspace: str, key: str, value: str, secured: bool = False, ctx: Context | None = None
    ) -> PipelineVariable:
        path = self._workspace_variables_path(workspace)
        body = _variable_body(key, value, secured)
        return self.transport.request("POST", path, body, target=PipelineVariable, ctx=ctx)

    def update_workspace_variable(
        self, workspace: str, variable_uuid: str, key: str, value: str, secured: bool = False, ctx: Context | None = None
    ) -> PipelineVariable:
        path = self._workspace_variables_path(workspace)
        return self._put_variable(path, variable_uuid, _variable_body(key, value, secured), ctx)

    def delete_workspace_variable(self, workspace: str, variable_uuid: str, ctx: Context | None = None) -> None:
        self._delete_variable(self._workspace_variables_path(workspace), variable_uuid, ctx)

    # --- deployment environments ---

    def list_deployment_environments(
        self, workspace: str, repo_slug: str, ctx: Context | None = None
    ) -> list[DeploymentEnvironment]:
        path = f"{self._repo_path(workspace, repo_slug)}/environments"
        return self._walk(path, DeploymentEnvironment, 0, ctx, default_len=VARIABLE_PAGE_LEN)

    def list_deployment_variables(
        self, workspace: str, repo_slug: str, environment_uuid: str, limit: int = 0, ctx: Context | None = None
    ) -> list[PipelineVariable]:
        return self._list_variables(self._deployment_variables_path(workspace, repo_slug, environment_uuid), limit, ctx)

    def create_deployment_variable(
        self,
        workspace: str,
        repo_slug: str,
        environment_uuid: str,
        key: str,
        value: str,
        secured: bool = False,
        ctx: Context | None = None,
    ) -> PipelineVariable:
        path = self._deployment_variables_path(workspace, repo_slug, environment_uuid)
        body = _variable_body(key, value, secured)
        return self.transport.request("POST", path, body, target=PipelineVariable, ctx=ctx)

    def update_deployment_variable(
        self,
        workspace: str,
        repo_slug: str,
        environment_uuid: str,
        variable_uuid: str,
        key: str,
        value: str,
        secured: bool = False,
        ctx: Context | None = None,
    ) -> PipelineVariable:
        path = self._deployment_variables_path(workspace, repo_slug, environment_uuid)
        return self._put_variable(path, variable_uuid, _variable_body(key, value, secured), ctx)

    def delete_deployment_variable(
        self, workspace: str, repo_slug: str, environment_uuid: str, variable_uuid: str, ctx: Context | None = None
    ) -> None:
        path = self._deployment_variables_path(workspace, repo_slug, environment_uuid)
        self._delete_variable(path, variable_uuid, ctx)
