import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, SecretStr, ValidationError

from bkt.services.http.errors import BitbucketError
from bkt.settings import Settings

logger = logging.getLogger(__name__)

CURRENT_VERSION = 1
CONFIG_FILE = "config.yml"


class ConfigError(BitbucketError):
    pass


class ContextNotFound(ConfigError):
    def __init__(self, name: str) -> None:
        super().__init__(f"context {name!r} not found")


class HostNotFound(ConfigError):
    def __init__(self, key: str) -> None:
        super().__init__(f"host {key!r} not found")


class Context(BaseModel):
    host: str
    project_key: str | None = Field(default=None)
    workspace: str | None = Field(default=None)
    default_repo: str | None = Field(default=None)


class Host(BaseModel):
    kind: Literal["dc", "cloud"]
    base_url: str
    username: str | None = Field(default=None)
    # Read for backwards compatibility, never written back.
    token: SecretStr | None = Field(default=None, exclude=True)


def default_config_path(settings: Settings | None = None) -> Path:
    settings = settings or Settings()
    if settings.config_dir:
        return Path(settings.config_dir).expanduser() / CONFIG_FILE
    base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / "bkt" / CONFIG_FILE


class Config(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    version: int = Field(default=CURRENT_VERSION)
    active_context: str | None = Field(default=None)
    contexts: dict[str, Context] = Field(default_factory=dict)
    hosts: dict[str, Host] = Field(default_factory=dict)

    _path: Path | None = PrivateAttr(default=None)
    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        path = path or default_config_path()
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            config = cls()
            config._path = path
            return config
        except OSError as exc:
            raise ConfigError(f"read config: {exc}") from exc

        try:
            data = yaml.safe_load(raw) or {}
            config = cls.model_validate(data)
        except (yaml.YAMLError, ValidationError) as exc:
            raise ConfigError(f"decode config: {exc}") from exc
        config._path = path
        return config

    @property
    def path(self) -> Path:
        if self._path is None:
            self._path = default_config_path()
        return self._path

    def dumps(self) -> str:
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.safe_dump(data, sort_keys=False)

    def save(self) -> None:
        with self._lock:
            path = self.path
            path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            if not self.version:
                self.version = CURRENT_VERSION
            data = self.dumps()

            fd, tmp_name = tempfile.mkstemp(prefix=".config-", suffix=".yml", dir=path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(data)
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, path)
            except OSError as exc:
                Path(tmp_name).unlink(missing_ok=True)
                raise ConfigError(f"write config: {exc}") from exc
        logger.debug("saved config to %s", path)

    # --- contexts ---

    def set_context(self, name: str, context: Context) -> None:
        with self._lock:
            self.contexts[name] = context

    def get_context(self, name: str) -> Context:
        try:
            return self.contexts[name]
        except KeyError:
            raise ContextNotFound(name) from None

    def delete_context(self, name: str) -> None:
        with self._lock:
            self.contexts.pop(name, None)
            if self.active_context == name:
                self.active_context = None

    def set_active_context(self, name: str | None) -> None:
        with self._lock:
            if name and name not in self.contexts:
                raise ContextNotFound(name)
            self.active_context = name or None

    def current_context(self, override: str | None = None) -> tuple[str, Context]:
        name = override or self.active_context
        if not name:
            raise ConfigError("no active context; run `bkt auth login` or `bkt context use`")
        return name, self.get_context(name)

    # --- hosts ---

    def set_host(self, key: str, host: Host) -> None:
        with self._lock:
            self.hosts[key] = host

    def get_host(self, key: str) -> Host:
        try:
            return self.hosts[key]
        except KeyError:
            raise HostNotFound(key) from None

    def delete_host(self, key: str) -> list[str]:
        """Remove a host and every context pointing at it. Returns the removed context names."""
        with self._lock:
            self.hosts.pop(key, None)
            orphaned = [name for name, ctx in self.contexts.items() if ctx.host == key]
            for name in orphaned:
                del self.contexts[name]
            if self.active_context in orphaned:
                self.active_context = None
        return orphaned

    def summary(self) -> dict[str, Any]:
        return {"path": str(self.path), "active_context": self.active_context, "contexts": sorted(self.contexts)}
