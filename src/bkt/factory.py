"""Wires configuration, credentials and HTTP clients for CLI commands."""

import logging
from dataclasses import dataclass

import httpx
from pydantic import SecretStr, ValidationError

from bkt.config import Config, ConfigError, Context, Host, default_config_path
from bkt.services.bbcloud.client import CloudClient
from bkt.services.bbdc.client import DataCenterClient
from bkt.services.http.client import Transport
from bkt.services.http.options import RetryPolicy, TransportOptions
from bkt.settings import Settings

logger = logging.getLogger(__name__)

CLI_RETRY = RetryPolicy(max_attempts=4, initial_backoff=0.25, max_backoff=2.0)
TOKEN_USERNAME = "x-token-auth"


@dataclass
class Target:
    """The resolved context a command runs against."""

    name: str
    context: Context
    host: Host


class Factory:
    def __init__(
        self,
        *,
        config: Config | None = None,
        settings: Settings | None = None,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.http_transport = http_transport
        self.context_override: str | None = None
        self.token_override: SecretStr | None = None
        self.output_format: str = "text"
        self.debug = self.settings.http_debug
        self._config = config

    @property
    def config(self) -> Config:
        if self._config is None:
            self._config = Config.load(default_config_path(self.settings))
        return self._config

    def target(self) -> Target:
        name, context = self.config.current_context(self.context_override)
        return Target(name=name, context=context, host=self.config.get_host(context.host))

    def token_for(self, host: Host) -> SecretStr:
        for candidate in (self.token_override, self.settings.token, host.token):
            if candidate is not None and candidate.get_secret_value():
                return candidate
        return SecretStr("")

    def transport_for(self, host: Host, token: SecretStr | None = None) -> Transport:
        secret = token if token is not None else self.token_for(host)
        username = host.username or (TOKEN_USERNAME if secret.get_secret_value() else "")
        try:
            options = TransportOptions(
                base_url=host.base_url,
                username=username,
                secret=secret,
                enable_cache=True,
                retry=CLI_RETRY,
                dialect=host.kind,
                debug=self.debug,
            )
        except ValidationError as exc:
            raise ConfigError(f"invalid host {host.base_url!r}: {exc.errors()[0]['msg']}") from exc
        logger.debug("transport for %s (%s)", options.base_url, host.kind)
        return Transport(options, transport=self.http_transport)

    def client_for(self, host: Host, token: SecretStr | None = None) -> DataCenterClient | CloudClient:
        transport = self.transport_for(host, token)
        if host.kind == "cloud":
            return CloudClient(transport)
        return DataCenterClient(transport)

    def cloud_client(self) -> tuple[CloudClient, Target]:
        target = self.target()
        if target.host.kind != "cloud":
            raise ConfigError(f"context {target.name!r} is not a Bitbucket Cloud context")
        return CloudClient(self.transport_for(target.host)), target

    def client(self) -> tuple[DataCenterClient | CloudClient, Target]:
        target = self.target()
        return self.client_for(target.host), target
