"""
Vault configurator module.

Enables a KV v2 engine and stores sample application secrets. Requires the
root token (``VAULT_TOKEN``), e.g. the dev-mode root token.
"""

import logging
import secrets
from typing import Dict, List, Optional

from devstack_common.api_client import ApiClient, HeaderTokenAuth, SimulatedValue
from devstack_common.errors import ApiError
from devstack_common.step_models import ExecutionContext, StepDefinition, StepResult
from devstack_modular.base_configurator import BaseConfigurator
from devstack_modular.registry import ConfiguratorRegistry
from devstack_setup.config_models import AppSettings


@ConfiguratorRegistry.register(
    name="vault",
    metadata={
        "description": "Vault KV v2 engine and sample secrets",
        "order": 70,
    },
)
class VaultConfigurator(BaseConfigurator):
    """Configurator for Vault."""

    def __init__(
        self,
        app_settings: AppSettings,
        client: ApiClient,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(app_settings, client, logger)
        self.vault = app_settings.vault

    def build_chain(self) -> List[StepDefinition]:
        return [
            self.step("resolve_root_token", self.resolve_root_token,
                      required=True, description="Use the provisioned root token"),
            self.step("enable_kv_engine", self.enable_kv_engine,
                      description=f"Mount KV v2 at '{self.vault.kv_mount}'"),
            self.step("store_sample_secrets", self.store_sample_secrets,
                      description="Write sample database, API and SMTP secrets"),
        ]

    def _auth(self, context: ExecutionContext) -> HeaderTokenAuth:
        return HeaderTokenAuth("X-Vault-Token", context["vault_root_token"])

    def resolve_root_token(self, context: ExecutionContext) -> StepResult:
        if not self.vault.token:
            return self.missing_credential("VAULT_TOKEN")
        return StepResult.success(vault_root_token=self.vault.token)

    def enable_kv_engine(self, context: ExecutionContext) -> StepResult:
        try:
            self.post(
                self.url(f"/v1/sys/mounts/{self.vault.kv_mount}"),
                json={"type": "kv", "options": {"version": "2"}},
                auth=self._auth(context),
                expected_status=[200, 204],
            )
        except ApiError as e:
            # 400 "path is already in use", the default in dev mode.
            if e.status != 400:
                raise
            self.logger.info(f"Secrets engine already mounted at '{self.vault.kv_mount}'")
        return StepResult.success()

    def _random(self, kind: str) -> str:
        if self.client.dry_run:
            return SimulatedValue(kind)
        if kind == "hex":
            return secrets.token_hex(32)
        return secrets.token_urlsafe(24)

    def sample_secrets(self) -> Dict[str, Dict[str, str]]:
        return {
            "myapp/database": {
                "username": "dbuser",
                "password": self._random("password"),
                "host": "localhost",
                "port": "5432",
            },
            "myapp/api": {
                "key": self._random("hex"),
                "secret": self._random("secret"),
            },
            "myapp/smtp": {
                "username": "smtp@company.com",
                "password": self._random("password"),
                "host": "smtp.company.com",
            },
        }

    def store_sample_secrets(self, context: ExecutionContext) -> StepResult:
        stored = []
        for path, data in self.sample_secrets().items():
            self.post(
                self.url(f"/v1/{self.vault.kv_mount}/data/{path}"),
                json={"data": {k: str(v) for k, v in data.items()}},
                auth=self._auth(context),
            )
            stored.append(path)
            self.logger.debug(f"Stored secret: {path}")
        return StepResult.success(vault_secret_paths=stored)
