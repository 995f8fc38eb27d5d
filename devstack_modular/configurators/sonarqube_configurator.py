"""
SonarQube configurator module.

Rotates the default admin password, issues an analysis token and sets up
the quality gate, sample project and webhook through the Web API.
"""

import logging
from typing import List, Optional, Tuple

from devstack_common.api_client import ApiClient
from devstack_common.errors import ApiError
from devstack_common.step_models import ExecutionContext, StepDefinition, StepResult
from devstack_modular.base_configurator import BaseConfigurator
from devstack_modular.registry import ConfiguratorRegistry
from devstack_setup.config_models import AppSettings

TOKEN_NAME = "DevOps-Automation-Token"
WEBHOOK_NAME = "GitLab Integration"

# (metric, operator, error threshold)
QUALITY_GATE_CONDITIONS: List[Tuple[str, str, str]] = [
    ("coverage", "LT", "80"),
    ("duplicated_lines_density", "GT", "3"),
    ("reliability_rating", "GT", "1"),
    ("security_rating", "GT", "1"),
    ("sqale_rating", "GT", "1"),
]


@ConfiguratorRegistry.register(
    name="sonarqube",
    metadata={
        "description": "SonarQube credentials, quality gate, project and webhook",
        "order": 20,
    },
)
class SonarQubeConfigurator(BaseConfigurator):
    """Configurator for SonarQube."""

    def __init__(
        self,
        app_settings: AppSettings,
        client: ApiClient,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(app_settings, client, logger)
        self.sonar = app_settings.sonarqube

    def build_chain(self) -> List[StepDefinition]:
        return [
            self.step("change_admin_password", self.change_admin_password,
                      required=True, description="Replace the default admin password",
                      persist=("sonarqube_admin_password",)),
            self.step("generate_user_token", self.generate_user_token,
                      required=True, description="Issue an analysis token",
                      persist=("sonar_token",)),
            self.step("configure_quality_gate", self.configure_quality_gate,
                      description="Create the quality gate and make it the default"),
            self.step("create_sample_project", self.create_sample_project,
                      description="Create the sample project"),
            self.step("create_webhook", self.create_webhook,
                      description="Notify the webhook receiver of quality gate results"),
            self.step("verify_api_access", self.verify_api_access,
                      description="Validate the analysis token"),
        ]

    def _admin_auth(self, context: ExecutionContext) -> Tuple[str, str]:
        return (self.sonar.admin_user, context["sonarqube_admin_password"])

    def change_admin_password(self, context: ExecutionContext) -> StepResult:
        new_password = self.generate_secret("sonarqube_admin_password")
        self.post(
            self.url("/api/users/change_password"),
            data={
                "login": self.sonar.admin_user,
                "previousPassword": self.sonar.initial_password,
                "password": new_password,
            },
            auth=(self.sonar.admin_user, self.sonar.initial_password),
            expected_status=[204],
        )
        return StepResult.success(sonarqube_admin_password=new_password)

    def generate_user_token(self, context: ExecutionContext) -> StepResult:
        url = self.url("/api/user_tokens/generate")
        auth = self._admin_auth(context)
        try:
            response = self.post(url, data={"name": TOKEN_NAME}, auth=auth)
        except ApiError as e:
            # A token with this name already exists: revoke it and issue a new one.
            if e.status != 400:
                raise
            self.post(
                self.url("/api/user_tokens/revoke"),
                data={"name": TOKEN_NAME},
                auth=auth,
                expected_status=[204],
            )
            response = self.post(url, data={"name": TOKEN_NAME}, auth=auth)
        return StepResult.success(sonar_token=response.field("token"))

    def configure_quality_gate(self, context: ExecutionContext) -> StepResult:
        auth = self._admin_auth(context)
        gate = self.sonar.quality_gate_name
        try:
            self.post(
                self.url("/api/qualitygates/create"), data={"name": gate}, auth=auth
            )
        except ApiError as e:
            if e.status != 400:
                raise
            self.logger.info(f"Quality gate '{gate}' already exists, keeping its conditions")
        else:
            for metric, op, threshold in QUALITY_GATE_CONDITIONS:
                self.post(
                    self.url("/api/qualitygates/create_condition"),
                    data={"gateName": gate, "metric": metric, "op": op, "error": threshold},
                    auth=auth,
                )
                self.logger.debug(f"Added condition: {metric} {op} {threshold}")

        self.post(
            self.url("/api/qualitygates/set_as_default"),
            data={"name": gate},
            auth=auth,
            expected_status=[204],
        )
        return StepResult.success()

    def create_sample_project(self, context: ExecutionContext) -> StepResult:
        try:
            self.post(
                self.url("/api/projects/create"),
                data={"project": self.sonar.sample_project, "name": "Sample CI/CD Project"},
                auth=self._admin_auth(context),
            )
        except ApiError as e:
            if e.status != 400:
                raise
            self.logger.info(f"Project '{self.sonar.sample_project}' already exists")
        return StepResult.success()

    def create_webhook(self, context: ExecutionContext) -> StepResult:
        auth = self._admin_auth(context)
        existing = self.get(self.url("/api/webhooks/list"), auth=auth)
        hooks = existing.body.get("webhooks", []) if isinstance(existing.body, dict) else []
        for hook in hooks:
            if hook.get("url") == self.sonar.webhook_url:
                return StepResult.skipped("webhook already registered")

        self.post(
            self.url("/api/webhooks/create"),
            data={"name": WEBHOOK_NAME, "url": self.sonar.webhook_url},
            auth=auth,
        )
        return StepResult.success()

    def verify_api_access(self, context: ExecutionContext) -> StepResult:
        response = self.get(
            self.url("/api/authentication/validate"),
            auth=(context["sonar_token"], ""),
        )
        if not response.simulated and response.field("valid") is not True:
            return StepResult.failed("analysis token was rejected")
        return StepResult.success()
