"""
GitLab configurator module.

Configures GitLab through REST API v4: instance settings, the runner
registration token, a sample project with a CI pipeline and its CI/CD
variables.
"""

import base64
import logging
from typing import Dict, List, Optional
from urllib.parse import quote

from devstack_common.api_client import ApiClient, BearerAuth
from devstack_common.errors import ApiError
from devstack_common.step_models import ExecutionContext, StepDefinition, StepResult
from devstack_modular.base_configurator import BaseConfigurator
from devstack_modular.registry import ConfiguratorRegistry
from devstack_setup.config_models import AppSettings

APPLICATION_SETTINGS = {
    "default_projects_limit": 100,
    "signup_enabled": False,
    "require_two_factor_authentication": False,
    "session_expire_delay": 10080,
    "default_project_visibility": "private",
    "default_snippet_visibility": "private",
    "default_group_visibility": "private",
    "container_registry_token_expire_delay": 5,
    "repository_checks_enabled": True,
    "shared_runners_enabled": True,
    "max_attachment_size": 100,
    "max_import_size": 50,
}

CI_FILE_PATH = ".gitlab-ci.yml"


@ConfiguratorRegistry.register(
    name="gitlab",
    metadata={
        "description": "GitLab settings, sample project and CI/CD pipeline",
        "order": 10,
    },
)
class GitLabConfigurator(BaseConfigurator):
    """
    Configurator for GitLab.

    The root personal access token cannot be created over the API, so it must
    be provided as ``GITLAB_TOKEN``.
    """

    def __init__(
        self,
        app_settings: AppSettings,
        client: ApiClient,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(app_settings, client, logger)
        self.gitlab = app_settings.gitlab

    def build_chain(self) -> List[StepDefinition]:
        return [
            self.step("resolve_admin_token", self.resolve_admin_token,
                      required=True, description="Use the provisioned root API token",
                      persist=("gitlab_root_token",)),
            self.step("apply_application_settings", self.apply_application_settings,
                      description="Harden instance-wide settings"),
            self.step("fetch_runner_registration_token", self.fetch_runner_registration_token,
                      description="Read the shared runner registration token",
                      persist=("gitlab_runner_registration_token",)),
            self.step("create_sample_project", self.create_sample_project,
                      required=True, description="Create the sample CI/CD project"),
            self.step("commit_ci_pipeline", self.commit_ci_pipeline,
                      description="Commit .gitlab-ci.yml to the sample project"),
            self.step("configure_project_variables", self.configure_project_variables,
                      description="Publish CI/CD variables for the other services"),
            self.step("verify_api_access", self.verify_api_access,
                      description="List projects with the root token"),
        ]

    def _auth(self, context: ExecutionContext) -> BearerAuth:
        return BearerAuth(context["gitlab_root_token"])

    def resolve_admin_token(self, context: ExecutionContext) -> StepResult:
        if not self.gitlab.token:
            return self.missing_credential("GITLAB_TOKEN")
        return StepResult.success(gitlab_root_token=self.gitlab.token)

    def apply_application_settings(self, context: ExecutionContext) -> StepResult:
        self.put(
            self.url("/api/v4/application/settings"),
            json=APPLICATION_SETTINGS,
            auth=self._auth(context),
        )
        return StepResult.success()

    def fetch_runner_registration_token(self, context: ExecutionContext) -> StepResult:
        response = self.get(
            self.url("/api/v4/runners/registration_token"),
            auth=self._auth(context),
        )
        return StepResult.success(
            gitlab_runner_registration_token=response.field("token")
        )

    def _find_project(self, context: ExecutionContext) -> Optional[Dict]:
        response = self.get(
            self.url("/api/v4/projects"),
            params={"search": self.gitlab.sample_project, "owned": "true"},
            auth=self._auth(context),
        )
        for project in response.body or []:
            if project.get("path") == self.gitlab.sample_project:
                return project
        return None

    def create_sample_project(self, context: ExecutionContext) -> StepResult:
        payload = {
            "name": self.gitlab.sample_project,
            "description": "Sample project with complete CI/CD pipeline",
            "visibility": "private",
            "initialize_with_readme": True,
            "default_branch": self.gitlab.default_branch,
            "container_registry_enabled": True,
            "issues_enabled": True,
            "wiki_enabled": True,
            "merge_requests_enabled": True,
            "jobs_enabled": True,
            "snippets_enabled": True,
        }
        try:
            response = self.post(
                self.url("/api/v4/projects"), json=payload, auth=self._auth(context)
            )
        except ApiError as e:
            # 400 "has already been taken" on a second run.
            if e.status != 400:
                raise
            existing = self._find_project(context)
            if existing is None:
                raise
            self.logger.info(
                f"Project '{self.gitlab.sample_project}' already exists (ID {existing['id']})"
            )
            return StepResult.success(gitlab_project_id=existing["id"])

        project_id = response.field("id")
        self.logger.info(f"Sample project created with ID: {project_id}")
        return StepResult.success(gitlab_project_id=project_id)

    def commit_ci_pipeline(self, context: ExecutionContext) -> StepResult:
        project_id = context["gitlab_project_id"]
        encoded = base64.b64encode(self.gitlab.ci_template.encode("utf-8")).decode("ascii")
        payload = {
            "branch": self.gitlab.default_branch,
            "content": encoded,
            "encoding": "base64",
            "commit_message": "Add CI/CD pipeline configuration",
        }
        url = self.url(
            f"/api/v4/projects/{project_id}/repository/files/{quote(CI_FILE_PATH, safe='')}"
        )
        try:
            self.post(url, json=payload, auth=self._auth(context))
        except ApiError as e:
            if e.status != 400:
                raise
            payload["commit_message"] = "Update CI/CD pipeline configuration"
            self.put(url, json=payload, auth=self._auth(context))
        return StepResult.success()

    def _ci_variables(self) -> List[Dict]:
        nexus = self.app_settings.nexus
        candidates = [
            ("SONAR_TOKEN", self.app_settings.sonarqube.token, True),
            ("NEXUS_USERNAME", nexus.admin_user, False),
            ("NEXUS_PASSWORD", nexus.admin_password, True),
            ("DOCKER_REGISTRY", self.gitlab.docker_registry, False),
            ("VAULT_TOKEN", self.app_settings.vault.token, True),
        ]
        variables = []
        for key, value, secret in candidates:
            if not value:
                self.logger.debug(f"No value for CI variable {key}, not publishing it")
                continue
            variables.append(
                {"key": key, "value": value, "protected": secret, "masked": secret}
            )
        return variables

    def _upsert_variable(self, url: str, variable: Dict, auth: BearerAuth) -> None:
        try:
            self.post(url, json=variable, auth=auth)
        except ApiError as e:
            # 400 when the key already exists.
            if e.status != 400:
                raise
            self.put(f"{url}/{variable['key']}", json=variable, auth=auth)

    def configure_project_variables(self, context: ExecutionContext) -> StepResult:
        project_id = context["gitlab_project_id"]
        url = self.url(f"/api/v4/projects/{project_id}/variables")
        variables = self._ci_variables()
        if not variables:
            return StepResult.skipped("no CI variable has a value")

        failed = []
        for variable in variables:
            try:
                self._upsert_variable(url, variable, self._auth(context))
            except ApiError as e:
                self.logger.warning(f"Failed to configure variable {variable['key']}: {e}")
                failed.append(variable["key"])
            else:
                self.logger.debug(f"Variable {variable['key']} configured successfully")

        if failed:
            return StepResult.failed(f"could not set variables: {', '.join(failed)}")
        return StepResult.success()

    def verify_api_access(self, context: ExecutionContext) -> StepResult:
        response = self.get(
            self.url("/api/v4/projects"), params={"per_page": 1}, auth=self._auth(context)
        )
        if not response.simulated and not response.body:
            return StepResult.failed("token cannot see any project")
        return StepResult.success()
