"""
Nexus Repository Manager configurator module.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from devstack_common.api_client import ApiClient
from devstack_common.errors import ApiError
from devstack_common.step_models import ExecutionContext, StepDefinition, StepResult
from devstack_modular.base_configurator import BaseConfigurator
from devstack_modular.registry import ConfiguratorRegistry
from devstack_setup.config_models import AppSettings

MAVEN_REPOSITORY = {
    "name": "maven-releases",
    "online": True,
    "storage": {
        "blobStoreName": "default",
        "strictContentTypeValidation": True,
        "writePolicy": "ALLOW_ONCE",
    },
    "maven": {"versionPolicy": "RELEASE", "layoutPolicy": "STRICT"},
}

NPM_REPOSITORY = {
    "name": "npm-private",
    "online": True,
    "storage": {
        "blobStoreName": "default",
        "strictContentTypeValidation": True,
        "writePolicy": "ALLOW",
    },
}

CLEANUP_POLICY = {
    "name": "docker-cleanup",
    "notes": "Cleanup old Docker images",
    "format": "docker",
    "criteriaLastBlobUpdated": 30,
    "criteriaLastDownloaded": 30,
}


@ConfiguratorRegistry.register(
    name="nexus",
    metadata={
        "description": "Nexus admin password, hosted repositories and developer user",
        "order": 30,
    },
)
class NexusConfigurator(BaseConfigurator):
    """
    Configurator for Nexus.

    Repositories, the cleanup policy and the developer user are created only
    when missing; Nexus answers 400 for a name that is already taken.
    """

    def __init__(
        self,
        app_settings: AppSettings,
        client: ApiClient,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(app_settings, client, logger)
        self.nexus = app_settings.nexus

    def build_chain(self) -> List[StepDefinition]:
        return [
            self.step("change_admin_password", self.change_admin_password,
                      required=True, description="Replace the initial admin password",
                      persist=("nexus_admin_password",)),
            self.step("create_maven_repository", self.create_maven_repository,
                      description="Hosted Maven release repository"),
            self.step("create_npm_repository", self.create_npm_repository,
                      description="Hosted npm repository"),
            self.step("create_docker_repository", self.create_docker_repository,
                      description="Hosted Docker registry"),
            self.step("create_cleanup_policy", self.create_cleanup_policy,
                      description="Purge stale Docker images"),
            self.step("create_developer_user", self.create_developer_user,
                      description="Read-only developer account",
                      persist=("nexus_developer_password",)),
            self.step("verify_api_access", self.verify_api_access,
                      description="List repositories as admin"),
        ]

    def _admin_auth(self, context: ExecutionContext) -> Tuple[str, str]:
        return (self.nexus.admin_user, context["nexus_admin_password"])

    def _create(self, context: ExecutionContext, path: str, payload: Dict[str, Any]) -> StepResult:
        try:
            self.post(self.url(path), json=payload, auth=self._admin_auth(context))
        except ApiError as e:
            if e.status != 400:
                raise
            self.logger.info(f"'{payload['name']}' already exists, leaving it unchanged")
        return StepResult.success()

    def change_admin_password(self, context: ExecutionContext) -> StepResult:
        new_password = self.generate_secret("nexus_admin_password")
        self.put(
            self.url(f"/service/rest/v1/security/users/{self.nexus.admin_user}/change-password"),
            data=str(new_password),
            headers={"Content-Type": "text/plain"},
            auth=(self.nexus.admin_user, self.nexus.initial_password),
            expected_status=[204],
        )
        return StepResult.success(nexus_admin_password=new_password)

    def create_maven_repository(self, context: ExecutionContext) -> StepResult:
        return self._create(context, "/service/rest/v1/repositories/maven/hosted", MAVEN_REPOSITORY)

    def create_npm_repository(self, context: ExecutionContext) -> StepResult:
        return self._create(context, "/service/rest/v1/repositories/npm/hosted", NPM_REPOSITORY)

    def create_docker_repository(self, context: ExecutionContext) -> StepResult:
        payload = {
            "name": "docker-private",
            "online": True,
            "storage": {
                "blobStoreName": "default",
                "strictContentTypeValidation": True,
                "writePolicy": "ALLOW",
            },
            "docker": {
                "v1Enabled": False,
                "forceBasicAuth": True,
                "httpPort": self.nexus.docker_http_port,
            },
        }
        return self._create(context, "/service/rest/v1/repositories/docker/hosted", payload)

    def create_cleanup_policy(self, context: ExecutionContext) -> StepResult:
        return self._create(context, "/service/rest/v1/cleanup-policies", CLEANUP_POLICY)

    def create_developer_user(self, context: ExecutionContext) -> StepResult:
        password = self.generate_secret("nexus_developer_password", nbytes=12)
        payload = {
            "userId": self.nexus.developer_user,
            "firstName": "Developer",
            "lastName": "User",
            "emailAddress": f"{self.nexus.developer_user}@company.com",
            "password": str(password),
            "status": "active",
            "roles": ["nx-anonymous"],
        }
        self.post(
            self.url("/service/rest/v1/security/users"),
            json=payload,
            auth=self._admin_auth(context),
        )
        return StepResult.success(nexus_developer_password=password)

    def verify_api_access(self, context: ExecutionContext) -> StepResult:
        response = self.get(
            self.url("/service/rest/v1/repositories"), auth=self._admin_auth(context)
        )
        if not response.simulated and not response.body:
            return StepResult.failed("no repository is visible to the admin user")
        return StepResult.success()
