# devstack_setup/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for application configuration.

This module defines the structured settings for the stack bootstrap,
including defaults, type annotations, and descriptions. Every service has
its own settings class with an environment prefix so that, for example,
``GITLAB_URL`` and ``GITLAB_TOKEN`` are picked up without a config file.
"""

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Default Static Values (can be overridden by config file/env/cli) ---
GITLAB_URL_DEFAULT: str = "http://localhost:8090"
SONARQUBE_URL_DEFAULT: str = "http://localhost:9000"
NEXUS_URL_DEFAULT: str = "http://localhost:8081"
JENKINS_URL_DEFAULT: str = "http://localhost:8084"
GRAFANA_URL_DEFAULT: str = "http://localhost:3000"
PROMETHEUS_URL_DEFAULT: str = "http://localhost:9091"
VAULT_URL_DEFAULT: str = "http://localhost:8200"

READY_TIMEOUT_DEFAULT: float = 15.0
POLL_INTERVAL_DEFAULT: float = 5.0
REQUEST_TIMEOUT_DEFAULT: float = 30.0
LOG_PREFIX_DEFAULT: str = "[STACK-CONFIG]"
OUTPUT_DIR_DEFAULT: str = "."

SAMPLE_PROJECT_NAME_DEFAULT: str = "sample-cicd-project"
DOCKER_REGISTRY_DEFAULT: str = "localhost:5050"
WEBHOOK_RECEIVER_URL_DEFAULT: str = "http://webhook-receiver:9000"

JENKINS_PLUGINS_DEFAULT: List[str] = [
    "gitlab-plugin",
    "sonar",
    "nexus-artifact-uploader",
    "docker-plugin",
    "docker-workflow",
    "pipeline-stage-view",
    "build-pipeline-plugin",
    "workflow-aggregator",
    "git",
    "github",
    "credentials",
    "ssh-credentials",
    "plain-credentials",
]

SYMBOLS_DEFAULT: Dict[str, str] = {
    "success": "✅", "error": "❌", "warning": "⚠️", "info": "ℹ️",
    "step": "➡️", "gear": "⚙️", "package": "📦", "rocket": "🚀",
    "sparkles": "✨", "critical": "🔥", "debug": "🐛", "skip": "⏭️",
}

# Default .gitlab-ci.yml committed to the sample project.
GITLAB_CI_TEMPLATE_DEFAULT: str = """\
stages:
  - validate
  - build
  - test
  - quality
  - security
  - package
  - deploy
  - notify

variables:
  DOCKER_REGISTRY: "localhost:5050"
  NEXUS_REPO: "localhost:8081"
  MAVEN_OPTS: "-Dmaven.repo.local=.m2/repository"
  DOCKER_DRIVER: overlay2
  DOCKER_TLS_CERTDIR: ""

cache:
  paths:
    - .m2/repository/
    - node_modules/
    - .sonar/cache

validate:
  stage: validate
  image: hadolint/hadolint:latest
  script:
    - hadolint Dockerfile
  rules:
    - exists: [Dockerfile]

build:
  stage: build
  image: maven:3.8-openjdk-11
  script:
    - mvn clean compile
    - mvn package -DskipTests
  artifacts:
    paths:
      - target/
    expire_in: 1 hour

unit_tests:
  stage: test
  image: maven:3.8-openjdk-11
  script:
    - mvn test
    - mvn jacoco:report
  coverage: '/Total.*?([0-9]{1,3})%/'

sonarqube_analysis:
  stage: quality
  image: sonarsource/sonar-scanner-cli:latest
  variables:
    SONAR_USER_HOME: "${CI_PROJECT_DIR}/.sonar"
    GIT_DEPTH: "0"
  script:
    - sonar-scanner
      -Dsonar.projectKey=$CI_PROJECT_NAME
      -Dsonar.sources=src/main
      -Dsonar.tests=src/test
      -Dsonar.host.url=http://sonarqube:9000
      -Dsonar.login=$SONAR_TOKEN
      -Dsonar.qualitygate.wait=true
  allow_failure: false

docker_build:
  stage: package
  image: docker:latest
  services:
    - docker:dind
  script:
    - docker build -t $DOCKER_REGISTRY/$CI_PROJECT_PATH:$CI_COMMIT_SHA .
    - docker push $DOCKER_REGISTRY/$CI_PROJECT_PATH:$CI_COMMIT_SHA
  only:
    - main
    - develop
"""

# Groovy script posted to Jenkins' script console to register build tools.
JENKINS_TOOLS_SCRIPT_DEFAULT: str = """\
import jenkins.model.*
import hudson.model.*
import hudson.tools.*

def instance = Jenkins.getInstance()

def mavenDesc = instance.getDescriptor("hudson.tasks.Maven")
mavenDesc.setInstallations([
  new hudson.tasks.Maven.MavenInstallation("Maven-3.8", "/opt/maven", [])
] as hudson.tasks.Maven.MavenInstallation[])

def jdkDesc = instance.getDescriptor("hudson.model.JDK")
jdkDesc.setInstallations([
  new JDK("OpenJDK-11", "/opt/java/openjdk")
] as JDK[])

instance.save()
println("tools-configured")
"""


class ServiceSettings(BaseSettings):
    """Settings shared by every configurable service."""
    model_config = SettingsConfigDict(extra='ignore')

    url: str = Field(description="Base URL of the service.")
    health_path: str = Field(default="/", description="Path probed for readiness.")
    enabled: bool = Field(default=True, description="Configure this service at all.")
    ready_timeout: float = Field(default=READY_TIMEOUT_DEFAULT, gt=0,
                                 description="Seconds to wait for the service to become healthy.")
    poll_interval: float = Field(default=POLL_INTERVAL_DEFAULT, gt=0,
                                 description="Seconds between health probes.")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates for https URLs.")

    @property
    def health_url(self) -> str:
        return self.url.rstrip("/") + self.health_path


class GitLabSettings(ServiceSettings):
    """GitLab REST v4 settings."""
    model_config = SettingsConfigDict(env_prefix='GITLAB_', extra='ignore')

    url: str = Field(default=GITLAB_URL_DEFAULT, description="GitLab base URL.")
    health_path: str = "/-/health"
    token: Optional[str] = Field(default=None, description="Pre-provisioned root personal access token.",
                                 exclude=True)
    sample_project: str = Field(default=SAMPLE_PROJECT_NAME_DEFAULT, description="Sample project name.")
    default_branch: str = Field(default="main", description="Branch the CI pipeline file is committed to.")
    docker_registry: str = Field(default=DOCKER_REGISTRY_DEFAULT,
                                 description="Registry published to the sample project as DOCKER_REGISTRY.")
    ci_template: str = Field(default=GITLAB_CI_TEMPLATE_DEFAULT,
                             description="Content of the .gitlab-ci.yml committed to the sample project.")


class SonarQubeSettings(ServiceSettings):
    """SonarQube Web API settings."""
    model_config = SettingsConfigDict(env_prefix='SONARQUBE_', extra='ignore')

    url: str = Field(default=SONARQUBE_URL_DEFAULT, description="SonarQube base URL.")
    health_path: str = "/api/system/status"
    admin_user: str = Field(default="admin", description="SonarQube administrator login.")
    initial_password: str = Field(default="admin", description="Password before rotation.", exclude=True)
    token: Optional[str] = Field(default=None, exclude=True,
                                 description="Existing analysis token, exported to GitLab CI variables.")
    sample_project: str = Field(default=SAMPLE_PROJECT_NAME_DEFAULT, description="Sample project key.")
    quality_gate_name: str = Field(default="DevOps-Quality-Gate", description="Custom quality gate name.")
    webhook_url: str = Field(default=f"{WEBHOOK_RECEIVER_URL_DEFAULT}/hooks/sonarqube-quality-gate",
                             description="Quality gate webhook receiver.")


class NexusSettings(ServiceSettings):
    """Nexus Repository Manager REST v1 settings."""
    model_config = SettingsConfigDict(env_prefix='NEXUS_', extra='ignore')

    url: str = Field(default=NEXUS_URL_DEFAULT, description="Nexus base URL.")
    health_path: str = "/service/rest/v1/status"
    admin_user: str = Field(default="admin", description="Nexus administrator user id.")
    admin_password: Optional[str] = Field(default=None, exclude=True,
                                          description="Current admin password, published to GitLab CI variables.")
    initial_password: str = Field(default="admin123", description="Password before rotation.", exclude=True)
    docker_http_port: int = Field(default=8082, description="HTTP connector port for the hosted Docker repo.")
    developer_user: str = Field(default="developer", description="Read-only developer account.")


class JenkinsSettings(ServiceSettings):
    """Jenkins HTTP settings."""
    model_config = SettingsConfigDict(env_prefix='JENKINS_', extra='ignore')

    url: str = Field(default=JENKINS_URL_DEFAULT, description="Jenkins base URL.")
    health_path: str = "/login"
    admin_user: str = Field(default="admin", description="Jenkins administrator login.")
    admin_password: Optional[str] = Field(default=None, exclude=True,
                                          description="Initial admin password (secrets/initialAdminPassword).")
    plugins: List[str] = Field(default_factory=lambda: list(JENKINS_PLUGINS_DEFAULT),
                               description="Plugins to install.")
    sample_job: str = Field(default=SAMPLE_PROJECT_NAME_DEFAULT, description="Sample job name.")
    scm_url: str = Field(default="http://gitlab:8090/root/sample-cicd-project.git",
                         description="Repository polled by the sample job.")
    tools_script: str = Field(default=JENKINS_TOOLS_SCRIPT_DEFAULT,
                              description="Groovy script registering global build tools.")


class GrafanaSettings(ServiceSettings):
    """Grafana HTTP API settings."""
    model_config = SettingsConfigDict(env_prefix='GRAFANA_', extra='ignore')

    url: str = Field(default=GRAFANA_URL_DEFAULT, description="Grafana base URL.")
    health_path: str = "/api/health"
    admin_user: str = Field(default="admin", description="Grafana administrator login.")
    admin_password: str = Field(default="admin", description="Grafana administrator password.", exclude=True)
    prometheus_datasource_url: str = Field(default="http://prometheus:9090",
                                           description="Prometheus URL as seen from Grafana.")


class PrometheusSettings(ServiceSettings):
    """Prometheus settings."""
    model_config = SettingsConfigDict(env_prefix='PROMETHEUS_', extra='ignore')

    url: str = Field(default=PROMETHEUS_URL_DEFAULT, description="Prometheus base URL.")
    health_path: str = "/-/ready"


class VaultSettings(ServiceSettings):
    """Vault KV v2 settings."""
    model_config = SettingsConfigDict(env_prefix='VAULT_', extra='ignore')

    url: str = Field(default=VAULT_URL_DEFAULT, description="Vault base URL.")
    health_path: str = "/v1/sys/health"
    token: Optional[str] = Field(default=None, exclude=True,
                                 description="Root token for headless bootstrap (dev mode root token).")
    kv_mount: str = Field(default="secret", description="Mount point of the KV v2 engine.")


class AppSettings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(env_prefix='DEVSTACK_', extra='ignore')

    output_dir: Path = Field(default=Path(OUTPUT_DIR_DEFAULT),
                             description="Directory in which the per-run backup directory is created.")
    log_prefix: str = Field(default=LOG_PREFIX_DEFAULT, description="Prefix for console log messages.")
    dry_run: bool = Field(default=False, description="Simulate every API call without network I/O.")
    verbose: bool = Field(default=False, description="Enable debug logging.")
    strict_health: bool = Field(default=True,
                                description="Abort the whole run if any service is unhealthy.")
    max_workers: int = Field(default=1, ge=1, description="Service chains configured concurrently.")
    request_timeout: float = Field(default=REQUEST_TIMEOUT_DEFAULT, gt=0,
                                   description="Timeout in seconds for every HTTP request.")
    skip: List[str] = Field(default_factory=list, description="Services to leave unconfigured.")

    gitlab: GitLabSettings = Field(default_factory=GitLabSettings)
    sonarqube: SonarQubeSettings = Field(default_factory=SonarQubeSettings)
    nexus: NexusSettings = Field(default_factory=NexusSettings)
    jenkins: JenkinsSettings = Field(default_factory=JenkinsSettings)
    grafana: GrafanaSettings = Field(default_factory=GrafanaSettings)
    prometheus: PrometheusSettings = Field(default_factory=PrometheusSettings)
    vault: VaultSettings = Field(default_factory=VaultSettings)

    # Static symbols, could also be loaded from a separate static config if preferred
    symbols: Dict[str, str] = Field(default_factory=lambda: dict(SYMBOLS_DEFAULT))

    def service_settings(self, name: str) -> ServiceSettings:
        """Return the settings block of the named service."""
        settings = getattr(self, name, None)
        if not isinstance(settings, ServiceSettings):
            raise KeyError(f"No settings for service '{name}'")
        return settings
