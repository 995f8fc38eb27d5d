"""
Jenkins configurator module.

Jenkins has no first-boot API for its admin credentials: the initial admin
password must be provided as ``JENKINS_ADMIN_PASSWORD``. It is only used to
obtain an API token; every later step authenticates with that token, which
also exempts the requests from CSRF crumbs.
"""

import logging
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote
from xml.sax.saxutils import escape

from devstack_common.api_client import ApiClient
from devstack_common.errors import ApiError
from devstack_common.step_models import ExecutionContext, StepDefinition, StepResult
from devstack_modular.base_configurator import BaseConfigurator
from devstack_modular.registry import ConfiguratorRegistry
from devstack_setup.config_models import AppSettings

API_TOKEN_NAME = "devops-automation"
TOOLS_CONFIGURED_MARKER = "tools-configured"

SAMPLE_JOB_TEMPLATE = """<?xml version='1.1' encoding='UTF-8'?>
<project>
  <description>Sample CI/CD job integrated with GitLab</description>
  <keepDependencies>false</keepDependencies>
  <scm class="hudson.plugins.git.GitSCM">
    <configVersion>2</configVersion>
    <userRemoteConfigs>
      <hudson.plugins.git.UserRemoteConfig>
        <url>{scm_url}</url>
      </hudson.plugins.git.UserRemoteConfig>
    </userRemoteConfigs>
    <branches>
      <hudson.plugins.git.BranchSpec>
        <name>*/{branch}</name>
      </hudson.plugins.git.BranchSpec>
    </branches>
  </scm>
  <triggers>
    <hudson.triggers.SCMTrigger>
      <spec>H/5 * * * *</spec>
    </hudson.triggers.SCMTrigger>
  </triggers>
  <builders>
    <hudson.tasks.Shell>
      <command>
echo "Building project..."
if [ -f pom.xml ]; then
    mvn clean compile test
elif [ -f package.json ]; then
    npm install
    npm test
else
    echo "No build configuration found"
fi
      </command>
    </hudson.tasks.Shell>
  </builders>
</project>
"""


def plugins_install_xml(plugins: List[str]) -> str:
    """Request body understood by ``/pluginManager/installNecessaryPlugins``."""
    entries = "".join(
        f'<install plugin="{escape(name)}@latest" />' for name in plugins
    )
    return f"<jenkins>{entries}</jenkins>"


@ConfiguratorRegistry.register(
    name="jenkins",
    metadata={
        "description": "Jenkins API token, plugins, global tools and sample job",
        "order": 40,
    },
)
class JenkinsConfigurator(BaseConfigurator):
    """Configurator for Jenkins."""

    def __init__(
        self,
        app_settings: AppSettings,
        client: ApiClient,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(app_settings, client, logger)
        self.jenkins = app_settings.jenkins

    def build_chain(self) -> List[StepDefinition]:
        return [
            self.step("resolve_admin_password", self.resolve_admin_password,
                      required=True, description="Use the provisioned admin password"),
            self.step("fetch_crumb", self.fetch_crumb,
                      required=True, description="Obtain a CSRF crumb for the admin session"),
            self.step("generate_api_token", self.generate_api_token,
                      required=True, description="Issue an API token for the admin user",
                      persist=("jenkins_api_token",)),
            self.step("install_plugins", self.install_plugins,
                      description="Install the CI/CD plugins"),
            self.step("configure_global_tools", self.configure_global_tools,
                      description="Register Maven and JDK installations"),
            self.step("create_sample_job", self.create_sample_job,
                      description="Create the sample freestyle job"),
        ]

    def _token_auth(self, context: ExecutionContext) -> Tuple[str, str]:
        return (self.jenkins.admin_user, context["jenkins_api_token"])

    def resolve_admin_password(self, context: ExecutionContext) -> StepResult:
        if not self.jenkins.admin_password:
            return self.missing_credential("JENKINS_ADMIN_PASSWORD")
        return StepResult.success(jenkins_admin_password=self.jenkins.admin_password)

    def fetch_crumb(self, context: ExecutionContext) -> StepResult:
        response = self.get(
            self.url("/crumbIssuer/api/json"),
            auth=(self.jenkins.admin_user, context["jenkins_admin_password"]),
        )
        # Crumbs are bound to the session that requested them.
        session_cookie = response.headers.get("Set-Cookie", "").split(";", 1)[0]
        return StepResult.success(
            jenkins_crumb_field=response.field("crumbRequestField"),
            jenkins_crumb=response.field("crumb"),
            jenkins_session_cookie=session_cookie,
        )

    def _crumb_headers(self, context: ExecutionContext) -> Dict[str, str]:
        headers = {context["jenkins_crumb_field"]: context["jenkins_crumb"]}
        if context["jenkins_session_cookie"]:
            headers["Cookie"] = context["jenkins_session_cookie"]
        return headers

    def generate_api_token(self, context: ExecutionContext) -> StepResult:
        response = self.post(
            self.url("/me/descriptorByName/jenkins.security.ApiTokenProperty/generateNewToken"),
            data={"newTokenName": API_TOKEN_NAME},
            headers=self._crumb_headers(context),
            auth=(self.jenkins.admin_user, context["jenkins_admin_password"]),
        )
        return StepResult.success(jenkins_api_token=response.field("data.tokenValue"))

    def install_plugins(self, context: ExecutionContext) -> StepResult:
        if not self.jenkins.plugins:
            return StepResult.skipped("no plugins requested")
        self.logger.info(f"Installing {len(self.jenkins.plugins)} Jenkins plugin(s)...")
        self.post(
            self.url("/pluginManager/installNecessaryPlugins"),
            data=plugins_install_xml(self.jenkins.plugins),
            headers={"Content-Type": "text/xml"},
            auth=self._token_auth(context),
        )
        return StepResult.success()

    def configure_global_tools(self, context: ExecutionContext) -> StepResult:
        response = self.post(
            self.url("/scriptText"),
            data={"script": self.jenkins.tools_script},
            auth=self._token_auth(context),
        )
        if not response.simulated and TOOLS_CONFIGURED_MARKER not in str(response.body):
            return StepResult.failed(f"script console answered: {str(response.body)[:200]}")
        return StepResult.success()

    def create_sample_job(self, context: ExecutionContext) -> StepResult:
        config_xml = SAMPLE_JOB_TEMPLATE.format(
            scm_url=escape(self.jenkins.scm_url),
            branch=escape(self.app_settings.gitlab.default_branch),
        )
        headers = {"Content-Type": "application/xml"}
        auth = self._token_auth(context)
        try:
            self.post(
                self.url("/createItem"),
                params={"name": self.jenkins.sample_job},
                data=config_xml,
                headers=headers,
                auth=auth,
            )
        except ApiError as e:
            # 400 "A job already exists with the name ..."
            if e.status != 400:
                raise
            self.post(
                self.url(f"/job/{quote(self.jenkins.sample_job)}/config.xml"),
                data=config_xml,
                headers=headers,
                auth=auth,
            )
        return StepResult.success()
