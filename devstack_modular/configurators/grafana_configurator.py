"""
Grafana configurator module.
"""

import logging
from typing import List, Optional, Tuple

from devstack_common.api_client import ApiClient
from devstack_common.errors import ApiError
from devstack_common.step_models import ExecutionContext, StepDefinition, StepResult
from devstack_modular.base_configurator import BaseConfigurator
from devstack_modular.registry import ConfiguratorRegistry
from devstack_setup.config_models import AppSettings

DATASOURCE_NAME = "Prometheus"

PIPELINE_DASHBOARD = {
    "dashboard": {
        "id": None,
        "uid": "devops-pipeline",
        "title": "DevOps Pipeline Dashboard",
        "tags": ["devops", "ci-cd"],
        "timezone": "browser",
        "panels": [
            {
                "title": "Pipeline Success Rate",
                "type": "stat",
                "gridPos": {"h": 8, "w": 12, "x": 0, "y": 0},
                "targets": [{"expr": "gitlab_ci_pipeline_success_rate", "refId": "A"}],
            },
            {
                "title": "Build Duration",
                "type": "timeseries",
                "gridPos": {"h": 8, "w": 12, "x": 12, "y": 0},
                "targets": [{"expr": "gitlab_ci_pipeline_duration_seconds", "refId": "B"}],
            },
        ],
        "time": {"from": "now-6h", "to": "now"},
        "refresh": "30s",
    },
    "overwrite": True,
}


@ConfiguratorRegistry.register(
    name="grafana",
    metadata={
        "description": "Grafana Prometheus data source and pipeline dashboard",
        "order": 50,
    },
)
class GrafanaConfigurator(BaseConfigurator):
    """Configurator for Grafana. Both steps are optional and independent."""

    def __init__(
        self,
        app_settings: AppSettings,
        client: ApiClient,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(app_settings, client, logger)
        self.grafana = app_settings.grafana

    def build_chain(self) -> List[StepDefinition]:
        return [
            self.step("add_prometheus_datasource", self.add_prometheus_datasource,
                      description="Register Prometheus as the default data source"),
            self.step("import_dashboard", self.import_dashboard,
                      description="Import the pipeline dashboard"),
        ]

    @property
    def _auth(self) -> Tuple[str, str]:
        return (self.grafana.admin_user, self.grafana.admin_password)

    def add_prometheus_datasource(self, context: ExecutionContext) -> StepResult:
        payload = {
            "name": DATASOURCE_NAME,
            "type": "prometheus",
            "url": self.grafana.prometheus_datasource_url,
            "access": "proxy",
            "isDefault": True,
        }
        try:
            response = self.post(
                self.url("/api/datasources"), json=payload, auth=self._auth
            )
        except ApiError as e:
            # 409 "data source with the same name already exists"
            if e.status != 409:
                raise
            self.logger.info(f"Data source '{DATASOURCE_NAME}' already exists")
            return StepResult.success()
        return StepResult.success(grafana_datasource_id=response.field("datasource.id"))

    def import_dashboard(self, context: ExecutionContext) -> StepResult:
        response = self.post(
            self.url("/api/dashboards/db"), json=PIPELINE_DASHBOARD, auth=self._auth
        )
        return StepResult.success(grafana_dashboard_url=response.field("url"))
