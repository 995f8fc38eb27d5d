"""
Prometheus configurator module.

Prometheus is configured from its mounted configuration file; the chain
only checks that the API answers and reports unhealthy scrape targets.
"""

from typing import List

from devstack_common.step_models import ExecutionContext, StepDefinition, StepResult
from devstack_modular.base_configurator import BaseConfigurator
from devstack_modular.registry import ConfiguratorRegistry


@ConfiguratorRegistry.register(
    name="prometheus",
    metadata={
        "description": "Prometheus scrape target verification",
        "order": 60,
    },
)
class PrometheusConfigurator(BaseConfigurator):
    """Configurator for Prometheus."""

    def build_chain(self) -> List[StepDefinition]:
        return [
            self.step("verify_scrape_targets", self.verify_scrape_targets,
                      description="Query active scrape targets"),
        ]

    def verify_scrape_targets(self, context: ExecutionContext) -> StepResult:
        response = self.get(self.url("/api/v1/targets"), params={"state": "active"})
        if response.simulated:
            return StepResult.success()
        if response.field("status") != "success":
            return StepResult.failed(f"targets API answered status {response.body.get('status')!r}")

        targets = response.field("data.activeTargets")
        down = [
            t.get("labels", {}).get("job", t.get("scrapeUrl", "?"))
            for t in targets
            if t.get("health") != "up"
        ]
        if down:
            self.logger.warning(f"Scrape targets not up: {', '.join(sorted(set(down)))}")
        self.logger.info(f"{len(targets) - len(down)}/{len(targets)} scrape target(s) up")
        return StepResult.success(prometheus_active_targets=len(targets))
