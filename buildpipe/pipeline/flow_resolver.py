"""
FlowResolver — maps a flow name to an ordered step sequence.

The pipeline is strictly linear; a flow is just the list of steps to run
in order.  "full" is the complete build/test pipeline; "build" and
"test" mirror the separate build and test automation runs.

To add a flow:
    1. Write a builder function returning a list of PipelineStep
    2. Register it in FLOW_REGISTRY below
"""

from __future__ import annotations

from typing import Callable

from buildpipe.core.logging import get_logger
from buildpipe.pipeline.errors import FlowResolutionError
from buildpipe.pipeline.step import PipelineStep
from buildpipe.pipeline.steps import (
    ArtifactStep,
    AuditStep,
    CoverageStep,
    EnvironmentStep,
    InstallStep,
    LintStep,
    TestStep,
)

logger = get_logger(__name__)

FlowBuilder = Callable[[], list[PipelineStep]]


def _full_flow() -> list[PipelineStep]:
    """Environment → install → audit → lint → test → coverage → package."""
    return [
        EnvironmentStep(),
        InstallStep(),
        AuditStep(),
        LintStep(),
        TestStep(),
        CoverageStep(),
        ArtifactStep(),
    ]


def _build_flow() -> list[PipelineStep]:
    """Build only: no test execution or coverage."""
    return [
        EnvironmentStep(),
        InstallStep(),
        LintStep(),
        ArtifactStep(),
    ]


def _test_flow() -> list[PipelineStep]:
    """Test only: no audit, lint or packaging."""
    return [
        EnvironmentStep(),
        InstallStep(),
        TestStep(),
        CoverageStep(),
    ]


FLOW_REGISTRY: dict[str, FlowBuilder] = {
    "full": _full_flow,
    "build": _build_flow,
    "test": _test_flow,
}

DEFAULT_FLOW = "full"


class FlowResolver:
    """Resolves a flow name to a fresh list of step instances."""

    def __init__(self, registry: dict[str, FlowBuilder] | None = None) -> None:
        self.registry = registry or FLOW_REGISTRY

    def resolve(self, flow: str | None = None) -> list[PipelineStep]:
        """
        Return the ordered step list for ``flow`` (default: "full").

        Raises:
            FlowResolutionError: If the flow is not registered.
        """
        flow = flow or DEFAULT_FLOW
        if flow not in self.registry:
            raise FlowResolutionError(
                f"No flow registered as '{flow}' "
                f"(available: {', '.join(self.list_available_flows())})",
                step_name="flow_resolution",
            )
        steps = self.registry[flow]()
        logger.debug("Flow resolved", flow=flow, steps=[s.key for s in steps])
        return steps

    def list_available_flows(self) -> list[str]:
        """Return all registered flow keys."""
        return list(self.registry.keys())
