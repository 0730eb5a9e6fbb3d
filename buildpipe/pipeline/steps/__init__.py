from buildpipe.pipeline.steps.artifacts import ArtifactStep
from buildpipe.pipeline.steps.audit import AuditStep
from buildpipe.pipeline.steps.coverage import CoverageStep
from buildpipe.pipeline.steps.environment import EnvironmentStep
from buildpipe.pipeline.steps.install import InstallStep
from buildpipe.pipeline.steps.lint import LintStep
from buildpipe.pipeline.steps.testing import TestStep

__all__ = [
    "ArtifactStep",
    "AuditStep",
    "CoverageStep",
    "EnvironmentStep",
    "InstallStep",
    "LintStep",
    "TestStep",
]
