"""
EnvironmentStep — validates the workspace before anything is installed.

Pure local work: prepares the report and coverage directories, checks
the test-runner configuration file exists, counts test spec files and
records interpreter / platform facts.
"""

from __future__ import annotations

import os
import platform
import sys
from datetime import datetime

from buildpipe.core.constants import STEP_ENVIRONMENT
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.details import EnvironmentDetail
from buildpipe.pipeline.errors import StepExecutionError
from buildpipe.pipeline.report import StepResult
from buildpipe.pipeline.step import PipelineStep

logger = get_logger(__name__)


class EnvironmentStep(PipelineStep):
    """Validate the test environment and prepare output directories."""

    key = STEP_ENVIRONMENT
    name = "Environment validation"

    async def execute(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        config = ctx.config

        for directory in (config.reports_dir, config.coverage_dir):
            ctx.path(directory).mkdir(parents=True, exist_ok=True)

        config_path = ctx.path(config.test_config_file)
        detail = EnvironmentDetail(
            config_found=config_path.is_file(),
            config_file=config.test_config_file,
            test_files=self._count_test_files(ctx),
            python_version=platform.python_version(),
            platform=sys.platform,
            arch=platform.machine(),
            cpus=os.cpu_count() or 0,
            ci=config.ci,
        )

        if not detail.config_found:
            raise StepExecutionError(
                f"Test runner configuration not found: {config.test_config_file}",
                step_name=self.key,
                detail=detail,
            )

        logger.info(
            "Environment validated",
            test_files=detail.test_files,
            python=detail.python_version,
            platform=detail.platform,
        )
        return self._success(started_at, detail)

    @staticmethod
    def _count_test_files(ctx: PipelineContext) -> int:
        spec_dir = ctx.path(ctx.config.test_spec_dir)
        if not spec_dir.is_dir():
            return 0
        suffixes = ctx.config.test_spec_suffixes
        return sum(1 for p in spec_dir.rglob("*") if p.is_file() and p.suffix in suffixes)
