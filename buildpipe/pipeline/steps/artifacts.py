"""
ArtifactStep — packages the build output.

Cleans the output directory (which must lie inside the working
directory and hold no source path), writes a build manifest and packs the
configured source paths into a gzipped tarball.  Fatal on failure.
"""

from __future__ import annotations

import json
import platform
import shutil
import sys
import tarfile
from datetime import datetime
from pathlib import Path

from buildpipe.core.config import PipelineConfig
from buildpipe.core.constants import STEP_ARTIFACTS
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.details import Artifact, ArtifactDetail
from buildpipe.pipeline.errors import StepExecutionError
from buildpipe.pipeline.report import StepResult
from buildpipe.pipeline.step import PipelineStep

logger = get_logger(__name__)

MANIFEST_FILENAME = "manifest.json"


class ArtifactStep(PipelineStep):
    """Create the build manifest and package."""

    key = STEP_ARTIFACTS
    name = "Artifact packaging"

    def _check_output_dir(self, config: PipelineConfig, output_dir: Path) -> None:
        """Refuse to clean anything but a dedicated directory inside work_dir."""
        root = config.work_dir.resolve()
        if output_dir == root or root not in output_dir.parents:
            raise StepExecutionError(
                f"Refusing to clean output directory {output_dir}: "
                f"it must lie inside {root}",
                step_name=self.key,
                detail=ArtifactDetail(output_dir=str(output_dir)),
            )
        for name in config.source_paths:
            source = config.resolve(Path(name)).resolve()
            if source == output_dir or output_dir in source.parents:
                raise StepExecutionError(
                    f"Refusing to clean output directory {output_dir}: "
                    f"it contains source path '{name}'",
                    step_name=self.key,
                    detail=ArtifactDetail(output_dir=str(output_dir)),
                )

    async def execute(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        config = ctx.config
        output_dir = ctx.path(config.output_dir).resolve()
        self._check_output_dir(config, output_dir)

        try:
            if output_dir.exists():
                shutil.rmtree(output_dir)
            output_dir.mkdir(parents=True)
        except OSError as exc:
            raise StepExecutionError(
                f"Could not prepare output directory {output_dir}: {exc}",
                step_name=self.key,
            ) from exc

        sources = [
            (name, ctx.path(name)) for name in config.source_paths if ctx.path(name).exists()
        ]
        stamp = started_at.strftime("%Y%m%d%H%M%S")

        manifest_path = output_dir / MANIFEST_FILENAME
        manifest = {
            "name": config.project_name,
            "version": config.version,
            "revision": config.revision,
            "build_number": config.build_number,
            "timestamp": started_at.isoformat(),
            "modules": len(sources),
            "platform": sys.platform,
            "python": platform.python_version(),
        }
        manifest_path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")

        package_path = output_dir / f"{config.project_name}-build-{stamp}.tar.gz"
        with tarfile.open(package_path, "w:gz") as tar:
            tar.add(manifest_path, arcname=MANIFEST_FILENAME)
            for name, path in sources:
                tar.add(path, arcname=Path(name).as_posix())

        detail = ArtifactDetail(
            output_dir=str(output_dir),
            modules=len(sources),
            artifacts=tuple(
                Artifact(name=p.name, path=str(p), size=p.stat().st_size)
                for p in (manifest_path, package_path)
            ),
        )
        logger.info(
            "Artifacts created",
            modules=detail.modules,
            package=package_path.name,
        )
        return self._success(started_at, detail)
