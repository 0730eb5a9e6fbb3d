"""
Pipeline engine — sequential build/test orchestrator.

This package provides the step-based engine that runs a project's build
and test collaborators through a fixed sequence of steps, classifies
each outcome, and finalizes a report on every execution path.

Entry point: buildpipe.pipeline.engine.PipelineOrchestrator
"""
