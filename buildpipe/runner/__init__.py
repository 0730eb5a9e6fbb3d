from buildpipe.runner.process import ProcessResult, ProcessRunner

__all__ = ["ProcessResult", "ProcessRunner"]
