from buildpipe.reporting.renderer import RenderedReports, ReportRenderer

__all__ = ["RenderedReports", "ReportRenderer"]
