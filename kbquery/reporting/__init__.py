"""Load run reporting for the KB loader."""

from kbquery.reporting.schema import LoadReport, SourceReport, render_summary

__all__ = ["LoadReport", "SourceReport", "render_summary"]
