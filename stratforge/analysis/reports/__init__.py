from stratforge.analysis.reports.report import export_results, generate_report, holding_periods

__all__ = ["export_results", "generate_report", "holding_periods"]
