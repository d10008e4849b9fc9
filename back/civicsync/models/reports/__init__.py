from .report import ReportRow

__all__ = ["ReportRow"]
