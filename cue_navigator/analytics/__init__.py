"""
Session analytics, recommendations and reporting.
"""

from .models import CardStatistics, ProblemCard, SessionReport
from .recommendations import RecommendationGenerator
from .session_analytics import SessionAnalytics
from .reporter import format_detailed_report, format_json_report

__all__ = [
    'CardStatistics',
    'ProblemCard',
    'SessionReport',
    'RecommendationGenerator',
    'SessionAnalytics',
    'format_detailed_report',
    'format_json_report'
]
