"""
Plain-text formatting of session reports.
"""

import json
from typing import List

from .models import SessionReport


def _format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def format_detailed_report(report: SessionReport) -> str:
    """
    Format a session report into a detailed, human-readable report.

    Args:
        report: Finalized session report

    Returns:
        Formatted string report suitable for console output or logging
    """
    report_lines: List[str] = []

    # Header
    report_lines.append("=" * 80)
    report_lines.append("PERFORMANCE SESSION REPORT")
    report_lines.append("=" * 80)
    report_lines.append(f"Duration: {_format_duration(report.duration)}")
    report_lines.append(f"Cards: {report.card_count}")
    report_lines.append(f"Completed: {'Yes' if report.finished else 'No'}")
    report_lines.append("")

    # Transitions
    report_lines.append("TRANSITIONS")
    report_lines.append("-" * 40)
    report_lines.append(f"Total: {report.total_transitions}")
    report_lines.append(
        f"Automatic: {report.automatic_transitions} "
        f"({report.automatic_transition_percentage:.1f}%)"
    )
    report_lines.append(f"Manual: {report.manual_transitions}")
    if report.suppressed_transitions:
        report_lines.append(f"Suppressed automatic transitions: {report.suppressed_transitions}")
    report_lines.append("")

    # Recognition
    report_lines.append("RECOGNITION")
    report_lines.append("-" * 40)
    report_lines.append(f"Transcriptions received: {report.transcriptions_received}")
    report_lines.append(f"Average confidence: {report.average_confidence:.2f}")
    report_lines.append(
        f"Cards recognized: {report.cards_with_successful_recognition}/{report.card_count}"
    )
    if report.recognition_errors:
        report_lines.append(f"Recognition errors: {report.recognition_errors}")
    report_lines.append("")

    # Audio
    if report.audio_sample_count:
        report_lines.append("AUDIO")
        report_lines.append("-" * 40)
        report_lines.append(f"Mean level: {report.mean_audio_level:.2f}")
        report_lines.append(f"Peak level: {report.peak_audio_level:.2f}")
        report_lines.append("")

    # Per-card results
    report_lines.append("CARD RESULTS")
    report_lines.append("-" * 40)
    problem_indices = set(report.problem_card_indices)
    for stats in report.card_statistics:
        status_icon = "✗" if stats.card_index in problem_indices else "✓"
        report_lines.append(
            f"{status_icon} Card {stats.card_index + 1} ({stats.card_id}): "
            f"anchor {stats.best_anchor_confidence:.2f}, exit {stats.best_exit_confidence:.2f}"
        )
    report_lines.append("")

    # Recommendations
    if report.recommendations:
        report_lines.append("RECOMMENDATIONS")
        report_lines.append("-" * 40)
        for i, rec in enumerate(report.recommendations, 1):
            report_lines.append(f"{i}. {rec}")
        report_lines.append("")

    # Footer
    report_lines.append("=" * 80)
    return "\n".join(report_lines)


def format_json_report(report: SessionReport) -> str:
    return json.dumps(report.to_dict(), indent=2, ensure_ascii=False)
