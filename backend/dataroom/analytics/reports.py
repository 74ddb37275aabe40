"""
Downloadable analytics reports.

Both builders take a serialized analytics summary (the payload of
/api/analytics/summary/) so exports always match what the dashboard shows.
"""
import csv
import io

EXPORT_FORMATS = ('csv', 'json')


def export_filename(summary: dict, extension: str) -> str:
    """dataroom-analytics-<range>-<YYYY-MM-DD>.<extension>"""
    generated_on = (summary.get('generatedAt') or '')[:10]
    return f"dataroom-analytics-{summary['timeRange']}-{generated_on}.{extension}"


def build_csv_report(summary: dict) -> str:
    """
    Render a summary as a two-section CSV report.

    Layout:
    - Report header (generation time, time range)
    - User activity: one row per user
    - File statistics: one row per file with downloads + previews total
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer)

    writer.writerow(['User Activity Report'])
    writer.writerow(['Generated:', summary['generatedAt']])
    writer.writerow(['Time Range:', summary['timeRange']])
    writer.writerow([])

    writer.writerow(['Username', 'Last Active', 'Downloads', 'Previews', 'Searches'])
    for user in summary['userActivity']:
        writer.writerow([
            user['username'],
            user['lastActive'],
            user['downloads'],
            user['previews'],
            user['searches'],
        ])
    writer.writerow([])

    writer.writerow(['File Statistics'])
    writer.writerow(['File Name', 'Downloads', 'Previews', 'Total'])
    for file_stats in summary['topFiles']:
        writer.writerow([
            file_stats['fileName'],
            file_stats['downloads'],
            file_stats['previews'],
            file_stats['downloads'] + file_stats['previews'],
        ])

    return buffer.getvalue()


def build_json_report(summary: dict) -> dict:
    """Regroup a summary with the totals nested under 'summary'."""
    return {
        'generatedAt': summary['generatedAt'],
        'timeRange': summary['timeRange'],
        'summary': {
            'totalUsers': summary['totalUsers'],
            'activeUsers': summary['activeUsers'],
            'totalDownloads': summary['totalDownloads'],
            'totalPreviews': summary['totalPreviews'],
            'totalSearches': summary['totalSearches'],
        },
        'userActivity': summary['userActivity'],
        'topFiles': summary['topFiles'],
        'recentActivity': summary['recentActivity'],
    }
