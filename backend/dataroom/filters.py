"""
Analytics event filtering.

Filter Types:
- action: Exact action match
- user_id: Exact user id match
- username: Case-insensitive substring match
- date_from/date_to: Event time range (ISO 8601)

All filters use AND logic when combined.
"""

from django_filters import rest_framework as filters
from contracts.models import AnalyticsEvent


class AnalyticsEventFilter(filters.FilterSet):
    """FilterSet for listing recorded analytics events."""

    action = filters.ChoiceFilter(
        field_name='action',
        choices=AnalyticsEvent.ACTION_CHOICES,
        help_text='Exact action match (e.g., file_download)'
    )

    user_id = filters.CharFilter(
        field_name='user_id',
        lookup_expr='exact',
        help_text='Exact user id match'
    )

    username = filters.CharFilter(
        field_name='username',
        lookup_expr='icontains',
        max_length=150,
        help_text='Case-insensitive substring match on username'
    )

    date_from = filters.IsoDateTimeFilter(
        field_name='timestamp',
        lookup_expr='gte',
        help_text='Events at or after this time (ISO 8601)'
    )
    date_to = filters.IsoDateTimeFilter(
        field_name='timestamp',
        lookup_expr='lte',
        help_text='Events at or before this time (ISO 8601)'
    )

    class Meta:
        model = AnalyticsEvent
        fields = [
            'action',
            'user_id',
            'username',
            'date_from',
            'date_to',
        ]
