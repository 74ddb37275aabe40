"""
Serializers for analytics events and the analytics summary.

Event payloads are a tagged union keyed by action: each action has its own
payload serializer, and EVENT_PAYLOAD_SERIALIZERS maps one to the other.
"""
from rest_framework import serializers
from contracts.models import AnalyticsEvent


class UserPayloadSerializer(serializers.Serializer):
    """Payload for login / logout."""
    userId = serializers.CharField()
    username = serializers.CharField()


class SearchPayloadSerializer(serializers.Serializer):
    query = serializers.CharField(allow_blank=True)
    resultsCount = serializers.IntegerField(min_value=0)


class FilePayloadSerializer(serializers.Serializer):
    """Payload for file_download / file_preview."""
    fileId = serializers.CharField()
    fileName = serializers.CharField()
    fileType = serializers.CharField()
    category = serializers.CharField(allow_blank=True)


class PagePayloadSerializer(serializers.Serializer):
    """Payload for page_view / page_blur / page_focus."""
    page = serializers.CharField()
    duration = serializers.IntegerField(min_value=0, required=False)


class CategoryFilterPayloadSerializer(serializers.Serializer):
    category = serializers.CharField()


class SessionStartPayloadSerializer(serializers.Serializer):
    sessionId = serializers.CharField()
    userRole = serializers.CharField(required=False)


class SessionEndPayloadSerializer(serializers.Serializer):
    sessionId = serializers.CharField()
    duration = serializers.IntegerField(min_value=0, required=False)


class PositionSerializer(serializers.Serializer):
    x = serializers.IntegerField()
    y = serializers.IntegerField()


class ViewportSerializer(serializers.Serializer):
    width = serializers.IntegerField(min_value=0)
    height = serializers.IntegerField(min_value=0)


class InteractionPayloadSerializer(serializers.Serializer):
    element = serializers.CharField()
    position = PositionSerializer(required=False)
    viewport = ViewportSerializer(required=False)


EVENT_PAYLOAD_SERIALIZERS = {
    AnalyticsEvent.ACTION_LOGIN: UserPayloadSerializer,
    AnalyticsEvent.ACTION_LOGOUT: UserPayloadSerializer,
    AnalyticsEvent.ACTION_SEARCH: SearchPayloadSerializer,
    AnalyticsEvent.ACTION_FILE_DOWNLOAD: FilePayloadSerializer,
    AnalyticsEvent.ACTION_FILE_PREVIEW: FilePayloadSerializer,
    AnalyticsEvent.ACTION_PAGE_VIEW: PagePayloadSerializer,
    AnalyticsEvent.ACTION_PAGE_BLUR: PagePayloadSerializer,
    AnalyticsEvent.ACTION_PAGE_FOCUS: PagePayloadSerializer,
    AnalyticsEvent.ACTION_CATEGORY_FILTER: CategoryFilterPayloadSerializer,
    AnalyticsEvent.ACTION_SESSION_START: SessionStartPayloadSerializer,
    AnalyticsEvent.ACTION_SESSION_END: SessionEndPayloadSerializer,
    AnalyticsEvent.ACTION_INTERACTION: InteractionPayloadSerializer,
}


class AnalyticsEventSerializer(serializers.ModelSerializer):
    """Serializer for AnalyticsEvent using the client-facing camelCase names."""
    id = serializers.UUIDField(source='event_id', read_only=True)
    userId = serializers.CharField(source='user_id', read_only=True)
    userAgent = serializers.CharField(source='user_agent', read_only=True)
    sessionId = serializers.CharField(source='session_id', read_only=True)

    class Meta:
        model = AnalyticsEvent
        fields = [
            'id',
            'timestamp',
            'userId',
            'username',
            'action',
            'data',
            'userAgent',
            'url',
            'sessionId',
        ]
        read_only_fields = fields


class TrackEventSerializer(serializers.Serializer):
    """
    Input for recording an event.

    The acting user and user agent come from the request, not the body.
    The payload shape is checked per action by EventLog.record.
    """
    action = serializers.ChoiceField(choices=list(EVENT_PAYLOAD_SERIALIZERS))
    data = serializers.JSONField(required=False, default=dict)
    url = serializers.CharField(required=False, allow_blank=True, default='', max_length=2048)
    sessionId = serializers.CharField(required=False, allow_blank=True, default='', max_length=64)


class TopFileSerializer(serializers.Serializer):
    fileName = serializers.CharField()
    downloads = serializers.IntegerField()
    previews = serializers.IntegerField()


class UserActivitySerializer(serializers.Serializer):
    userId = serializers.CharField()
    username = serializers.CharField()
    lastActive = serializers.DateTimeField()
    downloads = serializers.IntegerField()
    previews = serializers.IntegerField()
    searches = serializers.IntegerField()


class AnalyticsSummarySerializer(serializers.Serializer):
    """Serializer for the aggregated analytics summary."""
    timeRange = serializers.CharField()
    generatedAt = serializers.DateTimeField()
    totalUsers = serializers.IntegerField()
    activeUsers = serializers.IntegerField()
    totalDownloads = serializers.IntegerField()
    totalPreviews = serializers.IntegerField()
    totalSearches = serializers.IntegerField()
    topFiles = TopFileSerializer(many=True)
    userActivity = UserActivitySerializer(many=True)
    recentActivity = AnalyticsEventSerializer(many=True)
