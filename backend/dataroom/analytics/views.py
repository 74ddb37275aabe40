"""
Views for usage analytics endpoints.
"""
import logging

from django.http import HttpResponse
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, status, viewsets
from rest_framework.pagination import LimitOffsetPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from contracts.models import AnalyticsEvent
from ..exceptions import DataroomError
from ..filters import AnalyticsEventFilter
from ..permissions import IsDataroomAdmin, IsDataroomUser
from ..services.analytics import DEFAULT_TIME_RANGE, AnalyticsAggregator, EventLog
from .reports import EXPORT_FORMATS, build_csv_report, build_json_report, export_filename
from .serializers import AnalyticsEventSerializer, AnalyticsSummarySerializer, TrackEventSerializer

logger = logging.getLogger(__name__)


class EventPagination(LimitOffsetPagination):
    default_limit = 50
    max_limit = 200


class AnalyticsEventViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    ViewSet for the analytics event log.

    Endpoints:
    - POST /api/analytics/events/ - Record an event for the current user
    - GET  /api/analytics/events/ - List events (admin), newest first

    Filtering: action, user_id, username, date_from, date_to
    """
    queryset = AnalyticsEvent.objects.all()
    serializer_class = AnalyticsEventSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = AnalyticsEventFilter
    pagination_class = EventPagination

    def get_permissions(self):
        if self.action == 'create':
            return [IsDataroomUser()]
        return [IsDataroomAdmin()]

    def get_queryset(self):
        return AnalyticsEvent.objects.order_by('-timestamp', '-id')

    def create(self, request, *args, **kwargs):
        """
        Record an event.

        The acting user and user agent come from the request; the body
        carries action, data and optionally url / sessionId.
        """
        serializer = TrackEventSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid event', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        data = serializer.validated_data
        try:
            event = EventLog.record(
                user_id=request.user.id,
                username=request.user.username,
                action=data['action'],
                data=data['data'],
                user_agent=request.META.get('HTTP_USER_AGENT', ''),
                url=data['url'],
                session_id=data['sessionId'],
            )
        except DataroomError as e:
            return Response({'error': str(e)}, status=e.status_code)

        return Response(
            AnalyticsEventSerializer(event).data,
            status=status.HTTP_201_CREATED
        )


class AnalyticsSummaryView(APIView):
    """
    GET /api/analytics/summary/

    Returns aggregated usage statistics.

    Query Parameters:
    - range: Time window, one of 1d, 7d, 30d, all (default: 7d)
    """
    permission_classes = [IsDataroomAdmin]

    def get(self, request):
        time_range = request.query_params.get('range', DEFAULT_TIME_RANGE)
        try:
            summary = AnalyticsAggregator.summarize(EventLog.events(), time_range)
        except DataroomError as e:
            return Response({'error': str(e)}, status=e.status_code)
        except Exception as e:
            logger.error(f"Failed to build analytics summary: {e}", exc_info=True)
            return Response(
                {'error': 'Failed to calculate analytics'},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        return Response(AnalyticsSummarySerializer(summary).data)


class AnalyticsExportView(APIView):
    """
    GET /api/analytics/export/<csv|json>/

    Downloads the analytics summary as a file attachment.

    Query Parameters:
    - range: Time window, one of 1d, 7d, 30d, all (default: 7d)
    """
    permission_classes = [IsDataroomAdmin]

    def get(self, request, export_format):
        if export_format not in EXPORT_FORMATS:
            return Response(
                {'error': f"Invalid export format '{export_format}'. "
                          f"Must be one of: {', '.join(EXPORT_FORMATS)}"},
                status=status.HTTP_400_BAD_REQUEST
            )

        time_range = request.query_params.get('range', DEFAULT_TIME_RANGE)
        try:
            summary = AnalyticsAggregator.summarize(EventLog.events(), time_range)
            data = AnalyticsSummarySerializer(summary).data
            if export_format == 'csv':
                response = HttpResponse(build_csv_report(data), content_type='text/csv; charset=utf-8')
            else:
                response = Response(build_json_report(data))
        except DataroomError as e:
            return Response({'error': str(e)}, status=e.status_code)
        except Exception as e:
            logger.error(f"Failed to export analytics: {e}", exc_info=True)
            return Response(
                {'error': 'Failed to export analytics'},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        filename = export_filename(data, export_format)
        response['Content-Disposition'] = f'attachment; filename="{filename}"'
        logger.info(f"Exported {time_range} analytics as {export_format} for {request.user}")
        return response
