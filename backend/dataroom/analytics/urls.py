"""
URL configuration for analytics endpoints.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import AnalyticsEventViewSet, AnalyticsExportView, AnalyticsSummaryView

router = DefaultRouter()
router.register(r'events', AnalyticsEventViewSet, basename='analytics-event')

urlpatterns = [
    path('summary/', AnalyticsSummaryView.as_view(), name='analytics-summary'),
    path('export/<str:export_format>/', AnalyticsExportView.as_view(), name='analytics-export'),
    path('', include(router.urls)),
]
