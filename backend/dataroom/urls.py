from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    BrowseView,
    CurrentUserView,
    FileInventoryView,
    FileUploadView,
    LoginView,
    LogoutView,
    UserViewSet,
)

router = DefaultRouter()
router.register(r'users', UserViewSet, basename='user')

urlpatterns = [
    path('files/', FileInventoryView.as_view(), name='file-inventory'),
    path('upload/', FileUploadView.as_view(), name='file-upload'),
    path('browse/', BrowseView.as_view(), name='file-browse'),
    path('auth/login/', LoginView.as_view(), name='auth-login'),
    path('auth/logout/', LogoutView.as_view(), name='auth-logout'),
    path('auth/me/', CurrentUserView.as_view(), name='auth-me'),
    path('analytics/', include('dataroom.analytics.urls')),
    path('', include(router.urls)),
]
