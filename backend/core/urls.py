"""
Root URL configuration.

/api/      - Dataroom API (files, upload, browse, auth, users, analytics)
/uploads/  - Uploaded files (served by Django only when DEBUG is on)
"""
from django.conf import settings
from django.urls import include, path, re_path
from django.views.static import serve

urlpatterns = [
    path('api/', include('dataroom.urls')),
]

if settings.DEBUG:
    prefix = settings.DATAROOM_UPLOAD_URL_PREFIX.strip('/')
    urlpatterns += [
        re_path(
            rf'^{prefix}/(?P<path>[^/]+)$',
            serve,
            {'document_root': settings.DATAROOM_UPLOAD_DIR},
        ),
    ]
