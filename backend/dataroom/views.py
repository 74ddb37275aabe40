import logging

from rest_framework import status, viewsets
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from contracts.models import AnalyticsEvent
from .exceptions import DataroomError, ValidationError
from .permissions import IsDataroomAdmin, IsDataroomUser
from .serializers import (
    BrowseQuerySerializer,
    FileRecordSerializer,
    FileUpdateSerializer,
    FileUploadSerializer,
    LoginSerializer,
    SessionUserSerializer,
    UserCreateSerializer,
    UserSerializer,
    UserUpdateSerializer,
)
from .services import EventLog, InventoryService, SessionManager, UploadService, UserDirectory

logger = logging.getLogger(__name__)


def error_response(exc: DataroomError) -> Response:
    """Uniform {'error': ...} response for an expected failure."""
    return Response({'error': str(exc)}, status=exc.status_code)


def server_error(message: str) -> Response:
    return Response({'error': message}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def first_error(errors) -> str:
    """Flatten DRF serializer errors into a single message."""
    for field, messages in errors.items():
        if isinstance(messages, dict):
            return first_error(messages)
        message = messages[0] if isinstance(messages, list) and messages else messages
        if field == 'non_field_errors':
            return str(message)
        return f'{field}: {message}'
    return 'Invalid input'


def client_context(request) -> dict:
    """User agent and URL of the request, for analytics events."""
    return {
        'user_agent': request.META.get('HTTP_USER_AGENT', ''),
        'url': request.build_absolute_uri(),
    }


class FileInventoryView(APIView):
    """
    Admin file inventory endpoint.

    GET    /api/files/             - Full inventory document
    PUT    /api/files/             - Update name / description / tags
    DELETE /api/files/?id=<fileId> - Delete a file record and its blob
    """
    permission_classes = [IsDataroomAdmin]
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    def get(self, request):
        try:
            document = InventoryService.list_files()
        except DataroomError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Failed to read files: {e}", exc_info=True)
            return server_error('Failed to read files')

        return Response({'success': True, 'data': document})

    def put(self, request):
        serializer = FileUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            if 'fileId' in serializer.errors:
                return error_response(ValidationError('File ID required'))
            return error_response(ValidationError(first_error(serializer.errors)))

        data = serializer.validated_data
        try:
            record = InventoryService.update_file(
                data['fileId'],
                name=data.get('name'),
                description=data.get('description'),
                tags=data.get('tags'),
            )
            payload = {'success': True, 'file': FileRecordSerializer(record).data}
        except DataroomError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Update failed for file {data['fileId']}: {e}", exc_info=True)
            return server_error('Failed to update file')

        return Response(payload)

    def delete(self, request):
        file_id = request.query_params.get('id') or request.query_params.get('fileId')
        if not file_id:
            return error_response(ValidationError('File ID required'))

        try:
            InventoryService.delete_file(file_id)
        except DataroomError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Delete failed for file {file_id}: {e}", exc_info=True)
            return server_error('Failed to delete file')

        return Response({'success': True, 'message': 'File deleted successfully'})


class FileUploadView(APIView):
    """
    POST /api/upload/

    Multipart upload: file (required), category, description, tags.
    """
    permission_classes = [IsDataroomAdmin]
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request):
        file_obj = request.FILES.get('file')
        if not file_obj:
            return error_response(ValidationError('No file provided'))

        serializer = FileUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError(first_error(serializer.errors)))

        try:
            record = UploadService.upload_file(
                file_obj,
                category=serializer.validated_data['category'],
                description=serializer.validated_data['description'],
                tags=serializer.validated_data['tags'],
            )
            payload = {
                'success': True,
                'file': FileRecordSerializer(record).data,
                'message': 'File uploaded successfully',
            }
        except DataroomError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Upload failed for {file_obj.name}: {e}", exc_info=True)
            return server_error('Failed to upload file')

        return Response(payload, status=status.HTTP_201_CREATED)


class BrowseView(APIView):
    """
    GET /api/browse/

    Query Parameters:
        category: 'all' (default), 'root' or a category id
        search: Case-insensitive match on name, description and tags
    """
    permission_classes = [IsDataroomUser]

    def get(self, request):
        query = BrowseQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return error_response(ValidationError(first_error(query.errors)))

        try:
            records = InventoryService.browse(
                category=query.validated_data['category'],
                search=query.validated_data['search'],
            )
            payload = {
                'success': True,
                'count': len(records),
                'results': FileRecordSerializer(records, many=True).data,
            }
        except DataroomError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Browse failed: {e}", exc_info=True)
            return server_error('Failed to load files')

        return Response(payload)


class LoginView(APIView):
    """POST /api/auth/login/ - Exchange credentials for a session token."""
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError('Username and password required'))

        try:
            user = UserDirectory.authenticate(
                serializer.validated_data['username'],
                serializer.validated_data['password'],
            )
        except DataroomError as e:
            return error_response(e)

        if user is None:
            return Response(
                {'error': 'Invalid username or password'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        token = SessionManager.start(user)
        EventLog.record(
            user_id=user['id'],
            username=user['username'],
            action=AnalyticsEvent.ACTION_LOGIN,
            data={'userId': user['id'], 'username': user['username']},
            **client_context(request),
        )

        return Response({
            'success': True,
            'token': token,
            'user': SessionUserSerializer(user).data,
        })


class LogoutView(APIView):
    """POST /api/auth/logout/ - End the current session."""
    permission_classes = [IsDataroomUser]

    def post(self, request):
        user = request.user
        EventLog.record(
            user_id=user.id,
            username=user.username,
            action=AnalyticsEvent.ACTION_LOGOUT,
            data={'userId': user.id, 'username': user.username},
            **client_context(request),
        )
        if request.auth:
            SessionManager.end(request.auth)

        return Response({'success': True})


class CurrentUserView(APIView):
    """GET /api/auth/me/ - The logged-in user."""
    permission_classes = [IsDataroomUser]

    def get(self, request):
        return Response({
            'success': True,
            'user': SessionUserSerializer(request.user.record).data,
        })


class UserViewSet(viewsets.ViewSet):
    """
    Admin user management.

    GET    /api/users/             - List users
    POST   /api/users/             - Create user
    PUT    /api/users/<username>/  - Update user
    DELETE /api/users/<username>/  - Delete user
    """
    permission_classes = [IsDataroomAdmin]
    lookup_field = 'username'
    lookup_value_regex = '[^/]+'

    def list(self, request):
        try:
            users = UserDirectory.list_users()
        except DataroomError as e:
            return error_response(e)
        return Response({'success': True, 'users': UserSerializer(users, many=True).data})

    def create(self, request):
        serializer = UserCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError(first_error(serializer.errors)))

        data = serializer.validated_data
        try:
            user = UserDirectory.create_user(
                username=data['username'],
                password=data['password'],
                role=data['role'],
                name=data['name'],
                email=data['email'],
                is_active=data['isActive'],
                permissions=data.get('permissions'),
            )
        except DataroomError as e:
            return error_response(e)

        return Response(
            {'success': True, 'user': UserSerializer(user).data},
            status=status.HTTP_201_CREATED
        )

    def update(self, request, username=None):
        serializer = UserUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError(first_error(serializer.errors)))

        try:
            user = UserDirectory.update_user(username, **serializer.validated_data)
        except DataroomError as e:
            return error_response(e)

        return Response({'success': True, 'user': UserSerializer(user).data})

    def destroy(self, request, username=None):
        if username == request.user.username:
            return error_response(ValidationError('You cannot delete your own account'))

        try:
            UserDirectory.delete_user(username)
        except DataroomError as e:
            return error_response(e)

        return Response({'success': True, 'message': 'User deleted successfully'})
