from rest_framework import serializers

from .services.upload import FILE_TYPES
from .services.users import ROLES


class FileRecordSerializer(serializers.Serializer):
    """
    Serializer for a FileRecord from the inventory document.
    Field names match the inventory JSON (camelCase).

    Only id, name and downloadUrl are guaranteed; hand-edited or older
    records may lack the rest, which are then left out of the output.
    """
    id = serializers.CharField()
    name = serializers.CharField()
    type = serializers.ChoiceField(choices=FILE_TYPES, required=False)
    size = serializers.CharField(required=False)
    lastModified = serializers.CharField(required=False)
    description = serializers.CharField(allow_blank=True, required=False)
    tags = serializers.ListField(child=serializers.CharField(allow_blank=True), required=False)
    category = serializers.CharField(required=False)
    downloadUrl = serializers.CharField()
    previewUrl = serializers.CharField(required=False)


class TagsField(serializers.Field):
    """Tags given either as a comma separated string or a list of strings."""

    default_error_messages = {
        'invalid': 'Tags must be a string or a list of strings.',
    }

    def to_internal_value(self, data):
        if isinstance(data, str):
            return data
        if isinstance(data, (list, tuple)) and all(isinstance(tag, str) for tag in data):
            return list(data)
        self.fail('invalid')

    def to_representation(self, value):
        return value


class FileUpdateSerializer(serializers.Serializer):
    """Input for the metadata update endpoint."""
    fileId = serializers.CharField()
    name = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    tags = TagsField(required=False, allow_null=True)


class FileUploadSerializer(serializers.Serializer):
    """Metadata fields sent alongside an uploaded file."""
    category = serializers.CharField(required=False, allow_blank=True, default='root')
    description = serializers.CharField(required=False, allow_blank=True, default='')
    tags = serializers.CharField(required=False, allow_blank=True, default='')


class BrowseQuerySerializer(serializers.Serializer):
    category = serializers.CharField(required=False, allow_blank=True, default='all')
    search = serializers.CharField(required=False, allow_blank=True, default='', max_length=255)


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField()


class UserPermissionsSerializer(serializers.Serializer):
    canDownload = serializers.BooleanField(default=True)
    canPreview = serializers.BooleanField(default=True)
    allowedCategories = serializers.ListField(child=serializers.CharField(), default=list)


class UserSerializer(serializers.Serializer):
    """
    Serializer for a user account as shown to admins.

    The password is included: the admin console displays and shares it.
    """
    id = serializers.CharField()
    username = serializers.CharField()
    password = serializers.CharField()
    role = serializers.ChoiceField(choices=ROLES)
    name = serializers.CharField(allow_blank=True)
    email = serializers.CharField(allow_blank=True)
    isActive = serializers.BooleanField()
    permissions = UserPermissionsSerializer(required=False)
    createdAt = serializers.CharField(required=False)


class SessionUserSerializer(serializers.Serializer):
    """The logged-in user, without credentials."""
    id = serializers.CharField()
    username = serializers.CharField()
    role = serializers.CharField()
    name = serializers.CharField(allow_blank=True)
    email = serializers.CharField(allow_blank=True)
    permissions = UserPermissionsSerializer(required=False)


class UserCreateSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(required=False, allow_blank=True, default='')
    role = serializers.ChoiceField(choices=ROLES, default='investor')
    name = serializers.CharField(required=False, allow_blank=True, default='')
    email = serializers.EmailField(required=False, allow_blank=True, default='')
    isActive = serializers.BooleanField(required=False, default=True)
    permissions = UserPermissionsSerializer(required=False)


class UserUpdateSerializer(serializers.Serializer):
    password = serializers.CharField(required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=ROLES, required=False)
    name = serializers.CharField(required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    isActive = serializers.BooleanField(required=False)
    permissions = UserPermissionsSerializer(required=False)
