from django.contrib.auth import get_user_model
from rest_framework import serializers

from apps.users.models import Organization, Permission, Role, slug_validator

User = get_user_model()


class OrganizationSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Organization
        fields = ["id", "name", "slug"]


class RoleSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Role
        fields = ["id", "name", "description", "permissions"]


class UserSerializer(serializers.ModelSerializer):
    role = RoleSummarySerializer(read_only=True)
    organization = OrganizationSummarySerializer(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "external_id",
            "email",
            "first_name",
            "last_name",
            "display_name",
            "avatar_url",
            "role",
            "organization",
            "date_joined",
            "updated_at",
        ]
        read_only_fields = fields


class RegistrationSerializer(serializers.Serializer):
    email = serializers.EmailField()
    first_name = serializers.CharField(min_length=1, max_length=50)
    last_name = serializers.CharField(min_length=1, max_length=50)


class UserAssignmentSerializer(serializers.ModelSerializer):
    role = serializers.PrimaryKeyRelatedField(queryset=Role.objects.all(), allow_null=True, required=False)
    organization = serializers.PrimaryKeyRelatedField(
        queryset=Organization.objects.all(), allow_null=True, required=False
    )

    class Meta:
        model = User
        fields = ["role", "organization"]


class RoleSerializer(serializers.ModelSerializer):
    permissions = serializers.ListField(
        child=serializers.ChoiceField(choices=Permission.choices),
        allow_empty=True,
    )
    description = serializers.CharField(max_length=200, required=False, allow_blank=True)
    organization = serializers.PrimaryKeyRelatedField(
        queryset=Organization.objects.all(), allow_null=True, required=False
    )
    organization_detail = OrganizationSummarySerializer(source="organization", read_only=True)
    user_count = serializers.SerializerMethodField()

    class Meta:
        model = Role
        fields = [
            "id",
            "name",
            "description",
            "permissions",
            "organization",
            "organization_detail",
            "user_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]
        # Uniqueness is checked in validate() with a readable message
        validators = []

    def get_user_count(self, obj):
        annotated = getattr(obj, "user_count", None)
        return annotated if annotated is not None else obj.users.count()

    def validate_permissions(self, value):
        # Order is irrelevant, duplicates are dropped
        return sorted(set(value))

    def validate(self, attrs):
        if self.instance is not None:
            # Organization is fixed once the role exists
            attrs.pop("organization", None)
            organization = self.instance.organization
        else:
            organization = attrs.get("organization")

        name = attrs.get("name", getattr(self.instance, "name", None))
        clash = Role.objects.filter(name=name, organization=organization)
        if self.instance is not None:
            clash = clash.exclude(pk=self.instance.pk)
        if clash.exists():
            raise serializers.ValidationError({"name": "Role name already exists"})
        return attrs


class OrganizationSerializer(serializers.ModelSerializer):
    slug = serializers.CharField(max_length=50, validators=[slug_validator])
    user_count = serializers.SerializerMethodField()
    role_count = serializers.SerializerMethodField()

    class Meta:
        model = Organization
        fields = ["id", "name", "slug", "settings", "user_count", "role_count", "created_at", "updated_at"]
        read_only_fields = ["created_at", "updated_at"]

    def get_user_count(self, obj):
        return obj.users.count()

    def get_role_count(self, obj):
        return obj.roles.count()

    def validate_slug(self, value):
        if Organization.objects.filter(slug=value).exists():
            raise serializers.ValidationError("Organization slug already exists")
        return value

    def validate_settings(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Must be an object")
        return value


class OrganizationUpdateSerializer(OrganizationSerializer):
    """Same shape, but the slug cannot change after creation."""

    slug = serializers.CharField(read_only=True)

    class Meta(OrganizationSerializer.Meta):
        pass


class OrganizationMemberSerializer(serializers.ModelSerializer):
    role = serializers.CharField(source="role.name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "external_id", "email", "first_name", "last_name", "role"]


class OrganizationDetailSerializer(OrganizationSerializer):
    users = OrganizationMemberSerializer(many=True, read_only=True)
    roles = RoleSerializer(many=True, read_only=True)

    class Meta(OrganizationSerializer.Meta):
        fields = OrganizationSerializer.Meta.fields + ["users", "roles"]
