from rest_framework import serializers

from apps.projects.documents import Priority, ProjectStatus, TaskStatus, parse_object_id, to_storage


class ObjectIdField(serializers.CharField):
    default_error_messages = {"invalid_id": "Invalid id"}

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        if parse_object_id(value) is None:
            self.fail("invalid_id")
        return value


class StorageDateTimeField(serializers.DateTimeField):
    """Accepts ISO-8601 input and hands repositories naive UTC datetimes."""

    def to_internal_value(self, value):
        return to_storage(super().to_internal_value(value))


class AttachmentSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    url = serializers.URLField(max_length=1000)
    type = serializers.CharField(max_length=100)
    size = serializers.IntegerField(min_value=0)


class ProjectCreateSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=1, max_length=100)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=Priority.choices)
    team_members = serializers.ListField(child=serializers.CharField(max_length=191), required=False)
    start_date = StorageDateTimeField(required=False)
    end_date = StorageDateTimeField(required=False, allow_null=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    settings = serializers.DictField(required=False)

    def validate_team_members(self, value):
        # Keep order, drop duplicates
        return list(dict.fromkeys(value))

    def validate(self, attrs):
        start, end = attrs.get("start_date"), attrs.get("end_date")
        if start and end and end < start:
            raise serializers.ValidationError({"end_date": "End date must not be before the start date"})
        return attrs


class ProjectUpdateSerializer(ProjectCreateSerializer):
    status = serializers.ChoiceField(choices=ProjectStatus.choices, required=False)
    progress = serializers.IntegerField(min_value=0, max_value=100, required=False)


class TaskCreateSerializer(serializers.Serializer):
    title = serializers.CharField(min_length=1, max_length=200)
    description = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=Priority.choices)
    project_id = ObjectIdField()
    assignee_id = serializers.CharField(max_length=191, required=False, allow_null=True, allow_blank=True)
    due_date = StorageDateTimeField(required=False, allow_null=True)
    estimated_hours = serializers.FloatField(min_value=0, required=False, allow_null=True)
    dependencies = serializers.ListField(child=ObjectIdField(), required=False)
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    attachments = AttachmentSerializer(many=True, required=False)

    def validate_assignee_id(self, value):
        return value or None

    def validate_dependencies(self, value):
        return list(dict.fromkeys(value))


class TaskUpdateSerializer(TaskCreateSerializer):
    status = serializers.ChoiceField(choices=TaskStatus.choices, required=False)
    actual_hours = serializers.FloatField(min_value=0, required=False, allow_null=True)
