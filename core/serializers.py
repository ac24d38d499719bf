from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from core.models import AuditLog

User = get_user_model()


def _unique_email(value, instance=None):
    normalized_email = value.strip().lower()
    duplicates = User.objects.filter(email__iexact=normalized_email)
    if instance is not None:
        duplicates = duplicates.exclude(pk=instance.pk)
    if normalized_email and duplicates.exists():
        raise serializers.ValidationError("A user with this email already exists.")
    return normalized_email


class UserRegistrationSerializer(serializers.ModelSerializer):
    username = serializers.CharField(required=False, allow_blank=True, max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ["id", "username", "email", "password", "name", "image", "role"]
        read_only_fields = ["id", "role"]

    def validate_email(self, value):
        return _unique_email(value)

    def validate(self, attrs):
        username = attrs.get("username") or attrs["email"]
        if User.objects.filter(username=username).exists():
            raise serializers.ValidationError({"username": "A user with that username already exists."})
        attrs["username"] = username
        return attrs

    def create(self, validated_data):
        # Self-registered accounts hold no role until an admin grants one.
        return User.objects.create_user(
            username=validated_data["username"],
            email=validated_data["email"],
            password=validated_data["password"],
            name=validated_data.get("name", ""),
            image=validated_data.get("image") or None,
        )


class EmailOrUsernameTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["role"] = getattr(user, "role", None)
        token["name"] = user.display_name
        token["email"] = user.email
        token["is_superuser"] = user.is_superuser
        return token

    def validate(self, attrs):
        username = attrs.get("username", "")
        if username and "@" in username:
            try:
                user = User.objects.get(email__iexact=username)
                attrs["username"] = user.get_username()
            except User.DoesNotExist:
                pass
        return super().validate(attrs)


class UserSerializer(serializers.ModelSerializer):
    """Admin view of a user account; the role is the only access control knob."""

    password = serializers.CharField(write_only=True, required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=User.Role.choices, allow_null=True, required=False)

    class Meta:
        model = User
        fields = ["id", "email", "name", "image", "role", "password", "is_active", "date_joined", "updated_at"]
        read_only_fields = ["id", "is_active", "date_joined", "updated_at"]

    def validate_email(self, value):
        return _unique_email(value, instance=self.instance)

    def validate(self, attrs):
        if self.instance is None and not attrs.get("email"):
            raise serializers.ValidationError({"email": "This field is required."})
        return attrs

    def create(self, validated_data):
        password = validated_data.pop("password", None)
        user = User(username=validated_data["email"], **validated_data)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save()
        return user

    def update(self, instance, validated_data):
        password = validated_data.pop("password", None)
        for field, value in validated_data.items():
            setattr(instance, field, value)
        if password:
            instance.set_password(password)
        instance.save()
        return instance


class AuditLogSerializer(serializers.ModelSerializer):
    actor_email = serializers.CharField(source="actor.email", read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = [
            "id",
            "actor",
            "actor_email",
            "action",
            "entity",
            "entity_id",
            "before_snapshot",
            "after_snapshot",
            "request_id",
            "created_at",
        ]
        read_only_fields = fields
