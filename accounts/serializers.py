from django.conf import settings
from rest_framework import serializers
from rest_framework.exceptions import PermissionDenied
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import User

MIN_PASSWORD_LENGTH = settings.SCHOOL_MANAGEMENT['MIN_PASSWORD_LENGTH']


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ('id', 'username', 'email', 'phone', 'first_name', 'last_name', 'role', 'school', 'is_active')
        read_only_fields = fields


class UserMiniSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ('id', 'username', 'first_name', 'last_name', 'full_name', 'email', 'phone')


class RegisterUserSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=MIN_PASSWORD_LENGTH)

    class Meta:
        model = User
        fields = ('id', 'username', 'email', 'phone', 'first_name', 'last_name', 'role', 'school', 'password')
        extra_kwargs = {'school': {'required': False}}

    def validate_username(self, value):
        value = value.strip().lower()
        if User.objects.filter(username=value).exists():
            raise serializers.ValidationError('Username is already taken')
        return value

    def validate(self, attrs):
        actor = self.context['request'].user
        role = attrs.get('role')
        if actor.role != 'superadmin':
            if role in ('superadmin', 'admin'):
                raise serializers.ValidationError({'role': 'Only a superadmin can create admin accounts'})
            attrs['school'] = actor.school
        elif role != 'superadmin' and not attrs.get('school'):
            raise serializers.ValidationError({'school': 'School is required for this role'})
        if role == 'superadmin':
            attrs['school'] = None
        return attrs

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, **validated_data)


class ChangePasswordSerializer(serializers.Serializer):
    old_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True, min_length=MIN_PASSWORD_LENGTH, max_length=50)

    def validate_old_password(self, value):
        user = self.context['request'].user
        if not user.check_password(value):
            raise serializers.ValidationError('Current password is incorrect')
        return value


class SetPasswordSerializer(serializers.Serializer):
    password = serializers.CharField(write_only=True, min_length=MIN_PASSWORD_LENGTH, max_length=50)


class SchoolTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['role'] = user.role
        token['school_id'] = user.school_id
        token['first_name'] = user.first_name
        token['last_name'] = user.last_name
        return token

    def validate(self, attrs):
        username = attrs.get(self.username_field)
        if username:
            attrs[self.username_field] = username.strip().lower()
        data = super().validate(attrs)

        school = self.user.school
        if self.user.role != 'superadmin' and (school is None or not school.is_active()):
            raise PermissionDenied('School is not active. Please contact support.')

        data['user'] = UserSerializer(self.user).data
        return data
