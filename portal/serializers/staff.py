from rest_framework import serializers

from portal.services.accounts import STAFF_ROLES


class StaffCreateSerializer(serializers.Serializer):
    email = serializers.EmailField(max_length=254)
    password = serializers.CharField(write_only=True, trim_whitespace=False)
    name = serializers.CharField(max_length=128)
    role = serializers.ChoiceField(choices=STAFF_ROLES)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)


class StaffUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, max_length=128)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    isActive = serializers.BooleanField(required=False)

    def validate(self, attrs):
        # role is fixed at creation
        if 'role' in self.initial_data:
            raise serializers.ValidationError({'role': 'role cannot be changed'})
        return attrs


class StaffListQuerySerializer(serializers.Serializer):
    role = serializers.CharField(required=False)
    q = serializers.CharField(required=False, allow_blank=True)
