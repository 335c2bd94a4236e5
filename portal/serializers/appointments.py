from rest_framework import serializers

from portal.models import Appointment


class BookingSerializer(serializers.Serializer):
    """Patient self-booking; the patient is the caller."""
    doctorId = serializers.IntegerField()
    date = serializers.CharField()
    reason = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    timeSlot = serializers.CharField(required=False, allow_blank=True, max_length=32)


class AppointmentCreateSerializer(BookingSerializer):
    patientId = serializers.IntegerField()


class AppointmentListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Appointment.STATUS_CHOICES], required=False)
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=200)


class TransitionSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)
