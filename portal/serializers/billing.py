from rest_framework import serializers

from portal.models import Payment


class InvoiceCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    totalAmount = serializers.DecimalField(max_digits=12, decimal_places=2)
    invoiceNumber = serializers.CharField(required=False, allow_blank=True, max_length=40)
    invoiceDate = serializers.CharField(required=False, allow_blank=True)
    dueDate = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class PaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.ChoiceField(choices=[c for c, _ in Payment.METHOD_CHOICES], default='cash')
    reference = serializers.CharField(required=False, allow_blank=True, max_length=64)


class InvoiceListQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(required=False)
    status = serializers.CharField(required=False)
