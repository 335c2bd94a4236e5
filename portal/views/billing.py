"""
Invoice endpoints for billing staff.

Every list response carries a summary computed by the billing
aggregator over the same invoices, so totals and rows never disagree.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..exceptions import NotFoundError
from ..gate import require
from ..permissions import capability_required
from ..serializers.billing import InvoiceCreateSerializer, InvoiceListQuerySerializer, PaymentSerializer
from ..services import billing
from ..session import current_identity


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability_required('billing')])
def invoice_collection(request):
    identity = current_identity(request)
    if request.method == 'POST':
        require(identity, 'billing.manage')
        s = InvoiceCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        invoice = billing.create_invoice(
            patient_id=vd['patientId'], total_amount=vd['totalAmount'],
            invoice_number=vd.get('invoiceNumber'), invoice_date=vd.get('invoiceDate'),
            due_date=vd.get('dueDate'), notes=vd.get('notes', ''), actor=identity,
        )
        return Response({'ok': True, 'data': billing.format_invoice(invoice)}, status=201)

    q = InvoiceListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = billing.visible_invoices(identity, patient_id=q.validated_data.get('patientId'))
    if q.validated_data.get('status'):
        qs = qs.filter(status=q.validated_data['status'])
    invoices = list(qs)
    return Response({
        'ok': True,
        'data': [billing.format_invoice(i) for i in invoices],
        'summary': billing.aggregate(invoices).as_dict(),
    })


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability_required('billing')])
def invoice_payments(request, invoice_id: int):
    """GET lists payments on an invoice; POST records one (``billing.manage``)."""
    identity = current_identity(request)
    if request.method == 'POST':
        require(identity, 'billing.manage')
        s = PaymentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        invoice, payment = billing.record_payment(
            invoice_id, vd['amount'], method=vd['method'], reference=vd.get('reference', ''), actor=identity,
        )
        return Response({
            'ok': True,
            'data': billing.format_invoice(invoice),
            'payment': {'id': payment.id, 'amount': str(payment.amount), 'method': payment.method},
        }, status=201)

    invoice = billing.visible_invoices(identity).filter(pk=invoice_id).first()
    if invoice is None:
        raise NotFoundError('Invoice not found')
    payments = [
        {
            'id': p.id,
            'amount': str(p.amount),
            'method': p.method,
            'reference': p.reference,
            'receivedBy': p.received_by_id,
            'createdAt': p.created_at.isoformat(),
        }
        for p in invoice.payments.order_by('created_at', 'id')
    ]
    return Response({'ok': True, 'data': payments})
