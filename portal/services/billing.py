"""
Billing aggregation and invoice bookkeeping.

Amounts are :class:`~decimal.Decimal` throughout and quantized to cents.
Stored invoices are checked before they are summed or written: an
invoice whose amounts or status break the rules raises
:class:`IntegrityError` instead of being clamped into a plausible total.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, NamedTuple, Optional, Tuple

import bleach
from django.db import transaction
from django.utils import timezone

from portal.exceptions import IntegrityError, InvalidTransition, NotFoundError, ValidationError
from portal.gate import authorize
from portal.models import Invoice, Payment, Role, User
from portal.services.appointments import resolve_date
from portal.services.audit import log_action

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
PAYMENT_METHODS = {code for code, _ in Payment.METHOD_CHOICES}


class BillingSummary(NamedTuple):
    pending_total: Decimal
    paid_total: Decimal

    def as_dict(self) -> dict:
        return {'pendingTotal': str(self.pending_total), 'paidTotal': str(self.paid_total)}


def parse_amount(value, field: str = 'amount') -> Decimal:
    """Parse client input into a cent-precise Decimal or raise ValidationError."""
    if value is None or value == '':
        raise ValidationError(f'{field} is required')
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number')
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number')
    if not amount.is_finite():
        raise ValidationError(f'{field} must be a number')
    if amount != amount.quantize(CENT):
        raise ValidationError(f'{field} has more than two decimal places')
    return amount.quantize(CENT)


def derive_status(total: Decimal, paid: Decimal, due_date: Optional[datetime] = None,
                  now: Optional[datetime] = None) -> str:
    if paid >= total:
        return Invoice.STATUS_PAID
    now = now or timezone.now()
    if due_date is not None and due_date < now:
        return Invoice.STATUS_OVERDUE
    if paid > 0:
        return Invoice.STATUS_PARTIAL
    return Invoice.STATUS_PENDING


def _fail(invoice, message: str) -> IntegrityError:
    ref = getattr(invoice, 'invoice_number', None) or getattr(invoice, 'pk', None)
    logger.error('invoice %s failed integrity check: %s', ref, message)
    return IntegrityError(f'Invoice {ref}: {message}', invoice_id=getattr(invoice, 'pk', None))


def check_integrity(invoice, now: Optional[datetime] = None) -> Tuple[Decimal, Decimal]:
    """Validate one invoice and return its ``(total, paid)`` amounts.

    Requires ``0 <= paid <= total`` and a status the amounts allow:
    ``paid`` only when fully paid, ``partial`` only with a part payment,
    ``pending`` only with nothing paid.  ``overdue`` needs an open balance
    and a due date before ``now``.
    """
    try:
        total = Decimal(invoice.total_amount)
        paid = Decimal(invoice.paid_amount if invoice.paid_amount is not None else 0)
    except (InvalidOperation, TypeError, ValueError):
        raise _fail(invoice, 'amounts are not numeric')
    if not (total.is_finite() and paid.is_finite()):
        raise _fail(invoice, 'amounts are not finite')
    if total < 0 or paid < 0:
        raise _fail(invoice, 'negative amount')
    if paid > total:
        raise _fail(invoice, f'paid {paid} exceeds total {total}')

    status = invoice.status
    if status == Invoice.STATUS_PAID:
        consistent = paid == total
    elif status == Invoice.STATUS_PARTIAL:
        consistent = 0 < paid < total
    elif status == Invoice.STATUS_PENDING:
        consistent = paid == 0 and total > 0
    elif status == Invoice.STATUS_OVERDUE:
        due = invoice.due_date
        if due is None or due >= (now or timezone.now()):
            raise _fail(invoice, f'status overdue but due date {due} has not passed')
        consistent = paid < total
    else:
        consistent = False
    if not consistent:
        raise _fail(invoice, f'status {status!r} does not match paid {paid} of {total}')
    return total, paid


def aggregate(invoices: Iterable) -> BillingSummary:
    pending_total = ZERO
    paid_total = ZERO
    for invoice in invoices:
        total, paid = check_integrity(invoice)
        if invoice.status == Invoice.STATUS_PAID:
            paid_total += total
        else:
            pending_total += total - paid
    return BillingSummary(pending_total.quantize(CENT), paid_total.quantize(CENT))


def _next_invoice_number() -> str:
    return f"INV-{timezone.localdate():%Y%m%d}-{secrets.token_hex(3).upper()}"


def create_invoice(*, patient_id, total_amount, invoice_number: Optional[str] = None, invoice_date=None,
                   due_date=None, notes: str = '', actor=None) -> Invoice:
    total = parse_amount(total_amount, 'totalAmount')
    if total <= 0:
        raise ValidationError('totalAmount must be greater than zero')
    try:
        patient = User.objects.filter(pk=int(patient_id), role=Role.PATIENT).first()
    except (TypeError, ValueError):
        raise ValidationError('patientId must be an integer')
    if patient is None:
        raise NotFoundError('Patient not found')

    number = (invoice_number or '').strip() or _next_invoice_number()
    if Invoice.objects.filter(invoice_number=number).exists():
        raise ValidationError(f'Invoice number {number} already exists')
    issued = resolve_date(invoice_date) if invoice_date else timezone.now()
    due = resolve_date(due_date) if due_date else None
    if due is not None and due < issued:
        raise ValidationError('dueDate cannot be before invoiceDate')

    invoice = Invoice(
        patient=patient, invoice_number=number, invoice_date=issued, due_date=due,
        total_amount=total, paid_amount=ZERO, status=derive_status(total, ZERO, due),
        notes=bleach.clean((notes or '').strip(), strip=True), created_by_id=getattr(actor, 'id', None),
    )
    check_integrity(invoice)
    with transaction.atomic():
        invoice.save()
        log_action(user=actor, action='invoice_create', object_type='invoice', object_id=invoice.id,
                   detail={'number': number, 'total': str(total), 'patientId': patient.id})
    logger.info('invoice %s created for patient %s total=%s', number, patient.id, total)
    return invoice


def record_payment(invoice_id, amount, method: str = 'cash', reference: str = '', actor=None) -> Tuple[Invoice, Payment]:
    """Apply a payment to an invoice under a row lock.

    ``paid_amount`` only grows and never passes ``total_amount``; the
    status is re-derived from the new amounts.
    """
    amount = parse_amount(amount)
    if amount <= 0:
        raise ValidationError('amount must be greater than zero')
    if method not in PAYMENT_METHODS:
        raise ValidationError(f'method must be one of {", ".join(sorted(PAYMENT_METHODS))}')
    try:
        pk = int(invoice_id)
    except (TypeError, ValueError):
        raise NotFoundError('Invoice not found')

    with transaction.atomic():
        invoice = Invoice.objects.select_for_update().filter(pk=pk).first()
        if invoice is None:
            raise NotFoundError('Invoice not found')
        total, paid = check_integrity(invoice)
        if invoice.status == Invoice.STATUS_PAID:
            raise InvalidTransition(invoice.status, detail='Invoice is already paid')
        if amount > total - paid:
            raise ValidationError(f'amount exceeds outstanding balance {total - paid}')

        invoice.paid_amount = paid + amount
        invoice.status = derive_status(total, invoice.paid_amount, invoice.due_date)
        check_integrity(invoice)
        invoice.save(update_fields=['paid_amount', 'status'])
        payment = Payment.objects.create(
            invoice=invoice, amount=amount, method=method,
            reference=bleach.clean((reference or '').strip(), strip=True)[:64],
            received_by_id=getattr(actor, 'id', None),
        )
        log_action(user=actor, action='invoice_payment', object_type='invoice', object_id=invoice.id,
                   detail={'amount': str(amount), 'method': method, 'status': invoice.status})

    logger.info('payment %s on invoice %s, status now %s', amount, invoice.invoice_number, invoice.status)
    return invoice, payment


def refresh_overdue(now: Optional[datetime] = None) -> int:
    """Mark open invoices whose due date has passed as overdue."""
    now = now or timezone.now()
    changed = 0
    candidates = Invoice.objects.filter(
        due_date__lt=now, status__in=[Invoice.STATUS_PENDING, Invoice.STATUS_PARTIAL],
    ).values_list('pk', flat=True)
    for pk in list(candidates):
        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(pk=pk)
            total, paid = check_integrity(invoice)
            status = derive_status(total, paid, invoice.due_date, now)
            if status != invoice.status:
                invoice.status = status
                invoice.save(update_fields=['status'])
                changed += 1
    if changed:
        logger.info('marked %d invoices overdue', changed)
    return changed


def visible_invoices(identity, patient_id=None):
    qs = Invoice.objects.select_related('patient').order_by('-invoice_date', '-id')
    if identity is None:
        return qs.none()
    if identity.role == Role.PATIENT and authorize(identity, 'myBills'):
        return qs.filter(patient_id=identity.id)
    if authorize(identity, 'billing'):
        if patient_id:
            try:
                qs = qs.filter(patient_id=int(patient_id))
            except (TypeError, ValueError):
                raise ValidationError('patientId must be an integer')
        return qs
    return qs.none()


def format_invoice(invoice: Invoice) -> dict:
    return {
        'id': invoice.id,
        'invoiceNumber': invoice.invoice_number,
        'patientId': invoice.patient_id,
        'patientName': invoice.patient.name if invoice.patient_id else None,
        'invoiceDate': invoice.invoice_date.isoformat() if invoice.invoice_date else None,
        'dueDate': invoice.due_date.isoformat() if invoice.due_date else None,
        'totalAmount': str(Decimal(invoice.total_amount).quantize(CENT)),
        'paidAmount': str(Decimal(invoice.paid_amount).quantize(CENT)),
        'balance': str(invoice.balance.quantize(CENT)),
        'status': invoice.status,
        'notes': invoice.notes,
    }
