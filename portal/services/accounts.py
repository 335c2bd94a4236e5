from typing import Optional

from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

import bleach

from portal.exceptions import NotFoundError, ValidationError
from portal.models import Role, User
from portal.services.appointments import invalidate_doctors_cache
from portal.services.audit import log_action

STAFF_ROLES = tuple(r for r in Role.values if r != Role.PATIENT)


def _check_password(password: str, user: Optional[User] = None) -> None:
    try:
        validate_password(password, user=user)
    except DjangoValidationError as e:
        raise ValidationError({'password': e.messages})


def _clean(value) -> str:
    return bleach.clean((value or '').strip(), strip=True)


def _new_user(*, email: str, password: str, name: str, role: str, phone: str = '') -> User:
    email = (email or '').strip().lower()
    if not email or '@' not in email:
        raise ValidationError('A valid email is required')
    if not password:
        raise ValidationError('password is required')
    name = _clean(name)
    if not name:
        raise ValidationError('name is required')
    if User.objects.filter(email__iexact=email).exists():
        raise ValidationError('An account with this email already exists')
    _check_password(password, User(email=email, name=name))
    return User.objects.create_user(email=email, password=password, name=name, role=role, phone=_clean(phone))


def signup(*, email: str, password: str, name: str, phone: str = '') -> User:
    """Self-registration; the account is always a patient."""
    with transaction.atomic():
        user = _new_user(email=email, password=password, name=name, role=Role.PATIENT, phone=phone)
        log_action(user=user, action='signup', object_type='user', object_id=user.id)
    return user


def create_staff(*, email: str, password: str, name: str, role: str, phone: str = '', actor=None) -> User:
    if role not in STAFF_ROLES:
        raise ValidationError(f'role must be one of {", ".join(STAFF_ROLES)}')
    with transaction.atomic():
        user = _new_user(email=email, password=password, name=name, role=role, phone=phone)
        log_action(user=actor, action='staff_create', object_type='user', object_id=user.id, detail={'role': role})
    if role == Role.DOCTOR:
        invalidate_doctors_cache()
    return user


def update_staff(user_id, *, actor=None, name=None, phone=None, is_active=None) -> User:
    """Edit a staff member's name, phone or active flag.  Roles are fixed."""
    try:
        user = User.objects.filter(pk=int(user_id)).exclude(role=Role.PATIENT).first()
    except (TypeError, ValueError):
        user = None
    if user is None:
        raise NotFoundError('Staff member not found')

    fields = []
    if name is not None:
        name = _clean(name)
        if not name:
            raise ValidationError('name cannot be empty')
        user.name = name
        fields.append('name')
    if phone is not None:
        user.phone = _clean(phone)
        fields.append('phone')
    if is_active is not None:
        if not is_active and getattr(actor, 'id', None) == user.id:
            raise ValidationError('You cannot deactivate your own account')
        user.is_active = bool(is_active)
        fields.append('is_active')
    if fields:
        user.save(update_fields=fields)
        log_action(user=actor, action='staff_update', object_type='user', object_id=user.id,
                   detail={'fields': fields})
        if user.role == Role.DOCTOR:
            invalidate_doctors_cache()
    return user


def update_profile(user: User, *, name=None, phone=None) -> User:
    fields = []
    if name is not None:
        name = _clean(name)
        if not name:
            raise ValidationError('name cannot be empty')
        user.name = name
        fields.append('name')
    if phone is not None:
        user.phone = _clean(phone)
        fields.append('phone')
    if fields:
        user.save(update_fields=fields)
        if user.role == Role.DOCTOR:
            invalidate_doctors_cache()
    return user


def change_password(user: User, *, current: str, new: str) -> None:
    if not user.check_password(current or ''):
        raise ValidationError({'currentPassword': ['Current password is incorrect']})
    if not new:
        raise ValidationError({'newPassword': ['New password is required']})
    _check_password(new, user)
    user.set_password(new)
    user.save(update_fields=['password'])
    log_action(user=user, action='password_change', object_type='user', object_id=user.id)
