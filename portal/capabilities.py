"""
Role to capability mapping.

Every role gets the same five named sections (main, clinical, inpatient,
operations, admin), each holding an ordered list of navigation items.  A
navigation item grants its own view capability (``appointments``) plus
the action capabilities attached to it (``appointments.cancel``).  The
table below is the only place that decides what a role may reach; the
access gate and the menus rendered by the front-end both read it.

Unknown roles resolve to a set whose sections are all empty.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from .models import Role

SECTIONS = ('main', 'clinical', 'inpatient', 'operations', 'admin')


@dataclass(frozen=True)
class Capability:
    key: str
    view: str
    label: str = ''

    @property
    def is_navigation(self) -> bool:
        return '.' not in self.key

    def as_dict(self) -> dict:
        return {'key': self.key, 'view': self.view, 'label': self.label}


@dataclass(frozen=True)
class NavItem:
    key: str
    href: str
    label: str
    actions: tuple[str, ...] = ()

    def capabilities(self) -> tuple[Capability, ...]:
        caps = [Capability(self.key, self.href, self.label)]
        caps.extend(Capability(f'{self.key}.{action}', self.href, f'{self.label}: {action}') for action in self.actions)
        return tuple(caps)


NAV_ITEMS: dict[str, NavItem] = {item.key: item for item in (
    NavItem('dashboard', '/', 'Dashboard'),
    NavItem('doctors', '/doctors', 'Doctors', ('manage',)),
    NavItem('patients', '/patients', 'Patients', ('manage',)),
    NavItem('appointments', '/appointments', 'Appointments', ('book', 'cancel', 'start', 'complete')),
    NavItem('departments', '/departments', 'Departments'),
    NavItem('prescriptions', '/prescriptions', 'Prescriptions'),
    NavItem('labReports', '/lab-reports', 'Lab Reports'),
    NavItem('vitals', '/vitals', 'Patient Vitals'),
    NavItem('wards', '/wards', 'Wards & Beds'),
    NavItem('admissions', '/admissions', 'Admissions'),
    NavItem('pharmacy', '/pharmacy', 'Pharmacy'),
    NavItem('insurance', '/insurance', 'Insurance'),
    NavItem('ambulance', '/ambulance', 'Ambulance'),
    NavItem('billing', '/billing', 'Billing', ('manage',)),
    NavItem('staff', '/staff', 'Staff', ('manage',)),
    NavItem('attendance', '/attendance', 'Attendance'),
    NavItem('reports', '/reports', 'Reports'),
    # patient portal
    NavItem('myAppointments', '/my-appointments', 'My Appointments', ('book', 'cancel')),
    NavItem('myPrescriptions', '/my-prescriptions', 'My Prescriptions'),
    NavItem('myLabReports', '/my-lab-reports', 'My Lab Reports'),
    NavItem('myBills', '/my-bills', 'My Bills'),
    NavItem('myProfile', '/my-profile', 'My Profile'),
    NavItem('findDoctor', '/find-doctor', 'Find a Doctor'),
)}

# role -> section -> navigation keys, in display order
ROLE_SECTIONS: dict[str, dict[str, tuple[str, ...]]] = {
    Role.ADMIN: {
        'main': ('dashboard', 'doctors', 'patients', 'appointments', 'departments'),
        'clinical': ('prescriptions', 'labReports', 'vitals'),
        'inpatient': ('wards', 'admissions'),
        'operations': ('pharmacy', 'insurance', 'ambulance', 'billing'),
        'admin': ('staff', 'attendance', 'reports'),
    },
    Role.DOCTOR: {
        'main': ('dashboard', 'appointments', 'patients'),
        'clinical': ('prescriptions', 'labReports', 'vitals'),
        'admin': ('attendance',),
    },
    Role.NURSE: {
        'main': ('dashboard', 'patients'),
        'clinical': ('vitals',),
        'inpatient': ('wards', 'admissions'),
        'admin': ('attendance',),
    },
    Role.RECEPTIONIST: {
        'main': ('dashboard', 'patients', 'appointments'),
        'operations': ('billing',),
        'admin': ('attendance',),
    },
    Role.CASHIER: {
        'main': ('dashboard',),
        'operations': ('billing', 'insurance'),
        'admin': ('attendance',),
    },
    Role.PHARMACIST: {
        'main': ('dashboard',),
        'clinical': ('prescriptions',),
        'operations': ('pharmacy',),
        'admin': ('attendance',),
    },
    Role.STAFF: {
        'main': ('dashboard',),
        'admin': ('attendance',),
    },
    Role.PATIENT: {
        'main': ('dashboard', 'myAppointments', 'findDoctor'),
        'clinical': ('myPrescriptions', 'myLabReports'),
        'operations': ('myBills',),
        'admin': ('myProfile',),
    },
}


@dataclass(frozen=True)
class CapabilitySet:
    """Ordered capabilities of one role, grouped by section."""
    sections: tuple[tuple[str, tuple[Capability, ...]], ...]
    _keys: frozenset = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, '_keys', frozenset(c.key for _, caps in self.sections for c in caps))

    def section(self, name: str) -> tuple[Capability, ...]:
        for section_name, caps in self.sections:
            if section_name == name:
                return caps
        return ()

    def keys(self) -> tuple[str, ...]:
        return tuple(c.key for _, caps in self.sections for c in caps)

    def allows(self, key) -> bool:
        return isinstance(key, str) and key in self._keys

    def is_empty(self) -> bool:
        return not self._keys

    def navigation(self) -> dict[str, list[Capability]]:
        """Menu entries only (view capabilities), per section."""
        return {name: [c for c in caps if c.is_navigation] for name, caps in self.sections}

    def as_dict(self) -> dict:
        return {
            'sections': {
                name: [c.as_dict() for c in caps if c.is_navigation]
                for name, caps in self.sections
            },
            'capabilities': list(self.keys()),
        }


def _build(layout: dict[str, tuple[str, ...]]) -> CapabilitySet:
    sections = []
    for name in SECTIONS:
        caps: list[Capability] = []
        for nav_key in layout.get(name, ()):
            caps.extend(NAV_ITEMS[nav_key].capabilities())
        sections.append((name, tuple(caps)))
    return CapabilitySet(tuple(sections))


EMPTY = _build({})
_RESOLVED: dict[str, CapabilitySet] = {str(role): _build(layout) for role, layout in ROLE_SECTIONS.items()}


def capabilities_for(role) -> CapabilitySet:
    """Return the capability set of ``role``; never raises."""
    if not isinstance(role, str):
        return EMPTY
    return _RESOLVED.get(role, EMPTY)
