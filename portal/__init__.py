"""Portal application for the care portal backend.

This package contains the identity model, the role-capability table,
the access gate, the appointment lifecycle and billing services, and the
API views exposing them to the front-end application.
"""
