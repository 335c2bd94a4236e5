"""
Token authentication for non-browser clients.

Kept apart from the views so that DRF can import the authentication
classes during initialisation without pulling in view modules.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """``Authorization: Token <key>`` authentication.

    Inactive accounts are rejected by the parent class, which keeps the
    soft-deactivation rule in force for token holders too.
    """

    keyword = 'Token'
