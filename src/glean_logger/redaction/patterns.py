"""Built-in field names, header names, content types and regex rules."""

from __future__ import annotations

import re

# Keys whose values are always replaced (compared lowercased)
DEFAULT_SENSITIVE_FIELDS: frozenset[str] = frozenset({
    "password",
    "token",
    "secret",
    "apikey",
    "accesstoken",
    "refreshtoken",
    "ssn",
    "creditcard",
    "cardnumber",
    "cvv",
    "cvc",
})

# Extra keys the production preset adds on top of the defaults
EXTENDED_SENSITIVE_FIELDS: frozenset[str] = frozenset({
    "passwd",
    "pwd",
    "api_key",
    "authtoken",
    "auth_token",
    "access_token",
    "refresh_token",
    "privatekey",
    "private_key",
    "clientsecret",
    "client_secret",
    "sessionid",
    "session_id",
    "pin",
})

DEFAULT_SENSITIVE_HEADERS: frozenset[str] = frozenset({
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-auth-token",
})

EXTENDED_SENSITIVE_HEADERS: frozenset[str] = frozenset({
    "proxy-authorization",
    "x-csrf-token",
    "x-xsrf-token",
    "x-session-id",
    "x-access-token",
})

# Binary families that are never worth logging as text
BINARY_CONTENT_TYPES: tuple[str, ...] = (
    "image/*",
    "audio/*",
    "video/*",
    "font/*",
    "application/pdf",
    "application/zip",
    "application/gzip",
    "application/x-tar",
    "application/x-7z-compressed",
    "application/octet-stream",
    "application/font-*",
    "application/x-font-*",
)

# Excluded from logging by default; multipart is excluded but not binary
DEFAULT_EXCLUDED_CONTENT_TYPES: tuple[str, ...] = (*BINARY_CONTENT_TYPES, "multipart/*")

DEFAULT_SKIP_STATUS_CODES: frozenset[int] = frozenset({204, 304})

# Value patterns used by the production preset
SSN_PATTERN = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
CREDIT_CARD_PATTERN = re.compile(r"\b(?:\d{4}[- ]?){3}\d{4}\b")
BEARER_PATTERN = re.compile(r"\bBearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE)
JWT_PATTERN = re.compile(r"\beyJ[A-Za-z0-9_-]*\.eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*")
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

SSN_REPLACEMENT = "***-**-****"
CREDIT_CARD_REPLACEMENT = "****-****-****-****"
BEARER_REPLACEMENT = "Bearer [REDACTED]"
JWT_REPLACEMENT = "[JWT_REDACTED]"
EMAIL_REPLACEMENT = "[EMAIL_REDACTED]"
