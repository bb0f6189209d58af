# Overview: Editable company (issuer) settings shown on invoices and used by the DIAN document.

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..models import CompanySettings, User
from ..models.settings import COMPANY_FIELDS
from ..validation import ForbiddenError, ValidationError

SETTINGS_ROW_ID = 1

# Deployment config keys used when a field has never been set
CONFIG_FALLBACKS = {
    "name": "COMPANY_NAME",
    "nit": "COMPANY_NIT",
    "resolution_number": "DIAN_RESOLUTION_NUMBER",
}

MAX_LENGTHS = {
    "name": 200,
    "nit": 32,
    "resolution_number": 64,
    "address": 255,
    "phone": 64,
    "city": 100,
}

# 900123456 or 900123456-7
NIT_RE = re.compile(r"^[0-9]{5,15}(-[0-9])?$")
REQUIRED_FIELDS = ("name", "nit")


class SettingsValidationError(ValidationError):
    pass


class SettingsAuthorizationError(ForbiddenError):
    pass


def _stored() -> CompanySettings | None:
    return db.session.get(CompanySettings, SETTINGS_ROW_ID)


def get_company_settings() -> dict:
    """
    Effective company settings.

    Stored values win; blank name/NIT/resolution come from the app config.
    ``source`` tells which fields were taken from the config.
    """
    row = _stored()
    result = {}
    from_config = []
    for field in COMPANY_FIELDS:
        value = getattr(row, field) if row is not None else None
        if not value and field in CONFIG_FALLBACKS:
            value = current_app.config.get(CONFIG_FALLBACKS[field]) or None
            from_config.append(field)
        result[field] = value

    result["updated_by_user_id"] = row.updated_by_user_id if row is not None else None
    result["updated_at"] = row.to_dict()["updated_at"] if row is not None else None
    result["source"] = {"config": from_config}
    return result


def _clean(data: dict) -> dict:
    unknown = sorted(set(data) - set(COMPANY_FIELDS))
    if unknown:
        raise SettingsValidationError(
            f"Unknown settings: {', '.join(unknown)}",
            details={"allowed": list(COMPANY_FIELDS)},
        )

    cleaned = {}
    for field, raw in data.items():
        if raw is not None and not isinstance(raw, str):
            raise SettingsValidationError(f"{field} must be a string")
        value = (raw or "").strip() or None
        if value and len(value) > MAX_LENGTHS[field]:
            raise SettingsValidationError(f"{field} must be at most {MAX_LENGTHS[field]} characters")
        if field in REQUIRED_FIELDS and value is None:
            raise SettingsValidationError(f"{field} cannot be blank")
        if field == "nit" and not NIT_RE.match(value):
            raise SettingsValidationError("nit must be digits with an optional check digit (900123456-7)")
        cleaned[field] = value
    return cleaned


def update_company_settings(data, *, acting_user: User) -> dict:
    """
    Create or update the company settings row.

    Fields left out of ``data`` keep their current value.

    Raises:
        SettingsAuthorizationError: acting user is not an administrator
        SettingsValidationError: unknown field, blank name/NIT, malformed NIT
    """
    if not acting_user.is_admin:
        raise SettingsAuthorizationError("Only administrators can change company settings")
    if not isinstance(data, dict) or not data:
        raise SettingsValidationError("At least one setting is required")

    cleaned = _clean(data)

    row = _stored()
    if row is None:
        row = CompanySettings(id=SETTINGS_ROW_ID)
        db.session.add(row)
    for field, value in cleaned.items():
        setattr(row, field, value)
    row.updated_by_user_id = acting_user.id
    db.session.commit()

    current_app.logger.info("Company settings updated by user %s: %s", acting_user.id, ", ".join(sorted(cleaned)))
    return get_company_settings()
