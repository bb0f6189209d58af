from __future__ import annotations

from ..extensions import db
from konta.time_utils import to_utc_z, utcnow

# Fields an administrator can edit; name/NIT/resolution feed the DIAN document
COMPANY_FIELDS = ("name", "nit", "resolution_number", "address", "phone", "city")


class CompanySettings(db.Model):
    """
    Issuer data printed on invoices and the electronic-invoice XML.

    Single row (id = 1). Blank columns fall back to the deployment
    configuration (COMPANY_NAME, COMPANY_NIT, DIAN_RESOLUTION_NUMBER).
    """
    __tablename__ = "company_settings"
    __table_args__ = (
        db.CheckConstraint("id = 1", name="ck_company_settings_single_row"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=True)
    nit = db.Column(db.String(32), nullable=True)
    resolution_number = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    city = db.Column(db.String(100), nullable=True)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            **{field: getattr(self, field) for field in COMPANY_FIELDS},
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
