# Overview: Customers and suppliers; identifier uniqueness is enforced here.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, Supplier
from ..validation import ConflictError, NotFoundError

CUSTOMER_MUTABLE_FIELDS = {"name", "nit_cedula", "email", "phone", "address"}
SUPPLIER_MUTABLE_FIELDS = {"name", "nit", "contact_name", "email", "phone"}


def _apply(entity, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k in allowed:
            setattr(entity, k, v)


def _ensure_unique(model, column, value, exclude_id=None, label="identifier") -> None:
    q = db.session.query(model.id).filter(column == value)
    if exclude_id is not None:
        q = q.filter(model.id != exclude_id)
    if q.first():
        raise ConflictError(f"A record with this {label} already exists.", details={label: value})


# =============================================================================
# CUSTOMERS
# =============================================================================

def list_customers(search: str | None = None) -> list[Customer]:
    q = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Customer.name.ilike(pattern), Customer.nit_cedula.ilike(pattern)))
    return q.order_by(Customer.name.asc(), Customer.id.asc()).all()


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def create_customer(patch: dict) -> Customer:
    _ensure_unique(Customer, Customer.nit_cedula, patch.get("nit_cedula"), label="nit_cedula")
    customer = Customer()
    _apply(customer, patch, CUSTOMER_MUTABLE_FIELDS)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(customer_id: int, patch: dict) -> Customer:
    customer = get_customer(customer_id)
    if "nit_cedula" in patch and patch["nit_cedula"] != customer.nit_cedula:
        _ensure_unique(Customer, Customer.nit_cedula, patch["nit_cedula"], customer.id, label="nit_cedula")
    _apply(customer, patch, CUSTOMER_MUTABLE_FIELDS)
    db.session.commit()
    return customer


# =============================================================================
# SUPPLIERS
# =============================================================================

def list_suppliers(search: str | None = None) -> list[Supplier]:
    q = db.session.query(Supplier)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Supplier.name.ilike(pattern), Supplier.nit.ilike(pattern)))
    return q.order_by(Supplier.name.asc(), Supplier.id.asc()).all()


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def create_supplier(patch: dict) -> Supplier:
    _ensure_unique(Supplier, Supplier.nit, patch.get("nit"), label="nit")
    supplier = Supplier()
    _apply(supplier, patch, SUPPLIER_MUTABLE_FIELDS)
    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(supplier_id: int, patch: dict) -> Supplier:
    supplier = get_supplier(supplier_id)
    if "nit" in patch and patch["nit"] != supplier.nit:
        _ensure_unique(Supplier, Supplier.nit, patch["nit"], supplier.id, label="nit")
    _apply(supplier, patch, SUPPLIER_MUTABLE_FIELDS)
    db.session.commit()
    return supplier
