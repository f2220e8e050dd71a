from datetime import datetime, timezone

import pytest

from ecolend.domain.base import utcnow
from ecolend.domain.equipment import Equipment, EquipmentStatus
from ecolend.domain.finance import Contract, ContractStatus, Invoice, InvoiceStatus
from ecolend.domain.identity import Permission, Role, RoleName, User, default_permissions, has_permission
from ecolend.domain.loan import Loan, LoanStatus
from ecolend.error import BusinessRuleViolation, ConfigurationError, ValidationFailed


def _equipment(**overrides):
    now = utcnow()
    props = dict(
        id="eq-1",
        name="Harness",
        category="Safety",
        total_quantity=5,
        quantity_in_use=0,
        created_at=now,
        updated_at=now,
    )
    props.update(overrides)
    return Equipment.create(**props)


# --- Role / Permission ---

def test_admin_role_implies_every_permission():
    role = Role.create(name="ADMIN", permissions=[Permission.MANAGE_SYSTEM])
    assert role.has_permission(Permission.VIEW_REPORTS)
    assert role.has_permission(Permission.MANAGE_COMPLIANCE)


def test_permissions_are_not_implied_sideways():
    role = Role.create(name="COMPLIANCE_ESG", permissions=[Permission.VIEW_REPORTS])
    assert role.has_permission(Permission.VIEW_REPORTS)
    assert not role.has_permission(Permission.MANAGE_COMPLIANCE)


def test_role_needs_permissions_and_dedupes():
    with pytest.raises(ValidationFailed):
        Role.create(name="ADMIN", permissions=[])

    role = Role.create(
        name="OPERATIONS_MANAGER",
        permissions=[Permission.VIEW_REPORTS, Permission.MANAGE_OPERATIONS, Permission.VIEW_REPORTS],
    )
    assert role.permissions == (Permission.VIEW_REPORTS, Permission.MANAGE_OPERATIONS)


def test_default_permissions_per_role():
    assert default_permissions(RoleName.ADMIN) == (Permission.MANAGE_SYSTEM,)
    assert Permission.MANAGE_COMPLIANCE in default_permissions("COMPLIANCE_ESG")
    with pytest.raises(ConfigurationError):
        default_permissions("JANITOR")


def test_has_permission_over_several_roles():
    roles = [Role.for_name("FIELD_TECHNICIAN"), Role.for_name("COMPLIANCE_ESG")]
    assert has_permission(roles, Permission.MANAGE_COMPLIANCE)
    assert not has_permission(roles, Permission.MANAGE_USERS)
    assert not has_permission([], Permission.VIEW_DATA)


# --- User ---

def test_user_email_is_normalized_and_validated():
    user = User.create(id="u1", email="  Neil@Example.COM ", display_name=" Neil ")
    assert user.email == "neil@example.com"
    assert user.display_name == "Neil"
    assert user.is_active and not user.is_admin()

    with pytest.raises(ValidationFailed):
        User.create(id="u2", email="not-an-email", display_name="x")
    with pytest.raises(ValidationFailed):
        User.create(id="u3", email="a@b.c", display_name="   ")


def test_user_deactivate_returns_a_copy():
    user = User.create(id="u1", email="a@b.c", display_name="A")
    off = user.deactivate()
    assert off.is_active is False
    assert user.is_active is True
    assert off.activate().is_active is True


# --- Equipment ---

def test_equipment_quantity_available():
    eq = _equipment(total_quantity=5, quantity_in_use=2)
    assert eq.quantity_available == 3
    assert eq.can_be_loaned_out()


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "  "},
        {"category": ""},
        {"total_quantity": -1},
        {"quantity_in_use": -1},
        {"total_quantity": 2, "quantity_in_use": 3},
        {"total_quantity": 1.5},
    ],
)
def test_equipment_rejects_invalid_state(overrides):
    with pytest.raises(ValidationFailed):
        _equipment(**overrides)


def test_discarded_equipment_cannot_be_loaned():
    eq = _equipment(status=EquipmentStatus.DISCARDED)
    assert eq.is_discarded
    assert not eq.can_be_loaned_out()
    assert not _equipment(total_quantity=0).can_be_loaned_out()


def test_naive_datetimes_are_read_as_utc():
    eq = _equipment(created_at=datetime(2025, 1, 1, 8, 0), updated_at=datetime(2025, 1, 1, 8, 0))
    assert eq.created_at == datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)
    assert utcnow().tzinfo == timezone.utc

    loan = Loan.open("u1", "eq-1", 1)
    assert loan.created_at.tzinfo == timezone.utc


def test_equipment_update_is_copy_on_write():
    eq = _equipment(created_at=datetime(2025, 1, 1), updated_at=datetime(2025, 1, 1))
    updated = eq.update(name="Helmet", certification="  ")
    assert updated.name == "Helmet"
    assert updated.certification is None
    assert updated.updated_at > eq.updated_at
    assert eq.name == "Harness"

    with pytest.raises(ValidationFailed):
        eq.update(total_quantity=-3)
    with pytest.raises(TypeError):
        eq.update(quantity_in_use=1)


# --- Loan ---

def test_loan_open_and_return():
    loan = Loan.open("u1", "eq-1", 2)
    assert loan.is_active()
    assert loan.returned_at is None

    returned = loan.mark_as_returned()
    assert returned.status == LoanStatus.RETURNED
    assert returned.returned_at is not None
    assert loan.is_active()


def test_loan_damage_requires_comment():
    loan = Loan.open("u1", "eq-1", 1)
    with pytest.raises(ValidationFailed):
        loan.mark_as_damaged("   ")

    damaged = loan.mark_as_damaged(" strap torn ")
    assert damaged.status == LoanStatus.DAMAGED
    assert damaged.damage_comment == "strap torn"
    assert damaged.returned_at is not None


def test_terminal_loans_never_reopen():
    returned = Loan.open("u1", "eq-1", 1).mark_as_returned()
    with pytest.raises(BusinessRuleViolation):
        returned.mark_as_returned()
    with pytest.raises(BusinessRuleViolation):
        returned.mark_as_damaged("late report")


@pytest.mark.parametrize("quantity", [0, -2, 1.5, "3"])
def test_loan_quantity_must_be_positive_integer(quantity):
    with pytest.raises(ValidationFailed):
        Loan.open("u1", "eq-1", quantity)


def test_loan_state_invariants():
    now = utcnow()
    base = dict(id="l1", user_id="u1", equipment_id="eq-1", quantity=1, created_at=now)
    with pytest.raises(ValidationFailed):
        Loan.create(**base, status=LoanStatus.RETURNED)
    with pytest.raises(ValidationFailed):
        Loan.create(**base, status=LoanStatus.ACTIVE, returned_at=now)
    with pytest.raises(ValidationFailed):
        Loan.create(**base, status=LoanStatus.DAMAGED, returned_at=now)


# --- finance ---

def test_contract_status_derives_from_end_date():
    now = utcnow()
    props = dict(
        id="c1",
        supplier_id="s1",
        title="Rental",
        start_date=datetime(2020, 1, 1).date(),
        end_date=datetime(2020, 12, 31).date(),
        value=1000,
        currency="eur",
        created_at=now,
        updated_at=now,
    )
    contract = Contract.create(**props, status=ContractStatus.ACTIVE)
    assert contract.status == ContractStatus.EXPIRED
    assert contract.currency == "EUR"

    terminated = Contract.create(**props, status=ContractStatus.TERMINATED)
    assert terminated.status == ContractStatus.TERMINATED


def test_invoice_overdue_until_paid():
    invoice = Invoice.create(
        id="i1",
        supplier_id="s1",
        contract_id="c1",
        amount=250,
        currency="EUR",
        due_date=datetime(2020, 1, 1).date(),
        document_url="https://docs.example/i1.pdf",
        created_at=utcnow(),
    )
    assert invoice.status == InvoiceStatus.OVERDUE
    assert invoice.is_open

    paid = invoice.mark_as_paid()
    assert paid.status == InvoiceStatus.PAID
    assert not paid.is_open
