from datetime import date, timedelta

from conftest import grant


def _supplier(client, headers, name="GreenRent"):
    r = client.post("/finance/suppliers", json={"name": name, "service_type": "EQUIPMENT"}, headers=headers)
    assert r.status_code == 200, r.text
    return r.json()


def _contract(client, headers, supplier_id, end=None, value=1200.0, currency="eur"):
    end = end or date.today() + timedelta(days=365)
    r = client.post(
        "/finance/contracts",
        json={
            "supplier_id": supplier_id,
            "title": "Harness rental",
            "start_date": "2024-01-01",
            "end_date": end.isoformat(),
            "value": value,
            "currency": currency,
        },
        headers=headers,
    )
    assert r.status_code == 200, r.text
    return r.json()


def test_supplier_and_contract(client, admin_headers):
    supplier = _supplier(client, admin_headers)
    assert supplier["status"] == "ACTIVE"

    active = _contract(client, admin_headers, supplier["id"])
    assert active["status"] == "ACTIVE"
    assert active["currency"] == "EUR"

    expired = _contract(client, admin_headers, supplier["id"], end=date(2024, 6, 30))
    assert expired["status"] == "EXPIRED"

    r = client.get(f"/finance/contracts?supplier_id={supplier['id']}", headers=admin_headers)
    assert {c["id"] for c in r.json()} == {active["id"], expired["id"]}
    assert client.get("/finance/suppliers", headers=admin_headers).json()[0]["name"] == "GreenRent"


def test_contract_validation(client, admin_headers):
    supplier = _supplier(client, admin_headers)
    r = client.post(
        "/finance/contracts",
        json={
            "supplier_id": supplier["id"],
            "title": "Backwards",
            "start_date": "2025-02-01",
            "end_date": "2025-01-01",
            "value": 10,
        },
        headers=admin_headers,
    )
    assert r.status_code == 400

    r2 = client.post(
        "/finance/contracts",
        json={"supplier_id": "nope", "title": "x", "start_date": "2025-01-01", "end_date": "2025-02-01", "value": 1},
        headers=admin_headers,
    )
    assert r2.status_code == 404


def test_invoice_lifecycle(client, admin_headers):
    supplier = _supplier(client, admin_headers)
    contract = _contract(client, admin_headers, supplier["id"])

    r = client.post(
        "/finance/invoices",
        json={
            "contract_id": contract["id"],
            "amount": 300,
            "due_date": (date.today() + timedelta(days=30)).isoformat(),
            "document_url": "https://docs.example/inv-1.pdf",
        },
        headers=admin_headers,
    )
    assert r.status_code == 200, r.text
    invoice = r.json()
    assert invoice["status"] == "PENDING"
    assert invoice["supplier_id"] == supplier["id"]

    listed = client.get(f"/finance/contracts/{contract['id']}/invoices", headers=admin_headers).json()
    assert [i["id"] for i in listed] == [invoice["id"]]

    paid = client.post(f"/finance/invoices/{invoice['id']}/pay", headers=admin_headers)
    assert paid.status_code == 200
    assert paid.json()["status"] == "PAID"

    again = client.post(f"/finance/invoices/{invoice['id']}/pay", headers=admin_headers)
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "INVOICE_PAID"


def test_financial_overview(client, admin_headers):
    supplier = _supplier(client, admin_headers)
    contract = _contract(client, admin_headers, supplier["id"], value=1000)
    _contract(client, admin_headers, supplier["id"], value=500, currency="usd")

    for amount in (40, 60):
        r = client.post(
            "/finance/expenses",
            json={"supplier_id": supplier["id"], "category": "transport", "amount": amount, "incurred_at": "2025-05-01"},
            headers=admin_headers,
        )
        assert r.status_code == 200, r.text

    client.post(
        "/finance/invoices",
        json={
            "contract_id": contract["id"],
            "amount": 250,
            "due_date": "2025-01-31",
            "document_url": "https://docs.example/inv-2.pdf",
        },
        headers=admin_headers,
    )

    r = client.get("/finance/overview", headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {
        "contracts_total_by_currency": {"EUR": 1000.0, "USD": 500.0},
        "expenses_total_by_currency": {"EUR": 100.0},
        "open_invoices_total_by_currency": {"EUR": 250.0},
    }
    assert len(client.get("/finance/expenses?limit=1", headers=admin_headers).json()) == 1


def test_finance_permissions(client, admin_headers, employee):
    user, headers = employee
    assert client.get("/finance/suppliers", headers=headers).status_code == 403

    grant(client, admin_headers, user["id"], "OPERATIONS_MANAGER")
    r = client.post("/finance/suppliers", json={"name": "Nope"}, headers=headers)
    assert r.status_code == 403
    assert r.json()["detail"]["message"] == "Missing permission: EDIT_DATA"
