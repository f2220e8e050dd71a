from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from conftest import create_equipment
from ecolend.domain.analytics import ESGMetricType, MetricUnit
from ecolend.domain.loan import LoanStatus
from ecolend.error import ValidationFailed
from ecolend.models import LoanRow
from ecolend.repositories.loans import SqlLoanRecordSource
from ecolend.services.analytics import CSV_HEADER, format_value, render_csv, render_text
from ecolend.services.esg import Granularity, LoanRecord, aggregate_esg_metrics, period_key


def _by_type(metrics):
    return {(m.period, m.type): m for m in metrics}


SCENARIO = [
    LoanRecord(datetime(2025, 3, 10), LoanStatus.RETURNED, 3),
    LoanRecord(datetime(2025, 3, 15), LoanStatus.DAMAGED, 1),
]


def test_monthly_bucket_counts_and_rates():
    metrics = aggregate_esg_metrics(SCENARIO, "month")
    got = _by_type(metrics)
    assert len(metrics) == 3

    reuse = got[("2025-03", ESGMetricType.REUSE)]
    assert reuse.value == 4
    assert reuse.unit == MetricUnit.COUNT
    assert reuse.id == "2025-03-REUSE"

    assert got[("2025-03", ESGMetricType.WASTE_REDUCTION)].value == 75.0
    assert got[("2025-03", ESGMetricType.WASTE_REDUCTION)].unit == MetricUnit.PERCENTAGE
    assert got[("2025-03", ESGMetricType.INCIDENT_RATE)].value == 25.0


def test_yearly_bucket_has_same_values():
    got = _by_type(aggregate_esg_metrics(SCENARIO, Granularity.YEAR))
    assert got[("2025", ESGMetricType.REUSE)].value == 4
    assert got[("2025", ESGMetricType.WASTE_REDUCTION)].value == 75.0
    assert got[("2025", ESGMetricType.INCIDENT_RATE)].value == 25.0


def test_active_loans_only_count_as_reuse():
    got = _by_type(aggregate_esg_metrics([LoanRecord(datetime(2025, 1, 5), LoanStatus.ACTIVE, 5)], "month"))
    assert got[("2025-01", ESGMetricType.REUSE)].value == 5
    assert got[("2025-01", ESGMetricType.WASTE_REDUCTION)].value == 0
    assert got[("2025-01", ESGMetricType.INCIDENT_RATE)].value == 0


@pytest.mark.parametrize("returned,damaged", [(1, 2), (2, 1), (7, 3), (1, 0), (0, 4), (5, 6)])
def test_rates_add_up_to_hundred(returned, damaged):
    records = []
    if returned:
        records.append(LoanRecord(datetime(2025, 6, 1), LoanStatus.RETURNED, returned))
    if damaged:
        records.append(LoanRecord(datetime(2025, 6, 2), LoanStatus.DAMAGED, damaged))
    got = _by_type(aggregate_esg_metrics(records, "month"))

    waste = got[("2025-06", ESGMetricType.WASTE_REDUCTION)].value
    incident = got[("2025-06", ESGMetricType.INCIDENT_RATE)].value
    assert waste + incident == pytest.approx(100, abs=0.011)
    assert waste == round(waste, 2)


def test_rates_round_half_up():
    records = [
        LoanRecord(datetime(2025, 6, 1), LoanStatus.RETURNED, 31),
        LoanRecord(datetime(2025, 6, 2), LoanStatus.DAMAGED, 1),
    ]
    got = _by_type(aggregate_esg_metrics(records, "month"))
    # 1/32 = 3.125%，31/32 = 96.875%
    assert got[("2025-06", ESGMetricType.INCIDENT_RATE)].value == 3.13
    assert got[("2025-06", ESGMetricType.WASTE_REDUCTION)].value == 96.88


def test_buckets_follow_first_occurrence():
    records = [
        LoanRecord(datetime(2024, 12, 31, 23, 59), LoanStatus.RETURNED, 1),
        LoanRecord(datetime(2025, 1, 1), LoanStatus.RETURNED, 1),
        LoanRecord(datetime(2024, 12, 1), LoanStatus.DAMAGED, 1),
    ]
    periods = [m.period for m in aggregate_esg_metrics(records, "month")]
    assert periods == ["2024-12"] * 3 + ["2025-01"] * 3

    got = _by_type(aggregate_esg_metrics(records, "month"))
    assert got[("2024-12", ESGMetricType.REUSE)].value == 2
    assert got[("2024-12", ESGMetricType.INCIDENT_RATE)].value == 50.0


def test_no_records_no_metrics():
    assert aggregate_esg_metrics([], "year") == []


def test_malformed_input_fails_whole_call():
    records = [
        LoanRecord(datetime(2025, 1, 1), LoanStatus.RETURNED, 1),
        LoanRecord("2025-01-02", LoanStatus.RETURNED, 1),
    ]
    with pytest.raises(ValidationFailed):
        aggregate_esg_metrics(records, "month")
    with pytest.raises(ValidationFailed):
        aggregate_esg_metrics(SCENARIO, "week")


def test_period_key_uses_utc():
    paris = timezone(timedelta(hours=1))
    assert period_key(datetime(2025, 1, 1, 0, 30, tzinfo=paris), "month") == "2024-12"
    assert period_key(datetime(2025, 7, 4), "year") == "2025"


def test_csv_and_text_rendering():
    metrics = aggregate_esg_metrics(SCENARIO, "month")
    csv = render_csv(metrics).splitlines()
    assert csv[0] == CSV_HEADER
    assert csv[1:] == [
        "REUSE,2025-03,COUNT,4",
        "WASTE_REDUCTION,2025-03,PERCENTAGE,75",
        "INCIDENT_RATE,2025-03,PERCENTAGE,25",
    ]
    assert render_text(metrics).splitlines()[1] == "2025-03 WASTE_REDUCTION: 75 PERCENTAGE"
    assert format_value(66.67) == "66.67"


# --- API ---

def _backdate(session, loan_id, when):
    row = session.exec(select(LoanRow).where(LoanRow.id == loan_id)).one()
    row.created_at = when
    session.add(row)
    session.commit()


def _seed_scenario(client, session, admin_headers):
    eq = create_equipment(client, admin_headers, total_quantity=10)
    r1 = client.post("/loans", json={"equipment_id": eq["id"], "quantity": 3}, headers=admin_headers)
    r2 = client.post("/loans", json={"equipment_id": eq["id"], "quantity": 1}, headers=admin_headers)
    l1, l2 = r1.json()["id"], r2.json()["id"]
    assert client.post(f"/loans/{l1}/return", headers=admin_headers).status_code == 200
    r = client.post(f"/loans/{l2}/damage", json={"damage_comment": "cracked"}, headers=admin_headers)
    assert r.status_code == 200
    _backdate(session, l1, datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc))
    _backdate(session, l2, datetime(2025, 3, 15, 9, 0, tzinfo=timezone.utc))


def test_metrics_endpoint(client, session, admin_headers):
    _seed_scenario(client, session, admin_headers)

    r = client.get("/esg/metrics?from=2025-03-01&to=2025-03-31&granularity=month", headers=admin_headers)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["granularity"] == "month"
    values = {m["type"]: m["value"] for m in data["items"]}
    assert values == {"REUSE": 4, "WASTE_REDUCTION": 75.0, "INCIDENT_RATE": 25.0}

    # 闭区间：to 当天的数据也算
    r2 = client.get("/esg/metrics?from=2025-03-15&to=2025-03-15", headers=admin_headers)
    assert [m["value"] for m in r2.json()["items"]] == [1, 0, 100]

    r3 = client.get("/esg/metrics?from=2025-04-01&to=2025-12-31", headers=admin_headers)
    assert r3.json()["items"] == []


def test_metrics_bad_range(client, admin_headers):
    r = client.get("/esg/metrics?from=2025-03-31&to=2025-03-01", headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "VALIDATION_ERROR"

    r2 = client.get("/esg/metrics?from=2025-13-01&to=2025-12-31", headers=admin_headers)
    assert r2.status_code == 400

    r3 = client.get("/esg/metrics?from=2025-01-01&to=2025-12-31&tz=Mars/Base", headers=admin_headers)
    assert r3.status_code == 400

    r4 = client.get("/esg/metrics?from=2025-01-01&to=2025-12-31&granularity=week", headers=admin_headers)
    assert r4.status_code == 422


def test_export_csv_and_xlsx(client, session, admin_headers):
    _seed_scenario(client, session, admin_headers)

    r = client.get("/esg/export?from=2025-01-01&to=2025-12-31&granularity=year&format=csv", headers=admin_headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "esg-report.csv" in r.headers["content-disposition"]
    assert r.text.splitlines() == [
        CSV_HEADER,
        "REUSE,2025,COUNT,4",
        "WASTE_REDUCTION,2025,PERCENTAGE,75",
        "INCIDENT_RATE,2025,PERCENTAGE,25",
    ]

    r2 = client.get("/esg/export?from=2025-01-01&to=2025-12-31&format=xlsx", headers=admin_headers)
    assert r2.status_code == 200
    assert r2.content[:2] == b"PK"

    r3 = client.get("/esg/export?from=2025-01-01&to=2025-12-31&format=txt", headers=admin_headers)
    assert r3.text.splitlines()[0] == "2025-03 REUSE: 4 COUNT"


def test_metrics_require_view_reports(client, employee):
    _user, headers = employee
    r = client.get("/esg/metrics?from=2025-01-01&to=2025-12-31", headers=headers)
    assert r.status_code == 403
    assert r.json() == {"detail": {"code": "FORBIDDEN", "message": "Missing permission: VIEW_REPORTS"}}


def test_record_source_bounds_accept_naive_and_aware(client, session, admin_headers):
    _seed_scenario(client, session, admin_headers)
    source = SqlLoanRecordSource(session)

    aware = source.records_between(
        datetime(2025, 3, 15, tzinfo=timezone.utc), datetime(2025, 3, 31, tzinfo=timezone.utc)
    )
    assert [(r.status, r.quantity) for r in aware] == [(LoanStatus.DAMAGED, 1)]

    # naive 按 UTC 处理；+01:00 的 3 月 10 日 10:00 就是 UTC 09:00，闭区间
    paris = timezone(timedelta(hours=1))
    both = source.records_between(datetime(2025, 3, 1), datetime(2025, 3, 10, 10, 0, tzinfo=paris))
    assert [(r.status, r.quantity) for r in both] == [(LoanStatus.RETURNED, 3)]
