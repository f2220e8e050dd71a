from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, NamedTuple

from ecolend.domain.analytics import ESGMetric, ESGMetricType, MetricUnit
from ecolend.domain.loan import LoanStatus
from ecolend.error import ValidationFailed


class Granularity(str, Enum):
    MONTH = "month"
    YEAR = "year"


class LoanRecord(NamedTuple):
    created_at: datetime
    status: LoanStatus
    quantity: int


@dataclass
class _Bucket:
    total_quantity: int = 0
    returned_quantity: int = 0
    damaged_quantity: int = 0

    @property
    def handled(self) -> int:
        return self.returned_quantity + self.damaged_quantity


def period_key(created_at: datetime, granularity: Granularity | str) -> str:
    """Bucket label ("YYYY" or "YYYY-MM") for a UTC timestamp; naive means UTC."""
    if not isinstance(created_at, datetime):
        raise ValidationFailed(f"Loan createdAt must be a datetime, got {type(created_at).__name__}")
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc)

    g = _granularity(granularity)
    if g == Granularity.YEAR:
        return f"{created_at.year:04d}"
    return f"{created_at.year:04d}-{created_at.month:02d}"


def _granularity(value: Granularity | str) -> Granularity:
    try:
        return Granularity(value)
    except ValueError:
        raise ValidationFailed(f"Unsupported granularity: {value} (month / year)")


def _share(part: int, whole: int) -> float:
    # 分母为 0（只有未归还的借用）时记 0，不产生 NaN
    if whole <= 0:
        return 0
    # 按浮点的精确值四舍五入，.5 进位
    return float(Decimal(part / whole * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def aggregate_esg_metrics(
    records: Iterable[LoanRecord], granularity: Granularity | str
) -> list[ESGMetric]:
    """Bucket loan records by period and derive the three ESG metrics.

    Per bucket:
      REUSE            total units lent, whatever their current status (COUNT)
      WASTE_REDUCTION  returned / (returned + damaged) * 100 (PERCENTAGE)
      INCIDENT_RATE    damaged / (returned + damaged) * 100 (PERCENTAGE)

    ACTIVE loans only count toward REUSE. Buckets come out in order of first
    occurrence. Any malformed record fails the whole call.
    """
    g = _granularity(granularity)
    buckets: dict[str, _Bucket] = {}

    for record in records:
        key = period_key(record.created_at, g)
        bucket = buckets.setdefault(key, _Bucket())

        bucket.total_quantity += record.quantity
        if record.status == LoanStatus.RETURNED:
            bucket.returned_quantity += record.quantity
        elif record.status == LoanStatus.DAMAGED:
            bucket.damaged_quantity += record.quantity

    metrics: list[ESGMetric] = []
    for period, bucket in buckets.items():
        metrics.append(
            ESGMetric.of(period, ESGMetricType.REUSE, bucket.total_quantity, MetricUnit.COUNT)
        )
        metrics.append(
            ESGMetric.of(
                period,
                ESGMetricType.WASTE_REDUCTION,
                _share(bucket.returned_quantity, bucket.handled),
                MetricUnit.PERCENTAGE,
            )
        )
        metrics.append(
            ESGMetric.of(
                period,
                ESGMetricType.INCIDENT_RATE,
                _share(bucket.damaged_quantity, bucket.handled),
                MetricUnit.PERCENTAGE,
            )
        )
    return metrics
