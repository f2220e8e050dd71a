from datetime import date, datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from ecolend.deps import get_analytics_service, require_permission
from ecolend.domain.identity import Permission, User
from ecolend.error import ValidationFailed
from ecolend.schemas import MetricListResponse
from ecolend.services.analytics import AnalyticsService, ReportFormat
from ecolend.services.esg import Granularity

router = APIRouter(prefix="/esg", tags=["esg"])

view_reports = require_permission(Permission.VIEW_REPORTS)


def _get_zone(tz_str: Optional[str]) -> Optional[ZoneInfo]:
    tz_str = (tz_str or "").strip()
    if not tz_str:
        return None
    try:
        return ZoneInfo(tz_str)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationFailed(f"Invalid tz: {tz_str} (e.g. Europe/Paris / Asia/Shanghai / UTC)")


def _parse_dt_or_date(s: str, *, is_end: bool, assume_tz: Optional[ZoneInfo]) -> datetime:
    """
    支持:
      - "YYYY-MM-DD"
      - ISO datetime: "YYYY-MM-DDTHH:MM:SS", "...Z", "...+08:00"
    规则:
      - 日期: from=当天 00:00:00, to=当天最后一微秒（闭区间）
      - 不带时区时按 assume_tz，没有 tz 就按 UTC
      - 统一返回 UTC-naive
    """
    s = (s or "").strip()
    if not s:
        raise ValidationFailed("from/to must not be empty")

    tz = assume_tz or timezone.utc

    # 1) 纯日期
    if len(s) == 10 and s[4] == "-" and s[7] == "-":
        try:
            d = date.fromisoformat(s)
        except ValueError:
            raise ValidationFailed(f"Invalid date: {s}, expected YYYY-MM-DD")

        local_dt = datetime(d.year, d.month, d.day)
        if is_end:
            local_dt = local_dt + timedelta(days=1) - timedelta(microseconds=1)
        return local_dt.replace(tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)

    # 2) datetime（兼容 Z）
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailed(f"Invalid datetime: {s}, e.g. 2025-03-01T08:30:00 or 2025-03-01T08:30:00Z")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _range(start: str, end: str, tz: Optional[str]) -> tuple[datetime, datetime]:
    zone = _get_zone(tz)
    start_dt = _parse_dt_or_date(start, is_end=False, assume_tz=zone)
    end_dt = _parse_dt_or_date(end, is_end=True, assume_tz=zone)
    if start_dt > end_dt:
        raise ValidationFailed("from must not be later than to")
    return start_dt, end_dt


@router.get("/metrics", response_model=MetricListResponse)
def list_metrics(
    start: str = Query(..., alias="from", description="开始日期/时间（含）。例：2025-01-01"),
    end: str = Query(..., alias="to", description="结束日期/时间（含）。例：2025-12-31"),
    granularity: Granularity = Query(Granularity.MONTH),
    tz: Optional[str] = Query(None, description="时区（可选）。例：Europe/Paris / UTC"),
    _user: User = Depends(view_reports),
    service: AnalyticsService = Depends(get_analytics_service),
):
    start_dt, end_dt = _range(start, end, tz)
    metrics = service.generate_metrics(start_dt, end_dt, granularity)
    return {"items": metrics, "granularity": granularity, "start": start_dt, "end": end_dt}


@router.get("/export")
def export_report(
    start: str = Query(..., alias="from"),
    end: str = Query(..., alias="to"),
    granularity: Granularity = Query(Granularity.MONTH),
    format: ReportFormat = Query(ReportFormat.CSV, description="csv / txt / xlsx"),
    tz: Optional[str] = Query(None),
    _user: User = Depends(view_reports),
    service: AnalyticsService = Depends(get_analytics_service),
):
    start_dt, end_dt = _range(start, end, tz)
    report = service.export_report(start_dt, end_dt, granularity, format)

    headers = {
        "Content-Disposition": f"attachment; filename=\"{report.filename}\"; filename*=UTF-8''{quote(report.filename)}"
    }
    return Response(content=report.content, media_type=report.media_type, headers=headers)
