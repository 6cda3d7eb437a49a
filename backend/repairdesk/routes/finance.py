# Overview: Flask API routes for finance and dashboard figures; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import action_boundary, require_auth, require_tenant
from ..errors import ValidationError
from ..services import finance_service
from ..time_utils import parse_iso_date

finance_bp = Blueprint("finance", __name__, url_prefix="/api/finance")


def _date_arg(name: str, required: bool = False):
    raw = request.args.get(name)
    if not raw:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")


@finance_bp.get("/daily-income")
@require_auth
@require_tenant
@action_boundary
def daily_income():
    """Query params: date (YYYY-MM-DD, defaults to today in the shop's timezone)."""
    return finance_service.daily_income(g.tenant_id, _date_arg("date"))


@finance_bp.get("/income-history")
@require_auth
@require_tenant
@action_boundary
def income_history():
    rows = finance_service.income_history(
        g.tenant_id, _date_arg("start", required=True), _date_arg("end", required=True)
    )
    return {"items": rows}


@finance_bp.get("/revenue-chart")
@require_auth
@require_tenant
@action_boundary
def revenue_chart():
    days = request.args.get("days", default=7, type=int)
    return {"items": finance_service.revenue_chart(g.tenant_id, days)}


@finance_bp.get("/dashboard")
@require_auth
@require_tenant
@action_boundary
def dashboard():
    return {
        "stats": finance_service.dashboard_stats(g.tenant_id),
        "status_distribution": finance_service.status_distribution(g.tenant_id),
    }


@finance_bp.get("/technicians")
@require_auth
@require_tenant
@action_boundary
def technicians():
    return {"items": finance_service.technician_workload(g.tenant_id)}


@finance_bp.get("/top-services")
@require_auth
@require_tenant
@action_boundary
def top_services():
    limit = min(request.args.get("limit", default=5, type=int), 50)
    return {"items": finance_service.top_services(g.tenant_id, limit)}
