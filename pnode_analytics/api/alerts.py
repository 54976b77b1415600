"""
Alerts API
Endpoints for alert rules and the alert lifecycle.

Endpoints:
    GET    /api/alerts                          → List alerts (newest first)
    POST   /api/alerts/{id}/resolve             → Resolve one alert
    GET    /api/alerts/rules                    → List rules
    POST   /api/alerts/rules                    → Create rule
    POST   /api/alerts/rules/{id}/enable        → Enable rule
    POST   /api/alerts/rules/{id}/disable       → Disable rule
    PATCH  /api/alerts/rules/{id}/threshold     → Change threshold
    POST   /api/alerts/rules/{id}/resolve-all   → Resolve every active alert of a rule
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict

from pnode_analytics.alerts.models import RuleSpec
from pnode_analytics.core.models import Severity

from .query import QueryAPI, get_query

router = APIRouter(prefix="/alerts", tags=["Alerts"])


# =============================================================================
# Request Models
# =============================================================================

class CreateRuleRequest(RuleSpec):
    """Request body for creating an alert rule"""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Network health low",
                "metric": "healthScore",
                "operator": "<",
                "threshold": 50,
                "scope": "NETWORK",
                "cooldown_minutes": 15,
            }
        }
    )


class ThresholdRequest(BaseModel):
    threshold: float


# =============================================================================
# Rule Management
# =============================================================================

@router.get("/rules")
def list_rules(
    include_disabled: bool = Query(default=True),
    query: QueryAPI = Depends(get_query),
):
    return query.list_rules(include_disabled=include_disabled)


@router.post("/rules", status_code=201)
def create_rule(request: CreateRuleRequest, query: QueryAPI = Depends(get_query)):
    """
    Create a new alert rule.

    Scopes: NETWORK (network metrics), PNODE (per-node metrics, optional pnode_filter)
    Operators: <, >, ==, <=, >=
    """
    return {"message": "Alert rule created", "rule": query.create_rule(request)}


@router.post("/rules/{rule_id}/enable")
def enable_rule(rule_id: str, query: QueryAPI = Depends(get_query)):
    return {"message": "Rule enabled", "rule": query.set_rule_enabled(rule_id, True)}


@router.post("/rules/{rule_id}/disable")
def disable_rule(rule_id: str, query: QueryAPI = Depends(get_query)):
    return {"message": "Rule disabled", "rule": query.set_rule_enabled(rule_id, False)}


@router.patch("/rules/{rule_id}/threshold")
def update_threshold(
    rule_id: str,
    request: ThresholdRequest,
    query: QueryAPI = Depends(get_query),
):
    return {"message": "Threshold updated", "rule": query.update_rule_threshold(rule_id, request.threshold)}


@router.post("/rules/{rule_id}/resolve-all")
def resolve_all_for_rule(rule_id: str, query: QueryAPI = Depends(get_query)):
    return query.resolve_all_for_rule(rule_id)


# =============================================================================
# Alerts
# =============================================================================

@router.get("")
def list_alerts(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    unresolved_only: bool = Query(default=False),
    severity: Optional[Severity] = Query(default=None),
    rule_id: Optional[str] = Query(default=None),
    query: QueryAPI = Depends(get_query),
):
    return query.list_alerts(
        limit=limit,
        offset=offset,
        unresolved_only=unresolved_only,
        severity=severity,
        rule_id=rule_id,
    )


@router.post("/{alert_id}/resolve")
def resolve_alert(alert_id: str, query: QueryAPI = Depends(get_query)):
    return {"message": "Alert resolved", "alert": query.resolve_alert(alert_id)}
