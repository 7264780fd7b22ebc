"""Request-scoped access to the services built at startup."""

from fastapi import Request

from app.services.credits import RealtimeNotifier, ToolCostCatalog


def get_catalog(request: Request) -> ToolCostCatalog:
    return request.app.state.tool_cost_catalog


def get_notifier(request: Request) -> RealtimeNotifier:
    return request.app.state.notifier
