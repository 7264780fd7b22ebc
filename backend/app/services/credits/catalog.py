"""Tool cost catalog: cached lookup of per-tool credit prices."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.tool_cost import CreditToolCost

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCost:
    tool_type: str
    tool_name: str
    credit_cost: int
    description: str | None = None


class ToolCostCatalog:
    """Process-local cache of active tool costs.

    Constructed once (at app startup, or per test) and passed to the
    consumption engine. Rows are loaded on first lookup and again only when
    ``refresh`` is called. Unknown or inactive tools cost 0.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory
        self._costs: dict[str, ToolCost] | None = None
        self._lock = threading.Lock()

    def refresh(self, db: Session | None = None) -> int:
        """Reload active tool costs. Returns the number of tools loaded."""
        if db is None:
            if self._session_factory is None:
                raise RuntimeError("ToolCostCatalog.refresh needs a session or a session factory")
            with self._session_factory() as session:
                costs = self._load(session)
        else:
            costs = self._load(db)

        with self._lock:
            self._costs = costs
        logger.info("Tool cost catalog loaded (%d active tools)", len(costs))
        return len(costs)

    def _load(self, db: Session) -> dict[str, ToolCost]:
        rows = db.execute(
            select(CreditToolCost).where(CreditToolCost.is_active.is_(True))
        ).scalars().all()
        return {
            row.tool_type: ToolCost(
                tool_type=row.tool_type,
                tool_name=row.tool_name,
                credit_cost=max(int(row.credit_cost), 0),
                description=row.description,
            )
            for row in rows
        }

    def _ensure_loaded(self) -> dict[str, ToolCost]:
        if self._costs is None:
            self.refresh()
        return self._costs

    def get(self, tool_type: str) -> ToolCost | None:
        return self._ensure_loaded().get(tool_type)

    def get_cost(self, tool_type: str) -> int:
        tool = self.get(tool_type)
        return tool.credit_cost if tool is not None else 0

    def list_tools(self) -> list[ToolCost]:
        return sorted(self._ensure_loaded().values(), key=lambda t: t.tool_name)
