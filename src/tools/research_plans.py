"""Research plan tools backed by ResearchPlanStore.

Each tool reports failures as {"status": "error", "message": ...} rather
than raising, so a bad argument or database problem is visible to the
model as an ordinary tool result.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from src.tools.base import Tool
from src.utils.storage import ResearchPlanStore, StorageIOError

logger = logging.getLogger(__name__)


def _error(message: str) -> dict[str, str]:
    return {"status": "error", "message": message}


class StoreResearchPlanTool(Tool):
    """Stores a research plan and returns the stored row."""

    def __init__(self, store: ResearchPlanStore) -> None:
        super().__init__(
            "store_research_plan",
            "Stores a user's research plan in the database.",
            {
                "short_summary": {
                    "type": "string",
                    "description": "A very short summary title of the research plan.",
                },
                "details": {
                    "type": "string",
                    "description": "The details of the research plan.",
                },
            },
        )
        self.store = store

    async def execute(self, arguments: str) -> Any:
        try:
            args = json.loads(arguments)
            plan = self.store.add(args["short_summary"], args["details"])
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning("Invalid arguments for %s: %s", self.name, e)
            return _error(f"Invalid arguments: {e}")
        except StorageIOError as e:
            return _error(str(e))
        return plan.model_dump()


class GetResearchPlansTool(Tool):
    """Lists all stored research plans."""

    def __init__(self, store: ResearchPlanStore) -> None:
        super().__init__(
            "get_research_plans",
            "Gets a user's research plans from the database.",
            {},
        )
        self.store = store

    async def execute(self, arguments: str) -> Any:
        try:
            plans = self.store.list_plans()
        except StorageIOError as e:
            return _error(str(e))
        return [plan.model_dump() for plan in plans]


class DeleteResearchPlanTool(Tool):
    """Deletes a research plan by id."""

    def __init__(self, store: ResearchPlanStore) -> None:
        super().__init__(
            "delete_research_plan",
            "Deletes a user's research plan from the database.",
            {
                "id": {
                    "type": "integer",
                    "description": "The ID of the research plan to delete.",
                },
            },
        )
        self.store = store

    async def execute(self, arguments: str) -> Any:
        try:
            args = json.loads(arguments)
            deleted = self.store.delete(int(args["id"]))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Invalid arguments for %s: %s", self.name, e)
            return _error(f"Invalid arguments: {e}")
        except StorageIOError as e:
            return _error(str(e))
        if not deleted:
            return _error(f"Research plan {args['id']} not found")
        return {"status": "success", "message": "Research plan deleted"}


def research_plan_tools(store: ResearchPlanStore) -> list[Tool]:
    """Return the store, get and delete tools sharing one store."""
    return [
        StoreResearchPlanTool(store),
        GetResearchPlansTool(store),
        DeleteResearchPlanTool(store),
    ]
