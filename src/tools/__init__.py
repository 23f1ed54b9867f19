"""Tools exposed to models through function calling.

Example:
    >>> from src.tools import StoreResearchPlanTool
    >>> from src.utils.storage import ResearchPlanStore
    >>> tool = StoreResearchPlanTool(ResearchPlanStore(db_path))
    >>> tool.definition().name
    'store_research_plan'
"""

from src.tools.base import Tool
from src.tools.research_plans import (
    DeleteResearchPlanTool,
    GetResearchPlansTool,
    StoreResearchPlanTool,
    research_plan_tools,
)

__all__ = [
    "DeleteResearchPlanTool",
    "GetResearchPlansTool",
    "StoreResearchPlanTool",
    "Tool",
    "research_plan_tools",
]
