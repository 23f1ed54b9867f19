"""Agents built on the provider manager.

Example:
    >>> from src.agents import Agent, ResearchPlannerAgent
"""

from src.agents.base import Agent
from src.agents.research_planner import ResearchPlannerAgent

__all__ = ["Agent", "ResearchPlannerAgent"]
