"""
app/repositories package marker.
"""

from app.repositories.competitor_state_repository import CompetitorStateRepository

__all__ = ["CompetitorStateRepository"]
