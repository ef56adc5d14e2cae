"""Pydantic models for API request validation"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SuggestionsRequest(BaseModel):
    """Request body for AI habit suggestions"""
    goals: List[str] = Field(default_factory=list, max_length=10, description="What the user wants to achieve")
    preferences: Dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form preferences (time available, difficulty, ...)"
    )


class CoachingRequest(BaseModel):
    """Request body for personalized coaching"""
    challenge: Optional[str] = Field(default=None, max_length=500, description="What the user is struggling with")
    context: Optional[str] = Field(default=None, description="Motivation context, defaults to 'coaching'")
