"""Response models for /api/activity/*."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ActiveSpecies(BaseModel):
    species_name: str
    activity_score: int
    recent_count: int


class CurrentActivityResponse(BaseModel):
    active_species: List[ActiveSpecies]
    current_hour: int
    timestamp: datetime


class SpeciesHeatmap(BaseModel):
    species_name: str
    hourly_data: List[int]  # 24 slots, index = hour of day


class HeatmapResponse(BaseModel):
    heatmap: List[SpeciesHeatmap]
    days_analyzed: int
    generated_at: datetime


class HourlyActivity(BaseModel):
    hour: int
    count: int
    percentage: float


class DateRange(BaseModel):
    start: datetime
    end: datetime


class ActivityPattern(BaseModel):
    species_name: str
    total_detections: int
    hourly_breakdown: List[HourlyActivity]
    peak_hours: List[int]
    data_date_range: Optional[DateRange] = None


class SpeciesActivityResponse(BaseModel):
    pattern: ActivityPattern
