"""
Showtime and bulk schedule schemas
"""

from pydantic import ConfigDict, Field, field_validator
from typing import List, Optional
from uuid import UUID
from datetime import date, datetime, time
from decimal import Decimal

from boxoffice.schemas.base import BaseSchema, IDSchema, TimestampSchema


class ScheduleRequest(BaseSchema):
    """Bulk schedule: every day in the range at every time slot"""
    movie_id: UUID
    screen_id: UUID
    start_date: date
    end_date: date
    time_of_day_slots: List[time] = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    vip_price: Optional[Decimal] = Field(None, ge=0)

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        json_schema_extra={
            "example": {
                "movie_id": "xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx",
                "screen_id": "xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx",
                "start_date": "2026-11-01",
                "end_date": "2026-11-07",
                "time_of_day_slots": ["14:00", "17:30", "21:00"],
                "price": "10.00",
                "vip_price": "15.00"
            }
        },
    )

    @field_validator('end_date')
    def validate_end_date(cls, v, values):
        if 'start_date' in values.data and v < values.data['start_date']:
            raise ValueError('End date must be on or after start date')
        return v


class ScheduleCommit(ScheduleRequest):
    """Bulk schedule commit; force creates despite reported conflicts"""
    force: bool = False


class ConflictResponse(BaseSchema):
    candidate_start: datetime
    candidate_end: datetime
    candidate_movie_title: str
    existing_showtime_id: Optional[UUID] = None
    existing_start: datetime
    existing_end: datetime
    conflicting_movie_title: str


class DraftResponse(BaseSchema):
    start_time: datetime
    price: Decimal
    vip_price: Optional[Decimal] = None


class SchedulePreviewResponse(BaseSchema):
    drafts: List[DraftResponse]
    conflicts: List[ConflictResponse]
    internal_conflicts: List[ConflictResponse]
    discarded_slots: int
    requires_confirmation: bool


class ShowtimeResponse(IDSchema, TimestampSchema):
    tenant_id: UUID
    movie_id: UUID
    screen_id: UUID
    start_time: datetime
    price: Decimal
    vip_price: Optional[Decimal] = None
    is_active: bool


class ShowtimeUpdate(BaseSchema):
    """Single showtime edit; only the fields sent are changed"""
    movie_id: Optional[UUID] = None
    screen_id: Optional[UUID] = None
    start_time: Optional[datetime] = None
    price: Optional[Decimal] = Field(None, ge=0)
    vip_price: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None


class ShowtimeUpdateResponse(BaseSchema):
    showtime: ShowtimeResponse
    conflicts: List[ConflictResponse] = []


class ShowtimeRemoveResponse(BaseSchema):
    showtime_id: UUID
    outcome: str
