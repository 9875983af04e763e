import datetime as dt
from pydantic import BaseModel, ConfigDict
from typing import List, Optional

class OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

class SampleOut(OrmModel):
    sample_id: int
    sample_name: str
    sample_concentration: Optional[str] = None
    additives: Optional[str] = None
    buffer: Optional[str] = None
    default_volume_ul: Optional[str] = None

class GridTypeOut(OrmModel):
    grid_type_id: int
    grid_type_name: str
    grid_batch: Optional[str] = None
    manufacturer: Optional[str] = None
    specifications: Optional[str] = None
    quantity: Optional[int] = None
    marked_as_empty: Optional[bool] = None

class GridBatchOut(GridTypeOut):
    used_grids: int = 0
    remaining_grids: int = 0

class SessionSummary(OrmModel):
    session_id: int
    user_name: str
    date: dt.date
    grid_box_name: Optional[str] = None
    puck_name: Optional[str] = None
    puck_position: Optional[int] = None
    grid_count: int = 0
    humidity_percent: Optional[float] = None
    temperature_c: Optional[float] = None
    sample_names: Optional[str] = None
    trashed: bool = False

class Created(BaseModel):
    success: bool = True
    id: int
    message: str

class SessionCreated(BaseModel):
    success: bool = True
    session_id: int
    message: str

class StateChange(BaseModel):
    success: bool = True
    message: str
    affected_rows: int = 1

class MicroscopeSaved(BaseModel):
    success: bool = True
    id: int
    message: str
    slots: List[int]

class MicroscopeSessionOut(OrmModel):
    microscope_session_id: int
    date: dt.date
    microscope: str
    overnight: Optional[bool] = None
    clipped_at_microscope: Optional[bool] = None
    issues: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    grid_count: int = 0

class DashboardStats(BaseModel):
    total_sessions: int
    total_grids: int
    active_users: int
    avg_humidity: Optional[float] = None
    avg_temperature: Optional[float] = None

class Dashboard(BaseModel):
    stats: DashboardStats
    recent_sessions: List[SessionSummary]

class BlogPostSummary(OrmModel):
    id: int
    slug: str
    title: str
    category: str
    author: str
    last_modified_by: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    excerpt: str = ""

class BlogPostOut(BlogPostSummary):
    content: str
