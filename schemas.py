"""
Pydantic schemas for request/response validation and serialization.
Provides the report, category and session types shared by the services
and the FastAPI endpoints.
"""

from datetime import datetime
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, Field


class Category(str, Enum):
    """Closed set of issue categories."""
    pothole = "Pothole"
    traffic_signal = "Traffic Signal"
    road_sign = "Road Sign"
    street_light = "Street Light"
    waste_management = "Waste Management"
    other = "Other"


class Priority(str, Enum):
    """Urgency chosen by the reporter."""
    low = "Low"
    medium = "Medium"
    high = "High"


class ReportStatus(str, Enum):
    """Moderation status; changed only by the external moderation process."""
    reported = "Reported"
    in_progress = "In Progress"
    fixed = "Fixed"
    rejected = "Rejected"


ALL = "All"
ANONYMOUS_USER_ID = "anonymous"
ANONYMOUS_REPORTER = "Anonymous User"


# ============== Report Schemas ==============

class ReportDraft(BaseModel):
    """Form state collected by the report composer."""
    title: str = ""
    description: str = ""
    location: str = ""
    category: Category = Category.pothole
    priority: Priority = Priority.medium
    image_url: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Large pothole on Main Street",
                "description": "Deep pothole near the traffic light intersection.",
                "location": "123 Main St, Downtown",
                "category": "Pothole",
                "priority": "High"
            }
        }


class Report(BaseModel):
    """A submitted civic-issue record."""
    id: str
    title: str
    description: str
    category: Category
    priority: Priority
    status: ReportStatus = ReportStatus.reported
    location: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    reporter: str
    user_id: str = ANONYMOUS_USER_ID
    votes: int = Field(0, ge=0)
    date: datetime
    image_url: Optional[str] = None
    response_time: Optional[str] = None

    class Config:
        validate_assignment = True


class ReportFilter(BaseModel):
    """List filter; status and category accept the wildcard "All"."""
    search_term: str = ""
    status: str = ALL
    category: str = ALL


class GeoFix(BaseModel):
    """A device geolocation fix."""
    latitude: float = Field(..., ge=-90, le=90, description="Latitude coordinate")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude coordinate")


class LocationReport(BaseModel):
    """Outcome of the device geolocation request; omit the coordinates on failure."""
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    error: Optional[str] = Field(None, description="Reason the device gave no fix")


class ComposerState(BaseModel):
    """Snapshot of a composer's draft and flags."""
    draft: ReportDraft
    location_fix: Optional[GeoFix] = None
    location_attempted: bool = False
    submitting: bool = False
    submit_status: str = "idle"


class VoteResponse(BaseModel):
    """Outcome of a vote request."""
    report_id: str
    votes: int
    state: str
    voted: bool


# ============== Category Schemas ==============

class CategoryOption(BaseModel):
    """Static catalog entry."""
    value: Category
    label: str
    description: str
    severity: str
    confidence: float = Field(..., ge=0, le=1)
    recommendations: List[str]


class AnalysisResult(BaseModel):
    """Outcome of the (manual) category selection step."""
    category: str
    confidence: float = Field(..., ge=0, le=1)
    original_confidence: float = Field(..., ge=0, le=1)
    severity: str
    description: str
    recommendations: List[str] = []
    warnings: List[str] = []
    needs_review: bool
    human_review_required: bool
    is_manually_selected: bool = False
    timestamp: datetime


class PhotoAnalysisResponse(BaseModel):
    """Pending analysis plus the catalog to choose from."""
    analysis: AnalysisResult
    categories: List[CategoryOption]
    image_url: Optional[str] = None


class CategorySelection(BaseModel):
    """Request body for choosing a category."""
    category: Category


# ============== Session Schemas ==============

class SignUpRequest(BaseModel):
    email: str
    password: str
    full_name: str


class SignInRequest(BaseModel):
    email: str
    password: str


class PasswordResetRequest(BaseModel):
    email: str


class Identity(BaseModel):
    """The currently authenticated user as seen by the client."""
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None


class SessionResponse(BaseModel):
    authenticated: bool
    user: Optional[Identity] = None
    message: Optional[str] = None


# ============== Response Wrappers ==============

class MessageResponse(BaseModel):
    """Generic message response schema."""
    message: str
    data: Optional[dict] = None


class SetupResponse(BaseModel):
    """Returned in place of every route while credentials are missing."""
    configured: bool
    missing: List[str]
    instructions: List[str]


class Statistics(BaseModel):
    """Aggregate counts for the statistics view."""
    total_problems: int = Field(..., description="Total number of reports")
    fixed_problems: int = Field(..., description="Reports with status Fixed")
    active_users: int = Field(..., description="Number of user profiles")
    user_points: int = Field(0, description="Points of the signed-in user")

    class Config:
        json_schema_extra = {
            "example": {
                "total_problems": 127,
                "fixed_problems": 89,
                "active_users": 342,
                "user_points": 156
            }
        }
