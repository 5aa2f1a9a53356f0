from typing import Optional, Union

from pydantic import BaseModel, Field


class PageView(BaseModel):
    page_url: str
    page_title: str = ""
    visitor_id: str
    session_id: str
    referrer: Optional[str] = None
    is_bot: bool = False
    timestamp: str
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    viewport_width: Optional[int] = None
    viewport_height: Optional[int] = None
    language: str = "unknown"
    timezone: str = "unknown"
    is_mobile: bool = False
    user_agent: str = ""


class ChatEvent(BaseModel):
    visitor_id: str
    session_id: str
    chat_session_id: Optional[str] = None
    event_type: str  # chat_session_start | message | chat_session_end | error
    message_sender: Optional[str] = None
    message_length: Optional[int] = None
    message_count: int = 0
    session_duration: int = 0  # seconds
    end_reason: Optional[str] = None
    has_error: bool = False
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    timestamp: str
    page_url: Optional[str] = None
    user_agent: Optional[str] = None
    language: Optional[str] = None
    timezone: Optional[str] = None


class FeedbackSubmission(BaseModel):
    customer_name: str = "Not provided"
    customer_website: str = "Not provided"
    customer_ref: str
    process_rating: int = Field(ge=1, le=5)
    product_rating: int = Field(ge=1, le=5)
    recommendation_rating: int = Field(ge=1, le=5)
    overall_rating: int = Field(ge=1, le=5)
    average_rating: float
    comments: str = ""
    share_permission: bool = False
    submission_date: str
    submission_time: str
    page_url: Optional[str] = None
    user_agent: Optional[str] = None

    def to_row(self) -> dict:
        return self.model_dump()


class AdminUser(BaseModel):
    id: Union[str, int]
    email: str
    full_name: Optional[str] = None
    role: str = "admin"
    is_active: bool = True
    last_login: Optional[str] = None
