from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

ROLE_PATTERN = "^(ADMIN|MANAGER|AGENT)$"


class LoginRequest(BaseModel):
    username: str = Field(min_length=3, max_length=150)
    password: str = Field(min_length=5, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    id: int
    username: str
    role: str
    is_active: bool

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=150)
    password: str = Field(min_length=8, max_length=128)
    role: str = Field(default="AGENT", pattern=ROLE_PATTERN)


class UserUpdate(BaseModel):
    is_active: Optional[bool] = None
    role: Optional[str] = Field(default=None, pattern=ROLE_PATTERN)
    password: Optional[str] = Field(default=None, min_length=8, max_length=128)


class PhoneAssignmentRequest(BaseModel):
    phone_number_ids: List[int]


class SendSmsRequest(BaseModel):
    to_number: str = Field(min_length=1)
    message: str = Field(min_length=1)
    dlt_template_id: str = Field(min_length=1)
    dlt_entity_id: str = Field(min_length=1)


class MakeCallRequest(BaseModel):
    to_number: str = Field(min_length=1)
    from_number: Optional[str] = None
    record: str = "true"


class ConnectCallRequest(BaseModel):
    from_number: str = Field(min_length=1)
    to_number: str = Field(min_length=1)


class CallbackCallerRequest(BaseModel):
    caller_number: str = Field(min_length=1)
    agent_number: Optional[str] = None
    original_call_id: Optional[str] = None


class VoiceCallbackOut(BaseModel):
    id: int
    call_sid: str
    user_id: Optional[str]
    sid: Optional[str]
    parent_call_sid: Optional[str]
    date_created: Optional[str]
    date_updated: Optional[str]
    account_sid: Optional[str]
    to_number: Optional[str]
    from_number: Optional[str]
    phone_number_sid: Optional[str]
    status: Optional[str]
    start_time: Optional[str]
    end_time: Optional[str]
    duration: Optional[str]
    price: Optional[str]
    direction: Optional[str]
    answered_by: Optional[str]
    forwarded_from: Optional[str]
    caller_name: Optional[str]
    uri: Optional[str]
    recording_url: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class SmsCallbackOut(BaseModel):
    id: int
    sms_sid: str
    user_id: Optional[str]
    to_number: Optional[str]
    status: Optional[str]
    detailed_status: Optional[str]
    detailed_status_code: Optional[str]
    sms_units: Optional[int]
    date_sent: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class HealthCheckOut(BaseModel):
    id: int
    timestamp: datetime
    status_type: str
    incoming_affected: Optional[bool]
    outgoing_affected: Optional[bool]
    raw_data: Optional[Dict[str, Any]]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class HealthStats(BaseModel):
    total: int
    ok: int
    errors: int
    warnings: int
    uptime: float
    start_date: datetime
    end_date: datetime


class SyncStatusOut(BaseModel):
    id: int
    sync_type: str
    last_sync_time: datetime
    status: str
    records_synced: int
    error_message: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class SyncStats(BaseModel):
    total: int
    successful: int
    failed: int
    success_rate: float
    total_records_synced: int
    start_date: datetime
    end_date: datetime


class PhoneNumberOut(BaseModel):
    id: int
    number: str
    friendly_name: Optional[str]
    department_name: Optional[str]
    type: Optional[str]
    is_active: bool
    is_primary: bool
    capabilities: Optional[Dict[str, Any]]
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="metadata_")
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class PhoneNumberUpdate(BaseModel):
    friendly_name: Optional[str] = None
    department_name: Optional[str] = None
    is_active: Optional[bool] = None
    is_primary: Optional[bool] = None


class RecordingMetadata(BaseModel):
    call_sid: str
    has_recording: bool
    recording_url: Optional[str]
    status: Optional[str]
    duration: Optional[str]
    start_time: Optional[str]
    end_time: Optional[str]
    from_number: Optional[str]
    to_number: Optional[str]
    direction: Optional[str]
    created_at: Optional[datetime]


class RecordingPage(BaseModel):
    calls: List[RecordingMetadata]
    total: int
    page: int
    limit: int
    total_pages: int


class DirectionCount(BaseModel):
    direction: str
    count: int


class DashboardSummary(BaseModel):
    active_calls: int
    calls_today: int
    completed_calls: int
    missed_calls: int
    abandoned_calls: int
    failed_calls: int
    avg_call_duration: int
    success_rate: float
    calls_by_direction: List[DirectionCount]


class HourlyPoint(BaseModel):
    hour: int
    count: int


class CallMetrics(BaseModel):
    total_calls: int
    completed_calls: int
    missed_calls: int
    abandoned_calls: int
    failed_calls: int
    average_duration: int
    peak_hour: int
    calls_by_hour: List[HourlyPoint]


class CallHistoryItem(BaseModel):
    id: int
    call_sid: str
    caller_number: str
    called_number: str
    department: str
    status: str
    status_category: str
    status_description: str
    started_at: Optional[str]
    ended_at: Optional[str]
    duration_seconds: Optional[int]
    recording_url: Optional[str]
    direction: Optional[str]
    answered_by: Optional[str]


class CallHistoryPage(BaseModel):
    items: List[CallHistoryItem]
    total: int
    page: int
    page_size: int
