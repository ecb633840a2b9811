from exocall.models.user import User
from exocall.models.audit_log import AuditLog
from exocall.models.voice_callback import VoiceCallback
from exocall.models.sms_callback import SmsCallback
from exocall.models.health_check import HealthCheck
from exocall.models.sync_status import SyncStatus
from exocall.models.phone_number import PhoneNumber, UserPhoneAssignment

__all__ = [
    "User",
    "AuditLog",
    "VoiceCallback",
    "SmsCallback",
    "HealthCheck",
    "SyncStatus",
    "PhoneNumber",
    "UserPhoneAssignment",
]
