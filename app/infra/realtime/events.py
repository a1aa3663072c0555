from enum import Enum


class RealtimeEvent(str, Enum):
    CONNECTION_ESTABLISHED = "connection_established"
    SESSION_JOINED = "session_joined"
    PARTICIPANT_JOINED = "participant_joined"
    PARTICIPANT_LEFT = "participant_left"
    PARTICIPANT_DISCONNECTED = "participant_disconnected"
    PONG = "pong"
    ERROR = "error"
    INTERVENTION_SUGGESTED = "intervention_suggested"
    FOCUS_METRICS_UPDATE = "focus_metrics_update"
    GAME_FEEDBACK = "game_feedback"
    INTERVENTION_PROGRESS = "intervention_progress"
    STEP_COMPLETED = "step_completed"
    HINT_AVAILABLE = "hint_available"
    DOCUMENT_UPDATED = "document_updated"
    WRITING_FEEDBACK = "writing_feedback"
    INTERVENTION_TRIGGERED = "intervention_triggered"
    FOCUS_ALERT = "focus_alert"
    SYSTEM_MESSAGE = "system_message"
