from enum import Enum


class SessionType(str, Enum):
    FOCUS = "focus"
    GAME = "game"
    HOMEWORK = "homework"
    WRITING = "writing"


class InboundMessageType(str, Enum):
    JOIN_SESSION = "join_session"
    LEAVE_SESSION = "leave_session"
    FOCUS_EVENT = "focus_event"
    GAME_UPDATE = "game_update"
    HOMEWORK_PROGRESS = "homework_progress"
    WRITING_UPDATE = "writing_update"
    PING = "ping"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    IN_SESSION = "in_session"
    CLOSED = "closed"


class ConnectionAction(str, Enum):
    REGISTER = "register"
    JOIN_SESSION = "join_session"
    LEAVE_SESSION = "leave_session"
    DISCONNECT = "disconnect"
