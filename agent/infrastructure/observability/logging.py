import structlog
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "tutor-agent"
) -> None:
    """Setup structured logging configuration"""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to all log entries"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.utcnow().isoformat()

    # chat_id and turn_id are bound per turn by the dispatch engine
    context = structlog.contextvars.get_contextvars()
    for key in ("chat_id", "turn_id"):
        if key in context and key not in event_dict:
            event_dict[key] = context[key]

    return event_dict


def bind_turn_context(chat_id: str, turn_id: str) -> None:
    """Bind the current chat and turn to every log entry in this context"""
    structlog.contextvars.bind_contextvars(chat_id=chat_id, turn_id=turn_id)


def clear_turn_context() -> None:
    structlog.contextvars.unbind_contextvars("chat_id", "turn_id")


class TutorLogger:
    """Specialized logger for tutor turn processing"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_turn_event(
        self,
        event_type: str,
        chat_id: str,
        turn_id: str,
        data: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Log turn lifecycle events"""

        self.logger.info(
            "turn_event",
            event_type=event_type,
            chat_id=chat_id,
            turn_id=turn_id,
            data=data or {},
            **kwargs
        )

    def log_tool_invocation(
        self,
        tool_name: str,
        chat_id: str,
        arguments: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Log tool invocation outcomes"""

        log = self.logger.info if success else self.logger.warning
        log(
            "tool_invocation",
            tool_name=tool_name,
            chat_id=chat_id,
            arguments=arguments or {},
            duration_ms=duration_ms,
            success=success,
            error=error
        )

    def log_session_update(
        self,
        chat_id: str,
        action: str,
        message_count: int,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log turn log commits"""

        self.logger.info(
            "session_update",
            chat_id=chat_id,
            action=action,
            message_count=message_count,
            details=details or {}
        )


tutor_logger = TutorLogger("tutor")
