from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
import structlog

from infrastructure.config.settings import TutorSettings

logger = structlog.get_logger(__name__)


def create_chat_model(settings: TutorSettings) -> BaseChatModel:
    """Build the streaming chat model used by the completion engine"""

    logger.info("Creating chat model", model=settings.model_name, base_url=settings.openai_base_url)

    return ChatOpenAI(
        model=settings.model_name,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.request_timeout_seconds,
        streaming=True
    )
