from sqlalchemy.ext.asyncio import AsyncSession

from src.utils.logger import get_logger


class BaseComponent:
    """Base for components that talk to Stripe or fold data, with a named logger."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)


class BaseService(BaseComponent):
    """Base service class with database dependency injection."""

    def __init__(self, db: AsyncSession):
        super().__init__()
        self.db = db
