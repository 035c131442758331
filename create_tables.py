"""Create every coachbot table directly from the models (local development)."""
import logging

from coachbot.db.base import Base
from coachbot.db.session import engine
import coachbot.models  # noqa: F401

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("All tables created")
