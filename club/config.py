import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Club backend configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///club.db')

    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    PHOTO_STORAGE_DIR = os.getenv('PHOTO_STORAGE_DIR', 'photos')

    # Identity that is granted the admin role at startup (optional)
    BOOTSTRAP_ADMIN_IDENTITY = os.getenv('BOOTSTRAP_ADMIN_IDENTITY', '')

    # Member settings
    STARTING_ELO = int(os.getenv('STARTING_ELO', 1200))
    MAX_NAME_LENGTH = 100

    # Elo calculation settings
    K_FACTOR_PROVISIONAL = 40   # Fewer than 30 approved matches
    K_FACTOR_STANDARD = 20      # 30 to 99 approved matches
    K_FACTOR_ESTABLISHED = 10   # 100+ approved matches
    PROVISIONAL_MATCH_COUNT = 30
    ESTABLISHED_MATCH_COUNT = 100

    # Match workflow settings
    MAX_REJECTION_REASON_LENGTH = 255

    # Tournament settings
    TOURNAMENT_MAX_ROUNDS = 10
    TOURNAMENT_MAX_TABLES = 7
    POINTS_PER_WIN = 1
    POINTS_PER_LOSS = 0

    # Photo settings
    MAX_BANNER_PHOTOS = 20

    @classmethod
    def get_async_database_url(cls) -> str:
        """Get the database URL with an async driver"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return database_url

    @classmethod
    def validate(cls):
        """Validate that configuration values are consistent"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        if cls.STARTING_ELO < 0:
            raise ValueError("STARTING_ELO must be non-negative")
        if not cls.PROVISIONAL_MATCH_COUNT < cls.ESTABLISHED_MATCH_COUNT:
            raise ValueError("PROVISIONAL_MATCH_COUNT must be lower than ESTABLISHED_MATCH_COUNT")
        if cls.MAX_BANNER_PHOTOS <= 0:
            raise ValueError("MAX_BANNER_PHOTOS must be positive")
