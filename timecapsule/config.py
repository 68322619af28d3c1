import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.secret_key = os.environ.get('SECRET_KEY', 'change-me')
        self.token_url = os.environ.get('TOKEN_URL', 'http://localhost:8000/login')
        self.database_url = os.environ.get('DATABASE_URL', 'sqlite:///./timecapsule.db')
        self.capsule_store = os.environ.get('CAPSULE_STORE', 'memory')
        self.broker_url = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
        self.result_backend = os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0')
        self.notify_on_unlock = _flag('NOTIFY_ON_UNLOCK')
        self.log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()


settings = Settings()
