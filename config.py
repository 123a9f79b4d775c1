import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-key")

    # external workshop API (the system of record)
    API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:5000")
    API_TIMEOUT = float(os.getenv("API_TIMEOUT", "10"))

    # read cache in front of the API
    CACHE_TYPE = os.getenv("CACHE_TYPE", "SimpleCache")
    CACHE_DEFAULT_TIMEOUT = int(os.getenv("CACHE_DEFAULT_TIMEOUT", "300"))

    DEFAULT_TAX_RATE = os.getenv("DEFAULT_TAX_RATE", "15")
    DEFAULT_QUOTATION_VALID_DAYS = int(os.getenv("DEFAULT_QUOTATION_VALID_DAYS", "30"))
    DEFAULT_PAYMENT_TERMS = os.getenv("DEFAULT_PAYMENT_TERMS", "Net 30")
    RECENT_INVOICES_LIMIT = int(os.getenv("RECENT_INVOICES_LIMIT", "10"))
    EXPIRING_SOON_DAYS = int(os.getenv("EXPIRING_SOON_DAYS", "3"))

    # token used outside a signed-in session (CLI reports)
    API_TOKEN = os.getenv("API_TOKEN")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-key"
    CACHE_TYPE = "SimpleCache"
    API_BASE_URL = "http://api.test"
