"""Configuration module for Flask application."""
import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Database
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///pos_cart.db')

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'

    # Cart snapshot storage: 'memory', 'redis' or 'sql'
    CART_BACKEND = os.getenv('CART_BACKEND', 'sql').lower()
    CART_KEY_PREFIX = os.getenv('CART_KEY_PREFIX', 'pos')
    CART_SNAPSHOT_TTL = int(os.getenv('CART_SNAPSHOT_TTL', '0'))  # seconds, 0 = no expiry

    # Redis (only used when CART_BACKEND=redis)
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')

    # Tax rate in percent applied when a request does not pass its own
    TAX_RATE = Decimal(os.getenv('TAX_RATE', '0'))


class TestConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    CART_BACKEND = 'memory'
    TAX_RATE = Decimal('10')
