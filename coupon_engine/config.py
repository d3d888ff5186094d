import os
from dotenv import load_dotenv

# Load .env before anything reads the environment
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./coupons.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("COUPON_LOG_DIR")

CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₹")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
