import os
from dotenv import load_dotenv

load_dotenv()

# Empty STORE_PATH keeps everything in memory (lost on restart)
STORE_PATH = os.getenv("STORE_PATH", "")
STORE_KEY_PREFIX = os.getenv("STORE_KEY_PREFIX", "nexus_v2_")

DEFAULT_PRICE_PER_THOUSAND_VIEWS = float(os.getenv("DEFAULT_PRICE_PER_THOUSAND_VIEWS", "0.03"))
DEFAULT_PLATFORM_FEE_PERCENT = float(os.getenv("DEFAULT_PLATFORM_FEE_PERCENT", "0"))
MIN_WITHDRAWAL_AMOUNT = float(os.getenv("MIN_WITHDRAWAL_AMOUNT", "10"))

TRAFFIC_INTERVAL_SECONDS = float(os.getenv("TRAFFIC_INTERVAL_SECONDS", "5"))

OUTPUT_DIR = os.getenv("OUTPUT_DIR", "/tmp/revenue_reports")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
