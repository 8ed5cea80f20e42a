"""
Runtime configuration for the POS service.

Values are read from the environment (a local .env file is loaded first).
"""
import os
from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))

# Voucher validity windows are evaluated by calendar day in this zone.
POS_TIMEZONE = os.getenv("POS_TIMEZONE", "UTC")

# Mobile numbers shorter than this never trigger a loyal-customer lookup.
MIN_MOBILE_LENGTH = int(os.getenv("POS_MIN_MOBILE_LENGTH", 10))

CURRENCY_SYMBOL = os.getenv("POS_CURRENCY_SYMBOL", "$")

ORDER_TOKEN_PREFIX = os.getenv("ORDER_TOKEN_PREFIX", "TKN")
ORDER_TOKEN_LENGTH = 6
ORDER_TOKEN_ATTEMPTS = 5
