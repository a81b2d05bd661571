"""
Runtime configuration, read once from the environment (and a local .env).
"""

import os

from dotenv import load_dotenv

load_dotenv()  # .env from the current working directory

# ── BLE ──
DEVICE_NAME: str = os.getenv("DEVICE_NAME", "HealthBand")
BLE_SERVICE_UUID: str = os.getenv("BLE_SERVICE_UUID", "4fafc201-1fb5-459e-8fcc-c5c9c331914b").lower()
BLE_CHARACTERISTIC_UUID: str = os.getenv(
    "BLE_CHARACTERISTIC_UUID", "beb5483e-36e1-4688-b7f5-ea07361b26a8"
).lower()
SCAN_TIMEOUT: float = float(os.getenv("SCAN_TIMEOUT", "10"))  # seconds

# ── Alerts ──
WEBHOOK_URL: str = os.getenv("WEBHOOK_URL", "").strip()
WEBHOOK_TIMEOUT: float = float(os.getenv("WEBHOOK_TIMEOUT", "10"))  # seconds
COUNTDOWN_SECONDS: int = int(os.getenv("COUNTDOWN_SECONDS", "7"))

# ── Caregiver form ──
CONTACT_STORE_PATH: str = os.getenv("CONTACT_STORE_PATH", "caregiver_store.json")
SAVE_STATUS_CLEAR_SECONDS: float = float(os.getenv("SAVE_STATUS_CLEAR_SECONDS", "2"))

# ── API / Server ──
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
