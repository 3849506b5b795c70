"""
Configuration settings for the Herbful back-office.

Centralized configuration for storage backends, collection paths and
admin defaults.
"""

import os
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_ROOT = Path(os.getenv("HERBFUL_DATA_ROOT", str(PROJECT_ROOT / "data")))
OUTPUT_ROOT = PROJECT_ROOT / "output"

# Storage backend: "json" (local file) or "firebase"
STORE_BACKEND = os.getenv("HERBFUL_STORE_BACKEND", "json")
STORE_FILE = DATA_ROOT / "database.json"
BLOB_ROOT = DATA_ROOT / "blobs"
STATE_ROOT = DATA_ROOT / "state"

# Firebase
FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS", "")
FIREBASE_DATABASE_URL = os.getenv("FIREBASE_DATABASE_URL", "")
FIREBASE_STORAGE_BUCKET = os.getenv("FIREBASE_STORAGE_BUCKET", "")

# Collection paths
TREATMENTS_PATH = "treatments"
REVIEWS_PATH = "reviews"
SYMPTOMS_PATH = "symptoms"
IMAGES_PATH = "treatments/images"

# Listing
DEFAULT_PAGE_SIZE = 10

# Admin auth
SESSION_TTL_HOURS = 24
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_ADMIN_EMAIL = "admin@herbful.com"
CREDENTIALS_STORAGE_KEY = "herbful_admin_credentials"
AUTH_STORAGE_KEY = "herbful_admin_auth"

# Logging
LOG_LEVEL = os.getenv("HERBFUL_LOG_LEVEL", "INFO")  # DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "herbful.log"
