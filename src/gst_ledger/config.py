"""
Configuration module for the GST Ledger service
Environment-agnostic: works locally, in Docker, and on Cloud Run
Loads environment variables and validates configuration
"""
import os
import tempfile
from pathlib import Path
from dotenv import load_dotenv

# Project root (src/gst_ledger/config.py -> project root)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Load environment variables from .env file (if exists - local dev only)
env_file = PROJECT_ROOT / '.env'
if env_file.exists():
    load_dotenv(env_file)

# ═══════════════════════════════════════════════════════════════════
# WRITABLE PATHS - Handle containerized environments
# ═══════════════════════════════════════════════════════════════════

def get_writable_path(folder_name: str) -> str:
    """Get a writable path that works in all environments"""
    env_path = os.getenv(folder_name.upper() + '_FOLDER')
    if env_path:
        if os.path.isabs(env_path):
            path = Path(env_path)
        else:
            path = PROJECT_ROOT / env_path
    else:
        path = PROJECT_ROOT / folder_name

    # In containers, /app might be read-only; use /tmp as fallback
    if not path.exists():
        try:
            path.mkdir(parents=True, exist_ok=True)
        except (PermissionError, OSError):
            path = Path(tempfile.gettempdir()) / 'gst_ledger' / folder_name
            path.mkdir(parents=True, exist_ok=True)

    return str(path)

# ═══════════════════════════════════════════════════════════════════
# WEBHOOK AUTHENTICATION
# ═══════════════════════════════════════════════════════════════════

# Either secret may sign a delivery; both are checked
SHOPIFY_API_SECRET = os.getenv('SHOPIFY_API_SECRET', '')
SHOPIFY_WEBHOOK_SECRET = os.getenv('SHOPIFY_WEBHOOK_SECRET', '')
SHOPIFY_API_VERSION = os.getenv('SHOPIFY_API_VERSION', '2024-10')

# ═══════════════════════════════════════════════════════════════════
# STORAGE
# ═══════════════════════════════════════════════════════════════════

DATA_FOLDER = get_writable_path('data')
EXPORT_FOLDER = get_writable_path('exports')

LEDGER_DB_PATH = os.getenv('LEDGER_DB_PATH', str(Path(DATA_FOLDER) / 'gst_ledger.db'))

# Rendered invoices and archived webhook payloads live under this root
DOCUMENT_STORAGE_ROOT = os.getenv(
    'DOCUMENT_STORAGE_ROOT', str(Path(DATA_FOLDER) / 'documents')
)

# Store batch-write limit for ledger rows
LEDGER_BATCH_SIZE = int(os.getenv('LEDGER_BATCH_SIZE', '25'))

HSN_CACHE_TTL_DAYS = int(os.getenv('HSN_CACHE_TTL_DAYS', '90'))
RECORD_TTL_DAYS = int(os.getenv('RECORD_TTL_DAYS', '90'))

# Unit Quantity Code written on every ledger row
DEFAULT_UQC = os.getenv('DEFAULT_UQC', 'NOS')

# ═══════════════════════════════════════════════════════════════════
# DOWNSTREAM SERVICES
# ═══════════════════════════════════════════════════════════════════

# PDF invoice generation service (empty = skip, ledger still written)
DOCUMENT_SERVICE_URL = os.getenv('DOCUMENT_SERVICE_URL', '')
DOCUMENT_SERVICE_TIMEOUT = int(os.getenv('DOCUMENT_SERVICE_TIMEOUT', '30'))

# Location / metafield lookups against the store admin API
EXTERNAL_HTTP_TIMEOUT = int(os.getenv('EXTERNAL_HTTP_TIMEOUT', '10'))

# ═══════════════════════════════════════════════════════════════════
# FEATURE FLAGS
# ═══════════════════════════════════════════════════════════════════

FEATURE_WEBHOOK_ARCHIVE = os.getenv('FEATURE_WEBHOOK_ARCHIVE', 'true').lower() == 'true'
FEATURE_AUDIT_LOG = os.getenv('FEATURE_AUDIT_LOG', 'true').lower() == 'true'

# ═══════════════════════════════════════════════════════════════════
# REPORTS
# ═══════════════════════════════════════════════════════════════════

REPORT_MAX_RANGE_DAYS = int(os.getenv('REPORT_MAX_RANGE_DAYS', '365'))

# ═══════════════════════════════════════════════════════════════════
# API SERVER
# ═══════════════════════════════════════════════════════════════════

API_PORT = int(os.getenv('API_PORT', '8000'))
API_HOST = os.getenv('API_HOST', '0.0.0.0')

# Cloud Run injects PORT
_cloud_run_port = os.getenv('PORT')
if _cloud_run_port:
    API_PORT = int(_cloud_run_port)

API_CORS_ORIGINS = os.getenv('API_CORS_ORIGINS', 'http://localhost:3000').split(',')
API_RATE_LIMIT_PER_MINUTE = int(os.getenv('API_RATE_LIMIT_PER_MINUTE', '60'))

# ═══════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════

LOG_DIR = os.getenv('LOG_DIR', str(PROJECT_ROOT / 'logs'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()


def validate_config():
    """Validate that all required configuration is present"""
    errors = []

    if not SHOPIFY_API_SECRET and not SHOPIFY_WEBHOOK_SECRET:
        errors.append("SHOPIFY_API_SECRET or SHOPIFY_WEBHOOK_SECRET must be set")

    if LEDGER_BATCH_SIZE < 1 or LEDGER_BATCH_SIZE > 25:
        errors.append(f"LEDGER_BATCH_SIZE must be between 1 and 25 (got {LEDGER_BATCH_SIZE})")

    if LOG_LEVEL not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        errors.append(f"LOG_LEVEL is invalid: {LOG_LEVEL}")

    if not DOCUMENT_SERVICE_URL:
        print("[CONFIG] DOCUMENT_SERVICE_URL not set - invoices will be recorded without documents")

    if errors:
        raise ValueError("Configuration errors:\n" + "\n".join(errors))

    return True


if __name__ == "__main__":
    try:
        validate_config()
        print("[OK] Configuration validated successfully")
    except ValueError as e:
        print(f"[FAIL] Configuration validation failed:\n{e}")
