"""
Configuration module for Menu Pal
Environment-agnostic: Works locally, in Docker, and on Google Cloud
Loads environment variables and validates configuration
"""
import os
import tempfile
from pathlib import Path
from dotenv import load_dotenv

# Get project root directory (parent of src/)
PROJECT_ROOT = Path(__file__).parent.parent

# Load environment variables from .env file (if exists - local dev only)
env_file = PROJECT_ROOT / '.env'
if env_file.exists():
    load_dotenv(env_file)

# ═══════════════════════════════════════════════════════════════════
# ENVIRONMENT DETECTION
# ═══════════════════════════════════════════════════════════════════

def detect_environment() -> str:
    """
    Detect which environment we're running in

    Returns:
        'cloud_run', 'docker', or 'local'
    """
    # Cloud Run sets K_SERVICE
    if os.getenv('K_SERVICE'):
        return 'cloud_run'

    # Docker typically has /.dockerenv file
    if Path('/.dockerenv').exists():
        return 'docker'

    return 'local'

RUNTIME_ENVIRONMENT = detect_environment()

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
            path = Path(tempfile.gettempdir()) / 'menu_pal' / folder_name
            path.mkdir(parents=True, exist_ok=True)

    return str(path)

# ═══════════════════════════════════════════════════════════════════
# CONFIGURATION VALUES
# ═══════════════════════════════════════════════════════════════════

LOG_FOLDER = get_writable_path('logs')
DATA_FOLDER = get_writable_path('data')

# Extraction service (the /api/generate proxy in front of Gemini)
EXTRACTION_ENDPOINT_URL = os.getenv('EXTRACTION_ENDPOINT_URL', 'http://localhost:8000/api/generate')
EXTRACTION_MODEL = os.getenv('EXTRACTION_MODEL', 'gemini-2.5-flash')
EXTRACTION_TIMEOUT_SECONDS = float(os.getenv('EXTRACTION_TIMEOUT_SECONDS', '120'))
EXTRACTION_MAX_RETRIES = int(os.getenv('EXTRACTION_MAX_RETRIES', '3'))
EXTRACTION_BACKOFF_BASE_SECONDS = float(os.getenv('EXTRACTION_BACKOFF_BASE_SECONDS', '1.0'))

# Image normalization
MAX_IMAGES_PER_MENU = int(os.getenv('MAX_IMAGES_PER_MENU', '4'))
IMAGE_MAX_DIMENSION = int(os.getenv('IMAGE_MAX_DIMENSION', '1536'))
IMAGE_JPEG_QUALITY = int(os.getenv('IMAGE_JPEG_QUALITY', '70'))

# ═══════════════════════════════════════════════════════
# EXCHANGE RATES
# ═══════════════════════════════════════════════════════

# Every rate in the merged table is "1 unit = X units of HOME_CURRENCY"
HOME_CURRENCY = os.getenv('HOME_CURRENCY', 'TWD')

# Global baseline feed: JSON {"rates": {code: units per 1 HOME_CURRENCY}}
RATES_GLOBAL_URL = os.getenv('RATES_GLOBAL_URL', 'https://open.er-api.com/v6/latest/TWD')

# Regional authoritative feed: comma separated text, one currency per row
RATES_REGIONAL_URL = os.getenv('RATES_REGIONAL_URL', 'https://rate.bot.com.tw/xrt/flcsv/0/day')
REGIONAL_PRIMARY_COLUMN = int(os.getenv('REGIONAL_PRIMARY_COLUMN', '12'))   # spot sell
REGIONAL_FALLBACK_COLUMN = int(os.getenv('REGIONAL_FALLBACK_COLUMN', '2'))  # cash sell

RATES_TIMEOUT_SECONDS = float(os.getenv('RATES_TIMEOUT_SECONDS', '10'))
RATES_CACHE_TTL_SECONDS = int(os.getenv('RATES_CACHE_TTL_SECONDS', '600'))  # 10 minutes

# ═══════════════════════════════════════════════════════
# SESSION / PERSISTENCE
# ═══════════════════════════════════════════════════════

GEOLOCATION_TIMEOUT_SECONDS = float(os.getenv('GEOLOCATION_TIMEOUT_SECONDS', '5'))
LOCAL_STORE_PATH = os.getenv('LOCAL_STORE_PATH', str(Path(DATA_FOLDER) / 'menu_pal.db'))

# Licensing upstream (consumed only as a boolean gate)
ENTITLEMENT_URL = os.getenv('ENTITLEMENT_URL', '')
ENTITLEMENT_TIMEOUT_SECONDS = float(os.getenv('ENTITLEMENT_TIMEOUT_SECONDS', '15'))

# ═══════════════════════════════════════════════════════════════════
# PROXY API (FastAPI)
# ═══════════════════════════════════════════════════════════════════

API_PORT = int(os.getenv('API_PORT', '8000'))
API_HOST = os.getenv('API_HOST', '0.0.0.0')

# Cloud Run sets PORT to the single port it routes traffic to
_cloud_run_port = os.getenv('PORT')
if _cloud_run_port:
    API_PORT = int(_cloud_run_port)

# CORS configuration (comma-separated origins)
API_CORS_ORIGINS = os.getenv('API_CORS_ORIGINS', 'http://localhost:3000').split(',')

# Rate limiting
API_RATE_LIMIT_PER_MINUTE = int(os.getenv('API_RATE_LIMIT_PER_MINUTE', '60'))

# Monitoring Configuration
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FILE_MAX_MB = int(os.getenv('LOG_FILE_MAX_MB', '10'))
LOG_FILE_BACKUP_COUNT = int(os.getenv('LOG_FILE_BACKUP_COUNT', '5'))

SERVICE_VERSION = os.getenv('SERVICE_VERSION', '1.0.0')


def validate_config():
    """Validate that all required configuration is present"""
    errors = []

    print(f"[CONFIG] Runtime environment: {RUNTIME_ENVIRONMENT}")

    if not EXTRACTION_ENDPOINT_URL.startswith(('http://', 'https://')):
        errors.append(f"EXTRACTION_ENDPOINT_URL is not an http(s) URL: {EXTRACTION_ENDPOINT_URL}")

    if EXTRACTION_MAX_RETRIES < 0:
        errors.append("EXTRACTION_MAX_RETRIES must be >= 0")

    if MAX_IMAGES_PER_MENU < 1:
        errors.append("MAX_IMAGES_PER_MENU must be >= 1")

    if not 1 <= IMAGE_JPEG_QUALITY <= 95:
        errors.append("IMAGE_JPEG_QUALITY must be between 1 and 95")

    if len(HOME_CURRENCY) != 3:
        errors.append(f"HOME_CURRENCY must be a 3-letter code, got '{HOME_CURRENCY}'")

    if LOG_LEVEL.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        errors.append(f"LOG_LEVEL is invalid: {LOG_LEVEL}")

    if errors:
        raise ValueError("Configuration errors:\n" + "\n".join(errors))

    return True


if __name__ == "__main__":
    try:
        validate_config()
        print("[OK] Configuration validated successfully")
    except ValueError as e:
        print(f"[FAIL] Configuration validation failed:\n{e}")
