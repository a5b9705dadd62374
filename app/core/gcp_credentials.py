"""GCP service account credentials from settings (file path or inline JSON)."""
import json
import logging
import os
from typing import Optional

from google.oauth2 import service_account

from app.config import settings

logger = logging.getLogger(__name__)

BIGQUERY_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


def get_gcp_credentials() -> Optional[service_account.Credentials]:
    """Return explicit credentials, or None to fall back to Application Default Credentials."""
    key = settings.gcp_service_account_key or settings.gcp_key_file
    if not key:
        return None
    key = key.strip()
    if key.startswith("{"):
        try:
            info = json.loads(key)
        except json.JSONDecodeError as e:
            raise ValueError(f"gcp_service_account_key is not valid JSON: {e}") from e
        return service_account.Credentials.from_service_account_info(info, scopes=BIGQUERY_SCOPES)
    if not os.path.isfile(key):
        raise ValueError(f"GCP key file not found: {key}")
    logger.info("Loading GCP credentials from %s", key)
    return service_account.Credentials.from_service_account_file(key, scopes=BIGQUERY_SCOPES)
