import hmac

from studyplanner.core.config import settings


def verify_api_key(api_key: str) -> bool:
    """
    Verify API key against configured valid keys
    """
    return any(hmac.compare_digest(api_key, key) for key in settings.api_keys)
