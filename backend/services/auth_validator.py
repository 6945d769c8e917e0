"""Caller identity resolution backed by Supabase Auth."""
import logging
from supabase import create_client, Client

from config import SUPABASE_URL, SUPABASE_KEY
from services.errors import AuthError

logger = logging.getLogger(__name__)


class AuthValidator:
    """Resolves a bearer access token to the id of the user it was issued to."""

    def __init__(self, supabase_url: str = SUPABASE_URL, supabase_key: str = SUPABASE_KEY):
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")
        self.client: Client = create_client(supabase_url, supabase_key)

    def resolve_user_id(self, token: str) -> str:
        """
        Validate the access token and return its user id.

        Raises:
            AuthError: If the token is empty, expired or otherwise rejected
        """
        if not token:
            raise AuthError("Missing access token")

        try:
            response = self.client.auth.get_user(token)
        except Exception as e:
            logger.warning(f"Token validation failed: {e}")
            raise AuthError("Unauthorized or invalid token") from e

        user = getattr(response, "user", None)
        if user is None or not getattr(user, "id", None):
            logger.warning("Token validation returned no user")
            raise AuthError("Unauthorized or invalid token")
        return str(user.id)
