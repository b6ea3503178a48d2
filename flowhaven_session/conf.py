"""Session-level settings, read from the environment."""
import os

# Key (inside the session data) holding the authenticated user id.
SESSION_KEY = os.environ.get("SESSION_KEY", "user_id")
# Key (inside the session data) holding the session id.
SESSION_ID = os.environ.get("SESSION_ID", "session_id")
# Key on the aiohttp request where the SessionData object lives.
SESSION_OBJECT = os.environ.get("SESSION_OBJECT", "flowhaven_session")
