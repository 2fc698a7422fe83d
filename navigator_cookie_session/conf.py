"""Names and defaults shared between the codec, the middleware and the host."""
import os

SESSION_CONTEXT = 'navigator_session_context'
SESSION_COOKIE_NAME = os.environ.get('SESSION_COOKIE_NAME', 'navigator_session')
SESSION_MAX_AGE = int(os.environ.get('SESSION_MAX_AGE', 3600))
KEY_LENGTH = 32  # HMAC-SHA256 and AES-256 / ChaCha20 keys
KEY_ID_SIZE = 2  # uint16 big-endian
# dict keys with this prefix mark tagged values inside an orjson body
RESERVED_KEY_PREFIX = '__session_'
