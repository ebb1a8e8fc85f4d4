# focusguard/models/__init__.py
from focusguard.models.users import User
from focusguard.models.sessions import FocusSession
