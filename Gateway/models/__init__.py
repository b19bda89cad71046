# Import all SQLAlchemy models so Alembic autogenerate can discover tables via Base.metadata.
# Alembic's env.py imports this package for side effects.


from .user_model import User  # noqa: F401
from .chat_models import Conversation, Message  # noqa: F401
from .shared_link_model import SharedLink  # noqa: F401
from .translation_model import Translation  # noqa: F401
from .document_model import Document  # noqa: F401
