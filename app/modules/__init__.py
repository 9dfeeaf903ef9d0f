"""Domain modules package."""

from app.modules.audit import models as audit_models  # noqa: F401
from app.modules.availability import models as availability_models  # noqa: F401
from app.modules.booking import models as booking_models  # noqa: F401
from app.modules.homework import models as homework_models  # noqa: F401
from app.modules.lessons import models as lessons_models  # noqa: F401
from app.modules.meetings import models as meetings_models  # noqa: F401
from app.modules.notifications import models as notifications_models  # noqa: F401
from app.modules.payments import models as payments_models  # noqa: F401
from app.modules.profiles import models as profiles_models  # noqa: F401
