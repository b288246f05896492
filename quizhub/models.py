"""Import every model so metadata is complete for create_all and migrations."""
from quizhub.auth.models import User  # noqa: F401
from quizhub.audit.models import AuditLog  # noqa: F401
from quizhub.classes.models import Class, Enrollment  # noqa: F401
from quizhub.quiz.models import (  # noqa: F401
    AnswerOption,
    Question,
    Quiz,
    StudentAnswer,
    Submission,
)
