"""Classes and enrollments."""
from flask import Blueprint

classes_bp = Blueprint('classes', __name__, url_prefix='/api/classes')

from quizhub.classes import routes  # noqa: E402,F401
