from quizhub import db
from quizhub.common.timeutils import utcnow


class Class(db.Model):
    """A class owned by the professor who created it."""
    __tablename__ = "classes"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    enrollment_code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    professor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    # Relationships
    professor = db.relationship("User", foreign_keys=[professor_id], backref="owned_classes")
    enrollments = db.relationship("Enrollment", backref="klass", lazy="dynamic")
    quizzes = db.relationship("Quiz", backref="klass", lazy="dynamic")

    __table_args__ = (
        db.Index('ix_classes_professor_active', 'professor_id', 'is_active'),
    )

    def __repr__(self) -> str:
        return f"<Class {self.id}: {self.name}>"

    def active_student_count(self) -> int:
        return self.enrollments.filter_by(is_active=True).count()

    def to_dict(self, include_code: bool = True) -> dict:
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'professor_id': self.professor_id,
            'is_active': self.is_active,
            'student_count': self.active_student_count(),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_code:
            data['enrollment_code'] = self.enrollment_code
        return data


class Enrollment(db.Model):
    """Student membership of a class. Rows are deactivated, never deleted."""
    __tablename__ = "class_enrollments"

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, db.ForeignKey("classes.id"), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    enrolled_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    student = db.relationship("User", foreign_keys=[student_id], backref="enrollments")

    __table_args__ = (
        db.UniqueConstraint('class_id', 'student_id', name='uq_class_student'),
        db.Index('ix_class_enrollments_class_active', 'class_id', 'is_active'),
    )

    def __repr__(self) -> str:
        return f"<Enrollment class={self.class_id} student={self.student_id} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'class_id': self.class_id,
            'student_id': self.student_id,
            'username': self.student.username if self.student else None,
            'full_name': self.student.full_name if self.student else None,
            'is_active': self.is_active,
            'enrolled_at': self.enrolled_at.isoformat() if self.enrolled_at else None,
        }
