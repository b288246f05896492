"""
Test cases for admin functionality.
"""
import pytest

from conftest import make_user
from quizhub import db
from quizhub.admin.service import AdminService
from quizhub.audit import AuditRecorder
from quizhub.audit.models import AuditLog
from quizhub.auth.models import User
from quizhub.errors import Forbidden, ValidationError
from quizhub.persistence import UnitOfWork


def _service(clock=None):
    kwargs = {'audit': AuditRecorder(db.session)}
    if clock is not None:
        kwargs['clock'] = clock
    return AdminService(UnitOfWork(db.session), **kwargs)


class TestAdminService:
    """Test cases for user administration."""

    def test_change_role(self, people):
        user = _service().change_role(people['admin'].id, people['carol'], 'professor')
        assert user.role == 'professor'
        log = AuditLog.query.filter_by(action='ROLE_CHANGE').one()
        assert log.old_values == {'role': 'student'}
        assert log.new_values == {'role': 'professor'}

    def test_cannot_change_own_role(self, people):
        with pytest.raises(Forbidden):
            _service().change_role(people['admin'].id, people['admin'], 'student')

    def test_invalid_role(self, people):
        with pytest.raises(ValidationError):
            _service().change_role(people['admin'].id, people['carol'], 'superuser')

    def test_delete_without_dependencies_is_hard(self, people):
        lonely = make_user('lonely')
        lonely_id = lonely.id

        assert _service().delete_user(people['admin'].id, lonely) == 'deleted'
        assert db.session.get(User, lonely_id) is None
        assert AuditLog.query.filter_by(action='USER_DELETE', record_id=lonely_id).count() == 1

    def test_delete_with_dependencies_deactivates(self, people):
        assert _service().delete_user(people['admin'].id, people['alice']) == 'deactivated'
        assert db.session.get(User, people['alice'].id).is_active is False

        assert _service().delete_user(people['admin'].id, people['prof']) == 'deactivated'

    def test_cannot_delete_self(self, people):
        with pytest.raises(Forbidden):
            _service().delete_user(people['admin'].id, people['admin'])

    def test_set_active(self, people):
        _service().set_active(people['admin'].id, people['carol'], False)
        assert people['carol'].is_active is False
        with pytest.raises(ValidationError):
            _service().set_active(people['admin'].id, people['carol'], 'yes')

    def test_system_stats(self, people, clock):
        stats = _service(clock).system_stats()
        assert stats['total_users'] == 6
        assert stats['student_count'] == 3
        assert stats['professor_count'] == 2
        assert stats['admin_count'] == 1
        assert stats['total_classes'] == 1

    def test_audit_log_limit_is_bounded(self, app, people):
        app.config['AUDIT_LOG_LIMIT'] = 3
        recorder = AuditRecorder(db.session)
        for _ in range(5):
            recorder.record(people['admin'].id, 'LOGIN', 'users', people['admin'].id)
        recorder.record(people['alice'].id, 'LOGOUT', 'users', people['alice'].id)

        assert len(_service().audit_logs(limit=100)) == 3
        assert len(_service().audit_logs(action='logout')) == 1
        assert {log.user_id for log in _service().audit_logs(user_id=people['admin'].id)} == {people['admin'].id}


class TestAdminRoutes:
    """Test cases for admin endpoints."""

    def test_non_admin_forbidden(self, client, seeded):
        for name in ('prof', 'alice'):
            assert client.get('/api/admin/users', headers=seeded['headers'][name]).status_code == 403
            assert client.get('/api/admin/stats', headers=seeded['headers'][name]).status_code == 403
            assert client.get('/api/admin/audit-logs', headers=seeded['headers'][name]).status_code == 403

    def test_list_users_filtered(self, client, seeded):
        response = client.get('/api/admin/users?role=student', headers=seeded['headers']['admin'])
        assert response.status_code == 200
        assert {u['username'] for u in response.get_json()['users']} == {'alice', 'bob', 'carol'}

    def test_create_user_with_generated_password(self, client, seeded):
        response = client.post('/api/admin/users', headers=seeded['headers']['admin'], json={
            'username': 'newprof',
            'email': 'newprof@example.com',
            'first_name': 'New',
            'last_name': 'Prof',
            'role': 'professor',
        })
        assert response.status_code == 201
        password = response.get_json()['password']

        login = client.post('/api/auth/login', json={'username': 'newprof', 'password': password})
        assert login.status_code == 200
        assert login.get_json()['user']['role'] == 'professor'

    def test_change_role_route(self, client, seeded):
        url = f"/api/admin/users/{seeded['ids']['carol']}/role"
        response = client.put(url, headers=seeded['headers']['admin'], json={'role': 'professor'})
        assert response.status_code == 200
        assert response.get_json()['user']['role'] == 'professor'

        own = f"/api/admin/users/{seeded['ids']['admin']}/role"
        assert client.put(own, headers=seeded['headers']['admin'], json={'role': 'student'}).status_code == 403

    def test_delete_user_route(self, client, seeded):
        response = client.delete(f"/api/admin/users/{seeded['ids']['alice']}", headers=seeded['headers']['admin'])
        assert response.get_json()['result'] == 'deactivated'

        missing = client.delete('/api/admin/users/9999', headers=seeded['headers']['admin'])
        assert missing.status_code == 404

    def test_deactivated_user_token_stops_working(self, client, seeded):
        url = f"/api/admin/users/{seeded['ids']['bob']}/active"
        assert client.put(url, headers=seeded['headers']['admin'], json={'is_active': False}).status_code == 200
        assert client.get('/api/auth/verify', headers=seeded['headers']['bob']).status_code == 401

    def test_stats_and_audit_logs(self, client, seeded):
        stats = client.get('/api/admin/stats', headers=seeded['headers']['admin'])
        assert stats.status_code == 200
        assert stats.get_json()['stats']['total_quizzes'] == 1

        logs = client.get('/api/admin/audit-logs?action=QUIZ_CREATE', headers=seeded['headers']['admin'])
        assert logs.status_code == 200
        assert len(logs.get_json()['logs']) == 1
