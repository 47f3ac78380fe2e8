import logging

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from visualgit import models, repositories
from visualgit.config import settings
from visualgit.database import engine
from visualgit.main import app
from visualgit.services import ensure_admin_user
from conftest import unique_email

client = TestClient(app)


@pytest.fixture
def admin_headers():
    """Log in as the admin account created at start-up."""
    r = client.post('/auth/login', json={'email': settings.ADMIN_EMAIL, 'password': settings.ADMIN_PASSWORD})
    assert r.status_code == 200, r.text
    assert r.json()['user']['role'] == 'ADMIN'
    return {'Authorization': f"Bearer {r.json()['accessToken']}"}


def test_admin_routes_reject_regular_users(make_user):
    user, headers, _ = make_user()
    assert client.get('/admin/users', headers=headers).status_code == 403
    r = client.patch(f"/admin/users/{user['id']}/status", json={'isActive': False}, headers=headers)
    assert r.status_code == 403
    assert r.json()['detail'] == 'Admin access required'
    assert client.delete(f"/admin/users/{user['id']}", headers=headers).status_code == 403
    assert client.get('/admin/users').status_code == 401


def test_list_users_with_search_and_filters(make_user, admin_headers):
    tag = unique_email('needle').split('@')[0]
    user, headers, _ = make_user(email=f'{tag}@example.com')
    client.put('/users/me', json={'firstName': 'Linus', 'lastName': 'Torvalds'}, headers=headers)

    r = client.get('/admin/users', params={'search': tag.upper()}, headers=admin_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert (body['total'], body['page'], body['limit'], body['totalPages']) == (1, 1, 10, 1)
    row = body['users'][0]
    assert row['id'] == user['id']
    assert row['name'] == 'Linus Torvalds'
    assert row['role'] == 'USER'
    assert row['status'] == 'active'
    assert row['totalSessions'] == 1
    assert row['activeSessions'] == 1
    assert row['oauthSessions'] == 0
    assert row['lastLoginAt'] is not None
    assert 'joinedAt' in row

    admins = client.get('/admin/users', params={'role': 'ADMIN'}, headers=admin_headers).json()
    assert all(u['role'] == 'ADMIN' for u in admins['users'])
    assert settings.ADMIN_EMAIL in [u['email'] for u in admins['users']]

    none_inactive = client.get('/admin/users', params={'search': tag, 'status': 'inactive'}, headers=admin_headers)
    assert none_inactive.json()['total'] == 0

    bad = client.get('/admin/users', params={'status': 'sleeping'}, headers=admin_headers)
    assert bad.status_code == 422


def test_list_users_paging(make_user, admin_headers):
    tag = unique_email('page').split('@')[0]
    for i in range(3):
        make_user(email=f'{tag}-{i}@example.com')
    first = client.get('/admin/users', params={'search': tag, 'limit': 2, 'sortBy': 'email', 'sortOrder': 'ASC'},
                       headers=admin_headers).json()
    assert first['total'] == 3
    assert first['totalPages'] == 2
    assert [u['email'] for u in first['users']] == [f'{tag}-0@example.com', f'{tag}-1@example.com']
    second = client.get('/admin/users', params={'search': tag, 'limit': 2, 'page': 2, 'sortBy': 'email',
                                                'sortOrder': 'ASC'}, headers=admin_headers).json()
    assert [u['email'] for u in second['users']] == [f'{tag}-2@example.com']


def test_disabling_a_user_blocks_their_token(make_user, admin_headers):
    user, headers, login = make_user()
    r = client.patch(f"/admin/users/{user['id']}/status", json={'isActive': False}, headers=admin_headers)
    assert r.status_code == 200, r.text
    assert r.json()['isActive'] is False
    assert client.get('/auth/me', headers=headers).status_code == 401
    assert client.post('/auth/refresh', json={'refreshToken': login['refreshToken']}).status_code == 401

    listed = client.get('/admin/users', params={'search': user['email'], 'status': 'inactive'},
                        headers=admin_headers).json()
    assert [u['status'] for u in listed['users']] == ['inactive']

    back = client.patch(f"/admin/users/{user['id']}/status", json={'isActive': True}, headers=admin_headers)
    assert back.json()['isActive'] is True
    assert client.get('/auth/me', headers=headers).status_code == 200


def test_delete_user_removes_account_and_sessions(make_user, admin_headers, lesson_factory):
    user, headers, _ = make_user()
    lesson = lesson_factory()
    client.post(f"/lessons/{lesson['id']}/ratings", json={'rating': 4}, headers=headers)

    r = client.delete(f"/admin/users/{user['id']}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {'message': 'User deleted successfully'}
    assert client.get('/auth/me', headers=headers).status_code == 401
    assert client.get(f"/lessons/{lesson['id']}/ratings").json() == []
    with Session(engine) as db:
        assert repositories.SessionRepository(db).list_for_user(user['id']) == []

    again = client.delete(f"/admin/users/{user['id']}", headers=admin_headers)
    assert again.status_code == 404
    assert again.json()['detail'] == 'User not found'
    missing = client.patch(f"/admin/users/{user['id']}/status", json={'isActive': True}, headers=admin_headers)
    assert missing.status_code == 404


def test_my_stats_counts_sessions(make_user):
    user, headers, login = make_user()
    fresh = client.get('/users/me/stats', headers=headers).json()
    assert (fresh['totalSessions'], fresh['activeSessions'], fresh['oauthSessions']) == (1, 1, 0)

    client.post('/auth/refresh', json={'refreshToken': login['refreshToken']})
    rotated = client.get('/users/me/stats', headers=headers).json()
    assert rotated['totalSessions'] == 2
    assert rotated['activeSessions'] == 1
    assert rotated['lastLoginAt'] is not None
    assert client.get('/users/me/stats').status_code == 401


def test_ensure_admin_user_promotes_existing_account(make_user, monkeypatch, caplog):
    user, _, _ = make_user()
    monkeypatch.setattr(settings, 'ADMIN_EMAIL', user['email'])
    with Session(engine) as db:
        db.get(models.User, user['id']).is_active = False
        db.commit()
        promoted = ensure_admin_user(db)
        assert promoted.id == user['id']
        assert promoted.role == models.ROLE_ADMIN
        assert promoted.is_active is True

        with caplog.at_level(logging.INFO, logger='visualgit.services'):
            assert ensure_admin_user(db).id == user['id']
        assert 'admin user present' in caplog.text


def test_ensure_admin_user_creates_account_and_warns_on_default_password(monkeypatch, caplog):
    email = unique_email('root')
    monkeypatch.setattr(settings, 'ADMIN_EMAIL', email)
    monkeypatch.setattr(settings, 'ADMIN_PASSWORD', 'admin123')
    with Session(engine) as db, caplog.at_level(logging.WARNING, logger='visualgit.services'):
        created = ensure_admin_user(db)
        assert (created.email, created.role) == (email, models.ROLE_ADMIN)
        assert (created.first_name, created.last_name) == ('Admin', 'User')
    assert 'default password' in caplog.text
    r = client.post('/auth/login', json={'email': email, 'password': 'admin123'})
    assert r.status_code == 200
    assert r.json()['user']['role'] == 'ADMIN'


def test_ensure_admin_user_disabled_without_email(monkeypatch):
    monkeypatch.setattr(settings, 'ADMIN_EMAIL', '')
    with Session(engine) as db:
        assert ensure_admin_user(db) is None
