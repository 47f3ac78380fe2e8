import uuid

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError
from sqlmodel import Session

from visualgit import models, repositories
from visualgit.database import engine
from visualgit.main import app
from visualgit.schemas import OAuthProfileIn
from visualgit.services import OAuthService
from conftest import unique_email

client = TestClient(app)


def _profile(**kw):
    data = {'provider': 'GITHUB', 'providerId': uuid.uuid4().hex, 'name': 'Grace Hopper',
            'accessToken': 'gh-access', 'refreshToken': 'gh-refresh'}
    data.update(kw)
    return OAuthProfileIn.model_validate(data)


def test_oauth_login_creates_user_link_and_oauth_session():
    email = unique_email('grace')
    profile = _profile(email=email)
    with Session(engine) as db:
        result = OAuthService(db).login_with_profile(profile, user_agent='pytest', ip='127.0.0.1')
        user = result['user']
        assert result['is_new_user'] is True
        assert user.email == email
        assert user.password_hash is None
        assert (user.first_name, user.last_name) == ('Grace', 'Hopper')
        link = repositories.OAuthProviderRepository(db).get_by_provider_id('GITHUB', profile.provider_id)
        assert link.user_id == user.id
        sessions = repositories.SessionRepository(db).list_open_for_user(user.id, models.SESSION_OAUTH)
        assert len(sessions) == 1
        assert sessions[0].oauth_provider == 'GITHUB'
        # provider tokens are stored hashed only
        assert sessions[0].oauth_access_token_hash and sessions[0].oauth_access_token_hash != 'gh-access'

        again = OAuthService(db).login_with_profile(_profile(email=email, providerId=profile.provider_id,
                                                             avatar='https://img/x.png'))
        assert again['is_new_user'] is False
        assert again['user'].id == user.id
        db.refresh(link)
        assert link.provider_avatar == 'https://img/x.png'

    headers = {'Authorization': f"Bearer {result['access_token']}"}
    listed = client.get('/auth/sessions/oauth', headers=headers)
    assert listed.status_code == 200
    assert listed.json()['total'] == 2
    assert all(s['sessionType'] == 'OAUTH' for s in listed.json()['sessions'])


def test_oauth_login_links_existing_password_account(make_user):
    user, headers, _ = make_user()
    with Session(engine) as db:
        result = OAuthService(db).login_with_profile(_profile(provider='GOOGLE', email=user['email']))
        assert result['is_new_user'] is False
        assert result['user'].id == user['id']

    r = client.post('/auth/oauth/unlink/google', headers=headers)
    assert r.status_code == 200
    assert r.json()['success'] is True
    missing = client.post('/auth/oauth/unlink/google', headers=headers)
    assert missing.status_code == 401


def test_oauth_without_email_uses_provider_identity():
    profile = _profile(provider='FACEBOOK', name='Solo')
    with Session(engine) as db:
        result = OAuthService(db).login_with_profile(profile)
        assert result['user'].email == f'facebook:{profile.provider_id}'
        assert result['user'].last_name is None


def test_cannot_unlink_only_authentication_method():
    with Session(engine) as db:
        result = OAuthService(db).login_with_profile(_profile(email=unique_email('only')))
    headers = {'Authorization': f"Bearer {result['access_token']}"}
    r = client.post('/auth/oauth/unlink/GITHUB', headers=headers)
    assert r.status_code == 401
    assert r.json()['detail'] == 'Cannot unlink the only authentication method'


def test_oauth_profile_email_must_be_well_formed():
    with pytest.raises(ValidationError):
        _profile(email='grace@-navy-.mil')
    with pytest.raises(ValidationError):
        _profile(email='grace..hopper@example.com')
    assert _profile(email=None).email is None
