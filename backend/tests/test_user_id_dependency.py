from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from visualgit.auth import get_user_id
from visualgit.main import app

whoami_app = FastAPI()


@whoami_app.get('/whoami')
def whoami(user_id: str = Depends(get_user_id)):
    return {'userId': user_id}


whoami_client = TestClient(whoami_app)
client = TestClient(app)


def test_user_id_returns_subject(make_user):
    user, headers, _ = make_user()
    r = whoami_client.get('/whoami', headers=headers)
    assert r.status_code == 200
    assert r.json() == {'userId': user['id']}


def test_user_id_rejects_anonymous_request_with_400():
    r = whoami_client.get('/whoami')
    assert r.status_code == 400
    assert r.json()['detail'] == 'User not authenticated'


def test_user_id_rejects_bad_token_with_401():
    r = whoami_client.get('/whoami', headers={'Authorization': 'Bearer nope'})
    assert r.status_code == 401


def test_lesson_view_tracking_requires_user(lesson_factory):
    lesson = lesson_factory()
    r = client.post('/lessons/views', json={'lessonId': lesson['id']})
    assert r.status_code == 400
    assert r.json()['detail'] == 'User not authenticated'
