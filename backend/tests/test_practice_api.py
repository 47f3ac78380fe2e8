import uuid

from fastapi.testclient import TestClient
from visualgit.main import app

client = TestClient(app)


def _practice_payload(lesson_id, **overrides):
    payload = {
        'lessonId': lesson_id,
        'title': 'Create a feature branch',
        'scenario': 'Your team wants a branch per feature.',
        'difficulty': 2,
        'estimatedTime': 5,
        'order': 1,
        'instructions': [
            {'content': 'Create the branch', 'order': 2},
            {'content': 'Initialise the repository', 'order': 1},
        ],
        'hints': [{'content': 'Use git branch <name>'}],
        'expectedCommands': [{'command': 'git init', 'order': 0}, {'command': 'git branch feature', 'order': 1}],
        'validationRules': [{'type': 'min_commands', 'value': '2', 'message': 'Run at least two commands'}],
        'tags': [{'name': 'branching', 'color': '#00aa00'}],
    }
    payload.update(overrides)
    return payload


def _create(lesson_id, **overrides):
    r = client.post('/practices', json=_practice_payload(lesson_id, **overrides))
    assert r.status_code == 201, r.text
    return r.json()


def test_create_practice_with_children(lesson_factory):
    lesson = lesson_factory()
    body = _create(lesson['id'])
    assert body['lessonId'] == lesson['id']
    assert body['views'] == 0 and body['completions'] == 0
    assert body['isActive'] is True
    assert body['version'] == 1
    assert [i['content'] for i in body['instructions']] == ['Initialise the repository', 'Create the branch']
    assert body['hints'][0]['order'] == 0
    assert body['expectedCommands'][1]['isRequired'] is True
    assert body['validationRules'][0]['type'] == 'min_commands'
    assert body['tags'] == [{'id': body['tags'][0]['id'], 'name': 'branching', 'color': '#00aa00'}]
    assert body['lesson'] == {'id': lesson['id'], 'title': lesson['title'], 'slug': lesson['slug']}

    fetched = client.get(f"/practices/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()['title'] == 'Create a feature branch'


def test_create_practice_for_unknown_lesson_is_404():
    r = client.post('/practices', json=_practice_payload(str(uuid.uuid4())))
    assert r.status_code == 404
    assert r.json()['detail'] == 'Lesson not found'


def test_create_practice_validation_errors(lesson_factory):
    lesson = lesson_factory()
    assert client.post('/practices', json=_practice_payload(lesson['id'], difficulty=9)).status_code == 422
    assert client.post('/practices', json=_practice_payload(lesson['id'], title='')).status_code == 422
    bad_rule = [{'type': 'telepathy', 'value': 'x'}]
    assert client.post('/practices', json=_practice_payload(lesson['id'], validationRules=bad_rule)).status_code == 422


def test_list_filters(lesson_factory):
    lesson = lesson_factory(title='Merging')
    other = lesson_factory()
    first = _create(lesson['id'], title='Fast-forward merge', order=0, difficulty=1, tags=[{'name': 'merge'}])
    second = _create(lesson['id'], title='Three-way merge', order=1, difficulty=3, isActive=False)
    _create(other['id'], title='Unrelated')

    by_lesson = client.get('/practices', params={'lessonId': lesson['id']}).json()
    assert by_lesson['total'] == 2
    assert [p['id'] for p in by_lesson['data']] == [first['id'], second['id']]

    by_slug = client.get('/practices', params={'lessonSlug': lesson['slug']}).json()
    assert by_slug['total'] == 2

    active = client.get('/practices', params={'lessonId': lesson['id'], 'isActive': 'false'}).json()
    assert [p['id'] for p in active['data']] == [second['id']]

    hard = client.get('/practices', params={'lessonId': lesson['id'], 'difficulty': 3}).json()
    assert [p['id'] for p in hard['data']] == [second['id']]

    tagged = client.get('/practices', params={'lessonId': lesson['id'], 'tag': 'merge'}).json()
    assert [p['id'] for p in tagged['data']] == [first['id']]

    # q matches practice fields and the lesson title, case-insensitively
    searched = client.get('/practices', params={'q': 'THREE-WAY'}).json()
    assert second['id'] in [p['id'] for p in searched['data']]
    via_lesson = client.get('/practices', params={'lessonId': lesson['id'], 'q': 'merging'}).json()
    assert via_lesson['total'] == 2

    paged = client.get('/practices', params={'lessonId': lesson['id'], 'limit': 1, 'offset': 1}).json()
    assert paged['total'] == 2 and paged['limit'] == 1 and paged['offset'] == 1
    assert [p['id'] for p in paged['data']] == [second['id']]


def test_list_single_and_without_relations(lesson_factory):
    lesson = lesson_factory()
    created = _create(lesson['id'])
    single = client.get('/practices', params={'id': created['id']}).json()
    assert single['id'] == created['id']

    bare = client.get('/practices', params={'lessonId': lesson['id'], 'includeRelations': 'false'}).json()
    item = bare['data'][0]
    assert item['instructions'] == [] and item['tags'] == []
    assert item['lesson'] is None


def test_update_replaces_child_collections(lesson_factory):
    lesson = lesson_factory()
    created = _create(lesson['id'])
    r = client.put(f"/practices/{created['id']}", json={
        'title': 'Renamed',
        'hints': [{'content': 'First hint', 'order': 0}, {'content': 'Second hint', 'order': 1}],
        'tags': [],
    })
    assert r.status_code == 200, r.text
    body = r.json()
    assert body['title'] == 'Renamed'
    assert [h['content'] for h in body['hints']] == ['First hint', 'Second hint']
    assert body['tags'] == []
    # untouched collections survive
    assert len(body['instructions']) == 2
    assert body['scenario'] == created['scenario']

    assert client.put(f"/practices/{created['id']}", json={'lessonId': str(uuid.uuid4())}).status_code == 404
    assert client.put(f'/practices/{uuid.uuid4()}', json={'title': 'x'}).status_code == 404


def test_delete_is_soft_and_hides_practice(lesson_factory):
    lesson = lesson_factory()
    created = _create(lesson['id'])
    r = client.delete(f"/practices/{created['id']}")
    assert r.status_code == 200
    assert r.json() == {'success': True}
    assert client.get(f"/practices/{created['id']}").status_code == 404
    assert client.get('/practices', params={'lessonId': lesson['id']}).json()['total'] == 0
    assert client.delete(f"/practices/{created['id']}").status_code == 404


def test_view_and_completion_counters(lesson_factory):
    lesson = lesson_factory()
    created = _create(lesson['id'])
    pid = created['id']
    assert client.post(f'/practices/{pid}/view').status_code == 204
    assert client.post(f'/practices/{pid}/view').status_code == 204
    assert client.post(f'/practices/{pid}/complete').status_code == 204
    body = client.get(f'/practices/{pid}').json()
    assert body['views'] == 2
    assert body['completions'] == 1
    assert client.post(f'/practices/{uuid.uuid4()}/view').status_code == 404
