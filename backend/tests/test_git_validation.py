import uuid

from fastapi.testclient import TestClient

from visualgit import services
from visualgit.git_engine import GitEngine, calculate_score, compare_repository_states
from visualgit.main import app
from visualgit.schemas import RepositoryDifference, RepositoryState

client = TestClient(app)


def build_state(*commands):
    state = None
    for command in commands:
        res = GitEngine().execute(state, command)
        assert res.success, res.output
        state = res.repository_state
    return state


GOAL_COMMANDS = ('git init', 'git commit -m "initial"', 'git branch feature', 'git checkout feature',
                 'git commit -m "add feature"')


def _as_json(state):
    return state.model_dump(mode='json', by_alias=True)


def _practice_with_goal(lesson_factory, goal):
    lesson = lesson_factory()
    payload = {'lessonId': lesson['id'], 'title': 'Feature branch', 'scenario': 'Branch and commit.'}
    if goal is not None:
        payload['goalRepositoryState'] = _as_json(goal)
    r = client.post('/practices', json=payload)
    assert r.status_code == 201, r.text
    return r.json()


def test_matching_state_scores_full_marks(lesson_factory):
    practice = _practice_with_goal(lesson_factory, build_state(*GOAL_COMMANDS))
    # a separate run produces different ids and timestamps but the same shape
    attempt = build_state(*GOAL_COMMANDS)
    r = client.post('/git/validate-practice', json={
        'practiceId': practice['id'], 'userRepositoryState': _as_json(attempt),
    })
    assert r.status_code == 200
    body = r.json()
    assert body['success'] is True
    assert body['isCorrect'] is True
    assert body['score'] == 100
    assert body['differences'] == []
    assert body['feedback'] == 'Perfect! Your repository state matches the goal exactly.'


def test_partial_state_reports_differences(lesson_factory):
    practice = _practice_with_goal(lesson_factory, build_state(*GOAL_COMMANDS))
    attempt = build_state('git init', 'git commit -m "initial"')
    r = client.post('/git/validate-practice', json={
        'practiceId': practice['id'], 'userRepositoryState': _as_json(attempt),
    })
    body = r.json()
    assert body['success'] is True
    assert body['isCorrect'] is False
    kinds = {(d['type'], d['field']) for d in body['differences']}
    assert ('commit', 'count') in kinds
    assert ('commit', 'missing_messages') in kinds
    assert ('branch', 'names') in kinds
    assert ('head', 'ref') in kinds
    # commit 25, branch 25, head 12.5
    assert body['score'] == 37.5
    assert body['feedback'].startswith(f"Found {len(body['differences'])} difference(s)")


def test_unknown_practice_and_missing_goal(lesson_factory):
    attempt = _as_json(build_state('git init'))
    r = client.post('/git/validate-practice', json={'practiceId': str(uuid.uuid4()), 'userRepositoryState': attempt})
    assert r.status_code == 200
    assert r.json()['success'] is False
    assert r.json()['feedback'] == 'Practice not found'
    assert r.json()['score'] == 0

    practice = _practice_with_goal(lesson_factory, None)
    r = client.post('/git/validate-practice', json={'practiceId': practice['id'], 'userRepositoryState': attempt})
    assert r.json()['success'] is False
    assert r.json()['feedback'] == 'No goal repository state defined for this practice'


def test_internal_error_is_reported_as_failed_validation(lesson_factory, monkeypatch, caplog):
    practice = _practice_with_goal(lesson_factory, build_state(*GOAL_COMMANDS))

    def broken(goal, user):
        raise RuntimeError('comparison blew up')

    monkeypatch.setattr(services, 'compare_repository_states', broken)
    r = client.post('/git/validate-practice', json={
        'practiceId': practice['id'], 'userRepositoryState': _as_json(build_state('git init')),
    })
    assert r.status_code == 200
    body = r.json()
    assert body['success'] is False
    assert body['isCorrect'] is False
    assert body['score'] == 0
    assert body['feedback'] == 'An error occurred while validating your practice'
    assert body['message'] == 'Validation failed due to an internal error'
    assert 'practice validation failed' in caplog.text


def test_validate_rejects_malformed_state():
    r = client.post('/git/validate-practice', json={'practiceId': 'x', 'userRepositoryState': {'commits': []}})
    assert r.status_code == 422


def test_compare_counts_commit_messages_as_multiset():
    goal = build_state('git init', 'git commit -m "same"', 'git commit -m "same"')
    user = build_state('git init', 'git commit -m "same"', 'git commit -m "other"')
    diffs = compare_repository_states(goal, user)
    fields = [d.field for d in diffs]
    assert fields == ['missing_messages', 'extra_messages']
    assert diffs[0].description == 'Missing 1 commit(s) with message: "same"'
    assert diffs[1].description == 'Found 1 extra commit(s) with message: "other"'


def test_compare_head_and_tags():
    goal = build_state('git init', 'git commit -m "a"', 'git tag v1')
    user = build_state('git init', 'git commit -m "a"')
    detached = GitEngine().execute(user, f'git switch {user.commits[0].id}').repository_state
    diffs = compare_repository_states(goal, detached)
    assert [(d.type, d.field) for d in diffs] == [('head', 'type'), ('head', 'ref'), ('tag', 'count')]
    empty = RepositoryState(commits=[], branches=[], tags=[])
    assert any(d.type == 'head' for d in compare_repository_states(goal, empty))


def test_score_caps_each_category_and_floors_at_zero():
    def diff(kind):
        return RepositoryDifference(type=kind, field='x', description='d')

    assert calculate_score([]) == 100.0
    assert calculate_score([diff('tag')]) == 87.5
    assert calculate_score([diff('commit')] * 10) == 50.0
    assert calculate_score([diff(k) for k in ('commit', 'branch', 'head', 'tag') for _ in range(4)]) == 0.0
