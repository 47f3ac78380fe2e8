"""In-memory Git simulator and repository-state comparison.

`GitEngine.execute` interprets a single `git ...` command line against a
`RepositoryState` and returns the textual output together with the new
state. The engine is stateless between calls: the state passed in is
copied before any change so callers can keep their object untouched.

`compare_repository_states` and `calculate_score` grade a learner's
repository against the goal state of a practice.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .schemas import Branch, Commit, GitCommandResponse, Head, Person, RepositoryDifference, RepositoryState, Tag
from .utils.git_utils import generate_commit_id, levenshtein, short_commit_id

KNOWN_COMMANDS = ["clear", "init", "commit", "branch", "checkout", "switch", "status", "log", "tag"]
NOT_A_REPO = "fatal: not a git repository (or any of the parent directories): .git"
HEAD_NOT_BRANCH = "fatal: HEAD is not pointing to a branch"
DEFAULT_AUTHOR = ("You", "<you@example.com>")
MAX_SUGGESTION_DISTANCE = 3


def find_similar_command(cmd: str) -> Optional[str]:
    """Closest known command to `cmd`, or None when nothing is close enough."""
    closest = None
    best = None
    for known in KNOWN_COMMANDS:
        dist = levenshtein(cmd, known)
        if best is None or dist < best:
            best = dist
            closest = known
    return closest if best is not None and best <= MAX_SUGGESTION_DISTANCE else None


class GitEngine:
    """Execute simulated git commands.

    The working copy of the state lives on the instance while a command
    runs, so use one engine per call (or per thread).
    """

    def execute(self, state: Optional[RepositoryState], command: str) -> GitCommandResponse:
        self.state = state.model_copy(deep=True) if state is not None else None
        try:
            return self._dispatch(command)
        finally:
            self.state = None

    def _dispatch(self, command: str) -> GitCommandResponse:
        tokens = command.split()
        if not tokens or tokens[0] != "git":
            first = tokens[0] if tokens else ""
            return self._respond(f"{first}: command not found", False)
        tokens = tokens[1:]
        if not tokens:
            return self._respond("git: no command provided. See 'git --help'.", False)
        cmd, args = tokens[0], tokens[1:]
        if cmd not in KNOWN_COMMANDS:
            message = f"git: '{cmd}' is not a git command. See 'git --help'."
            suggestion = find_similar_command(cmd)
            if suggestion:
                message += f"\n\nThe most similar command is\n\t{suggestion}"
            return self._respond(message, False)
        if cmd == "init":
            return self._init()
        if self.state is None:
            return self._respond(NOT_A_REPO, False)
        handler = getattr(self, f"_{cmd}")
        return handler(args)

    def _respond(self, output: str, success: bool = True) -> GitCommandResponse:
        return GitCommandResponse(success=success, output=output, repository_state=self.state)

    # -- helpers -------------------------------------------------------------

    def _find_branch(self, name: str) -> Optional[Branch]:
        return next((b for b in self.state.branches if b.name == name), None)

    def _find_tag(self, name: str) -> Optional[Tag]:
        return next((t for t in self.state.tags if t.name == name), None)

    def _head_commit_id(self) -> str:
        head = self.state.head
        if head is None:
            return ""
        if head.type == "commit":
            return head.ref
        branch = self._find_branch(head.ref)
        return branch.commit_id if branch else ""

    # -- commands ------------------------------------------------------------

    def _init(self) -> GitCommandResponse:
        if self.state is not None:
            return self._respond("Reinitialized existing Git repository")
        self.state = RepositoryState(
            commits=[],
            branches=[Branch(name="main", commit_id="")],
            tags=[],
            head=Head(type="branch", ref="main", commit_id=""),
        )
        return self._respond("Initialized empty Git repository")

    def _clear(self, args: List[str]) -> GitCommandResponse:
        self.state = None
        return self._respond("")

    def _status(self, args: List[str]) -> GitCommandResponse:
        head = self.state.head
        branch_name = head.ref if head and head.type == "branch" else "(detached HEAD)"
        if not self.state.commits:
            return self._respond(
                f"On branch {branch_name}\n\n"
                "No commits yet\n\n"
                'nothing to commit (create/copy files and use "git add" to track)'
            )
        return self._respond(f"On branch {branch_name}\nnothing to commit, working tree clean")

    def _commit(self, args: List[str]) -> GitCommandResponse:
        head = self.state.head
        if head is None or head.type != "branch":
            return self._respond(HEAD_NOT_BRANCH, False)
        branch = self._find_branch(head.ref)
        if branch is None:
            return self._respond(f"fatal: current branch '{head.ref}' not found", False)
        if "-m" not in args or args.index("-m") + 1 >= len(args):
            return self._respond('error: commit message not provided (use -m "msg")', False)
        start = args.index("-m") + 1
        first = args[start]
        quote = first[0] if first[0] in ("'", '"') else None
        if quote is None:
            return self._respond('error: commit message must be quoted (use -m "your message")', False)
        collected = []
        terminated = False
        for token in args[start:]:
            collected.append(token)
            if token.endswith(quote):
                terminated = True
                break
        if not terminated:
            return self._respond("error: unterminated quoted commit message", False)
        message = " ".join(collected)
        if len(message) >= 2 and message.startswith(quote) and message.endswith(quote):
            message = message[1:-1]
        if not message.strip():
            return self._respond("Aborting commit due to empty commit message.", False)

        now = datetime.now(timezone.utc)
        commit_id = generate_commit_id()
        self.state.commits.append(Commit(
            id=commit_id,
            type="COMMIT",
            parents=[branch.commit_id] if branch.commit_id else [],
            author=Person(name=DEFAULT_AUTHOR[0], email=DEFAULT_AUTHOR[1], date=now),
            committer=Person(name=DEFAULT_AUTHOR[0], email=DEFAULT_AUTHOR[1], date=now),
            message=message,
            branch=branch.name,
        ))
        branch.commit_id = commit_id
        self.state.head = Head(type="branch", ref=branch.name, commit_id=commit_id)
        return self._respond(f"[{branch.name} {short_commit_id(commit_id)}] {message}")

    def _branch(self, args: List[str]) -> GitCommandResponse:
        head = self.state.head
        if head is None or head.type != "branch":
            return self._respond(HEAD_NOT_BRANCH, False)
        if not args:
            lines = [f"{'*' if b.name == head.ref else ' '} {b.name}" for b in self.state.branches]
            return self._respond("\n".join(lines))
        if args[0] in ("-d", "-D"):
            if len(args) < 2:
                return self._respond("fatal: branch name required", False)
            return self._delete_branch(args[1])

        name = args[0]
        if self._find_branch(name) is not None:
            return self._respond(f"fatal: A branch named '{name}' already exists.", False)
        current = self._find_branch(head.ref)
        if current is None or not current.commit_id:
            return self._respond("fatal: not a valid commit to branch from", False)
        self.state.branches.append(Branch(name=name, commit_id=current.commit_id))
        return self._respond("")

    def _delete_branch(self, name: str) -> GitCommandResponse:
        head = self.state.head
        if head is not None and head.type == "branch" and head.ref == name:
            return self._respond(f"error: Cannot delete branch '{name}' checked out", False)
        branch = self._find_branch(name)
        if branch is None:
            return self._respond(f"error: branch '{name}' not found.", False)
        self.state.branches.remove(branch)
        return self._respond(f"Deleted branch {name} (was {short_commit_id(branch.commit_id)}).")

    def _checkout(self, args: List[str]) -> GitCommandResponse:
        head = self.state.head
        if head is None or head.type != "branch":
            return self._respond(HEAD_NOT_BRANCH, False)
        if not args:
            return self._respond(f"Your branch is up to date with '{head.ref}'.")
        name = args[0]
        branch = self._find_branch(name)
        if branch is None:
            return self._respond(f"error: pathspec '{name}' did not match any file(s) known to git", False)
        self.state.head = Head(type="branch", ref=name, commit_id=branch.commit_id)
        return self._respond(f"Switched to branch '{name}'")

    def _switch(self, args: List[str]) -> GitCommandResponse:
        if not args:
            return self._respond("fatal: missing branch or commit argument", False)
        create = args[0] == "-c" and len(args) > 1
        target = args[1] if create else args[0]
        if target == "-c":
            return self._respond("fatal: missing branch or commit argument", False)
        existing = self._find_branch(target)

        if create:
            if existing is not None:
                return self._respond(f"fatal: A branch named '{target}' already exists.", False)
            commit_id = self._head_commit_id()
            self.state.branches.append(Branch(name=target, commit_id=commit_id))
            self.state.head = Head(type="branch", ref=target, commit_id=commit_id)
            return self._respond(f"Switched to a new branch '{target}'")

        if existing is not None:
            self.state.head = Head(type="branch", ref=existing.name, commit_id=existing.commit_id)
            return self._respond(f"Switched to branch '{target}'")

        commit = next((c for c in self.state.commits if c.id == target), None)
        if commit is not None:
            self.state.head = Head(type="commit", ref=commit.id)
            return self._respond(f"Note: switching to detached HEAD '{commit.id}'")
        return self._respond(f"fatal: invalid reference: {target}", False)

    def _log(self, args: List[str]) -> GitCommandResponse:
        head = self.state.head
        tip = self._head_commit_id()
        if not tip:
            name = head.ref if head else "main"
            return self._respond(f"fatal: your current branch '{name}' does not have any commits yet", False)
        by_id: Dict[str, Commit] = {c.id: c for c in self.state.commits}
        decoration = f" (HEAD -> {head.ref})" if head.type == "branch" else " (HEAD)"
        entries = []
        current = by_id.get(tip)
        while current is not None:
            author = current.author
            email = author.email if author.email.startswith("<") else f"<{author.email}>"
            entries.append(
                f"commit {current.id}{decoration if not entries else ''}\n"
                f"Author: {author.name} {email}\n"
                f"Date:   {author.date.strftime('%a %b %d %H:%M:%S %Y %z').rstrip()}\n"
                f"\n    {current.message}"
            )
            current = by_id.get(current.parents[0]) if current.parents else None
        return self._respond("\n\n".join(entries))

    def _tag(self, args: List[str]) -> GitCommandResponse:
        if not args:
            return self._respond("\n".join(sorted(t.name for t in self.state.tags)))
        if args[0] == "-d":
            if len(args) < 2:
                return self._respond("fatal: tag name required", False)
            tag = self._find_tag(args[1])
            if tag is None:
                return self._respond(f"error: tag '{args[1]}' not found.", False)
            self.state.tags.remove(tag)
            return self._respond(f"Deleted tag '{tag.name}' (was {short_commit_id(tag.commit_id)})")

        name = args[0]
        if self._find_tag(name) is not None:
            return self._respond(f"fatal: tag '{name}' already exists", False)
        commit_id = self._head_commit_id()
        if not commit_id:
            return self._respond("fatal: Failed to resolve 'HEAD' as a valid ref.", False)
        self.state.tags.append(Tag(name=name, commit_id=commit_id))
        return self._respond("")


def compare_repository_states(goal: RepositoryState, user: RepositoryState) -> List[RepositoryDifference]:
    """List how `user` differs from `goal`.

    Commits are matched on their messages as a multiset, so order and ids
    do not matter; branches on their sorted names; HEAD on type and ref;
    tags on their count.
    """
    diffs: List[RepositoryDifference] = []

    if len(goal.commits) != len(user.commits):
        diffs.append(RepositoryDifference(
            type="commit", field="count",
            expected=len(goal.commits), actual=len(user.commits),
            description=f"Expected {len(goal.commits)} commits, but found {len(user.commits)}",
        ))

    goal_msgs = Counter(c.message for c in goal.commits)
    user_msgs = Counter(c.message for c in user.commits)
    for msg, need in goal_msgs.items():
        have = user_msgs.get(msg, 0)
        if have < need:
            diffs.append(RepositoryDifference(
                type="commit", field="missing_messages", expected=msg, actual=None,
                description=f'Missing {need - have} commit(s) with message: "{msg}"',
            ))
    for msg, have in user_msgs.items():
        need = goal_msgs.get(msg, 0)
        if have > need:
            diffs.append(RepositoryDifference(
                type="commit", field="extra_messages", expected=None, actual=msg,
                description=f'Found {have - need} extra commit(s) with message: "{msg}"',
            ))

    if len(goal.branches) != len(user.branches):
        diffs.append(RepositoryDifference(
            type="branch", field="count",
            expected=len(goal.branches), actual=len(user.branches),
            description=f"Expected {len(goal.branches)} branches, but found {len(user.branches)}",
        ))
    goal_names = sorted(b.name for b in goal.branches)
    user_names = sorted(b.name for b in user.branches)
    if goal_names != user_names:
        diffs.append(RepositoryDifference(
            type="branch", field="names", expected=goal_names, actual=user_names,
            description="Branch names do not match",
        ))

    goal_type = goal.head.type if goal.head else None
    user_type = user.head.type if user.head else None
    if goal_type != user_type:
        diffs.append(RepositoryDifference(
            type="head", field="type", expected=goal_type, actual=user_type,
            description="HEAD type does not match",
        ))
    goal_ref = goal.head.ref if goal.head else None
    user_ref = user.head.ref if user.head else None
    if goal_ref != user_ref:
        diffs.append(RepositoryDifference(
            type="head", field="ref", expected=goal_ref, actual=user_ref,
            description="HEAD reference does not match",
        ))

    if len(goal.tags) != len(user.tags):
        diffs.append(RepositoryDifference(
            type="tag", field="count",
            expected=len(goal.tags), actual=len(user.tags),
            description=f"Expected {len(goal.tags)} tags, but found {len(user.tags)}",
        ))
    return diffs


PENALTY_PER_DIFFERENCE = 12.5
MAX_CATEGORY_PENALTY = 50.0


def calculate_score(differences: List[RepositoryDifference]) -> float:
    """100 for a perfect match; each category costs 12.5 per difference, capped at 50."""
    if not differences:
        return 100.0
    per_category = Counter(d.type for d in differences)
    penalty = sum(min(n * PENALTY_PER_DIFFERENCE, MAX_CATEGORY_PENALTY) for n in per_category.values())
    return max(0.0, 100.0 - penalty)
