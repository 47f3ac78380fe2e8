"""Backend package for the Visualized Git learning platform.

`main` wires the FastAPI routes; the git simulator lives in `git_engine`,
persistence in `models`/`repositories` and business rules in `services`.
"""
