"""Upload a build to the portal, wait for it to finish and download the artifact."""

from typing import Any

__all__ = ["run_workflow"]


def __getattr__(name: str) -> Any:
    if name == "run_workflow":
        from tpp_uploader.run import run_workflow as _run_workflow

        return _run_workflow
    raise AttributeError(name)
