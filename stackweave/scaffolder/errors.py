"""Exceptions raised while materializing a project tree."""

from __future__ import annotations


class GenerationError(Exception):
    """Raised when generation cannot produce a valid project tree."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class TemplatingError(GenerationError):
    """A template referenced an undefined key or failed to compile."""

    def __init__(self, path: str, key: str | None = None, detail: str = ""):
        self.key = key
        if key is not None:
            message = f"{path}: template variable '{key}' has no value and no default"
        else:
            message = f"{path}: template error: {detail}"
        super().__init__(message, path=path)


class StructuredParseError(GenerationError):
    """A structured contribution was not valid JSON/YAML."""

    def __init__(self, path: str, module: str, detail: str = ""):
        self.module = module
        super().__init__(
            f"{path}: content from module '{module}' is not valid structured data: {detail}",
            path=path,
        )


class MergeConflictError(GenerationError):
    """Two modules set the same key to different values under a strict merge."""

    def __init__(self, path: str, key_path: str, first_module: str, second_module: str):
        self.key_path = key_path
        self.first_module = first_module
        self.second_module = second_module
        super().__init__(
            f"{path}: '{key_path}' set by '{first_module}' conflicts with "
            f"a different value from '{second_module}'",
            path=path,
        )
