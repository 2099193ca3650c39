from __future__ import annotations


class SiteBuildError(RuntimeError):
    """Base error for failures that abort a build pass."""


class CorpusLoadError(SiteBuildError):
    def __init__(self, *, data_dir: str, details: str) -> None:
        super().__init__(f"unable to load entities from '{data_dir}': {details}")
        self.data_dir = data_dir
        self.details = details


class DuplicateSlugError(SiteBuildError):
    def __init__(self, *, slug: str, first_source: str, duplicate_source: str) -> None:
        super().__init__(
            f"duplicate entity slug '{slug}': {duplicate_source} collides with {first_source}"
        )
        self.slug = slug
        self.first_source = first_source
        self.duplicate_source = duplicate_source


class TemplateRenderError(SiteBuildError):
    def __init__(self, *, template_name: str, details: str) -> None:
        super().__init__(f"unable to render template '{template_name}': {details}")
        self.template_name = template_name
        self.details = details


class OutputWriteError(SiteBuildError):
    def __init__(self, *, path: str, details: str) -> None:
        super().__init__(f"unable to write '{path}': {details}")
        self.path = path
        self.details = details


class StructuralRenderError(SiteBuildError):
    def __init__(self, *, page_kind: str, page_path: str, details: str) -> None:
        super().__init__(f"structural page {page_kind} '{page_path}' failed: {details}")
        self.page_kind = page_kind
        self.page_path = page_path
        self.details = details
