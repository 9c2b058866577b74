class ProjectNotFoundError(RuntimeError):
    def __init__(self, project_id: str):
        super().__init__(
            f"Project '{project_id}' was not found in non-volatile storage."
        )
        self.project_id = project_id


class UnknownSourceError(KeyError):
    def __init__(self, source_id: str):
        super().__init__(source_id)
        self.source_id = source_id

    def __str__(self):
        return f"Source '{self.source_id}' is not enabled"
