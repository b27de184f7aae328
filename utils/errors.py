class InvalidInput(ValueError):
    """A template field failed validation on create or update."""


class NotFound(LookupError):
    """The template does not exist, or is owned by someone else.

    Both cases carry the same message.
    """

    def __init__(self, kind: str, template_id: int):
        super().__init__(f"Recurring {kind} {template_id} not found.")
        self.kind = kind
        self.template_id = template_id


class InvalidFrequency(ValueError):
    """A frequency outside FREQUENCIES reached the recurrence calculator.

    Means a template was persisted with a bad value.
    """

    def __init__(self, frequency):
        super().__init__(f"Invalid frequency: {frequency!r}")
        self.frequency = frequency
