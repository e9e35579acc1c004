"""Domain errors raised by the SMS services and rendered by the command router.

Each error names a bilingual reply template plus its positional arguments,
so the router can turn any of them into a user-facing SMS.
"""


class DispatchError(Exception):
    """Base class for failures that become a bilingual error reply."""

    def __init__(self, template_key: str, *args, detail: str | None = None):
        self.template_key = template_key
        self.args_for_template = args
        super().__init__(detail or f"{template_key}{list(args) if args else ''}")


class ValidationError(DispatchError):
    """A required field is missing or malformed."""


class NotFoundError(DispatchError):
    """Unknown case, or the sender is not registered in the needed role."""


class UnauthorizedActionError(DispatchError):
    """The sender may not act on this case."""
