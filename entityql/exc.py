from __future__ import annotations

from collections import abc
from typing import Any, NamedTuple, Optional


class BaseEntityqlException(Exception):
    """ Base for all errors raised by entityql """


class ModelConfigurationError(BaseEntityqlException):
    """ Invalid model metadata: a programming error

    Reported when relation descriptors or model info are inconsistent
    """


class SearchSpecError(BaseEntityqlException):
    """ Invalid search specification provided by the User """

    def __init__(self, err: str):
        super().__init__(f'Search error: {err}')


class UnknownRelationError(SearchSpecError):
    """ The requested relation selector mentioned a relation the model does not have

    Only reported when `EntitySettings.unknown_relations` is "error"
    """

    def __init__(self, model: str, names: abc.Iterable[str]):
        self.model = model
        self.names = tuple(names)

        super().__init__(f'Unknown relations for "{model}": {", ".join(self.names)}')


class ValidationMessage(NamedTuple):
    """ One validation failure: a field name (or None for the whole record) and a message """
    field: Optional[str]
    message: str


class EntityError(BaseEntityqlException):
    """ An error that terminates a request

    Carries an HTTP-like status code so that the controller layer can report it
    """
    status: int = 500

    def __init__(self, message: str, *, messages: abc.Iterable[ValidationMessage] = ()):
        self.messages: list[ValidationMessage] = list(messages)
        super().__init__(message)


class NotFound(EntityError):
    """ A record was not found by its primary key """
    status = 404

    def __init__(self, model: str, id: Any, *, action: str = 'find'):
        self.model = model
        self.id = id
        super().__init__(f'Could not {action} {model} record #{id}')


class ValidationError(EntityError):
    """ Saving failed at some level of the cascade

    `messages` holds the ordered list of (field, message) pairs reported by the failing model
    """
    status = 422


class DeleteError(EntityError):
    """ Storage reported a failure while deleting a record """
    status = 500
