""" Column loading: read the allowed columns of an instance, write submitted values into an instance """

from collections import abc
from typing import Any

from entityql.model import ModelInfo
from entityql.typing import RecordDict, SAInstance


def load_allowed_columns(instance: SAInstance, model_info: ModelInfo) -> RecordDict:
    """ Extract only approved fields from an instance

    Every allowed column is present in the result: a column that has no value on the instance becomes `None`.
    This way, every record of a type has the same shape.
    """
    return {
        name: getattr(instance, name, None)
        for name in model_info.allowed_columns  # type: ignore[union-attr]
    }


def load_model_values(instance: SAInstance, model_info: ModelInfo, payload: abc.Mapping[str, Any]) -> SAInstance:
    """ Load submitted data into an instance

    Driven by the model's own columns, not by the allowlist: blocked columns are still written.
    Payload fields that the model does not have are ignored.
    """
    for name in model_info.column_map:
        if name in payload:
            setattr(instance, name, payload[name])
    return instance
