from plugsim.runtime.model import Model
from plugsim.runtime.program import ERROR_TYPE, STEP_LIMIT_EXCEEDED, Program, error_value, placeholder
from plugsim.runtime.serialization import deserialize_model, serialize_model

__all__ = [
    "Model",
    "ERROR_TYPE",
    "STEP_LIMIT_EXCEEDED",
    "Program",
    "error_value",
    "placeholder",
    "deserialize_model",
    "serialize_model",
]
