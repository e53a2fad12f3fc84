from plugsim.models.plugin_manifest import DEFAULT_DESCRIPTION, PluginManifest
from plugsim.models.runner_settings import RunnerSettings
from plugsim.models.serialized_model import SerializedElement, SerializedModel

__all__ = [
    "DEFAULT_DESCRIPTION",
    "PluginManifest",
    "RunnerSettings",
    "SerializedElement",
    "SerializedModel",
]
