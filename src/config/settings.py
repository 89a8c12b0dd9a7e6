"""
Application settings and configuration

Uses pydantic-settings for type-safe configuration via environment variables.
All settings use QHTML_ prefix (e.g., QHTML_SCRIPT_MAX_PASSES=500).

Settings can also be loaded from a .env file in the project root.
"""

import re

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application configuration via environment variables.

    Environment variables use QHTML_ prefix.

    Examples:
        QHTML_MACRO_PASS_FACTOR=5
        QHTML_SCRIPT_MAX_PASSES=100
        QHTML_IMPORT_LIMIT=20
        QHTML_DEBUG_MODE=true
    """

    model_config = SettingsConfigDict(
        env_prefix="QHTML_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Expansion configuration
    macro_pass_factor: int = Field(
        default=3,
        ge=1,
        description="Component/template expansion is bounded by max(1, factor * definition count) passes",
    )

    script_max_passes: int = Field(
        default=250,
        ge=1,
        description="Maximum q-script evaluation passes over one piece of source",
    )

    import_limit: int = Field(
        default=100,
        ge=0,
        description="Maximum number of q-import blocks resolved for one batch of sources",
    )

    # Runtime configuration
    hydrate_components: bool = Field(
        default=True,
        description="Hydrate component templates and project slot carriers when a component host is installed",
    )

    wrap_primitive_top_level: bool = Field(
        default=True,
        description="Wrap bare q-script results found directly inside an element body in text { }",
    )

    # Compilation configuration
    debug_mode: bool = Field(
        default=False,
        description="Trace compile stages through LOG()",
    )

    def instanceKey_make(self, component_id: str, counter: int) -> str:
        """
        Generate the key that identifies one component invocation.

        Per-invocation signal handlers are stored in the component registry
        under this key and looked up again when the host is installed.

        Args:
            component_id: Component id as written in the definition
            counter: Monotonic invocation counter

        Returns:
            Key string (e.g., "my-card-3")

        Example:
            >>> settings = AppSettings()
            >>> settings.instanceKey_make('My Card', 3)
            'my-card-3'
        """
        base = re.sub(r"[^a-z0-9_-]+", "-", component_id.lower()).strip("-") or "component"
        return f"{base}-{counter}"


# Singleton instance - import this in your code
appsettings = AppSettings()
